"""In-memory record of the last condition observed for each query."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum


class Transition(str, Enum):
    SEEDED = "seeded"
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    RESENT = "resent"


@dataclass(frozen=True)
class Observation:
    transition: Transition
    previous: bool | None
    current: bool

    @property
    def should_dispatch(self) -> bool:
        return self.transition in (Transition.CHANGED, Transition.RESENT)


class ConditionState:
    """
    Query name -> last observed condition.

    Lives for the lifetime of the process; entries are never evicted. All
    access goes through one lock so a read-then-write in observe() is atomic.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: dict[str, bool] = {}

    def get(self, name: str) -> bool | None:
        with self._lock:
            return self._last.get(name)

    def set(self, name: str, value: bool) -> None:
        with self._lock:
            self._last[name] = bool(value)

    def observe(self, name: str, condition: bool, *, resend: bool = False) -> Observation:
        condition = bool(condition)
        with self._lock:
            if name not in self._last:
                self._last[name] = condition
                return Observation(Transition.SEEDED, None, condition)

            previous = self._last[name]
            if previous == condition and not resend:
                return Observation(Transition.UNCHANGED, previous, condition)

            self._last[name] = condition
            transition = Transition.CHANGED if previous != condition else Transition.RESENT
            return Observation(transition, previous, condition)

    def snapshot(self) -> dict[str, bool]:
        with self._lock:
            return dict(self._last)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._last

    def __len__(self) -> int:
        with self._lock:
            return len(self._last)
