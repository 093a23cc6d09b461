from __future__ import annotations

import json
import math
from functools import lru_cache
from typing import Any, Sequence, Union

from jsonpath_ng.ext import parse as _parse_jsonpath
from jsonpath_ng.jsonpath import DatumInContext, Fields, JSONPath, Slice

from .errors import ExtractError, ParseError


# Decoded JSON: null | bool | number | string | array | object.
JsonValue = Union[None, bool, int, float, str, list["JsonValue"], dict[str, "JsonValue"]]


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant: {name}")


def decode_json(text: str) -> JsonValue:
    """
    Decode a JSON document. NaN/Infinity are not JSON and are rejected the
    same way as any other syntax error.
    """
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except (ValueError, TypeError) as e:
        raise ParseError(f"invalid JSON: {e}") from e


def dump_json(value: JsonValue) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


class _Wildcard(Slice):
    """`[*]`: every element of an array or every member value of an object."""

    def find(self, datum):
        datum = DatumInContext.wrap(datum)
        if isinstance(datum.value, dict):
            return Fields("*").find(datum)
        if isinstance(datum.value, list):
            return super().find(datum)
        return []


def _with_member_wildcards(node: Any) -> Any:
    if type(node) is Slice and node.start is None and node.end is None and node.step is None:
        return _Wildcard()
    for attr in ("left", "right"):
        child = getattr(node, attr, None)
        if isinstance(child, JSONPath):
            setattr(node, attr, _with_member_wildcards(child))
    return node


@lru_cache(maxsize=256)
def _compile(expression: str) -> Any:
    return _with_member_wildcards(_parse_jsonpath(expression))


def extract(document: JsonValue, expression: str) -> list[JsonValue]:
    """
    Evaluate a JSONPath expression against a decoded document.

    Returns every matched value in query order (duplicates kept). No match
    yields an empty list. A malformed expression raises ExtractError.
    """
    try:
        compiled = _compile(expression)
    except Exception as e:
        raise ExtractError(f"invalid JSONPath expression {expression!r}: {e}") from e

    try:
        return [match.value for match in compiled.find(document)]
    except Exception as e:
        raise ExtractError(f"failed to evaluate {expression!r}: {type(e).__name__}: {e}") from e


def is_truthy(value: JsonValue) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (list, dict)):
        # Containers count as truthy even when empty.
        return True
    raise TypeError(f"not a JSON value: {type(value).__name__}")


def evaluate_condition(matches: Sequence[JsonValue], invert: bool = False) -> bool:
    condition_met = bool(matches) and is_truthy(matches[0])
    return not condition_met if invert else condition_met
