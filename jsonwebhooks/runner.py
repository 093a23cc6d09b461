"""One poll cycle for one query: fetch, extract, evaluate, debounce, dispatch."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

import httpx
import structlog

from .config import QuerySpec, parse_body_fragment
from .errors import DispatchError, ExtractError, FetchError, ParseError
from .json_path import JsonValue, decode_json, dump_json, evaluate_condition, extract
from .state import ConditionState, Transition
from .template import expand


logger = structlog.get_logger(__name__)

RESPONSE_TEXT_LOG_LIMIT = 2000


class RunOutcome(str, Enum):
    FETCH_ERROR = "fetch_error"
    PARSE_ERROR = "parse_error"
    EXTRACT_ERROR = "extract_error"
    BODY_ERROR = "body_error"
    SEEDED = "seeded"
    NO_CHANGE = "no_change"
    DISPATCHED = "dispatched"
    DISPATCH_ERROR = "dispatch_error"
    FAILED = "failed"


def format_time_of_day(now: datetime | None = None) -> str:
    """Local wall-clock time, e.g. '14:03:12 GMT+0200 (CEST)'."""
    now = (now or datetime.now()).astimezone()
    return f"{now.strftime('%H:%M:%S GMT%z')} ({now.tzname()})"


def build_body(spec: QuerySpec, condition: bool) -> dict[str, Any]:
    """Common body overlaid with the fragment for the current condition."""
    body = dict(parse_body_fragment(spec.common_body))
    body.update(parse_body_fragment(spec.body_when_occurs if condition else spec.body_when_not_occurs))
    return body


def render_body(body: dict[str, Any], *, current_time: str, condition: bool, matches: list[JsonValue]) -> str:
    return expand(
        dump_json(body),
        {
            "currentTime": current_time,
            "condition": "true" if condition else "false",
            "value": dump_json(matches),
        },
    )


class QueryRunner:
    """Runs poll cycles for a single QuerySpec against a shared client and state."""

    def __init__(self, spec: QuerySpec, *, client: httpx.AsyncClient, state: ConditionState) -> None:
        self.spec = spec
        self.client = client
        self.state = state

    @property
    def name(self) -> str:
        return self.spec.name

    async def run(self) -> RunOutcome:
        """Run one cycle. Never raises: every failure is logged and reported as an outcome."""
        log = logger.bind(query=self.spec.name)
        try:
            return await self._run(log)
        except FetchError as e:
            log.error("fetch_error", error=str(e), status_code=e.status_code)
            return RunOutcome.FETCH_ERROR
        except ExtractError as e:
            log.error("extract_error", error=str(e), json_query=self.spec.json_query)
            return RunOutcome.EXTRACT_ERROR
        except DispatchError as e:
            log.error(
                "webhook_error",
                error=str(e),
                status_code=e.status_code,
                response_body=(e.response_text or "")[:RESPONSE_TEXT_LOG_LIMIT],
            )
            return RunOutcome.DISPATCH_ERROR
        except Exception as e:
            log.error("query_run_failed", error=f"{type(e).__name__}: {e}")
            return RunOutcome.FAILED

    async def _run(self, log: Any) -> RunOutcome:
        spec = self.spec

        response = await self._fetch()
        current_time = format_time_of_day()

        try:
            document = decode_json(response.text)
        except ParseError as e:
            log.error("parse_error", error=str(e), status_code=response.status_code)
            return RunOutcome.PARSE_ERROR

        matches = extract(document, spec.json_query)
        condition = evaluate_condition(matches, invert=spec.invert)

        observation = self.state.observe(spec.name, condition, resend=spec.resend)
        if observation.transition is Transition.SEEDED:
            log.info("condition_seeded", condition=condition)
            return RunOutcome.SEEDED
        if not observation.should_dispatch:
            log.info("condition_unchanged", condition=condition)
            return RunOutcome.NO_CHANGE
        if observation.transition is Transition.CHANGED:
            log.info("condition_changed", previous=observation.previous, condition=condition)
        else:
            log.info("condition_resent", condition=condition)

        content = None
        if spec.webhook_method == "POST":
            try:
                body = build_body(spec, condition)
            except ParseError as e:
                log.error("body_error", error=str(e))
                return RunOutcome.BODY_ERROR
            if not body:
                log.warning("empty_body", condition="occurs" if condition else "does not occur")
            content = render_body(body, current_time=current_time, condition=condition, matches=matches)

        await self._dispatch(content)
        log.info("webhook_sent", method=spec.webhook_method, condition=condition)
        return RunOutcome.DISPATCHED

    async def _fetch(self) -> httpx.Response:
        try:
            resp = await self.client.get(
                self.spec.query_url,
                headers=self.spec.query_headers or None,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise FetchError(f"http_error: {type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise FetchError(
                f"query endpoint returned {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
            )
        return resp

    async def _dispatch(self, content: str | None) -> httpx.Response:
        method = self.spec.webhook_method
        headers = None
        if content is not None:
            headers = {"Content-Type": "application/json"}

        try:
            resp = await self.client.request(
                method,
                self.spec.webhook_url,
                headers=headers,
                content=content.encode("utf-8") if content is not None else None,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise DispatchError(f"http_error: {type(e).__name__}: {e}") from e

        if not resp.is_success:
            raise DispatchError(
                f"webhook returned {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
                response_text=resp.text,
            )
        return resp
