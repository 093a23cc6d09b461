from __future__ import annotations

import asyncio
import contextlib
import json
from pathlib import Path

import pytest
import structlog

from jsonwebhooks.cli import main


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()


def _config(tmp_path: Path, **query_overrides) -> str:
    query = {
        "name": "q",
        "queryUrl": "http://127.0.0.1:1/status",
        "jsonQuery": "$.up",
        "webhookUrl": "http://127.0.0.1:1/hook",
        "webhookMethod": "POST",
        "interval": 1000,
    }
    query.update(query_overrides)
    p = tmp_path / "config.json"
    p.write_text(json.dumps({"queries": [query]}), encoding="utf-8")
    return str(p)


def test_check_valid_config(tmp_path: Path) -> None:
    assert main(["--config", _config(tmp_path), "--check"]) == 0


def test_missing_config_exits_1(tmp_path: Path) -> None:
    assert main(["-c", str(tmp_path / "missing.json"), "--check"]) == 1


def test_invalid_config_exits_1(tmp_path: Path) -> None:
    assert main(["-c", _config(tmp_path, interval=0)]) == 1


def test_version(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert "jsonwebhooks" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_serve_dispatches_on_change_until_cancelled(http_server) -> None:
    from jsonwebhooks.cli import serve
    from jsonwebhooks.config import QuerySpec, WebhooksConfig

    http_server.script("/status", (200, {"up": False}), (200, {"up": True}))
    http_server.script("/hook", (200, "ok"))
    config = WebhooksConfig(
        queries=[
            QuerySpec(
                name="svc",
                query_url=http_server.url("/status"),
                json_query="$.up",
                webhook_url=http_server.url("/hook"),
                webhook_method="POST",
                body_when_occurs='{"up": "{{condition}}"}',
                interval=50,
            )
        ],
        http_timeout_seconds=5,
    )

    task = asyncio.create_task(serve(config))
    try:
        for _ in range(100):
            if http_server.requests_to("/hook"):
                break
            await asyncio.sleep(0.02)
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    hooks = http_server.requests_to("/hook")
    assert len(hooks) == 1
    assert hooks[0].json() == {"up": "true"}


def test_non_string_config_key_exits_1(tmp_path: Path) -> None:
    p = tmp_path / "config.yml"
    p.write_text("1: x\nqueries: []\n", encoding="utf-8")
    assert main(["-c", str(p), "--check"]) == 1


@pytest.mark.asyncio
async def test_serve_returns_once_stop_is_requested(http_server) -> None:
    from jsonwebhooks.cli import serve
    from jsonwebhooks.config import QuerySpec, WebhooksConfig

    http_server.script("/status", (200, {"up": True}))
    config = WebhooksConfig(
        queries=[
            QuerySpec(
                name="svc",
                query_url=http_server.url("/status"),
                json_query="$.up",
                webhook_url=http_server.url("/hook"),
                webhook_method="GET",
                interval=50,
            )
        ],
        http_timeout_seconds=5,
    )

    stop_requested = asyncio.Event()
    task = asyncio.create_task(serve(config, stop_requested))
    for _ in range(100):
        if http_server.requests_to("/status"):
            break
        await asyncio.sleep(0.02)
    assert not task.done()

    stop_requested.set()
    await asyncio.wait_for(task, timeout=5)

    polls = len(http_server.requests_to("/status"))
    await asyncio.sleep(0.2)
    assert len(http_server.requests_to("/status")) == polls
