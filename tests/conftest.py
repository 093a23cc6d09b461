from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

import pytest


@dataclass(frozen=True)
class RecordedRequest:
    method: str
    path: str
    headers: dict[str, str]
    body: str

    def json(self) -> Any:
        return json.loads(self.body)


class ScriptedServer(HTTPServer):
    """
    Local HTTP server with scripted responses per path.

    Each path holds a queue of (status, body) pairs. Every request pops the
    head of the queue; the last entry is repeated once the queue is down to
    one. Every request is recorded.
    """

    def __init__(self) -> None:
        super().__init__(("127.0.0.1", 0), _Handler)
        self.routes: dict[str, list[tuple[int, str]]] = {}
        self.requests: list[RecordedRequest] = []
        self._lock = threading.Lock()

    @property
    def base_url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def script(self, path: str, *responses: tuple[int, Any]) -> None:
        encoded = [(status, body if isinstance(body, str) else json.dumps(body)) for status, body in responses]
        with self._lock:
            self.routes[path] = encoded

    def requests_to(self, path: str) -> list[RecordedRequest]:
        with self._lock:
            return [r for r in self.requests if r.path == path]

    def respond(self, handler: BaseHTTPRequestHandler) -> tuple[int, str]:
        n = int(handler.headers.get("Content-Length") or "0")
        raw = handler.rfile.read(n) if n > 0 else b""
        with self._lock:
            self.requests.append(
                RecordedRequest(
                    method=handler.command,
                    path=handler.path,
                    headers={k.lower(): v for k, v in handler.headers.items()},
                    body=raw.decode("utf-8"),
                )
            )
            queue = self.routes.get(handler.path)
            if not queue:
                return 404, "Not Found"
            if len(queue) > 1:
                return queue.pop(0)
            return queue[0]


class _Handler(BaseHTTPRequestHandler):
    server: ScriptedServer

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def _handle(self) -> None:
        status, body = self.server.respond(self)
        body_bytes = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body_bytes)))
        self.end_headers()
        self.wfile.write(body_bytes)

    def do_GET(self) -> None:  # noqa: N802
        self._handle()

    def do_POST(self) -> None:  # noqa: N802
        self._handle()


@pytest.fixture
def http_server() -> ScriptedServer:
    httpd = ScriptedServer()
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    try:
        yield httpd
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()
