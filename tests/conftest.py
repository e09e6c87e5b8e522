from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from email.message import Message
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pytest


@dataclass
class RecordedRequest:
    method: str
    path: str
    headers: Message
    body: bytes

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass
class StubServer:
    """Canned responses keyed by (method, path including query)."""

    url: str = ""
    routes: Dict[Tuple[str, str], Tuple[int, bytes]] = field(default_factory=dict)
    requests: List[RecordedRequest] = field(default_factory=list)

    def add(self, method: str, path: str, status: int = 200, json_body: Any = None, body: Optional[bytes] = None) -> None:
        if body is None:
            body = json.dumps(json_body).encode("utf-8") if json_body is not None else b""
        self.routes[(method, path)] = (status, body)

    def paths(self) -> List[str]:
        return [request.path for request in self.requests]


class _StubHandler(BaseHTTPRequestHandler):
    def _serve(self) -> None:
        stub: StubServer = self.server.stub  # type: ignore[attr-defined]
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        stub.requests.append(RecordedRequest(self.command, self.path, self.headers, body))
        status, payload = stub.routes.get(
            (self.command, self.path),
            (404, b'{"message": "Not Found"}'),
        )
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    do_GET = _serve
    do_POST = _serve

    def log_message(self, format: str, *args: Any) -> None:
        return


@pytest.fixture
def stub_server(monkeypatch: pytest.MonkeyPatch) -> Iterator[StubServer]:
    # Keep any ambient HTTP proxy away from the loopback server.
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    monkeypatch.setenv("no_proxy", "127.0.0.1,localhost")

    stub = StubServer()
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _StubHandler)
    httpd.stub = stub  # type: ignore[attr-defined]
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    stub.url = f"http://127.0.0.1:{httpd.server_address[1]}"
    try:
        yield stub
    finally:
        httpd.shutdown()
        httpd.server_close()
        thread.join(timeout=5)
