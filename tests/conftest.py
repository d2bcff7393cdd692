from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from email.utils import formatdate
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest


@dataclass
class ScriptedResource:
    """State behind the test HTTP server; tests mutate it between polls."""

    content: bytes = b""
    exists: bool = True
    supports_range: bool = True
    send_length: bool = True
    last_modified: float | None = None
    fail_status: int | None = None
    content_range_skew: int = 0
    requests: list[tuple[str, str, str | None]] = field(default_factory=list)
    seen_headers: list[dict[str, str]] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def append(self, data: bytes) -> None:
        with self.lock:
            self.content += data
            if self.last_modified is not None:
                self.last_modified += 1

    def replace(self, data: bytes) -> None:
        with self.lock:
            self.content = data
            if self.last_modified is not None:
                self.last_modified += 1

    def range_requests(self) -> list[str]:
        return [value for method, _, value in self.requests if method == "GET" and value]


class _Handler(BaseHTTPRequestHandler):
    server: _Server

    def log_message(self, format, *args):  # noqa: A002
        return None

    def do_HEAD(self) -> None:
        self._respond(send_body=False)

    def do_GET(self) -> None:
        self._respond(send_body=True)

    def _respond(self, *, send_body: bool) -> None:
        script = self.server.script
        script.requests.append((self.command, self.path, self.headers.get("Range")))
        script.seen_headers.append({name.lower(): value for name, value in self.headers.items()})

        if self.path == "/redirect":
            self._redirect("/log")
            return
        if self.path == "/loop":
            self._redirect("/loop")
            return
        if self.path != "/log":
            self._empty(404)
            return

        with script.lock:
            content = script.content
            exists = script.exists
            last_modified = script.last_modified
            fail_status = script.fail_status

        if fail_status is not None:
            self._empty(fail_status)
            return
        if not exists:
            self._empty(404)
            return

        status = 200
        body = content
        range_header = self.headers.get("Range")
        if send_body and range_header and script.supports_range:
            start = int(range_header.split("=", 1)[1].rstrip("-"))
            if start >= len(content):
                self.send_response(416)
                self.send_header("Content-Range", f"bytes */{len(content)}")
                self.send_header("Content-Length", "0")
                self.end_headers()
                return
            status = 206
            body = content[start:]

        self.send_response(status)
        if status == 206:
            first = len(content) - len(body) + script.content_range_skew
            self.send_header("Content-Range", f"bytes {first}-{len(content) - 1}/{len(content)}")
        if script.supports_range:
            self.send_header("Accept-Ranges", "bytes")
        if script.send_length:
            self.send_header("Content-Length", str(len(body)))
        if last_modified is not None:
            self.send_header("Last-Modified", formatdate(last_modified, usegmt=True))
        self.end_headers()
        if send_body:
            self.wfile.write(body)

    def _redirect(self, location: str) -> None:
        self.send_response(302)
        self.send_header("Location", location)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _empty(self, status: int) -> None:
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()


class _Server(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, script: ScriptedResource, port: int = 0) -> None:
        super().__init__(("127.0.0.1", port), _Handler)
        self.script = script


class ScriptedServer:
    """Serves ``script`` at ``/log``; can be stopped and restarted on the same port."""

    def __init__(self, script: ScriptedResource) -> None:
        self.script = script
        self._server: _Server | None = None
        self._thread: threading.Thread | None = None
        self.port = 0

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    @property
    def url(self) -> str:
        return f"{self.base_url}/log"

    def start(self) -> None:
        self._server = _Server(self.script, self.port)
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None


@pytest.fixture
def http_server() -> Iterator[ScriptedServer]:
    server = ScriptedServer(ScriptedResource())
    server.start()
    try:
        yield server
    finally:
        server.stop()
