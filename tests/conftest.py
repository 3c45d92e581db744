"""
Pytest configuration for easy_http_core tests.

This file contains shared fixtures and configuration
for all tests in the project.
"""

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, List

import pytest

from easy_http_core.callbacks import CallbackRegistry
from easy_http_core.transport import MockTransport


@pytest.fixture
def registry():
    """Create a fresh callback registry for each test."""
    return CallbackRegistry()


@pytest.fixture
def mock_transport_factory():
    """
    Build a transport factory around a MockTransport.

    The created transports are collected on ``factory.created``.
    """
    def _create(**kwargs) -> Callable[[], MockTransport]:
        created: List[MockTransport] = []

        def factory() -> MockTransport:
            transport = MockTransport(**kwargs)
            created.append(transport)
            return transport

        factory.created = created
        return factory
    return _create


@pytest.fixture
def sample_chunks():
    """Sample body chunks for testing."""
    return [
        b"Hello",
        b", ",
        b"World",
        b"!",
    ]


@pytest.fixture
def sample_headers():
    """Sample response headers for testing."""
    return [
        ("Content-Type", "text/plain"),
        ("Set-Cookie", "a=1"),
        ("Set-Cookie", "b=2"),
        ("Server", "mock/1.0"),
    ]


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    def log_message(self, format, *args):
        pass

    def _reply(self, status: int, body: bytes = b"", headers=None) -> None:
        self.send_response(status)
        for name, value in headers or []:
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def do_GET(self):
        if self.path == "/hello":
            self._reply(200, b"Hello, World!", [("Content-Type", "text/plain")])
        elif self.path == "/cookies":
            self._reply(200, b"ok", [("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")])
        elif self.path == "/large":
            self._reply(200, b"x" * 200_000)
        elif self.path == "/headers":
            body = "\n".join(f"{name}: {value}" for name, value in self.headers.items())
            self._reply(200, body.encode("latin-1"))
        elif self.path == "/redirect":
            self._reply(302, b"moved", [("Location", "/hello")])
        elif self.path == "/loop":
            self._reply(302, b"", [("Location", "/loop")])
        elif self.path == "/slow":
            self.server.release.wait(10)
            self._reply(200, b"late")
        else:
            self._reply(404, b"not found")

    def do_HEAD(self):
        self.do_GET()

    def do_POST(self):
        length = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(length)
        if self.path == "/see-other":
            self._reply(303, b"", [("Location", "/hello")])
        else:
            self._reply(201, self.command.encode() + b" " + body)

    do_PUT = do_POST


@pytest.fixture
def http_server():
    """
    Run a local HTTP/1.1 server on a background thread.

    Yields the base URL. ``/slow`` blocks until the fixture tears down.
    """
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    server.daemon_threads = True
    server.release = threading.Event()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    host, port = server.server_address[:2]
    yield f"http://{host}:{port}"

    server.release.set()
    server.shutdown()
    server.server_close()
    thread.join(5)
