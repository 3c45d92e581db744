"""
Integration tests for the h11 transport.

These tests run real requests against a local HTTP/1.1 server
provided by the ``http_server`` fixture.
"""

import errno
import socket
import time
from unittest.mock import patch

import pytest

from easy_http_core import async_request, request
from easy_http_core.async_request import RequestState
from easy_http_core.exceptions import CancelledError, TransportFailureError
from easy_http_core.options import RequestOptions
from easy_http_core.transport import H11Transport, TransportResult
from easy_http_core.transport.base import ABORTED_BY_CALLBACK, TIMED_OUT, TOO_MANY_REDIRECTS


def _transport_factory():
    return H11Transport(poll_interval=0.05)


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestH11TransportDirect:
    """Drive the transport through its sink contract."""

    def test_perform(self, http_server, registry) -> None:
        """Test sinks receive header lines, body and progress."""
        transport = H11Transport()
        lines, chunks, ticks = [], [], []

        transport.configure(f"{http_server}/hello", RequestOptions.parse(None, registry=registry))
        transport.set_header_sink(lambda line: lines.append(line) or len(line))
        transport.set_byte_sink(lambda chunk: chunks.append(chunk) or len(chunk))
        transport.set_progress_sink(lambda *counters: ticks.append(counters) or 0)

        result = transport.perform()
        transport.close()

        assert result.ok
        assert transport.get_status_code() == 200
        assert lines[0].startswith(b"HTTP/1.1 200")
        assert lines[-1] == b"\r\n"
        assert b"Content-Type: text/plain\r\n" in lines
        assert b"".join(chunks) == b"Hello, World!"
        assert ticks[-1][0] == 13
        assert ticks[-1][1] == 13

    def test_short_write_aborts(self, http_server, registry) -> None:
        """Test a byte sink consuming less than offered fails the transfer."""
        transport = H11Transport()
        transport.configure(f"{http_server}/hello", RequestOptions.parse(None, registry=registry))
        transport.set_byte_sink(lambda chunk: 0)

        result = transport.perform()

        assert not result.ok
        assert result.message == "Failure writing output to destination"

    def test_unconfigured(self) -> None:
        """Test perform before configure fails cleanly."""
        assert not H11Transport().perform().ok


class TestH11TransportRequests:
    """Test complete requests through the engine."""

    def test_get(self, http_server, registry) -> None:
        """Test a simple GET."""
        response = request(f"{http_server}/hello", registry=registry)

        assert response.status_code == 200
        assert response.body == b"Hello, World!"
        assert response.get_header("content-type") == "text/plain"

    def test_not_found_is_not_an_error(self, http_server, registry) -> None:
        """Test HTTP error statuses are ordinary responses."""
        response = request(f"{http_server}/missing", registry=registry)
        assert response.status_code == 404
        assert response.body == b"not found"

    def test_duplicate_headers(self, http_server, registry) -> None:
        """Test repeated response headers are all kept."""
        response = request(f"{http_server}/cookies", registry=registry)
        assert response.headers.get_all("Set-Cookie") == ["a=1", "b=2"]

    def test_large_body(self, http_server, registry) -> None:
        """Test a body spanning many reads."""
        with async_request(f"{http_server}/large", registry=registry) as unit:
            response = unit.response()
            progress = unit.progress()

        assert response.body == b"x" * 200_000
        assert progress.downloaded == 200_000
        assert progress.download_total == 200_000

    def test_post_body(self, http_server, registry) -> None:
        """Test the request body reaches the server."""
        response = request(
            f"{http_server}/echo",
            {"method": "POST", "body": "payload"},
            registry=registry,
        )
        assert response.status_code == 201
        assert response.body == b"POST payload"

    def test_custom_headers(self, http_server, registry) -> None:
        """Test extra request headers are sent."""
        response = request(
            f"{http_server}/headers",
            {"headers": {"X-Test": "1", "Accept": "text/plain"}},
            registry=registry,
        )
        lines = response.text.split("\n")

        assert "X-Test: 1" in lines
        assert "Accept: text/plain" in lines
        assert "Accept: */*" not in lines
        assert any(line.startswith("User-Agent: easy_http_core/") for line in lines)


class TestH11TransportRedirects:
    """Test redirect handling."""

    def test_redirect_not_followed(self, http_server, registry) -> None:
        """Test redirects are returned as-is by default."""
        response = request(f"{http_server}/redirect", registry=registry)

        assert response.status_code == 302
        assert response.body == b"moved"
        assert response.get_header("Location") == "/hello"

    def test_redirect_followed(self, http_server, registry) -> None:
        """Test only the final hop contributes body and headers."""
        response = request(
            f"{http_server}/redirect",
            {"follow_redirects": True},
            registry=registry,
        )

        assert response.status_code == 200
        assert response.body == b"Hello, World!"
        assert response.get_header("content-length") == "13"
        assert response.get_header("content-type") == "text/plain"
        assert response.headers.get_all("Content-Length") == ["13"]
        assert "Location" not in response.headers

    def test_redirect_limit(self, http_server, registry) -> None:
        """Test a redirect loop stops at max_redirects."""
        with pytest.raises(TransportFailureError) as exc_info:
            request(
                f"{http_server}/loop",
                {"follow_redirects": True, "max_redirects": 3},
                registry=registry,
            )
        assert exc_info.value.transport_message.startswith(TOO_MANY_REDIRECTS)

    def test_see_other_switches_to_get(self, http_server, registry) -> None:
        """Test a 303 after POST is followed with GET."""
        response = request(
            f"{http_server}/see-other",
            {"method": "POST", "body": b"data", "follow_redirects": True},
            registry=registry,
        )
        assert response.status_code == 200
        assert response.body == b"Hello, World!"


class TestH11TransportFailures:
    """Test failures and cancellation."""

    def test_timeout(self, http_server, registry) -> None:
        """Test a silent server hits the request timeout."""
        started = time.monotonic()
        with pytest.raises(TransportFailureError) as exc_info:
            request(
                f"{http_server}/slow",
                {"timeout": 0.3},
                transport_factory=_transport_factory,
                registry=registry,
            )

        assert exc_info.value.transport_message == TIMED_OUT
        assert time.monotonic() - started < 5

    def test_connection_refused(self, closed_port, registry) -> None:
        """Test an unreachable server is a transport failure."""
        with pytest.raises(TransportFailureError, match="Couldn't connect to server"):
            request(f"http://127.0.0.1:{closed_port}/", registry=registry)

    def test_unsupported_scheme(self, registry) -> None:
        """Test URLs the transport cannot speak are rejected."""
        with pytest.raises(TransportFailureError, match="Unsupported URL scheme"):
            request("ftp://127.0.0.1/file", registry=registry)

    def test_cancel_silent_server(self, http_server, registry) -> None:
        """Test cancelling while the server sends nothing."""
        with async_request(
            f"{http_server}/slow",
            transport_factory=_transport_factory,
            registry=registry,
        ) as unit:
            time.sleep(0.2)
            started = time.monotonic()
            unit.cancel()

            with pytest.raises(CancelledError):
                unit.response()
            assert time.monotonic() - started < 2

    def test_dispose_silent_server_is_bounded(self, http_server, registry) -> None:
        """Test dispose joins a worker waiting on a silent server."""
        unit = async_request(
            f"{http_server}/slow",
            transport_factory=_transport_factory,
            registry=registry,
        )
        time.sleep(0.2)

        started = time.monotonic()
        unit.dispose()

        assert time.monotonic() - started < 2
        assert unit.wait(0)


@pytest.fixture
def saturated_listener():
    """
    A listening port whose accept backlog is already full.

    New connections to it stay pending (or connect and never get an
    answer), so a request against it never completes on its own.
    """
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(0)
    address = listener.getsockname()

    fillers = []
    for _ in range(8):
        filler = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        filler.setblocking(False)
        filler.connect_ex(address)
        fillers.append(filler)

    yield address[1]

    for filler in fillers:
        filler.close()
    listener.close()


class TestH11TransportConnect:
    """Test the connect phase."""

    def test_connect_ticks_progress(self, closed_port, registry) -> None:
        """Test a pending connect emits progress ticks that can abort it."""
        transport = H11Transport(poll_interval=0.01)
        transport.configure(f"http://127.0.0.1:{closed_port}/", RequestOptions.parse(None, registry=registry))
        ticks = []

        def on_progress(*counters):
            ticks.append(counters)
            return len(ticks) >= 3

        transport.set_progress_sink(on_progress)

        with patch.object(socket.socket, "connect_ex", return_value=errno.EINPROGRESS):
            with patch("easy_http_core.transport.h11_transport.select.select", return_value=([], [], [])):
                result = transport.perform()

        assert result == TransportResult.failure(ABORTED_BY_CALLBACK)
        assert ticks == [(0, 0, 0, 0)] * 3
        assert transport.get_status_code() == 0

    def test_connect_timeout(self, closed_port, registry) -> None:
        """Test a connect that never completes hits the connect timeout."""
        transport = H11Transport(poll_interval=0.01, connect_timeout=0.1)
        transport.configure(f"http://127.0.0.1:{closed_port}/", RequestOptions.parse(None, registry=registry))

        with patch.object(socket.socket, "connect_ex", return_value=errno.EINPROGRESS):
            with patch("easy_http_core.transport.h11_transport.select.select", return_value=([], [], [])):
                result = transport.perform()

        assert result == TransportResult.failure(TIMED_OUT)

    def test_dispose_while_connecting_is_bounded(self, saturated_listener, registry) -> None:
        """Test dispose joins a worker stuck connecting."""
        unit = async_request(
            f"http://127.0.0.1:{saturated_listener}/",
            {"timeout": 8},
            transport_factory=_transport_factory,
            registry=registry,
        )
        time.sleep(0.3)
        unit.cancel()

        started = time.monotonic()
        unit.dispose()

        assert time.monotonic() - started < 2
        assert unit.state is RequestState.CANCELLED
        assert unit.error is None
