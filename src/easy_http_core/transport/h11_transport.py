"""
HTTP/1.1 transport for easy_http_core.

This module implements a blocking transport on top of plain sockets
and the ``h11`` protocol state machine. It is meant to run on a request
worker: body chunks, raw header lines and progress ticks are pushed to
the registered sinks as they arrive.
"""

import errno
import logging
import os
import select
import socket
import ssl
import time
from typing import List, Optional, Tuple
from urllib.parse import urljoin

import h11

from .base import (
    ABORTED_BY_CALLBACK,
    HEADER_WRITE_ERROR,
    TIMED_OUT,
    TOO_MANY_REDIRECTS,
    WRITE_ERROR,
    Transport,
    TransportResult,
)
from .utils import (
    REDIRECT_STATUSES,
    configure_socket,
    create_ssl_context,
    format_host_header,
    parse_url,
    remaining_time,
)
from ..options import UNLIMITED_REDIRECTS, RequestOptions

logger = logging.getLogger(__name__)

_CONNECT_PENDING = frozenset({errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY})


class _TransferAborted(Exception):
    """Stops a transfer with a transport-level failure message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class H11Transport(Transport):
    """
    Blocking HTTP/1.1 transport.

    While waiting for the server the transport wakes up every
    ``poll_interval`` seconds and emits a progress tick, so a worker
    blocked on a silent server still reaches its cancellation
    checkpoint.
    """

    # Default configuration
    DEFAULT_READ_SIZE = 65536  # 64KB chunks
    DEFAULT_POLL_INTERVAL = 0.1  # seconds between idle progress ticks
    DEFAULT_CONNECT_TIMEOUT = 30.0  # 30 seconds
    DEFAULT_USER_AGENT = "easy_http_core/0.1.0"

    def __init__(
        self,
        read_size: Optional[int] = None,
        poll_interval: Optional[float] = None,
        connect_timeout: Optional[float] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
        user_agent: Optional[str] = None,
        verify_tls: bool = True,
    ) -> None:
        """
        Initialize the transport.

        Args:
            read_size: Maximum bytes per socket read
            poll_interval: Idle wait before emitting a progress tick
            connect_timeout: Timeout for establishing a connection
            ssl_context: TLS context for https URLs
            user_agent: Value of the default User-Agent header
            verify_tls: Whether to verify server certificates when no
                ssl_context is given
        """
        super().__init__()
        self._read_size = read_size or self.DEFAULT_READ_SIZE
        self._poll_interval = poll_interval or self.DEFAULT_POLL_INTERVAL
        self._connect_timeout = connect_timeout or self.DEFAULT_CONNECT_TIMEOUT
        self._ssl_context = ssl_context
        self._user_agent = user_agent or self.DEFAULT_USER_AGENT
        self._verify_tls = verify_tls

        self._url: Optional[str] = None
        self._options: Optional[RequestOptions] = None
        self._sock: Optional[socket.socket] = None
        self._status_code = 0

        # Progress counters for the current hop
        self._downloaded = 0
        self._download_total = 0
        self._uploaded = 0
        self._upload_total = 0
        self._redirects_followed = 0

    def configure(self, url: str, options: RequestOptions) -> None:
        self._url = url
        self._options = options

    def perform(self) -> TransportResult:
        if self._url is None or self._options is None:
            return TransportResult.failure("transport is not configured")

        options = self._options
        deadline = time.monotonic() + options.timeout if options.timeout else None
        url, method, body = self._url, options.method, options.body
        self._redirects_followed = 0

        while True:
            try:
                location = self._exchange(url, method, body, deadline)
            except _TransferAborted as e:
                logger.debug(f"{method} {url} aborted: {e.message}")
                return TransportResult.failure(e.message)
            except socket.timeout:
                return TransportResult.failure(TIMED_OUT)
            except socket.gaierror as e:
                return TransportResult.failure(f"Could not resolve host: {e}")
            except ssl.SSLError as e:
                return TransportResult.failure(f"SSL connect error: {e}")
            except OSError as e:
                return TransportResult.failure(f"Couldn't connect to server: {e}")
            except h11.ProtocolError as e:
                return TransportResult.failure(f"Protocol error: {e}")
            except ValueError as e:
                return TransportResult.failure(f"URL using bad/illegal format: {e}")
            finally:
                self._close_socket()

            logger.debug(f"{method} {url} -> {self._status_code}")
            if location is None:
                return TransportResult.success()

            self._redirects_followed += 1
            url = urljoin(url, location)
            if self._status_code == 303 or (self._status_code in (301, 302) and method == "POST"):
                method, body = "GET", None

    def get_status_code(self) -> int:
        return self._status_code

    def close(self) -> None:
        self._close_socket()

    @property
    def redirects_followed(self) -> int:
        """Number of redirects followed by the last ``perform``."""
        return self._redirects_followed

    def _exchange(
        self,
        url: str,
        method: str,
        body: Optional[bytes],
        deadline: Optional[float],
    ) -> Optional[str]:
        """
        Run one request/response cycle.

        Returns:
            The redirect location to follow, or None when this response
            is the final one
        """
        scheme, host, port, target = parse_url(url)
        self._downloaded = self._download_total = 0
        self._uploaded = self._upload_total = 0

        self._connect(scheme, host, port, deadline)
        connection = h11.Connection(our_role=h11.CLIENT)

        request = h11.Request(
            method=method,
            target=target,
            headers=self._request_headers(scheme, host, port, body),
        )
        self._send(connection, request, deadline)
        if body:
            self._upload_total = len(body)
            self._send(connection, h11.Data(data=body), deadline)
            self._uploaded = len(body)
        self._send(connection, h11.EndOfMessage(), deadline)
        self._tick()

        location = None
        while True:
            event = connection.next_event()

            if event is h11.NEED_DATA:
                connection.receive_data(self._receive(deadline))
                continue

            if isinstance(event, h11.InformationalResponse):
                continue

            if isinstance(event, h11.Response):
                self._status_code = event.status_code
                self._download_total = self._content_length(event.headers)
                location = self._redirect_location(event)
                # Only the response that is not followed reaches the header sink.
                if location is None:
                    self._emit_head(event)
                continue

            if isinstance(event, h11.Data):
                self._downloaded += len(event.data)
                # Bodies of responses we are redirected away from are dropped.
                if location is None:
                    self._emit_body(event.data)
                self._tick()
                continue

            if isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
                return location

    def _connect(self, scheme: str, host: str, port: int, deadline: Optional[float]) -> None:
        connect_deadline = time.monotonic() + self._connect_timeout
        if deadline is not None:
            if deadline <= time.monotonic():
                raise _TransferAborted(TIMED_OUT)
            connect_deadline = min(connect_deadline, deadline)

        last_error: Optional[OSError] = None
        for family, sock_type, proto, _, address in socket.getaddrinfo(
            host, port, type=socket.SOCK_STREAM
        ):
            sock = socket.socket(family, sock_type, proto)
            try:
                self._wait_connected(sock, address, connect_deadline)
            except OSError as e:
                sock.close()
                last_error = e
                continue
            except BaseException:
                sock.close()
                raise
            break
        else:
            raise last_error or OSError(f"no addresses found for {host}")

        try:
            configure_socket(sock)
            if scheme == "https":
                context = self._ssl_context or create_ssl_context(
                    alpn_protocols=["http/1.1"],
                    verify=self._verify_tls,
                )
                sock.settimeout(self._connect_timeout)
                sock = context.wrap_socket(sock, server_hostname=host)
        except BaseException:
            sock.close()
            raise

        self._sock = sock

    def _wait_connected(self, sock: socket.socket, address, deadline: float) -> None:
        """Connect without blocking, ticking progress while the handshake is pending."""
        sock.setblocking(False)
        error = sock.connect_ex(address)
        while error in _CONNECT_PENDING:
            left = deadline - time.monotonic()
            if left <= 0:
                raise socket.timeout("connect timed out")

            _, writable, _ = select.select([], [sock], [], min(self._poll_interval, left))
            if writable:
                error = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
                break
            # Idle tick doubles as a cancellation checkpoint.
            self._tick()

        if error:
            raise OSError(error, os.strerror(error))
        sock.setblocking(True)

    def _send(self, connection: h11.Connection, event: h11.Event, deadline: Optional[float]) -> None:
        data = connection.send(event)
        if not data:
            return

        left = remaining_time(deadline, time.monotonic())
        if left is not None and left <= 0:
            raise _TransferAborted(TIMED_OUT)
        self._sock.settimeout(self._connect_timeout if left is None else left)
        self._sock.sendall(data)

    def _receive(self, deadline: Optional[float]) -> bytes:
        while True:
            left = remaining_time(deadline, time.monotonic())
            if left is not None and left <= 0:
                raise _TransferAborted(TIMED_OUT)

            wait = self._poll_interval if left is None else min(self._poll_interval, left)
            self._sock.settimeout(wait)
            try:
                return self._sock.recv(self._read_size)
            except socket.timeout:
                # Idle tick doubles as a cancellation checkpoint.
                self._tick()

    def _request_headers(
        self,
        scheme: str,
        host: str,
        port: int,
        body: Optional[bytes],
    ) -> List[Tuple[str, str]]:
        custom = self._options.header_pairs()
        names = {name.lower() for name, _ in custom}

        headers = []
        if "host" not in names:
            headers.append(("Host", format_host_header(host, port, scheme)))
        if "user-agent" not in names:
            headers.append(("User-Agent", self._user_agent))
        if "accept" not in names:
            headers.append(("Accept", "*/*"))
        if body is not None and not names & {"content-length", "transfer-encoding"}:
            headers.append(("Content-Length", str(len(body))))
        headers.extend(custom)
        return headers

    def _redirect_location(self, event: h11.Response) -> Optional[str]:
        if not self._options.follow_redirects or event.status_code not in REDIRECT_STATUSES:
            return None

        location = None
        for name, value in event.headers:
            if name == b"location":
                location = value.decode("latin-1")
                break
        if location is None:
            return None

        max_redirects = self._options.max_redirects
        if max_redirects != UNLIMITED_REDIRECTS and self._redirects_followed >= max_redirects:
            raise _TransferAborted(f"{TOO_MANY_REDIRECTS} ({max_redirects} followed)")
        return location

    def _content_length(self, headers) -> int:
        for name, value in headers:
            if name == b"content-length":
                try:
                    return int(value)
                except ValueError:
                    return 0
        return 0

    def _emit_head(self, event) -> None:
        status_line = b"HTTP/%s %d %s" % (event.http_version, event.status_code, event.reason)
        lines = [status_line.rstrip() + b"\r\n"]
        lines.extend(name + b": " + value + b"\r\n" for name, value in event.headers.raw_items())
        lines.append(b"\r\n")

        for line in lines:
            if self._header_sink(line) != len(line):
                raise _TransferAborted(HEADER_WRITE_ERROR)

    def _emit_body(self, data: bytes) -> None:
        if data and self._byte_sink(data) != len(data):
            raise _TransferAborted(WRITE_ERROR)

    def _tick(self) -> None:
        if self._progress_sink(
            self._downloaded,
            self._download_total,
            self._uploaded,
            self._upload_total,
        ):
            raise _TransferAborted(ABORTED_BY_CALLBACK)

    def _close_socket(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError as e:
                logger.warning(f"Error closing socket: {e}")
            self._sock = None
