"""
Mock transport for testing.

This module provides a scripted, in-memory transport that can be used
to exercise the request engine without network I/O.
"""

import threading
import time
from typing import List, Optional, Sequence, Tuple

from .base import (
    ABORTED_BY_CALLBACK,
    HEADER_WRITE_ERROR,
    WRITE_ERROR,
    Transport,
    TransportResult,
)
from ..options import RequestOptions


class MockTransport(Transport):
    """
    Scripted transport.

    ``perform`` emits a status line, the scripted headers and the
    scripted body chunks through the registered sinks, ticking progress
    after every chunk, then reports ``failure`` if one is scripted.
    """

    def __init__(
        self,
        status_code: int = 200,
        headers: Optional[Sequence[Tuple[str, str]]] = None,
        chunks: Optional[Sequence[bytes]] = None,
        failure: Optional[str] = None,
        fail_early: bool = False,
        hang: bool = False,
        gate: Optional[threading.Event] = None,
        chunk_delay: float = 0.0,
        header_delay: float = 0.0,
        poll_interval: float = 0.01,
    ) -> None:
        """
        Initialize the mock transport.

        Args:
            status_code: Status code reported after a successful transfer
            headers: (name, value) pairs emitted as raw header lines
            chunks: Body chunks emitted through the byte sink
            failure: If set, ``perform`` reports this failure message
                after emitting the response
            fail_early: Report ``failure`` before emitting anything,
                like a refused connection
            hang: Never respond; tick progress until a sink aborts
            gate: Block (without ticking) until the event is set before
                doing anything, like a transport stuck in a read
            chunk_delay: Seconds to sleep before each chunk
            header_delay: Seconds to sleep before each header line
            poll_interval: Seconds between progress ticks while hanging
        """
        super().__init__()
        self._status_code = status_code
        self._headers = list(headers or [])
        self._chunks = list(chunks or [])
        self._failure = failure
        self._fail_early = fail_early
        self._hang = hang
        self._gate = gate
        self._chunk_delay = chunk_delay
        self._header_delay = header_delay
        self._poll_interval = poll_interval

        self.url: Optional[str] = None
        self.options: Optional[RequestOptions] = None
        self.performed = False
        self.closed = False
        self.ticks = 0

    def configure(self, url: str, options: RequestOptions) -> None:
        self.url = url
        self.options = options

    def perform(self) -> TransportResult:
        self.performed = True

        if self._gate is not None:
            self._gate.wait()

        if self._fail_early and self._failure is not None:
            return TransportResult.failure(self._failure)

        if self._hang:
            while True:
                if not self._tick(0, 0):
                    return TransportResult.failure(ABORTED_BY_CALLBACK)
                time.sleep(self._poll_interval)

        for line in self.raw_header_lines():
            if self._header_delay:
                time.sleep(self._header_delay)
            if self._header_sink(line) != len(line):
                return TransportResult.failure(HEADER_WRITE_ERROR)

        total = sum(len(chunk) for chunk in self._chunks)
        downloaded = 0
        for chunk in self._chunks:
            if self._chunk_delay:
                time.sleep(self._chunk_delay)
            if self._byte_sink(chunk) != len(chunk):
                return TransportResult.failure(WRITE_ERROR)
            downloaded += len(chunk)
            if not self._tick(downloaded, total):
                return TransportResult.failure(ABORTED_BY_CALLBACK)

        if self._failure is not None:
            return TransportResult.failure(self._failure)
        return TransportResult.success()

    def raw_header_lines(self) -> List[bytes]:
        """The raw lines this transport emits through the header sink."""
        lines = [b"HTTP/1.1 %d Mock\r\n" % self._status_code]
        lines.extend(f"{name}: {value}\r\n".encode("latin-1") for name, value in self._headers)
        lines.append(b"\r\n")
        return lines

    def get_status_code(self) -> int:
        return self._status_code if self.performed else 0

    def close(self) -> None:
        self.closed = True

    def _tick(self, downloaded: int, total: int) -> bool:
        self.ticks += 1
        return not self._progress_sink(downloaded, total, 0, 0)
