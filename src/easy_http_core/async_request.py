"""
Asynchronous request execution for easy_http_core.

This module implements the AsyncRequest unit: one in-flight request
running on its own worker, with all shared state (buffer, headers,
status, progress, error and the ``done``/``cancelled`` flags) guarded
by a single mutex.

Cancellation is cooperative. ``cancel()`` only sets a flag; the worker
observes it at its next checkpoint (every sink invocation) and stops.
``dispose()`` always joins the worker before releasing anything the
worker might still touch.
"""

import asyncio
import concurrent.futures
import itertools
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Union

from typing_extensions import TypeAlias

from .buffer import Buffer
from .callbacks import CallbackBridge, CallbackRegistry, WorkerCancelled
from .exceptions import (
    AlreadyDoneError,
    CancelledError,
    HTTPCoreError,
    TransportFailureError,
    WorkerSpawnFailedError,
)
from .headers import Headers
from .options import RequestOptions
from .primitives import Progress, Response
from .transport import H11Transport, Transport

logger = logging.getLogger(__name__)

TransportFactory: TypeAlias = Callable[[], Transport]

_request_ids = itertools.count(1)


class RequestState(Enum):
    """States of an async request."""
    RUNNING = "running"       # Worker is performing the transfer
    DONE = "done"             # Transfer finished successfully
    ERRORED = "errored"       # An error was recorded
    CANCELLED = "cancelled"   # Worker stopped after observing cancellation


class WorkerExit(Enum):
    """Reason a worker returned."""
    OK = 0
    CANCELLED = 0xA
    ERROR = 0xB


class AsyncRequest:
    """
    A single HTTP request running on a dedicated worker.

    Create instances with ``AsyncRequest.start``. The unit exclusively
    owns its options, buffer and headers; ``dispose()`` (or leaving a
    ``with`` block) is the single teardown path.
    """

    def __init__(
        self,
        url: str,
        options: RequestOptions,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        """
        Initialize the unit without starting it.

        Args:
            url: The URL to request
            options: Parsed options; ownership passes to the unit
            transport_factory: Callable returning a fresh Transport
        """
        self._id = next(_request_ids)
        self._url = url
        self._options = options
        self._transport_factory = transport_factory or H11Transport

        self._lock = threading.Lock()
        self._buffer: Optional[Buffer] = None if options.output_file is not None else Buffer()
        self._headers = Headers()
        self._status_code = 0
        self._progress = Progress()
        self._error: Optional[HTTPCoreError] = None
        self._cancelled = False
        self._done = False
        self._disposed = False
        self._response: Optional[Response] = None

        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._future: Optional["concurrent.futures.Future[WorkerExit]"] = None

        # Metrics
        self._bytes_received = 0
        self._started_at: Optional[float] = None
        self._finished_at: Optional[float] = None

    @classmethod
    def start(
        cls,
        url: str,
        options: Union[RequestOptions, Mapping[str, Any], None] = None,
        transport_factory: Optional[TransportFactory] = None,
        registry: Optional[CallbackRegistry] = None,
    ) -> "AsyncRequest":
        """
        Parse options and start a request on a new worker.

        Args:
            url: The URL to request
            options: Raw option mapping, or already parsed RequestOptions
            transport_factory: Callable returning a fresh Transport
                (defaults to H11Transport)
            registry: Callback registry used when parsing options

        Returns:
            The running request

        Raises:
            InvalidOptionsError: If the options are malformed
            WorkerSpawnFailedError: If the worker could not be started
        """
        if not isinstance(options, RequestOptions):
            options = RequestOptions.parse(options, registry=registry)

        request = cls(url, options, transport_factory)
        request._spawn()
        return request

    def _spawn(self) -> None:
        self._started_at = time.monotonic()
        try:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix=f"easy-http-{self._id}",
            )
            self._future = self._executor.submit(self._run)
        except RuntimeError as e:
            logger.error(f"Request {self._id}: failed to start worker: {e}")
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None
            self._options.close()
            self._buffer = None
            raise WorkerSpawnFailedError(str(e), cause=e) from e

        logger.debug(f"Request {self._id}: started {self._options.method} {self._url}")

    # Worker side

    def _run(self) -> WorkerExit:
        try:
            return self._perform()
        except Exception as e:
            return self._fail(HTTPCoreError(f"worker failed: {e}", cause=e))
        finally:
            with self._lock:
                self._finished_at = time.monotonic()

    def _perform(self) -> WorkerExit:
        try:
            transport = self._transport_factory()
        except Exception as e:
            return self._fail(TransportFailureError("failed to create transport handle", cause=e))

        bridge = CallbackBridge(self)
        try:
            transport.configure(self._url, self._options)
            transport.set_byte_sink(bridge.on_bytes)
            transport.set_header_sink(bridge.on_header)
            transport.set_progress_sink(bridge.on_progress)

            result = transport.perform()
            if not result.ok:
                return self._fail(TransportFailureError(result.message))

            status_code = transport.get_status_code()
            with self._lock:
                if self._cancelled:
                    return WorkerExit.CANCELLED
                self._status_code = status_code
                self._done = True

            logger.debug(f"Request {self._id}: done with status {status_code}")
            return WorkerExit.OK

        except WorkerCancelled:
            logger.debug(f"Request {self._id}: worker observed cancellation")
            return WorkerExit.CANCELLED

        finally:
            try:
                transport.close()
            except Exception as e:
                logger.warning(f"Request {self._id}: error closing transport: {e}")

    def _fail(self, error: HTTPCoreError) -> WorkerExit:
        """Record an error unless cancellation or another error came first."""
        with self._lock:
            if self._error is None and self._cancelled:
                logger.warning(f"Request {self._id}: suppressed error after cancellation: {error}")
                return WorkerExit.CANCELLED
            if self._error is None:
                self._error = error
                logger.error(f"Request {self._id} failed: {error}")
        return WorkerExit.ERROR

    def _sink_locked(self, data: bytes) -> int:
        """Store accepted body bytes and return how many were stored. Caller holds the lock."""
        if self._options.output_file is not None:
            if data:
                self._options.output_file.write(data)
            written = len(data)
        else:
            written = self._buffer.write(data)
        self._bytes_received += written
        return written

    def _record_progress_locked(
        self,
        downloaded: int,
        download_total: int,
        uploaded: int,
        upload_total: int,
    ) -> None:
        self._progress = Progress(downloaded, download_total, uploaded, upload_total)

    # Caller side

    def is_done(self) -> bool:
        """Check whether the transfer completed successfully."""
        with self._lock:
            return self._done

    def progress(self) -> Progress:
        """Snapshot of the latest transfer counters (zeros until the first tick)."""
        with self._lock:
            return self._progress

    def data(self) -> Optional[bytes]:
        """
        Snapshot of the body received so far.

        Returns:
            The buffered bytes, or None when no buffer exists (output
            redirected to a file, or the request was disposed)
        """
        with self._lock:
            if self._buffer is None:
                return None
            return self._buffer.snapshot()

    def headers(self) -> Headers:
        """Snapshot of the response headers received so far."""
        with self._lock:
            return self._headers.copy()

    def cancel(self) -> bool:
        """
        Ask the worker to stop at its next checkpoint.

        Does not wait for the worker.

        Returns:
            True

        Raises:
            AlreadyDoneError: If the request already reached a terminal state
        """
        with self._lock:
            if self._state_locked() is not RequestState.RUNNING:
                raise AlreadyDoneError()
            self._cancelled = True

        logger.debug(f"Request {self._id}: cancellation requested")
        return True

    def response(self) -> Response:
        """
        Get the final response, waiting for the worker if needed.

        Repeated calls after completion return the same Response
        without waiting again.

        Returns:
            The response

        Raises:
            CancelledError: If the worker stopped because of cancellation
            HTTPCoreError: The error recorded by the worker
        """
        with self._lock:
            if self._error is not None:
                raise self._error
            if self._done:
                return self._response_locked()

        # The lock must be free while joining so the worker can record
        # its own completion.
        exit_reason = self._join()

        with self._lock:
            if exit_reason is WorkerExit.CANCELLED:
                raise CancelledError()
            if exit_reason is WorkerExit.ERROR:
                raise self._error
            return self._response_locked()

    async def aresponse(self) -> Response:
        """Await the final response without blocking the event loop."""
        await asyncio.wrap_future(self._future)
        return self.response()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the worker to exit.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if the worker has exited
        """
        done, _ = concurrent.futures.wait([self._future], timeout=timeout)
        return bool(done)

    def dispose(self) -> None:
        """
        Cancel, join the worker and release options, buffer and headers.

        Safe to call more than once and after the worker failed.
        """
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._cancelled = True

        if self._executor is not None:
            self._executor.shutdown(wait=True)

        self._options.close()
        with self._lock:
            self._buffer = None
            self._headers = Headers()

        logger.debug(f"Request {self._id}: disposed")

    def _join(self) -> WorkerExit:
        return self._future.result()

    def _response_locked(self) -> Response:
        if self._response is None:
            if self._disposed:
                raise HTTPCoreError("request has been disposed")
            body = self._buffer.getvalue() if self._buffer is not None else None
            self._response = Response(
                body=body,
                status_code=self._status_code,
                headers=self._headers.copy(),
            )
        return self._response

    def _state_locked(self) -> RequestState:
        if self._done:
            return RequestState.DONE
        if self._error is not None:
            return RequestState.ERRORED
        if self._cancelled and self._future is not None and self._future.done():
            return RequestState.CANCELLED
        return RequestState.RUNNING

    @property
    def state(self) -> RequestState:
        """Current state of the request."""
        with self._lock:
            return self._state_locked()

    @property
    def error(self) -> Optional[HTTPCoreError]:
        """The recorded error, if any."""
        with self._lock:
            return self._error

    @property
    def url(self) -> str:
        """The requested URL."""
        return self._url

    @property
    def options(self) -> RequestOptions:
        """The options this request runs with."""
        return self._options

    @property
    def metrics(self) -> Dict[str, Any]:
        """
        Get request metrics.

        Returns:
            Dictionary with request metrics
        """
        with self._lock:
            end = self._finished_at if self._finished_at is not None else time.monotonic()
            return {
                "id": self._id,
                "state": self._state_locked().value,
                "bytes_received": self._bytes_received,
                "header_count": len(self._headers),
                "status_code": self._status_code,
                "elapsed": end - self._started_at if self._started_at is not None else 0.0,
            }

    def __enter__(self) -> "AsyncRequest":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"AsyncRequest(id={self._id}, url={self._url!r}, state={self.state.value})"
