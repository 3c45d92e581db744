"""
Callback handles and the callback bridge for easy_http_core.

User callbacks never travel through the engine as plain functions.
They are registered with a ``CallbackRegistry`` (the host side), which
hands back an opaque ``CallbackHandle``. The engine only passes handles
back to the registry for invocation.

The ``CallbackBridge`` adapts transport events ("bytes arrived",
"header line arrived", "progress updated") into writes on a request's
shared state, or into invocations of the registered callbacks. Every
bridge entry point runs on the request's worker and is a cancellation
checkpoint.
"""

import itertools
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, NewType, Optional, Tuple

from .exceptions import CallbackError, OutOfMemoryError

if TYPE_CHECKING:
    from .async_request import AsyncRequest  # Forward reference

logger = logging.getLogger(__name__)

CallbackHandle = NewType("CallbackHandle", int)


class CallbackRegistry:
    """
    Host-side table of registered callbacks.

    Handles are released exactly once; releasing an unknown or already
    released handle raises ``KeyError``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: Dict[CallbackHandle, Callable[..., Any]] = {}
        self._counter = itertools.count(1)

    def register(self, callback: Callable[..., Any]) -> CallbackHandle:
        """Register a callable and return its handle."""
        if not callable(callback):
            raise TypeError(f"callback must be callable, got {type(callback).__name__}")

        with self._lock:
            handle = CallbackHandle(next(self._counter))
            self._callbacks[handle] = callback
        return handle

    def invoke(self, handle: CallbackHandle, *args: Any) -> Any:
        """
        Invoke the callback behind a handle.

        The registry lock is not held while the callback runs.

        Raises:
            KeyError: If the handle is not registered.
        """
        with self._lock:
            callback = self._callbacks.get(handle)
        if callback is None:
            raise KeyError(f"unknown callback handle {handle}")
        return callback(*args)

    def release(self, handle: CallbackHandle) -> None:
        """Drop a registered callback."""
        with self._lock:
            if handle not in self._callbacks:
                raise KeyError(f"unknown callback handle {handle}")
            del self._callbacks[handle]

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._callbacks

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)


default_registry = CallbackRegistry()


class WorkerCancelled(Exception):
    """Unwinds a worker that observed its cancellation flag."""


class CallbackBridge:
    """
    Connects transport sinks to one request's shared state.

    Shared state is only touched while holding the request's mutex.
    User callbacks are invoked without the mutex, so they may query
    the request (``progress()``, ``data()``) without deadlocking.
    """

    def __init__(self, request: "AsyncRequest") -> None:
        self._request = request
        self._options = request.options

    def _checkpoint_locked(self) -> None:
        if self._request._cancelled:
            raise WorkerCancelled()

    def checkpoint(self) -> None:
        """Stop the worker if the request has been cancelled."""
        with self._request._lock:
            self._checkpoint_locked()

    def on_bytes(self, chunk: bytes) -> int:
        """
        Byte sink: accept one chunk of the response body.

        Returns:
            The number of bytes consumed. Anything other than
            ``len(chunk)`` makes the transport abort the transfer.
        """
        self.checkpoint()
        size = len(chunk)

        if self._options.on_data is not None:
            try:
                verdict = self._options.registry.invoke(self._options.on_data, chunk)
            except Exception as e:
                self._request._fail(CallbackError("data callback raised", cause=e))
                return 0

            resolved = self._resolve_verdict(chunk, verdict)
            if resolved is None:
                return 0
            chunk, size = resolved

        with self._request._lock:
            self._checkpoint_locked()
            try:
                written = self._request._sink_locked(chunk)
            except OSError as e:
                error: Exception = CallbackError("failed writing to output file", cause=e)
            else:
                if written == len(chunk):
                    return size
                error = OutOfMemoryError(f"failed to buffer {len(chunk)} bytes")

        self._request._fail(error)
        return 0

    def _resolve_verdict(self, chunk: bytes, verdict: Any) -> Optional[Tuple[bytes, int]]:
        """
        Interpret what a data callback returned.

        ``None``/``True`` keep the chunk, ``bytes``/``str`` substitute it,
        ``False`` rejects it, and an ``int`` reports how many bytes the
        callback consumed itself (nothing is stored).
        """
        if verdict is None or verdict is True:
            return chunk, len(chunk)
        if verdict is False:
            logger.debug("Data callback rejected a chunk; aborting transfer")
            return None
        if isinstance(verdict, (bytes, bytearray)):
            return bytes(verdict), len(chunk)
        if isinstance(verdict, str):
            return verdict.encode("utf-8"), len(chunk)
        if isinstance(verdict, int):
            return b"", verdict

        self._request._fail(CallbackError(
            f"data callback returned unsupported value of type {type(verdict).__name__}"
        ))
        return None

    def on_header(self, line: bytes) -> int:
        """Header sink: parse one raw header line into the response headers."""
        self.checkpoint()
        with self._request._lock:
            self._checkpoint_locked()
            try:
                return self._request._headers.parse_line(line)
            except OutOfMemoryError as e:
                error = e

        self._request._fail(error)
        return 0

    def on_progress(
        self,
        downloaded: int,
        download_total: int,
        uploaded: int,
        upload_total: int,
    ) -> int:
        """
        Progress sink: record counters and forward to the user callback.

        Returns:
            Non-zero to ask the transport to abort.
        """
        with self._request._lock:
            self._checkpoint_locked()
            self._request._record_progress_locked(
                downloaded, download_total, uploaded, upload_total
            )

        if self._options.on_progress is None:
            return 0

        try:
            verdict = self._options.registry.invoke(
                self._options.on_progress,
                downloaded,
                download_total,
                uploaded,
                upload_total,
            )
        except Exception as e:
            self._request._fail(CallbackError("progress callback raised", cause=e))
            return 1

        if verdict:
            logger.debug("Progress callback requested abort")
            return 1
        return 0
