"""
easy_http_core - Threaded HTTP request engine

Issue HTTP requests synchronously or on a dedicated worker, watch
progress and partial data while they run, intercept body chunks as
they arrive and cancel in-flight requests safely.
"""

__version__ = "0.1.0"
__author__ = "Developer"
__email__ = "dev@example.com"

# Import main components for easy access
from .async_request import AsyncRequest, RequestState
from .buffer import Buffer
from .callbacks import CallbackHandle, CallbackRegistry, default_registry
from .client import arequest, async_request, request
from .exceptions import (
    AlreadyDoneError,
    CallbackError,
    CancelledError,
    HTTPCoreError,
    InvalidHeadersError,
    InvalidOptionsError,
    OutOfMemoryError,
    TransportFailureError,
    WorkerSpawnFailedError,
)
from .headers import HeaderEntry, Headers
from .options import RequestOptions
from .primitives import Progress, Response
from .transport import H11Transport, MockTransport, Transport, TransportResult

__all__ = [
    "AsyncRequest",
    "RequestState",
    "Buffer",
    "CallbackHandle",
    "CallbackRegistry",
    "default_registry",
    "arequest",
    "async_request",
    "request",
    "AlreadyDoneError",
    "CallbackError",
    "CancelledError",
    "HTTPCoreError",
    "InvalidHeadersError",
    "InvalidOptionsError",
    "OutOfMemoryError",
    "TransportFailureError",
    "WorkerSpawnFailedError",
    "HeaderEntry",
    "Headers",
    "RequestOptions",
    "Progress",
    "Response",
    "H11Transport",
    "MockTransport",
    "Transport",
    "TransportResult",
]
