"""
Custom exceptions for easy_http_core.

This module defines the exception hierarchy raised by the request
engine. Parse-time errors are raised straight to the caller; run-time
errors are recorded on the request and raised on the next query.
"""

from typing import Optional


class HTTPCoreError(Exception):
    """Base exception for all easy_http_core errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class InvalidOptionsError(HTTPCoreError):
    """Raised when request options are malformed."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Invalid options: {message}", cause)


class InvalidHeadersError(InvalidOptionsError):
    """Raised when the headers option is present but is not a mapping."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"headers {message}", cause)


class OutOfMemoryError(HTTPCoreError):
    """Raised when a buffer, header list or option could not be allocated."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Out of memory: {message}", cause)


class WorkerSpawnFailedError(HTTPCoreError):
    """Raised when the worker for an async request cannot be started."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Failed to spawn worker: {message}", cause)


class TransportFailureError(HTTPCoreError):
    """Raised when the transport reports a non-success result."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Transport failure: {message}", cause)
        self.transport_message = message


class CancelledError(HTTPCoreError):
    """Raised when a request stopped because it was cancelled."""

    def __init__(self, message: str = "request was cancelled") -> None:
        super().__init__(message)


class AlreadyDoneError(HTTPCoreError):
    """Raised by operations that only make sense before completion."""

    def __init__(self, message: str = "request is already done") -> None:
        super().__init__(message)


class CallbackError(HTTPCoreError):
    """Raised when a user data or progress callback fails."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Callback error: {message}", cause)
