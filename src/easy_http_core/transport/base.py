"""
Transport interface for easy_http_core.

A transport is the collaborator that actually talks to the network.
The request engine drives it through a narrow contract: configure it,
register sinks for body bytes, raw header lines and progress ticks,
perform the transfer and read the status code.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, NamedTuple

from typing_extensions import TypeAlias

if TYPE_CHECKING:
    from ..options import RequestOptions

# Returns the number of bytes consumed; a short count aborts the transfer.
ByteSink: TypeAlias = Callable[[bytes], int]
HeaderSink: TypeAlias = Callable[[bytes], int]
# (downloaded, download_total, uploaded, upload_total) -> non-zero to abort.
ProgressSink: TypeAlias = Callable[[int, int, int, int], int]

WRITE_ERROR = "Failure writing output to destination"
HEADER_WRITE_ERROR = "Failure writing header to destination"
ABORTED_BY_CALLBACK = "Operation was aborted by an application callback"
TOO_MANY_REDIRECTS = "Number of redirects hit maximum amount"
TIMED_OUT = "Timeout was reached"


class TransportResult(NamedTuple):
    """Outcome of ``Transport.perform``."""
    ok: bool
    message: str = ""

    @classmethod
    def success(cls) -> "TransportResult":
        return cls(True)

    @classmethod
    def failure(cls, message: str) -> "TransportResult":
        return cls(False, message)


def _discard_bytes(chunk: bytes) -> int:
    return len(chunk)


def _discard_progress(downloaded: int, download_total: int, uploaded: int, upload_total: int) -> int:
    return 0


class Transport(ABC):
    """
    Interface for transport implementations.

    ``perform`` reports network and protocol failures through its
    ``TransportResult`` instead of raising. Exceptions raised by a sink
    are not caught by the transport; they unwind through ``perform``
    to the caller.
    """

    def __init__(self) -> None:
        self._byte_sink: ByteSink = _discard_bytes
        self._header_sink: HeaderSink = _discard_bytes
        self._progress_sink: ProgressSink = _discard_progress

    @abstractmethod
    def configure(self, url: str, options: "RequestOptions") -> None:
        """
        Apply the target URL and request options.

        Args:
            url: The URL to request
            options: Parsed request options
        """
        pass

    def set_byte_sink(self, sink: ByteSink) -> None:
        """Register the sink that receives response body chunks."""
        self._byte_sink = sink

    def set_header_sink(self, sink: HeaderSink) -> None:
        """Register the sink that receives raw response header lines."""
        self._header_sink = sink

    def set_progress_sink(self, sink: ProgressSink) -> None:
        """Register the sink that receives progress ticks."""
        self._progress_sink = sink

    @abstractmethod
    def perform(self) -> TransportResult:
        """
        Run the transfer to completion.

        Returns:
            The transfer outcome
        """
        pass

    @abstractmethod
    def get_status_code(self) -> int:
        """Return the status code of the last response (0 if none)."""
        pass

    def close(self) -> None:
        """Release transport resources."""
        pass
