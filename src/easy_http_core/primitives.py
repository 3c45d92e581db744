"""
Result primitives for easy_http_core.

``Response`` is the final outcome of a request and ``Progress`` is a
point-in-time snapshot of transfer counters. Both are immutable so
they can be handed across threads freely.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, NamedTuple, Optional

from .headers import Headers

StatusCode = int


class Progress(NamedTuple):
    """Transfer counters; totals are 0 while unknown."""
    downloaded: int = 0
    download_total: int = 0
    uploaded: int = 0
    upload_total: int = 0


@dataclass(frozen=True)
class Response:
    """
    Immutable HTTP response representation.

    ``body`` is ``None`` when the response was written to an output
    file instead of being buffered. A response unpacks like the
    ``(body, status_code, headers)`` triple::

        body, status, headers = response
    """

    body: Optional[bytes]
    status_code: StatusCode
    headers: Headers = field(default_factory=Headers)

    def __post_init__(self) -> None:
        """Validate response data after initialization."""
        if not isinstance(self.status_code, int):
            raise ValueError("status_code must be int")

        if self.body is not None and not isinstance(self.body, bytes):
            raise ValueError("body must be bytes or None")

        if not isinstance(self.headers, Headers):
            raise ValueError("headers must be a Headers collection")

    def __iter__(self) -> Iterator[Any]:
        return iter((self.body, self.status_code, self.headers))

    @property
    def text(self) -> str:
        """The body decoded as UTF-8 (empty when the body was not buffered)."""
        if self.body is None:
            return ""
        return self.body.decode("utf-8", errors="replace")

    def get_header(self, name: str) -> Optional[str]:
        """Get a header value by name (case-insensitive)."""
        return self.headers.get(name)

    def has_header(self, name: str) -> bool:
        """Check if a header exists (case-insensitive)."""
        return self.get_header(name) is not None
