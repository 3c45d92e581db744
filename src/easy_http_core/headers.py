"""
Response header collection for easy_http_core.

Headers are kept in arrival order and duplicates are preserved, so two
``Set-Cookie`` lines stay two entries. The collection doubles as the
sink for raw header lines streamed by a transport.
"""

from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple, Union

from .exceptions import OutOfMemoryError


class HeaderEntry(NamedTuple):
    """A single header as received on the wire."""
    key: str
    value: str


class Headers:
    """
    Ordered, duplicate-preserving list of header entries.

    Lookups by name are case-insensitive; storage keeps the casing the
    server sent.
    """

    def __init__(self, entries: Optional[Iterable[Tuple[str, str]]] = None) -> None:
        self._entries: List[HeaderEntry] = []
        if entries is not None:
            for key, value in entries:
                self.append(key, value)

    def append(self, key: str, value: str) -> "Headers":
        """
        Append a header entry.

        Args:
            key: Header name
            value: Header value

        Returns:
            The collection itself

        Raises:
            OutOfMemoryError: If the entry could not be stored. The
                collection is left unchanged.
        """
        try:
            self._entries.append(HeaderEntry(key, value))
        except MemoryError as e:
            raise OutOfMemoryError(f"failed to store header {key!r}", cause=e) from e
        return self

    def parse_line(self, raw: Union[bytes, str]) -> int:
        """
        Parse one raw header line and append it.

        The line is split at the first colon. Leading whitespace in the
        value and trailing CR/LF are trimmed. Lines without a colon
        (status lines, the blank terminator) are skipped.

        Args:
            raw: The raw line as delivered by the transport

        Returns:
            The full length of ``raw``, whether or not it was stored,
            so the transport never mistakes a skipped line for a failure.

        Raises:
            OutOfMemoryError: If the entry could not be stored.
        """
        consumed = len(raw)
        line = raw.decode("latin-1") if isinstance(raw, (bytes, bytearray)) else raw

        key, sep, value = line.partition(":")
        if not sep:
            return consumed

        self.append(key, value.lstrip(" \t").rstrip("\r\n"))
        return consumed

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get the first value for a header (case-insensitive)."""
        key_lower = key.lower()
        for entry in self._entries:
            if entry.key.lower() == key_lower:
                return entry.value
        return default

    def get_all(self, key: str) -> List[str]:
        """Get every value for a header, in arrival order."""
        key_lower = key.lower()
        return [entry.value for entry in self._entries if entry.key.lower() == key_lower]

    def to_dict(self) -> Dict[str, str]:
        """Collapse into a plain dict; the last duplicate wins."""
        return {entry.key: entry.value for entry in self._entries}

    def copy(self) -> "Headers":
        """Return an independent copy of the collection."""
        return Headers(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __getitem__(self, index: int) -> HeaderEntry:
        return self._entries[index]

    def __iter__(self) -> Iterator[HeaderEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return self._entries == other._entries
        if isinstance(other, list):
            return self._entries == [HeaderEntry(*pair) for pair in other]
        return NotImplemented

    def __repr__(self) -> str:
        return f"Headers({[tuple(entry) for entry in self._entries]!r})"
