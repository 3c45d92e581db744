"""
Growable response buffer for easy_http_core.

The buffer is an append-only byte accumulator. Its capacity doubles
whenever an append would overflow it, so appends are amortized O(1).
The storage always carries a NUL byte right after the data so the
contents can be handed to code expecting a C string.
"""

import logging
from typing import Union

from .exceptions import OutOfMemoryError

logger = logging.getLogger(__name__)

BytesLike = Union[bytes, bytearray, memoryview]


class Buffer:
    """
    Append-only byte accumulator with amortized-doubling growth.

    A buffer is not thread-safe on its own. Request units guard it
    with their mutex.
    """

    INITIAL_CAPACITY = 1

    def __init__(self) -> None:
        self._capacity = self.INITIAL_CAPACITY
        self._length = 0
        # One extra byte for the terminator.
        self._storage = bytearray(self._capacity + 1)

    def append(self, data: BytesLike) -> "Buffer":
        """
        Append bytes to the buffer.

        Args:
            data: Bytes to append. Empty input is accepted.

        Returns:
            The buffer itself, so calls can be chained.

        Raises:
            OutOfMemoryError: If the storage could not be grown. The
                buffer is left exactly as it was before the call.
        """
        view = memoryview(data).cast("B")
        size = view.nbytes
        new_length = self._length + size

        if new_length > self._capacity:
            capacity = self._capacity
            while capacity < new_length:
                capacity *= 2
            self._reallocate(capacity)

        self._storage[self._length:new_length] = view
        self._length = new_length
        self._storage[new_length] = 0
        return self

    def write(self, data: BytesLike) -> int:
        """
        Sink form of ``append``.

        Returns:
            The number of bytes consumed: all of ``data``, or 0 when the
            storage could not be grown (the buffer is left unchanged).
        """
        try:
            self.append(data)
        except OutOfMemoryError as e:
            logger.warning(f"Buffer write rejected: {e}")
            return 0
        return memoryview(data).nbytes

    def _reallocate(self, capacity: int) -> None:
        try:
            storage = bytearray(capacity + 1)
        except MemoryError as e:
            logger.warning(f"Buffer growth to {capacity} bytes failed")
            raise OutOfMemoryError(
                f"failed to grow buffer to {capacity} bytes", cause=e
            ) from e

        storage[:self._length] = memoryview(self._storage)[:self._length]
        self._storage = storage
        self._capacity = capacity

    def getvalue(self) -> bytes:
        """Return a copy of the accumulated bytes."""
        return bytes(memoryview(self._storage)[:self._length])

    def snapshot(self) -> bytes:
        """Return an immutable copy of the data appended so far."""
        return self.getvalue()

    def as_cstring(self) -> bytes:
        """Return the accumulated bytes including the trailing NUL."""
        return bytes(memoryview(self._storage)[:self._length + 1])

    @property
    def length(self) -> int:
        """Number of bytes appended so far."""
        return self._length

    @property
    def capacity(self) -> int:
        """Number of bytes the buffer can hold before growing."""
        return self._capacity

    def __len__(self) -> int:
        return self._length

    def __bytes__(self) -> bytes:
        return self.getvalue()

    def __repr__(self) -> str:
        return f"Buffer(length={self._length}, capacity={self._capacity})"
