"""Pooled packet buffers with headroom for prepending protocol headers."""

from __future__ import annotations

import threading
from collections import deque

HEADER_HEADROOM = 64
"""Headroom reserved before the payload for header prepend."""

MAX_FRAME_SIZE = 1522
"""Maximum Ethernet frame: 1500 MTU + 14 header + 4 FCS + 4 VLAN."""

BUF_TOTAL = HEADER_HEADROOM + MAX_FRAME_SIZE
"""Total buffer allocation."""


class PacketBuf:
    """A packet buffer laid out as ``[headroom][payload]``.

    A frame is read into :meth:`payload`, then :meth:`prepend_header` moves
    the start of valid data backward into the headroom for the header.
    """

    def __init__(self):
        self._data = bytearray(BUF_TOTAL)
        self._head = HEADER_HEADROOM
        self._len = 0
        self._pool: BufferPool | None = None

    @property
    def pooled(self) -> bool:
        """Whether this buffer goes back to a pool when released."""
        return self._pool is not None

    def payload(self) -> memoryview:
        """Writable view of the payload area (for reading a frame into)."""
        return memoryview(self._data)[HEADER_HEADROOM:BUF_TOTAL]

    def set_len(self, length: int) -> None:
        """Set the valid payload length after a read."""
        if not 0 <= length <= MAX_FRAME_SIZE:
            raise ValueError(f"length {length} outside 0..{MAX_FRAME_SIZE}")
        self._head = HEADER_HEADROOM
        self._len = length

    def prepend_header(self, header_len: int) -> memoryview:
        """Extend the valid data backward by ``header_len`` bytes.

        Returns a writable view of the new header area.
        """
        if not 0 <= header_len <= self._head:
            raise ValueError("header exceeds headroom")
        self._head -= header_len
        self._len += header_len
        return memoryview(self._data)[self._head : self._head + header_len]

    def as_bytes(self) -> bytes:
        """The valid data (header and payload)."""
        return bytes(self._data[self._head : self._head + self._len])

    def __len__(self) -> int:
        return self._len

    def reset(self) -> None:
        """Reset the buffer for reuse."""
        self._head = HEADER_HEADROOM
        self._len = 0

    def release(self) -> None:
        """Return the buffer to its pool; a standalone buffer is left alone."""
        pool, self._pool = self._pool, None
        self.reset()
        if pool is not None:
            pool._put(self)

    def __enter__(self) -> PacketBuf:
        return self

    def __exit__(self, *args) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"PacketBuf(head={self._head}, len={self._len}, pooled={self.pooled})"


class BufferPool:
    """Thread-safe pool of reusable :class:`PacketBuf` objects.

    When the pool is exhausted, :meth:`get` hands out standalone buffers
    that are simply discarded on release.
    """

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._free: deque[PacketBuf] = deque(PacketBuf() for _ in range(capacity))

    def get(self) -> PacketBuf:
        """Take a buffer from the pool, or a new standalone one if it is empty."""
        with self._lock:
            buf = self._free.pop() if self._free else None
        if buf is None:
            return PacketBuf()
        buf.reset()
        buf._pool = self
        return buf

    def available(self) -> int:
        """Number of buffers currently in the pool."""
        with self._lock:
            return len(self._free)

    def _put(self, buf: PacketBuf) -> None:
        with self._lock:
            if len(self._free) < self.capacity:
                self._free.append(buf)