"""Asynchronous wrapper around a TAP device file descriptor."""

from __future__ import annotations

import asyncio
import os


class TapDevice:
    """Non-blocking TAP file descriptor with asyncio read and write.

    Takes ownership of ``fd``: it is closed by :meth:`close`.
    """

    def __init__(self, fd: int):
        os.set_blocking(fd, False)
        self._fd = fd

    def fileno(self) -> int:
        """The underlying file descriptor."""
        if self._fd < 0:
            raise ValueError("I/O operation on closed TAP device")
        return self._fd

    async def read(self, size: int) -> bytes:
        """Read one Ethernet frame of at most ``size`` bytes."""
        while True:
            fd = self.fileno()
            try:
                return os.read(fd, size)
            except (BlockingIOError, InterruptedError):
                await self._wait(readable=True)

    async def write(self, data: bytes) -> int:
        """Write one Ethernet frame; returns the number of bytes written."""
        while True:
            fd = self.fileno()
            try:
                return os.write(fd, data)
            except (BlockingIOError, InterruptedError):
                await self._wait(readable=False)

    async def _wait(self, readable: bool) -> None:
        loop = asyncio.get_running_loop()
        fd = self.fileno()
        ready = loop.create_future()

        def wake() -> None:
            if not ready.done():
                ready.set_result(None)

        if readable:
            loop.add_reader(fd, wake)
            try:
                await ready
            finally:
                loop.remove_reader(fd)
        else:
            loop.add_writer(fd, wake)
            try:
                await ready
            finally:
                loop.remove_writer(fd)

    def close(self) -> None:
        """Close the file descriptor; further calls do nothing."""
        if self._fd >= 0:
            fd, self._fd = self._fd, -1
            os.close(fd)

    def __enter__(self) -> TapDevice:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return "TapDevice()"