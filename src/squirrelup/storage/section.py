"""Seekable views onto byte ranges of a shared file object."""

from __future__ import annotations

import io
import os
import threading
from typing import BinaryIO


class SectionReader(io.RawIOBase):
    """Read-only, seekable window ``[offset, offset + length)`` of ``source``.

    Several readers may share one ``source``. Each read positions the
    source and reads from it while holding ``lock``, so readers used from
    different threads never interleave their seeks. Positions reported by
    ``tell()`` and accepted by ``seek()`` are relative to the window.
    """

    def __init__(
        self,
        source: BinaryIO,
        offset: int,
        length: int,
        lock: threading.Lock | None = None,
    ) -> None:
        super().__init__()
        if offset < 0 or length < 0:
            raise ValueError("section offset and length must be non-negative")
        self._source = source
        self._offset = offset
        self._length = length
        self._lock = lock or threading.Lock()
        self._pos = 0

    @property
    def size(self) -> int:
        return self._length

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if whence == os.SEEK_SET:
            pos = offset
        elif whence == os.SEEK_CUR:
            pos = self._pos + offset
        elif whence == os.SEEK_END:
            pos = self._length + offset
        else:
            raise ValueError(f"invalid whence: {whence}")
        if pos < 0:
            raise ValueError("negative seek position")
        self._pos = pos
        return pos

    def read(self, size: int = -1) -> bytes:
        remaining = self._length - self._pos
        if remaining <= 0:
            return b""
        if size is None or size < 0 or size > remaining:
            size = remaining
        with self._lock:
            self._source.seek(self._offset + self._pos)
            data = self._source.read(size)
        self._pos += len(data)
        return data

    def readall(self) -> bytes:
        return self.read(-1)

    def readinto(self, buffer) -> int:
        data = self.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)
