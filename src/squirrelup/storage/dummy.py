"""Dummy storage backend for SquirrelUp.

Implements the StorageBackend protocol without storing anything. The file
list and an optional error are configured by the caller, which makes the
backend useful for exercising code that drives a backend (rotation, the
CLI) without a network.
"""

import logging
from datetime import timedelta
from typing import BinaryIO

from squirrelup.errors import BackendError
from squirrelup.storage.models import EPOCH, PATH_SEPARATOR, FileInfo, parse_destination

logger = logging.getLogger(__name__)


class DummyBackend:
    """Storage backend that answers from a preset file list.

    Every operation raises ``error`` when it is set.

    Attributes:
        files: The list returned by ``list_files()``.
        error: The error raised by every operation, or None.
        stored: URIs and lengths passed to ``store_file()``.
        removed: URIs passed to ``remove_file()``.
    """

    def __init__(
        self, files: list[FileInfo] | None = None, error: BackendError | None = None
    ) -> None:
        self.files: list[FileInfo] = list(files or [])
        self.error = error
        self.stored: list[tuple[str, int]] = []
        self.removed: list[str] = []

    def generate_dummy_files(self, path: str, number: int) -> list[FileInfo]:
        """Fill ``files`` with ``number`` entries named path+"A", path+"B", ...

        Entry ``i`` has size ``i`` and was modified ``i`` seconds after the
        Unix epoch.
        """
        self.files = [
            FileInfo(
                name=path + chr(ord("A") + index),
                size=index,
                modified=EPOCH + timedelta(seconds=index),
                isfile=True,
            )
            for index in range(number)
        ]
        return self.files

    def _raise_if_failing(self) -> None:
        if self.error is not None:
            raise self.error

    async def init(self) -> None:
        logger.debug("Dummy backend initialized")

    async def close(self) -> None:
        pass

    async def get_file_info(self, uri: str) -> FileInfo:
        self._raise_if_failing()
        dest = parse_destination(uri)
        return FileInfo(
            name=dest.bucket + PATH_SEPARATOR + dest.key,
            size=0,
            modified=EPOCH,
            isfile=not dest.key.endswith(PATH_SEPARATOR),
        )

    async def list_files(self, uri: str) -> list[FileInfo]:
        self._raise_if_failing()
        return list(self.files)

    async def store_file(self, content: BinaryIO, content_length: int, uri: str) -> None:
        self._raise_if_failing()
        self.stored.append((uri, content_length))

    async def remove_file(self, uri: str) -> None:
        self._raise_if_failing()
        self.removed.append(uri)
