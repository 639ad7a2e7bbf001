"""Abstract storage backend protocol for SquirrelUp."""

from typing import BinaryIO, Protocol

from squirrelup.storage.models import FileInfo


class StorageBackend(Protocol):
    """Protocol defining the storage backend interface.

    Backends address objects by URI (``scheme://bucket/key``). A key ending
    with ``/`` addresses a prefix. All failures are raised as
    ``squirrelup.errors.BackendError`` subclasses.
    """

    async def init(self) -> None:
        """Initialize the backend (create clients, etc.)."""
        ...

    async def close(self) -> None:
        """Release resources held by the backend."""
        ...

    async def get_file_info(self, uri: str) -> FileInfo:
        """Return information about an object, or aggregate a prefix.

        Args:
            uri: The object or prefix URI.

        Returns:
            A FileInfo; for a prefix its size and modification time are
            aggregates over the objects found under it.
        """
        ...

    async def list_files(self, uri: str) -> list[FileInfo]:
        """List every object whose key starts with the URI's key.

        Args:
            uri: The prefix URI.

        Returns:
            One FileInfo per object, in the order the service reports them.
        """
        ...

    async def store_file(self, content: BinaryIO, content_length: int, uri: str) -> None:
        """Store ``content_length`` bytes of ``content`` under ``uri``.

        Args:
            content: A readable, seekable binary file object.
            content_length: Number of bytes to store, starting at offset 0.
            uri: The destination object URI.
        """
        ...

    async def remove_file(self, uri: str) -> None:
        """Remove the object addressed by ``uri``.

        Args:
            uri: The object URI.
        """
        ...
