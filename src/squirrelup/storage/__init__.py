"""Storage backends for SquirrelUp."""

from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from squirrelup.storage.backend import StorageBackend
from squirrelup.storage.models import Destination, FileInfo, parse_destination

if TYPE_CHECKING:
    from squirrelup.config import SquirrelUpConfig
    from squirrelup.progress import ProgressReporter

__all__ = [
    "create_storage_backend",
    "Destination",
    "FileInfo",
    "parse_destination",
    "StorageBackend",
]


def create_storage_backend(
    uri: str,
    config: "SquirrelUpConfig",
    progress: "ProgressReporter | None" = None,
) -> StorageBackend:
    """Create a storage backend for the scheme of ``uri``.

    Args:
        uri: Any URI addressed by the backend (``b2://...`` or ``dummy://...``).
        config: The loaded configuration.
        progress: Optional progress reporter for uploads.

    Returns:
        An uninitialized backend; call ``init()`` before use.

    Raises:
        ValueError: If the scheme is unknown.
    """
    scheme = urlsplit(uri).scheme

    if scheme == "b2":
        from squirrelup.storage.b2 import B2Backend

        return B2Backend(
            region=config.s3.region,
            access_key_id=config.s3.id,
            secret_access_key=config.s3.secret,
            session_token=config.s3.token,
            policy=config.upload.to_policy(),
            progress=progress,
        )

    elif scheme == "dummy":
        from squirrelup.storage.dummy import DummyBackend

        return DummyBackend()

    else:
        raise ValueError(f"unknown URL scheme {scheme}")
