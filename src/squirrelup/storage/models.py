"""Value types shared by the storage backends.

Addressing is flat: a bucket holds objects named by keys, and a key that
ends with ``/`` is a prefix that groups every object whose key starts with
it. There is no real directory tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlsplit

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

PATH_SEPARATOR = "/"


@dataclass(frozen=True)
class FileInfo:
    """Information about a stored object or a prefix.

    For a prefix (``isfile`` is False) ``size`` is the sum of the sizes of
    all objects under it and ``modified`` the most recent of their
    modification times.

    Attributes:
        name: The object key or prefix.
        size: Size in bytes.
        modified: Last modification time (timezone aware).
        isfile: True for an object key, False for a prefix.
    """

    name: str
    size: int
    modified: datetime
    isfile: bool


@dataclass(frozen=True)
class Destination:
    """A bucket/key pair parsed from a storage URI.

    Attributes:
        scheme: The URI scheme (e.g. ``b2``).
        bucket: The bucket name (URI authority).
        key: The key or prefix (URI path without the leading separator).
    """

    scheme: str
    bucket: str
    key: str

    @property
    def is_prefix(self) -> bool:
        """True when the key addresses a prefix rather than an object."""
        return self.key == "" or self.key.endswith(PATH_SEPARATOR)

    @property
    def uri(self) -> str:
        return f"{self.scheme}://{self.bucket}/{self.key}"

    def uri_for(self, key: str) -> str:
        """Return the URI of ``key`` in the same bucket."""
        return f"{self.scheme}://{self.bucket}/{key}"


def parse_destination(uri: str) -> Destination:
    """Split a ``scheme://bucket/key`` URI into a Destination.

    Only a single leading separator is stripped from the path, so
    ``b2://bucket//key`` addresses the key ``/key``.
    """
    parts = urlsplit(uri)
    path = parts.path
    if path.startswith(PATH_SEPARATOR):
        path = path[1:]
    return Destination(scheme=parts.scheme, bucket=parts.netloc, key=path)
