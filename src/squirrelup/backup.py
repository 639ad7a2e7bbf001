"""Backup workflow: rotate old backups, archive a directory, upload it.

The storage backend does the heavy lifting; this module only strings the
steps together the way the ``squirrelup`` command runs them.
"""

import logging
import os
import tarfile
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from squirrelup.config import BackupConfig
from squirrelup.errors import BackendError
from squirrelup.storage.backend import StorageBackend
from squirrelup.storage.models import parse_destination

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"


async def rotate_backups(
    backend: StorageBackend,
    prefix_uri: str,
    max_age_hours: float,
    now: datetime | None = None,
) -> list[str]:
    """Remove backups under ``prefix_uri`` that are at least ``max_age_hours`` old.

    A non-positive ``max_age_hours`` disables rotation. A failed removal is
    logged and does not stop the rotation.

    Returns:
        The URIs that were removed.

    Raises:
        BackendError: If the prefix cannot be listed.
    """
    if max_age_hours <= 0:
        return []

    now = now or datetime.now(timezone.utc)
    dest = parse_destination(prefix_uri)
    removed: list[str] = []

    for info in await backend.list_files(prefix_uri):
        if not info.isfile:
            continue
        age_hours = (now - info.modified).total_seconds() / 3600
        logger.debug("Backup %s is %.0f h old", info.name, age_hours)
        if age_hours < max_age_hours:
            continue
        uri = dest.uri_for(info.name)
        logger.info("Removing backup %s", uri, extra={"uri": uri})
        try:
            await backend.remove_file(uri)
        except BackendError as exc:
            logger.error("Could not remove %s: %s", uri, exc)
            continue
        removed.append(uri)

    return removed


def archive_directory(directory: Path) -> Path:
    """Write a gzip-compressed tarball of ``directory`` to a temporary file.

    Members are stored relative to ``directory`` with numeric owner ids.

    Returns:
        The path of the temporary archive. The caller removes it.
    """
    fd, name = tempfile.mkstemp(prefix="squirrelup-backup-", suffix=ARCHIVE_SUFFIX)
    os.close(fd)
    path = Path(name)

    def _numeric_owner(info: tarfile.TarInfo) -> tarfile.TarInfo:
        info.uname = ""
        info.gname = ""
        return info

    try:
        with tarfile.open(path, "w:gz") as tar:
            for entry in sorted(directory.iterdir()):
                tar.add(entry, arcname=entry.name, filter=_numeric_owner)
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    return path


def backup_name(config: BackupConfig, now: datetime | None = None) -> str:
    """Return the archive basename for a backup taken at ``now``."""
    now = now or datetime.now().astimezone()
    return now.strftime(config.name) + ARCHIVE_SUFFIX


async def run_backup(
    backend: StorageBackend,
    directory: Path,
    prefix_uri: str,
    config: BackupConfig,
    now: datetime | None = None,
) -> str:
    """Rotate old backups, then archive ``directory`` and upload it.

    Returns:
        The URI of the uploaded archive.

    Raises:
        BackendError: If listing the prefix or uploading fails.
    """
    if not directory.is_dir():
        raise NotADirectoryError(f"not a directory: {directory}")
    dest = parse_destination(prefix_uri)
    if not dest.is_prefix:
        raise ValueError(f"output URI must be a prefix ending with '/': {dest.uri}")

    await rotate_backups(backend, prefix_uri, config.hours, now=now)

    archive = archive_directory(directory)
    try:
        target = dest.uri_for(dest.key + backup_name(config, now))
        size = archive.stat().st_size
        with open(archive, "rb") as fh:
            await backend.store_file(fh, size, target)
        logger.info("Wrote %s to %s (%d bytes)", directory, target, size)
    finally:
        archive.unlink(missing_ok=True)
    return target
