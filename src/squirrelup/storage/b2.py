"""Backblaze B2 storage backend for SquirrelUp.

Talks to B2 through its S3-compatible API via aiobotocore. URIs follow the
pattern ``b2://<bucket>/<key>``; a key ending with ``/`` is a prefix.

Small payloads are stored with a single PutObject call. Larger payloads go
through ``squirrelup.storage.multipart.MultipartUpload``.
"""

import asyncio
import logging
import threading
from typing import Any, BinaryIO

from aiobotocore.session import AioSession
from botocore.config import Config as BotoConfig

from squirrelup.errors import InvalidConfig, InvalidFileInfo, classify
from squirrelup.progress import ProgressReader, ProgressReporter
from squirrelup.storage.models import EPOCH, PATH_SEPARATOR, FileInfo, parse_destination
from squirrelup.storage.multipart import MultipartUpload, SleepFunc, UploadPolicy
from squirrelup.storage.section import SectionReader

logger = logging.getLogger(__name__)

B2_ENDPOINT_TEMPLATE = "https://s3.{region}.backblazeb2.com"


class B2Backend:
    """Storage backend for Backblaze B2 buckets.

    The aiobotocore client is created by ``init()`` and shared by every
    operation, including the concurrent part uploads of one ``store_file``
    call. Instances hold no other mutable state, so several transfers may
    run on one backend at the same time.

    Attributes:
        region: The B2 region (e.g. ``us-west-004``).
        endpoint_url: The S3 endpoint derived from the region.
        policy: Upload strategy settings.
        progress: Reporter for upload progress, or None to disable it.
    """

    def __init__(
        self,
        region: str,
        access_key_id: str = "",
        secret_access_key: str = "",
        session_token: str = "",
        policy: UploadPolicy | None = None,
        progress: ProgressReporter | None = None,
        sleep: SleepFunc = asyncio.sleep,
        session: AioSession | None = None,
    ) -> None:
        self.region = region
        self.endpoint_url = B2_ENDPOINT_TEMPLATE.format(region=region)
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.policy = policy or UploadPolicy()
        self.progress = progress
        self._sleep = sleep
        self._session = session or AioSession()
        self._client: Any = None
        self._client_ctx: Any = None

    @property
    def progress_enabled(self) -> bool:
        return self.progress is not None

    async def init(self) -> None:
        """Create the aiobotocore S3 client for the B2 endpoint.

        Raises:
            InvalidConfig: If the region or credentials are missing.
        """
        if not self.region or not self.access_key_id or not self.secret_access_key:
            raise InvalidConfig()

        self._session.set_credentials(
            self.access_key_id,
            self.secret_access_key,
            self.session_token or None,
        )
        try:
            self._client_ctx = self._session.create_client(
                "s3",
                region_name=self.region,
                endpoint_url=self.endpoint_url,
                config=BotoConfig(s3={"addressing_style": "path"}),
            )
            self._client = await self._client_ctx.__aenter__()
        except Exception as exc:
            self._client_ctx = None
            raise classify(exc) from exc

        logger.info(
            "B2 backend initialized: region=%s endpoint=%s progress=%s",
            self.region,
            self.endpoint_url,
            self.progress_enabled,
        )

    async def close(self) -> None:
        """Close the aiobotocore client."""
        if self._client_ctx is not None:
            await self._client_ctx.__aexit__(None, None, None)
            self._client = None
            self._client_ctx = None

    async def get_file_info(self, uri: str) -> FileInfo:
        """Return information about the object or prefix at ``uri``.

        A prefix is aggregated from ``list_files()``: the size is the sum of
        all object sizes and the modification time the latest one. An empty
        prefix yields size 0 and the Unix epoch.

        Raises:
            InvalidFileInfo: If the service reports a negative object size.
            BackendError: Any classified service error.
        """
        dest = parse_destination(uri)

        if dest.is_prefix:
            size = 0
            modified = EPOCH
            for info in await self.list_files(uri):
                size += info.size
                if info.modified > modified:
                    modified = info.modified
            return FileInfo(name=dest.key, size=size, modified=modified, isfile=False)

        try:
            head = await self._client.head_object(Bucket=dest.bucket, Key=dest.key)
        except Exception as exc:
            raise classify(exc) from exc

        size = head["ContentLength"]
        if size < 0:
            raise InvalidFileInfo()
        return FileInfo(name=dest.key, size=size, modified=head["LastModified"], isfile=True)

    async def list_files(self, uri: str) -> list[FileInfo]:
        """List every object under the prefix at ``uri``.

        Pages of ListObjectsV2 are followed until the listing is exhausted;
        entries keep the order the service returns them in. Folder
        placeholder keys ending with ``/`` are reported with ``isfile`` False.
        """
        dest = parse_destination(uri)
        result: list[FileInfo] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=dest.bucket, Prefix=dest.key):
                for item in page.get("Contents", []):
                    result.append(
                        FileInfo(
                            name=item["Key"],
                            size=item["Size"],
                            modified=item["LastModified"],
                            isfile=not item["Key"].endswith(PATH_SEPARATOR),
                        )
                    )
        except Exception as exc:
            raise classify(exc) from exc
        return result

    async def store_file(self, content: BinaryIO, content_length: int, uri: str) -> None:
        """Store the first ``content_length`` bytes of ``content`` at ``uri``.

        Payloads up to ``policy.single_shot_max_bytes`` are sent with one
        PutObject call. Larger ones are uploaded as a multipart upload that
        is either completed or aborted as a whole.

        Raises:
            ValueError: If ``uri`` addresses a prefix or the length is negative.
            BackendError: The first classified error.
        """
        if content_length < 0:
            raise ValueError("content_length must not be negative")
        dest = parse_destination(uri)
        if dest.is_prefix:
            raise ValueError(f"cannot store an object at prefix {dest.uri}")

        if content_length > self.policy.single_shot_max_bytes:
            upload = MultipartUpload(
                self._client,
                dest.bucket,
                dest.key,
                self.policy,
                sleep=self._sleep,
                progress=self.progress,
            )
            await upload.run(content, content_length)
            return

        section = SectionReader(content, 0, content_length, threading.Lock())
        reader = ProgressReader(section, section.size, self.progress)
        try:
            await self._client.put_object(
                Bucket=dest.bucket,
                Key=dest.key,
                ContentLength=content_length,
                Body=reader,
            )
        except Exception as exc:
            raise classify(exc) from exc
        finally:
            reader.finish()
        logger.info("Stored %d bytes at %s/%s", content_length, dest.bucket, dest.key, extra={"uri": uri})

    async def remove_file(self, uri: str) -> None:
        """Remove the object at ``uri``.

        The object's current version id is looked up first so the delete
        targets that exact version on versioned buckets.

        Raises:
            ValueError: If ``uri`` addresses a prefix.
            BackendError: Any classified service error.
        """
        dest = parse_destination(uri)
        if dest.is_prefix:
            raise ValueError(f"cannot remove prefix {dest.uri}")
        try:
            head = await self._client.head_object(Bucket=dest.bucket, Key=dest.key)
        except Exception as exc:
            raise classify(exc) from exc

        kwargs: dict[str, Any] = {"Bucket": dest.bucket, "Key": dest.key}
        version_id = head.get("VersionId")
        if version_id:
            kwargs["VersionId"] = version_id
        try:
            await self._client.delete_object(**kwargs)
        except Exception as exc:
            raise classify(exc) from exc
        logger.info("Removed %s/%s (version %s)", dest.bucket, dest.key, version_id, extra={"uri": uri})
