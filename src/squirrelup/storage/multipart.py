"""Concurrent multipart upload engine.

A payload larger than the single-shot limit is split into fixed-size
parts that are uploaded by a bounded set of concurrent tasks:

    create session -> plan parts -> upload parts (bounded, retried)
        -> collect outcomes in completion order
        -> complete (parts sorted by number) | abort (first error wins)

Each ``MultipartUpload`` instance drives exactly one upload session and
owns its semaphore and result queue. Only the S3 client is shared.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, BinaryIO

from squirrelup.errors import (
    MissingUploadId,
    OperationTimeout,
    UnknownBackendError,
    classify,
)
from squirrelup.progress import ProgressReader, ProgressReporter
from squirrelup.storage.section import SectionReader

logger = logging.getLogger(__name__)

MiB = 1024 * 1024

SINGLE_SHOT_MAX_BYTES = 256 * MiB
PART_SIZE = 100 * MiB
MAX_CONCURRENCY = 4
MAX_ATTEMPTS = 5
RETRY_WAIT_SECONDS = 5.0

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class UploadPolicy:
    """Tunables of the upload strategy.

    Attributes:
        single_shot_max_bytes: Payloads up to this size use one put_object.
        part_size: Maximum size of a multipart part.
        max_concurrency: Parts uploaded at the same time.
        max_attempts: Attempts per part before it fails the upload.
        retry_wait_seconds: Delay between two attempts of one part.
        timeout: Optional deadline in seconds for a whole multipart upload.
    """

    single_shot_max_bytes: int = SINGLE_SHOT_MAX_BYTES
    part_size: int = PART_SIZE
    max_concurrency: int = MAX_CONCURRENCY
    max_attempts: int = MAX_ATTEMPTS
    retry_wait_seconds: float = RETRY_WAIT_SECONDS
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.part_size <= 0:
            raise ValueError("part_size must be positive")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.retry_wait_seconds < 0:
            raise ValueError("retry_wait_seconds must not be negative")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass
class PartUploadJob:
    """One part of a multipart upload and its outcome.

    A job is owned by the task uploading it until it is put on the
    result queue.
    """

    part_number: int
    offset: int
    length: int
    attempts: int = 0
    etag: str | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.attempts > 0 and self.error is None


def plan_parts(content_length: int, part_size: int) -> list[PartUploadJob]:
    """Split ``[0, content_length)`` into consecutive parts numbered from 1.

    Every part is ``part_size`` bytes long except the last one, which takes
    the remainder.
    """
    if part_size <= 0:
        raise ValueError("part_size must be positive")
    return [
        PartUploadJob(
            part_number=number,
            offset=offset,
            length=min(part_size, content_length - offset),
        )
        for number, offset in enumerate(range(0, content_length, part_size), start=1)
    ]


def completed_parts(jobs: list[PartUploadJob]) -> list[dict[str, Any]]:
    """Build the CompleteMultipartUpload part list, sorted by part number."""
    return [
        {"ETag": job.etag, "PartNumber": job.part_number}
        for job in sorted(jobs, key=attrgetter("part_number"))
    ]


class MultipartUpload:
    """Uploads one payload as a multipart upload session.

    Args:
        client: An aiobotocore S3 client.
        bucket: Destination bucket.
        key: Destination key.
        policy: Part size, concurrency, retry and deadline settings.
        sleep: Coroutine function used for the delay between attempts.
        progress: Reporter for per-part progress, or None.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        key: str,
        policy: UploadPolicy,
        sleep: SleepFunc = asyncio.sleep,
        progress: ProgressReporter | None = None,
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.key = key
        self.policy = policy
        self._sleep = sleep
        self._progress = progress
        self.upload_id: str | None = None
        self.jobs: list[PartUploadJob] = []

    async def run(self, content: BinaryIO, content_length: int) -> None:
        """Upload ``content_length`` bytes of ``content``.

        Raises:
            BackendError: The first classified error. When any part failed
                the session has been aborted; the object is never left
                partially written.
        """
        try:
            created = await self._client.create_multipart_upload(Bucket=self.bucket, Key=self.key)
        except Exception as exc:
            raise classify(exc) from exc
        upload_id = (created or {}).get("UploadId")
        if not upload_id:
            raise MissingUploadId()
        self.upload_id = upload_id

        self.jobs = plan_parts(content_length, self.policy.part_size)
        logger.info(
            "Multipart upload %s created for %s/%s: %d bytes in %d parts",
            upload_id,
            self.bucket,
            self.key,
            content_length,
            len(self.jobs),
            extra={"upload_id": upload_id},
        )

        lock = threading.Lock()
        semaphore = asyncio.Semaphore(self.policy.max_concurrency)
        results: asyncio.Queue[PartUploadJob] = asyncio.Queue()
        tasks = [
            asyncio.create_task(self._run_job(job, content, lock, semaphore, results))
            for job in self.jobs
        ]

        try:
            completed, first_error = await asyncio.wait_for(
                self._collect(results, len(self.jobs)), self.policy.timeout
            )
        except asyncio.TimeoutError:
            await self._drain(tasks)
            await self._abort()
            raise OperationTimeout() from None
        except BaseException:
            await self._drain(tasks)
            await self._abort()
            raise
        await self._drain(tasks)

        if first_error is not None or len(completed) < len(self.jobs):
            await self._abort()
            if first_error is None:
                raise UnknownBackendError(
                    "IncompleteUpload",
                    f"{len(completed)} of {len(self.jobs)} parts uploaded",
                )
            raise classify(first_error) from first_error

        try:
            await self._client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=self.key,
                UploadId=upload_id,
                MultipartUpload={"Parts": completed_parts(completed)},
            )
        except Exception as exc:
            raise classify(exc) from exc
        logger.info("Multipart upload %s completed for %s/%s", upload_id, self.bucket, self.key)

    async def _collect(
        self, results: "asyncio.Queue[PartUploadJob]", total: int
    ) -> tuple[list[PartUploadJob], BaseException | None]:
        """Receive ``total`` outcomes in completion order."""
        completed: list[PartUploadJob] = []
        first_error: BaseException | None = None
        for _ in range(total):
            job = await results.get()
            if job.succeeded:
                completed.append(job)
            elif first_error is None:
                first_error = job.error
        return completed, first_error

    async def _run_job(
        self,
        job: PartUploadJob,
        content: BinaryIO,
        lock: threading.Lock,
        semaphore: asyncio.Semaphore,
        results: "asyncio.Queue[PartUploadJob]",
    ) -> None:
        async with semaphore:
            try:
                await self._upload_part(job, content, lock)
            except Exception as exc:
                job.error = exc
        await results.put(job)

    async def _upload_part(self, job: PartUploadJob, content: BinaryIO, lock: threading.Lock) -> None:
        section = SectionReader(content, job.offset, job.length, lock)
        reader = ProgressReader(section, section.size, self._progress)
        try:
            while job.attempts < self.policy.max_attempts:
                job.attempts += 1
                reader.seek(0)
                logger.debug(
                    "Uploading part %d of %s (attempt %d)", job.part_number, self.upload_id, job.attempts
                )
                try:
                    response = await self._client.upload_part(
                        Bucket=self.bucket,
                        Key=self.key,
                        UploadId=self.upload_id,
                        PartNumber=job.part_number,
                        ContentLength=job.length,
                        Body=reader,
                    )
                except Exception as exc:
                    job.error = exc
                    logger.warning(
                        "Part %d of %s failed on attempt %d/%d: %s",
                        job.part_number,
                        self.upload_id,
                        job.attempts,
                        self.policy.max_attempts,
                        exc,
                        extra={
                            "upload_id": self.upload_id,
                            "part_number": job.part_number,
                            "attempt": job.attempts,
                        },
                    )
                    if job.attempts < self.policy.max_attempts:
                        await self._sleep(self.policy.retry_wait_seconds)
                    continue
                job.error = None
                job.etag = response.get("ETag")
                logger.debug(
                    "Part %d of %s uploaded: %d bytes, %d read",
                    job.part_number,
                    self.upload_id,
                    reader.size,
                    reader.bytes_read,
                )
                return
        finally:
            reader.finish()

    @staticmethod
    async def _drain(tasks: list["asyncio.Task[None]"]) -> None:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _abort(self) -> None:
        """Abort the session. Failures are logged and swallowed."""
        try:
            await self._client.abort_multipart_upload(
                Bucket=self.bucket, Key=self.key, UploadId=self.upload_id
            )
        except Exception:
            logger.warning("Failed to abort multipart upload %s", self.upload_id)
            return
        logger.info("Multipart upload %s aborted for %s/%s", self.upload_id, self.bucket, self.key)
