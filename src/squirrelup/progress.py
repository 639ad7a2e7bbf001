"""Progress reporting for uploads.

A ``ProgressReporter`` tracks one task per transferred byte range. The
storage backends never render anything themselves; they wrap request
bodies in a ``ProgressReader`` that forwards read counts to whichever
reporter is configured. ``NullProgressReporter`` can always be substituted
to disable reporting.
"""

import io
import logging
import os
import threading
from dataclasses import dataclass
from typing import BinaryIO, Protocol

logger = logging.getLogger(__name__)

SIGNING = "signing"
UPLOADING = "uploading"


class ProgressReporter(Protocol):
    """Protocol for progress reporting collaborators.

    Implementations must be safe for concurrent use: the parts of one
    multipart upload report from independent tasks at the same time.
    """

    def create_file_task(self, size: int | None) -> int:
        """Create a task for a transfer of ``size`` bytes (None if unknown)."""
        ...

    def describe_task(self, task: int, description: str) -> None:
        """Change the human-readable description of ``task``."""
        ...

    def advance_task(self, task: int, increment: int) -> None:
        """Advance ``task`` by ``increment`` bytes."""
        ...

    def finish_task(self, task: int) -> None:
        """Mark ``task`` as finished."""
        ...


class NullProgressReporter:
    """Reporter that discards everything."""

    def create_file_task(self, size: int | None) -> int:
        return 0

    def describe_task(self, task: int, description: str) -> None:
        pass

    def advance_task(self, task: int, increment: int) -> None:
        pass

    def finish_task(self, task: int) -> None:
        pass


@dataclass
class _Task:
    size: int | None
    description: str = ""
    done: int = 0


class LoggingProgressReporter:
    """Reporter that writes task lifecycle events to the log.

    Description changes and completions are logged at INFO, byte advances
    at DEBUG. The task table is guarded by a lock.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._lock = threading.Lock()
        self._tasks: dict[int, _Task] = {}
        self._next_id = 1

    def _get(self, task: int) -> _Task:
        try:
            return self._tasks[task]
        except KeyError:
            raise ValueError(f"task index {task} outside of available range") from None

    def create_file_task(self, size: int | None) -> int:
        with self._lock:
            task = self._next_id
            self._next_id += 1
            self._tasks[task] = _Task(size=size)
        self._log.debug("Progress task %d created (size=%s)", task, size)
        return task

    def describe_task(self, task: int, description: str) -> None:
        with self._lock:
            state = self._get(task)
            state.description = description
            done, size = state.done, state.size
        self._log.info("Task %d %s (%d/%s bytes)", task, description, done, size)

    def advance_task(self, task: int, increment: int) -> None:
        with self._lock:
            state = self._get(task)
            state.done += increment
            done = state.done
        self._log.debug("Task %d advanced by %d to %d bytes", task, increment, done)

    def finish_task(self, task: int) -> None:
        with self._lock:
            state = self._tasks.pop(task, None)
        if state is None:
            raise ValueError(f"task index {task} outside of available range")
        self._log.info(
            "Task %d finished (%s, %d bytes read of %s)",
            task,
            state.description,
            state.done,
            state.size,
        )

    @property
    def active_tasks(self) -> int:
        with self._lock:
            return len(self._tasks)


class ProgressReader(io.RawIOBase):
    """Pass-through reader that reports every read to a ProgressReporter.

    The HTTP layer reads a request body once to checksum/sign it and again
    to transmit it. The reader therefore counts bytes cumulatively over all
    passes and switches the task description from "signing" to "uploading"
    when the cumulative count first reaches ``size``. Each reader owns its
    own task and counter.

    Args:
        inner: A readable, seekable byte range.
        size: Number of bytes in the range.
        reporter: Where to report, or None to disable reporting.
    """

    def __init__(self, inner: BinaryIO, size: int, reporter: ProgressReporter | None = None) -> None:
        super().__init__()
        self._inner = inner
        self._size = size
        self._reporter = reporter
        self._task: int | None = None
        self._read = 0
        self._finished = False

    @property
    def size(self) -> int:
        return self._size

    @property
    def bytes_read(self) -> int:
        return self._read

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._inner.tell()

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self._inner.seek(offset, whence)

    def read(self, size: int = -1) -> bytes:
        data = self._inner.read(size)
        count = len(data)
        if self._reporter is not None and count:
            self._report(count)
        self._read += count
        return data

    def readall(self) -> bytes:
        return self.read(-1)

    def readinto(self, buffer) -> int:
        data = self.read(len(buffer))
        buffer[: len(data)] = data
        return len(data)

    def _report(self, count: int) -> None:
        if self._task is None:
            self._task = self._reporter.create_file_task(self._size)
        if self._read == 0:
            self._reporter.describe_task(self._task, SIGNING)
        self._reporter.advance_task(self._task, count)
        if self._read < self._size <= self._read + count:
            self._reporter.describe_task(self._task, UPLOADING)

    def finish(self) -> None:
        """Finish the reporting task, if one was started. Idempotent."""
        if self._finished:
            return
        self._finished = True
        if self._reporter is not None and self._task is not None:
            self._reporter.finish_task(self._task)
