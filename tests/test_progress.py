"""Tests for section readers, progress readers and progress reporters."""

import inspect
import io
import os
import threading
from unittest.mock import MagicMock, call

import pytest

from squirrelup.progress import (
    SIGNING,
    UPLOADING,
    LoggingProgressReporter,
    NullProgressReporter,
    ProgressReader,
)
from squirrelup.storage.section import SectionReader


class TestSectionReader:
    """Tests for SectionReader."""

    def test_reads_only_its_window(self):
        source = io.BytesIO(b"0123456789")
        reader = SectionReader(source, 3, 4)
        assert reader.read() == b"3456"
        assert reader.read() == b""

    def test_small_reads(self):
        reader = SectionReader(io.BytesIO(b"0123456789"), 2, 5)
        assert reader.read(2) == b"23"
        assert reader.read(2) == b"45"
        assert reader.read(2) == b"6"
        assert reader.tell() == 5

    def test_seek_is_relative_to_window(self):
        reader = SectionReader(io.BytesIO(b"0123456789"), 5, 5)
        reader.read()
        assert reader.seek(0) == 0
        assert reader.read(1) == b"5"
        assert reader.seek(-1, os.SEEK_END) == 4
        assert reader.read() == b"9"
        assert reader.seek(-2, os.SEEK_CUR) == 3
        assert reader.read() == b"89"

    def test_negative_seek_rejected(self):
        reader = SectionReader(io.BytesIO(b"abc"), 0, 3)
        with pytest.raises(ValueError):
            reader.seek(-1)

    def test_readers_share_source(self):
        source = io.BytesIO(b"aaaabbbbcc")
        lock = threading.Lock()
        first = SectionReader(source, 0, 4, lock)
        second = SectionReader(source, 4, 4, lock)
        assert second.read(2) == b"bb"
        assert first.read(2) == b"aa"
        assert second.read() == b"bb"
        assert first.read() == b"aa"

    def test_readinto(self):
        reader = SectionReader(io.BytesIO(b"hello world"), 6, 5)
        buf = bytearray(8)
        assert reader.readinto(buf) == 5
        assert bytes(buf[:5]) == b"world"

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            SectionReader(io.BytesIO(b""), -1, 3)

    def test_lock_annotation_not_evaluated(self):
        # threading.Lock is a factory function, not a class, before Python 3.13
        lock = inspect.signature(SectionReader.__init__).parameters["lock"]
        assert lock.annotation == "threading.Lock | None"
        assert SectionReader(io.BytesIO(b"ab"), 0, 2).size == 2


class TestProgressReader:
    """Tests for ProgressReader."""

    def _reporter(self, task: int = 7) -> MagicMock:
        reporter = MagicMock()
        reporter.create_file_task.return_value = task
        return reporter

    def test_pass_through(self):
        reader = ProgressReader(io.BytesIO(b"payload"), 7, None)
        assert reader.read() == b"payload"
        assert reader.bytes_read == 7

    def test_signing_then_uploading(self):
        reporter = self._reporter()
        reader = ProgressReader(io.BytesIO(b"abcdef"), 6, reporter)

        # signing pass
        assert reader.read(4) == b"abcd"
        assert reader.read(4) == b"ef"
        reader.seek(0)
        # transmission pass
        assert reader.read() == b"abcdef"

        reporter.create_file_task.assert_called_once_with(6)
        assert reporter.describe_task.call_args_list == [call(7, SIGNING), call(7, UPLOADING)]
        assert reporter.advance_task.call_args_list == [call(7, 4), call(7, 2), call(7, 6)]
        assert reader.bytes_read == 12

    def test_cumulative_count_across_retries(self):
        reporter = self._reporter()
        reader = ProgressReader(io.BytesIO(b"abc"), 3, reporter)
        for _ in range(3):
            reader.seek(0)
            reader.read()
        assert reader.bytes_read == 9
        # uploading is announced once, when the count first reaches the size
        assert reporter.describe_task.call_args_list == [call(7, SIGNING), call(7, UPLOADING)]

    def test_empty_reads_not_reported(self):
        reporter = self._reporter()
        reader = ProgressReader(io.BytesIO(b""), 0, reporter)
        assert reader.read() == b""
        reporter.create_file_task.assert_not_called()

    def test_finish_once(self):
        reporter = self._reporter()
        reader = ProgressReader(io.BytesIO(b"x"), 1, reporter)
        reader.read()
        reader.finish()
        reader.finish()
        reporter.finish_task.assert_called_once_with(7)

    def test_finish_without_reads(self):
        reporter = self._reporter()
        reader = ProgressReader(io.BytesIO(b"x"), 1, reporter)
        reader.finish()
        reporter.finish_task.assert_not_called()

    def test_independent_readers_have_own_tasks(self):
        reporter = LoggingProgressReporter()
        source = io.BytesIO(b"aabb")
        lock = threading.Lock()
        first = ProgressReader(SectionReader(source, 0, 2, lock), 2, reporter)
        second = ProgressReader(SectionReader(source, 2, 2, lock), 2, reporter)
        first.read(1)
        second.read(1)
        assert reporter.active_tasks == 2
        first.finish()
        second.finish()
        assert reporter.active_tasks == 0


class TestNullProgressReporter:
    """NullProgressReporter accepts everything."""

    def test_noop(self):
        reporter = NullProgressReporter()
        task = reporter.create_file_task(10)
        reporter.describe_task(task, SIGNING)
        reporter.advance_task(task, 10)
        reporter.finish_task(task)


class TestLoggingProgressReporter:
    """Tests for LoggingProgressReporter."""

    def test_lifecycle_logged(self, caplog):
        reporter = LoggingProgressReporter()
        with caplog.at_level("INFO", logger="squirrelup.progress"):
            task = reporter.create_file_task(4)
            reporter.describe_task(task, UPLOADING)
            reporter.advance_task(task, 4)
            reporter.finish_task(task)
        assert f"Task {task} uploading" in caplog.text
        assert f"Task {task} finished" in caplog.text

    def test_unknown_task_rejected(self):
        reporter = LoggingProgressReporter()
        with pytest.raises(ValueError, match="outside of available range"):
            reporter.advance_task(42, 1)
        with pytest.raises(ValueError):
            reporter.describe_task(42, "x")
        with pytest.raises(ValueError):
            reporter.finish_task(42)

    def test_task_ids_unique_under_threads(self):
        reporter = LoggingProgressReporter()
        ids: list[int] = []
        ids_lock = threading.Lock()

        def worker():
            for _ in range(50):
                task = reporter.create_file_task(1)
                reporter.advance_task(task, 1)
                with ids_lock:
                    ids.append(task)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(ids) == 200
        assert len(set(ids)) == 200
        assert reporter.active_tasks == 200
