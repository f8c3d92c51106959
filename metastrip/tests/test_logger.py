"""Tests for metastrip.core.logger module."""

import os

from metastrip.core.logger import (
    BufferedLogger,
    NullLogger,
    create_logger,
    format_duration,
    write_summary,
)
from metastrip.core.models import OperationResult, OperationSummary


class TestBufferedLogger:
    """Tests for BufferedLogger class."""

    def test_creates_log_file_on_first_log(self, temp_dir):
        logger = BufferedLogger(temp_dir, "test.log")
        filepath = os.path.join(temp_dir, "test.log")

        assert not os.path.exists(filepath)

        logger.log("Test message")
        logger.close()

        assert os.path.exists(filepath)

    def test_writes_timestamped_lines(self, temp_dir):
        with BufferedLogger(temp_dir, "test.log") as logger:
            logger.log("Message 1")
            logger.log("Message 2")

        with open(os.path.join(temp_dir, "test.log")) as f:
            lines = f.readlines()

        assert len(lines) == 2
        assert lines[0].endswith(" - Message 1\n")

    def test_appends_across_instances(self, temp_dir):
        for message in ("first", "second"):
            with BufferedLogger(temp_dir, "test.log") as logger:
                logger.log(message)

        with open(os.path.join(temp_dir, "test.log")) as f:
            assert len(f.readlines()) == 2

    def test_creates_output_dir(self, temp_dir):
        log_dir = os.path.join(temp_dir, "logs", "nested")
        with BufferedLogger(log_dir) as logger:
            logger.log("hello")

        assert os.path.exists(os.path.join(log_dir, "metastrip_log.txt"))

    def test_is_open_property(self, temp_dir):
        logger = BufferedLogger(temp_dir, "test.log")
        assert not logger.is_open

        logger.log("Test")
        assert logger.is_open

        logger.close()
        assert not logger.is_open

    def test_unused_logger_leaves_nothing(self, temp_dir):
        with BufferedLogger(temp_dir, "test.log"):
            pass
        assert os.listdir(temp_dir) == []


class TestNullLogger:
    """Tests for NullLogger class."""

    def test_does_nothing(self, temp_dir):
        with NullLogger() as logger:
            logger.log("ignored")
            logger.flush()
        assert logger.is_open


class TestCreateLogger:
    """Tests for create_logger() function."""

    def test_enabled(self, temp_dir):
        assert isinstance(create_logger(temp_dir), BufferedLogger)

    def test_disabled(self, temp_dir):
        assert isinstance(create_logger(temp_dir, enabled=False), NullLogger)


class TestFormatDuration:
    """Tests for format_duration() function."""

    def test_seconds(self):
        assert format_duration(4.26) == "4.3s"

    def test_minutes(self):
        assert format_duration(65.9) == "1m 5s"


class TestWriteSummary:
    """Tests for write_summary() function."""

    def test_report_contents(self, temp_dir):
        results = [
            OperationResult.succeeded(1, "/out/a.jpg"),
            OperationResult.failed(2, "/out/b.jpg", "file not found: /in/b.jpg"),
        ]
        summary = OperationSummary(total=3, succeeded=1, failed=1, cancelled=1)

        path = write_summary(temp_dir, "Strip All", summary, results, 2.0)

        with open(path, encoding="utf-8") as f:
            content = f.read()

        assert path == os.path.join(temp_dir, "summary.txt")
        assert content.startswith("MetaStrip - Bulk Summary")
        assert "Preset:    Strip All" in content
        assert "Cancelled: 1" in content
        assert "/out/b.jpg | file not found: /in/b.jpg" in content
        assert "/out/a.jpg" not in content

    def test_no_failures_section_when_clean(self, temp_dir):
        summary = OperationSummary(total=1, succeeded=1)

        path = write_summary(temp_dir, "GPS Only", summary, [OperationResult.succeeded(1, "x")], 0.5)

        with open(path, encoding="utf-8") as f:
            content = f.read()
        assert "Failures" not in content
        assert "Cancelled" not in content
