"""
Unit tests for the structured logging helpers.
"""

import json
import logging

import pytest

from app.logging_config import CustomJsonFormatter, get_logger, log_step, log_with_context, setup_logging


@pytest.fixture
def captured_logger():
    """A logger whose records are collected in a list."""
    records = []

    class ListHandler(logging.Handler):
        def emit(self, record):
            records.append(record)

    logger = logging.getLogger("tests.captured")
    logger.setLevel(logging.DEBUG)
    handler = ListHandler()
    logger.addHandler(handler)
    yield logger, records
    logger.removeHandler(handler)


class TestLogWithContext:
    """Tests for log_with_context."""

    def test_context_fields_attached(self, captured_logger):
        logger, records = captured_logger

        log_with_context(logger, "info", "Extracting audio", job_id="job-1", step="extracting_audio")

        record = records[0]
        assert record.levelno == logging.INFO
        assert record.job_id == "job-1"
        assert record.step == "extracting_audio"
        assert not hasattr(record, "file_path")

    def test_extra_kwargs_and_paths(self, captured_logger, tmp_path):
        logger, records = captured_logger

        log_with_context(logger, "debug", "Stored", file_path=tmp_path / "a.mp4", file_size=12)

        assert records[0].file_path == str(tmp_path / "a.mp4")
        assert records[0].file_size == 12

    def test_error_attaches_exception(self, captured_logger):
        logger, records = captured_logger
        error = ValueError("broken")

        log_with_context(logger, "error", "Job failed", error=error)

        record = records[0]
        assert record.error_type == "ValueError"
        assert record.error_message == "broken"
        assert record.exc_info[1] is error


class TestJsonFormatter:
    """Tests for CustomJsonFormatter."""

    def test_formats_standard_fields(self):
        formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(logger)s %(message)s')
        record = logging.LogRecord("app.pipeline", logging.WARNING, __file__, 10, "Cleanup error", None, None)
        record.job_id = "job-2"

        data = json.loads(formatter.format(record))

        assert data["message"] == "Cleanup error"
        assert data["level"] == "WARNING"
        assert data["logger"] == "app.pipeline"
        assert data["job_id"] == "job-2"
        assert data["service"] == "subtitle-burner-api"
        assert data["location"].endswith(":10")


class TestLogStep:
    """Tests for the timed step context manager."""

    def test_logs_start_and_finish_with_duration(self, captured_logger):
        logger, records = captured_logger

        with log_step(logger, "Extracting audio", job_id="job-3", step="extracting_audio"):
            pass

        start, finish = records
        assert start.getMessage() == "Extracting audio"
        assert finish.getMessage() == "Extracting audio finished"
        assert finish.job_id == "job-3"
        assert finish.step == "extracting_audio"
        assert finish.duration_ms >= 0

    def test_failure_logged_and_reraised(self, captured_logger):
        logger, records = captured_logger

        with pytest.raises(RuntimeError, match="ffmpeg exited"):
            with log_step(logger, "Burning", job_id="job-4"):
                raise RuntimeError("ffmpeg exited")

        failure = records[-1]
        assert failure.levelno == logging.WARNING
        assert failure.getMessage() == "Burning failed"
        assert failure.error_type == "RuntimeError"


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_replaces_root_handlers(self, tmp_path):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        log_file = tmp_path / "app.log"

        try:
            setup_logging(log_level="DEBUG", log_file=str(log_file), use_json=False)

            assert root.level == logging.DEBUG
            assert len(root.handlers) == 2
            get_logger("tests.setup").debug("hello file")
            for handler in root.handlers:
                handler.flush()
            assert "hello file" in log_file.read_text()
            assert logging.getLogger("httpx").level == logging.DEBUG

            setup_logging(log_level="INFO")
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers = saved_handlers
            root.setLevel(saved_level)
