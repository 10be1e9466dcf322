"""Unit tests for logging configuration."""

import json
import logging
import sys

import pytest

from table_export.infrastructure.logging_config import StructuredFormatter, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestStructuredFormatter:
    """Test JSON log formatting."""

    def test_format(self):
        record = logging.LogRecord(
            name="table_export.test", level=logging.INFO, pathname=__file__, lineno=10,
            msg="Exported %s", args=("syn123",), exc_info=None,
        )
        record.extra_fields = {"schema_key": "study-survey-v1"}

        data = json.loads(StructuredFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "table_export.test"
        assert data["message"] == "Exported syn123"
        assert data["schema_key"] == "study-survey-v1"
        assert data["timestamp"].endswith("Z")
        assert "exception" not in data

    def test_format_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()
        record = logging.LogRecord(
            name="t", level=logging.ERROR, pathname=__file__, lineno=1,
            msg="failed", args=(), exc_info=exc_info,
        )

        data = json.loads(StructuredFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestSetupLogging:
    """Test root logger setup."""

    def test_json_handler(self, restore_root_logger):
        setup_logging(use_json=True, log_level="debug")
        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_plain_handler_and_unknown_level(self, restore_root_logger):
        setup_logging(use_json=False, log_level="not-a-level")
        assert restore_root_logger.level == logging.INFO
        assert not isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)
