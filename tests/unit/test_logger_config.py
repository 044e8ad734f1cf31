"""
Unit tests for logger_config module.

Covers the JSON log formatter, structured error logging, the safe_operation
wrapper and the log_mcp_call decorator on sync and async tools.
"""

import json
import logging
import sys

import pytest

from dart_query.logger_config import ErrorCategory
from dart_query.logger_config import StructuredLogFormatter
from dart_query.logger_config import error_logger
from dart_query.logger_config import log_mcp_call
from dart_query.logger_config import log_structured_error
from dart_query.logger_config import mcp_call_logger
from dart_query.logger_config import safe_operation


class TestStructuredLogFormatter:
    """Test suite for StructuredLogFormatter."""

    def _record(self, **extra):
        record = logging.LogRecord(
            name="test_logger",
            level=logging.ERROR,
            pathname="test.py",
            lineno=10,
            msg="Import failed for %s",
            args=("row 4",),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_entry(self):
        log_data = json.loads(StructuredLogFormatter().format(self._record()))

        assert log_data["level"] == "ERROR"
        assert log_data["logger"] == "test_logger"
        assert log_data["message"] == "Import failed for row 4"
        assert log_data["line"] == 10
        assert "timestamp" in log_data

    def test_extra_fields_are_included(self):
        log_data = json.loads(StructuredLogFormatter().format(self._record(batch_operation_id="batch_import_1")))
        assert log_data["batch_operation_id"] == "batch_import_1"

    def test_exception_info(self):
        try:
            raise ValueError("bad row")
        except ValueError:
            record = self._record()
            record.exc_info = sys.exc_info()

        log_data = json.loads(StructuredLogFormatter().format(record))
        assert log_data["exception"]["type"] == "ValueError"
        assert log_data["exception"]["message"] == "bad row"


class TestLogStructuredError:
    def test_logs_with_category_level_and_context(self, mocker):
        mock_log = mocker.patch.object(error_logger, "log")

        log_structured_error(
            ErrorCategory.WARNING,
            "Config fetch slow",
            context={"dartboard": "Engineering"},
            operation="import",
            attempt=2,
        )

        level, message = mock_log.call_args.args
        extra = mock_log.call_args.kwargs["extra"]
        assert level == logging.WARNING
        assert message == "Config fetch slow"
        assert extra == {
            "error_category": "WARNING",
            "operation": "import",
            "dartboard": "Engineering",
            "attempt": 2,
        }


class TestSafeOperation:
    def test_success(self):
        assert safe_operation("add", lambda a, b: a + b, 1, 2) == (True, 3, None)

    def test_failure_is_logged_not_raised(self, mocker):
        mock_log = mocker.patch("dart_query.logger_config.log_structured_error")

        def boom():
            raise RuntimeError("nope")

        success, result, error = safe_operation("boom", boom, context={"k": "v"})

        assert not success
        assert result is None
        assert isinstance(error, RuntimeError)
        assert mock_log.call_args.kwargs["operation"] == "boom"


class TestLogMcpCall:
    def test_sync_tool(self, mocker):
        mock_info = mocker.patch.object(mcp_call_logger, "info")

        @log_mcp_call
        def get_batch_status(batch_operation_id):
            return {"found": False}

        assert get_batch_status("batch_update_1") == {"found": False}
        assert get_batch_status.__name__ == "get_batch_status"
        assert "Calling tool: get_batch_status" in mock_info.call_args_list[0].args[0]
        assert "returned" in mock_info.call_args_list[1].args[0]

    @pytest.mark.asyncio
    async def test_async_tool(self, mocker):
        mocker.patch.object(mcp_call_logger, "info")

        @log_mcp_call
        async def get_config(cache_bust=False):
            return "config"

        assert await get_config(cache_bust=True) == "config"

    @pytest.mark.asyncio
    async def test_errors_are_logged_and_reraised(self, mocker):
        mocker.patch.object(mcp_call_logger, "info")
        mock_error = mocker.patch.object(mcp_call_logger, "error")
        mock_structured = mocker.patch("dart_query.logger_config.log_structured_error")

        @log_mcp_call
        async def delete_task(dart_id):
            raise ValueError("dart_id is required")

        with pytest.raises(ValueError):
            await delete_task("")

        assert "delete_task raised exception" in mock_error.call_args.args[0]
        assert mock_structured.call_args.kwargs["function"] == "delete_task"
