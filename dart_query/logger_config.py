import datetime
import functools
import inspect
import json
import logging
import traceback
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Import metrics functionality (will gracefully handle if not available)
try:
    from .metrics_config import record_tool_call_error
    from .metrics_config import record_tool_call_start
    from .metrics_config import record_tool_call_success

    METRICS_AVAILABLE = True
except ImportError:
    METRICS_AVAILABLE = False


class ErrorCategory(Enum):
    """Severity categories for structured error logging."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


_CATEGORY_LEVELS = {
    ErrorCategory.CRITICAL: logging.CRITICAL,
    ErrorCategory.ERROR: logging.ERROR,
    ErrorCategory.WARNING: logging.WARNING,
    ErrorCategory.INFO: logging.INFO,
}

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class StructuredLogFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.datetime.fromtimestamp(record.created, tz=datetime.timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            log_entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS and not key.startswith("_"):
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


# --- Logging Setup ---
_log_dir = Path(__file__).resolve().parent

mcp_call_logger = logging.getLogger("mcp_call_logger")
mcp_call_logger.setLevel(logging.INFO)

# maxBytes: 10MB per file, backupCount: 5 files (total ~50MB)
file_handler = RotatingFileHandler(_log_dir / "mcp_calls.log", maxBytes=10 * 1024 * 1024, backupCount=5)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
mcp_call_logger.addHandler(file_handler)
mcp_call_logger.propagate = False

error_logger = logging.getLogger("error_logger")
error_logger.setLevel(logging.INFO)

error_file_handler = RotatingFileHandler(_log_dir / "errors.log", maxBytes=10 * 1024 * 1024, backupCount=5)
error_file_handler.setFormatter(StructuredLogFormatter())
error_logger.addHandler(error_file_handler)
error_logger.propagate = False


def log_structured_error(
    category: ErrorCategory,
    message: str,
    exception: Exception | None = None,
    context: dict | None = None,
    operation: str | None = None,
    **kwargs,
):
    """Log an error with a category, an operation name and arbitrary context fields."""
    extra = {"error_category": category.value}
    if operation:
        extra["operation"] = operation
    if context:
        extra.update(context)
    extra.update(kwargs)

    error_logger.log(
        _CATEGORY_LEVELS[category],
        message,
        exc_info=exception is not None,
        extra=extra,
    )


def safe_operation(
    operation_name: str,
    operation_func,
    *args,
    error_category: ErrorCategory = ErrorCategory.ERROR,
    context: dict | None = None,
    **kwargs,
):
    """Run ``operation_func`` and return ``(success, result, error)`` instead of raising."""
    try:
        return True, operation_func(*args, **kwargs), None
    except Exception as e:
        log_structured_error(
            category=error_category,
            message=f"Operation '{operation_name}' failed: {e}",
            exception=e,
            context=context,
            operation=operation_name,
        )
        return False, None, e


def _describe(value) -> str:
    if hasattr(value, "model_dump_json"):
        return value.model_dump_json(indent=None, exclude_none=True)
    return repr(value)


def _describe_call(args, kwargs) -> str:
    try:
        logged_args = [_describe(arg) for arg in args]
        logged_kwargs = {k: _describe(v) for k, v in kwargs.items()}
        return f"args={logged_args}, kwargs={logged_kwargs}"
    except Exception as e:
        return f"args/kwargs logging error: {e}"


def _describe_result(result) -> str:
    try:
        if isinstance(result, list):
            return "[" + ", ".join(_describe(item) for item in result) + "]"
        return _describe(result)
    except Exception as e:
        return f"Result logging error: {e}"


def _record_start(func_name, args, kwargs):
    if not METRICS_AVAILABLE:
        return None
    try:
        return record_tool_call_start(func_name, args, kwargs)
    except Exception as e:
        # Don't let metrics errors break the function call
        mcp_call_logger.warning(f"Metrics recording failed for {func_name}: {e}")
        return None


def _record_success(func_name, start_time, result):
    if not METRICS_AVAILABLE:
        return
    try:
        record_tool_call_success(func_name, start_time, len(str(result)))
    except Exception as e:
        mcp_call_logger.warning(f"Metrics success recording failed for {func_name}: {e}")


def _record_failure(func_name, start_time, error):
    if METRICS_AVAILABLE:
        try:
            record_tool_call_error(func_name, start_time, error)
        except Exception as metrics_error:
            mcp_call_logger.warning(f"Metrics error recording failed for {func_name}: {metrics_error}")

    mcp_call_logger.error(f"Tool {func_name} raised exception: {error}", exc_info=True)
    log_structured_error(
        category=ErrorCategory.ERROR,
        message=f"Tool {func_name} failed: {error}",
        exception=error,
        operation="tool_execution",
        function=func_name,
    )


# --- Decorator for Logging MCP Calls with Metrics ---
def log_mcp_call(func):
    """Log every call and return value of an MCP tool; works for sync and async tools."""
    func_name = getattr(func, "__name__", "unknown_function")

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = _record_start(func_name, args, kwargs)
            mcp_call_logger.info(f"Calling tool: {func_name} with {_describe_call(args, kwargs)}")
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _record_failure(func_name, start_time, e)
                raise
            _record_success(func_name, start_time, result)
            mcp_call_logger.info(f"Tool {func_name} returned: {_describe_result(result)}")
            return result

        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = _record_start(func_name, args, kwargs)
        mcp_call_logger.info(f"Calling tool: {func_name} with {_describe_call(args, kwargs)}")
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _record_failure(func_name, start_time, e)
            raise
        _record_success(func_name, start_time, result)
        mcp_call_logger.info(f"Tool {func_name} returned: {_describe_result(result)}")
        return result

    return wrapper
