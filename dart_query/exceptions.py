"""Exception hierarchy for the Dart Query MCP server.

Every error raised to a tool caller derives from ``DartQueryError`` and carries
a machine-checkable ``error_code``, a ``details`` mapping (including the
offending field name for validation failures) and a user-facing message.
"""

from __future__ import annotations

from typing import Any


class DartQueryError(Exception):
    """Base class for all Dart Query errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.user_message = user_message or message

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for tool responses and structured logs."""
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
        }


class ValidationError(DartQueryError):
    """Raised when job-level input is missing or malformed."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        suggestions: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if field is not None:
            details["field"] = field
        if value is not None:
            details["invalid_value"] = value
        if suggestions:
            details["suggestions"] = list(suggestions)
        super().__init__(message, error_code="VALIDATION_ERROR", details=details)
        self.field = field
        self.suggestions = list(suggestions or [])


class DartAPIError(DartQueryError):
    """Raised when the Dart API returns an error or cannot be reached.

    ``status_code`` is 0 for network-level failures.
    """

    def __init__(self, message: str, status_code: int, response: Any = None):
        super().__init__(
            message,
            error_code="DART_API_ERROR",
            details={"status_code": status_code},
        )
        self.status_code = status_code
        self.response = response

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class ConfigurationError(DartQueryError):
    """Raised when a required setting is missing or invalid."""

    def __init__(self, setting: str, reason: str):
        super().__init__(
            f"Invalid configuration for '{setting}': {reason}",
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting, "failure_reason": reason},
            user_message=f"Configuration error: {reason}",
        )
        self.setting = setting


class BatchAbortedError(DartQueryError):
    """Raised when a fail-fast batch stops after its first item failure.

    The triggering exception is available as ``cause`` (and ``__cause__``);
    ``report`` holds the outcomes settled before the stop.
    """

    def __init__(self, cause: BaseException, report: Any = None, batch_operation_id: str | None = None):
        details = {"failure_reason": str(cause)}
        if batch_operation_id:
            details["batch_operation_id"] = batch_operation_id
        super().__init__(
            f"Batch aborted after first failure: {cause}",
            error_code="BATCH_ABORTED",
            details=details,
        )
        self.cause = cause
        self.report = report
        self.batch_operation_id = batch_operation_id
