"""Dart public API client."""

from .client import DartClient
from .client import task_from_api
from .client import to_api_payload
from .client import validate_token

__all__ = ["DartClient", "task_from_api", "to_api_payload", "validate_token"]
