"""Centralized configuration management for the Dart Query MCP server.

This module provides a single source of truth for all configuration
including the API token, endpoint, timeouts, cache TTLs and batch limits.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import Field
from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Centralized settings for the Dart Query MCP server."""

    # === Dart API ===
    dart_token: str | None = Field(default=None, description="Dart API token (starts with 'dsa_')")
    dart_api_base_url: str = Field(
        default="https://app.dartai.com/api/v0/public", description="Dart public API base URL"
    )

    # === Timeout / Retry Configuration ===
    request_timeout: float = Field(default=30.0, description="HTTP request timeout in seconds")
    max_retries: int = Field(default=5, description="Maximum retries for rate-limited (429) requests")
    retry_initial_delay: float = Field(default=1.0, description="First backoff delay in seconds")
    retry_max_delay: float = Field(default=30.0, description="Backoff ceiling in seconds")

    # === Caching ===
    config_cache_ttl_seconds: int = Field(default=300, description="Workspace config cache TTL")

    # === Batch Operations ===
    batch_retention_seconds: int = Field(
        default=3600, description="How long finished batch operations stay queryable"
    )
    default_concurrency: int = Field(default=5, description="Default parallel remote calls per batch")
    min_concurrency: int = Field(default=1, description="Lowest accepted concurrency")
    max_concurrency: int = Field(default=20, description="Highest accepted concurrency")
    max_import_rows: int = Field(default=10000, description="Hard ceiling on CSV data rows per import")
    import_preview_rows: int = Field(default=10, description="Rows shown in an import preview")
    max_selector_matches: int = Field(default=10000, description="Ceiling on tasks matched by a selector")
    update_preview_rows: int = Field(default=10, description="Tasks shown in a batch update preview")
    delete_preview_rows: int = Field(default=20, description="Tasks shown in a batch delete preview")
    list_page_size: int = Field(default=500, description="Page size when resolving selectors")

    # === Test Environment Detection ===
    pytest_current_test: str | None = Field(default=None, description="Test mode indicator")

    # === HTTP SSE Server Configuration ===
    sse_host: str = Field(default="localhost", description="SSE server host")
    sse_port: int = Field(default=3001, description="SSE server port")

    # === Logging Configuration ===
    log_level: str = Field(default="INFO", description="Logging level")
    structured_logging: bool = Field(default=True, description="Enable structured JSON logging")

    # === Performance Configuration ===
    enable_metrics: bool = Field(default=True, description="Enable metrics collection")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    def __init__(self, **kwargs):
        """Initialize settings with environment-specific adjustments."""
        super().__init__(**kwargs)
        self._adjust_for_test_environment()

    def _adjust_for_test_environment(self):
        """Use short timeouts and no backoff waits under pytest."""
        if self.is_test_environment:
            self.request_timeout = 5.0
            self.retry_initial_delay = 0.0
            self.retry_max_delay = 0.0

    @model_validator(mode="after")
    def validate_configuration(self):
        """Validate configuration consistency."""
        if self.min_concurrency < 1 or self.min_concurrency > self.max_concurrency:
            raise ValueError("min_concurrency must be >= 1 and <= max_concurrency")
        if not self.min_concurrency <= self.default_concurrency <= self.max_concurrency:
            raise ValueError("default_concurrency must lie between min_concurrency and max_concurrency")
        return self

    @property
    def is_test_environment(self) -> bool:
        """Check if running in test environment."""
        return "PYTEST_CURRENT_TEST" in os.environ or self.pytest_current_test is not None

    @property
    def token_configured(self) -> bool:
        """Check if a Dart token is present."""
        return bool(self.dart_token and self.dart_token.strip())


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        load_dotenv()
        _settings = Settings()
    return _settings


def reset_settings():
    """Reset the global settings instance (primarily for testing)."""
    global _settings
    _settings = None
