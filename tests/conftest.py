"""The pytest configuration for Dart Query testing.

Provides a test token, disables metrics, resets the settings singleton around
every test, and wires an in-memory Dart client into the service container.
"""

import os

import pytest

from dart_query.config import get_settings
from dart_query.config import reset_settings
from dart_query.services import build_services

from .shared.fakes import FakeDartClient
from .shared.fakes import make_config


@pytest.fixture(scope="session", autouse=True)
def disable_metrics_for_tests():
    """Keep OpenTelemetry from starting a meter provider during tests."""
    previous_value = os.environ.get("MCP_METRICS_ENABLED")
    os.environ["MCP_METRICS_ENABLED"] = "false"
    yield
    if previous_value is not None:
        os.environ["MCP_METRICS_ENABLED"] = previous_value
    else:
        os.environ.pop("MCP_METRICS_ENABLED", None)


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """Fresh settings with a well-formed test token for every test."""
    monkeypatch.setenv("DART_TOKEN", "dsa_test_token")
    reset_settings()
    yield get_settings()
    reset_settings()


@pytest.fixture
def workspace_config():
    return make_config()


@pytest.fixture
def fake_client(workspace_config):
    return FakeDartClient(config=workspace_config)


@pytest.fixture
def services(test_settings, fake_client):
    """Service container backed by the in-memory client."""
    return build_services(test_settings, client_factory=fake_client.factory)


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "integration: tool handlers driven through the FastMCP server")
