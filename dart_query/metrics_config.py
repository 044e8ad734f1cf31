"""Dart Query Metrics Configuration.

Local-only metrics collection using OpenTelemetry with a Prometheus reader.
Counts tool calls and batch item outcomes. Disabled in test and CI
environments unless MCP_METRICS_ENABLED is set explicitly.
"""
from __future__ import annotations

import os
import socket
import time
from typing import Any

from opentelemetry import metrics
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST
from prometheus_client import generate_latest

# =============================================================================
# SERVICE CONFIGURATION
# =============================================================================

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "dart-query")
SERVICE_VERSION = os.getenv("OTEL_SERVICE_VERSION", "1.0.0")
DEPLOYMENT_ENVIRONMENT = os.getenv("DEPLOYMENT_ENVIRONMENT", "local")


def is_test_environment() -> bool:
    """Detect if running in test environment."""
    return "PYTEST_CURRENT_TEST" in os.environ or "CI" in os.environ or "GITHUB_ACTIONS" in os.environ


default_metrics_enabled = "false" if is_test_environment() else "true"
METRICS_ENABLED = os.getenv("MCP_METRICS_ENABLED", default_metrics_enabled).lower() == "true"

DEBUG_METRICS = os.getenv("MCP_METRICS_DEBUG", "false").lower() == "true"

# Metrics instances
meter = None
tool_calls_counter = None
batch_items_counter = None
prometheus_reader = None

_active_operations: dict[str, float] = {}
_metrics_initialized = False


def get_resource() -> Resource:
    """Create OpenTelemetry resource with service information."""
    return Resource.create(
        {
            "service.name": SERVICE_NAME,
            "service.version": SERVICE_VERSION,
            "deployment.environment": DEPLOYMENT_ENVIRONMENT,
            "host.name": socket.gethostname(),
            "telemetry.sdk.name": "opentelemetry",
            "telemetry.sdk.language": "python",
        }
    )


def initialize_metrics():
    """Initialize local metrics collection with Prometheus endpoint."""
    global meter, tool_calls_counter, batch_items_counter, prometheus_reader

    if not METRICS_ENABLED:
        if DEBUG_METRICS:
            print("[METRICS] Telemetry disabled")
        return

    try:
        prometheus_reader = PrometheusMetricReader()
        meter_provider = MeterProvider(
            resource=get_resource(),
            metric_readers=[prometheus_reader],
        )
        metrics.set_meter_provider(meter_provider)
        meter = metrics.get_meter(__name__)

        tool_calls_counter = meter.create_counter(
            name="dart_query_tool_calls_total",
            description="Total number of MCP tool calls",
            unit="1",
        )
        batch_items_counter = meter.create_counter(
            name="dart_query_batch_items_total",
            description="Batch items settled, by operation kind and outcome",
            unit="1",
        )

        if DEBUG_METRICS:
            print(f"[METRICS] Initialized: {SERVICE_NAME} v{SERVICE_VERSION}")
    except Exception as e:
        if DEBUG_METRICS:
            print(f"[METRICS] Init failed: {e}")


def is_metrics_enabled() -> bool:
    """Check if metrics collection is enabled."""
    return METRICS_ENABLED and meter is not None


def record_tool_call_start(tool_name: str, args: tuple, kwargs: dict) -> float | None:
    """Record start of tool call, return start time."""
    if not is_metrics_enabled():
        return None

    start_time = time.time()
    _active_operations[f"{tool_name}_{start_time}"] = start_time
    return start_time


def _record_tool_call(tool_name: str, start_time: float | None, status: str):
    try:
        if tool_calls_counter:
            tool_calls_counter.add(
                1, {"tool_name": tool_name, "status": status, "environment": DEPLOYMENT_ENVIRONMENT}
            )
        if start_time:
            _active_operations.pop(f"{tool_name}_{start_time}", None)
    except Exception as e:
        if DEBUG_METRICS:
            print(f"[METRICS] Record {status} failed: {e}")


def record_tool_call_success(tool_name: str, start_time: float | None, result_size: int = 0):
    """Record successful tool call."""
    if not is_metrics_enabled():
        return
    _record_tool_call(tool_name, start_time, "success")


def record_tool_call_error(tool_name: str, start_time: float | None, error: Exception):
    """Record failed tool call."""
    if not is_metrics_enabled():
        return
    _record_tool_call(tool_name, start_time, "error")


def record_batch_item(operation_type: str, outcome: str):
    """Count one settled batch item (outcome is 'success' or 'failure')."""
    if not is_metrics_enabled() or batch_items_counter is None:
        return

    try:
        batch_items_counter.add(1, {"operation_type": operation_type, "outcome": outcome})
    except Exception as e:
        if DEBUG_METRICS:
            print(f"[METRICS] Record batch item failed: {e}")


def get_metrics_export() -> tuple[str, str]:
    """Export metrics in Prometheus format."""
    if not is_metrics_enabled() or not prometheus_reader:
        return "# Metrics not available\n", "text/plain"

    try:
        return generate_latest().decode("utf-8"), CONTENT_TYPE_LATEST
    except Exception as e:
        return f"# Error: {e}\n", "text/plain"


def get_metrics_summary() -> dict[str, Any]:
    """Get metrics summary for debugging."""
    if not is_metrics_enabled():
        return {"status": "disabled"}

    return {
        "status": "active",
        "service_name": SERVICE_NAME,
        "service_version": SERVICE_VERSION,
        "environment": DEPLOYMENT_ENVIRONMENT,
        "active_operations": len(_active_operations),
        "prometheus_enabled": prometheus_reader is not None,
    }


def ensure_metrics_initialized():
    """Initialize metrics when server starts."""
    global _metrics_initialized
    if _metrics_initialized:
        return

    if METRICS_ENABLED and not is_test_environment():
        initialize_metrics()
    _metrics_initialized = True
