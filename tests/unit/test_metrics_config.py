import pytest

from dart_query import metrics_config


@pytest.fixture
def disabled_metrics(monkeypatch):
    """Fixture to ensure metrics are in disabled state for testing."""
    monkeypatch.setattr(metrics_config, "METRICS_ENABLED", False)
    monkeypatch.setattr(metrics_config, "meter", None)
    monkeypatch.setattr(metrics_config, "tool_calls_counter", None)
    monkeypatch.setattr(metrics_config, "batch_items_counter", None)
    monkeypatch.setattr(metrics_config, "prometheus_reader", None)
    metrics_config._active_operations.clear()


@pytest.fixture
def enabled_metrics(monkeypatch, mocker):
    """Mocks the meter and instruments for testing enabled state."""
    monkeypatch.setattr(metrics_config, "METRICS_ENABLED", True)
    monkeypatch.setattr(metrics_config, "meter", mocker.Mock())
    tool_calls_counter = mocker.Mock()
    batch_items_counter = mocker.Mock()
    monkeypatch.setattr(metrics_config, "tool_calls_counter", tool_calls_counter)
    monkeypatch.setattr(metrics_config, "batch_items_counter", batch_items_counter)
    monkeypatch.setattr(metrics_config, "prometheus_reader", mocker.Mock())
    monkeypatch.setattr(metrics_config, "generate_latest", mocker.Mock(return_value=b"prometheus_data"))
    monkeypatch.setattr(metrics_config, "CONTENT_TYPE_LATEST", "text/prometheus")
    yield tool_calls_counter, batch_items_counter
    metrics_config._active_operations.clear()


# --- Tests for Disabled State ---


def test_disabled_record_start_returns_none(disabled_metrics):
    assert metrics_config.record_tool_call_start("get_config", (), {}) is None
    assert metrics_config._active_operations == {}


def test_disabled_recorders_are_noops(disabled_metrics):
    metrics_config.record_tool_call_success("get_config", None)
    metrics_config.record_tool_call_error("get_config", None, ValueError("x"))
    metrics_config.record_batch_item("import", "success")


def test_disabled_export(disabled_metrics):
    assert metrics_config.get_metrics_export() == ("# Metrics not available\n", "text/plain")
    assert metrics_config.get_metrics_summary() == {"status": "disabled"}


# --- Tests for Enabled State ---


def test_enabled_tool_call_lifecycle(enabled_metrics):
    tool_calls_counter, _ = enabled_metrics

    start_time = metrics_config.record_tool_call_start("import_tasks_csv", (), {})
    assert start_time is not None
    assert len(metrics_config._active_operations) == 1

    metrics_config.record_tool_call_success("import_tasks_csv", start_time)

    assert metrics_config._active_operations == {}
    attributes = tool_calls_counter.add.call_args.args[1]
    assert attributes["tool_name"] == "import_tasks_csv"
    assert attributes["status"] == "success"


def test_enabled_tool_call_error(enabled_metrics):
    tool_calls_counter, _ = enabled_metrics
    metrics_config.record_tool_call_error("get_task", None, ValueError("x"))
    assert tool_calls_counter.add.call_args.args[1]["status"] == "error"


def test_enabled_batch_item(enabled_metrics):
    _, batch_items_counter = enabled_metrics
    metrics_config.record_batch_item("delete", "failure")
    batch_items_counter.add.assert_called_once_with(1, {"operation_type": "delete", "outcome": "failure"})


def test_enabled_export_and_summary(enabled_metrics):
    assert metrics_config.get_metrics_export() == ("prometheus_data", "text/prometheus")
    summary = metrics_config.get_metrics_summary()
    assert summary["status"] == "active"
    assert summary["service_name"] == metrics_config.SERVICE_NAME
    assert summary["prometheus_enabled"] is True
