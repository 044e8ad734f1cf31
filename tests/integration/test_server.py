"""Integration tests for the assembled FastMCP server."""

import pytest
from starlette.testclient import TestClient

from dart_query.server import create_server
from dart_query.server import mcp_server

pytestmark = pytest.mark.integration

EXPECTED_TOOLS = {
    "get_config",
    "create_task",
    "get_task",
    "update_task",
    "delete_task",
    "import_tasks_csv",
    "batch_update_tasks",
    "batch_delete_tasks",
    "get_batch_status",
}


@pytest.mark.asyncio
async def test_server_exposes_every_tool():
    tools = await mcp_server.list_tools()
    assert {tool.name for tool in tools} == EXPECTED_TOOLS


@pytest.mark.asyncio
async def test_tool_schemas_keep_parameters():
    tools = {tool.name: tool for tool in await mcp_server.list_tools()}

    import_schema = tools["import_tasks_csv"].inputSchema
    assert import_schema["required"] == ["dartboard"]
    assert {"csv_data", "validate_only", "concurrency"} <= set(import_schema["properties"])
    assert set(tools["batch_delete_tasks"].inputSchema["properties"]) == {
        "selector",
        "dry_run",
        "confirm",
        "concurrency",
    }


@pytest.mark.asyncio
async def test_call_tool_through_server(services, fake_client):
    server = create_server(services)

    await server.call_tool("get_batch_status", {"batch_operation_id": "batch_import_1_missing"})
    await server.call_tool("get_config", {"include": ["dartboards"]})

    assert fake_client.calls_to("get_config") != []


def test_health_and_metrics_routes(services):
    app = create_server(services).sse_app()

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        metrics = client.get("/metrics")
        assert metrics.status_code == 200
        assert "Metrics not available" in metrics.text
        assert client.get("/metrics/summary").json() == {"status": "disabled"}
