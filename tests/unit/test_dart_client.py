"""Unit tests for the Dart API client.

Requests are answered by ``httpx.MockTransport`` handlers, so no network
access is needed.
"""

import json

import httpx
import pytest

from dart_query.api import DartClient
from dart_query.api import task_from_api
from dart_query.api import to_api_payload
from dart_query.api import validate_token
from dart_query.exceptions import DartAPIError


def make_client(handler, **kwargs) -> DartClient:
    return DartClient("dsa_test_token", transport=httpx.MockTransport(handler), **kwargs)


class TestValidateToken:
    def test_accepts_and_trims(self):
        assert validate_token("  dsa_abc  ") == "dsa_abc"

    @pytest.mark.parametrize("token", [None, "", "   "])
    def test_missing_token(self, token):
        with pytest.raises(DartAPIError) as exc_info:
            validate_token(token)
        assert exc_info.value.status_code == 400
        assert exc_info.value.message.startswith("DART_TOKEN is required")

    def test_wrong_prefix(self):
        with pytest.raises(DartAPIError) as exc_info:
            validate_token("sk_live_123")
        assert 'must start with "dsa_"' in exc_info.value.message

    def test_client_validates_token(self):
        with pytest.raises(DartAPIError):
            DartClient("not-a-token")


class TestFieldMapping:
    def test_outbound_names_and_none_dropping(self):
        payload = to_api_payload(
            {"title": "A", "due_at": "2026-01-17", "start_at": None, "parent_task": "p1", "tags": ["bug"]}
        )
        assert payload == {"title": "A", "dueAt": "2026-01-17", "parentId": "p1", "tags": ["bug"]}

    def test_inbound_names(self):
        task = task_from_api(
            {
                "id": "t1",
                "title": "A",
                "dueAt": "2026-01-17",
                "parentId": "p1",
                "createdAt": "2026-01-01T00:00:00Z",
                "assignees": None,
            }
        )
        assert task.dart_id == "t1"
        assert task.due_at == "2026-01-17"
        assert task.parent_task == "p1"
        assert task.created_at == "2026-01-01T00:00:00Z"
        assert task.assignees == []


class TestDartClientRequests:
    """Test endpoints against a mock transport."""

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            return httpx.Response(200, json={"dartboards": ["Engineering"], "statuses": ["Done"]})

        async with make_client(handler) as client:
            config = await client.get_config()

        assert seen["auth"] == "Bearer dsa_test_token"
        assert seen["path"].endswith("/config")
        assert config.dartboards[0].name == "Engineering"

    @pytest.mark.asyncio
    async def test_create_task_payload(self):
        sent = {}

        def handler(request: httpx.Request):
            sent.update(json.loads(request.content))
            return httpx.Response(200, json={"item": {"id": "t1", "title": "A", "dueAt": "2026-01-17"}})

        async with make_client(handler) as client:
            task = await client.create_task(
                {"title": "A", "dartboard": "board-eng", "due_at": "2026-01-17", "description": None}
            )

        assert sent == {"item": {"title": "A", "dartboard": "board-eng", "dueAt": "2026-01-17"}}
        assert task.dart_id == "t1"
        assert task.due_at == "2026-01-17"

    @pytest.mark.asyncio
    async def test_create_task_requires_title_and_dartboard(self):
        def handler(request):
            raise AssertionError("no request expected")

        async with make_client(handler) as client:
            with pytest.raises(DartAPIError) as exc_info:
                await client.create_task({"title": "A"})
        assert exc_info.value.message == "dartboard is required and must be a non-empty string"

    @pytest.mark.asyncio
    async def test_update_task_sends_id_in_item(self):
        sent = {}

        def handler(request: httpx.Request):
            sent["method"] = request.method
            sent["path"] = request.url.path
            sent["body"] = json.loads(request.content)
            return httpx.Response(200, json={"item": {"id": "t1", "title": "A", "status": "Done"}})

        async with make_client(handler) as client:
            task = await client.update_task("t1", {"status": "Done"})

        assert sent["method"] == "PUT"
        assert sent["path"].endswith("/tasks/t1")
        assert sent["body"] == {"item": {"id": "t1", "status": "Done"}}
        assert task.status == "Done"

    @pytest.mark.asyncio
    async def test_delete_task(self):
        def handler(request: httpx.Request):
            assert request.method == "DELETE"
            return httpx.Response(200, json={"item": {"id": "t1"}})

        async with make_client(handler) as client:
            assert await client.delete_task("t1") == {"success": True, "dart_id": "t1"}

    @pytest.mark.asyncio
    async def test_blank_id_is_rejected(self):
        async with make_client(lambda request: httpx.Response(200)) as client:
            with pytest.raises(DartAPIError) as exc_info:
                await client.get_task("  ")
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_list_tasks_params(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["params"] = request.url.params
            return httpx.Response(200, json={"count": 7, "results": [{"id": "t1", "title": "A"}]})

        async with make_client(handler) as client:
            tasks, total = await client.list_tasks(
                {"dartboard": "board-eng", "status": "Doing", "tags": ["bug", "urgent"]}, limit=50, offset=100
            )

        params = seen["params"]
        assert params["dartboard"] == "board-eng"
        assert params["status"] == "Doing"
        assert params.get_list("tags") == ["bug", "urgent"]
        assert params["limit"] == "50"
        assert params["offset"] == "100"
        assert total == 7
        assert [task.dart_id for task in tasks] == ["t1"]

    @pytest.mark.asyncio
    async def test_data_wrapper_is_unwrapped(self):
        def handler(request):
            return httpx.Response(200, json={"data": {"item": {"id": "t9", "title": "Wrapped"}}})

        async with make_client(handler) as client:
            task = await client.get_task("t9")
        assert task.title == "Wrapped"


class TestDartClientErrors:
    """Test error mapping and retry."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, body, expected",
        [
            (400, {"error": {"message": "title too long"}}, "Bad Request: title too long"),
            (401, None, "Unauthorized: Invalid or expired token. Unauthorized"),
            (403, None, "Forbidden: Insufficient permissions. Forbidden"),
            (404, {"error": {"message": "Task missing"}}, "Not Found: Task missing"),
            (500, None, "Internal Server Error: Internal Server Error"),
            (503, None, "Service Unavailable: Service Unavailable"),
            (418, None, "HTTP 418: I'm a teapot"),
        ],
    )
    async def test_status_mapping(self, status, body, expected):
        def handler(request):
            if body is None:
                return httpx.Response(status)
            return httpx.Response(status, json=body)

        async with make_client(handler) as client:
            with pytest.raises(DartAPIError) as exc_info:
                await client.get_task("t1")

        assert exc_info.value.status_code == status
        assert exc_info.value.message == expected

    @pytest.mark.asyncio
    async def test_error_body_on_success_status(self):
        def handler(request):
            return httpx.Response(200, json={"error": {"message": "workspace locked"}})

        async with make_client(handler) as client:
            with pytest.raises(DartAPIError) as exc_info:
                await client.get_config()
        assert exc_info.value.message == "workspace locked"

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        async with make_client(handler) as client:
            with pytest.raises(DartAPIError) as exc_info:
                await client.get_config()

        assert exc_info.value.status_code == 0
        assert exc_info.value.message == "Network error: connection refused"

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(429, json={"error": {"message": "slow down"}})
            return httpx.Response(200, json={"item": {"id": "t1", "title": "A"}})

        async with make_client(handler) as client:
            task = await client.get_task("t1")

        assert task.dart_id == "t1"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_rate_limit_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429)

        async with make_client(handler, max_retries=2) as client:
            with pytest.raises(DartAPIError) as exc_info:
                await client.get_task("t1")

        assert exc_info.value.is_rate_limited
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        async with make_client(handler) as client:
            with pytest.raises(DartAPIError):
                await client.get_task("t1")
        assert len(calls) == 1

    def test_backoff_delay(self):
        client = make_client(lambda request: httpx.Response(200), retry_initial_delay=1.0, retry_max_delay=5.0)

        assert client._backoff_delay(0, {}) == 1.0
        assert client._backoff_delay(2, {}) == 4.0
        assert client._backoff_delay(5, {}) == 5.0
        assert client._backoff_delay(0, {"retry_after": 3}) == 3.0
