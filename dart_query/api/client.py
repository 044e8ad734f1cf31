"""Async HTTP client for the Dart public API.

Handles bearer authentication, error mapping to ``DartAPIError``, retry of
rate-limited (429) responses, and the snake_case / camelCase translation
between tool payloads and the wire format.
"""

import asyncio
import logging
from typing import Any

import httpx

from ..config import get_settings
from ..exceptions import DartAPIError
from ..models import DartConfig
from ..models import DartTask

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "dsa_"
TOKEN_HELP_URL = "https://app.dartai.com/?settings=account"

_STATUS_PREFIXES = {
    400: "Bad Request: {}",
    401: "Unauthorized: Invalid or expired token. {}",
    403: "Forbidden: Insufficient permissions. {}",
    404: "Not Found: {}",
    429: "Rate Limit Exceeded: {}",
    500: "Internal Server Error: {}",
    502: "Bad Gateway: {}",
    503: "Service Unavailable: {}",
}

# snake_case tool field -> camelCase API field
_OUTBOUND_FIELDS = {
    "due_at": "dueAt",
    "start_at": "startAt",
    "parent_task": "parentId",
}

# camelCase API field -> snake_case task field
_INBOUND_FIELDS = {
    "id": "dart_id",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "dueAt": "due_at",
    "startAt": "start_at",
    "completedAt": "completed_at",
    "parentId": "parent_task",
}

_LIST_FILTERS = ("assignee", "status", "dartboard", "priority", "due_before", "due_after")


def validate_token(token: str | None) -> str:
    """Return the trimmed token or raise ``DartAPIError(400)``."""
    if not token or not token.strip():
        raise DartAPIError(f"DART_TOKEN is required. Get your token from: {TOKEN_HELP_URL}", 400)
    token = token.strip()
    if not token.startswith(TOKEN_PREFIX):
        raise DartAPIError(
            f'DART_TOKEN must start with "{TOKEN_PREFIX}". Check your token format at: {TOKEN_HELP_URL}',
            400,
        )
    return token


def to_api_payload(fields: dict[str, Any]) -> dict[str, Any]:
    """Translate tool field names to the API's names, dropping unset values."""
    return {_OUTBOUND_FIELDS.get(name, name): value for name, value in fields.items() if value is not None}


def task_from_api(data: dict[str, Any]) -> DartTask:
    """Build a ``DartTask`` from an API task object."""
    mapped = dict(data)
    for api_name, field_name in _INBOUND_FIELDS.items():
        if api_name in data and mapped.get(field_name) is None:
            mapped[field_name] = data[api_name]
    for list_field in ("assignees", "tags"):
        if mapped.get(list_field) is None:
            mapped[list_field] = []
    return DartTask.model_validate(mapped)


class DartClient:
    """Client for the Dart workspace REST API.

    Use as an async context manager, or call ``aclose()`` when done.
    ``transport`` is passed to ``httpx.AsyncClient`` and lets tests substitute
    an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        token: str | None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_initial_delay: float | None = None,
        retry_max_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.token = validate_token(token)
        self.base_url = (base_url or settings.dart_api_base_url).rstrip("/")
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self.retry_initial_delay = (
            settings.retry_initial_delay if retry_initial_delay is None else retry_initial_delay
        )
        self.retry_max_delay = settings.retry_max_delay if retry_max_delay is None else retry_max_delay
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=settings.request_timeout if timeout is None else timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "DartClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    # === Transport ===

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: dict | None = None,
        params: list[tuple[str, str]] | None = None,
    ) -> dict[str, Any]:
        """Send one request, retrying 429 responses with exponential backoff.

        Raises:
            DartAPIError: On any non-2xx response, malformed body or network failure
        """
        attempt = 0
        while True:
            try:
                return await self._send(method, endpoint, json_data, params)
            except DartAPIError as e:
                if not e.is_rate_limited or attempt >= self.max_retries:
                    raise
                delay = self._backoff_delay(attempt, e.response)
                attempt += 1
                logger.warning(
                    "Rate limit hit on %s %s (attempt %d/%d), retrying in %.1fs",
                    method,
                    endpoint,
                    attempt,
                    self.max_retries + 1,
                    delay,
                )
                await asyncio.sleep(delay)

    def _backoff_delay(self, attempt: int, response: Any) -> float:
        if isinstance(response, dict) and isinstance(response.get("retry_after"), (int, float)):
            return min(float(response["retry_after"]), self.retry_max_delay)
        return min(self.retry_initial_delay * (2**attempt), self.retry_max_delay)

    async def _send(
        self,
        method: str,
        endpoint: str,
        json_data: dict | None,
        params: list[tuple[str, str]] | None,
    ) -> dict[str, Any]:
        try:
            response = await self._http.request(method, endpoint, json=json_data, params=params)
        except httpx.TimeoutException as e:
            logger.error("Dart API timeout: %s %s", method, endpoint)
            raise DartAPIError(f"Network error: request timed out ({e})", 0) from e
        except httpx.RequestError as e:
            logger.error("Dart API network error: %s", e)
            raise DartAPIError(f"Network error: {e}", 0) from e

        if response.is_error:
            self._raise_for_status(response)

        if not response.content or "application/json" not in response.headers.get("content-type", ""):
            return {}

        try:
            body = response.json()
        except ValueError as e:
            raise DartAPIError(f"Failed to parse JSON response: {e}", response.status_code) from e

        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            raise DartAPIError(body["error"].get("message", "Unknown error"), response.status_code, body)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    @staticmethod
    def _raise_for_status(response: httpx.Response):
        message = response.reason_phrase or "Unknown error"
        body: Any = {}
        if "application/json" in response.headers.get("content-type", ""):
            try:
                body = response.json()
            except ValueError:
                body = {}
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                message = body["error"].get("message") or message

        template = _STATUS_PREFIXES.get(response.status_code, f"HTTP {response.status_code}: {{}}")
        raise DartAPIError(template.format(message), response.status_code, body)

    # === Endpoints ===

    async def get_config(self) -> DartConfig:
        """Fetch the workspace reference configuration."""
        data = await self._make_request("GET", "/config")
        return DartConfig.model_validate(data)

    async def create_task(self, payload: dict[str, Any]) -> DartTask:
        """Create a task. ``title`` and ``dartboard`` are required."""
        for required in ("title", "dartboard"):
            value = payload.get(required)
            if not isinstance(value, str) or not value.strip():
                raise DartAPIError(f"{required} is required and must be a non-empty string", 400)

        data = await self._make_request("POST", "/tasks", {"item": to_api_payload(payload)})
        return task_from_api(data["item"])

    async def get_task(self, dart_id: str) -> DartTask:
        dart_id = self._require_id(dart_id)
        data = await self._make_request("GET", f"/tasks/{dart_id}")
        return task_from_api(data["item"])

    async def update_task(self, dart_id: str, updates: dict[str, Any]) -> DartTask:
        """Apply a partial update to one task."""
        dart_id = self._require_id(dart_id)
        if not updates:
            raise DartAPIError("updates is required and must be a non-empty object", 400)

        item = {"id": dart_id, **to_api_payload(updates)}
        data = await self._make_request("PUT", f"/tasks/{dart_id}", {"item": item})
        return task_from_api(data["item"])

    async def delete_task(self, dart_id: str) -> dict[str, Any]:
        """Move a task to the trash."""
        dart_id = self._require_id(dart_id)
        data = await self._make_request("DELETE", f"/tasks/{dart_id}")
        item = data.get("item") or {}
        return {"success": True, "dart_id": item.get("id") or dart_id}

    async def list_tasks(
        self,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[DartTask], int]:
        """List tasks matching API-side filters.

        Returns:
            tuple: ``(tasks, total)`` where ``total`` is the server-side match count
        """
        params: list[tuple[str, str]] = []
        filters = filters or {}
        for name in _LIST_FILTERS:
            if filters.get(name) is not None:
                params.append((name, str(filters[name])))
        for tag in filters.get("tags") or []:
            params.append(("tags", tag))
        if limit is not None:
            params.append(("limit", str(limit)))
        if offset is not None:
            params.append(("offset", str(offset)))

        data = await self._make_request("GET", "/tasks/list", params=params or None)
        tasks = [task_from_api(task) for task in data.get("results") or []]
        return tasks, data.get("count") or 0

    @staticmethod
    def _require_id(dart_id: str) -> str:
        if not isinstance(dart_id, str) or not dart_id.strip():
            raise DartAPIError("dart_id is required and must be a non-empty string", 400)
        return dart_id.strip()
