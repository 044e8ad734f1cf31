"""Single-task MCP tools.

Create, read, update and delete one task. References (dartboard, status,
assignees, tags, priority and size) are given by name and resolved against
the cached workspace config before the API call.
"""

from typing import Any

from ..exceptions import DartAPIError
from ..exceptions import ValidationError
from ..logger_config import log_mcp_call
from ..models import DartTask
from ..models import DeleteTaskResult
from ..task_fields import resolve_task_fields


def _require_dart_id(dart_id: str) -> str:
    if not isinstance(dart_id, str) or not dart_id.strip():
        raise ValidationError("dart_id is required and must be a non-empty string", field="dart_id")
    return dart_id.strip()


def _task_not_found(dart_id: str, error: DartAPIError) -> DartAPIError:
    return DartAPIError(
        f'Task not found: No task with dart_id "{dart_id}" exists in workspace', 404, error.response
    )


def register_task_tools(mcp_server, services):
    """Register all single-task tools with the MCP server."""

    @mcp_server.tool()
    @log_mcp_call
    async def create_task(
        title: str,
        dartboard: str,
        description: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        size: str | None = None,
        assignees: list[str] | None = None,
        tags: list[str] | None = None,
        due_at: str | None = None,
        start_at: str | None = None,
        parent_task: str | None = None,
    ) -> DartTask:
        """Create one task.

        Parameters:
            title (str): Task title, 1-500 characters
            dartboard (str): Dartboard name or dart_id
            description (str, optional): Task description
            status (str, optional): Status name
            priority (str, optional): Priority label from the workspace config
            size (str, optional): Size label from the workspace config
            assignees (List[str], optional): Assignee names or emails
            tags (List[str], optional): Tag names
            due_at (str, optional): ISO 8601 due date
            start_at (str, optional): ISO 8601 start date
            parent_task (str, optional): dart_id of the parent task

        Returns:
            DartTask: The created task
        """
        fields = {
            "title": title,
            "dartboard": dartboard,
            "description": description,
            "status": status,
            "priority": priority,
            "size": size,
            "assignees": assignees,
            "tags": tags,
            "due_at": due_at,
            "start_at": start_at,
            "parent_task": parent_task,
        }
        config = await services.config_provider.fetch()
        payload = resolve_task_fields({k: v for k, v in fields.items() if v is not None}, config)

        async with services.client_factory() as client:
            return await client.create_task(payload)

    @mcp_server.tool()
    @log_mcp_call
    async def get_task(dart_id: str) -> DartTask:
        """Get one task by dart_id."""
        dart_id = _require_dart_id(dart_id)
        async with services.client_factory() as client:
            try:
                return await client.get_task(dart_id)
            except DartAPIError as e:
                if e.is_not_found:
                    raise _task_not_found(dart_id, e) from e
                raise

    @mcp_server.tool()
    @log_mcp_call
    async def update_task(dart_id: str, updates: dict[str, Any]) -> DartTask:
        """Update fields of one task.

        Parameters:
            dart_id (str): Task to update
            updates (Dict[str, Any]): Fields to set, as for ``create_task``

        Returns:
            DartTask: The updated task
        """
        dart_id = _require_dart_id(dart_id)
        if not isinstance(updates, dict) or not updates:
            raise ValidationError("updates is required and must be a non-empty object", field="updates")

        config = await services.config_provider.fetch()
        resolved = resolve_task_fields(updates, config)

        async with services.client_factory() as client:
            try:
                return await client.update_task(dart_id, resolved)
            except DartAPIError as e:
                if e.is_not_found:
                    raise _task_not_found(dart_id, e) from e
                raise

    @mcp_server.tool()
    @log_mcp_call
    async def delete_task(dart_id: str) -> DeleteTaskResult:
        """Move one task to the trash (recoverable from the Dart web UI)."""
        dart_id = _require_dart_id(dart_id)
        async with services.client_factory() as client:
            try:
                result = await client.delete_task(dart_id)
            except DartAPIError as e:
                if e.is_not_found:
                    raise _task_not_found(dart_id, e) from e
                raise

        return DeleteTaskResult(
            dart_id=result["dart_id"],
            message=(
                f'Task "{dart_id}" has been moved to trash. '
                "You can restore it from the Dart web UI at https://app.dartai.com/"
            ),
        )

    return {
        "create_task": create_task,
        "get_task": get_task,
        "update_task": update_task,
        "delete_task": delete_task,
    }
