"""Batch operation MCP tools.

This module provides CSV import, selector-based batch update and delete, and
the status lookup for running or recently finished batch operations.
"""

from typing import Any

from ..batch.models import GetBatchStatusResult
from ..exceptions import ValidationError
from ..logger_config import log_mcp_call
from ..models import BatchDeleteResult
from ..models import BatchUpdateResult
from ..models import ImportResult


def register_batch_tools(mcp_server, services):
    """Register all batch-related tools with the MCP server."""

    @mcp_server.tool()
    @log_mcp_call
    async def import_tasks_csv(
        dartboard: str,
        csv_data: str | None = None,
        csv_file_path: str | None = None,
        column_mapping: dict[str, str] | None = None,
        validate_only: bool = True,
        continue_on_error: bool = True,
        concurrency: int = 5,
    ) -> ImportResult:
        """Import tasks from CSV into one dartboard.

        Always run with ``validate_only=true`` first: it validates every row,
        resolves names to workspace ids and previews the first 10 tasks without
        creating anything.

        Parameters:
            dartboard (str): Target dartboard name or dart_id; applied to every row
            csv_data (str, optional): Inline CSV content with a header row
            csv_file_path (str, optional): Path to a CSV file (used when csv_data is absent)
            column_mapping (Dict[str, str], optional): Custom header-to-column mapping,
                e.g. ``{"Ticket": "title"}``. Built-in aliases cover common names.
            validate_only (bool): Preview only, create nothing (default: True)
            continue_on_error (bool): Skip invalid rows and keep creating after
                failures (default: True)
            concurrency (int): Parallel create calls, 1-20 (default: 5)

        Returns:
            ImportResult: Row counts, per-row validation errors, preview (validate_only)
            or created ids and failed items with row context (execute). When more
            than half of the creates fail, the first failed item carries a rollback
            warning listing the created ids.
        """
        services.registry.sweep()
        return await services.import_pipeline.run(
            dartboard=dartboard,
            csv_data=csv_data,
            csv_file_path=csv_file_path,
            column_mapping=column_mapping,
            validate_only=validate_only,
            continue_on_error=continue_on_error,
            concurrency=concurrency,
        )

    @mcp_server.tool()
    @log_mcp_call
    async def batch_update_tasks(
        selector: dict[str, Any],
        updates: dict[str, Any],
        dry_run: bool = True,
        concurrency: int = 5,
    ) -> BatchUpdateResult:
        """Apply the same updates to every task matching a selector.

        Parameters:
            selector (Dict[str, Any]): Task filters. Any of ``dartboard``, ``status``,
                ``assignee``, ``priority``, ``tags`` (list), ``due_before``, ``due_after``,
                and ``title_contains`` (case-insensitive substring)
            updates (Dict[str, Any]): Fields to set (title, description, dartboard,
                status, priority, size, assignees, tags, due_at, start_at, parent_task)
            dry_run (bool): Preview up to 10 matching tasks without updating (default: True)
            concurrency (int): Parallel update calls, 1-20 (default: 5)

        Returns:
            BatchUpdateResult: Match count, preview (dry run) or per-task outcomes
        """
        services.registry.sweep()
        return await services.selector_pipeline.update(
            selector, updates, dry_run=dry_run, concurrency=concurrency
        )

    @mcp_server.tool()
    @log_mcp_call
    async def batch_delete_tasks(
        selector: dict[str, Any],
        dry_run: bool = True,
        confirm: bool = False,
        concurrency: int = 5,
    ) -> BatchDeleteResult:
        """Move every task matching a selector to the trash.

        Deleted tasks are recoverable from the Dart web UI. Executing requires
        both ``dry_run=false`` and ``confirm=true``.

        Parameters:
            selector (Dict[str, Any]): Task filters, as for ``batch_update_tasks``
            dry_run (bool): Preview up to 20 matching tasks without deleting (default: True)
            confirm (bool): Must be true when dry_run is false
            concurrency (int): Parallel delete calls, 1-20 (default: 5)

        Returns:
            BatchDeleteResult: Match count, preview (dry run) or per-task outcomes
        """
        services.registry.sweep()
        return await services.selector_pipeline.delete(
            selector, dry_run=dry_run, confirm=confirm, concurrency=concurrency
        )

    @mcp_server.tool()
    @log_mcp_call
    def get_batch_status(batch_operation_id: str) -> GetBatchStatusResult:
        """Get progress and results of a batch operation.

        Operations are kept in memory for one hour after they finish.

        Parameters:
            batch_operation_id (str): Id returned by a batch tool

        Returns:
            GetBatchStatusResult: ``found`` plus the operation snapshot, or a message
        """
        if not isinstance(batch_operation_id, str) or not batch_operation_id.strip():
            raise ValidationError(
                "batch_operation_id is required and must be a non-empty string", field="batch_operation_id"
            )

        operation = services.registry.get(batch_operation_id.strip())
        if operation is None:
            hours = services.settings.batch_retention_seconds / 3600
            window = f"{hours:g} hour" + ("" if hours == 1 else "s")
            return GetBatchStatusResult(
                found=False,
                message=(
                    f'Batch operation "{batch_operation_id}" not found. '
                    f"Operations are kept in memory for {window} after completion."
                ),
            )
        return GetBatchStatusResult(found=True, operation=operation)

    return {
        "import_tasks_csv": import_tasks_csv,
        "batch_update_tasks": batch_update_tasks,
        "batch_delete_tasks": batch_delete_tasks,
        "get_batch_status": get_batch_status,
    }
