"""Selector-driven batch update and delete.

A selector is a mapping of ``list_tasks`` filters, optionally narrowed by a
case-insensitive ``title_contains`` substring applied after fetching. Both
pipelines preview by default (``dry_run=True``) and, when executed, run one
remote call per matched task through ``BatchExecutor`` with
continue-on-error semantics.
"""

import logging
import time
from collections.abc import Callable
from typing import Any

from ..cache.config_cache import ReferenceConfigProvider
from ..config import Settings
from ..exceptions import DartAPIError
from ..exceptions import ValidationError
from ..models import BatchDeleteResult
from ..models import BatchUpdateResult
from ..models import DartTask
from ..models import DeletePreview
from ..models import FailedTaskItem
from ..models import UpdatePreview
from ..parsers.csv_parser import find_closest_matches
from ..task_fields import resolve_task_fields
from .executor import BatchExecutor
from .executor import validate_concurrency
from .models import ExecutionReport
from .registry import BatchOperationRegistry

try:
    from ..metrics_config import record_batch_item

    METRICS_AVAILABLE = True
except ImportError:
    METRICS_AVAILABLE = False

logger = logging.getLogger(__name__)

DRY_RUN_OPERATION_ID = "dry_run"
API_SELECTOR_KEYS = ("dartboard", "status", "assignee", "priority", "tags", "due_before", "due_after")
SELECTOR_KEYS = API_SELECTOR_KEYS + ("title_contains",)


def validate_selector(selector: Any) -> dict[str, Any]:
    """Check a selector mapping and return it with blank entries dropped."""
    if not isinstance(selector, dict) or not selector:
        raise ValidationError(
            f"selector is required and must be a non-empty mapping of filters ({', '.join(SELECTOR_KEYS)})",
            field="selector",
            value=selector,
        )

    cleaned: dict[str, Any] = {}
    for key, value in selector.items():
        if key not in SELECTOR_KEYS:
            raise ValidationError(
                f"Unknown selector filter: {key}. Valid filters: {', '.join(SELECTOR_KEYS)}",
                field="selector",
                value=key,
                suggestions=find_closest_matches(key, list(SELECTOR_KEYS)),
            )
        if key == "tags":
            if isinstance(value, str):
                value = [value]
            if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
                raise ValidationError("selector tags must be a list of strings", field="selector", value=value)
            value = [tag.strip() for tag in value if tag.strip()]
            if value:
                cleaned[key] = value
        elif value is not None and str(value).strip():
            cleaned[key] = value

    if not cleaned:
        raise ValidationError("selector must contain at least one non-empty filter", field="selector")
    return cleaned


def _reason(error: BaseException) -> str:
    if isinstance(error, DartAPIError):
        return f"HTTP {error.status_code}: {error.message}"
    return str(error)


class SelectorPipeline:
    """Resolve a selector to tasks and update or delete them in bulk."""

    def __init__(
        self,
        registry: BatchOperationRegistry,
        config_provider: ReferenceConfigProvider,
        client_factory: Callable,
        settings: Settings,
    ):
        self.registry = registry
        self.config_provider = config_provider
        self.client_factory = client_factory
        self.settings = settings

    async def match_tasks(self, client, selector: dict[str, Any]) -> list[DartTask]:
        """Page through ``list_tasks`` and apply the client-side title filter.

        Raises:
            ValidationError: The selector matches more than ``max_selector_matches`` tasks
            DartAPIError: Listing failed
        """
        api_filters = {key: selector[key] for key in API_SELECTOR_KEYS if key in selector}
        page_size = self.settings.list_page_size
        limit = self.settings.max_selector_matches
        matches: list[DartTask] = []
        offset = 0

        try:
            while True:
                tasks, total = await client.list_tasks(api_filters, limit=page_size, offset=offset)
                if total > limit or len(matches) + len(tasks) > limit:
                    raise ValidationError(
                        f"Selector matches too many tasks (>{limit:,}). Please narrow your selector.",
                        field="selector",
                    )
                matches.extend(tasks)
                offset += page_size
                if not tasks or offset >= total:
                    break
        except DartAPIError as e:
            raise DartAPIError(f"Failed to fetch matching tasks: {e.message}", e.status_code, e.response) from e

        needle = selector.get("title_contains")
        if needle:
            needle = str(needle).lower()
            matches = [task for task in matches if needle in task.title.lower()]
        return matches

    async def update(
        self,
        selector: dict[str, Any],
        updates: dict[str, Any],
        dry_run: bool = True,
        concurrency: int | None = None,
    ) -> BatchUpdateResult:
        """Apply the same field updates to every task matching ``selector``."""
        start_time = time.perf_counter()
        selector = validate_selector(selector)
        if not isinstance(updates, dict) or not updates:
            raise ValidationError(
                "updates is required and must be a non-empty object with at least one field to update",
                field="updates",
            )
        concurrency = self._concurrency(concurrency)

        config = await self._fetch_config()
        resolved = resolve_task_fields(updates, config)

        async with self.client_factory() as client:
            matches = await self.match_tasks(client, selector)

            if dry_run:
                preview = [
                    UpdatePreview(
                        dart_id=task.dart_id,
                        title=task.title,
                        current_values={name: getattr(task, name, None) for name in resolved},
                        new_values=resolved,
                    )
                    for task in matches[: self.settings.update_preview_rows]
                ]
                return BatchUpdateResult(
                    batch_operation_id=DRY_RUN_OPERATION_ID,
                    selector_matched=len(matches),
                    dry_run=True,
                    preview_tasks=preview,
                )

            async def apply(task: DartTask):
                return await client.update_task(task.dart_id, resolved)

            batch_operation_id, report = await self._execute("update", matches, apply, concurrency)

        return BatchUpdateResult(
            batch_operation_id=batch_operation_id,
            selector_matched=len(matches),
            dry_run=False,
            successful_updates=len(report.succeeded),
            failed_updates=len(report.failed),
            successful_dart_ids=[outcome.key for outcome in report.succeeded],
            failed_items=[
                FailedTaskItem(dart_id=outcome.key, error=str(outcome.error), reason=_reason(outcome.error))
                for outcome in report.failed
            ],
            execution_time_ms=int((time.perf_counter() - start_time) * 1000),
        )

    async def delete(
        self,
        selector: dict[str, Any],
        dry_run: bool = True,
        confirm: bool = False,
        concurrency: int | None = None,
    ) -> BatchDeleteResult:
        """Move every task matching ``selector`` to the trash.

        Executing (``dry_run=False``) requires ``confirm=True``.
        """
        start_time = time.perf_counter()
        selector = validate_selector(selector)
        if not dry_run and confirm is not True:
            raise ValidationError(
                "SAFETY CHECK FAILED: When dry_run=false, confirm=true is REQUIRED to execute deletions. "
                "This prevents accidental batch deletions. Set confirm=true to proceed.",
                field="confirm",
            )
        concurrency = self._concurrency(concurrency)

        async with self.client_factory() as client:
            matches = await self.match_tasks(client, selector)

            if dry_run:
                preview = [
                    DeletePreview(dart_id=task.dart_id, title=task.title)
                    for task in matches[: self.settings.delete_preview_rows]
                ]
                return BatchDeleteResult(
                    batch_operation_id=DRY_RUN_OPERATION_ID,
                    selector_matched=len(matches),
                    dry_run=True,
                    preview_tasks=preview,
                )

            async def remove(task: DartTask):
                return await client.delete_task(task.dart_id)

            batch_operation_id, report = await self._execute("delete", matches, remove, concurrency)

        return BatchDeleteResult(
            batch_operation_id=batch_operation_id,
            selector_matched=len(matches),
            dry_run=False,
            successful_deletions=len(report.succeeded),
            failed_deletions=len(report.failed),
            deleted_dart_ids=[outcome.key for outcome in report.succeeded],
            failed_items=[FailedTaskItem(dart_id=outcome.key, error=str(outcome.error)) for outcome in report.failed],
            execution_time_ms=int((time.perf_counter() - start_time) * 1000),
        )

    async def _execute(
        self,
        operation_type: str,
        tasks: list[DartTask],
        action: Callable,
        concurrency: int,
    ) -> tuple[str, ExecutionReport]:
        operation = self.registry.create(operation_type, len(tasks))
        batch_operation_id = operation.batch_operation_id

        def on_success(task: DartTask, result):
            self.registry.add_success(batch_operation_id, task.dart_id)
            if METRICS_AVAILABLE:
                record_batch_item(operation_type, "success")

        def on_failure(task: DartTask, error: BaseException):
            self.registry.add_failure(batch_operation_id, _reason(error), item_id=task.dart_id)
            if METRICS_AVAILABLE:
                record_batch_item(operation_type, "failure")

        executor = BatchExecutor(concurrency, max_concurrency=self.settings.max_concurrency)
        try:
            report = await executor.run(
                tasks, action, key=lambda task: task.dart_id, on_success=on_success, on_failure=on_failure
            )
        except BaseException:
            self.registry.complete(batch_operation_id, "failed")
            raise

        all_failed = bool(tasks) and len(report.failed) == len(tasks)
        self.registry.complete(batch_operation_id, "failed" if all_failed else "completed")
        logger.info(
            "Batch %s %s: %d succeeded, %d failed",
            operation_type,
            batch_operation_id,
            len(report.succeeded),
            len(report.failed),
        )
        return batch_operation_id, report

    def _concurrency(self, concurrency: int | None) -> int:
        if concurrency is None:
            concurrency = self.settings.default_concurrency
        return validate_concurrency(concurrency, self.settings.min_concurrency, self.settings.max_concurrency)

    async def _fetch_config(self):
        try:
            return await self.config_provider.fetch(cache_bust=False)
        except DartAPIError as e:
            raise DartAPIError(
                f"Failed to retrieve workspace config for validation: {e.message}", e.status_code, e.response
            ) from e
