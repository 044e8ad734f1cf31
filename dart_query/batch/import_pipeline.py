"""CSV import pipeline.

Turns a CSV source into tasks in one dartboard. Every invocation runs the same
sequence: intake checks, row ceiling, parse, reference config fetch, a full
validation pass, and then either a preview (the default) or concurrent
creation with failure aggregation.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..cache.config_cache import ReferenceConfigProvider
from ..config import Settings
from ..exceptions import BatchAbortedError
from ..exceptions import DartAPIError
from ..exceptions import ValidationError
from ..models import DartConfig
from ..models import FailedImportItem
from ..models import ImportResult
from ..models import PreviewRow
from ..models import RowValidationErrors
from ..models import TaskPreview
from ..parsers.csv_parser import FIRST_DATA_ROW
from ..parsers.csv_parser import count_data_rows
from ..parsers.csv_parser import find_closest_matches
from ..parsers.csv_parser import parse_csv
from ..parsers.csv_parser import resolve_references
from ..parsers.csv_parser import validate_row
from .executor import BatchExecutor
from .executor import validate_concurrency
from .registry import BatchOperationRegistry

try:
    from ..metrics_config import record_batch_item

    METRICS_AVAILABLE = True
except ImportError:
    METRICS_AVAILABLE = False

logger = logging.getLogger(__name__)

ROLLBACK_THRESHOLD = 0.5

_PREVIEW_FIELDS = ("description", "status", "priority", "size", "assignee", "tags", "due_at", "start_at")


@dataclass
class ResolvedRow:
    """A row that passed validation, with references replaced by identifiers."""

    row_number: int
    data: dict[str, Any]

    def create_payload(self) -> dict[str, Any]:
        payload = {
            "title": self.data["title"],
            "dartboard": self.data["dartboard"],
            "description": self.data.get("description"),
            "status": self.data.get("status"),
            "priority": self.data.get("priority"),
            "size": self.data.get("size"),
            "tags": self.data.get("tags"),
            "due_at": self.data.get("due_at"),
            "start_at": self.data.get("start_at"),
            "parent_task": self.data.get("parent_task"),
        }
        if self.data.get("assignee"):
            payload["assignees"] = [self.data["assignee"]]
        return payload

    def preview(self) -> TaskPreview:
        return TaskPreview(
            title=self.data["title"],
            dartboard=self.data["dartboard"],
            **{name: self.data.get(name) for name in _PREVIEW_FIELDS},
        )


def rollback_advisory(failure_rate: float, created_ids: list[str]) -> str:
    return (
        f"WARNING: {round(failure_rate * 100)}% of tasks failed to create. "
        f"Consider deleting created tasks and fixing errors. Created task IDs: {', '.join(created_ids)}"
    )


def _row_messages(row: dict[str, str], config: DartConfig, row_number: int) -> tuple[list[str], dict[str, Any]]:
    """Collect the formatted validation and resolution errors for one row.

    A resolution error repeating a validation error replaces it, so each
    problem is listed once, with suggestions when there are any.
    """
    messages = [issue.format() for issue in validate_row(row, config, row_number)]
    resolution = resolve_references(row, config, row_number)

    for issue in resolution.errors:
        plain = issue.format()
        enriched = plain
        for suggestion in resolution.suggestions:
            if suggestion.field == issue.field and suggestion.input == issue.value and suggestion.suggestions:
                enriched = f"{plain} (Did you mean: {', '.join(suggestion.suggestions)}?)"
                break
        if plain in messages:
            messages[messages.index(plain)] = enriched
        elif enriched not in messages:
            messages.append(enriched)

    return messages, resolution.resolved


class ImportPipeline:
    """Validate and bulk-create tasks from CSV input.

    ``client_factory`` returns a new API client usable as an async context
    manager; the pipeline opens one client per execution for all create calls.
    """

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

    async def run(
        self,
        dartboard: str,
        csv_data: str | None = None,
        csv_file_path: str | None = None,
        column_mapping: dict[str, str] | None = None,
        validate_only: bool = True,
        continue_on_error: bool = True,
        concurrency: int | None = None,
    ) -> ImportResult:
        """Import tasks from CSV.

        Args:
            dartboard: Target dartboard name or id, applied to every row
            csv_data: Inline CSV content
            csv_file_path: Path to a CSV file
            column_mapping: Custom ``{csv header: column}`` mapping
            validate_only: Only validate and preview; create nothing
            continue_on_error: Skip invalid rows and keep going after failed creates
            concurrency: Parallel create calls (1-20)

        Returns:
            ImportResult: Row counts, validation errors and creation outcomes

        Raises:
            ValidationError: Invalid arguments, unreadable CSV, too many or no rows,
                unknown dartboard, or invalid rows with ``continue_on_error`` off
            DartAPIError: The workspace config could not be fetched, or a create
                failed with ``continue_on_error`` off
        """
        start_time = time.perf_counter()

        # Intake
        if not csv_data and not csv_file_path:
            raise ValidationError("Either csv_data or csv_file_path must be provided", field="csv_data")
        if not isinstance(dartboard, str) or not dartboard.strip():
            raise ValidationError(
                "dartboard is required and must be a non-empty string (dartboard name or dart_id)",
                field="dartboard",
            )
        if concurrency is None:
            concurrency = self.settings.default_concurrency
        concurrency = validate_concurrency(
            concurrency, self.settings.min_concurrency, self.settings.max_concurrency
        )

        # Row ceiling, checked before the full parse and before any network call
        self._check_row_ceiling(count_data_rows(csv_data, csv_file_path))

        parsed = parse_csv(csv_data=csv_data, csv_file_path=csv_file_path, column_mapping=column_mapping)
        if parsed.errors:
            raise ValidationError(f"CSV parse errors: {'; '.join(parsed.errors)}", field="csv_data")
        for warning in parsed.warnings:
            logger.info("CSV import warning: %s", warning)

        total_rows = len(parsed.rows)
        if total_rows == 0:
            raise ValidationError(
                "CSV contains no valid data rows (after skipping empty lines)", field="csv_data"
            )
        self._check_row_ceiling(total_rows)

        config = await self._fetch_config()
        board = config.find_dartboard(dartboard)
        if board is None:
            self._reject_dartboard(dartboard, config)

        validation_errors: list[RowValidationErrors] = []
        resolved_rows: list[ResolvedRow] = []
        for row_number, row in enumerate(parsed.rows, start=FIRST_DATA_ROW):
            messages, resolved = _row_messages(row, config, row_number)
            if messages:
                validation_errors.append(RowValidationErrors(row_number=row_number, errors=messages))
            else:
                resolved["dartboard"] = board.identifier
                resolved_rows.append(ResolvedRow(row_number=row_number, data=resolved))

        valid_rows = len(resolved_rows)
        invalid_rows = len(validation_errors)
        logger.info(
            "CSV import validated: %d rows, %d valid, %d invalid (validate_only=%s)",
            total_rows,
            valid_rows,
            invalid_rows,
            validate_only,
        )

        if validate_only:
            operation = self.registry.create("import", total_rows)
            preview_rows = resolved_rows[: self.settings.import_preview_rows]
            return ImportResult(
                batch_operation_id=operation.batch_operation_id,
                total_rows=total_rows,
                valid_rows=valid_rows,
                invalid_rows=invalid_rows,
                validation_errors=validation_errors,
                preview=[PreviewRow(row_number=r.row_number, task_preview=r.preview()) for r in preview_rows],
                execution_time_ms=self._elapsed_ms(start_time),
            )

        if invalid_rows and not continue_on_error:
            raise ValidationError(
                f"CSV validation failed: {invalid_rows} rows have errors. Set continue_on_error=true "
                "to skip invalid rows or fix errors first. Run with validate_only=true to see all errors.",
                field="csv_data",
            )

        created_ids, failed_items, batch_operation_id = await self._execute(
            resolved_rows, concurrency, continue_on_error
        )

        failure_rate = len(failed_items) / valid_rows if valid_rows else 0.0
        if failure_rate > ROLLBACK_THRESHOLD and failed_items:
            logger.warning(
                "CSV import %s: %d of %d creates failed", batch_operation_id, len(failed_items), valid_rows
            )
            failed_items[0].error = f"{failed_items[0].error}\n\n{rollback_advisory(failure_rate, created_ids)}"

        return ImportResult(
            batch_operation_id=batch_operation_id,
            total_rows=total_rows,
            valid_rows=valid_rows,
            invalid_rows=invalid_rows,
            validation_errors=validation_errors,
            created_tasks=len(created_ids),
            failed_tasks=len(failed_items),
            created_dart_ids=created_ids,
            failed_items=failed_items,
            execution_time_ms=self._elapsed_ms(start_time),
        )

    async def _execute(
        self,
        resolved_rows: list[ResolvedRow],
        concurrency: int,
        continue_on_error: bool,
    ) -> tuple[list[str], list[FailedImportItem], str]:
        operation = self.registry.create("import", len(resolved_rows))
        batch_operation_id = operation.batch_operation_id

        def on_success(row: ResolvedRow, task):
            self.registry.add_success(batch_operation_id, task.dart_id)
            if METRICS_AVAILABLE:
                record_batch_item("import", "success")

        def on_failure(row: ResolvedRow, error: BaseException):
            self.registry.add_failure(batch_operation_id, str(error), row_number=row.row_number)
            if METRICS_AVAILABLE:
                record_batch_item("import", "failure")

        executor = BatchExecutor(
            concurrency, continue_on_error=continue_on_error, max_concurrency=self.settings.max_concurrency
        )
        try:
            async with self.client_factory() as client:

                async def create(row: ResolvedRow):
                    return await client.create_task(row.create_payload())

                report = await executor.run(
                    resolved_rows,
                    create,
                    key=lambda row: row.row_number,
                    on_success=on_success,
                    on_failure=on_failure,
                )
        except BatchAbortedError as e:
            self.registry.complete(batch_operation_id, "failed")
            raise e.cause
        except BaseException:
            self.registry.complete(batch_operation_id, "failed")
            raise

        created_ids = [outcome.result.dart_id for outcome in report.succeeded]
        failed_items = [
            FailedImportItem(row_number=outcome.key, error=str(outcome.error), row_data=outcome.item.data)
            for outcome in report.failed
        ]
        self.registry.complete(batch_operation_id, "failed" if failed_items else "completed")
        return created_ids, failed_items, batch_operation_id

    def _check_row_ceiling(self, row_count: int):
        limit = self.settings.max_import_rows
        if row_count > limit:
            raise ValidationError(
                f"CSV contains {row_count} rows, exceeding safety limit of {limit:,} rows. "
                "Please split into smaller batches.",
                field="csv_data",
                value=row_count,
            )

    async def _fetch_config(self) -> DartConfig:
        try:
            return await self.config_provider.fetch(cache_bust=False)
        except DartAPIError as e:
            raise DartAPIError(
                f"Failed to retrieve workspace config for validation: {e.message}", e.status_code, e.response
            ) from e

    @staticmethod
    def _reject_dartboard(dartboard: str, config: DartConfig):
        names = [board.name for board in config.dartboards]
        available = ", ".join(names[:10]) + (f", ... ({len(names) - 10} more)" if len(names) > 10 else "")
        raise ValidationError(
            f'Invalid dartboard: "{dartboard}" not found in workspace. Available dartboards: {available}',
            field="dartboard",
            value=dartboard,
            suggestions=find_closest_matches(dartboard.strip(), names),
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.perf_counter() - start_time) * 1000)
