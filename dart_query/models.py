"""Pydantic models for the Dart Query MCP server.

This module contains the workspace data shapes returned by the Dart API and
the request/response models of the task and batch tools.
"""

from typing import Any

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator

# === Workspace Reference Configuration ===


class NamedRef(BaseModel):
    """A dartboard, status, tag or folder.

    The API returns either bare names or ``{dart_id, name}`` objects; both are
    normalized to this shape. ``identifier`` is the stable id sent back to the API.
    """

    dart_id: str | None = None
    name: str

    @property
    def identifier(self) -> str:
        return self.dart_id or self.name

    def matches(self, value: str) -> bool:
        needle = value.strip().lower()
        return self.name.lower() == needle or (self.dart_id is not None and self.dart_id.lower() == needle)


class DartUser(BaseModel):
    """A workspace member that tasks can be assigned to."""

    dart_id: str | None = None
    name: str
    email: str | None = None

    @property
    def identifier(self) -> str:
        return self.email or self.name

    def matches(self, value: str) -> bool:
        needle = value.strip().lower()
        return self.name.lower() == needle or (self.email is not None and self.email.lower() == needle)


class LabeledValue(BaseModel):
    """A priority or size option."""

    value: int | str | None = None
    label: str


def _names_to_refs(values):
    if values is None:
        return []
    return [{"name": value} if isinstance(value, str) else value for value in values]


def _labels_to_values(values):
    if values is None:
        return []
    return [{"label": value} if isinstance(value, str) else value for value in values]


class DartConfig(BaseModel):
    """Snapshot of the workspace reference configuration."""

    today: str | None = None
    user: DartUser | None = None
    assignees: list[DartUser] = Field(default_factory=list)
    dartboards: list[NamedRef] = Field(default_factory=list)
    statuses: list[NamedRef] = Field(default_factory=list)
    tags: list[NamedRef] = Field(default_factory=list)
    priorities: list[LabeledValue] = Field(default_factory=list)
    sizes: list[LabeledValue] = Field(default_factory=list)
    folders: list[NamedRef] = Field(default_factory=list)
    cached_at: str | None = None
    cache_ttl_seconds: int | None = None

    @field_validator("dartboards", "statuses", "tags", "folders", mode="before")
    @classmethod
    def _coerce_refs(cls, values):
        return _names_to_refs(values)

    @field_validator("assignees", mode="before")
    @classmethod
    def _coerce_users(cls, values):
        return _names_to_refs(values)

    @field_validator("priorities", "sizes", mode="before")
    @classmethod
    def _coerce_labels(cls, values):
        return _labels_to_values(values)

    def find_dartboard(self, value: str) -> NamedRef | None:
        return next((board for board in self.dartboards if board.matches(value)), None)

    def find_status(self, value: str) -> NamedRef | None:
        return next((status for status in self.statuses if status.matches(value)), None)

    def find_tag(self, value: str) -> NamedRef | None:
        return next((tag for tag in self.tags if tag.matches(value)), None)

    def find_assignee(self, value: str) -> DartUser | None:
        return next((user for user in self.assignees if user.matches(value)), None)

    def find_priority(self, value: str) -> LabeledValue | None:
        needle = value.strip().lower()
        return next((p for p in self.priorities if p.label.lower() == needle), None)

    def find_size(self, value: str) -> LabeledValue | None:
        needle = value.strip().lower()
        return next((s for s in self.sizes if s.label.lower() == needle), None)


# === Tasks ===


class DartTask(BaseModel):
    """A task as returned by the Dart API (snake_case field names)."""

    dart_id: str
    title: str = ""
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    size: str | int | None = None
    assignees: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    dartboard: str | None = None
    due_at: str | None = None
    start_at: str | None = None
    completed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    parent_task: str | None = None
    url: str | None = None


class DeleteTaskResult(BaseModel):
    dart_id: str
    deleted: bool = True
    recoverable: bool = True
    message: str


class TaskPreview(BaseModel):
    """Minimal projection of a task that an import would create."""

    title: str
    description: str | None = None
    dartboard: str
    status: str | None = None
    priority: str | None = None
    size: str | None = None
    assignee: str | None = None
    tags: list[str] | None = None
    due_at: str | None = None
    start_at: str | None = None


# === CSV Import ===


class RowValidationErrors(BaseModel):
    """All validation problems found in one CSV row."""

    row_number: int
    errors: list[str]


class PreviewRow(BaseModel):
    row_number: int
    task_preview: TaskPreview


class FailedImportItem(BaseModel):
    """A resolved row whose create call failed."""

    row_number: int
    error: str
    row_data: dict[str, Any] = Field(default_factory=dict)


class ImportResult(BaseModel):
    """Result of ``import_tasks_csv`` in preview or execute mode."""

    batch_operation_id: str
    total_rows: int
    valid_rows: int
    invalid_rows: int
    validation_errors: list[RowValidationErrors] = Field(default_factory=list)
    preview: list[PreviewRow] | None = None
    created_tasks: int = 0
    failed_tasks: int = 0
    created_dart_ids: list[str] = Field(default_factory=list)
    failed_items: list[FailedImportItem] = Field(default_factory=list)
    execution_time_ms: int = 0


# === Selector-driven batch update / delete ===


class UpdatePreview(BaseModel):
    dart_id: str
    title: str
    current_values: dict[str, Any]
    new_values: dict[str, Any]


class DeletePreview(BaseModel):
    dart_id: str
    title: str


class FailedTaskItem(BaseModel):
    dart_id: str
    error: str
    reason: str | None = None


class BatchUpdateResult(BaseModel):
    batch_operation_id: str
    selector_matched: int
    dry_run: bool
    preview_tasks: list[UpdatePreview] | None = None
    successful_updates: int = 0
    failed_updates: int = 0
    successful_dart_ids: list[str] = Field(default_factory=list)
    failed_items: list[FailedTaskItem] = Field(default_factory=list)
    execution_time_ms: int = 0


class BatchDeleteResult(BaseModel):
    batch_operation_id: str
    selector_matched: int
    dry_run: bool
    preview_tasks: list[DeletePreview] | None = None
    successful_deletions: int = 0
    failed_deletions: int = 0
    deleted_dart_ids: list[str] = Field(default_factory=list)
    failed_items: list[FailedTaskItem] = Field(default_factory=list)
    recoverable: bool = True
    execution_time_ms: int = 0
