"""Batch operation models.

This module contains the data structures the batch engine tracks and reports:
the registry's ``BatchOperation`` record and the executor's per-item outcomes.
"""

from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Literal

from pydantic import BaseModel
from pydantic import Field

OperationKind = Literal["update", "delete", "import"]
OperationStatus = Literal["running", "completed", "failed"]
TerminalStatus = Literal["completed", "failed"]


class BatchProgress(BaseModel):
    """Progress counters for a batch operation."""

    completed: int = 0
    total: int = 0
    percent: int = 0


class FailedItem(BaseModel):
    """A failed batch item.

    Exactly one of ``id`` (update/delete) or ``row_number`` (import) is set.
    """

    id: str | None = None
    row_number: int | None = None
    error: str


class BatchOperation(BaseModel):
    """Observable state of one bulk job.

    Owned by ``BatchOperationRegistry``; callers only ever see copies.
    """

    batch_operation_id: str = Field(..., description="Generated operation id")
    operation_type: OperationKind = Field(..., description="update, delete or import")
    status: OperationStatus = Field(default="running")
    progress: BatchProgress = Field(default_factory=BatchProgress)
    successful_ids: list[str] = Field(default_factory=list)
    failed_items: list[FailedItem] = Field(default_factory=list)
    started_at: str = Field(..., description="ISO 8601 start timestamp")
    completed_at: str | None = None
    execution_time_ms: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != "running"


class GetBatchStatusResult(BaseModel):
    """Lookup result for ``get_batch_status``."""

    found: bool
    operation: BatchOperation | None = None
    message: str | None = None


@dataclass
class ItemOutcome:
    """Result of running the batch action for one item."""

    index: int
    key: Any
    item: Any
    success: bool
    result: Any = None
    error: BaseException | None = None


@dataclass
class ExecutionReport:
    """Everything the executor settled, in submission order."""

    outcomes: list[ItemOutcome] = field(default_factory=list)
    not_started: list[Any] = field(default_factory=list)
    aborted: bool = False

    @property
    def succeeded(self) -> list[ItemOutcome]:
        return [outcome for outcome in self.outcomes if outcome.success]

    @property
    def failed(self) -> list[ItemOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]
