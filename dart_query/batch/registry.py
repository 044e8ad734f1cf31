"""
Registry of batch operations.

The registry is an in-memory store of ``BatchOperation`` records keyed by
generated id. It is constructed once per process and injected into every
tool that runs or inspects bulk jobs. Mutators are telemetry-grade: they never
raise, and report whether they acted so tests can detect stale ids.
"""

import datetime
import logging
import random
import string
import threading
import time

from .models import BatchOperation
from .models import FailedItem
from .models import OperationKind
from .models import TerminalStatus

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 3600
_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_batch_operation_id(operation_type: OperationKind) -> str:
    """Generate an id like ``batch_update_1706123456789_a1b2c3``.

    Unique on a best-effort basis (millisecond timestamp plus random suffix).
    """
    timestamp = int(time.time() * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=6))
    return f"batch_{operation_type}_{timestamp}_{suffix}"


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _percent(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return max(0, min(100, round(100 * completed / total)))


class BatchOperationRegistry:
    """Thread-safe store of batch operations."""

    def __init__(self, retention_seconds: int = DEFAULT_RETENTION_SECONDS):
        self.retention_seconds = retention_seconds
        self._operations: dict[str, BatchOperation] = {}
        self._lock = threading.Lock()

    def create(self, operation_type: OperationKind, total_items: int) -> BatchOperation:
        """Register a new running operation and return a snapshot of it."""
        with self._lock:
            batch_operation_id = generate_batch_operation_id(operation_type)
            while batch_operation_id in self._operations:
                batch_operation_id = generate_batch_operation_id(operation_type)

            operation = BatchOperation(
                batch_operation_id=batch_operation_id,
                operation_type=operation_type,
                started_at=_now().isoformat(),
            )
            operation.progress.total = total_items
            self._operations[batch_operation_id] = operation

        logger.info("Created batch operation %s (%s, %d items)", batch_operation_id, operation_type, total_items)
        return operation.model_copy(deep=True)

    def update_progress(self, batch_operation_id: str, completed: int) -> bool:
        """Set the completed-item counter."""
        with self._lock:
            operation = self._live(batch_operation_id, "update_progress")
            if operation is None:
                return False
            self._set_completed(operation, completed)
            return True

    def add_success(self, batch_operation_id: str, item_id: str) -> bool:
        """Append a succeeded item id and advance progress by one."""
        with self._lock:
            operation = self._live(batch_operation_id, "add_success")
            if operation is None:
                return False
            operation.successful_ids.append(item_id)
            self._set_completed(operation, operation.progress.completed + 1)
            return True

    def add_failure(
        self,
        batch_operation_id: str,
        error: str,
        item_id: str | None = None,
        row_number: int | None = None,
    ) -> bool:
        """Append a failed item and advance progress by one."""
        with self._lock:
            operation = self._live(batch_operation_id, "add_failure")
            if operation is None:
                return False
            operation.failed_items.append(FailedItem(id=item_id, row_number=row_number, error=error))
            self._set_completed(operation, operation.progress.completed + 1)
            return True

    def complete(self, batch_operation_id: str, status: TerminalStatus) -> bool:
        """Move an operation to its terminal status.

        Only the first call has an effect; later calls leave ``completed_at``
        and ``execution_time_ms`` untouched.
        """
        if status not in ("completed", "failed"):
            raise ValueError(f"Invalid terminal status: {status}")

        with self._lock:
            operation = self._live(batch_operation_id, "complete")
            if operation is None:
                return False
            completed_at = _now()
            started_at = datetime.datetime.fromisoformat(operation.started_at)
            operation.status = status
            operation.completed_at = completed_at.isoformat()
            operation.execution_time_ms = int((completed_at - started_at).total_seconds() * 1000)

        logger.info("Batch operation %s finished with status %s", batch_operation_id, status)
        return True

    def get(self, batch_operation_id: str) -> BatchOperation | None:
        """Return a snapshot of the operation, or None if unknown."""
        with self._lock:
            operation = self._operations.get(batch_operation_id)
            return operation.model_copy(deep=True) if operation else None

    def sweep(self, now: datetime.datetime | None = None) -> int:
        """Drop finished operations started more than ``retention_seconds`` ago.

        Running operations are kept regardless of age. Returns the number removed.
        """
        cutoff = (now or _now()) - datetime.timedelta(seconds=self.retention_seconds)
        with self._lock:
            expired = [
                batch_operation_id
                for batch_operation_id, operation in self._operations.items()
                if operation.is_terminal and datetime.datetime.fromisoformat(operation.started_at) < cutoff
            ]
            for batch_operation_id in expired:
                del self._operations[batch_operation_id]

        if expired:
            logger.info("Swept %d expired batch operations", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    def __contains__(self, batch_operation_id: object) -> bool:
        with self._lock:
            return batch_operation_id in self._operations

    def _live(self, batch_operation_id: str, action: str) -> BatchOperation | None:
        # Caller holds the lock.
        operation = self._operations.get(batch_operation_id)
        if operation is None:
            logger.debug("Ignoring %s for unknown batch operation %s", action, batch_operation_id)
            return None
        if operation.is_terminal:
            logger.debug("Ignoring %s for finished batch operation %s", action, batch_operation_id)
            return None
        return operation

    @staticmethod
    def _set_completed(operation: BatchOperation, completed: int):
        operation.progress.completed = completed
        operation.progress.percent = _percent(completed, operation.progress.total)
