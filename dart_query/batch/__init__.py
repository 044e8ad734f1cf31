"""Batch operation engine for the Dart Query MCP server.

The registry tracks bulk jobs, the executor runs per-item remote calls with
bounded concurrency, and the pipelines drive CSV imports and selector-based
updates and deletes through both.
"""

from .executor import BatchExecutor
from .executor import validate_concurrency
from .import_pipeline import ImportPipeline
from .models import BatchOperation
from .models import BatchProgress
from .models import ExecutionReport
from .models import FailedItem
from .models import ItemOutcome
from .registry import BatchOperationRegistry
from .registry import generate_batch_operation_id
from .selector_pipeline import SelectorPipeline

__all__ = [
    "BatchExecutor",
    "BatchOperation",
    "BatchOperationRegistry",
    "BatchProgress",
    "ExecutionReport",
    "FailedItem",
    "ImportPipeline",
    "ItemOutcome",
    "SelectorPipeline",
    "generate_batch_operation_id",
    "validate_concurrency",
]
