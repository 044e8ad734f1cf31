"""Bounded-concurrency batch executor.

This module runs one async remote action per item with a fixed pool of
workers, so no more than ``concurrency`` actions are ever in flight. Results
are attributed to items by key, never by completion order.
"""

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Sequence
from typing import Any

from ..exceptions import BatchAbortedError
from ..exceptions import ValidationError
from .models import ExecutionReport
from .models import ItemOutcome

logger = logging.getLogger(__name__)

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 20
DEFAULT_CONCURRENCY = 5


def validate_concurrency(
    concurrency: Any,
    minimum: int = MIN_CONCURRENCY,
    maximum: int = MAX_CONCURRENCY,
) -> int:
    """Return ``concurrency`` if it is an integer in ``[minimum, maximum]``."""
    if isinstance(concurrency, bool) or not isinstance(concurrency, int):
        raise ValidationError("concurrency must be an integer", field="concurrency", value=concurrency)
    if concurrency < minimum or concurrency > maximum:
        raise ValidationError(
            f"concurrency must be a number between {minimum} and {maximum}",
            field="concurrency",
            value=concurrency,
        )
    return concurrency


class BatchExecutor:
    """Run a batch of independent async actions with bounded parallelism.

    With ``continue_on_error`` (the default) a failing item is recorded and its
    siblings carry on. Without it, the first failure stops workers from taking
    new items; actions already in flight are allowed to finish, after which
    ``run`` raises ``BatchAbortedError``.
    """

    def __init__(
        self,
        concurrency: int = DEFAULT_CONCURRENCY,
        continue_on_error: bool = True,
        max_concurrency: int = MAX_CONCURRENCY,
    ):
        self.concurrency = validate_concurrency(concurrency, maximum=max_concurrency)
        self.continue_on_error = continue_on_error

    async def run(
        self,
        items: Sequence[Any],
        action: Callable[[Any], Awaitable[Any]],
        key: Callable[[Any], Any] | None = None,
        on_success: Callable[[Any, Any], None] | None = None,
        on_failure: Callable[[Any, BaseException], None] | None = None,
    ) -> ExecutionReport:
        """Execute ``action`` once per item.

        Args:
            items: Work items, in submission order
            action: Coroutine function performing the remote call for one item
            key: Maps an item to its identity (row number, task id); defaults to its index
            on_success: Called with ``(item, result)`` as each item succeeds
            on_failure: Called with ``(item, exception)`` as each item fails

        Returns:
            ExecutionReport: Outcomes ordered by submission index

        Raises:
            BatchAbortedError: A failure occurred and ``continue_on_error`` is False
        """
        report = ExecutionReport()
        if not items:
            return report

        queue: asyncio.Queue = asyncio.Queue()
        for index, item in enumerate(items):
            queue.put_nowait((index, item))

        settled: dict[int, ItemOutcome] = {}
        stop = asyncio.Event()
        first_error: list[BaseException] = []

        async def worker():
            while not stop.is_set():
                try:
                    index, item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                item_key = key(item) if key else index
                try:
                    result = await action(item)
                except Exception as e:
                    settled[index] = ItemOutcome(index=index, key=item_key, item=item, success=False, error=e)
                    logger.debug("Batch item %r failed: %s", item_key, e)
                    if on_failure:
                        on_failure(item, e)
                    if not self.continue_on_error and not stop.is_set():
                        first_error.append(e)
                        stop.set()
                    continue

                settled[index] = ItemOutcome(index=index, key=item_key, item=item, success=True, result=result)
                if on_success:
                    on_success(item, result)

        workers = [asyncio.create_task(worker()) for _ in range(min(self.concurrency, len(items)))]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            raise

        report.outcomes = [settled[index] for index in sorted(settled)]
        while not queue.empty():
            report.not_started.append(queue.get_nowait()[1])

        if first_error:
            report.aborted = True
            logger.warning(
                "Batch stopped after first failure: %d settled, %d not started",
                len(report.outcomes),
                len(report.not_started),
            )
            raise BatchAbortedError(first_error[0], report=report) from first_error[0]

        return report
