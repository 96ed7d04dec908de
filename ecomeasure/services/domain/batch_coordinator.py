"""
Domain service: Bounded-concurrency batch processing.

Runs an async worker over many items with:
- At most ``concurrency`` workers in flight
- Per-item failure isolation (failures become records, not exceptions)
- Cooperative cancellation and an optional time budget for launching work
- Results returned in input order, exactly one outcome per item
"""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Iterable, Literal, Optional, TypeVar
import asyncio
import logging

from ecomeasure.domain.errors import InvalidAnalysisParameters, ItemProcessingFailed
from ecomeasure.domain.models import ProgressCallback
from ecomeasure.utils.progress import ProgressReporter

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

OutcomeStatus = Literal["succeeded", "failed", "cancelled"]


@dataclass(frozen=True)
class BatchItemOutcome(Generic[R]):
    """Outcome of one batch item."""
    index: int
    item_id: str
    status: OutcomeStatus
    result: Optional[R] = None
    error: Optional[ItemProcessingFailed] = None
    reason: Optional[str] = None
    """Why a cancelled item was never launched ("cancelled" or "timeout")"""

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True)
class BatchReport(Generic[R]):
    """Summary over all outcomes of a batch."""
    outcomes: list[BatchItemOutcome[R]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "succeeded")

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def cancelled(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "cancelled")

    @property
    def results(self) -> list[R]:
        return [o.result for o in self.outcomes if o.status == "succeeded"]

    @property
    def failures(self) -> list[ItemProcessingFailed]:
        return [o.error for o in self.outcomes if o.error is not None]


async def process_batch(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int = 3,
    *,
    item_id: Optional[Callable[[T], str]] = None,
    cancel_event: Optional[asyncio.Event] = None,
    timeout: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> list[BatchItemOutcome[R]]:
    """
    Run ``worker`` over ``items`` with bounded concurrency.

    New items stop being launched once ``cancel_event`` is set or the
    ``timeout`` budget (seconds since the call) has elapsed; items already
    started always run to completion. Worker exceptions are recorded as
    failed outcomes and never propagate.

    Args:
        items: Items to process
        worker: Async callable processing one item
        concurrency: Maximum number of workers in flight
        item_id: Derives a display identity for an item (defaults to its index)
        cancel_event: Set to stop launching new items
        timeout: Seconds after which no new item is launched
        on_progress: Receives (percent, stage) after each finished item

    Returns:
        One BatchItemOutcome per item, in input order

    Raises:
        InvalidAnalysisParameters: If concurrency is below 1
    """
    if concurrency < 1:
        raise InvalidAnalysisParameters(f"Concurrency must be >= 1, got {concurrency}")

    items = list(items)
    total = len(items)
    outcomes: list[Optional[BatchItemOutcome[R]]] = [None] * total
    identities = [item_id(item) if item_id else str(index) for index, item in enumerate(items)]

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    semaphore = asyncio.Semaphore(concurrency)
    report = ProgressReporter(on_progress)
    finished = 0

    logger.info(f"Starting batch of {total} items with concurrency={concurrency}")

    async def run_item(index: int, item: T) -> None:
        nonlocal finished
        ident = identities[index]
        try:
            result = await worker(item)
            outcomes[index] = BatchItemOutcome(index=index, item_id=ident, status="succeeded", result=result)
        except Exception as e:
            failure = ItemProcessingFailed(ident, e)
            logger.warning(f"Batch item {ident} failed: {failure.error_type}: {failure.detail}")
            outcomes[index] = BatchItemOutcome(index=index, item_id=ident, status="failed", error=failure)
        finally:
            semaphore.release()
            finished += 1
            report(finished / total * 100, f"Processed {finished}/{total} items")

    tasks = []
    try:
        for index, item in enumerate(items):
            await semaphore.acquire()

            reason = None
            if cancel_event is not None and cancel_event.is_set():
                reason = "cancelled"
            elif deadline is not None and loop.time() >= deadline:
                reason = "timeout"

            if reason is not None:
                semaphore.release()
                logger.info(f"Batch stopped launching at item {index}/{total}: {reason}")
                for skipped in range(index, total):
                    outcomes[skipped] = BatchItemOutcome(
                        index=skipped,
                        item_id=identities[skipped],
                        status="cancelled",
                        reason=reason,
                    )
                break

            tasks.append(asyncio.create_task(run_item(index, item)))

        await asyncio.gather(*tasks)
    finally:
        # no worker task outlives this call, even when the caller is cancelled
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Batch interrupted; cancelled {len(pending)} running items")
            await asyncio.gather(*pending, return_exceptions=True)

    summary = BatchReport(outcomes=[o for o in outcomes if o is not None])
    logger.info(
        f"Batch complete: {summary.succeeded} succeeded, {summary.failed} failed, "
        f"{summary.cancelled} cancelled"
    )
    return summary.outcomes
