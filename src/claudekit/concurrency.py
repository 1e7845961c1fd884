"""Bounded-concurrency fan-out for I/O-bound batches.

Used for checksumming and ownership checks over many files. The whole batch
always runs to completion: per-item failures are caught and counted, and
progress callbacks carry no cancellation semantics.
"""

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# Roughly this many progress updates are emitted per batch
_PROGRESS_UPDATES = 20


def progress_interval(total: int) -> int:
    """Adaptive sampling interval for progress callbacks."""
    return max(1, total // _PROGRESS_UPDATES)


@dataclass(frozen=True)
class BatchItemFailure[T]:
    item: T
    error: Exception


@dataclass(frozen=True)
class BatchResult[T, R]:
    """Results in input order (None where the item failed) plus the failures."""

    results: list[R | None]
    failures: list[BatchItemFailure[T]]

    @property
    def succeeded(self) -> int:
        return len(self.results) - len(self.failures)

    @property
    def failed(self) -> int:
        return len(self.failures)


def run_bounded[T, R](
    items: Sequence[T],
    func: Callable[[T], R],
    *,
    concurrency: int,
    on_progress: ProgressCallback | None = None,
) -> BatchResult[T, R]:
    """Apply func to every item with at most `concurrency` workers.

    Exceptions raised by func are recorded per item. on_progress(completed,
    total) is called every progress_interval(total) completions and once
    more for the final item.
    """
    total = len(items)
    results: list[R | None] = [None] * total
    failures: list[BatchItemFailure[T]] = []
    if total == 0:
        return BatchResult(results=results, failures=failures)

    interval = progress_interval(total)
    completed = 0

    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as executor:
        futures = {executor.submit(func, item): index for index, item in enumerate(items)}
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = future.result()
            except Exception as e:
                logger.debug("Batch item %r failed: %s", items[index], e)
                failures.append(BatchItemFailure(item=items[index], error=e))

            completed += 1
            if on_progress is not None and (completed % interval == 0 or completed == total):
                on_progress(completed, total)

    if failures:
        logger.warning(
            "%d of %d operations failed (run with --debug for details)", len(failures), total
        )
    return BatchResult(results=results, failures=failures)
