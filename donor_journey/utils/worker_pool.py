"""Async worker pool with exception handling for per-donor processing.

Each item runs as its own task behind a semaphore. Failures are captured per
item, never raised, so one donor cannot abort the batch. Results come back in
input order regardless of completion order.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable


class AsyncWorkerPool:
    """Bounded-concurrency ``asyncio`` runner for pipeline tasks."""

    def __init__(self, max_workers: int = 5, logger=None):
        """
        Initialize worker pool.

        Args:
            max_workers: Maximum number of items in flight at once (default: 5)
            logger: Optional logger instance for logging
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = max_workers
        self.logger = logger or logging.getLogger(__name__)
        self.stats = {
            "max_workers": max_workers,
            "total_submitted": 0,
            "total_completed": 0,
            "total_successful": 0,
            "total_failed": 0,
        }

    async def map(
        self, func: Callable[[Any], Awaitable[Any]], items: list, desc: str = "Processing"
    ) -> list[tuple[bool, Any, Any]]:
        """
        Process items concurrently with exception handling.

        Cancelling the caller cancels in-flight items; items still waiting for
        a slot never start.

        Args:
            func: Async worker function taking one item
            items: List of items to process
            desc: Description for progress reporting

        Returns:
            List of tuples in input order: (success: bool, item: any, result_or_error: any)
        """
        semaphore = asyncio.Semaphore(self.max_workers)
        self.stats["total_submitted"] += len(items)

        async def run(item):
            async with semaphore:
                try:
                    result = await func(item)
                except Exception as e:
                    self.stats["total_failed"] += 1
                    self.logger.error(f"{desc}: Failed for item {item}: {e}", exc_info=True)
                    return (False, item, e)
                finally:
                    self.stats["total_completed"] += 1
                self.stats["total_successful"] += 1
                self.logger.debug(f"{desc}: Success for item {item}")
                return (True, item, result)

        results = await asyncio.gather(*(run(item) for item in items))

        self.logger.info(
            f"{desc} complete: {self.stats['total_successful']} successful, {self.stats['total_failed']} failed"
        )
        return list(results)

    def get_stats(self) -> dict:
        """Get worker pool statistics."""
        return dict(self.stats)
