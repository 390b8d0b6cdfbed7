"""Bounded fan-out executor for independent async tasks.

Admits at most `limit` tasks at a time, in submission order, and lets every
task run to completion. A failing task never cancels its siblings: each
outcome (value or exception) is collected and returned, and the caller
decides what a failure means once everything has settled.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class TaskOutcome(Generic[T]):
    """Settled result of one submitted task.

    index is the task's submission position, so callers never need to
    rely on completion order to know which task produced what.
    """

    index: int
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def first_failure(outcomes: Sequence[TaskOutcome[T]]) -> Exception | None:
    """Earliest-submitted failure, if any."""
    for outcome in outcomes:
        if outcome.error is not None:
            return outcome.error
    return None


class BoundedExecutor:
    """Concurrency-limited task runner.

    Implemented as a pool of `limit` workers draining a FIFO queue, which
    gives submission-order admission without relying on semaphore fairness.
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        self.limit = limit
        self._in_flight = 0
        self.peak_in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def run(self, tasks: Sequence[Callable[[], Awaitable[T]]]) -> list[TaskOutcome[T]]:
        """Run every task and wait until all of them have settled.

        Args:
            tasks: Zero-argument coroutine factories

        Returns:
            One TaskOutcome per task, in submission order
        """
        if not tasks:
            return []

        queue: deque[tuple[int, Callable[[], Awaitable[T]]]] = deque(enumerate(tasks))
        outcomes: list[TaskOutcome[T] | None] = [None] * len(tasks)

        async def worker() -> None:
            while queue:
                index, factory = queue.popleft()
                self._in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self._in_flight)
                try:
                    value = await factory()
                    outcomes[index] = TaskOutcome(index=index, value=value)
                except Exception as e:
                    outcomes[index] = TaskOutcome(index=index, error=e)
                finally:
                    self._in_flight -= 1

        workers = min(self.limit, len(tasks))
        await asyncio.gather(*(worker() for _ in range(workers)))

        settled = [outcome for outcome in outcomes if outcome is not None]
        failures = sum(1 for outcome in settled if not outcome.ok)
        if failures:
            logger.warning(f"[fanout] {failures}/{len(settled)} tasks failed")
        return settled
