"""Per-call retry policy for flaky model calls.

Delays oscillate between 2s and 4s (2 ** ((attempt % 2) + 1)) instead of
growing. No jitter and no shared breaker state; each call gets a fresh budget.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from pdfchat.errors import NonRetriableError
from pdfchat.utils.metrics import model_call_latency_ms, model_call_retries_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 10


def cyclic_delay(attempt: int) -> float:
    """Seconds to wait after the 0-based attempt failed: 2, 4, 2, 4, ..."""
    return float(2 ** ((attempt % 2) + 1))


@dataclass
class RetryPolicy:
    """Bounded retry with cyclic delay.

    Attributes:
        max_attempts: Total attempts including the first
        delay: Maps the failed 0-based attempt number to a sleep in seconds
        sleep: Awaitable sleep, injectable for tests
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay: Callable[[int], float] = cyclic_delay
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    async def call(self, fn: Callable[[], Awaitable[T]], *, operation: str = "model_call") -> T:
        """Invoke fn until it succeeds or the budget runs out.

        Args:
            fn: Zero-argument coroutine factory, called once per attempt
            operation: Label for logs and metrics

        Returns:
            fn's result

        Raises:
            NonRetriableError: Immediately, without retrying
            Exception: The last failure once all attempts are exhausted
        """
        for attempt in range(self.max_attempts):
            started = time.monotonic()
            try:
                result = await fn()
            except NonRetriableError:
                raise
            except Exception as e:
                elapsed_ms = (time.monotonic() - started) * 1000
                model_call_latency_ms.labels(operation=operation, outcome="error").observe(
                    elapsed_ms
                )
                if attempt == self.max_attempts - 1:
                    logger.error(
                        f"[retry] {operation} failed after {self.max_attempts} attempts: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise

                wait = self.delay(attempt)
                model_call_retries_total.labels(operation=operation).inc()
                logger.warning(
                    f"[retry] {operation} attempt {attempt + 1} failed "
                    f"({type(e).__name__}), waiting {wait:g}s"
                )
                await self.sleep(wait)
                continue

            elapsed_ms = (time.monotonic() - started) * 1000
            model_call_latency_ms.labels(operation=operation, outcome="success").observe(
                elapsed_ms
            )
            return result

        raise RuntimeError("unreachable")
