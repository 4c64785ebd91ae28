"""
Bounded retry with backoff for network side effects.

Every storage upload, anchor submission and decision call goes through
``RetryExecutor.run``. Only errors listed in ``retry_on`` are retried; anything
else propagates on the first failure. Once the attempt budget is spent the
caller receives ``RetryExhausted`` wrapping the last error.
"""
from typing import Any, Awaitable, Callable, Optional, Tuple, Type
import asyncio
import structlog

from chronicle.domain.errors import RetryExhausted, TransientNetworkError

logger = structlog.get_logger(__name__)

DEFAULT_RETRYABLE: Tuple[Type[BaseException], ...] = (
    TransientNetworkError,
    ConnectionError,
    TimeoutError,
)


class RetryExecutor:
    """Runs async operations with a bounded number of attempts"""

    def __init__(
        self,
        max_attempts: int = 5,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        strategy: str = "exponential",
        retry_on: Tuple[Type[BaseException], ...] = DEFAULT_RETRYABLE,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if strategy not in ("exponential", "fixed"):
            raise ValueError(f"Unknown backoff strategy: {strategy}")

        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.strategy = strategy
        self.retry_on = retry_on
        self._sleep = sleep or asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff before the given retry (attempt counts from 1)"""

        if self.strategy == "fixed":
            return min(self.initial_delay, self.max_delay)
        return min(self.initial_delay * (2 ** (attempt - 1)), self.max_delay)

    async def run(self, operation: Callable[[], Awaitable[Any]], operation_name: str = "operation") -> Any:
        """Await ``operation()`` until it succeeds or the budget is spent"""

        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except self.retry_on as e:
                last_error = e
                if attempt == self.max_attempts:
                    break

                delay = self.delay_for(attempt)
                logger.warning(
                    "Retrying operation",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay=delay,
                    error=str(e)
                )
                await self._sleep(delay)

        logger.error(
            "Operation failed after retries",
            operation=operation_name,
            attempts=self.max_attempts,
            error=str(last_error)
        )
        raise RetryExhausted(operation_name, self.max_attempts, last_error)
