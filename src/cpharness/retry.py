from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_fixed

logger = structlog.get_logger()

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryConfig:
    """Attempt budget for RetryExecutor.

    max_attempts: total calls, including the first (default 3).
    delay_seconds: constant pause between attempts, none after the last.
    """

    max_attempts: int = 3
    delay_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")


class RetryExecutor:
    """Bounded retry with a fixed delay and no jitter.

    The error from the final attempt is re-raised as-is. Only wrap operations
    whose side effects are safe to repeat.
    """

    def __init__(self, *, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep

    async def retry(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig | None = None,
        *,
        description: str = "operation",
    ) -> T:
        config = config or RetryConfig()

        def _log_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "operation_retry",
                operation=description,
                attempt=state.attempt_number,
                max_attempts=config.max_attempts,
                delay_seconds=config.delay_seconds,
                error=str(exc),
            )

        # tenacity only awaits coroutine functions; operations may be plain
        # callables returning an awaitable.
        async def _attempt() -> T:
            return await operation()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(config.max_attempts),
            wait=wait_fixed(config.delay_seconds),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return await retrying(_attempt)
