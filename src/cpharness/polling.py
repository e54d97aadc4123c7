"""Bounded polling against eventually consistent remote state.

Predicates classify their own errors: a predicate that treats "not found" as
a normal answer must translate it to a falsy value. Anything it raises aborts
the poll immediately without consuming the remaining budget. Inverting a
predicate turns "wait until present" into "wait until absent".
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_result, stop_after_attempt, wait_fixed

from cpharness.core.errors import PollTimeoutError
from cpharness.retry import Sleep

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class PollConfig:
    """How often and how many times to evaluate a predicate."""

    interval_seconds: float
    max_attempts: int

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")

    @classmethod
    def from_timeout(cls, timeout_seconds: float, interval_seconds: float) -> "PollConfig":
        """Budget `floor(timeout / interval)` attempts, never fewer than one."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive when deriving from a timeout")
        attempts = max(1, math.floor(timeout_seconds / interval_seconds))
        return cls(interval_seconds=interval_seconds, max_attempts=attempts)

    @property
    def budget_seconds(self) -> float:
        return self.interval_seconds * self.max_attempts


# Defaults for the service state machines.
READY_INTERVAL_SECONDS = 10.0
READY_TIMEOUT_SECONDS = 180.0
STATUS_POLL = PollConfig(interval_seconds=10.0, max_attempts=60)
NEW_INSTANCE_POLL = PollConfig(interval_seconds=10.0, max_attempts=20)
ABSENCE_INTERVAL_SECONDS = 5.0
ABSENCE_TIMEOUT_SECONDS = 10.0


class PollWaiter:
    """Evaluates a predicate until it returns a truthy value or the budget runs out.

    k evaluations are separated by k-1 sleeps; there is no sleep before the
    first evaluation or after the last one.
    """

    def __init__(self, *, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep

    async def poll_until(
        self,
        predicate: Callable[[], Awaitable[T]],
        config: PollConfig,
        *,
        description: str,
        timeout_error: type[PollTimeoutError] = PollTimeoutError,
        details: dict[str, Any] | None = None,
    ) -> T:
        def _log_pending(state: RetryCallState) -> None:
            logger.debug(
                "poll_pending",
                waiting_for=description,
                attempt=state.attempt_number,
                max_attempts=config.max_attempts,
            )

        async def _evaluate() -> T:
            return await predicate()

        retrying = AsyncRetrying(
            retry=retry_if_result(lambda result: not result),
            stop=stop_after_attempt(config.max_attempts),
            wait=wait_fixed(config.interval_seconds),
            before_sleep=_log_pending,
            sleep=self._sleep,
        )
        try:
            result = await retrying(_evaluate)
        except RetryError:
            logger.warning(
                "poll_timed_out",
                waiting_for=description,
                attempts=config.max_attempts,
                budget_seconds=config.budget_seconds,
            )
            raise timeout_error(
                description,
                attempts=config.max_attempts,
                interval_seconds=config.interval_seconds,
                details=details,
            ) from None
        return result
