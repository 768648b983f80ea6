"""
Bounded retry policy for dashboard executions.

Only recoverable DashboardErrors (TransientFetchError) are retried. Attempt
counters live inside a single ``run`` call, so one flaky execution never
affects the next one.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import DashboardError

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 30.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.DASHBOARD_MAX_RETRIES,
            base_delay=settings.DASHBOARD_RETRY_BASE_DELAY_S,
            max_delay=settings.DASHBOARD_RETRY_MAX_DELAY_S,
        )

    def should_retry(self, error: BaseException, failure_count: int) -> bool:
        """
        Args:
            error: The failure just observed
            failure_count: Failures so far in this execution, including this one
        """
        if not isinstance(error, DashboardError) or not error.recoverable:
            return False
        return failure_count <= self.max_retries

    def delay_for(self, retry_index: int) -> float:
        """Exponential backoff: base, 2*base, 4*base ... capped at max_delay."""
        return min(self.base_delay * (2**retry_index), self.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str = "dashboard_execution",
        sleep: Sleep = asyncio.sleep,
    ) -> T:
        failures = 0
        while True:
            try:
                return await operation()
            except DashboardError as e:
                failures += 1
                if not self.should_retry(e, failures):
                    raise
                delay = self.delay_for(failures - 1)
                logger.warning(
                    "Dashboard execution failed, retrying",
                    operation=operation_name,
                    attempt=failures,
                    max_retries=self.max_retries,
                    delay_s=delay,
                    error_kind=e.kind,
                    error=str(e),
                )
                await sleep(delay)
