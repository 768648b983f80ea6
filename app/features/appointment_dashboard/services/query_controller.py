"""
Debounced, memoized, single-flight query controller.

Sits between a stream of filter edits and the dashboard pipeline:

- Edits inside the debounce window collapse into one execution of the last edit.
- Executions are deferred until a caller identity is known.
- Canonical filters key both a freshness-bounded memo and an in-flight map,
  so equal filters never execute twice concurrently.
- Every started execution takes a generation number. Only the latest
  generation may publish; earlier completions are dropped on arrival.
- Loading and failure keep the last successful data visible.

All methods run on the event loop; ``submit`` schedules work and returns.
"""

import asyncio
import dataclasses
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import DashboardError
from ..domain.models import (
    AppointmentRecord,
    CallerIdentity,
    CanonicalFilter,
    DashboardResult,
    FilterRequest,
    MetricsSummary,
)
from .retry_policy import RetryPolicy

logger = get_logger(__name__)

QueryStatus = Literal["idle", "loading", "success", "failure"]

Executor = Callable[[CallerIdentity, CanonicalFilter], Awaitable[DashboardResult]]
Canonicalizer = Callable[[CallerIdentity, FilterRequest], CanonicalFilter]
StateListener = Callable[["QueryState"], None]


@dataclass(slots=True)
class QueryState:
    """Snapshot handed to the presentation layer."""

    status: QueryStatus = "idle"
    filter: CanonicalFilter | None = None
    data: DashboardResult | None = None
    error: DashboardError | None = None
    is_stale: bool = False
    generation: int = 0
    updated_at: datetime | None = None

    @property
    def loading(self) -> bool:
        return self.status == "loading"

    @property
    def appointments(self) -> list[AppointmentRecord]:
        return self.data.appointments if self.data else []

    @property
    def metrics(self) -> MetricsSummary:
        return self.data.metrics if self.data else MetricsSummary()

    @property
    def unique_closers(self) -> list[str]:
        return self.data.unique_closers if self.data else []

    @property
    def unique_setters(self) -> list[str]:
        return self.data.unique_setters if self.data else []


class DebouncedQueryController:
    """
    Args:
        executor: Runs the pipeline for (identity, canonical filter)
        canonicalize: Turns (identity, raw request) into a canonical filter
        identity: Caller identity, or None until it has loaded
        debounce_seconds: Quiet period before an edit executes
        retry_policy: Bounded retry for recoverable failures
        stale_seconds: How long a memoized result may be served without refetching
        clock: Monotonic clock used for memo freshness
        on_change: Called with a state snapshot after every transition
        sleep: Awaitable sleep used for backoff between retries
    """

    def __init__(
        self,
        executor: Executor,
        canonicalize: Canonicalizer,
        *,
        identity: CallerIdentity | None = None,
        debounce_seconds: float = 0.3,
        retry_policy: RetryPolicy | None = None,
        stale_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        on_change: StateListener | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._executor = executor
        self._canonicalize = canonicalize
        self._identity = identity
        self._debounce_seconds = debounce_seconds
        self._retry_policy = retry_policy or RetryPolicy()
        self._stale_seconds = stale_seconds
        self._clock = clock
        self._on_change = on_change
        self._sleep = sleep

        self._state = QueryState()
        self._generation = 0
        self._closed = False
        self._deferred = False
        self._last_request: FilterRequest | None = None
        self._debounce_task: asyncio.Task | None = None
        self._in_flight: dict[CanonicalFilter, asyncio.Task] = {}
        self._publishers: set[asyncio.Task] = set()
        self._memo: dict[CanonicalFilter, tuple[float, DashboardResult]] = {}

        self.execution_count = 0

    @classmethod
    def for_service(cls, service, *, identity: CallerIdentity | None = None, **kwargs) -> "DebouncedQueryController":
        """Controller over a DashboardService with timings taken from settings."""
        kwargs.setdefault("debounce_seconds", settings.debounce_seconds())
        kwargs.setdefault("retry_policy", RetryPolicy.from_settings())
        kwargs.setdefault("stale_seconds", float(settings.DASHBOARD_STALE_TIME_S))

        async def execute(_identity: CallerIdentity, canonical_filter: CanonicalFilter) -> DashboardResult:
            return await service.execute(canonical_filter)

        return cls(execute, service.canonicalize, identity=identity, **kwargs)

    @property
    def state(self) -> QueryState:
        return dataclasses.replace(self._state)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def memoized_filters(self) -> frozenset[CanonicalFilter]:
        """Filters with a memoized result. Stale entries go on lookup and whenever a result is stored."""
        return frozenset(self._memo)

    # Inputs

    def set_identity(self, identity: CallerIdentity | None) -> None:
        self._identity = identity
        if identity is None or not self._deferred or self._closed:
            return
        if self._debounce_task is not None and not self._debounce_task.done():
            # The pending debounce will pick the identity up
            return
        logger.debug("Identity available, starting deferred dashboard query", user_id=identity.user_id)
        self._start(self._last_request)

    def submit(self, request: FilterRequest) -> None:
        """Record a filter edit. Must be called from the running event loop."""
        if self._closed:
            logger.debug("Ignoring filter edit on closed dashboard controller")
            return

        self._last_request = request
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounce(request))

    def refetch(self) -> None:
        """Re-run the last request now, bypassing the debounce window and the memo."""
        if self._closed or self._last_request is None:
            return
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._start(self._last_request, force=True)

    def close(self) -> None:
        """Tear down: cancel pending debounce, drop whatever completes later."""
        if self._closed:
            return
        self._closed = True
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        logger.debug(
            "Dashboard controller closed",
            in_flight=len(self._in_flight),
            generation=self._generation,
        )

    async def wait_idle(self) -> None:
        """Wait until no debounce is pending and every started execution has settled."""
        while True:
            pending = [task for task in self._publishers if not task.done()]
            if self._debounce_task is not None and not self._debounce_task.done():
                pending.append(self._debounce_task)
            if not pending:
                return
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    raise result

    # Internals

    async def _debounce(self, request: FilterRequest) -> None:
        await asyncio.sleep(self._debounce_seconds)
        self._start(request)

    def _start(self, request: FilterRequest | None, *, force: bool = False) -> None:
        if self._closed:
            return

        identity = self._identity
        if identity is None:
            self._deferred = True
            logger.debug("Dashboard query deferred until identity is available")
            return
        self._deferred = False

        self._generation += 1
        generation = self._generation

        try:
            canonical_filter = self._canonicalize(identity, request or FilterRequest())
        except DashboardError as e:
            logger.warning("Dashboard filter rejected", error_kind=e.kind, error=str(e))
            self._publish_failure(generation, None, e)
            return

        if not force:
            memoized = self._fresh_memo(canonical_filter)
            if memoized is not None:
                logger.debug("Serving dashboard result from memo", generation=generation)
                self._transition(
                    status="success",
                    filter=canonical_filter,
                    data=memoized,
                    error=None,
                    is_stale=False,
                    generation=generation,
                )
                return

        self._transition(
            status="loading",
            filter=canonical_filter,
            is_stale=self._state.data is not None,
            generation=generation,
        )

        loop = asyncio.get_running_loop()
        task = self._in_flight.get(canonical_filter)
        if task is None:
            task = loop.create_task(self._execute(identity, canonical_filter))
            self._in_flight[canonical_filter] = task
            task.add_done_callback(lambda done, key=canonical_filter: self._release(key, done))
        else:
            logger.debug("Joining in-flight dashboard execution", generation=generation)

        publisher = loop.create_task(self._publish_when_done(generation, canonical_filter, task))
        self._publishers.add(publisher)
        publisher.add_done_callback(self._publishers.discard)

    def _release(self, key: CanonicalFilter, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _execute(self, identity: CallerIdentity, canonical_filter: CanonicalFilter) -> DashboardResult:
        self.execution_count += 1
        return await self._retry_policy.run(
            lambda: self._executor(identity, canonical_filter),
            operation_name="dashboard_query",
            sleep=self._sleep,
        )

    async def _publish_when_done(
        self, generation: int, canonical_filter: CanonicalFilter, task: asyncio.Task
    ) -> None:
        error: DashboardError | None = None
        result: DashboardResult | None = None
        try:
            result = await task
        except DashboardError as e:
            error = e
        except Exception as e:
            logger.exception("Unexpected dashboard execution failure", generation=generation)
            error = DashboardError(f"Unexpected error: {e}", operation="dashboard_query")

        if self._closed:
            logger.debug("Discarding dashboard result after teardown", generation=generation)
            return

        if result is not None:
            self._evict_stale_memo()
            self._memo[canonical_filter] = (self._clock(), result)

        if generation != self._generation:
            logger.debug(
                "Discarding stale dashboard completion",
                generation=generation,
                current_generation=self._generation,
            )
            return

        if error is not None:
            self._publish_failure(generation, canonical_filter, error)
            return

        self._transition(status="success", data=result, error=None, is_stale=False)

    def _publish_failure(
        self, generation: int, canonical_filter: CanonicalFilter | None, error: DashboardError
    ) -> None:
        logger.warning(
            "Dashboard query failed",
            generation=generation,
            error_kind=error.kind,
            recoverable=error.recoverable,
            error=str(error),
        )
        self._transition(
            status="failure",
            filter=canonical_filter or self._state.filter,
            error=error,
            is_stale=self._state.data is not None,
            generation=generation,
        )

    def _fresh_memo(self, canonical_filter: CanonicalFilter) -> DashboardResult | None:
        entry = self._memo.get(canonical_filter)
        if entry is None:
            return None
        stored_at, result = entry
        if self._clock() - stored_at >= self._stale_seconds:
            del self._memo[canonical_filter]
            return None
        return result

    def _evict_stale_memo(self) -> None:
        now = self._clock()
        stale = [key for key, (stored_at, _) in self._memo.items() if now - stored_at >= self._stale_seconds]
        for key in stale:
            del self._memo[key]

    def _transition(self, **changes) -> None:
        self._state = dataclasses.replace(self._state, updated_at=datetime.now(UTC), **changes)
        if self._on_change is not None:
            self._on_change(dataclasses.replace(self._state))
