import asyncio
from datetime import UTC

import pytest

from app.features.appointment_dashboard.domain.errors import (
    AuthorizationError,
    TransientFetchError,
    ValidationError,
)
from app.features.appointment_dashboard.domain.models import FilterOptions, FilterRequest
from app.features.appointment_dashboard.services.dashboard_service import DashboardService
from app.features.appointment_dashboard.services.query_controller import DebouncedQueryController
from app.features.appointment_dashboard.services.retry_policy import RetryPolicy


async def _until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


class GatedExecutor:
    """Executor whose calls block until released, one gate per canonical filter."""

    def __init__(self, service: DashboardService, *, gated: bool = True):
        self.service = service
        self.gated = gated
        self.calls = []
        self.gates: dict = {}
        self.failures: dict = {}

    def release(self, canonical_filter) -> None:
        self.gates.setdefault(canonical_filter, asyncio.Event()).set()

    async def __call__(self, identity, canonical_filter):
        self.calls.append(canonical_filter)
        if self.gated:
            await self.gates.setdefault(canonical_filter, asyncio.Event()).wait()
        failures = self.failures.get(canonical_filter)
        if failures:
            raise failures.pop(0)
        options = FilterOptions(closers=list(canonical_filter.closers))
        return self.service.build_result(canonical_filter, [], options)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def service(record_source, fixed_now):
    return DashboardService(record_source, tz=UTC, clock=lambda: fixed_now)


def _controller(service, executor, **kwargs):
    kwargs.setdefault("debounce_seconds", 0.01)
    kwargs.setdefault("retry_policy", RetryPolicy(max_retries=2, base_delay=0.0))
    kwargs.setdefault("sleep", _no_sleep)
    return DebouncedQueryController(executor, service.canonicalize, **kwargs)


@pytest.mark.asyncio
async def test_rapid_edits_collapse_into_one_execution(service, standard_user):
    executor = GatedExecutor(service, gated=False)
    controller = _controller(service, executor, identity=standard_user, debounce_seconds=0.4)

    controller.submit(FilterRequest(closers=["Alice"]))
    await asyncio.sleep(0.05)
    controller.submit(FilterRequest(closers=["Bob"]))
    await asyncio.sleep(0.05)
    controller.submit(FilterRequest(closers=["Carol"]))

    # Past the first edit's window, inside the last one
    await asyncio.sleep(0.35)
    assert executor.calls == []

    await controller.wait_idle()

    assert len(executor.calls) == 1
    assert executor.calls[0].closers == ("Carol",)
    assert controller.state.status == "success"
    assert controller.state.unique_closers == ["Carol"]


@pytest.mark.asyncio
async def test_equal_filters_share_one_in_flight_execution(service, standard_user):
    executor = GatedExecutor(service)
    controller = _controller(service, executor, identity=standard_user)

    controller.submit(FilterRequest(closers=["Alice", "Bob"]))
    await _until(lambda: len(executor.calls) == 1)

    # Same set in a different order is the same canonical filter
    controller.submit(FilterRequest(closers=["Bob", "Alice"]))
    await asyncio.sleep(0.03)
    controller.refetch()

    executor.release(executor.calls[0])
    await controller.wait_idle()

    assert len(executor.calls) == 1
    assert controller.execution_count == 1
    assert controller.state.status == "success"


@pytest.mark.asyncio
async def test_late_completion_of_superseded_filter_is_dropped(service, standard_user):
    executor = GatedExecutor(service)
    seen = []
    controller = _controller(service, executor, identity=standard_user, on_change=seen.append)

    controller.submit(FilterRequest(closers=["Alice"]))
    await _until(lambda: len(executor.calls) == 1)
    controller.submit(FilterRequest(closers=["Bob"]))
    await _until(lambda: len(executor.calls) == 2)
    first, second = executor.calls

    executor.release(second)
    await _until(lambda: controller.state.status == "success")
    executor.release(first)
    await controller.wait_idle()

    state = controller.state
    assert state.status == "success"
    assert state.filter == second
    assert state.data.filter == second
    assert all(s.data is None or s.data.filter == second for s in seen)


@pytest.mark.asyncio
async def test_earlier_completion_does_not_publish_before_latest(service, standard_user):
    executor = GatedExecutor(service)
    controller = _controller(service, executor, identity=standard_user)

    controller.submit(FilterRequest(closers=["Alice"]))
    await _until(lambda: len(executor.calls) == 1)
    controller.submit(FilterRequest(closers=["Bob"]))
    await _until(lambda: len(executor.calls) == 2)
    first, second = executor.calls

    executor.release(first)
    await asyncio.sleep(0.02)
    assert controller.state.status == "loading"

    executor.release(second)
    await controller.wait_idle()
    assert controller.state.data.filter == second


@pytest.mark.asyncio
async def test_close_discards_results_that_arrive_later(service, standard_user):
    executor = GatedExecutor(service)
    seen = []
    controller = _controller(service, executor, identity=standard_user, on_change=seen.append)

    controller.submit(FilterRequest())
    await _until(lambda: len(executor.calls) == 1)
    changes_before_close = len(seen)

    controller.close()
    executor.release(executor.calls[0])
    await controller.wait_idle()

    assert controller.closed
    assert controller.state.status == "loading"
    assert len(seen) == changes_before_close


@pytest.mark.asyncio
async def test_close_cancels_pending_debounce(service, standard_user):
    executor = GatedExecutor(service, gated=False)
    controller = _controller(service, executor, identity=standard_user, debounce_seconds=0.05)

    controller.submit(FilterRequest())
    controller.close()
    await asyncio.sleep(0.1)

    assert executor.calls == []
    assert controller.state.status == "idle"


@pytest.mark.asyncio
async def test_failure_keeps_previous_data_and_auth_is_not_retried(service, standard_user):
    executor = GatedExecutor(service, gated=False)
    controller = _controller(service, executor, identity=standard_user)

    controller.submit(FilterRequest(closers=["Alice"]))
    await controller.wait_idle()
    previous = controller.state.data

    bob = service.canonicalize(standard_user, FilterRequest(closers=["Bob"]))
    executor.failures[bob] = [AuthorizationError("JWT expired", status_code=401)]
    controller.submit(FilterRequest(closers=["Bob"]))
    await controller.wait_idle()

    state = controller.state
    assert state.status == "failure"
    assert isinstance(state.error, AuthorizationError)
    assert state.data is previous
    assert state.is_stale is True
    assert executor.calls.count(bob) == 1


@pytest.mark.asyncio
async def test_transient_failures_are_retried_within_one_execution(service, standard_user):
    executor = GatedExecutor(service, gated=False)
    controller = _controller(service, executor, identity=standard_user)
    canonical = service.canonicalize(standard_user, FilterRequest())
    executor.failures[canonical] = [TransientFetchError("blip"), TransientFetchError("blip")]

    controller.submit(FilterRequest())
    await controller.wait_idle()

    assert controller.state.status == "success"
    assert controller.execution_count == 1
    assert len(executor.calls) == 3


@pytest.mark.asyncio
async def test_execution_waits_for_identity(service, standard_user):
    executor = GatedExecutor(service, gated=False)
    controller = _controller(service, executor)

    controller.submit(FilterRequest())
    await controller.wait_idle()
    assert executor.calls == []
    assert controller.state.status == "idle"

    controller.set_identity(standard_user)
    await controller.wait_idle()

    assert len(executor.calls) == 1
    assert executor.calls[0].company_id == "company-a"
    assert controller.state.status == "success"


@pytest.mark.asyncio
async def test_fresh_results_are_served_from_memo(service, standard_user):
    executor = GatedExecutor(service, gated=False)
    clock = FakeClock()
    controller = _controller(service, executor, identity=standard_user, clock=clock, stale_seconds=300)

    controller.submit(FilterRequest(closers=["Alice"]))
    await controller.wait_idle()
    controller.submit(FilterRequest(closers=["Bob"]))
    await controller.wait_idle()
    controller.submit(FilterRequest(closers=["Alice"]))
    await controller.wait_idle()

    assert controller.execution_count == 2
    assert controller.state.data.filter.closers == ("Alice",)

    clock.now = 301
    controller.submit(FilterRequest(closers=["Bob"]))
    await controller.wait_idle()

    assert controller.execution_count == 3


@pytest.mark.asyncio
async def test_refetch_bypasses_memo(service, standard_user):
    executor = GatedExecutor(service, gated=False)
    controller = _controller(service, executor, identity=standard_user, clock=FakeClock())

    controller.submit(FilterRequest())
    await controller.wait_idle()
    controller.refetch()
    await controller.wait_idle()

    assert controller.execution_count == 2


@pytest.mark.asyncio
async def test_invalid_filter_is_reported_as_failure(service, standard_user):
    executor = GatedExecutor(service, gated=False)
    controller = _controller(service, executor, identity=standard_user)

    controller.submit(FilterRequest(start="not a date"))
    await controller.wait_idle()

    assert controller.state.status == "failure"
    assert isinstance(controller.state.error, ValidationError)
    assert executor.calls == []


@pytest.mark.asyncio
async def test_controller_over_service_fetches_from_source(service, record_source, appointment_factory, standard_user):
    record_source.records = [appointment_factory("1", disposition="Sat")]
    controller = DebouncedQueryController.for_service(
        service, identity=standard_user, debounce_seconds=0.01, sleep=_no_sleep
    )

    idle = controller.state
    assert idle.loading is False
    assert idle.appointments == []
    assert idle.metrics.total_appointments == 0

    controller.submit(FilterRequest())
    assert controller.state.loading is False
    await controller.wait_idle()

    state = controller.state
    assert state.status == "success"
    assert [r.id for r in state.appointments] == ["1"]
    assert state.metrics.total_sits == 1
    assert state.unique_closers == ["Alice"]
    assert record_source.option_calls == ["company-a"]


@pytest.mark.asyncio
async def test_stale_memo_entries_are_evicted(service, standard_user):
    executor = GatedExecutor(service, gated=False)
    clock = FakeClock()
    controller = _controller(service, executor, identity=standard_user, clock=clock, stale_seconds=300)

    controller.submit(FilterRequest(closers=["Alice"]))
    await controller.wait_idle()
    controller.submit(FilterRequest(closers=["Bob"]))
    await controller.wait_idle()
    assert len(controller.memoized_filters) == 2

    clock.now = 301
    controller.submit(FilterRequest(closers=["Carol"]))
    await controller.wait_idle()

    assert [f.closers for f in controller.memoized_filters] == [("Carol",)]
