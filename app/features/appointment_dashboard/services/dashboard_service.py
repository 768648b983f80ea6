"""
Dashboard pipeline orchestration.

    identity + FilterRequest
        -> resolve_company_scope -> normalize_filter -> CanonicalFilter
        -> record source (appointments, filter options, optional metrics; concurrently)
        -> filter_records -> {aggregate_metrics, bucketize, build_breakdown}
        -> DashboardResult

Everything except the record source calls is synchronous and pure.
"""

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime, tzinfo
from typing import Protocol

from app.config import settings
from app.infrastructure.observability.logging import get_logger, log_dashboard_query

from ..domain.errors import ValidationError
from ..domain.models import (
    AppointmentRecord,
    CallerIdentity,
    CanonicalFilter,
    DashboardResult,
    FilterOptions,
    FilterRequest,
    MetricsSummary,
)
from ..pipeline.aggregation import aggregate_metrics, build_breakdown
from ..pipeline.filtering import filter_records, normalize_filter, resolve_for_identity
from ..pipeline.timeseries import bucketize

logger = get_logger(__name__)


class RecordSource(Protocol):
    """What the pipeline needs from the persistence collaborator."""

    async def fetch_appointments(self, canonical_filter: CanonicalFilter) -> list[AppointmentRecord]: ...

    async def fetch_filter_options(self, company_id: str | None) -> FilterOptions: ...

    async def fetch_metrics(self, canonical_filter: CanonicalFilter) -> MetricsSummary | None: ...


def _business_local(moment: datetime, tz: tzinfo | None) -> datetime:
    # Comparable key for naive and aware timestamps alike
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(tz or UTC).replace(tzinfo=None)


def order_newest_first(
    records: list[AppointmentRecord], tz: tzinfo | None = None
) -> list[AppointmentRecord]:
    """booked_for descending; records with equal timestamps keep source order."""
    return sorted(records, key=lambda record: _business_local(record.booked_for, tz), reverse=True)


def paginate(records: list[AppointmentRecord], limit: int | None, offset: int = 0) -> list[AppointmentRecord]:
    if offset < 0:
        raise ValidationError("offset must not be negative", operation="paginate")
    if limit is None:
        return records[offset:]
    if limit < 0:
        raise ValidationError("limit must not be negative", operation="paginate")
    return records[offset : offset + limit]


class DashboardService:
    """
    Runs the dashboard pipeline against one record source.

    Args:
        source: Record source collaborator
        tz: Business timezone for calendar-day semantics (defaults to settings)
        clock: Returns "now" for the default week; injectable for tests
    """

    def __init__(
        self,
        source: RecordSource,
        *,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.source = source
        self.tz = tz or settings.dashboard_timezone()
        self._clock = clock or (lambda: datetime.now(self.tz))

    def canonicalize(
        self, identity: CallerIdentity, request: FilterRequest | None, now: datetime | None = None
    ) -> CanonicalFilter:
        """Scope resolution followed by normalization."""
        request = request or FilterRequest()
        company_scope = resolve_for_identity(identity, request.company_id)
        if identity.is_privileged:
            logger.debug("Privileged company scope resolved", company_id=company_scope or "all")
        return normalize_filter(request, company_scope, now=now or self._clock(), tz=self.tz)

    def build_result(
        self,
        canonical_filter: CanonicalFilter,
        appointments: list[AppointmentRecord],
        options: FilterOptions,
        server_metrics: MetricsSummary | None = None,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> DashboardResult:
        # The source is trusted to pre-filter, the filter is re-applied so that
        # calendar-day bounds hold regardless of how the source compared timestamps
        filtered = filter_records(appointments, canonical_filter, self.tz)
        if len(filtered) != len(appointments):
            logger.debug(
                "Record source returned rows outside the canonical filter",
                returned=len(appointments),
                kept=len(filtered),
            )

        metrics = server_metrics if server_metrics is not None else aggregate_metrics(filtered)
        ordered = order_newest_first(filtered, self.tz)

        return DashboardResult(
            filter=canonical_filter,
            appointments=paginate(ordered, limit, offset),
            metrics=metrics,
            daily=bucketize(filtered, canonical_filter.date_range, self.tz),
            breakdown=build_breakdown(filtered),
            unique_closers=list(options.closers),
            unique_setters=list(options.setters),
            total=len(filtered),
        )

    async def execute(
        self,
        canonical_filter: CanonicalFilter,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> DashboardResult:
        """Fetch from the source (independent reads run concurrently) and derive."""
        start_time = time.time()

        appointments, options, server_metrics = await asyncio.gather(
            self.source.fetch_appointments(canonical_filter),
            self.source.fetch_filter_options(canonical_filter.company_id),
            self.source.fetch_metrics(canonical_filter),
        )

        result = self.build_result(
            canonical_filter, appointments, options, server_metrics, limit=limit, offset=offset
        )
        log_dashboard_query(
            company_id=canonical_filter.company_id,
            total=result.total,
            duration_ms=(time.time() - start_time) * 1000,
        )
        return result

    async def run(
        self,
        identity: CallerIdentity,
        request: FilterRequest | None,
        *,
        limit: int | None = None,
        offset: int = 0,
        now: datetime | None = None,
    ) -> DashboardResult:
        canonical_filter = self.canonicalize(identity, request, now)
        return await self.execute(canonical_filter, limit=limit, offset=offset)

    async def filter_options(self, identity: CallerIdentity, requested_company_id: str | None = None) -> FilterOptions:
        company_scope = resolve_for_identity(identity, requested_company_id)
        return await self.source.fetch_filter_options(company_scope)
