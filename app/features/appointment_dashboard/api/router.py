"""
Appointment dashboard routes.

Every request resolves the caller's identity first; the company scope is
derived from it server-side, whatever the request body asks for.
"""

import time
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError as PydanticValidationError

from app.auth.verify import access_token_dependency, auth_dependency
from app.config import settings
from app.infrastructure.observability.logging import get_logger, log_dashboard_query
from app.models.api.dashboard_request import DashboardQueryRequest
from app.models.api.dashboard_response import (
    AppointmentResponse,
    BreakdownResponse,
    CanonicalFilterResponse,
    DailyBucketResponse,
    DashboardResponse,
    FilterOptionsResponse,
    MetricsResponse,
)

from ..domain.errors import DashboardError
from ..domain.models import CallerIdentity, DashboardResult, FilterRequest
from ..repository.appointment_source import (
    EdgeFunctionAppointmentSource,
    SupabaseAppointmentSource,
)
from ..repository.identity_repository import get_caller_identity
from ..services.dashboard_service import DashboardService
from ..services.result_cache import DashboardResultCache, cache_key
from ..services.retry_policy import RetryPolicy

logger = get_logger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def to_http_error(error: DashboardError) -> HTTPException:
    """Single mapping point from the dashboard error taxonomy to HTTP."""
    # Upstream status, when there is one, stays in the detail body
    if error.recoverable:
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = error.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=status_code, detail=error.to_dict())


async def get_identity(claims: dict = Depends(auth_dependency)) -> CallerIdentity:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        return await get_caller_identity(user_id)
    except DashboardError as e:
        logger.warning("Caller identity unavailable", user_id=user_id, error_kind=e.kind)
        raise to_http_error(e) from e


async def get_record_source(
    access_token: str = Depends(access_token_dependency),
) -> AsyncIterator[SupabaseAppointmentSource]:
    source_cls = (
        EdgeFunctionAppointmentSource if settings.DASHBOARD_SERVER_METRICS else SupabaseAppointmentSource
    )
    async with source_cls(access_token) as source:
        yield source


def get_dashboard_service(
    source: SupabaseAppointmentSource = Depends(get_record_source),
) -> DashboardService:
    return DashboardService(source)


def get_result_cache() -> DashboardResultCache:
    return DashboardResultCache()


def get_retry_policy() -> RetryPolicy:
    return RetryPolicy.from_settings()


def to_dashboard_response(result: DashboardResult) -> DashboardResponse:
    return DashboardResponse(
        appointments=[AppointmentResponse.model_validate(record) for record in result.appointments],
        metrics=MetricsResponse.model_validate(result.metrics),
        daily=[
            DailyBucketResponse(
                day=bucket.day,
                total=bucket.total,
                sits=bucket.sits,
                closes=bucket.closes,
                no_shows=bucket.no_shows,
                counts=dict(bucket.counts),
            )
            for bucket in result.daily
        ],
        breakdown=BreakdownResponse.model_validate(result.breakdown),
        unique_closers=result.unique_closers,
        unique_setters=result.unique_setters,
        filter=CanonicalFilterResponse.model_validate(result.filter.to_dict()),
        total=result.total,
    )


def _load_cached(payload: str | None) -> DashboardResponse | None:
    if payload is None:
        return None
    try:
        return DashboardResponse.model_validate_json(payload)
    except PydanticValidationError as e:
        logger.warning("Discarding unreadable cached dashboard result", error=str(e))
        return None


@router.post("/query", response_model=DashboardResponse)
async def query_dashboard(
    body: DashboardQueryRequest,
    identity: CallerIdentity = Depends(get_identity),
    service: DashboardService = Depends(get_dashboard_service),
    cache: DashboardResultCache = Depends(get_result_cache),
    retry_policy: RetryPolicy = Depends(get_retry_policy),
):
    """Metrics, trend, breakdowns and appointments for one filter."""
    start_time = time.time()
    request = FilterRequest(
        start=body.date_range.start if body.date_range else None,
        end=body.date_range.end if body.date_range else None,
        closers=body.selected_closers,
        setters=body.selected_setters,
        company_id=body.selected_company,
    )

    try:
        canonical_filter = service.canonicalize(identity, request)
        key = cache_key(identity, canonical_filter, limit=body.limit, offset=body.offset)

        response = _load_cached(await cache.get(key))
        if response is not None:
            log_dashboard_query(
                company_id=canonical_filter.company_id,
                total=response.total,
                duration_ms=(time.time() - start_time) * 1000,
                cache_hit=True,
                user_id=identity.user_id,
            )
            return response

        result = await retry_policy.run(
            lambda: service.execute(canonical_filter, limit=body.limit, offset=body.offset),
            operation_name="dashboard_query",
        )
    except DashboardError as e:
        logger.error(
            "Dashboard query failed",
            user_id=identity.user_id,
            error_kind=e.kind,
            operation=e.operation,
            error=str(e),
        )
        raise to_http_error(e) from e

    response = to_dashboard_response(result)
    await cache.set(key, response.model_dump_json())
    return response


@router.get("/filter-options", response_model=FilterOptionsResponse)
async def get_filter_options(
    company_id: str | None = Query(default=None, description="Company to list names for (super admins only)"),
    identity: CallerIdentity = Depends(get_identity),
    service: DashboardService = Depends(get_dashboard_service),
    retry_policy: RetryPolicy = Depends(get_retry_policy),
):
    """Closer and setter names selectable within the caller's scope."""
    try:
        options = await retry_policy.run(
            lambda: service.filter_options(identity, company_id),
            operation_name="filter_options",
        )
    except DashboardError as e:
        logger.error("Filter options failed", user_id=identity.user_id, error_kind=e.kind, error=str(e))
        raise to_http_error(e) from e

    return FilterOptionsResponse(
        closers=options.closers,
        setters=options.setters,
        company_id=(company_id or None) if identity.is_privileged else identity.company_id,
    )
