import json
from datetime import UTC, date, datetime

import httpx
import pytest

from app.config import settings
from app.features.appointment_dashboard.api.router import get_record_source
from app.features.appointment_dashboard.domain.errors import (
    AuthorizationError,
    TransientFetchError,
    ValidationError,
)
from app.features.appointment_dashboard.domain.models import CanonicalFilter, DateRange
from app.features.appointment_dashboard.repository.appointment_source import (
    EdgeFunctionAppointmentSource,
    SupabaseAppointmentSource,
    row_to_appointment,
)

BASE_URL = "https://testproject.supabase.co"

ROW = {
    "id": "0b6f",
    "company_id": "company-a",
    "name": "Jane Doe",
    "closer_name": "Alice",
    "setter_name": "Sam",
    "booked_for": "2024-01-16T15:00:00+00:00",
    "confirmation_disposition": "Sat",
    "credit_score": "712",
    "existing_solar": False,
    "roof_type": "Shingle",
    "created_at": "2024-01-10T08:00:00+00:00",
}

WEEK = CanonicalFilter(
    date_range=DateRange(date(2024, 1, 15), date(2024, 1, 21)),
    closers=("Alice", 'Bob "B" Jones'),
    company_id="company-a",
)


def _source(handler, cls=SupabaseAppointmentSource) -> SupabaseAppointmentSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return cls("caller-token", base_url=BASE_URL, api_key="anon-key", timeout=5.0, client=client)


def test_row_to_appointment_maps_columns():
    record = row_to_appointment(ROW)

    assert record.disposition == "Sat"
    assert record.booked_for == datetime(2024, 1, 16, 15, 0, tzinfo=UTC)
    assert record.credit_score == 712
    assert record.existing_solar is False
    assert record.created_at.year == 2024


def test_row_with_unknown_disposition_is_rejected():
    with pytest.raises(ValidationError):
        row_to_appointment({**ROW, "confirmation_disposition": "Maybe"})


def test_row_missing_id_is_rejected():
    row = dict(ROW)
    del row["id"]

    with pytest.raises(ValidationError):
        row_to_appointment(row)


@pytest.mark.asyncio
async def test_fetch_appointments_sends_filter_and_caller_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = request.url.params
        seen["headers"] = request.headers
        return httpx.Response(200, json=[ROW])

    async with _source(handler) as source:
        records = await source.fetch_appointments(WEEK)

    assert [r.id for r in records] == ["0b6f"]
    assert seen["path"] == "/rest/v1/appointments"
    assert seen["headers"]["authorization"] == "Bearer caller-token"
    assert seen["headers"]["apikey"] == "anon-key"
    assert seen["params"]["company_id"] == "eq.company-a"
    assert seen["params"]["closer_name"] == 'in.("Alice","Bob \\"B\\" Jones")'
    assert seen["params"].get_list("booked_for") == [
        "gte.2024-01-15T00:00:00+00:00",
        "lte.2024-01-21T23:59:59+00:00",
    ]
    assert "setter_name" not in seen["params"]


@pytest.mark.asyncio
async def test_unrestricted_scope_sends_no_company_filter():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = request.url.params
        return httpx.Response(200, json=[])

    unrestricted = CanonicalFilter(date_range=WEEK.date_range)
    async with _source(handler) as source:
        assert await source.fetch_appointments(unrestricted) == []

    assert "company_id" not in seen["params"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [401, 403])
async def test_auth_failures_become_authorization_errors(status_code):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"message": "JWT expired"})

    async with _source(handler) as source:
        with pytest.raises(AuthorizationError) as exc_info:
            await source.fetch_appointments(WEEK)

    assert exc_info.value.status_code == status_code
    assert exc_info.value.recoverable is False


@pytest.mark.asyncio
async def test_server_failures_are_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream unavailable")

    async with _source(handler) as source:
        with pytest.raises(TransientFetchError) as exc_info:
            await source.fetch_appointments(WEEK)

    assert exc_info.value.status_code == 503
    assert exc_info.value.recoverable is True


@pytest.mark.asyncio
async def test_timeouts_are_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    async with _source(handler) as source:
        with pytest.raises(TransientFetchError, match="timed out"):
            await source.fetch_appointments(WEEK)


@pytest.mark.asyncio
async def test_filter_options_are_sorted_and_distinct():
    def handler(request: httpx.Request) -> httpx.Response:
        column = request.url.params["select"]
        values = {
            "closer_name": ["Bob", "Alice", "Bob"],
            "setter_name": ["Tina", None, "", "Sam"],
        }[column]
        return httpx.Response(200, json=[{column: value} for value in values])

    async with _source(handler) as source:
        options = await source.fetch_filter_options("company-a")

    assert options.closers == ["Alice", "Bob"]
    assert options.setters == ["Sam", "Tina"]


@pytest.mark.asyncio
async def test_raw_source_leaves_metrics_to_the_pipeline():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    async with _source(handler) as source:
        assert await source.fetch_metrics(WEEK) is None


@pytest.mark.asyncio
async def test_edge_function_metrics_are_mapped():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.read()
        return httpx.Response(
            200,
            json={
                "totalAppointments": 20,
                "totalSits": 10,
                "totalCloses": 4,
                "noShows": 3,
                "sitRate": 50.0,
                "closeRate": 40.0,
            },
        )

    async with _source(handler, EdgeFunctionAppointmentSource) as source:
        metrics = await source.fetch_metrics(WEEK)

    assert seen["path"] == "/functions/v1/get-dashboard-metrics"
    assert b'"selectedCompany":"company-a"' in seen["body"].replace(b" ", b"")
    assert metrics.total_sits == 10
    assert metrics.close_rate == 40.0
    assert metrics.pending == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("server_metrics", "expected"),
    [(False, SupabaseAppointmentSource), (True, EdgeFunctionAppointmentSource)],
)
async def test_record_source_dependency_follows_settings(monkeypatch, server_metrics, expected):
    monkeypatch.setattr(settings, "DASHBOARD_SERVER_METRICS", server_metrics)

    dependency = get_record_source("caller-token")
    source = await anext(dependency)
    await dependency.aclose()

    assert type(source) is expected


@pytest.mark.asyncio
async def test_edge_function_range_covers_the_whole_last_day(monkeypatch):
    monkeypatch.setattr(settings, "DASHBOARD_BUSINESS_TIMEZONE", "UTC")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.read())
        return httpx.Response(200, json={"totalAppointments": 1})

    async with _source(handler, EdgeFunctionAppointmentSource) as source:
        await source.fetch_metrics(WEEK)

    date_range = seen["body"]["dateRange"]
    assert date_range["start"] == "2024-01-15T00:00:00+00:00"
    assert date_range["end"] == "2024-01-21T23:59:59+00:00"
    sunday_afternoon = datetime(2024, 1, 21, 15, 0, tzinfo=UTC)
    assert datetime.fromisoformat(date_range["end"]) >= sunday_afternoon
