"""
Supabase-backed appointment source.

Reads appointment rows through PostgREST with the caller's own access token,
so the database's row-level security applies exactly as it does for the web
client. HTTP failures are translated into the dashboard error taxonomy:
401/403 become AuthorizationError (never retried), everything else that is
not a success becomes TransientFetchError.
"""

from datetime import date, datetime, time
from typing import Any

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

from ..domain.errors import AuthorizationError, TransientFetchError, ValidationError
from ..domain.models import AppointmentRecord, CanonicalFilter, FilterOptions, MetricsSummary
from ..pipeline.aggregation import unique_names

logger = get_logger(__name__)

APPOINTMENTS_TABLE = "appointments"
AUTH_STATUS_CODES = {401, 403}


def _postgrest_list(values: tuple[str, ...]) -> str:
    """Render names for a PostgREST ``in.(...)`` operator, quoting each value."""
    quoted = []
    for value in values:
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        quoted.append(f'"{escaped}"')
    return f"in.({','.join(quoted)})"


def _parse_timestamp(value: Any, field_name: str, row_id: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str) and value:
        try:
            if len(value) == 10:
                return datetime.combine(date.fromisoformat(value), time.min)
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(
        f"Appointment {row_id} has invalid {field_name}: {value!r}", operation="parse_appointment"
    )


def _optional_timestamp(value: Any, field_name: str, row_id: str) -> datetime | None:
    return _parse_timestamp(value, field_name, row_id) if value else None


def _optional_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _optional_int(value: Any) -> int | None:
    # credit_score is stored as text in some companies' imports
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def row_to_appointment(row: dict[str, Any]) -> AppointmentRecord:
    """Map an appointments row to a record, validating disposition and booked_for."""
    try:
        row_id = str(row["id"])
        return AppointmentRecord(
            id=row_id,
            company_id=str(row["company_id"]),
            name=row.get("name") or "",
            closer_name=row.get("closer_name") or "",
            booked_for=_parse_timestamp(row.get("booked_for"), "booked_for", row_id),
            disposition=row.get("confirmation_disposition"),
            setter_name=row.get("setter_name"),
            phone_number=row.get("phone_number"),
            email=row.get("email"),
            address=row.get("address"),
            note=row.get("note"),
            credit_score=_optional_int(row.get("credit_score")),
            m1_commission=_optional_float(row.get("m1_commission")),
            m2_commission=_optional_float(row.get("m2_commission")),
            setter_number=row.get("setter_number"),
            disposition_date=_optional_date(row.get("disposition_date")),
            site_survey=row.get("site_survey"),
            contact_link=row.get("contact_link"),
            recording_media_link=row.get("recording_media_link"),
            roof_type=row.get("roof_type"),
            existing_solar=row.get("existing_solar"),
            shading=row.get("shading"),
            appointment_type=row.get("appointment_type"),
            confirmed=row.get("confirmed"),
            contact_id=row.get("contact_id"),
            dq_reason=row.get("dq_reason"),
            system_size=_optional_float(row.get("system_size")),
            created_at=_optional_timestamp(row.get("created_at"), "created_at", row_id),
            updated_at=_optional_timestamp(row.get("updated_at"), "updated_at", row_id),
        )
    except KeyError as e:
        raise ValidationError(
            f"Appointment row missing field {e.args[0]}", operation="parse_appointment"
        ) from e


class SupabaseAppointmentSource:
    """
    Raw-record source over Supabase PostgREST.

    One instance per caller request: it carries the caller's bearer token.
    ``fetch_metrics`` returns None, telling the dashboard service to
    aggregate locally.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self._api_key = api_key or settings.SUPABASE_ANON_KEY
        self._access_token = access_token
        self._timeout = timeout or settings.DASHBOARD_FETCH_TIMEOUT_S
        self._owns_client = client is None
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(self._timeout)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SupabaseAppointmentSource":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/json",
        }

    async def _request(self, method: str, url: str, operation: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Record source timed out", operation=operation, timeout_s=self._timeout)
            raise TransientFetchError(
                f"Request timed out after {self._timeout}s. Please try again.",
                operation=operation,
            ) from e
        except httpx.RequestError as e:
            logger.warning("Record source network error", operation=operation, error=str(e))
            raise TransientFetchError(
                f"Network error while contacting Supabase: {e}", operation=operation
            ) from e

        return self._handle_response(response, operation)

    def _handle_response(self, response: httpx.Response, operation: str) -> Any:
        if response.is_success:
            try:
                return response.json() if response.text else None
            except ValueError as e:
                raise TransientFetchError(
                    f"Invalid response format from {operation}: {e}", operation=operation
                ) from e

        message = self._error_message(response)
        logger.error(
            f"Record source {operation} failed",
            status_code=response.status_code,
            error_message=message,
        )

        if response.status_code in AUTH_STATUS_CODES:
            raise AuthorizationError(
                f"Authentication failed. Please log in again. ({message})",
                operation=operation,
                status_code=response.status_code,
            )
        raise TransientFetchError(
            f"Failed to fetch {operation}: {message}",
            operation=operation,
            status_code=response.status_code,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            payload = response.json() if response.text else {}
        except ValueError:
            return response.text[:200] if response.text else f"HTTP {response.status_code}"
        if isinstance(payload, dict):
            return str(payload.get("message") or payload.get("error") or f"HTTP {response.status_code}")
        return f"HTTP {response.status_code}"

    def _appointment_params(self, canonical_filter: CanonicalFilter) -> list[tuple[str, str]]:
        tz = settings.dashboard_timezone()
        date_range = canonical_filter.date_range
        params = [
            ("select", "*"),
            ("order", "booked_for.desc"),
            ("booked_for", f"gte.{date_range.start_at(tz).isoformat()}"),
            ("booked_for", f"lte.{date_range.end_at(tz).isoformat()}"),
        ]
        if canonical_filter.closers:
            params.append(("closer_name", _postgrest_list(canonical_filter.closers)))
        if canonical_filter.setters:
            params.append(("setter_name", _postgrest_list(canonical_filter.setters)))
        if canonical_filter.company_id is not None:
            params.append(("company_id", f"eq.{canonical_filter.company_id}"))
        return params

    async def fetch_appointments(self, canonical_filter: CanonicalFilter) -> list[AppointmentRecord]:
        """Appointments matching the filter, newest first."""
        rows = await self._request(
            "GET",
            f"{self.base_url}/rest/v1/{APPOINTMENTS_TABLE}",
            "appointments",
            params=self._appointment_params(canonical_filter),
        )
        if not isinstance(rows, list):
            raise ValidationError("Appointments payload is not a list", operation="appointments")

        records = [row_to_appointment(row) for row in rows]
        logger.debug("Fetched appointments", count=len(records), company_id=canonical_filter.company_id)
        return records

    async def _distinct_column(self, column: str, company_id: str | None) -> list[str]:
        params = [("select", column)]
        if company_id is not None:
            params.append(("company_id", f"eq.{company_id}"))
        rows = await self._request(
            "GET", f"{self.base_url}/rest/v1/{APPOINTMENTS_TABLE}", f"{column}s", params=params
        )
        return unique_names(row.get(column) for row in rows or [])

    async def fetch_filter_options(self, company_id: str | None) -> FilterOptions:
        """Distinct closer and setter names within a company scope."""
        closers = await self._distinct_column("closer_name", company_id)
        setters = await self._distinct_column("setter_name", company_id)
        return FilterOptions(closers=closers, setters=setters)

    async def fetch_metrics(self, canonical_filter: CanonicalFilter) -> MetricsSummary | None:
        return None


class EdgeFunctionAppointmentSource(SupabaseAppointmentSource):
    """
    Source that trusts server-computed metrics from the
    ``get-dashboard-metrics`` edge function.
    """

    METRICS_FUNCTION = "get-dashboard-metrics"

    @staticmethod
    def _function_body(canonical_filter: CanonicalFilter) -> dict[str, Any]:
        # Same timestamp bounds as the appointment query so the last day is included
        tz = settings.dashboard_timezone()
        date_range = canonical_filter.date_range
        body: dict[str, Any] = {
            "dateRange": {
                "start": date_range.start_at(tz).isoformat(),
                "end": date_range.end_at(tz).isoformat(),
            },
            "selectedClosers": list(canonical_filter.closers),
            "selectedSetters": list(canonical_filter.setters),
        }
        if canonical_filter.company_id is not None:
            body["selectedCompany"] = canonical_filter.company_id
        return body

    async def fetch_metrics(self, canonical_filter: CanonicalFilter) -> MetricsSummary | None:
        payload = await self._request(
            "POST",
            f"{self.base_url}/functions/v1/{self.METRICS_FUNCTION}",
            "metrics",
            json=self._function_body(canonical_filter),
        )
        if not isinstance(payload, dict):
            raise ValidationError("Metrics payload is not an object", operation="metrics")

        return MetricsSummary(
            total_appointments=int(payload.get("totalAppointments") or 0),
            total_sits=int(payload.get("totalSits") or 0),
            total_closes=int(payload.get("totalCloses") or 0),
            no_shows=int(payload.get("noShows") or 0),
            rescheduled=int(payload.get("rescheduled") or 0),
            not_interested=int(payload.get("notInterested") or 0),
            disqualified=int(payload.get("disqualified") or 0),
            follow_up=int(payload.get("followUp") or 0),
            pending=int(payload.get("pending") or 0),
            sit_rate=float(payload.get("sitRate") or 0),
            close_rate=float(payload.get("closeRate") or 0),
        )
