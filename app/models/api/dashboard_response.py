# app/models/api/dashboard_response.py
"""
Dashboard API response models.
Used by routes for output formatting.
"""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class AppointmentResponse(BaseModel):
    """One appointment row as shown in the dashboard table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: str
    name: str
    closer_name: str
    booked_for: datetime
    disposition: str
    setter_name: str | None = None
    phone_number: str | None = None
    email: str | None = None
    address: str | None = None
    note: str | None = None
    credit_score: int | None = None
    m1_commission: float | None = None
    m2_commission: float | None = None
    setter_number: str | None = None
    disposition_date: date | None = None
    site_survey: str | None = None
    contact_link: str | None = None
    recording_media_link: str | None = None
    roof_type: str | None = None
    existing_solar: bool | None = None
    shading: str | None = None
    appointment_type: str | None = None
    confirmed: bool | None = None
    contact_id: str | None = None
    dq_reason: str | None = None
    system_size: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MetricsResponse(BaseModel):
    """KPI cards. Rates are percentages rounded to two decimals."""

    model_config = ConfigDict(from_attributes=True)

    total_appointments: int = Field(..., description="Appointments in the filtered subset")
    total_sits: int = Field(..., description="Appointments with disposition Sat")
    total_closes: int = Field(..., description="Appointments with disposition Closed")
    no_shows: int
    rescheduled: int
    not_interested: int
    disqualified: int
    follow_up: int
    pending: int
    sit_rate: float = Field(..., description="Sits as a percentage of all appointments")
    close_rate: float = Field(..., description="Closes as a percentage of sits")


class DailyBucketResponse(BaseModel):
    """Per-day counts for the trend chart."""

    day: date
    total: int
    sits: int
    closes: int
    no_shows: int
    counts: dict[str, int] = Field(..., description="Count per disposition")


class CategoryShareResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: str
    count: int
    percentage: float


class BreakdownResponse(BaseModel):
    """Attribute distributions of the filtered subset."""

    model_config = ConfigDict(from_attributes=True)

    credit_score: list[CategoryShareResponse]
    roof_type: list[CategoryShareResponse]
    existing_solar: list[CategoryShareResponse]
    shading: list[CategoryShareResponse]
    appointment_type: list[CategoryShareResponse]


class DateRangeResponse(BaseModel):
    start: date
    end: date


class CanonicalFilterResponse(BaseModel):
    """The filter the results were computed for, after scoping and normalization."""

    date_range: DateRangeResponse
    closers: list[str]
    setters: list[str]
    company_id: str | None = Field(None, description="Company scope (null: all companies)")


class DashboardResponse(BaseModel):
    """Everything the dashboard renders for one filter."""

    appointments: list[AppointmentResponse]
    metrics: MetricsResponse
    daily: list[DailyBucketResponse]
    breakdown: BreakdownResponse
    unique_closers: list[str]
    unique_setters: list[str]
    filter: CanonicalFilterResponse
    total: int = Field(..., description="Appointments matching the filter before pagination")


class FilterOptionsResponse(BaseModel):
    """Selectable closer and setter names within the caller's company scope."""

    closers: list[str]
    setters: list[str]
    company_id: str | None = None
