# app/models/api/dashboard_request.py
"""
Dashboard API request models.
Used by routes for input validation.
"""

from datetime import date

from pydantic import BaseModel, Field

from app.config import settings


class DateRangeRequest(BaseModel):
    """Inclusive calendar-day range. A single bound selects that one day."""

    start: date | None = Field(default=None, description="First day (inclusive)")
    end: date | None = Field(default=None, description="Last day (inclusive)")


class DashboardQueryRequest(BaseModel):
    """Filter edit submitted by the dashboard."""

    date_range: DateRangeRequest | None = Field(
        default=None, description="Date range (default: current Monday-Sunday week)"
    )
    selected_closers: list[str] | None = Field(
        default=None, description="Closer names to include (empty: all closers)"
    )
    selected_setters: list[str] | None = Field(
        default=None, description="Setter names to include (empty: all setters)"
    )
    selected_company: str | None = Field(
        default=None, description="Company to scope to (honored for super admins only)"
    )
    limit: int | None = Field(
        default=None,
        ge=1,
        le=settings.DASHBOARD_PAGE_SIZE_MAX,
        description="Page size for the appointments list (default: all)",
    )
    offset: int = Field(default=0, ge=0, description="Appointments to skip before the page")
