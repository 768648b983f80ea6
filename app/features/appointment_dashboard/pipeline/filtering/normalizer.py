"""
Filter normalization.

Turns a partially specified FilterRequest plus an already-resolved company
scope into a CanonicalFilter. Normalization clamps and defaults wherever a
sane default exists and only raises ValidationError for values it cannot
interpret at all.
"""

from collections.abc import Sequence
from datetime import UTC, date, datetime, timedelta, tzinfo

from app.infrastructure.observability.logging import get_logger

from ...domain.errors import ValidationError
from ...domain.models import CanonicalFilter, DateRange, FilterRequest, business_day

logger = get_logger(__name__)


def current_week(now: datetime, tz: tzinfo | None = None) -> DateRange:
    """Monday-to-Sunday week containing ``now`` in the business calendar."""
    today = business_day(now, tz)
    monday = today - timedelta(days=today.weekday())
    return DateRange(start=monday, end=monday + timedelta(days=6))


def _coerce_day(value: date | datetime | str | None, field_name: str, tz: tzinfo | None) -> date | None:
    if value is None:
        return None
    # datetime is a date subclass, check it first
    if isinstance(value, datetime):
        return business_day(value, tz)
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return business_day(datetime.fromisoformat(text), tz)
        except ValueError as e:
            raise ValidationError(
                f"{field_name} is not an ISO date: {value!r}", operation="normalize_filter"
            ) from e
    raise ValidationError(
        f"{field_name} must be a date, datetime or ISO string, got {type(value).__name__}",
        operation="normalize_filter",
    )


def _resolve_range(request: FilterRequest, now: datetime, tz: tzinfo | None) -> DateRange:
    start = _coerce_day(request.start, "start", tz)
    end = _coerce_day(request.end, "end", tz)

    if start is None and end is None:
        return current_week(now, tz)

    # One bound only: degenerate single-day range
    if start is None:
        start = end
    elif end is None:
        end = start

    if start > end:
        logger.debug("Swapping reversed date range", start=str(start), end=str(end))
        start, end = end, start

    return DateRange(start=start, end=end)


def _dedupe_names(names: Sequence[str] | None, field_name: str) -> tuple[str, ...]:
    if not names:
        return ()
    if isinstance(names, str):
        names = [names]

    seen: dict[str, None] = {}
    for name in names:
        if not isinstance(name, str):
            raise ValidationError(
                f"{field_name} entries must be strings, got {type(name).__name__}",
                operation="normalize_filter",
            )
        cleaned = name.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return tuple(seen)


def normalize_filter(
    request: FilterRequest | None,
    company_scope: str | None,
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> CanonicalFilter:
    """
    Build the canonical filter for a request.

    Args:
        request: Raw filter request (None behaves like an empty request)
        company_scope: Output of the access scope resolver, carried through unchanged
        now: Clock reading used for the default week; defaults to the current time
        tz: Business timezone for calendar-day conversion

    Returns:
        CanonicalFilter with a concrete date range and deduplicated name lists
    """
    request = request or FilterRequest()
    now = now or datetime.now(tz or UTC)

    return CanonicalFilter(
        date_range=_resolve_range(request, now, tz),
        closers=_dedupe_names(request.closers, "closers"),
        setters=_dedupe_names(request.setters, "setters"),
        company_id=company_scope,
    )
