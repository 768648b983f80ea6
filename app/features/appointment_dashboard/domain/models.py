"""
Domain models for the appointment dashboard feature.

These dataclasses describe the records the pipeline reads and the values it
derives. Records and canonical filters are frozen: the pipeline never mutates
what it is given.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Literal

from .errors import ValidationError

Disposition = Literal[
    "Sat",
    "Rescheduled",
    "Not Interested",
    "Disqualified",
    "Follow-up",
    "Pending",
    "No Show",
    "Closed",
]

# Display order used for every per-disposition mapping the pipeline emits
DISPOSITIONS: tuple[str, ...] = (
    "Sat",
    "Rescheduled",
    "Not Interested",
    "Disqualified",
    "Follow-up",
    "Pending",
    "No Show",
    "Closed",
)

Role = Literal["super_admin", "user"]

ROLES: tuple[str, ...] = ("super_admin", "user")
PRIVILEGED_ROLES = frozenset({"super_admin"})


def empty_disposition_counts() -> dict[str, int]:
    return {disposition: 0 for disposition in DISPOSITIONS}


def business_day(moment: datetime, tz: tzinfo | None = None) -> date:
    """
    Calendar day of a timestamp in the business timezone.

    Aware timestamps are converted to ``tz``; naive timestamps are taken as
    already expressed in business-local time.
    """
    if tz is not None and moment.tzinfo is not None:
        return moment.astimezone(tz).date()
    return moment.date()


@dataclass(frozen=True, slots=True)
class AppointmentRecord:
    """One scheduled appointment as stored in the appointments table."""

    id: str
    company_id: str
    name: str
    closer_name: str
    booked_for: datetime
    disposition: Disposition
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

    def __post_init__(self):
        if self.disposition not in DISPOSITIONS:
            raise ValidationError(
                f"Unknown disposition {self.disposition!r} on appointment {self.id}",
                operation="appointment_record",
            )
        if not isinstance(self.booked_for, datetime):
            raise ValidationError(
                f"booked_for must be a timestamp on appointment {self.id}",
                operation="appointment_record",
            )


@dataclass(slots=True)
class FilterRequest:
    """
    Caller-supplied, partially specified filter.

    ``start``/``end`` accept dates, datetimes or ISO-8601 strings; the
    normalizer resolves them. Empty or missing name lists mean "no restriction".
    """

    start: date | datetime | str | None = None
    end: date | datetime | str | None = None
    closers: Sequence[str] | None = None
    setters: Sequence[str] | None = None
    company_id: str | None = None


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive range of calendar days."""

    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise ValidationError("DateRange start must not be after end", operation="date_range")

    @property
    def day_count(self) -> int:
        return (self.end - self.start).days + 1

    def days(self) -> Iterator[date]:
        for offset in range(self.day_count):
            yield self.start + timedelta(days=offset)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def start_at(self, tz: tzinfo | None = None) -> datetime:
        """00:00 of the first day as a timestamp."""
        return datetime.combine(self.start, time.min, tzinfo=tz)

    def end_at(self, tz: tzinfo | None = None) -> datetime:
        """23:59:59 upper bound of the last day as a timestamp."""
        return datetime.combine(self.end, time(23, 59, 59), tzinfo=tz)


@dataclass(frozen=True, slots=True, eq=False)
class CanonicalFilter:
    """
    Fully resolved filter, ready to apply to records.

    Closer and setter names keep their first-seen order for display, but two
    filters compare (and hash) equal when they name the same sets, so the
    filter can key memo and in-flight maps by value.
    """

    date_range: DateRange
    closers: tuple[str, ...] = ()
    setters: tuple[str, ...] = ()
    company_id: str | None = None

    def key(self) -> tuple:
        return (
            self.date_range,
            frozenset(self.closers),
            frozenset(self.setters),
            self.company_id,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CanonicalFilter):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    @property
    def is_unrestricted_company(self) -> bool:
        return self.company_id is None

    def to_request(self) -> FilterRequest:
        """Equivalent FilterRequest, used to feed a canonical filter back in."""
        return FilterRequest(
            start=self.date_range.start,
            end=self.date_range.end,
            closers=list(self.closers),
            setters=list(self.setters),
            company_id=self.company_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "date_range": {
                "start": self.date_range.start.isoformat(),
                "end": self.date_range.end.isoformat(),
            },
            "closers": sorted(self.closers),
            "setters": sorted(self.setters),
            "company_id": self.company_id,
        }


@dataclass(frozen=True, slots=True)
class MetricsSummary:
    """KPI set derived from a filtered record subset. Rates are percentages."""

    total_appointments: int = 0
    total_sits: int = 0
    total_closes: int = 0
    no_shows: int = 0
    rescheduled: int = 0
    not_interested: int = 0
    disqualified: int = 0
    follow_up: int = 0
    pending: int = 0
    sit_rate: float = 0.0
    close_rate: float = 0.0

    def disposition_counts(self) -> dict[str, int]:
        return {
            "Sat": self.total_sits,
            "Rescheduled": self.rescheduled,
            "Not Interested": self.not_interested,
            "Disqualified": self.disqualified,
            "Follow-up": self.follow_up,
            "Pending": self.pending,
            "No Show": self.no_shows,
            "Closed": self.total_closes,
        }


@dataclass(frozen=True, slots=True)
class DailyBucket:
    """Counts for one calendar day of the requested range."""

    day: date
    total: int = 0
    counts: dict[str, int] = field(default_factory=empty_disposition_counts)

    @property
    def sits(self) -> int:
        return self.counts.get("Sat", 0)

    @property
    def closes(self) -> int:
        return self.counts.get("Closed", 0)

    @property
    def no_shows(self) -> int:
        return self.counts.get("No Show", 0)


@dataclass(frozen=True, slots=True)
class CategoryShare:
    category: str
    count: int
    percentage: float


@dataclass(frozen=True, slots=True)
class AppointmentBreakdown:
    """Attribute distributions shown next to the KPI cards."""

    credit_score: list[CategoryShare] = field(default_factory=list)
    roof_type: list[CategoryShare] = field(default_factory=list)
    existing_solar: list[CategoryShare] = field(default_factory=list)
    shading: list[CategoryShare] = field(default_factory=list)
    appointment_type: list[CategoryShare] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FilterOptions:
    """Distinct closer/setter names available within a company scope."""

    closers: list[str] = field(default_factory=list)
    setters: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DashboardResult:
    """Stable output contract of one successful pipeline execution."""

    filter: CanonicalFilter
    appointments: list[AppointmentRecord]
    metrics: MetricsSummary
    daily: list[DailyBucket]
    breakdown: AppointmentBreakdown
    unique_closers: list[str]
    unique_setters: list[str]
    total: int


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """Role and company affiliation of the authenticated caller (profiles row)."""

    user_id: str
    role: Role
    company_id: str | None = None
    email: str | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES
