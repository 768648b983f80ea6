"""
Attribute breakdowns for the appointment breakdown panel.

Each breakdown reports, per category, how many filtered appointments fall in
it and what share of the filtered total that is (one decimal place).
"""

from collections import Counter
from collections.abc import Callable, Sequence

from ...domain.models import AppointmentBreakdown, AppointmentRecord, CategoryShare
from .service import percentage

CREDIT_SCORE_RANGES: tuple[tuple[str, int, int], ...] = (
    ("600-650", 600, 650),
    ("651-700", 651, 700),
    ("701-750", 701, 750),
    ("751-800", 751, 800),
)

UNKNOWN_CATEGORY = "Unknown"


def _shares(counts: dict[str, int], total: int) -> list[CategoryShare]:
    return [
        CategoryShare(category=category, count=count, percentage=percentage(count, total, places=1))
        for category, count in counts.items()
    ]


def credit_score_breakdown(records: Sequence[AppointmentRecord]) -> list[CategoryShare]:
    """Fixed score bands; scores outside 600-800 (or missing) are not counted."""
    counts = {label: 0 for label, _, _ in CREDIT_SCORE_RANGES}
    for record in records:
        score = record.credit_score
        if score is None:
            continue
        for label, low, high in CREDIT_SCORE_RANGES:
            if low <= score <= high:
                counts[label] += 1
                break
    return _shares(counts, len(records))


def categorical_breakdown(
    records: Sequence[AppointmentRecord], key: Callable[[AppointmentRecord], str | None]
) -> list[CategoryShare]:
    """Counts per observed value, most common first, ties by name."""
    counter = Counter(key(record) or UNKNOWN_CATEGORY for record in records)
    ordered = dict(sorted(counter.items(), key=lambda item: (-item[1], item[0])))
    return _shares(ordered, len(records))


def _existing_solar(record: AppointmentRecord) -> str:
    return "Yes" if record.existing_solar else "No"


def build_breakdown(records: Sequence[AppointmentRecord]) -> AppointmentBreakdown:
    return AppointmentBreakdown(
        credit_score=credit_score_breakdown(records),
        roof_type=categorical_breakdown(records, lambda r: r.roof_type),
        existing_solar=categorical_breakdown(records, _existing_solar),
        shading=categorical_breakdown(records, lambda r: r.shading),
        appointment_type=categorical_breakdown(records, lambda r: r.appointment_type),
    )
