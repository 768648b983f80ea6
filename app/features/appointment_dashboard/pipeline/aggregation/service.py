"""
Metrics aggregation.

Counts dispositions over a filtered record subset in a single pass and
derives the funnel rates shown on the KPI cards:

    sit rate   = sits / total      (0 when there are no appointments)
    close rate = closes / sits     (0 when nobody sat)

Close rate is a funnel conversion ("of those who sat, how many closed"), so
its denominator is sits, not total.
"""

from collections import Counter
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from ...domain.models import DISPOSITIONS, AppointmentRecord, MetricsSummary


def percentage(part: int, whole: int, places: int = 2) -> float:
    """100 * part / whole rounded half-up; 0.0 when ``whole`` is zero."""
    if whole <= 0:
        return 0.0
    exact = Decimal(100 * part) / Decimal(whole)
    quantum = Decimal(1).scaleb(-places)
    return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))


def count_dispositions(records: Iterable[AppointmentRecord]) -> tuple[int, dict[str, int]]:
    """Total plus per-disposition counts (every disposition present, zero-filled)."""
    counter: Counter[str] = Counter()
    total = 0
    for record in records:
        counter[record.disposition] += 1
        total += 1
    return total, {disposition: counter.get(disposition, 0) for disposition in DISPOSITIONS}


def aggregate_metrics(records: Iterable[AppointmentRecord]) -> MetricsSummary:
    total, counts = count_dispositions(records)
    sits = counts["Sat"]
    closes = counts["Closed"]

    return MetricsSummary(
        total_appointments=total,
        total_sits=sits,
        total_closes=closes,
        no_shows=counts["No Show"],
        rescheduled=counts["Rescheduled"],
        not_interested=counts["Not Interested"],
        disqualified=counts["Disqualified"],
        follow_up=counts["Follow-up"],
        pending=counts["Pending"],
        sit_rate=percentage(sits, total),
        close_rate=percentage(closes, sits),
    )


def unique_names(values: Iterable[str | None]) -> list[str]:
    """Sorted distinct non-empty names."""
    return sorted({value for value in values if value})
