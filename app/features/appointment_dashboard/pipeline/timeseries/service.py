"""
Daily time series.

Buckets a filtered record subset into one entry per calendar day of the
requested range. The sequence is dense: days without appointments are
present with zero counts so charts render without gaps.
"""

from collections.abc import Iterable
from datetime import tzinfo

from app.infrastructure.observability.logging import get_logger

from ...domain.models import (
    AppointmentRecord,
    DailyBucket,
    DateRange,
    business_day,
    empty_disposition_counts,
)

logger = get_logger(__name__)


def bucketize(
    records: Iterable[AppointmentRecord], date_range: DateRange, tz: tzinfo | None = None
) -> list[DailyBucket]:
    """
    One DailyBucket per day in ``date_range`` (inclusive), ascending.

    Records outside the range are skipped; the record filter has normally
    removed them already.
    """
    totals = {day: 0 for day in date_range.days()}
    counts = {day: empty_disposition_counts() for day in totals}

    skipped = 0
    for record in records:
        day = business_day(record.booked_for, tz)
        if day not in totals:
            skipped += 1
            continue
        totals[day] += 1
        counts[day][record.disposition] += 1

    if skipped:
        logger.debug("Skipped records outside bucket range", skipped=skipped)

    return [DailyBucket(day=day, total=totals[day], counts=counts[day]) for day in totals]
