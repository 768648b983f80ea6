"""
Record filtering.

Applies a CanonicalFilter to a sequence of appointment records. Pure: the
result is an order-preserving subsequence of the input and nothing is mutated.
"""

from collections.abc import Iterable
from datetime import tzinfo

from ...domain.models import AppointmentRecord, CanonicalFilter, business_day


def record_matches(
    record: AppointmentRecord, canonical_filter: CanonicalFilter, tz: tzinfo | None = None
) -> bool:
    if not canonical_filter.date_range.contains(business_day(record.booked_for, tz)):
        return False
    if canonical_filter.closers and record.closer_name not in canonical_filter.closers:
        return False
    if canonical_filter.setters and record.setter_name not in canonical_filter.setters:
        return False
    if (
        not canonical_filter.is_unrestricted_company
        and record.company_id != canonical_filter.company_id
    ):
        return False
    return True


def filter_records(
    records: Iterable[AppointmentRecord],
    canonical_filter: CanonicalFilter,
    tz: tzinfo | None = None,
) -> list[AppointmentRecord]:
    """Records matching every predicate of ``canonical_filter``, in input order."""
    return [record for record in records if record_matches(record, canonical_filter, tz)]
