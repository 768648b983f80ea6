from datetime import UTC, date, datetime

from app.features.appointment_dashboard.domain.models import DateRange
from app.features.appointment_dashboard.pipeline.aggregation import aggregate_metrics
from app.features.appointment_dashboard.pipeline.timeseries import bucketize


def test_week_produces_seven_dense_ascending_buckets(appointment_factory):
    records = [
        appointment_factory("1", booked_for=datetime(2024, 1, 16, 9, tzinfo=UTC), disposition="Sat"),
        appointment_factory("2", booked_for=datetime(2024, 1, 16, 17, tzinfo=UTC), disposition="Closed"),
        appointment_factory("3", booked_for=datetime(2024, 1, 19, 12, tzinfo=UTC), disposition="No Show"),
    ]

    buckets = bucketize(records, DateRange(date(2024, 1, 15), date(2024, 1, 21)))

    assert [b.day for b in buckets] == [date(2024, 1, d) for d in range(15, 22)]
    assert [b.total for b in buckets] == [0, 2, 0, 0, 1, 0, 0]
    assert buckets[1].sits == 1
    assert buckets[1].closes == 1
    assert buckets[4].no_shows == 1


def test_single_day_range_has_one_bucket(appointment_factory):
    buckets = bucketize([appointment_factory()], DateRange(date(2024, 1, 16), date(2024, 1, 16)))

    assert len(buckets) == 1
    assert buckets[0].total == 1


def test_records_outside_range_are_skipped(appointment_factory):
    records = [appointment_factory(booked_for=datetime(2024, 2, 1, tzinfo=UTC))]

    buckets = bucketize(records, DateRange(date(2024, 1, 15), date(2024, 1, 16)))

    assert sum(b.total for b in buckets) == 0


def test_bucket_totals_agree_with_metrics(appointment_factory):
    dispositions = ["Sat", "Closed", "Pending", "No Show", "Sat", "Rescheduled"]
    records = [
        appointment_factory(str(i), booked_for=datetime(2024, 1, 15 + i, 10, tzinfo=UTC), disposition=d)
        for i, d in enumerate(dispositions)
    ]

    buckets = bucketize(records, DateRange(date(2024, 1, 15), date(2024, 1, 21)))
    metrics = aggregate_metrics(records)

    assert sum(b.total for b in buckets) == metrics.total_appointments
    assert sum(b.sits for b in buckets) == metrics.total_sits
    assert sum(b.closes for b in buckets) == metrics.total_closes
    assert sum(b.no_shows for b in buckets) == metrics.no_shows
    for bucket in buckets:
        assert sum(bucket.counts.values()) == bucket.total
