"""Tests for database-backed providers and record storage."""
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from training_engine.database import SessionLocal
from training_engine.models.schemas import (
    ActivityType,
    DateRange,
    EffortSplit,
    MetricKind,
    MetricReading,
    SourceSystem,
    WorkoutRecord,
)
from training_engine.providers import SqlMetricProvider, SqlWorkoutProvider
from training_engine.services.record_store import save_readings, save_workouts
from training_engine.services.signal_normalizer import SignalNormalizer

DAY = date(2024, 6, 12)


def _at(hour: int, minute: int = 0, day: int = 12) -> datetime:
    return datetime(2024, 6, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture(scope="module", autouse=True)
def stored_data():
    """Store one day of readings and a workout from each source."""
    readings = [
        MetricReading(kind=MetricKind.HRV, recorded_at=_at(6, 15), value=64),
        MetricReading(kind=MetricKind.HRV, recorded_at=_at(22, 0), value=41),
        MetricReading(kind=MetricKind.STEPS, recorded_at=_at(12), value=6000),
        MetricReading(kind=MetricKind.STEPS, recorded_at=_at(19), value=2500),
    ]
    workouts = [
        WorkoutRecord(
            id="provider-device-1",
            source=SourceSystem.DEVICE,
            start_time=_at(17),
            duration_seconds=2700,
            activity_type=ActivityType.CYCLING,
            average_heart_rate=142,
        ),
        WorkoutRecord(
            id="provider-tp-1",
            source=SourceSystem.THIRD_PARTY,
            start_time=_at(17, 1),
            duration_seconds=2720,
            activity_type=ActivityType.CYCLING,
            average_power=215,
            splits=(EffortSplit(duration_seconds=1360, power=210), EffortSplit(duration_seconds=1360, power=220)),
        ),
    ]
    db = SessionLocal()
    try:
        save_readings(db, readings)
        save_workouts(db, workouts)
    finally:
        db.close()


class TestRecordStore:
    """Idempotent storage."""

    def test_duplicate_readings_skipped(self):
        db = SessionLocal()
        try:
            saved, skipped = save_readings(
                db, [MetricReading(kind=MetricKind.HRV, recorded_at=_at(6, 15), value=64)]
            )
        finally:
            db.close()

        assert (saved, skipped) == (0, 1)

    def test_forced_workout_update(self):
        record = WorkoutRecord(
            id="provider-device-2",
            source=SourceSystem.DEVICE,
            start_time=_at(8, day=13),
            duration_seconds=1800,
            activity_type=ActivityType.WALKING,
        )
        db = SessionLocal()
        try:
            assert save_workouts(db, [record]) == (1, 0)
            assert save_workouts(db, [record]) == (0, 1)
            assert save_workouts(db, [record.model_copy(update={"duration_seconds": 2000})], force=True) == (1, 0)
        finally:
            db.close()

        provider = SqlWorkoutProvider(SourceSystem.DEVICE, SessionLocal, SignalNormalizer(tz=timezone.utc))
        stored = provider.workouts(DateRange(start=date(2024, 6, 13), end=date(2024, 6, 13)))
        assert [r.duration_seconds for r in stored] == [2000]


class TestSqlProviders:
    """Reading stored data back through the providers."""

    def test_metric_samples_are_normalized(self):
        provider = SqlMetricProvider(SessionLocal, SignalNormalizer(tz=timezone.utc))
        day = DateRange(start=DAY, end=DAY)

        hrv = provider.samples(MetricKind.HRV, day)
        steps = provider.samples(MetricKind.STEPS, day)

        assert [s.value for s in hrv] == [64]
        assert [s.value for s in steps] == [8500]

    def test_local_day_follows_timezone(self):
        """The 22:00 UTC reading falls on the next day in Sydney."""
        provider = SqlMetricProvider(SessionLocal, SignalNormalizer(tz=ZoneInfo("Australia/Sydney")))

        samples = provider.samples(MetricKind.HRV, DateRange(start=DAY, end=date(2024, 6, 13)))

        assert [(s.date, s.value) for s in samples] == [(DAY, 64), (date(2024, 6, 13), 41)]

    def test_workouts_per_source(self):
        normalizer = SignalNormalizer(tz=timezone.utc)
        device = SqlWorkoutProvider(SourceSystem.DEVICE, SessionLocal, normalizer)
        third_party = SqlWorkoutProvider(SourceSystem.THIRD_PARTY, SessionLocal, normalizer)
        day = DateRange(start=DAY, end=DAY)

        device_records = device.workouts(day)
        third_party_records = third_party.workouts(day)

        assert [r.id for r in device_records] == ["provider-device-1"]
        assert device_records[0].start_time == _at(17)
        assert [r.id for r in third_party_records] == ["provider-tp-1"]
        assert len(third_party_records[0].splits) == 2
        assert third_party_records[0].activity_type == ActivityType.CYCLING
