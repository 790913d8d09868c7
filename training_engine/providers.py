"""Data providers feeding the engine: protocols plus in-memory and SQL implementations."""
from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Callable, Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from training_engine.models.database_models import MetricReadingRow, WorkoutRow
from training_engine.models.schemas import (
    DailyMetricSample,
    DateRange,
    EffortSplit,
    MetricKind,
    MetricReading,
    SourceSystem,
    WorkoutRecord,
)
from training_engine.services.signal_normalizer import SignalNormalizer, normalize_activity_type


logger = logging.getLogger(__name__)


class DailyMetricProvider(Protocol):
    def samples(self, kind: MetricKind, date_range: DateRange) -> list[DailyMetricSample]:
        ...


class WorkoutProvider(Protocol):
    def workouts(self, date_range: DateRange) -> list[WorkoutRecord]:
        ...


class InMemoryMetricProvider:
    """Serves pre-normalized daily samples."""

    def __init__(self, samples: Iterable[DailyMetricSample] = ()):
        self._samples = list(samples)

    @classmethod
    def from_readings(
        cls,
        readings: Iterable[MetricReading],
        normalizer: SignalNormalizer | None = None,
    ) -> "InMemoryMetricProvider":
        normalizer = normalizer or SignalNormalizer()
        return cls(normalizer.normalize(readings))

    def samples(self, kind: MetricKind, date_range: DateRange) -> list[DailyMetricSample]:
        return sorted(
            (s for s in self._samples if s.kind == kind and s.date in date_range),
            key=lambda s: s.date,
        )


class InMemoryWorkoutProvider:
    """Serves a fixed list of workout records from one source."""

    def __init__(self, records: Iterable[WorkoutRecord] = (), normalizer: SignalNormalizer | None = None):
        self._records = list(records)
        self._normalizer = normalizer or SignalNormalizer()

    def workouts(self, date_range: DateRange) -> list[WorkoutRecord]:
        return [r for r in self._records if self._normalizer.local_date(r.start_time) in date_range]


def _utc_bounds(date_range: DateRange) -> tuple[datetime, datetime]:
    """Naive UTC bounds wide enough to cover the range in any timezone."""
    start = datetime.combine(date_range.start - timedelta(days=1), time.min)
    end = datetime.combine(date_range.end + timedelta(days=2), time.min)
    return start, end


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class SqlMetricProvider:
    """Reads raw readings from the database and normalizes them per local day."""

    def __init__(self, session_factory: Callable[[], Session], normalizer: SignalNormalizer | None = None):
        self.session_factory = session_factory
        self.normalizer = normalizer or SignalNormalizer()

    def samples(self, kind: MetricKind, date_range: DateRange) -> list[DailyMetricSample]:
        start, end = _utc_bounds(date_range)
        db = self.session_factory()
        try:
            rows = db.scalars(
                select(MetricReadingRow)
                .where(MetricReadingRow.kind == kind.value)
                .where(MetricReadingRow.recorded_at >= start)
                .where(MetricReadingRow.recorded_at < end)
            ).all()
            readings = [
                MetricReading(kind=kind, recorded_at=_as_utc(row.recorded_at), value=row.value)
                for row in rows
            ]
        finally:
            db.close()

        samples = [s for s in self.normalizer.normalize(readings) if s.date in date_range]
        logger.debug("Loaded %d %s samples for %s..%s", len(samples), kind.value, date_range.start, date_range.end)
        return samples


class SqlWorkoutProvider:
    """Reads one source's workouts from the database."""

    def __init__(
        self,
        source: SourceSystem,
        session_factory: Callable[[], Session],
        normalizer: SignalNormalizer | None = None,
    ):
        self.source = source
        self.session_factory = session_factory
        self.normalizer = normalizer or SignalNormalizer()

    def workouts(self, date_range: DateRange) -> list[WorkoutRecord]:
        start, end = _utc_bounds(date_range)
        db = self.session_factory()
        try:
            rows = db.scalars(
                select(WorkoutRow)
                .where(WorkoutRow.source == self.source.value)
                .where(WorkoutRow.start_time >= start)
                .where(WorkoutRow.start_time < end)
                .order_by(WorkoutRow.start_time)
            ).all()
            records = [self._to_record(row) for row in rows]
        finally:
            db.close()

        return [r for r in records if self.normalizer.local_date(r.start_time) in date_range]

    def _to_record(self, row: WorkoutRow) -> WorkoutRecord:
        return WorkoutRecord(
            id=row.external_id,
            source=self.source,
            start_time=_as_utc(row.start_time),
            duration_seconds=row.duration_seconds,
            activity_type=normalize_activity_type(row.activity_type),
            distance_meters=row.distance_meters,
            average_power=row.average_power,
            average_heart_rate=row.average_heart_rate,
            energy_kcal=row.energy_kcal,
            splits=tuple(EffortSplit(**split) for split in (row.splits or [])),
        )
