"""Persistence of raw readings and workouts."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from training_engine.models.database_models import MetricReadingRow, WorkoutRow
from training_engine.models.schemas import MetricReading, WorkoutRecord


logger = logging.getLogger(__name__)


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def save_readings(
    db: Session,
    readings: Iterable[MetricReading],
    source: str = "device",
    force: bool = False,
) -> tuple[int, int]:
    """
    Store raw metric readings.

    Args:
        db: Database session (committed by this function)
        readings: Readings to store
        source: Name of the system that produced the readings
        force: Overwrite the value of readings that already exist

    Returns:
        Tuple of (saved, skipped) counts
    """
    saved = 0
    skipped = 0
    for reading in readings:
        recorded_at = _naive_utc(reading.recorded_at)
        existing = db.scalar(
            select(MetricReadingRow).where(
                MetricReadingRow.kind == reading.kind.value,
                MetricReadingRow.recorded_at == recorded_at,
                MetricReadingRow.source == source,
            )
        )
        if existing and not force:
            skipped += 1
            continue

        if existing:
            existing.value = reading.value
        else:
            db.add(
                MetricReadingRow(
                    kind=reading.kind.value,
                    recorded_at=recorded_at,
                    value=reading.value,
                    source=source,
                )
            )
        saved += 1

    db.commit()
    logger.info("Stored readings | saved=%d skipped=%d", saved, skipped)
    return saved, skipped


def save_workouts(db: Session, records: Iterable[WorkoutRecord], force: bool = False) -> tuple[int, int]:
    """
    Store per-source workout records, keyed by (source, id).

    Returns:
        Tuple of (saved, skipped) counts
    """
    saved = 0
    skipped = 0
    for record in records:
        values = {
            "start_time": _naive_utc(record.start_time),
            "duration_seconds": record.duration_seconds,
            "activity_type": record.activity_type.value,
            "distance_meters": record.distance_meters,
            "average_power": record.average_power,
            "average_heart_rate": record.average_heart_rate,
            "energy_kcal": record.energy_kcal,
            "splits": [split.model_dump() for split in record.splits] or None,
        }
        existing = db.scalar(
            select(WorkoutRow).where(
                WorkoutRow.source == record.source.value,
                WorkoutRow.external_id == record.id,
            )
        )
        if existing and not force:
            skipped += 1
            continue

        if existing:
            for key, value in values.items():
                setattr(existing, key, value)
            existing.updated_at = datetime.utcnow()
        else:
            db.add(WorkoutRow(external_id=record.id, source=record.source.value, **values))
        saved += 1

    db.commit()
    logger.info("Stored workouts | saved=%d skipped=%d", saved, skipped)
    return saved, skipped
