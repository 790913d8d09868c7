"""Pytest configuration for global fixtures and logging setup."""
from __future__ import annotations

import os
import tempfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

_TMP_DIR = Path(tempfile.mkdtemp(prefix="training-engine-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP_DIR / 'test.db'}"
os.environ["LOG_DIR"] = str(_TMP_DIR / "logs")
os.environ["TIMEZONE"] = "UTC"
os.environ.pop("THRESHOLDS_PATH", None)
os.environ.pop("ATHLETE_AGE", None)
os.environ.pop("ATHLETE_SEX", None)
for _name in ("STRESS_MODEL", "ATHLETE_MAX_HR", "ATHLETE_RESTING_HR", "ATHLETE_THRESHOLD_HR"):
    os.environ.pop(_name, None)

from training_engine.logging_config import configure_logging

configure_logging()

from training_engine.database import init_db
from training_engine.main import app
from training_engine.models.schemas import (
    ActivityType,
    DailyMetricSample,
    EffortSplit,
    MetricKind,
    SourceAttribution,
    SourceSystem,
    UnifiedWorkout,
    WorkoutRecord,
)

init_db()

AS_OF = date(2025, 3, 31)


@pytest.fixture(scope="session")
def test_client() -> TestClient:
    """Provide a FastAPI test client."""

    return TestClient(app)


@pytest.fixture
def as_of() -> date:
    """Fixed analysis day used across the service tests."""

    return AS_OF


@pytest.fixture
def make_record() -> Callable[..., WorkoutRecord]:
    """Factory for per-source workout records starting at a given UTC time."""

    def _make(
        record_id: str,
        source: SourceSystem,
        start: datetime,
        duration_seconds: float = 3600,
        activity_type: ActivityType = ActivityType.RUNNING,
        **fields,
    ) -> WorkoutRecord:
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        return WorkoutRecord(
            id=record_id,
            source=source,
            start_time=start,
            duration_seconds=duration_seconds,
            activity_type=activity_type,
            **fields,
        )

    return _make


@pytest.fixture
def make_workout() -> Callable[..., UnifiedWorkout]:
    """Factory for reconciled workouts on a given day (09:00 UTC start)."""

    def _make(
        day: date,
        duration_seconds: float = 3600,
        activity_type: ActivityType = ActivityType.RUNNING,
        splits: tuple[EffortSplit, ...] = (),
        reference: str | None = None,
        **fields,
    ) -> UnifiedWorkout:
        return UnifiedWorkout(
            source_attribution=SourceAttribution.DEVICE_ONLY,
            date=day,
            start_time=datetime(day.year, day.month, day.day, 9, 0, tzinfo=timezone.utc),
            activity_type=activity_type,
            duration_seconds=duration_seconds,
            device_id=reference or f"w-{day.isoformat()}",
            splits=splits,
            **fields,
        )

    return _make


@pytest.fixture
def daily_series() -> Callable[..., list[DailyMetricSample]]:
    """Factory for a contiguous run of daily samples ending on ``end``."""

    def _make(kind: MetricKind, values: list[float], end: date = AS_OF) -> list[DailyMetricSample]:
        start = end - timedelta(days=len(values) - 1)
        return [
            DailyMetricSample(date=start + timedelta(days=offset), kind=kind, value=value)
            for offset, value in enumerate(values)
        ]

    return _make
