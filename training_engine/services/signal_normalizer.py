"""Normalization of raw health readings into one value per metric per local day."""
from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Iterable

from training_engine import thresholds
from training_engine.config import get_settings
from training_engine.models.schemas import (
    ActivityType,
    DailyMetricSample,
    MetricKind,
    MetricReading,
)


logger = logging.getLogger(__name__)

# Readings of these kinds are summed within a day (sleep in hours, steps in counts).
SUMMED_KINDS = frozenset({MetricKind.SLEEP, MetricKind.STEPS})
# Readings of these kinds keep the value measured closest to the morning window.
MORNING_KINDS = frozenset({MetricKind.HRV, MetricKind.RESTING_HR})

ACTIVITY_TYPE_ALIASES: dict[str, ActivityType] = {
    "run": ActivityType.RUNNING,
    "running": ActivityType.RUNNING,
    "trailrun": ActivityType.RUNNING,
    "virtualrun": ActivityType.RUNNING,
    "treadmillrunning": ActivityType.RUNNING,
    "ride": ActivityType.CYCLING,
    "virtualride": ActivityType.CYCLING,
    "ebikeride": ActivityType.CYCLING,
    "cycling": ActivityType.CYCLING,
    "indoorcycling": ActivityType.CYCLING,
    "biking": ActivityType.CYCLING,
    "swim": ActivityType.SWIMMING,
    "swimming": ActivityType.SWIMMING,
    "lapswimming": ActivityType.SWIMMING,
    "openwaterswimming": ActivityType.SWIMMING,
    "walk": ActivityType.WALKING,
    "walking": ActivityType.WALKING,
    "hike": ActivityType.HIKING,
    "hiking": ActivityType.HIKING,
    "rowing": ActivityType.ROWING,
    "indoorrowing": ActivityType.ROWING,
    "weighttraining": ActivityType.STRENGTH,
    "strength": ActivityType.STRENGTH,
    "strengthtraining": ActivityType.STRENGTH,
    "functionalstrengthtraining": ActivityType.STRENGTH,
    "traditionalstrengthtraining": ActivityType.STRENGTH,
    "yoga": ActivityType.YOGA,
}


def normalize_activity_type(raw: str | ActivityType | None) -> ActivityType:
    """
    Map a source-specific activity name onto the engine's activity types.

    Matching ignores case and punctuation, so ``"VirtualRide"``,
    ``"virtual_ride"`` and ``"Virtual Ride"`` all map to cycling.

    Args:
        raw: Activity name from a device or third-party service

    Returns:
        Normalized ActivityType (``OTHER`` when the name is unknown)
    """
    if isinstance(raw, ActivityType):
        return raw
    if not raw:
        return ActivityType.OTHER

    key = re.sub(r"[^a-z]", "", raw.lower())
    activity_type = ACTIVITY_TYPE_ALIASES.get(key)
    if activity_type is None:
        logger.debug("Unknown activity type '%s' mapped to other", raw)
        return ActivityType.OTHER
    return activity_type


class SignalNormalizer:
    """Collapses raw readings into daily samples in the athlete's timezone."""

    def __init__(self, tz: tzinfo | None = None, config: dict[str, Any] | None = None):
        """
        Initialize the normalizer.

        Args:
            tz: Timezone defining local days (defaults to ``TIMEZONE`` setting)
            config: Optional overrides for the ``normalizer`` thresholds section
        """
        self.tz = tz or get_settings().tzinfo
        self.config = thresholds.section("normalizer", config)
        self.window_start = float(self.config["morning_window_start_hour"])
        self.window_end = float(self.config["morning_window_end_hour"])

    def local_datetime(self, moment: datetime) -> datetime:
        """Convert a timestamp to local time; naive timestamps are taken as UTC."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self.tz)

    def local_date(self, moment: datetime) -> date:
        return self.local_datetime(moment).date()

    def morning_distance(self, moment: datetime) -> float:
        """Hours between a reading and the morning window (0 inside the window)."""
        local = self.local_datetime(moment)
        hour = local.hour + local.minute / 60 + local.second / 3600
        if self.window_start <= hour <= self.window_end:
            return 0.0
        if hour < self.window_start:
            return self.window_start - hour
        return hour - self.window_end

    def normalize(self, readings: Iterable[MetricReading]) -> list[DailyMetricSample]:
        """
        Reduce raw readings to at most one sample per (kind, local day).

        HRV and resting HR keep the reading closest to the morning window,
        ties going to the earlier timestamp and then the lower value. Sleep
        and steps are summed. Weight and VO2max keep the day's latest reading.

        Args:
            readings: Raw readings in any order

        Returns:
            Daily samples sorted by kind, then date
        """
        grouped: dict[tuple[MetricKind, date], list[MetricReading]] = defaultdict(list)
        for reading in readings:
            grouped[(reading.kind, self.local_date(reading.recorded_at))].append(reading)

        samples: list[DailyMetricSample] = []
        for (kind, day), day_readings in grouped.items():
            if kind in SUMMED_KINDS:
                value = sum(reading.value for reading in day_readings)
            elif kind in MORNING_KINDS:
                chosen = min(
                    day_readings,
                    key=lambda r: (self.morning_distance(r.recorded_at), _utc(r.recorded_at), r.value),
                )
                value = chosen.value
            else:
                chosen = max(day_readings, key=lambda r: (_utc(r.recorded_at), r.value))
                value = chosen.value
            samples.append(DailyMetricSample(date=day, kind=kind, value=value))

        samples.sort(key=lambda sample: (list(MetricKind).index(sample.kind), sample.date))
        logger.debug("Normalized %d readings into %d daily samples", sum(map(len, grouped.values())), len(samples))
        return samples


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class MetricHistory:
    """Indexed view over daily samples, keyed by metric kind and date."""

    def __init__(self, samples: Iterable[DailyMetricSample] = ()):
        self._series: dict[MetricKind, dict[date, float]] = defaultdict(dict)
        for sample in samples:
            series = self._series[sample.kind]
            if sample.date in series:
                logger.warning(
                    "Duplicate %s sample for %s - keeping the later value",
                    sample.kind.value,
                    sample.date.isoformat(),
                )
            series[sample.date] = sample.value

    def series(self, kind: MetricKind) -> dict[date, float]:
        return dict(self._series.get(kind, {}))

    def value_on(self, kind: MetricKind, day: date) -> float | None:
        return self._series.get(kind, {}).get(day)

    def values_between(self, kind: MetricKind, start: date, end: date) -> list[tuple[date, float]]:
        """Return (date, value) pairs inside the inclusive range, oldest first."""
        series = self._series.get(kind, {})
        return sorted((day, value) for day, value in series.items() if start <= day <= end)

    def latest(self, kind: MetricKind, as_of: date, lookback_days: int = 0) -> tuple[date, float] | None:
        """Return the most recent sample on or before ``as_of`` within the lookback."""
        values = self.values_between(kind, as_of - timedelta(days=lookback_days), as_of)
        return values[-1] if values else None

    def observed_days(self) -> set[date]:
        """Days on which any metric was sampled."""
        days: set[date] = set()
        for series in self._series.values():
            days.update(series)
        return days

    def days_with_any(self, kinds: Iterable[MetricKind], start: date, end: date) -> int:
        """Count days in the range with a sample of at least one of ``kinds``."""
        days: set[date] = set()
        for kind in kinds:
            days.update(day for day, _ in self.values_between(kind, start, end))
        return len(days)

    def __len__(self) -> int:
        return sum(len(series) for series in self._series.values())
