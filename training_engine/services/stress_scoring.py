"""Per-workout stress scoring (TSS-equivalent units)."""
from __future__ import annotations

import logging
from typing import Any, Protocol

from training_engine import thresholds
from training_engine.models.schemas import ActivityType, UnifiedWorkout


logger = logging.getLogger(__name__)


class StressScorer(Protocol):
    """Callable returning a workout's stress score; treated as opaque by the engine."""

    def __call__(self, workout: UnifiedWorkout) -> float:
        ...


def calculate_hrss(
    duration_min: float,
    avg_hr: float,
    threshold_hr: float,
    max_hr: float,
    rest_hr: float,
) -> float:
    """
    Heart Rate Stress Score - TSS equivalent for HR-based training.

    Args:
        duration_min: Duration of activity in minutes
        avg_hr: Average heart rate during activity
        threshold_hr: Lactate threshold heart rate
        max_hr: Maximum heart rate
        rest_hr: Resting heart rate

    Returns:
        HRSS value (100 = one hour at threshold)
    """
    hr_reserve = max_hr - rest_hr
    if hr_reserve <= 0:
        return 0.0

    normalized_hr = (avg_hr - rest_hr) / hr_reserve
    normalized_hr = max(0.0, min(1.0, normalized_hr))

    threshold_reserve_ratio = (threshold_hr - rest_hr) / hr_reserve
    if threshold_reserve_ratio <= 0:
        threshold_reserve_ratio = 0.85

    intensity_factor = normalized_hr / threshold_reserve_ratio
    return round((duration_min * intensity_factor ** 2) / 60 * 100, 1)


class DurationStressScorer:
    """Duration × activity-rate heuristic used when no physiological model applies."""

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = thresholds.section("stress", config)
        self.rates: dict[str, float] = self.config["tss_per_hour"]

    def __call__(self, workout: UnifiedWorkout) -> float:
        rate = self.rates.get(workout.activity_type.value, self.rates.get(ActivityType.OTHER.value, 50))
        return round(workout.duration_seconds / 3600 * float(rate), 1)


class HeartRateStressScorer:
    """
    Scores workouts by heart-rate stress, falling back to the duration heuristic.

    Args:
        threshold_hr: Lactate threshold heart rate
        max_hr: Maximum heart rate
        rest_hr: Resting heart rate
        fallback: Scorer used for workouts without heart-rate data
    """

    def __init__(
        self,
        threshold_hr: float,
        max_hr: float,
        rest_hr: float,
        fallback: StressScorer | None = None,
    ):
        if not rest_hr < threshold_hr <= max_hr:
            raise ValueError(
                f"Heart rates must satisfy rest < threshold <= max (got {rest_hr}, {threshold_hr}, {max_hr})"
            )
        self.threshold_hr = threshold_hr
        self.max_hr = max_hr
        self.rest_hr = rest_hr
        self.fallback = fallback or DurationStressScorer()

    def __call__(self, workout: UnifiedWorkout) -> float:
        if not workout.heart_rate:
            return self.fallback(workout)
        return calculate_hrss(
            duration_min=workout.duration_seconds / 60,
            avg_hr=workout.heart_rate,
            threshold_hr=self.threshold_hr,
            max_hr=self.max_hr,
            rest_hr=self.rest_hr,
        )
