"""Training load calculation (rolling and EWMA acute:chronic workload)."""
from __future__ import annotations

import logging
import statistics
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Iterable

from training_engine import thresholds
from training_engine.models.schemas import (
    Computed,
    Confidence,
    DailyTrainingLoad,
    DateRange,
    InsufficientData,
    LoadStatus,
    UnifiedWorkout,
)
from training_engine.services.stress_scoring import DurationStressScorer, StressScorer


logger = logging.getLogger(__name__)


LOAD_RECOMMENDATIONS = {
    LoadStatus.DETRAINING: "You're well-rested. Good time for hard training or racing.",
    LoadStatus.OPTIMAL: "Training load is in the optimal range. Keep up the good work!",
    LoadStatus.BUILDING: "Training load is high. Consider adding recovery days.",
    LoadStatus.OVERREACHING: "High risk of overtraining. Prioritize rest and recovery.",
}


def ewma_alpha(span: int) -> float:
    """Standard exponential smoothing constant for an N-day span."""
    return 2 / (span + 1)


def classify_status(ratio: float | None, config: dict[str, Any] | None = None) -> LoadStatus:
    """
    Classify an acute:chronic ratio into a load status.

    Bands: ``< 0.8`` detraining, ``0.8 - 1.3`` (inclusive) optimal,
    ``1.3 - 1.5`` (upper inclusive) building, ``> 1.5`` overreaching.
    A missing ratio means no chronic load and is treated as detraining.

    Args:
        ratio: EWMA acute:chronic ratio, or None when it could not be computed
        config: Optional ``status`` band overrides

    Returns:
        LoadStatus for the ratio
    """
    bands = thresholds.section("load")["status"] if config is None else config
    if ratio is None or ratio < bands["detraining_below"]:
        return LoadStatus.DETRAINING
    if ratio <= bands["optimal_max"]:
        return LoadStatus.OPTIMAL
    if ratio <= bands["building_max"]:
        return LoadStatus.BUILDING
    return LoadStatus.OVERREACHING


def _ratio(acute: float, chronic: float, label: str) -> Computed[float] | InsufficientData:
    if chronic <= 0:
        return InsufficientData(reason=f"No chronic load for {label} ratio")
    return Computed[float](value=acute / chronic)


class LoadCalculator:
    """Computes daily stress, rolling/EWMA workloads, monotony and strain."""

    def __init__(self, stress_scorer: StressScorer | None = None, config: dict[str, Any] | None = None):
        """
        Initialize the calculator.

        Args:
            stress_scorer: Per-workout stress function (defaults to the duration heuristic)
            config: Optional overrides for the ``load`` thresholds section
        """
        self.stress_scorer = stress_scorer or DurationStressScorer()
        self.config = thresholds.section("load", config)
        self.alpha_acute = ewma_alpha(self.config["acute_span"])
        self.alpha_chronic = ewma_alpha(self.config["chronic_span"])

    def daily_stress(self, workouts: Iterable[UnifiedWorkout]) -> dict[date, float]:
        """Sum per-workout stress by local day."""
        totals: dict[date, float] = defaultdict(float)
        for workout in workouts:
            score = float(self.stress_scorer(workout))
            if score < 0:
                logger.warning("Negative stress %.1f for workout %s clamped to 0", score, workout.reference)
                score = 0.0
            totals[workout.date] += score
        return dict(totals)

    def _step_load(self, steps: float | None) -> float:
        step_config = self.config["step_load"]
        if not step_config["enabled"] or not steps:
            return 0.0
        return round(max(0.0, (steps - step_config["baseline_steps"]) / step_config["steps_per_point"]), 1)

    def known_days(
        self,
        workouts: Iterable[UnifiedWorkout],
        date_range: DateRange,
        observed_days: Iterable[date] = (),
        steps: dict[date, float] | None = None,
    ) -> dict[date, float]:
        """
        Return daily TSS for every known day in the range.

        Days with workouts carry their summed stress; observed days without
        workouts are explicit rest days (zero, or a step bonus when enabled).
        Days never observed are absent.
        """
        stress = self.daily_stress(w for w in workouts if w.date in date_range)
        observed = set(observed_days)
        steps = steps or {}

        known: dict[date, float] = {}
        for day in date_range.iter_days():
            if day in stress:
                known[day] = stress[day]
            elif day in observed:
                known[day] = self._step_load(steps.get(day))
        return known

    def compute(
        self,
        workouts: Iterable[UnifiedWorkout],
        date_range: DateRange,
        observed_days: Iterable[date] = (),
        steps: dict[date, float] | None = None,
    ) -> list[DailyTrainingLoad]:
        """
        Compute one DailyTrainingLoad per known day in the range.

        Args:
            workouts: Reconciled workouts (workouts outside the range are ignored)
            date_range: Inclusive range to compute
            observed_days: Days with any recorded data; those without workouts are rest days
            steps: Optional daily step totals, used when step load is enabled

        Returns:
            Entries ordered by date; unknown days produce no entry
        """
        known = self.known_days(workouts, date_range, observed_days, steps)
        acute_days = self.config["acute_days"]
        chronic_days = self.config["chronic_days"]
        monotony_days = self.config["monotony_days"]

        loads: list[DailyTrainingLoad] = []
        ewma_acute: float | None = None
        ewma_chronic: float | None = None

        for day in sorted(known):
            tss = known[day]
            if ewma_acute is None or ewma_chronic is None:
                ewma_acute = ewma_chronic = tss
            else:
                ewma_acute = self.alpha_acute * tss + (1 - self.alpha_acute) * ewma_acute
                ewma_chronic = self.alpha_chronic * tss + (1 - self.alpha_chronic) * ewma_chronic

            acute_values = self._window(known, day, acute_days)
            chronic_values = self._window(known, day, chronic_days)
            rolling_acute = statistics.fmean(acute_values)
            rolling_chronic = statistics.fmean(chronic_values)

            ewma_ratio = _ratio(ewma_acute, ewma_chronic, "EWMA")
            ratio_value = ewma_ratio.value if isinstance(ewma_ratio, Computed) else None

            week = self._window(known, day, monotony_days)
            monotony, monotony_confidence = self.monotony(week)
            status = classify_status(ratio_value, self.config["status"])

            loads.append(
                DailyTrainingLoad(
                    date=day,
                    training_stress_score=tss,
                    rolling_acute=rolling_acute,
                    rolling_chronic=rolling_chronic,
                    rolling_ratio=_ratio(rolling_acute, rolling_chronic, "rolling"),
                    ewma_acute=ewma_acute,
                    ewma_chronic=ewma_chronic,
                    ewma_ratio=ewma_ratio,
                    status=status,
                    recommendation=LOAD_RECOMMENDATIONS[status],
                    monotony=monotony,
                    monotony_confidence=monotony_confidence,
                    strain=sum(week) * monotony,
                    acute_known_days=len(acute_values),
                    chronic_known_days=len(chronic_values),
                )
            )

        logger.debug(
            "Computed training load | start=%s end=%s known_days=%d",
            date_range.start.isoformat(),
            date_range.end.isoformat(),
            len(loads),
        )
        return loads

    @staticmethod
    def _window(known: dict[date, float], day: date, days: int) -> list[float]:
        """Known values in the trailing ``days`` calendar days including ``day``."""
        values = []
        for offset in range(days - 1, -1, -1):
            value = known.get(day - timedelta(days=offset))
            if value is not None:
                values.append(value)
        return values

    def monotony(self, week: list[float]) -> tuple[float, Confidence]:
        """
        Foster monotony (mean / population stdev) over a week of known loads.

        Identical non-zero loads have no spread, so the configured cap is
        returned with low confidence. A week without load has monotony 0.

        Args:
            week: Known daily loads from the trailing window

        Returns:
            Tuple of (monotony, confidence)
        """
        cap = float(self.config["monotony_cap"])
        enough = len(week) >= self.config["monotony_days"]
        if not week:
            return 0.0, Confidence.LOW

        mean = statistics.fmean(week)
        if mean == 0:
            return 0.0, Confidence.HIGH if enough else Confidence.LOW

        stdev = statistics.pstdev(week)
        if stdev == 0:
            return cap, Confidence.LOW
        return min(cap, mean / stdev), Confidence.HIGH if enough else Confidence.LOW

    @staticmethod
    def weekly_load_change(loads: Iterable[DailyTrainingLoad], as_of: date) -> float | None:
        """
        Calculate week-over-week training load change percentage.

        Args:
            loads: Daily loads covering at least the 14 days ending at ``as_of``
            as_of: Last day of the current week

        Returns:
            Percentage change of the last 7 days versus the 7 before, or None
            when the previous week carried no load
        """
        current_week = 0.0
        previous_week = 0.0
        for load in loads:
            age = (as_of - load.date).days
            if 0 <= age <= 6:
                current_week += load.training_stress_score
            elif 7 <= age <= 13:
                previous_week += load.training_stress_score

        if previous_week == 0:
            return None
        return round((current_week - previous_week) / previous_week * 100, 1)


def load_on(loads: Iterable[DailyTrainingLoad], day: date) -> DailyTrainingLoad | None:
    """Return the most recent load entry on or before ``day``."""
    latest = None
    for load in loads:
        if load.date <= day and (latest is None or load.date > latest.date):
            latest = load
    return latest
