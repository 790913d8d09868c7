"""Readiness-to-train scoring."""
from __future__ import annotations

import logging
import statistics
from datetime import date, timedelta
from typing import Any

from training_engine import thresholds
from training_engine.models.schemas import (
    Computed,
    Confidence,
    DailyTrainingLoad,
    LoadStatus,
    MetricKind,
    ReadinessBreakdown,
    ReadinessScore,
    ReadinessTrend,
)
from training_engine.services.injury_risk import METRIC_LABELS, deficit
from training_engine.services.load_calculator import load_on
from training_engine.services.signal_normalizer import MetricHistory


logger = logging.getLogger(__name__)

RECOVERY_KINDS = (MetricKind.HRV, MetricKind.RESTING_HR, MetricKind.SLEEP)


class ReadinessAnalyzer:
    """
    Composite readiness score out of 100.

    recovery (40) rewards HRV, resting HR and sleep at or above their
    personal baselines; fitness (30) rewards a stable or rising chronic load
    and consistent training; fatigue (30) penalises acute load running ahead
    of chronic load.
    """

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = thresholds.section("readiness", config)

    def assess(
        self,
        as_of: date,
        loads: list[DailyTrainingLoad],
        history: MetricHistory,
    ) -> ReadinessScore:
        """
        Compute the readiness score for ``as_of``.

        Args:
            as_of: Day being assessed
            loads: Daily training loads up to and including ``as_of``
            history: Normalized daily recovery metrics

        Returns:
            ReadinessScore whose score equals the sum of its breakdown
        """
        logger.info("Assessing readiness for %s", as_of.isoformat())
        recovery, fitness, fatigue = self.components(as_of, loads, history)
        score = recovery[0] + fitness[0] + fatigue[0]

        slope = self._score_slope(as_of, loads, history)
        trend = self.classify_trend(slope, as_of, loads)
        confidence = self.confidence(as_of, loads, history)

        projected = None
        if slope is not None:
            projected = max(0, min(100, round(score + slope * self.config["projection_days"])))

        logger.info(
            "Readiness %d (%s, %s) | recovery=%d fitness=%d fatigue=%d",
            score,
            trend.value,
            confidence.value,
            recovery[0],
            fitness[0],
            fatigue[0],
        )
        return ReadinessScore(
            as_of=as_of,
            score=score,
            trend=trend,
            confidence=confidence,
            breakdown=ReadinessBreakdown(
                recovery_score=recovery[0],
                fitness_score=fitness[0],
                fatigue_score=fatigue[0],
                recovery_details=recovery[1],
                fitness_details=fitness[1],
                fatigue_details=fatigue[1],
            ),
            recommendation=self.recommendation(score, trend, recovery[0], fatigue[0]),
            projected_score=projected,
        )

    def components(
        self,
        as_of: date,
        loads: list[DailyTrainingLoad],
        history: MetricHistory,
    ) -> tuple[tuple[int, str], tuple[int, str], tuple[int, str]]:
        """Return (points, details) for recovery, fitness and fatigue."""
        return (
            self.recovery_score(as_of, history),
            self.fitness_score(as_of, loads),
            self.fatigue_score(as_of, loads),
        )

    def recovery_score(self, as_of: date, history: MetricHistory) -> tuple[int, str]:
        recent_start = as_of - timedelta(days=self.config["recent_days"] - 1)
        baseline_end = recent_start - timedelta(days=1)
        baseline_start = baseline_end - timedelta(days=self.config["baseline_days"] - 1)

        total = 0
        details: list[str] = []
        for kind in RECOVERY_KINDS:
            points_max = self.config["recovery"][kind.value]["points"]
            full_deficit = self.config["recovery"][kind.value]["full_deficit"]
            label = METRIC_LABELS[kind]

            recent = [v for _, v in history.values_between(kind, recent_start, as_of)]
            baseline = [v for _, v in history.values_between(kind, baseline_start, baseline_end)]
            if not recent or len(baseline) < self.config["min_baseline_values"]:
                total += round(points_max / 2)
                details.append(f"{label}: no baseline")
                continue

            recent_mean = statistics.fmean(recent)
            baseline_mean = statistics.fmean(baseline)
            gap = deficit(kind, recent_mean, baseline_mean)
            if gap <= 0:
                points = points_max
            else:
                points = round(points_max * (1 - min(1.0, gap / full_deficit)))
            total += points
            details.append(f"{label} {recent_mean:.1f} vs baseline {baseline_mean:.1f}")

        return total, "; ".join(details)

    def fitness_score(self, as_of: date, loads: list[DailyTrainingLoad]) -> tuple[int, str]:
        config = self.config["fitness"]
        current = load_on(loads, as_of)
        earlier = load_on(loads, as_of - timedelta(days=config["trend_lookback_days"]))

        if current is None or current.ewma_chronic <= 0:
            trend_points = 0
            trend_detail = "No chronic training load"
        elif earlier is None or earlier.ewma_chronic <= 0:
            trend_points = round(config["trend_points"] / 2)
            trend_detail = "Chronic load building from zero"
        else:
            change = (current.ewma_chronic - earlier.ewma_chronic) / earlier.ewma_chronic * 100
            floor, collapse = config["stable_floor_pct"], config["collapse_pct"]
            if change >= floor:
                trend_points = config["trend_points"]
            elif change <= collapse:
                trend_points = 0
            else:
                trend_points = round(config["trend_points"] * (change - collapse) / (floor - collapse))
            trend_detail = f"Chronic load {change:+.0f}% over {config['trend_lookback_days']} days"

        window_start = as_of - timedelta(days=config["consistency_window_days"] - 1)
        training_days = sum(
            1 for load in loads if window_start <= load.date <= as_of and load.training_stress_score > 0
        )
        consistency_points = round(
            config["consistency_points"] * min(1.0, training_days / config["consistency_full_days"])
        )
        detail = f"{trend_detail}; {training_days} training days in {config['consistency_window_days']}"
        return trend_points + consistency_points, detail

    def fatigue_score(self, as_of: date, loads: list[DailyTrainingLoad]) -> tuple[int, str]:
        config = self.config["fatigue"]
        current = load_on(loads, as_of)
        if current is None or not isinstance(current.ewma_ratio, Computed):
            return config["max"], "No recent training load"

        ratio = current.ewma_ratio.value
        if ratio <= config["neutral_ratio"]:
            return config["max"], f"Acute load at or below chronic (ratio {ratio:.2f})"

        span = config["zero_ratio"] - config["neutral_ratio"]
        penalty = min(config["max"], round((ratio - config["neutral_ratio"]) / span * config["max"]))
        return config["max"] - penalty, f"Acute load above chronic (ratio {ratio:.2f})"

    def _score_slope(
        self,
        as_of: date,
        loads: list[DailyTrainingLoad],
        history: MetricHistory,
    ) -> float | None:
        """Least-squares slope (points per day) of the composite over the trend window."""
        window = self.config["trend"]["window_days"]
        xs: list[float] = []
        ys: list[float] = []
        for offset in range(window - 1, -1, -1):
            day = as_of - timedelta(days=offset)
            recovery, fitness, fatigue = self.components(day, loads, history)
            xs.append(float(window - 1 - offset))
            ys.append(float(recovery[0] + fitness[0] + fatigue[0]))

        if len(xs) < 2:
            return None
        return statistics.linear_regression(xs, ys).slope

    def classify_trend(
        self,
        slope: float | None,
        as_of: date,
        loads: list[DailyTrainingLoad],
    ) -> ReadinessTrend:
        """
        Combine the composite's direction with the current load status.

        Rising while load is optimal is peaking, rising while detraining is
        recovering, other rises are improving. A falling score while acute
        load is climbing counts as improving (building through controlled
        fatigue).
        """
        threshold = self.config["trend"]["slope_per_day"]
        if slope is None or abs(slope) <= threshold:
            return ReadinessTrend.MAINTAINING

        current = load_on(loads, as_of)
        status = current.status if current else LoadStatus.DETRAINING
        if slope > threshold:
            if status == LoadStatus.OPTIMAL:
                return ReadinessTrend.PEAKING
            if status == LoadStatus.DETRAINING:
                return ReadinessTrend.RECOVERING
            return ReadinessTrend.IMPROVING

        earlier = load_on(loads, as_of - timedelta(days=self.config["trend"]["window_days"] - 1))
        if current and earlier and current.ewma_acute > earlier.ewma_acute:
            return ReadinessTrend.IMPROVING
        return ReadinessTrend.DECLINING

    def confidence(self, as_of: date, loads: list[DailyTrainingLoad], history: MetricHistory) -> Confidence:
        start = as_of - timedelta(days=self.config["baseline_days"] - 1)
        load_days = sum(1 for load in loads if start <= load.date <= as_of)
        recovery_days = history.days_with_any(RECOVERY_KINDS, start, as_of)
        days = min(load_days, recovery_days)
        if days >= self.config["confidence"]["high_days"]:
            return Confidence.HIGH
        if days >= self.config["confidence"]["medium_days"]:
            return Confidence.MEDIUM
        return Confidence.LOW

    @staticmethod
    def recommendation(score: int, trend: ReadinessTrend, recovery: int, fatigue: int) -> str:
        """Tiered guidance text for the day."""
        if score < 40 and recovery < 15:
            return "RECOVERY NEEDED: Your body needs rest. Take a complete rest day or very light active recovery only."
        if score < 50 and fatigue < 10:
            return "HIGH FATIGUE: Limit to easy aerobic work today. Hard sessions will dig a deeper hole."
        if score >= 80 and trend == ReadinessTrend.PEAKING:
            return "PRIME WINDOW: You're primed for a breakthrough session. Go after that PR or race hard!"
        if score >= 75 and recovery >= 30:
            return "READY FOR QUALITY: Great day for intervals, tempo, or other high-quality work."
        if score >= 65:
            return "GOOD TO GO: Normal training can proceed. Listen to your body on intensity."
        if score >= 55:
            return "MODERATE DAY: Stick to moderate efforts. Save hard work for when you're fresher."
        if score >= 45:
            return "EASY DAY: Focus on easy aerobic work and recovery. Your body is still adapting."
        return "REST OR RECOVERY: Prioritize recovery activities. Let your body catch up."
