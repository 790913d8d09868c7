"""Injury risk assessment from load, recovery, trend and monotony signals."""
from __future__ import annotations

import logging
import statistics
from datetime import date, timedelta
from typing import Any, Iterable

from training_engine import thresholds
from training_engine.models.schemas import (
    Computed,
    DailyTrainingLoad,
    InjuryRiskAssessment,
    MetricKind,
    RiskCategory,
    RiskFactor,
    RiskLevel,
    risk_level_for,
)
from training_engine.services.load_calculator import LoadCalculator, load_on
from training_engine.services.signal_normalizer import MetricHistory


logger = logging.getLogger(__name__)

RECOMMENDATIONS: dict[RiskLevel, str] = {
    RiskLevel.VERY_HIGH: "Multiple significant risk factors detected. Take immediate action to reduce injury risk.",
    RiskLevel.HIGH: "Elevated injury risk. Be cautious with training progression and prioritize recovery.",
    RiskLevel.MODERATE: (
        "Some warning signs present. Monitor closely and adjust training if needed. "
        "This is normal when ramping up after a break."
    ),
    RiskLevel.LOW: "Continue current training and recovery practices.",
}
LOW_RISK_WITH_FACTORS = "Minor risk factors present but manageable. Continue monitoring trends."

METRIC_LABELS = {
    MetricKind.HRV: "HRV",
    MetricKind.RESTING_HR: "Resting HR",
    MetricKind.SLEEP: "Sleep",
}
# Resting HR worsens upward; HRV and sleep worsen downward.
RISING_IS_WORSE = {MetricKind.HRV: False, MetricKind.RESTING_HR: True, MetricKind.SLEEP: False}


def deficit(kind: MetricKind, current: float, baseline: float) -> float:
    """
    How far a recovery metric sits on the bad side of its baseline.

    Resting HR is measured in bpm above baseline; HRV and sleep in percent
    below baseline. Values on the good side give a negative deficit.
    """
    if kind == MetricKind.RESTING_HR:
        return current - baseline
    if baseline <= 0:
        return 0.0
    return (baseline - current) / baseline * 100


class InjuryRiskCalculator:
    """Scores injury risk as the sum of four bounded integer sub-scores."""

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = thresholds.section("injury_risk", config)

    def assess(
        self,
        as_of: date,
        loads: list[DailyTrainingLoad],
        history: MetricHistory,
    ) -> InjuryRiskAssessment:
        """
        Assess injury risk for a single day.

        Args:
            as_of: Day being assessed
            loads: Daily training loads up to and including ``as_of``
            history: Normalized daily recovery metrics

        Returns:
            InjuryRiskAssessment whose score equals the sum of its sub-scores
        """
        logger.info("Assessing injury risk for %s", as_of.isoformat())
        factors: list[RiskFactor] = []

        current = load_on(loads, as_of)
        load_risk = self._load_risk(as_of, current, loads, factors)
        recovery_risk = self._recovery_risk(as_of, history, factors)
        trend_risk = self._trend_risk(as_of, history, factors)
        monotony_risk = self._monotony_risk(current, factors)

        score = load_risk + recovery_risk + trend_risk + monotony_risk
        risk_level = risk_level_for(score)
        factors.sort(key=lambda factor: factor.severity, reverse=True)

        recommendation = RECOMMENDATIONS[risk_level]
        if risk_level == RiskLevel.LOW and factors:
            recommendation = LOW_RISK_WITH_FACTORS

        logger.info(
            "Injury risk %s | score=%d load=%d recovery=%d trend=%d monotony=%d factors=%d",
            risk_level.value,
            score,
            load_risk,
            recovery_risk,
            trend_risk,
            monotony_risk,
            len(factors),
        )
        return InjuryRiskAssessment(
            as_of=as_of,
            score=score,
            risk_level=risk_level,
            load_risk=load_risk,
            recovery_risk=recovery_risk,
            trend_risk=trend_risk,
            monotony_risk=monotony_risk,
            contributing_factors=tuple(factors),
            recommendation=recommendation,
        )

    @staticmethod
    def _factor(
        factors: list[RiskFactor],
        category: RiskCategory,
        points: int,
        sub_max: int,
        description: str,
    ) -> None:
        if points <= 0:
            return
        severity = min(10, round(points / sub_max * 10))
        factors.append(RiskFactor(category=category, severity=severity, description=description))

    def _load_risk(
        self,
        as_of: date,
        current: DailyTrainingLoad | None,
        loads: Iterable[DailyTrainingLoad],
        factors: list[RiskFactor],
    ) -> int:
        config = self.config["load"]
        ratio_points = 0
        ratio = None
        if current is not None and isinstance(current.ewma_ratio, Computed):
            ratio = current.ewma_ratio.value

        if ratio is not None and ratio > config["high_ratio"]:
            ratio_points = min(
                config["high_ratio_cap"],
                round(config["high_ratio_slope"] * (ratio - config["high_ratio"])),
            )
            self._factor(
                factors,
                RiskCategory.LOAD,
                ratio_points,
                config["max"],
                f"Acute:chronic load ratio {ratio:.2f} above the {config['high_ratio']} optimal ceiling",
            )
        elif ratio is not None and ratio < config["low_ratio"]:
            ratio_points = min(
                config["low_ratio_cap"],
                round(config["low_ratio_slope"] * (config["low_ratio"] - ratio)),
            )
            self._factor(
                factors,
                RiskCategory.LOAD,
                ratio_points,
                config["max"],
                f"Acute:chronic load ratio {ratio:.2f} below {config['low_ratio']} (detraining)",
            )

        spike_points = 0
        change = LoadCalculator.weekly_load_change(loads, as_of)
        if change is not None:
            for tier in sorted(config["weekly_increase"], key=lambda t: t["above_pct"], reverse=True):
                if change > tier["above_pct"]:
                    spike_points = tier["points"]
                    break
            self._factor(
                factors,
                RiskCategory.LOAD,
                spike_points,
                config["max"],
                f"Weekly load up {change:.0f}% on the previous week",
            )

        return min(config["max"], ratio_points + spike_points)

    def _recovery_risk(self, as_of: date, history: MetricHistory, factors: list[RiskFactor]) -> int:
        config = self.config["recovery"]
        baseline_start = as_of - timedelta(days=self.config["baseline_days"])
        baseline_end = as_of - timedelta(days=1)
        total = 0

        for kind in (MetricKind.HRV, MetricKind.RESTING_HR, MetricKind.SLEEP):
            metric_config = config[kind.value]
            points_max = metric_config["points"]
            label = METRIC_LABELS[kind]

            baseline_values = [v for _, v in history.values_between(kind, baseline_start, baseline_end)]
            current = history.latest(kind, as_of, self.config["current_lookback_days"])

            if current is None or len(baseline_values) < self.config["min_baseline_values"]:
                points = round(points_max / 2)
                total += points
                self._factor(
                    factors,
                    RiskCategory.RECOVERY,
                    points,
                    config["max"],
                    f"{label} data missing or baseline incomplete",
                )
                continue

            baseline = statistics.fmean(baseline_values)
            gap = deficit(kind, current[1], baseline)
            if gap <= 0:
                continue

            points = round(points_max * min(1.0, gap / metric_config["full_deficit"]))
            total += points
            unit = " bpm above" if kind == MetricKind.RESTING_HR else "% below"
            self._factor(
                factors,
                RiskCategory.RECOVERY,
                points,
                config["max"],
                f"{label} {gap:.0f}{unit} {self.config['baseline_days']}-day baseline",
            )

        return min(config["max"], total)

    def worsening_streak(
        self,
        kind: MetricKind,
        as_of: date,
        history: MetricHistory,
    ) -> tuple[int, float]:
        """
        Find the run of consecutive worsening days ending at the latest sample.

        Args:
            kind: Recovery metric
            as_of: Day being assessed
            history: Normalized daily metrics

        Returns:
            Tuple of (streak length in days, magnitude of the change over the
            streak). Length 0 when the latest sample is stale.
        """
        config = self.config["trend"]
        values = history.values_between(kind, as_of - timedelta(days=config["window_days"] - 1), as_of)
        if not values or (as_of - values[-1][0]).days > self.config["current_lookback_days"]:
            return 0, 0.0

        rising_is_worse = RISING_IS_WORSE[kind]
        streak_start = len(values) - 1
        for index in range(len(values) - 1, 0, -1):
            (prev_day, prev_value), (day, value) = values[index - 1], values[index]
            consecutive = (day - prev_day).days == 1
            worse = value > prev_value if rising_is_worse else value < prev_value
            if not (consecutive and worse):
                break
            streak_start = index - 1

        length = len(values) - streak_start
        if length < 2:
            return length, 0.0
        return length, deficit(kind, values[-1][1], values[streak_start][1])

    def _trend_risk(self, as_of: date, history: MetricHistory, factors: list[RiskFactor]) -> int:
        config = self.config["trend"]
        total = 0
        for kind in (MetricKind.HRV, MetricKind.RESTING_HR, MetricKind.SLEEP):
            length, magnitude = self.worsening_streak(kind, as_of, history)
            if length < config["min_streak_days"]:
                continue

            metric_config = config[kind.value]
            points_max = metric_config["points"]
            share = min(1.0, magnitude / metric_config["full_change"])
            points = min(points_max, round(points_max / 2 + points_max / 2 * share))
            total += points
            unit = "bpm" if kind == MetricKind.RESTING_HR else "%"
            self._factor(
                factors,
                RiskCategory.TREND,
                points,
                config["max"],
                f"{METRIC_LABELS[kind]} worsening {length} consecutive days ({magnitude:.0f}{unit})",
            )
        return min(config["max"], total)

    def _monotony_risk(self, current: DailyTrainingLoad | None, factors: list[RiskFactor]) -> int:
        config = self.config["monotony"]
        if current is None or current.monotony <= config["threshold"]:
            return 0

        span = config["full_at"] - config["threshold"]
        points = min(config["max"], round((current.monotony - config["threshold"]) / span * config["max"]))
        self._factor(
            factors,
            RiskCategory.MONOTONY,
            points,
            config["max"],
            f"Training monotony {current.monotony:.1f} (little day-to-day variation)",
        )
        return points
