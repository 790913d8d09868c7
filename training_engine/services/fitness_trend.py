"""Aerobic fitness (VO2max) trend, fitness age, balance, training effectiveness and projection."""
from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Mapping, Sequence

from training_engine import thresholds
from training_engine.models.schemas import (
    AthleteProfile,
    BalanceType,
    Computed,
    Confidence,
    FitnessAge,
    FitnessAnalysis,
    FitnessBalance,
    FitnessProjection,
    FitnessTrend,
    InsufficientData,
    Sex,
    TrainingEffectiveness,
    UnifiedWorkout,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormBracket:
    """Reference VO2max cut-offs (ml/kg/min) for one age bracket."""

    age: int
    superior: float
    excellent: float
    good: float
    fair: float
    poor: float


def _brackets(rows: Sequence[tuple[int, float, float, float, float, float]]) -> tuple[NormBracket, ...]:
    return tuple(NormBracket(*row) for row in rows)


# ACSM-style population norms.
DEFAULT_REFERENCE_TABLE: dict[Sex, tuple[NormBracket, ...]] = {
    Sex.MALE: _brackets([
        (25, 56, 51, 45, 39, 35),
        (35, 52, 48, 42, 37, 33),
        (45, 49, 44, 39, 34, 30),
        (55, 45, 41, 36, 31, 27),
        (65, 42, 38, 33, 29, 25),
    ]),
    Sex.FEMALE: _brackets([
        (25, 49, 44, 38, 33, 29),
        (35, 45, 41, 35, 31, 27),
        (45, 42, 38, 33, 28, 25),
        (55, 38, 34, 30, 25, 22),
        (65, 35, 32, 27, 23, 20),
    ]),
}

TREND_RECOMMENDATIONS = {
    FitnessTrend.IMPROVING: "VO2max improving. Keep current training approach.",
    FitnessTrend.STABLE: "VO2max stable. Consider adding variety or intensity to stimulate adaptation.",
    FitnessTrend.DECLINING: "VO2max declining. Check recovery, sleep, and training load balance.",
    FitnessTrend.RAPID_DECLINE: "Rapid VO2max decline detected. Reduce training load and prioritize recovery.",
}

BALANCE_RECOMMENDATIONS = {
    BalanceType.BOTH_WEAK: (
        "Focus on building both aerobic base and high-intensity capacity. Start with more easy volume."
    ),
    BalanceType.WELL_BALANCED: (
        "Excellent balance between aerobic and anaerobic fitness. Maintain current training mix."
    ),
    BalanceType.AEROBIC_DOMINANT: (
        "Strong aerobic base. Add 1-2 high-intensity sessions weekly to develop anaerobic capacity."
    ),
    BalanceType.ANAEROBIC_DOMINANT: (
        "Good high-intensity capacity. Build more aerobic base with easy zone 2 volume."
    ),
}

# (score, interpretation, insights) from best to worst response
EFFECTIVENESS_TIERS = {
    "excellent": (
        90,
        "Excellent training response",
        ("Training is very effective", "You're responding well to current load"),
    ),
    "good": (70, "Good training response", ("Training is effective", "Continue current approach")),
    "moderate": (
        50,
        "Moderate training response",
        ("Fitness improving but slowly", "Consider periodization or intensity variation"),
    ),
    "plateau": (30, "Plateau", ("Fitness stable despite training", "May need training stimulus change")),
    "poor": (
        10,
        "Poor response or overtraining",
        ("Fitness declining despite training", "Check for overtraining or inadequate recovery"),
    ),
}

# Weekly hours upper bound -> suggested weekly hours
OPTIMAL_WEEKLY_HOURS: tuple[tuple[float, tuple[float, float]], ...] = (
    (3, (3.0, 5.0)),
    (6, (5.0, 8.0)),
    (10, (8.0, 12.0)),
)
HIGH_VOLUME_WEEKLY_HOURS = (10.0, 15.0)


def classify_fitness(
    vo2max: float,
    profile: AthleteProfile,
    table: Mapping[Sex, Sequence[NormBracket]] = DEFAULT_REFERENCE_TABLE,
) -> FitnessAge:
    """
    Classify a VO2max against the age/sex reference table.

    The percentile comes from the bracket closest to the athlete's age.
    Fitness age is the youngest bracket in which the value still rates
    "good"; the chronological age is kept when none does.

    Args:
        vo2max: Current VO2max estimate
        profile: Athlete age and sex
        table: Reference norms keyed by sex

    Returns:
        FitnessAge classification
    """
    norms = table[profile.sex]
    norm = min(norms, key=lambda bracket: abs(bracket.age - profile.age))

    if vo2max >= norm.superior:
        classification, percentile = "superior", 95.0
    elif vo2max >= norm.excellent:
        classification, percentile = "excellent", 80.0
    elif vo2max >= norm.good:
        classification, percentile = "good", 60.0
    elif vo2max >= norm.fair:
        classification, percentile = "fair", 40.0
    else:
        classification, percentile = "poor", 20.0

    fitness_age = profile.age
    for bracket in norms:
        if vo2max >= bracket.good:
            fitness_age = bracket.age
            break

    return FitnessAge(
        chronological_age=profile.age,
        fitness_age=fitness_age,
        percentile=percentile,
        classification=classification,
    )


class FitnessTrendAnalyzer:
    """Tracks an irregularly sampled VO2max series."""

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        reference_table: Mapping[Sex, Sequence[NormBracket]] | None = None,
    ):
        self.config = thresholds.section("fitness", config)
        self.reference_table = reference_table or DEFAULT_REFERENCE_TABLE

    @property
    def workout_window_days(self) -> int:
        """Days of workouts the balance and effectiveness checks look at."""
        return max(self.config["balance"]["window_days"], self.config["effectiveness"]["window_days"])

    def analyze(
        self,
        measurements: Mapping[date, float],
        as_of: date,
        profile: AthleteProfile | None = None,
        workouts: Iterable[UnifiedWorkout] = (),
    ) -> FitnessAnalysis | InsufficientData:
        """
        Analyze the fitness series up to ``as_of``.

        Args:
            measurements: VO2max values keyed by day
            as_of: Analysis day; later measurements are ignored
            profile: Athlete age/sex for fitness age and ceiling (optional)
            workouts: Reconciled workouts for balance and training effectiveness

        Returns:
            FitnessAnalysis, or InsufficientData when no measurement exists
        """
        series = sorted((day, value) for day, value in measurements.items() if day <= as_of)
        if not series:
            return InsufficientData(reason="No fitness measurements recorded")
        workouts = [w for w in workouts if w.date <= as_of]

        current_day, current = series[-1]
        thirty_change, thirty_pct = self._change(series, as_of, 30)
        ninety_change, ninety_pct = self._change(series, as_of, 90)
        trend = self.classify_trend(thirty_pct, ninety_pct)

        ninety_start = as_of - timedelta(days=89)
        count_90 = sum(1 for day, _ in series if day >= ninety_start)

        fitness_age = None
        ceiling = None
        percent_of_ceiling = None
        if profile is not None:
            fitness_age = classify_fitness(current, profile, self.reference_table)
            ceiling = round(self.estimated_ceiling(profile), 1)
            percent_of_ceiling = round(current / ceiling * 100, 1)

        projection = self.project(series, as_of)
        balance = self.fitness_balance(current, workouts, as_of)
        effectiveness = self.training_effectiveness(round(ninety_change, 2), workouts, as_of, self.confidence(count_90))

        recommendations = [TREND_RECOMMENDATIONS[trend], balance.recommendation]
        if (
            isinstance(effectiveness, Computed)
            and effectiveness.value.score < self.config["effectiveness"]["low_score_below"]
        ):
            recommendations.append(
                "Training effectiveness is low. Consider working with a coach or adjusting training structure."
            )
        if percent_of_ceiling is not None and percent_of_ceiling > 85:
            recommendations.append("You're near your estimated ceiling. Focus on maintenance and event-specific fitness.")
        elif percent_of_ceiling is not None and percent_of_ceiling < 50:
            recommendations.append("Significant fitness potential remaining. Consistent training will yield good results.")

        logger.info(
            "Fitness trend %s | current=%.1f (%s) 30d=%+.1f 90d=%+.1f measurements_90d=%d",
            trend.value,
            current,
            current_day.isoformat(),
            thirty_change,
            ninety_change,
            count_90,
        )
        return FitnessAnalysis(
            as_of=as_of,
            current_value=current,
            thirty_day_change=round(thirty_change, 2),
            ninety_day_change=round(ninety_change, 2),
            year_over_year_change=self._year_over_year(series, as_of, current),
            trend=trend,
            measurement_confidence=self.confidence(count_90),
            fitness_age=fitness_age,
            projection=projection,
            estimated_ceiling=ceiling,
            percent_of_ceiling=percent_of_ceiling,
            time_to_plateau=self.time_to_plateau(current, ninety_change, ceiling),
            balance=balance,
            effectiveness=effectiveness,
            recommendations=tuple(recommendations),
        )

    def fitness_balance(self, vo2max: float, workouts: Iterable[UnifiedWorkout], as_of: date) -> FitnessBalance:
        """
        Score aerobic against anaerobic development.

        Aerobic is VO2max as a share of an elite value; anaerobic is 10 points
        per recent session averaging above the high-intensity heart rate.
        Both scores are capped at 100.
        """
        config = self.config["balance"]
        start = as_of - timedelta(days=config["window_days"] - 1)
        sessions = sum(
            1
            for w in workouts
            if start <= w.date <= as_of and w.heart_rate and w.heart_rate > config["high_intensity_heart_rate"]
        )
        aerobic = min(100.0, vo2max / config["elite_vo2max"] * 100)
        anaerobic = min(100.0, float(sessions * config["points_per_session"]))

        if aerobic < config["weak_below"] and anaerobic < config["weak_below"]:
            balance = BalanceType.BOTH_WEAK
        elif abs(aerobic - anaerobic) < config["balanced_within"]:
            balance = BalanceType.WELL_BALANCED
        elif aerobic > anaerobic:
            balance = BalanceType.AEROBIC_DOMINANT
        else:
            balance = BalanceType.ANAEROBIC_DOMINANT

        return FitnessBalance(
            aerobic_score=round(aerobic, 1),
            anaerobic_score=round(anaerobic, 1),
            balance=balance,
            recommendation=BALANCE_RECOMMENDATIONS[balance],
        )

    def training_effectiveness(
        self,
        ninety_day_change: float,
        workouts: Iterable[UnifiedWorkout],
        as_of: date,
        confidence: Confidence | None = None,
    ) -> Computed[TrainingEffectiveness] | InsufficientData:
        """
        Relate the 90-day fitness change to the weekly training hours behind it.

        Args:
            ninety_day_change: VO2max change over the window
            workouts: Reconciled workouts
            as_of: Last day of the window
            confidence: Measurement confidence carried onto the result

        Returns:
            Computed effectiveness, or InsufficientData without any training in the window
        """
        config = self.config["effectiveness"]
        window = config["window_days"]
        start = as_of - timedelta(days=window - 1)
        hours = sum(w.duration_seconds for w in workouts if start <= w.date <= as_of) / 3600
        if hours <= 0:
            return InsufficientData(reason=f"No workouts in the last {window} days")

        weekly_hours = hours / (window / 7)
        ratio = ninety_day_change / weekly_hours
        if ratio > config["excellent_ratio"]:
            tier = "excellent"
        elif ratio > config["good_ratio"]:
            tier = "good"
        elif ratio > 0:
            tier = "moderate"
        elif ninety_day_change == 0:
            tier = "plateau"
        else:
            tier = "poor"
        score, interpretation, insights = EFFECTIVENESS_TIERS[tier]

        optimal = HIGH_VOLUME_WEEKLY_HOURS
        for below, hours_range in OPTIMAL_WEEKLY_HOURS:
            if weekly_hours < below:
                optimal = hours_range
                break

        return Computed[TrainingEffectiveness](
            value=TrainingEffectiveness(
                score=score,
                interpretation=interpretation,
                weekly_hours=round(weekly_hours, 1),
                load_to_fitness_ratio=round(ratio, 3),
                optimal_weekly_hours=optimal,
                insights=insights,
            ),
            confidence=confidence,
        )

    def time_to_plateau(self, current: float, ninety_day_change: float, ceiling: float | None) -> str | None:
        """
        Rough time until fitness reaches 95% of the estimated ceiling.

        None without a ceiling or while the monthly gain is negligible.
        """
        config = self.config["plateau"]
        monthly_gain = ninety_day_change / 3
        if ceiling is None or monthly_gain <= config["min_monthly_gain"]:
            return None
        months = max(0.0, (ceiling * config["realistic_fraction"] - current) / monthly_gain)
        if months < 12:
            return f"{int(months)} months"
        return f"{int(months / 12)} years"

    @staticmethod
    def _change(series: list[tuple[date, float]], as_of: date, days: int) -> tuple[float, float]:
        """Current minus oldest value in the window, absolute and in percent."""
        start = as_of - timedelta(days=days - 1)
        window = [value for day, value in series if day >= start]
        if len(window) < 2 or window[0] == 0:
            return 0.0, 0.0
        change = window[-1] - window[0]
        return change, change / window[0] * 100

    def _year_over_year(self, series: list[tuple[date, float]], as_of: date, current: float) -> float | None:
        target = as_of - timedelta(days=365)
        tolerance = self.config["year_over_year_tolerance_days"]
        candidates = [(abs((day - target).days), day, value) for day, value in series]
        candidates = [c for c in candidates if c[0] <= tolerance]
        if not candidates:
            return None
        _, _, value = min(candidates)
        return round(current - value, 2)

    def classify_trend(self, thirty_pct: float, ninety_pct: float) -> FitnessTrend:
        config = self.config["trend"]
        if ninety_pct <= config["rapid_decline_pct"] or thirty_pct <= config["rapid_decline_pct"]:
            return FitnessTrend.RAPID_DECLINE
        if ninety_pct <= config["declining_pct"]:
            return FitnessTrend.DECLINING
        if ninety_pct >= config["improving_pct"]:
            return FitnessTrend.IMPROVING
        return FitnessTrend.STABLE

    def confidence(self, count: int) -> Confidence:
        config = self.config["confidence"]
        if count >= config["high"]:
            return Confidence.HIGH
        if count >= config["medium"]:
            return Confidence.MEDIUM
        if count >= config["low"]:
            return Confidence.LOW
        return Confidence.BUILDING

    def project(
        self,
        series: list[tuple[date, float]],
        as_of: date,
    ) -> Computed[FitnessProjection] | InsufficientData:
        """
        Extrapolate the least-squares trend 30 and 90 days ahead.

        Never extrapolates from fewer than ``min_projection_measurements``
        values in the trailing window.
        """
        window_days = self.config["projection_window_days"]
        minimum = self.config["min_projection_measurements"]
        start = as_of - timedelta(days=window_days - 1)
        window = [(day, value) for day, value in series if day >= start]
        if len(window) < minimum:
            return InsufficientData(
                reason=f"{len(window)} measurements in the last {window_days} days; {minimum} required"
            )

        xs = [float((day - as_of).days) for day, _ in window]
        ys = [value for _, value in window]
        regression = statistics.linear_regression(xs, ys)
        return Computed[FitnessProjection](
            value=FitnessProjection(
                slope_per_day=round(regression.slope, 4),
                projected_in_30_days=round(regression.intercept + regression.slope * 30, 1),
                projected_in_90_days=round(regression.intercept + regression.slope * 90, 1),
                measurements=len(window),
            ),
            confidence=self.confidence(len(window)),
        )

    def estimated_ceiling(self, profile: AthleteProfile) -> float:
        """Rough VO2max ceiling, declining about 1% per year after 30."""
        config = self.config["ceiling"]
        base = float(config[profile.sex.value])
        years = max(0, profile.age - config["decline_after_age"])
        return base * (1 - config["decline_per_year"]) ** years
