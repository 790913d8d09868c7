"""Threshold estimation, intensity zones, training balance and efficiency."""
from __future__ import annotations

import logging
import statistics
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable

from training_engine import thresholds
from training_engine.models.schemas import (
    ActivityType,
    Computed,
    Confidence,
    DecouplingRecord,
    DecouplingSeverity,
    EfficiencyTrend,
    EffortSplit,
    InsufficientData,
    TrainingBalance,
    TrainingModel,
    TrendDirection,
    UnifiedWorkout,
    ZoneAnalysis,
    ZoneBucket,
)


logger = logging.getLogger(__name__)

ZONE_NAMES = (
    "Active Recovery",
    "Endurance",
    "Tempo",
    "Threshold",
    "VO2max",
    "Anaerobic",
    "Neuromuscular",
)

# (easy, moderate, hard) percent targets
MODEL_TARGETS: dict[TrainingModel, tuple[float, float, float]] = {
    TrainingModel.POLARIZED: (80.0, 5.0, 15.0),
    TrainingModel.PYRAMIDAL: (80.0, 15.0, 5.0),
    TrainingModel.THRESHOLD: (70.0, 20.0, 10.0),
}

POWER = "power"
PACE = "pace"

EFFICIENCY_INTERPRETATIONS = {
    TrendDirection.IMPROVING: "Your aerobic fitness is improving! More output per heartbeat.",
    TrendDirection.STABLE: "Efficiency stable. Continue current training approach.",
    TrendDirection.DECLINING: "Efficiency declining. Check recovery, nutrition, or overtraining.",
}
EFFICIENCY_BASELINE_TEXT = "Efficiency baseline recorded. Keep training with heart rate to track changes."


@dataclass(frozen=True)
class Segment:
    """A stretch of a workout with a single mean intensity."""

    day: date
    duration_seconds: float
    intensity: float | None
    heart_rate: float | None


@dataclass(frozen=True)
class Effort:
    """Best sustained effort found while estimating threshold."""

    intensity: float
    duration_seconds: float
    day: date
    source: str


def split_intensity(split: EffortSplit, basis: str) -> float | None:
    return split.power if basis == POWER else split.speed


def workout_intensity(workout: UnifiedWorkout, basis: str) -> float | None:
    return workout.power if basis == POWER else workout.speed


def workout_segments(workout: UnifiedWorkout, basis: str) -> list[Segment]:
    """Per-split segments when splits exist, else the whole workout as one segment."""
    if workout.splits:
        return [
            Segment(workout.date, split.duration_seconds, split_intensity(split, basis), split.heart_rate)
            for split in workout.splits
        ]
    return [Segment(workout.date, workout.duration_seconds, workout_intensity(workout, basis), workout.heart_rate)]


def _speed_to_pace(speed: float) -> float:
    """Convert metres per second to seconds per kilometre."""
    return 1000 / speed


class TrainingZoneAnalyzer:
    """Analyzes intensity distribution for one activity type."""

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = thresholds.section("zones", config)
        self.upper_bounds: list[float] = list(self.config["zone_upper_bounds"])
        if len(self.upper_bounds) != 6 or self.upper_bounds != sorted(self.upper_bounds):
            raise ValueError("zone_upper_bounds must hold six ascending fractions")

    def analyze(
        self,
        activity_type: ActivityType,
        workouts: Iterable[UnifiedWorkout],
        as_of: date,
    ) -> ZoneAnalysis:
        """
        Build the zone analysis for an activity type.

        Args:
            activity_type: Activity to analyze
            workouts: Reconciled workouts (other activity types are ignored)
            as_of: Last day of the analysis windows

        Returns:
            ZoneAnalysis with threshold, zone distribution, balance and efficiency
        """
        lookback_start = as_of - timedelta(days=self.config["lookback_days"] - 1)
        recent = sorted(
            (w for w in workouts if w.activity_type == activity_type and lookback_start <= w.date <= as_of),
            key=lambda w: w.start_time,
        )
        basis = self.choose_basis(recent)
        logger.info(
            "Analyzing %s zones | workouts=%d basis=%s",
            activity_type.value,
            len(recent),
            basis or "none",
        )

        effort = self.best_effort(recent, basis) if basis else None
        functional_threshold = None
        threshold_unit = None
        if effort is None:
            threshold_method = "No sustained 15-60 minute effort with power or pace data in the lookback window"
            zones = self._empty_zones()
        else:
            factor = self.config["threshold_factor"]
            internal_threshold = effort.intensity * factor
            if basis == POWER:
                functional_threshold = round(internal_threshold, 1)
                threshold_unit = "watts"
                effort_text = f"{effort.intensity:.0f} W"
            else:
                functional_threshold = round(_speed_to_pace(internal_threshold), 1)
                threshold_unit = "sec_per_km"
                effort_text = f"{_speed_to_pace(effort.intensity):.0f} s/km"
            threshold_method = (
                f"{factor:.0%} of best {effort.duration_seconds / 60:.0f}-minute {basis} effort "
                f"({effort_text}, {effort.source}) on {effort.day.isoformat()}"
            )
            zones = self.zone_distribution(recent, basis, internal_threshold, as_of)

        return ZoneAnalysis(
            activity_type=activity_type,
            functional_threshold=functional_threshold,
            threshold_unit=threshold_unit,
            threshold_method=threshold_method,
            zones=tuple(zones),
            training_balance=self.training_balance(zones),
            efficiency_trend=self.efficiency_trend(recent, as_of, basis),
            recent_decoupling=tuple(self.decoupling_events(recent, as_of)),
            confidence=self.confidence(len(recent)),
        )

    @staticmethod
    def choose_basis(workouts: list[UnifiedWorkout]) -> str | None:
        """Power when any workout reports it, otherwise pace when speed is known."""
        if any(w.power or any(s.power for s in w.splits) for w in workouts):
            return POWER
        if any(w.speed or any(s.speed for s in w.splits) for w in workouts):
            return PACE
        return None

    def best_effort(self, workouts: list[UnifiedWorkout], basis: str) -> Effort | None:
        """
        Find the highest mean intensity sustained for 15 to 60 minutes.

        Whole workouts of qualifying length count, as does any run of
        contiguous splits whose total duration qualifies.
        """
        min_seconds = self.config["min_effort_minutes"] * 60
        max_seconds = self.config["max_effort_minutes"] * 60
        best: Effort | None = None

        def consider(intensity: float | None, duration: float, day: date, source: str) -> None:
            nonlocal best
            if not intensity or not min_seconds <= duration <= max_seconds:
                return
            if best is None or intensity > best.intensity:
                best = Effort(intensity=intensity, duration_seconds=duration, day=day, source=source)

        for workout in workouts:
            consider(workout_intensity(workout, basis), workout.duration_seconds, workout.date, "whole workout")

            splits = workout.splits
            for start in range(len(splits)):
                duration = 0.0
                weighted = 0.0
                for end in range(start, len(splits)):
                    split = splits[end]
                    value = split_intensity(split, basis)
                    if value is None:
                        break
                    duration += split.duration_seconds
                    weighted += value * split.duration_seconds
                    if duration > max_seconds:
                        break
                    consider(weighted / duration, duration, workout.date, f"splits {start + 1}-{end + 1}")
        return best

    def zone_for(self, ratio: float) -> int:
        """Zone number (1-7) for an intensity expressed as a fraction of threshold."""
        for index, upper in enumerate(self.upper_bounds):
            if ratio <= upper:
                return index + 1
        return 7

    def _empty_zones(self) -> list[ZoneBucket]:
        return self._buckets([0.0] * 7)

    def _buckets(self, seconds: list[float]) -> list[ZoneBucket]:
        total = sum(seconds)
        lowers = [0.0] + self.upper_bounds
        uppers: list[float | None] = list(self.upper_bounds) + [None]
        return [
            ZoneBucket(
                number=index + 1,
                name=ZONE_NAMES[index],
                lower_pct=round(lowers[index] * 100, 1),
                upper_pct=None if uppers[index] is None else round(uppers[index] * 100, 1),
                time_in_zone_seconds=seconds[index],
                percent_of_total=seconds[index] / total * 100 if total > 0 else 0.0,
            )
            for index in range(7)
        ]

    def zone_distribution(
        self,
        workouts: list[UnifiedWorkout],
        basis: str,
        threshold: float,
        as_of: date,
    ) -> list[ZoneBucket]:
        """Bucket the recent window's classified time into the seven zones."""
        start = as_of - timedelta(days=self.config["distribution_days"] - 1)
        seconds = [0.0] * 7
        for workout in workouts:
            if workout.date < start:
                continue
            for segment in workout_segments(workout, basis):
                if segment.intensity is None:
                    continue
                zone = self.zone_for(segment.intensity / threshold)
                seconds[zone - 1] += segment.duration_seconds
        return self._buckets(seconds)

    def training_balance(self, zones: list[ZoneBucket]) -> TrainingBalance:
        """
        Compare easy/moderate/hard time against the named distribution models.

        The model with the smallest total absolute deviation is reported;
        ties resolve in the order polarized, pyramidal, threshold.
        """
        pct = [zone.percent_of_total for zone in zones]
        actual = (pct[0] + pct[1], pct[2] + pct[3], pct[4] + pct[5] + pct[6])

        best_model, best_deviation = None, None
        for model, target in MODEL_TARGETS.items():
            deviation = sum(abs(a - t) for a, t in zip(actual, target))
            if best_deviation is None or deviation < best_deviation:
                best_model, best_deviation = model, deviation

        target = MODEL_TARGETS[best_model]
        matches = best_deviation < self.config["balance_tolerance"]
        return TrainingBalance(
            model=best_model,
            actual_easy_pct=round(actual[0], 1),
            actual_moderate_pct=round(actual[1], 1),
            actual_hard_pct=round(actual[2], 1),
            target_easy_pct=target[0],
            target_moderate_pct=target[1],
            target_hard_pct=target[2],
            deviation=round(best_deviation, 1),
            matches_model=matches,
            recommendation=self._balance_recommendation(actual, target, matches, sum(pct) > 0),
        )

    @staticmethod
    def _balance_recommendation(
        actual: tuple[float, float, float],
        target: tuple[float, float, float],
        matches: bool,
        has_data: bool,
    ) -> str:
        if not has_data:
            return "Not enough recent workouts with intensity data to evaluate balance."
        if matches:
            return "Intensity distribution matches the model. Maintain current training mix."
        easy_gap, moderate_gap, hard_gap = (a - t for a, t in zip(actual, target))
        if easy_gap < -10:
            return "Too little easy volume. Build more aerobic base with easy zone 1-2 sessions."
        if moderate_gap > 10:
            return "Too much time at moderate intensity. Make easy days easier and hard days harder."
        if hard_gap > 10:
            return "High-intensity share is high. Replace one hard session with easy volume."
        return "Add 1-2 high-intensity sessions weekly to develop anaerobic capacity."

    @staticmethod
    def efficiency_factor(workout: UnifiedWorkout, basis: str) -> float | None:
        """
        Output per heartbeat on one basis: watts/bpm for power, metres per
        minute/bpm for pace. Workouts without that output have no factor.
        """
        if not workout.heart_rate:
            return None
        output = workout_intensity(workout, basis)
        if not output:
            return None
        if basis == PACE:
            output *= 60
        return output / workout.heart_rate

    def efficiency_trend(
        self,
        workouts: list[UnifiedWorkout],
        as_of: date,
        basis: str | None = None,
    ) -> Computed[EfficiencyTrend] | InsufficientData:
        """
        Mean efficiency factor of the last 30 days against the 30 days before.

        Every workout is measured on the same basis (the analysis basis, or
        the one ``choose_basis`` picks) so power and pace factors never mix.
        """
        window = self.config["efficiency"]["window_days"]
        basis = basis or self.choose_basis(workouts)
        if basis is None:
            return InsufficientData(reason="No workouts with power or pace data")

        current_start = as_of - timedelta(days=window - 1)
        previous_start = current_start - timedelta(days=window)

        current: list[float] = []
        previous: list[float] = []
        for workout in workouts:
            ef = self.efficiency_factor(workout, basis)
            if ef is None:
                continue
            if current_start <= workout.date <= as_of:
                current.append(ef)
            elif previous_start <= workout.date < current_start:
                previous.append(ef)

        if not current:
            return InsufficientData(reason=f"No workouts with heart rate and {basis} data in the last {window} days")

        current_ef = statistics.fmean(current)
        change_pct = None
        trend = TrendDirection.STABLE
        if previous:
            previous_ef = statistics.fmean(previous)
            change_pct = round((current_ef - previous_ef) / previous_ef * 100, 1)
            if change_pct > self.config["efficiency"]["change_pct"]:
                trend = TrendDirection.IMPROVING
            elif change_pct < -self.config["efficiency"]["change_pct"]:
                trend = TrendDirection.DECLINING

        interpretation = EFFICIENCY_INTERPRETATIONS[trend] if previous else EFFICIENCY_BASELINE_TEXT
        confidence = Confidence.HIGH if previous and len(current) >= 5 else Confidence.LOW
        return Computed[EfficiencyTrend](
            value=EfficiencyTrend(
                current=round(current_ef, 3),
                thirty_day_change_pct=change_pct,
                trend=trend,
                basis=basis,
                interpretation=interpretation,
            ),
            confidence=confidence,
        )

    def decoupling(self, workout: UnifiedWorkout) -> float | None:
        """
        Percent drop of second-half efficiency against first-half efficiency.

        Splits are assigned to a half by their midpoint. Returns None when the
        workout has no usable split data.
        """
        basis = POWER if any(s.power for s in workout.splits) else PACE
        usable = [
            s for s in workout.splits
            if s.heart_rate and split_intensity(s, basis) is not None
        ]
        if len(usable) < 2:
            return None

        total = sum(s.duration_seconds for s in usable)
        halves: tuple[list[EffortSplit], list[EffortSplit]] = ([], [])
        elapsed = 0.0
        for split in usable:
            midpoint = elapsed + split.duration_seconds / 2
            halves[0 if midpoint < total / 2 else 1].append(split)
            elapsed += split.duration_seconds
        if not halves[0] or not halves[1]:
            return None

        def half_ef(splits: list[EffortSplit]) -> float:
            duration = sum(s.duration_seconds for s in splits)
            output = sum(split_intensity(s, basis) * s.duration_seconds for s in splits) / duration
            heart_rate = sum(s.heart_rate * s.duration_seconds for s in splits) / duration
            return output / heart_rate

        first, second = half_ef(halves[0]), half_ef(halves[1])
        if first <= 0:
            return None
        return (first - second) / first * 100

    def decoupling_events(self, workouts: list[UnifiedWorkout], as_of: date) -> list[DecouplingRecord]:
        config = self.config["decoupling"]
        start = as_of - timedelta(days=self.config["distribution_days"] - 1)
        events: list[DecouplingRecord] = []
        for workout in workouts:
            if workout.date < start or workout.duration_seconds < config["min_duration_minutes"] * 60:
                continue
            pct = self.decoupling(workout)
            if pct is None or pct <= config["flag_pct"]:
                continue
            if pct <= config["mild_max_pct"]:
                severity = DecouplingSeverity.MILD
            elif pct <= config["moderate_max_pct"]:
                severity = DecouplingSeverity.MODERATE
            else:
                severity = DecouplingSeverity.SIGNIFICANT
            events.append(
                DecouplingRecord(
                    date=workout.date,
                    workout_reference=workout.reference,
                    decoupling_pct=round(pct, 1),
                    severity=severity,
                )
            )
        return events

    def confidence(self, workout_count: int) -> Confidence:
        config = self.config["confidence"]
        if workout_count >= config["high"]:
            return Confidence.HIGH
        if workout_count >= config["medium"]:
            return Confidence.MEDIUM
        if workout_count >= config["low"]:
            return Confidence.LOW
        return Confidence.BUILDING
