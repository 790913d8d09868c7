"""Engine facade orchestrating the analytics pipeline."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Callable, Mapping, Sequence

from training_engine.config import Settings, get_settings
from training_engine.exceptions import ConfigurationError
from training_engine.models.schemas import (
    ActivityType,
    AnalysisReport,
    AthleteProfile,
    DailyTrainingLoad,
    DateRange,
    FitnessAnalysis,
    InjuryRiskAssessment,
    InsufficientData,
    MetricKind,
    ReadinessScore,
    Sex,
    SourceSystem,
    UnifiedWorkout,
    UnifiedWorkoutSet,
    ZoneAnalysis,
)
from training_engine.providers import (
    DailyMetricProvider,
    SqlMetricProvider,
    SqlWorkoutProvider,
    WorkoutProvider,
)
from training_engine.services.fitness_trend import FitnessTrendAnalyzer, NormBracket
from training_engine.services.injury_risk import InjuryRiskCalculator
from training_engine.services.load_calculator import LoadCalculator
from training_engine.services.readiness import ReadinessAnalyzer
from training_engine.services.signal_normalizer import MetricHistory, SignalNormalizer
from training_engine.services.stress_scoring import DurationStressScorer, HeartRateStressScorer, StressScorer
from training_engine.services.training_zones import TrainingZoneAnalyzer
from training_engine.services.workout_reconciler import WorkoutReconciler


logger = logging.getLogger(__name__)

FITNESS_HISTORY_DAYS = 400


@dataclass(frozen=True)
class Snapshot:
    """Immutable inputs gathered once for an analysis day."""

    as_of: date
    workouts: UnifiedWorkoutSet
    history: MetricHistory
    loads: list[DailyTrainingLoad]


class TrainingAnalyticsEngine:
    """
    Entry point used by the API and scripts.

    Gathers the metric and workout streams from its providers, reconciles
    the workouts, and runs each analyzer on the same immutable snapshot.
    Nothing is cached between calls.
    """

    def __init__(
        self,
        metrics: DailyMetricProvider,
        device_workouts: WorkoutProvider,
        third_party_workouts: WorkoutProvider,
        stress_scorer: StressScorer | None = None,
        profile: AthleteProfile | None = None,
        reference_table: Mapping[Sex, Sequence[NormBracket]] | None = None,
        config: Mapping[str, dict[str, Any]] | None = None,
        tz: tzinfo | None = None,
        today: Callable[[], date] | None = None,
    ):
        """
        Initialize the engine.

        Args:
            metrics: Daily metric provider
            device_workouts: Device workout stream
            third_party_workouts: Third-party workout stream
            stress_scorer: Per-workout stress function for the load calculator
            profile: Athlete profile for fitness age (optional)
            reference_table: Fitness norms overriding the bundled table
            config: Per-section threshold overrides, e.g. ``{"load": {...}}``
            tz: Timezone defining local days
            today: Clock returning the default analysis day
        """
        config = config or {}
        self.metrics = metrics
        self.device_workouts = device_workouts
        self.third_party_workouts = third_party_workouts
        self.profile = profile
        self.tz = tz or get_settings().tzinfo
        self._today = today

        self.reconciler = WorkoutReconciler(config.get("reconciliation"), tz=self.tz)
        self.load_calculator = LoadCalculator(stress_scorer, config.get("load"))
        self.injury_risk_calculator = InjuryRiskCalculator(config.get("injury_risk"))
        self.readiness_analyzer = ReadinessAnalyzer(config.get("readiness"))
        self.zone_analyzer = TrainingZoneAnalyzer(config.get("zones"))
        self.fitness_analyzer = FitnessTrendAnalyzer(config.get("fitness"), reference_table)

    def today(self) -> date:
        if self._today is not None:
            return self._today()
        return datetime.now(self.tz).date()

    # Inputs

    def history(self, date_range: DateRange, kinds: Sequence[MetricKind] = tuple(MetricKind)) -> MetricHistory:
        samples = []
        for kind in kinds:
            samples.extend(self.metrics.samples(kind, date_range))
        return MetricHistory(samples)

    def reconcile_workouts(self, date_range: DateRange) -> UnifiedWorkoutSet:
        """Merge the device and third-party workout streams over the range."""
        return self.reconciler.reconcile(
            self.device_workouts.workouts(date_range),
            self.third_party_workouts.workouts(date_range),
        )

    def _loads(
        self,
        workouts: UnifiedWorkoutSet,
        history: MetricHistory,
        date_range: DateRange,
    ) -> list[DailyTrainingLoad]:
        return self.load_calculator.compute(
            workouts.workouts,
            date_range,
            observed_days=history.observed_days(),
            steps=history.series(MetricKind.STEPS),
        )

    def snapshot(self, as_of: date) -> Snapshot:
        """Gather every input needed to analyze ``as_of``."""
        date_range = DateRange.ending(as_of, self.load_calculator.config["history_days"])
        workouts = self.reconcile_workouts(date_range)
        history = self.history(date_range)
        return Snapshot(
            as_of=as_of,
            workouts=workouts,
            history=history,
            loads=self._loads(workouts, history, date_range),
        )

    # Operations

    def compute_load(self, date_range: DateRange) -> list[DailyTrainingLoad]:
        """
        Daily training load for every known day in the range.

        The windows and EWMA are warmed up over ``history_days`` before the
        range start, so a day reports the same figures whichever range it
        is requested in.
        """
        warmup = DateRange(
            start=date_range.start - timedelta(days=self.load_calculator.config["history_days"]),
            end=date_range.end,
        )
        workouts = self.reconcile_workouts(warmup)
        history = self.history(warmup)
        return [load for load in self._loads(workouts, history, warmup) if load.date in date_range]

    def assess_injury_risk(self, as_of: date | None = None, snapshot: Snapshot | None = None) -> InjuryRiskAssessment:
        snapshot = snapshot or self.snapshot(as_of or self.today())
        return self.injury_risk_calculator.assess(snapshot.as_of, snapshot.loads, snapshot.history)

    def assess_readiness(self, as_of: date | None = None, snapshot: Snapshot | None = None) -> ReadinessScore:
        snapshot = snapshot or self.snapshot(as_of or self.today())
        return self.readiness_analyzer.assess(snapshot.as_of, snapshot.loads, snapshot.history)

    def analyze_zones(self, activity_type: ActivityType, as_of: date | None = None) -> ZoneAnalysis:
        as_of = as_of or self.today()
        date_range = DateRange.ending(as_of, self.zone_analyzer.config["lookback_days"])
        workouts = self.reconcile_workouts(date_range)
        return self.zone_analyzer.analyze(activity_type, workouts.workouts, as_of)

    def analyze_fitness_trend(
        self,
        as_of: date | None = None,
        workouts: Sequence[UnifiedWorkout] | None = None,
    ) -> FitnessAnalysis | InsufficientData:
        as_of = as_of or self.today()
        date_range = DateRange.ending(as_of, FITNESS_HISTORY_DAYS)
        series = self.history(date_range, kinds=(MetricKind.VO2MAX,)).series(MetricKind.VO2MAX)
        if workouts is None:
            workouts = self.reconcile_workouts(
                DateRange.ending(as_of, self.fitness_analyzer.workout_window_days)
            ).workouts
        return self.fitness_analyzer.analyze(series, as_of, self.profile, workouts)

    def run_analysis(self, as_of: date | None = None) -> AnalysisReport:
        """
        Run every component for one day.

        Each component is invoked and caught independently, so a failure in
        one is logged and reported in ``errors`` while the others still
        produce results.
        """
        as_of = as_of or self.today()
        report = AnalysisReport(as_of=as_of)
        logger.info("Running full analysis for %s", as_of.isoformat())

        try:
            snapshot = self.snapshot(as_of)
        except Exception as exc:
            logger.exception("Failed to gather analysis inputs for %s", as_of.isoformat())
            report.errors["inputs"] = str(exc)
            snapshot = None

        if snapshot is not None:
            report.reconciliation = snapshot.workouts
            load_start = as_of - timedelta(days=27)
            report.load = [load for load in snapshot.loads if load.date >= load_start]
            report.injury_risk = self._guard(report, "injury_risk", self.assess_injury_risk, snapshot=snapshot)
            report.readiness = self._guard(report, "readiness", self.assess_readiness, snapshot=snapshot)

            activity_types = sorted({w.activity_type for w in snapshot.workouts.workouts}, key=lambda t: t.value)
            for activity_type in activity_types:
                analysis = self._guard(
                    report,
                    f"zones.{activity_type.value}",
                    self.zone_analyzer.analyze,
                    activity_type,
                    snapshot.workouts.workouts,
                    as_of,
                )
                if analysis is not None:
                    report.zones[activity_type.value] = analysis

        # Without inputs the fitness series is still analyzed, minus the workout-based parts.
        workouts = snapshot.workouts.workouts if snapshot is not None else ()
        report.fitness = self._guard(report, "fitness", self.analyze_fitness_trend, as_of, workouts)

        logger.info(
            "Analysis for %s finished | components_failed=%d",
            as_of.isoformat(),
            len(report.errors),
        )
        return report

    @staticmethod
    def _guard(report: AnalysisReport, name: str, func: Callable, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            logger.exception("Analysis component %s failed", name)
            report.errors[name] = str(exc)
            return None


def build_engine(session_factory: Callable | None = None) -> TrainingAnalyticsEngine:
    """Build an engine reading from the configured database."""
    if session_factory is None:
        from training_engine.database import SessionLocal

        session_factory = SessionLocal

    settings = get_settings()
    normalizer = SignalNormalizer(tz=settings.tzinfo)
    profile = None
    if settings.athlete_age is not None and settings.athlete_sex is not None:
        profile = AthleteProfile(age=settings.athlete_age, sex=Sex(settings.athlete_sex))

    return TrainingAnalyticsEngine(
        metrics=SqlMetricProvider(session_factory, normalizer),
        device_workouts=SqlWorkoutProvider(SourceSystem.DEVICE, session_factory, normalizer),
        third_party_workouts=SqlWorkoutProvider(SourceSystem.THIRD_PARTY, session_factory, normalizer),
        stress_scorer=stress_scorer_from_settings(settings),
        profile=profile,
        tz=settings.tzinfo,
    )


def stress_scorer_from_settings(settings: Settings) -> StressScorer:
    """
    Build the configured per-workout stress scorer.

    Raises:
        ConfigurationError: If the heart-rate model is selected without the athlete's heart rates
    """
    if settings.stress_model != "heart_rate":
        return DurationStressScorer()

    heart_rates = {
        "ATHLETE_THRESHOLD_HR": settings.athlete_threshold_hr,
        "ATHLETE_MAX_HR": settings.athlete_max_hr,
        "ATHLETE_RESTING_HR": settings.athlete_resting_hr,
    }
    missing = [name for name, value in heart_rates.items() if value is None]
    if missing:
        raise ConfigurationError(f"STRESS_MODEL=heart_rate requires {', '.join(missing)}")

    try:
        scorer = HeartRateStressScorer(
            threshold_hr=settings.athlete_threshold_hr,
            max_hr=settings.athlete_max_hr,
            rest_hr=settings.athlete_resting_hr,
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    logger.info(
        "Using heart-rate stress scoring | threshold=%d max=%d rest=%d",
        scorer.threshold_hr,
        scorer.max_hr,
        scorer.rest_hr,
    )
    return scorer
