"""Tests for the engine facade wiring providers to analyzers."""
from datetime import datetime, timedelta, timezone

import pytest

from training_engine.models.schemas import (
    ActivityType,
    AthleteProfile,
    DateRange,
    FitnessAnalysis,
    InsufficientData,
    MetricKind,
    MetricReading,
    Sex,
    SourceAttribution,
    SourceSystem,
)
from training_engine.config import Settings
from training_engine.exceptions import ConfigurationError
from training_engine.providers import InMemoryMetricProvider, InMemoryWorkoutProvider
from training_engine.services.engine import TrainingAnalyticsEngine, stress_scorer_from_settings
from training_engine.services.signal_normalizer import SignalNormalizer
from training_engine.services.stress_scoring import DurationStressScorer, HeartRateStressScorer


@pytest.fixture
def engine(as_of, make_record, daily_series):
    """Engine over six weeks of morning metrics and near-daily runs from both sources."""
    normalizer = SignalNormalizer(tz=timezone.utc)
    samples = (
        daily_series(MetricKind.HRV, [60] * 42)
        + daily_series(MetricKind.RESTING_HR, [50] * 42)
        + daily_series(MetricKind.SLEEP, [7.5] * 42)
        + daily_series(MetricKind.VO2MAX, [48.0, 48.5, 49.0, 49.5, 50.0, 50.5], end=as_of)
    )
    device, third_party = [], []
    for offset in range(42):
        day = as_of - timedelta(days=offset)
        if day.weekday() == 0:
            continue
        start = datetime(day.year, day.month, day.day, 7, 0, tzinfo=timezone.utc)
        device.append(make_record(f"d-{offset}", SourceSystem.DEVICE, start, 3600, distance_meters=11000))
        if offset % 2 == 0:
            third_party.append(
                make_record(f"t-{offset}", SourceSystem.THIRD_PARTY, start + timedelta(minutes=1), 3590, average_power=260)
            )

    return TrainingAnalyticsEngine(
        metrics=InMemoryMetricProvider(samples),
        device_workouts=InMemoryWorkoutProvider(device, normalizer),
        third_party_workouts=InMemoryWorkoutProvider(third_party, normalizer),
        profile=AthleteProfile(age=35, sex=Sex.MALE),
        tz=timezone.utc,
        today=lambda: as_of,
    )


class TestOperations:
    """Individual engine operations."""

    def test_reconciliation(self, engine, as_of):
        result = engine.reconcile_workouts(DateRange.ending(as_of, 42))

        attributions = {w.source_attribution for w in result.workouts}
        assert attributions == {SourceAttribution.BOTH, SourceAttribution.DEVICE_ONLY}
        assert result.third_party_only == ()

    def test_compute_load(self, engine, as_of):
        loads = engine.compute_load(DateRange.ending(as_of, 28))

        assert [load.date for load in loads] == list(DateRange.ending(as_of, 28).iter_days())
        for load in loads:
            if load.date.weekday() == 0:
                assert load.training_stress_score == 0
            else:
                assert load.training_stress_score > 0

    def test_compute_load_independent_of_range(self, as_of, make_record):
        """A day reports the same load whether requested in a short or a long range."""
        normalizer = SignalNormalizer(tz=timezone.utc)
        runs = [
            make_record(
                f"run-{offset}",
                SourceSystem.DEVICE,
                datetime(2025, 3, 31, 7, tzinfo=timezone.utc) - timedelta(days=offset),
                3600,
            )
            for offset in range(60)
        ]
        engine = TrainingAnalyticsEngine(
            metrics=InMemoryMetricProvider(),
            device_workouts=InMemoryWorkoutProvider(runs, normalizer),
            third_party_workouts=InMemoryWorkoutProvider(),
            tz=timezone.utc,
        )
        day = as_of - timedelta(days=6)

        long_range = {load.date: load for load in engine.compute_load(DateRange.ending(as_of, 60))}
        short_range = {load.date: load for load in engine.compute_load(DateRange.ending(as_of, 7))}

        assert sorted(short_range) == list(DateRange.ending(as_of, 7).iter_days())
        assert short_range[day].chronic_known_days == long_range[day].chronic_known_days == 28
        assert short_range[day].rolling_chronic == pytest.approx(long_range[day].rolling_chronic)
        assert short_range[day].ewma_chronic == pytest.approx(long_range[day].ewma_chronic)
        assert short_range[day].status == long_range[day].status

    def test_compute_load_matches_snapshot(self, engine, as_of):
        loads = engine.compute_load(DateRange.ending(as_of, 7))

        snapshot_load = next(load for load in engine.snapshot(as_of).loads if load.date == as_of)
        assert loads[-1].rolling_chronic == pytest.approx(snapshot_load.rolling_chronic)
        assert loads[-1].ewma_ratio == snapshot_load.ewma_ratio

    def test_defaults_to_today(self, engine, as_of):
        assert engine.assess_readiness().as_of == as_of
        assert engine.assess_injury_risk().as_of == as_of

    def test_zone_analysis_uses_merged_power(self, engine, as_of):
        result = engine.analyze_zones(ActivityType.RUNNING, as_of)

        assert result.threshold_unit == "watts"
        assert result.functional_threshold == pytest.approx(247.0)

    def test_fitness_trend(self, engine, as_of):
        result = engine.analyze_fitness_trend(as_of)

        assert isinstance(result, FitnessAnalysis)
        assert result.current_value == 50.5
        assert result.fitness_age is not None
        assert result.effectiveness.kind == "computed"
        assert result.effectiveness.value.weekly_hours > 0

    def test_fitness_without_measurements(self, as_of):
        engine = TrainingAnalyticsEngine(
            metrics=InMemoryMetricProvider(),
            device_workouts=InMemoryWorkoutProvider(),
            third_party_workouts=InMemoryWorkoutProvider(),
            tz=timezone.utc,
        )

        assert isinstance(engine.analyze_fitness_trend(as_of), InsufficientData)

    def test_readings_provider_normalizes(self, as_of):
        readings = [
            MetricReading(kind=MetricKind.HRV, recorded_at=datetime(2025, 3, 31, 6, 0, tzinfo=timezone.utc), value=61),
            MetricReading(kind=MetricKind.HRV, recorded_at=datetime(2025, 3, 31, 21, 0, tzinfo=timezone.utc), value=40),
        ]
        provider = InMemoryMetricProvider.from_readings(readings, SignalNormalizer(tz=timezone.utc))

        samples = provider.samples(MetricKind.HRV, DateRange.ending(as_of, 1))

        assert [s.value for s in samples] == [61]


class TestRunAnalysis:
    """Full-report orchestration."""

    def test_report_contains_every_component(self, engine, as_of):
        report = engine.run_analysis(as_of)

        assert report.errors == {}
        assert report.injury_risk is not None
        assert report.readiness is not None
        assert set(report.zones) == {"running"}
        assert isinstance(report.fitness, FitnessAnalysis)
        assert len(report.load) == 28

    def test_failing_component_is_isolated(self, engine, as_of, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("readiness exploded")

        monkeypatch.setattr(engine.readiness_analyzer, "assess", broken)

        report = engine.run_analysis(as_of)

        assert report.readiness is None
        assert report.errors == {"readiness": "readiness exploded"}
        assert report.injury_risk is not None
        assert report.fitness is not None

    def test_input_failure_still_reports_fitness(self, engine, as_of, monkeypatch):
        def broken(date_range):
            raise RuntimeError("device store offline")

        monkeypatch.setattr(engine.device_workouts, "workouts", broken)

        report = engine.run_analysis(as_of)

        assert "inputs" in report.errors
        assert report.load is None
        assert isinstance(report.fitness, FitnessAnalysis)
        assert isinstance(report.fitness.effectiveness, InsufficientData)


class TestStressScorerSettings:
    """Selecting the per-workout stress model from settings."""

    def test_duration_model_by_default(self):
        assert isinstance(stress_scorer_from_settings(Settings()), DurationStressScorer)

    def test_heart_rate_model(self):
        settings = Settings(
            stress_model="heart_rate",
            athlete_threshold_hr=165,
            athlete_max_hr=190,
            athlete_resting_hr=50,
        )

        scorer = stress_scorer_from_settings(settings)

        assert isinstance(scorer, HeartRateStressScorer)
        assert (scorer.threshold_hr, scorer.max_hr, scorer.rest_hr) == (165, 190, 50)

    def test_heart_rate_model_requires_heart_rates(self):
        settings = Settings(stress_model="heart_rate", athlete_max_hr=190)

        with pytest.raises(ConfigurationError) as excinfo:
            stress_scorer_from_settings(settings)

        assert "ATHLETE_THRESHOLD_HR" in str(excinfo.value)
        assert "ATHLETE_RESTING_HR" in str(excinfo.value)

    def test_inconsistent_heart_rates_rejected(self):
        settings = Settings(
            stress_model="heart_rate",
            athlete_threshold_hr=195,
            athlete_max_hr=190,
            athlete_resting_hr=50,
        )

        with pytest.raises(ConfigurationError):
            stress_scorer_from_settings(settings)

    def test_unknown_model_rejected(self):
        with pytest.raises(ValueError):
            Settings(stress_model="power")
