"""Tests for readiness scoring."""
from datetime import timedelta

import pytest

from training_engine.models.schemas import (
    Confidence,
    DateRange,
    MetricKind,
    ReadinessTrend,
)
from training_engine.services.load_calculator import LoadCalculator
from training_engine.services.readiness import ReadinessAnalyzer
from training_engine.services.signal_normalizer import MetricHistory


@pytest.fixture
def analyzer():
    return ReadinessAnalyzer()


@pytest.fixture
def load_calculator():
    return LoadCalculator(stress_scorer=lambda workout: workout.duration_seconds / 36)


@pytest.fixture
def steady_history(daily_series):
    return MetricHistory(
        daily_series(MetricKind.HRV, [60] * 60)
        + daily_series(MetricKind.RESTING_HR, [50] * 60)
        + daily_series(MetricKind.SLEEP, [8] * 60)
    )


@pytest.fixture
def steady_loads(load_calculator, make_workout, as_of):
    workouts = [make_workout(as_of - timedelta(days=offset)) for offset in range(60)]
    return load_calculator.compute(workouts, DateRange.ending(as_of, 60))


class TestReadinessScore:
    """Composite score and its breakdown."""

    def test_no_data_is_neutral(self, analyzer, as_of):
        result = analyzer.assess(as_of, [], MetricHistory())

        assert result.breakdown.recovery_score == 8 + 8 + 5
        assert result.breakdown.fitness_score == 0
        assert result.breakdown.fatigue_score == 30
        assert result.score == 51
        assert result.trend == ReadinessTrend.MAINTAINING
        assert result.confidence == Confidence.LOW
        assert result.projected_score == 51

    def test_steady_training_is_fully_ready(self, analyzer, as_of, steady_loads, steady_history):
        result = analyzer.assess(as_of, steady_loads, steady_history)

        assert result.breakdown.recovery_score == 40
        assert result.breakdown.fitness_score == 30
        assert result.breakdown.fatigue_score == 30
        assert result.score == 100
        assert result.confidence == Confidence.HIGH
        assert result.recommendation.startswith("READY FOR QUALITY")

    def test_score_equals_breakdown_total(self, analyzer, as_of, steady_loads, daily_series):
        history = MetricHistory(
            daily_series(MetricKind.HRV, [60] * 50 + [48] * 10)
            + daily_series(MetricKind.RESTING_HR, [50] * 50 + [54] * 10)
        )

        result = analyzer.assess(as_of, steady_loads, history)
        b = result.breakdown

        assert result.score == b.recovery_score + b.fitness_score + b.fatigue_score
        assert 0 <= result.score <= 100

    def test_suppressed_hrv_lowers_recovery(self, analyzer, as_of, daily_series):
        history = MetricHistory(
            daily_series(MetricKind.HRV, [60] * 28 + [45] * 7)
            + daily_series(MetricKind.RESTING_HR, [50] * 35)
            + daily_series(MetricKind.SLEEP, [8] * 35)
        )

        points, details = analyzer.recovery_score(as_of, history)

        assert points == 0 + 15 + 10
        assert "HRV 45.0 vs baseline 60.0" in details

    def test_medium_confidence_with_ten_days(self, analyzer, as_of, load_calculator, make_workout, daily_series):
        loads = load_calculator.compute(
            [make_workout(as_of - timedelta(days=offset)) for offset in range(10)],
            DateRange.ending(as_of, 10),
        )
        history = MetricHistory(daily_series(MetricKind.HRV, [60] * 10))

        assert analyzer.confidence(as_of, loads, history) == Confidence.MEDIUM


class TestComponents:
    """Fitness and fatigue sub-scores."""

    def test_acute_spike_removes_fatigue_points(self, analyzer, as_of, load_calculator, make_workout):
        loads = load_calculator.compute(
            [make_workout(as_of)],
            DateRange.ending(as_of, 29),
            observed_days=[as_of - timedelta(days=offset) for offset in range(29)],
        )

        points, _ = analyzer.fatigue_score(as_of, loads)

        assert points == 0

    def test_collapsing_chronic_load(self, analyzer, as_of, load_calculator, make_workout):
        days = [as_of - timedelta(days=offset) for offset in range(60)]
        workouts = [make_workout(day) for day in days if (as_of - day).days >= 14]
        loads = load_calculator.compute(workouts, DateRange.ending(as_of, 60), observed_days=days)

        points, details = analyzer.fitness_score(as_of, loads)

        assert points == 0
        assert "0 training days in 14" in details

    def test_consistency_scales_with_training_days(self, analyzer, as_of, load_calculator, make_workout):
        days = [as_of - timedelta(days=offset) for offset in range(14)]
        workouts = [make_workout(day) for day in days[:4]]
        loads = load_calculator.compute(workouts, DateRange.ending(as_of, 14), observed_days=days)

        _, details = analyzer.fitness_score(as_of, loads)

        assert "4 training days in 14" in details


class TestTrend:
    """Trend classification from slope and load status."""

    def test_flat_slope_is_maintaining(self, analyzer, as_of, steady_loads):
        assert analyzer.classify_trend(0.5, as_of, steady_loads) == ReadinessTrend.MAINTAINING

    def test_rising_with_optimal_load_is_peaking(self, analyzer, as_of, steady_loads):
        assert analyzer.classify_trend(2.0, as_of, steady_loads) == ReadinessTrend.PEAKING

    def test_rising_without_load_is_recovering(self, analyzer, as_of):
        assert analyzer.classify_trend(2.0, as_of, []) == ReadinessTrend.RECOVERING

    def test_falling_while_building_is_improving(self, analyzer, as_of, load_calculator, make_workout):
        days = [as_of - timedelta(days=offset) for offset in range(28)]
        workouts = [make_workout(day, duration_seconds=1800 if (as_of - day).days > 6 else 5400) for day in days]
        loads = load_calculator.compute(workouts, DateRange.ending(as_of, 28))

        assert analyzer.classify_trend(-2.0, as_of, loads) == ReadinessTrend.IMPROVING

    def test_falling_without_load_is_declining(self, analyzer, as_of):
        assert analyzer.classify_trend(-2.0, as_of, []) == ReadinessTrend.DECLINING


@pytest.mark.parametrize(
    "score, trend, recovery, fatigue, prefix",
    [
        (30, ReadinessTrend.DECLINING, 10, 20, "RECOVERY NEEDED"),
        (45, ReadinessTrend.DECLINING, 20, 5, "HIGH FATIGUE"),
        (85, ReadinessTrend.PEAKING, 35, 30, "PRIME WINDOW"),
        (70, ReadinessTrend.MAINTAINING, 25, 25, "GOOD TO GO"),
        (60, ReadinessTrend.MAINTAINING, 25, 25, "MODERATE DAY"),
        (50, ReadinessTrend.MAINTAINING, 20, 20, "EASY DAY"),
        (42, ReadinessTrend.MAINTAINING, 20, 20, "REST OR RECOVERY"),
    ],
)
def test_recommendation_tiers(score, trend, recovery, fatigue, prefix):
    assert ReadinessAnalyzer.recommendation(score, trend, recovery, fatigue).startswith(prefix)
