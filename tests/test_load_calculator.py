"""Tests for acute:chronic training load calculation."""
import statistics
from datetime import date, timedelta

import pytest

from training_engine.models.schemas import (
    Computed,
    Confidence,
    DateRange,
    InsufficientData,
    LoadStatus,
)
from training_engine.services.load_calculator import (
    LOAD_RECOMMENDATIONS,
    LoadCalculator,
    classify_status,
    ewma_alpha,
    load_on,
)

END = date(2025, 3, 31)


def _hundred_per_hour(workout):
    return workout.duration_seconds / 36


@pytest.fixture
def calculator():
    return LoadCalculator(stress_scorer=_hundred_per_hour)


def _days(count: int, end: date = END) -> list[date]:
    return [end - timedelta(days=offset) for offset in range(count - 1, -1, -1)]


class TestStatusBands:
    """Boundaries of the acute:chronic status bands."""

    @pytest.mark.parametrize(
        "ratio, expected",
        [
            (None, LoadStatus.DETRAINING),
            (0.79, LoadStatus.DETRAINING),
            (0.8, LoadStatus.OPTIMAL),
            (1.3, LoadStatus.OPTIMAL),
            (1.31, LoadStatus.BUILDING),
            (1.5, LoadStatus.BUILDING),
            (1.51, LoadStatus.OVERREACHING),
        ],
    )
    def test_classify_status(self, ratio, expected):
        assert classify_status(ratio) == expected

    def test_alpha(self):
        assert ewma_alpha(7) == pytest.approx(0.25)
        assert ewma_alpha(28) == pytest.approx(2 / 29)


class TestCompute:
    """Daily load series."""

    def test_constant_load_converges_to_ratio_one(self, calculator, make_workout):
        workouts = [make_workout(day) for day in _days(120)]
        loads = calculator.compute(workouts, DateRange.ending(END, 120))

        last = loads[-1]
        assert len(loads) == 120
        assert last.training_stress_score == pytest.approx(100)
        assert last.ewma_acute == pytest.approx(100)
        assert last.ewma_chronic == pytest.approx(100)
        assert last.ewma_ratio.value == pytest.approx(1.0)
        assert last.rolling_ratio.value == pytest.approx(1.0)
        assert last.status == LoadStatus.OPTIMAL
        assert last.recommendation == LOAD_RECOMMENDATIONS[LoadStatus.OPTIMAL]

    def test_first_hard_day_after_rest_leaves_detraining(self, calculator, make_workout):
        """Four weeks of recorded rest then a 100 TSS day moves the status into an elevated band."""
        days = _days(29)
        loads = calculator.compute(
            [make_workout(END)],
            DateRange.ending(END, 29),
            observed_days=days,
        )

        assert loads[-2].status == LoadStatus.DETRAINING
        assert isinstance(loads[-2].ewma_ratio, InsufficientData)
        last = loads[-1]
        assert last.rolling_acute == pytest.approx(100 / 7)
        assert last.rolling_chronic == pytest.approx(100 / 28)
        assert last.rolling_ratio.value == pytest.approx(4.0)
        assert last.ewma_ratio.value > 1.5
        assert last.status in (LoadStatus.BUILDING, LoadStatus.OVERREACHING)
        assert last.recommendation == LOAD_RECOMMENDATIONS[last.status]
        assert loads[-2].recommendation.startswith("You're well-rested")

    def test_unknown_days_produce_no_entry(self, calculator, make_workout):
        workouts = [make_workout(END - timedelta(days=3)), make_workout(END)]
        loads = calculator.compute(workouts, DateRange.ending(END, 7))

        assert [load.date for load in loads] == [END - timedelta(days=3), END]
        assert loads[-1].acute_known_days == 2

    def test_observed_days_without_workouts_are_rest(self, calculator, make_workout):
        loads = calculator.compute(
            [make_workout(END)],
            DateRange.ending(END, 3),
            observed_days=[END - timedelta(days=2), END - timedelta(days=1)],
        )

        assert [load.training_stress_score for load in loads] == [0, 0, pytest.approx(100)]

    def test_workouts_outside_range_ignored(self, calculator, make_workout):
        loads = calculator.compute([make_workout(END + timedelta(days=1))], DateRange.ending(END, 7))

        assert loads == []

    def test_ewma_ratio_insufficient_without_chronic_load(self, calculator):
        loads = calculator.compute([], DateRange.ending(END, 7), observed_days=_days(7))

        assert all(isinstance(load.ewma_ratio, InsufficientData) for load in loads)
        assert all(load.status == LoadStatus.DETRAINING for load in loads)

    def test_negative_scores_clamped(self, make_workout):
        calculator = LoadCalculator(stress_scorer=lambda workout: -20)
        loads = calculator.compute([make_workout(END)], DateRange.ending(END, 1))

        assert loads[0].training_stress_score == 0

    def test_multiple_workouts_same_day_summed(self, calculator, make_workout):
        workouts = [make_workout(END, reference="a"), make_workout(END, duration_seconds=1800, reference="b")]
        loads = calculator.compute(workouts, DateRange.ending(END, 1))

        assert loads[0].training_stress_score == pytest.approx(150)

    def test_step_load_when_enabled(self):
        calculator = LoadCalculator(
            stress_scorer=_hundred_per_hour,
            config={"step_load": {"enabled": True}},
        )
        loads = calculator.compute([], DateRange.ending(END, 1), observed_days=[END], steps={END: 20000})

        assert loads[0].training_stress_score == pytest.approx(2.0)


class TestMonotony:
    """Foster monotony and strain."""

    def test_identical_loads_capped_with_low_confidence(self, calculator, make_workout):
        workouts = [make_workout(day, duration_seconds=1800) for day in _days(7)]
        last = calculator.compute(workouts, DateRange.ending(END, 7))[-1]

        assert last.monotony == 4.0
        assert last.monotony_confidence == Confidence.LOW
        assert last.strain == pytest.approx(350 * 4.0)

    def test_varied_week(self, calculator):
        week = [100, 0, 50, 0, 100, 0, 50]
        monotony, confidence = calculator.monotony(week)

        assert monotony == pytest.approx(statistics.fmean(week) / statistics.pstdev(week))
        assert confidence == Confidence.HIGH

    def test_partial_week_is_low_confidence(self, calculator):
        _, confidence = calculator.monotony([100, 20, 60])

        assert confidence == Confidence.LOW

    def test_empty_and_zero_weeks(self, calculator):
        assert calculator.monotony([]) == (0.0, Confidence.LOW)
        assert calculator.monotony([0] * 7) == (0.0, Confidence.HIGH)


class TestHelpers:
    """Week-over-week change and lookups."""

    def test_weekly_load_change(self, calculator, make_workout):
        workouts = [make_workout(day) for day in _days(7, END - timedelta(days=7))]
        workouts += [make_workout(day, duration_seconds=4680) for day in _days(7)]
        loads = calculator.compute(workouts, DateRange.ending(END, 14))

        assert LoadCalculator.weekly_load_change(loads, END) == pytest.approx(30.0)

    def test_weekly_load_change_without_previous_week(self, calculator, make_workout):
        loads = calculator.compute([make_workout(END)], DateRange.ending(END, 14))

        assert LoadCalculator.weekly_load_change(loads, END) is None

    def test_load_on_returns_latest_entry(self, calculator, make_workout):
        loads = calculator.compute([make_workout(END - timedelta(days=2))], DateRange.ending(END, 7))

        assert load_on(loads, END).date == END - timedelta(days=2)
        assert load_on(loads, END - timedelta(days=5)) is None


def test_rolling_ratio_is_computed_type(calculator, make_workout):
    loads = calculator.compute([make_workout(END)], DateRange.ending(END, 1))

    assert isinstance(loads[0].rolling_ratio, Computed)
