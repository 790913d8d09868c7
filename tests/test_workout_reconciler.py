"""Tests for cross-source workout reconciliation."""
from datetime import datetime, timezone

import pytest

from training_engine.exceptions import InvalidRangeError
from training_engine.models.schemas import ActivityType, EffortSplit, SourceAttribution, SourceSystem
from training_engine.services.workout_reconciler import WorkoutReconciler

DEVICE = SourceSystem.DEVICE
THIRD = SourceSystem.THIRD_PARTY


def _at(hour: int, minute: int = 0, day: int = 10) -> datetime:
    return datetime(2025, 3, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def reconciler():
    return WorkoutReconciler(tz=timezone.utc)


class TestMatching:
    """Pairing of device and third-party records."""

    def test_same_workout_from_both_sources_is_merged(self, reconciler, make_record):
        """A 09:00 one-hour run and a 09:02 61-minute run are the same workout."""
        device = make_record("d1", DEVICE, _at(9), 3600, energy_kcal=640, average_heart_rate=148)
        third = make_record("t1", THIRD, _at(9, 2), 3660, average_power=250, energy_kcal=0)

        result = reconciler.reconcile([device], [third])

        assert len(result.workouts) == 1
        merged = result.workouts[0]
        assert merged.source_attribution == SourceAttribution.BOTH
        assert merged.device_id == "d1"
        assert merged.third_party_id == "t1"
        assert merged.duration_seconds == 3660
        assert merged.power == 250
        assert merged.heart_rate == 148
        assert merged.energy_kcal == 640
        assert result.matched[0].start_delta_seconds == 120

    def test_start_outside_tolerance_is_not_merged(self, reconciler, make_record):
        device = make_record("d1", DEVICE, _at(9), 3600)
        third = make_record("t1", THIRD, _at(9, 6), 3600)

        result = reconciler.reconcile([device], [third])

        attributions = sorted(w.source_attribution.value for w in result.workouts)
        assert attributions == ["device_only", "third_party_only"]
        assert result.matched == ()

    def test_duration_outside_tolerance_is_not_merged(self, reconciler, make_record):
        """Durations 3600s and 4000s differ by more than max(10%, 120s)."""
        device = make_record("d1", DEVICE, _at(9), 3600)
        third = make_record("t1", THIRD, _at(9), 4000)

        assert reconciler.reconcile([device], [third]).matched == ()

    def test_absolute_duration_tolerance_applies_to_short_workouts(self, reconciler, make_record):
        """A 10-minute workout may differ by two minutes."""
        device = make_record("d1", DEVICE, _at(9), 600)
        third = make_record("t1", THIRD, _at(9), 710)

        assert len(reconciler.reconcile([device], [third]).matched) == 1

    def test_incompatible_types_are_not_merged(self, reconciler, make_record):
        device = make_record("d1", DEVICE, _at(9), 3600, activity_type=ActivityType.CYCLING)
        third = make_record("t1", THIRD, _at(9), 3600, activity_type=ActivityType.RUNNING)

        assert reconciler.reconcile([device], [third]).matched == ()

    def test_other_type_matches_anything(self, reconciler, make_record):
        device = make_record("d1", DEVICE, _at(9), 3600, activity_type=ActivityType.OTHER)
        third = make_record("t1", THIRD, _at(9), 3600, activity_type=ActivityType.CYCLING)

        result = reconciler.reconcile([device], [third])

        assert result.workouts[0].activity_type == ActivityType.CYCLING

    def test_closest_start_wins_among_candidates(self, reconciler, make_record):
        device = make_record("d1", DEVICE, _at(9), 3600)
        far = make_record("t-far", THIRD, _at(9, 4), 3600)
        near = make_record("t-near", THIRD, _at(9, 1), 3600)

        result = reconciler.reconcile([device], [far, near])

        assert result.matched[0].third_party.id == "t-near"
        assert [r.id for r in result.third_party_only] == ["t-far"]

    def test_third_party_splits_preferred(self, reconciler, make_record):
        device_split = (EffortSplit(duration_seconds=3600, heart_rate=140),)
        third_split = (EffortSplit(duration_seconds=1800, power=240), EffortSplit(duration_seconds=1800, power=250))
        device = make_record("d1", DEVICE, _at(9), 3600, splits=device_split)
        third = make_record("t1", THIRD, _at(9), 3600, splits=third_split)

        merged = reconciler.reconcile([device], [third]).workouts[0]

        assert merged.splits == third_split


class TestReconciliationProperties:
    """Structural guarantees of the reconciled set."""

    @pytest.fixture
    def streams(self, make_record):
        device = [
            make_record("d1", DEVICE, _at(7), 3600),
            make_record("d2", DEVICE, _at(7, 3), 3500),
            make_record("d3", DEVICE, _at(18), 1800, activity_type=ActivityType.CYCLING),
            make_record("d4", DEVICE, _at(9, day=11), 2400),
        ]
        third = [
            make_record("t1", THIRD, _at(7, 1), 3620),
            make_record("t2", THIRD, _at(18, 2), 1850, activity_type=ActivityType.CYCLING),
            make_record("t3", THIRD, _at(12, day=11), 900, activity_type=ActivityType.SWIMMING),
        ]
        return device, third

    def test_every_record_appears_exactly_once(self, reconciler, streams):
        device, third = streams
        result = reconciler.reconcile(device, third)

        device_ids = [w.device_id for w in result.workouts if w.device_id]
        third_ids = [w.third_party_id for w in result.workouts if w.third_party_id]
        assert sorted(device_ids) == ["d1", "d2", "d3", "d4"]
        assert sorted(third_ids) == ["t1", "t2", "t3"]
        assert len(result.workouts) == len(result.matched) + len(result.device_only) + len(result.third_party_only)

    def test_matching_is_one_to_one(self, reconciler, streams):
        """Two device records near one third-party record produce one match."""
        device, third = streams
        result = reconciler.reconcile(device, third)

        paired_third = [pair.third_party.id for pair in result.matched]
        assert len(paired_third) == len(set(paired_third))
        assert {pair.device.id for pair in result.matched} == {"d1", "d3"}

    def test_input_order_does_not_matter(self, reconciler, streams):
        device, third = streams
        forward = reconciler.reconcile(device, third)
        backward = reconciler.reconcile(list(reversed(device)), list(reversed(third)))

        assert forward == backward

    def test_reconciling_recovered_streams_is_stable(self, reconciler, streams):
        device, third = streams
        first = reconciler.reconcile(device, third)
        second = reconciler.reconcile(*first.source_streams())

        assert first == second

    def test_workouts_sorted_by_start(self, reconciler, streams):
        device, third = streams
        starts = [w.start_time for w in reconciler.reconcile(device, third).workouts]

        assert starts == sorted(starts)

    def test_empty_streams(self, reconciler):
        result = reconciler.reconcile([], [])

        assert result.workouts == ()


def test_non_positive_duration_rejected(make_record):
    with pytest.raises(InvalidRangeError):
        make_record("d1", DEVICE, _at(9), 0)
