"""Cross-source workout de-duplication."""
from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Any, Iterable

from training_engine import thresholds
from training_engine.models.schemas import (
    ActivityType,
    MatchedPair,
    SourceAttribution,
    SourceSystem,
    UnifiedWorkout,
    UnifiedWorkoutSet,
    WorkoutRecord,
)
from training_engine.services.signal_normalizer import SignalNormalizer


logger = logging.getLogger(__name__)


def _sort_key(record: WorkoutRecord):
    return (record.start_time, record.id)


def _prefer(third_party_value: float | None, device_value: float | None) -> float | None:
    """Third-party value wins when present and non-zero."""
    if third_party_value:
        return third_party_value
    return device_value


class WorkoutReconciler:
    """
    Merges device and third-party workout streams into one de-duplicated list.

    Two records describe the same physical workout when their starts are
    within ``start_tolerance_seconds``, their durations differ by no more
    than ``max(relative × device duration, absolute)`` and their activity
    types are compatible. Matching is greedy and one-to-one over device
    records in start order; among several candidates the closest start
    wins, then the closest duration, then the lower id.
    """

    def __init__(self, config: dict[str, Any] | None = None, tz: tzinfo | None = None):
        self.config = thresholds.section("reconciliation", config)
        self.normalizer = SignalNormalizer(tz=tz)

    def _duration_tolerance(self, device: WorkoutRecord) -> float:
        return max(
            self.config["duration_relative_tolerance"] * device.duration_seconds,
            float(self.config["duration_absolute_tolerance_seconds"]),
        )

    @staticmethod
    def types_compatible(first: ActivityType, second: ActivityType) -> bool:
        return first == second or ActivityType.OTHER in (first, second)

    def is_match(self, device: WorkoutRecord, third_party: WorkoutRecord) -> bool:
        """Return whether two records fall within every matching tolerance."""
        start_delta = abs((third_party.start_time - device.start_time).total_seconds())
        if start_delta > self.config["start_tolerance_seconds"]:
            return False
        if abs(third_party.duration_seconds - device.duration_seconds) > self._duration_tolerance(device):
            return False
        return self.types_compatible(device.activity_type, third_party.activity_type)

    def reconcile(
        self,
        device_workouts: Iterable[WorkoutRecord],
        third_party_workouts: Iterable[WorkoutRecord],
    ) -> UnifiedWorkoutSet:
        """
        Reconcile two workout streams.

        Args:
            device_workouts: Records from the wearable/health store
            third_party_workouts: Records from the third-party training service

        Returns:
            UnifiedWorkoutSet with merged workouts and the disjoint source subsets
        """
        device = sorted(device_workouts, key=_sort_key)
        third_party = sorted(third_party_workouts, key=_sort_key)
        self._check_sources(device, SourceSystem.DEVICE)
        self._check_sources(third_party, SourceSystem.THIRD_PARTY)

        available = list(third_party)
        matched: list[MatchedPair] = []
        device_only: list[WorkoutRecord] = []

        for record in device:
            candidates = [candidate for candidate in available if self.is_match(record, candidate)]
            if not candidates:
                device_only.append(record)
                continue

            candidates.sort(
                key=lambda c: (
                    abs((c.start_time - record.start_time).total_seconds()),
                    abs(c.duration_seconds - record.duration_seconds),
                    c.id,
                )
            )
            if len(candidates) > 1:
                logger.debug(
                    "Ambiguous match for device workout %s: %d candidates, chose %s",
                    record.id,
                    len(candidates),
                    candidates[0].id,
                )
            chosen = candidates[0]
            available.remove(chosen)
            matched.append(
                MatchedPair(
                    device=record,
                    third_party=chosen,
                    start_delta_seconds=(chosen.start_time - record.start_time).total_seconds(),
                )
            )

        third_party_only = available
        workouts = [self._merge(pair.device, pair.third_party) for pair in matched]
        workouts += [self._single(record, SourceAttribution.DEVICE_ONLY) for record in device_only]
        workouts += [self._single(record, SourceAttribution.THIRD_PARTY_ONLY) for record in third_party_only]
        workouts.sort(key=lambda w: (w.start_time, w.device_id or "", w.third_party_id or ""))

        logger.info(
            "Reconciled workouts | device=%d third_party=%d matched=%d",
            len(device),
            len(third_party),
            len(matched),
        )
        return UnifiedWorkoutSet(
            workouts=tuple(workouts),
            device_only=tuple(device_only),
            third_party_only=tuple(third_party_only),
            matched=tuple(matched),
        )

    @staticmethod
    def _check_sources(records: list[WorkoutRecord], expected: SourceSystem) -> None:
        for record in records:
            if record.source != expected:
                logger.warning(
                    "Workout %s reported as %s arrived on the %s stream",
                    record.id,
                    record.source.value,
                    expected.value,
                )

    def _merge(self, device: WorkoutRecord, third_party: WorkoutRecord) -> UnifiedWorkout:
        activity_type = (
            third_party.activity_type
            if third_party.activity_type != ActivityType.OTHER
            else device.activity_type
        )
        return UnifiedWorkout(
            source_attribution=SourceAttribution.BOTH,
            date=self.normalizer.local_date(device.start_time),
            start_time=device.start_time,
            activity_type=activity_type,
            duration_seconds=_prefer(third_party.duration_seconds, device.duration_seconds),
            distance_meters=_prefer(third_party.distance_meters, device.distance_meters),
            power=_prefer(third_party.average_power, device.average_power),
            heart_rate=_prefer(third_party.average_heart_rate, device.average_heart_rate),
            energy_kcal=_prefer(third_party.energy_kcal, device.energy_kcal),
            device_id=device.id,
            third_party_id=third_party.id,
            splits=third_party.splits or device.splits,
        )

    def _single(self, record: WorkoutRecord, attribution: SourceAttribution) -> UnifiedWorkout:
        return UnifiedWorkout(
            source_attribution=attribution,
            date=self.normalizer.local_date(record.start_time),
            start_time=record.start_time,
            activity_type=record.activity_type,
            duration_seconds=record.duration_seconds,
            distance_meters=record.distance_meters,
            power=record.average_power,
            heart_rate=record.average_heart_rate,
            energy_kcal=record.energy_kcal,
            device_id=record.id if attribution == SourceAttribution.DEVICE_ONLY else None,
            third_party_id=record.id if attribution == SourceAttribution.THIRD_PARTY_ONLY else None,
            splits=record.splits,
        )
