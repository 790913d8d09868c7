"""Tests for the JSON export importer."""
from scripts.import_records import parse_payload

from training_engine.models.schemas import ActivityType, MetricKind


def test_parse_payload_skips_malformed_entries():
    payload = {
        "readings": [
            {"kind": "hrv", "recorded_at": "2025-03-01T06:30:00Z", "value": 58},
            {"kind": "mood", "recorded_at": "2025-03-01T06:30:00Z", "value": 3},
        ],
        "workouts": [
            {
                "id": "a1",
                "source": "third_party",
                "start_time": "2025-03-01T09:00:00Z",
                "duration_seconds": 3600,
                "activity_type": "VirtualRide",
                "splits": [{"duration_seconds": 1800, "power": 210}],
            },
            {"id": "a2", "source": "device", "start_time": "2025-03-01T09:00:00Z", "duration_seconds": 0},
        ],
    }

    readings, workouts = parse_payload(payload)

    assert [r.kind for r in readings] == [MetricKind.HRV]
    assert [w.id for w in workouts] == ["a1"]
    assert workouts[0].activity_type == ActivityType.CYCLING
    assert workouts[0].splits[0].power == 210


def test_parse_payload_empty():
    assert parse_payload({}) == ([], [])
