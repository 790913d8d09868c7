"""Import raw readings and workouts from a JSON export into the database."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import ValidationError

from training_engine.database import SessionLocal, run_migrations
from training_engine.exceptions import InvalidRangeError
from training_engine.logging_config import configure_logging
from training_engine.models.schemas import MetricReading, WorkoutRecord
from training_engine.services.record_store import save_readings, save_workouts
from training_engine.services.signal_normalizer import normalize_activity_type


logger = logging.getLogger("scripts.import_records")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import health readings and workouts from a JSON export",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
The file holds two optional lists:
  {"readings": [{"kind": "hrv", "recorded_at": "2025-03-01T06:30:00Z", "value": 58}],
   "workouts": [{"id": "a1", "source": "device", "start_time": "...", "duration_seconds": 3600,
                 "activity_type": "Run", "splits": [{"duration_seconds": 600, "speed": 3.1}]}]}

Examples:
  # Import an export, skipping records already stored
  python scripts/import_records.py export.json

  # Re-import and overwrite existing records
  python scripts/import_records.py export.json --force
        """
    )
    parser.add_argument("path", type=Path, help="JSON file to import")
    parser.add_argument("--source", type=str, default="device", help="Source name for readings (default: device)")
    parser.add_argument("--force", action="store_true", help="Overwrite existing records")
    parser.add_argument("--verbose", action="store_true", help="Show detailed output")
    return parser.parse_args()


def parse_payload(payload: dict) -> tuple[list[MetricReading], list[WorkoutRecord]]:
    """Validate export entries, skipping (and logging) malformed ones."""
    readings: list[MetricReading] = []
    for entry in payload.get("readings", []):
        try:
            readings.append(MetricReading.model_validate(entry))
        except ValidationError as e:
            logger.warning("Skipping malformed reading %s: %s", entry, e)

    workouts: list[WorkoutRecord] = []
    for entry in payload.get("workouts", []):
        entry = {**entry, "activity_type": normalize_activity_type(entry.get("activity_type"))}
        try:
            workouts.append(WorkoutRecord.model_validate(entry))
        except (ValidationError, InvalidRangeError) as e:
            logger.warning("Skipping malformed workout %s: %s", entry.get("id"), e)
    return readings, workouts


def main() -> None:
    args = parse_args()
    configure_logging("DEBUG" if args.verbose else None)

    if not args.path.exists():
        logger.error("Export file %s not found", args.path)
        sys.exit(1)

    with args.path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)

    readings, workouts = parse_payload(payload)
    logger.info("Parsed %d readings and %d workouts from %s", len(readings), len(workouts), args.path)

    run_migrations()

    db = SessionLocal()
    try:
        saved_readings, skipped_readings = save_readings(db, readings, source=args.source, force=args.force)
        saved_workouts, skipped_workouts = save_workouts(db, workouts, force=args.force)
    except Exception:
        logger.exception("Import failed")
        db.rollback()
        sys.exit(1)
    finally:
        db.close()

    logger.info(
        "Import complete | readings saved=%d skipped=%d | workouts saved=%d skipped=%d",
        saved_readings,
        skipped_readings,
        saved_workouts,
        skipped_workouts,
    )


if __name__ == "__main__":
    main()
