"""Router exposing basic system endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from sqlalchemy import func, select

from training_engine.database import SessionLocal
from training_engine.models.database_models import MetricReadingRow, WorkoutRow


logger = logging.getLogger(__name__)


router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("/status")
async def get_status() -> dict[str, str]:
    """Return a minimal status payload."""
    return {"status": "online"}


@router.get("/data-status")
async def get_data_status() -> dict:
    """
    Report how much raw data the engine has to work with.

    Returns:
        dict: {
            "readings": int,
            "workouts": {"device": int, "third_party": int},
            "last_reading": ISO timestamp or None,
            "last_workout": ISO timestamp or None
        }
    """
    db = SessionLocal()

    try:
        readings = db.scalar(select(func.count()).select_from(MetricReadingRow)) or 0
        last_reading = db.scalar(select(func.max(MetricReadingRow.recorded_at)))
        last_workout = db.scalar(select(func.max(WorkoutRow.start_time)))
        per_source = dict(
            db.execute(select(WorkoutRow.source, func.count()).group_by(WorkoutRow.source)).all()
        )

        return {
            "readings": readings,
            "workouts": {
                "device": per_source.get("device", 0),
                "third_party": per_source.get("third_party", 0),
            },
            "last_reading": last_reading.isoformat() if last_reading else None,
            "last_workout": last_workout.isoformat() if last_workout else None,
        }

    except Exception:
        logger.exception("Data status check failed")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to check data status")
    finally:
        db.close()
