"""API endpoints exposing the training analytics engine."""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from training_engine.exceptions import InvalidRangeError
from training_engine.models.schemas import (
    ActivityType,
    DateRange,
    InjuryRiskAssessment,
    ReadinessScore,
    UnifiedWorkoutSet,
    ZoneAnalysis,
)
from training_engine.services.engine import TrainingAnalyticsEngine, build_engine


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def get_engine() -> TrainingAnalyticsEngine:
    """FastAPI dependency returning an engine bound to the configured database."""
    return build_engine()


def _resolve_range(
    engine: TrainingAnalyticsEngine,
    days: int,
    start_date: date | None,
    end_date: date | None,
) -> DateRange:
    if end_date is None:
        end_date = engine.today()
    if start_date is None:
        start_date = end_date - timedelta(days=days - 1)
    return DateRange(start=start_date, end=end_date)


def _bad_range(exc: InvalidRangeError) -> HTTPException:
    logger.warning("Rejected request: %s", exc)
    return HTTPException(status_code=400, detail=str(exc))


@router.get("/load")
async def get_training_load(
    days: int = Query(default=90, ge=1, le=730),
    start_date: date | None = None,
    end_date: date | None = None,
    engine: TrainingAnalyticsEngine = Depends(get_engine),
) -> list[dict[str, Any]]:
    """
    Get daily training load (rolling and EWMA ACWR, monotony, strain).

    Query parameters:
        days: Number of days to retrieve (default 90)
        start_date: Optional start date (YYYY-MM-DD)
        end_date: Optional end date (YYYY-MM-DD)

    Returns:
        One entry per known day; days without any data are omitted
    """
    try:
        date_range = _resolve_range(engine, days, start_date, end_date)
        logger.info(
            "Calculating training load | start=%s end=%s",
            date_range.start.isoformat(),
            date_range.end.isoformat(),
        )
        loads = engine.compute_load(date_range)
        return [load.model_dump(mode="json") for load in loads]
    except InvalidRangeError as exc:
        raise _bad_range(exc)
    except Exception as e:
        logger.exception("Failed to calculate training load")
        raise HTTPException(status_code=500, detail=f"Failed to calculate training load: {str(e)}")


@router.get("/injury-risk", response_model=InjuryRiskAssessment)
async def get_injury_risk(
    as_of: date | None = None,
    engine: TrainingAnalyticsEngine = Depends(get_engine),
) -> InjuryRiskAssessment:
    """Assess injury risk for a day (defaults to today)."""
    try:
        return engine.assess_injury_risk(as_of)
    except InvalidRangeError as exc:
        raise _bad_range(exc)
    except Exception as e:
        logger.exception("Failed to assess injury risk")
        raise HTTPException(status_code=500, detail=f"Failed to assess injury risk: {str(e)}")


@router.get("/readiness", response_model=ReadinessScore)
async def get_readiness(
    as_of: date | None = None,
    engine: TrainingAnalyticsEngine = Depends(get_engine),
) -> ReadinessScore:
    """Compute the readiness score for a day (defaults to today)."""
    try:
        return engine.assess_readiness(as_of)
    except InvalidRangeError as exc:
        raise _bad_range(exc)
    except Exception as e:
        logger.exception("Failed to assess readiness")
        raise HTTPException(status_code=500, detail=f"Failed to assess readiness: {str(e)}")


@router.get("/zones/{activity_type}", response_model=ZoneAnalysis)
async def get_zone_analysis(
    activity_type: ActivityType,
    as_of: date | None = None,
    engine: TrainingAnalyticsEngine = Depends(get_engine),
) -> ZoneAnalysis:
    """Threshold, zone distribution, training balance and efficiency for one activity type."""
    try:
        return engine.analyze_zones(activity_type, as_of)
    except InvalidRangeError as exc:
        raise _bad_range(exc)
    except Exception as e:
        logger.exception("Failed to analyze %s zones", activity_type.value)
        raise HTTPException(status_code=500, detail=f"Failed to analyze zones: {str(e)}")


@router.get("/fitness-trend")
async def get_fitness_trend(
    as_of: date | None = None,
    engine: TrainingAnalyticsEngine = Depends(get_engine),
) -> dict[str, Any]:
    """VO2max trend, fitness age and projection."""
    try:
        return engine.analyze_fitness_trend(as_of).model_dump(mode="json")
    except InvalidRangeError as exc:
        raise _bad_range(exc)
    except Exception as e:
        logger.exception("Failed to analyze fitness trend")
        raise HTTPException(status_code=500, detail=f"Failed to analyze fitness trend: {str(e)}")


@router.get("/workouts", response_model=UnifiedWorkoutSet)
async def get_reconciled_workouts(
    days: int = Query(default=30, ge=1, le=365),
    start_date: date | None = None,
    end_date: date | None = None,
    engine: TrainingAnalyticsEngine = Depends(get_engine),
) -> UnifiedWorkoutSet:
    """De-duplicated workouts across the device and third-party streams."""
    try:
        return engine.reconcile_workouts(_resolve_range(engine, days, start_date, end_date))
    except InvalidRangeError as exc:
        raise _bad_range(exc)
    except Exception as e:
        logger.exception("Failed to reconcile workouts")
        raise HTTPException(status_code=500, detail=f"Failed to reconcile workouts: {str(e)}")


@router.get("/report")
async def get_report(
    as_of: date | None = None,
    engine: TrainingAnalyticsEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Run every analysis component; failures are listed under ``errors``."""
    report = engine.run_analysis(as_of)
    return report.model_dump(mode="json")
