"""Loading of tunable analytics thresholds from YAML."""
from __future__ import annotations

import copy
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from training_engine.config import get_settings
from training_engine.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

BUNDLED_THRESHOLDS = Path(__file__).with_name("thresholds.yaml")

DEFAULT_THRESHOLDS: dict[str, Any] = {
    "normalizer": {
        "morning_window_start_hour": 4,
        "morning_window_end_hour": 10,
    },
    "reconciliation": {
        "start_tolerance_seconds": 300,
        "duration_relative_tolerance": 0.10,
        "duration_absolute_tolerance_seconds": 120,
    },
    "stress": {
        "tss_per_hour": {
            "running": 65,
            "cycling": 75,
            "swimming": 70,
            "rowing": 70,
            "walking": 30,
            "hiking": 30,
            "strength": 50,
            "yoga": 25,
            "other": 50,
        },
    },
    "load": {
        "history_days": 120,
        "acute_days": 7,
        "chronic_days": 28,
        "acute_span": 7,
        "chronic_span": 28,
        "monotony_days": 7,
        "monotony_cap": 4.0,
        "status": {"detraining_below": 0.8, "optimal_max": 1.3, "building_max": 1.5},
        "step_load": {"enabled": False, "baseline_steps": 10000, "steps_per_point": 5000},
    },
    "injury_risk": {
        "baseline_days": 60,
        "min_baseline_values": 7,
        "current_lookback_days": 2,
        "load": {
            "max": 40,
            "high_ratio": 1.3,
            "high_ratio_slope": 60,
            "high_ratio_cap": 30,
            "low_ratio": 0.8,
            "low_ratio_slope": 25,
            "low_ratio_cap": 10,
            "weekly_increase": [
                {"above_pct": 30, "points": 10},
                {"above_pct": 20, "points": 6},
                {"above_pct": 10, "points": 2},
            ],
        },
        "recovery": {
            "max": 30,
            "hrv": {"points": 12, "full_deficit": 25},
            "resting_hr": {"points": 10, "full_deficit": 8},
            "sleep": {"points": 8, "full_deficit": 30},
        },
        "trend": {
            "max": 20,
            "window_days": 14,
            "min_streak_days": 3,
            "hrv": {"points": 8, "full_change": 20},
            "resting_hr": {"points": 7, "full_change": 6},
            "sleep": {"points": 5, "full_change": 30},
        },
        "monotony": {"max": 10, "threshold": 2.0, "full_at": 3.0},
    },
    "readiness": {
        "recent_days": 7,
        "baseline_days": 28,
        "min_baseline_values": 7,
        "recovery": {
            "hrv": {"points": 15, "full_deficit": 25},
            "resting_hr": {"points": 15, "full_deficit": 8},
            "sleep": {"points": 10, "full_deficit": 30},
        },
        "fitness": {
            "trend_points": 20,
            "trend_lookback_days": 14,
            "stable_floor_pct": -5,
            "collapse_pct": -30,
            "consistency_points": 10,
            "consistency_window_days": 14,
            "consistency_full_days": 8,
        },
        "fatigue": {"max": 30, "neutral_ratio": 1.0, "zero_ratio": 1.6},
        "trend": {"window_days": 7, "slope_per_day": 1.0},
        "confidence": {"high_days": 14, "medium_days": 7},
        "projection_days": 7,
    },
    "zones": {
        "lookback_days": 120,
        "distribution_days": 30,
        "threshold_factor": 0.95,
        "min_effort_minutes": 15,
        "max_effort_minutes": 60,
        "zone_upper_bounds": [0.55, 0.75, 0.90, 1.05, 1.20, 1.50],
        "balance_tolerance": 20,
        "efficiency": {"window_days": 30, "change_pct": 5},
        "decoupling": {
            "min_duration_minutes": 20,
            "flag_pct": 5,
            "mild_max_pct": 10,
            "moderate_max_pct": 15,
        },
        "confidence": {"high": 20, "medium": 10, "low": 5},
    },
    "fitness": {
        "min_projection_measurements": 5,
        "projection_window_days": 90,
        "year_over_year_tolerance_days": 30,
        "trend": {"improving_pct": 2, "declining_pct": -2, "rapid_decline_pct": -5},
        "confidence": {"high": 10, "medium": 5, "low": 3},
        "ceiling": {
            "male": 80,
            "female": 70,
            "decline_per_year": 0.01,
            "decline_after_age": 30,
        },
        "plateau": {"min_monthly_gain": 0.1, "realistic_fraction": 0.95},
        "balance": {
            "window_days": 30,
            "elite_vo2max": 60,
            "high_intensity_heart_rate": 160,
            "points_per_session": 10,
            "weak_below": 50,
            "balanced_within": 20,
        },
        "effectiveness": {
            "window_days": 90,
            "excellent_ratio": 0.5,
            "good_ratio": 0.2,
            "low_score_below": 50,
        },
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any] | None) -> dict[str, Any]:
    """Return a copy of ``base`` with ``override`` merged in recursively.

    Nested mappings are merged key by key; any other value (including lists)
    in ``override`` replaces the one in ``base``.
    """
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


@lru_cache()
def load_thresholds(path: str | None = None) -> dict[str, Any]:
    """
    Load analytics thresholds, falling back to the in-code defaults.

    Args:
        path: YAML file to read. Defaults to ``THRESHOLDS_PATH`` or the bundled file.

    Returns:
        Complete thresholds mapping (defaults merged with file values)

    Raises:
        ConfigurationError: If the file exists but is not a YAML mapping
    """
    if path is None:
        configured = get_settings().thresholds_path
        config_path = Path(configured) if configured else BUNDLED_THRESHOLDS
    else:
        config_path = Path(path)

    if not config_path.exists():
        logger.warning("Thresholds file %s not found - using defaults", config_path)
        return copy.deepcopy(DEFAULT_THRESHOLDS)

    with config_path.open("r", encoding="utf-8") as f:
        try:
            loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Could not parse thresholds file {config_path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Thresholds file {config_path} must contain a mapping")

    logger.debug("Loaded analytics thresholds from %s", config_path)
    return deep_merge(DEFAULT_THRESHOLDS, loaded)


def section(name: str, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return one thresholds section with optional per-call overrides applied."""
    thresholds = load_thresholds()
    if name not in thresholds:
        raise ConfigurationError(f"Unknown thresholds section '{name}'")
    return deep_merge(thresholds[name], overrides)
