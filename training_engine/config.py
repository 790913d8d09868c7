"""Application configuration management."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised engine settings derived from environment variables."""

    database_url: str = Field(
        default="sqlite:///./data/training_data.db",
        description="SQLAlchemy-compatible database URL.",
    )
    app_host: str = Field(default="0.0.0.0")
    app_port: int = Field(default=8000, ge=1, le=65535)

    debug: bool = Field(default=False)

    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))

    timezone: str = Field(
        default="UTC",
        description="IANA timezone used to assign readings and workouts to local days.",
    )
    thresholds_path: Path | None = Field(
        default=None,
        description="Optional YAML file overriding the bundled analytics thresholds.",
    )

    athlete_age: int | None = Field(default=None, ge=10, le=100)
    athlete_sex: str | None = Field(default=None)

    stress_model: str = Field(
        default="duration",
        description="Per-workout stress scoring: 'duration' heuristic or 'heart_rate' (HRSS).",
    )
    athlete_max_hr: int | None = Field(default=None, ge=100, le=230)
    athlete_resting_hr: int | None = Field(default=None, ge=25, le=120)
    athlete_threshold_hr: int | None = Field(default=None, ge=80, le=220)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        valid = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        upper = value.upper()
        if upper not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(sorted(valid))}")
        return upper

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject timezone names the zoneinfo database does not know."""

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"TIMEZONE '{value}' is not a valid IANA timezone") from exc
        return value

    @field_validator("athlete_sex")
    @classmethod
    def normalize_athlete_sex(cls, value: str | None) -> str | None:
        if value is None:
            return None
        lower = value.strip().lower()
        if lower not in {"male", "female"}:
            raise ValueError("ATHLETE_SEX must be 'male' or 'female'")
        return lower

    @field_validator("stress_model")
    @classmethod
    def normalize_stress_model(cls, value: str) -> str:
        lower = value.strip().lower()
        if lower not in {"duration", "heart_rate"}:
            raise ValueError("STRESS_MODEL must be 'duration' or 'heart_rate'")
        return lower

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance so it can be reused across the app."""

    settings = Settings()
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    return settings
