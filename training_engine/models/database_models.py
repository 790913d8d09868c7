"""SQLAlchemy ORM models for raw readings and per-source workouts.

Only the raw streams are stored; every derived figure is recomputed on
request.
"""
from datetime import datetime
from sqlalchemy import Integer, DateTime, Float, String, JSON, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from training_engine.database import Base


class MetricReadingRow(Base):
    """A raw physiological reading (HRV, resting HR, sleep, steps, weight, VO2max)."""

    __tablename__ = "metric_readings"
    __table_args__ = (
        UniqueConstraint("kind", "recorded_at", "source", name="uq_metric_readings_kind_time_source"),
        Index("ix_metric_readings_kind_recorded_at", "kind", "recorded_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)  # UTC
    value: Mapped[float] = mapped_column(Float, nullable=False)  # sleep in hours
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="device")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class WorkoutRow(Base):
    """A workout exactly as reported by one source system."""

    __tablename__ = "workouts"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_workouts_source_external_id"),
        Index("ix_workouts_source_start_time", "source", "start_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # device | third_party
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)  # UTC
    duration_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False, default="other")

    distance_meters: Mapped[float | None] = mapped_column(Float, nullable=True)
    average_power: Mapped[float | None] = mapped_column(Float, nullable=True)
    average_heart_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    energy_kcal: Mapped[float | None] = mapped_column(Float, nullable=True)
    splits: Mapped[list | None] = mapped_column(JSON, nullable=True)  # [{duration_seconds, power, speed, heart_rate}]

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
