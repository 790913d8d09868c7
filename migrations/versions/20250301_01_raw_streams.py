"""Raw reading and per-source workout tables."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20250301_01"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "metric_readings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("recorded_at", sa.DateTime(), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("source", sa.String(length=50), nullable=False, server_default="device"),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("kind", "recorded_at", "source", name="uq_metric_readings_kind_time_source"),
    )
    op.create_index(
        "ix_metric_readings_kind_recorded_at",
        "metric_readings",
        ["kind", "recorded_at"],
        unique=False,
    )

    op.create_table(
        "workouts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(length=100), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("duration_seconds", sa.Float(), nullable=False),
        sa.Column("activity_type", sa.String(length=50), nullable=False, server_default="other"),
        sa.Column("distance_meters", sa.Float(), nullable=True),
        sa.Column("average_power", sa.Float(), nullable=True),
        sa.Column("average_heart_rate", sa.Float(), nullable=True),
        sa.Column("energy_kcal", sa.Float(), nullable=True),
        sa.Column("splits", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("source", "external_id", name="uq_workouts_source_external_id"),
    )
    op.create_index(
        "ix_workouts_source_start_time",
        "workouts",
        ["source", "start_time"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_workouts_source_start_time", table_name="workouts")
    op.drop_table("workouts")
    op.drop_index("ix_metric_readings_kind_recorded_at", table_name="metric_readings")
    op.drop_table("metric_readings")
