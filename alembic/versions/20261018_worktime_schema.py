"""Create activity, schedule, segment and daily aggregation tables

Revision ID: 20261018_worktime_schema
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_worktime_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns():
    return [
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
    ]


def upgrade() -> None:
    op.create_table(
        "activity_sessions",
        *_audit_columns(),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("activity_type", sa.String(32), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("step_count", sa.Integer(), nullable=True),
        sa.Column("calories_burned", sa.Float(), nullable=True),
        sa.Column("average_heart_rate", sa.Integer(), nullable=True),
        sa.Column("min_heart_rate", sa.Integer(), nullable=True),
        sa.Column("max_heart_rate", sa.Integer(), nullable=True),
        sa.Column("exercise_type", sa.String(), nullable=True),
        sa.Column("exercise_title", sa.String(), nullable=True),
        sa.Column("data_source", sa.String(), nullable=False),
        sa.Column("external_record_id", sa.String(), nullable=True, unique=True),
        sa.Column("ingested_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("idx_activity_session_user", "activity_sessions", ["user_id"])
    op.create_index("idx_activity_session_start_time", "activity_sessions", ["start_time"])
    op.create_index("idx_activity_session_end_time", "activity_sessions", ["end_time"])
    op.create_index("idx_activity_session_processed", "activity_sessions", ["processed"])

    op.create_table(
        "activity_segments",
        *_audit_columns(),
        sa.Column("session_id", sa.Uuid(), sa.ForeignKey("activity_sessions.id"), nullable=False),
        sa.Column("segment_type", sa.String(32), nullable=False),
        sa.Column("activity_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_seconds", sa.Float(), nullable=False),
        sa.Column("step_count", sa.Integer(), nullable=True),
        sa.Column("calories_burned", sa.Float(), nullable=True),
        sa.Column("average_heart_rate", sa.Integer(), nullable=True),
        sa.Column("min_heart_rate", sa.Integer(), nullable=True),
        sa.Column("max_heart_rate", sa.Integer(), nullable=True),
        sa.Column("allocation_ratio", sa.Float(), nullable=False),
        sa.Column("is_split", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("idx_activity_segment_date", "activity_segments", ["activity_date"])
    op.create_index("idx_activity_segment_type", "activity_segments", ["segment_type"])
    op.create_index("idx_activity_segment_session", "activity_segments", ["session_id"])

    op.create_table(
        "working_schedules",
        *_audit_columns(),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("day_of_week", sa.String(32), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("effective_from", sa.Date(), nullable=True),
        sa.Column("effective_to", sa.Date(), nullable=True),
    )
    op.create_index(
        "idx_working_schedule_user_day", "working_schedules", ["user_id", "day_of_week"]
    )

    op.create_table(
        "schedule_overrides",
        *_audit_columns(),
        sa.Column("date", sa.Date(), nullable=False, unique=True),
        sa.Column("override_type", sa.String(32), nullable=False),
        sa.Column("custom_start_time", sa.Time(), nullable=True),
        sa.Column("custom_end_time", sa.Time(), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
    )

    op.create_table(
        "daily_aggregations",
        *_audit_columns(),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("day_type", sa.String(32), nullable=False),
        sa.Column("work_hours_steps", sa.Integer(), nullable=True),
        sa.Column("work_hours_calories", sa.Float(), nullable=True),
        sa.Column("work_hours_active_minutes", sa.Integer(), nullable=True),
        sa.Column("work_hours_avg_heart_rate", sa.Float(), nullable=True),
        sa.Column("off_hours_steps", sa.Integer(), nullable=True),
        sa.Column("off_hours_calories", sa.Float(), nullable=True),
        sa.Column("off_hours_active_minutes", sa.Integer(), nullable=True),
        sa.Column("off_hours_avg_heart_rate", sa.Float(), nullable=True),
        sa.Column("total_steps", sa.Integer(), nullable=True),
        sa.Column("total_calories", sa.Float(), nullable=True),
        sa.Column("total_active_minutes", sa.Integer(), nullable=True),
        sa.Column("sleep_duration_seconds", sa.Float(), nullable=True),
        sa.Column("sleep_quality_score", sa.Float(), nullable=True),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_aggregation_user_date"),
    )
    op.create_index("idx_daily_agg_date", "daily_aggregations", ["date"])


def downgrade() -> None:
    op.drop_table("daily_aggregations")
    op.drop_table("schedule_overrides")
    op.drop_table("working_schedules")
    op.drop_table("activity_segments")
    op.drop_table("activity_sessions")
