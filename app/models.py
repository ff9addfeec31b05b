import enum
import uuid
from datetime import date

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    UniqueConstraint,
    Uuid,
    func,
)

from app.database import Base


class ActivityType(str, enum.Enum):
    STEPS = "STEPS"
    HEART_RATE = "HEART_RATE"
    EXERCISE_SESSION = "EXERCISE_SESSION"
    SLEEP_SESSION = "SLEEP_SESSION"
    CALORIES_BURNED = "CALORIES_BURNED"


class SegmentType(str, enum.Enum):
    WORK_HOURS = "WORK_HOURS"
    OFF_HOURS = "OFF_HOURS"


class OverrideType(str, enum.Enum):
    HOLIDAY = "HOLIDAY"
    PTO = "PTO"
    IRREGULAR_WORK = "IRREGULAR_WORK"
    CUSTOM = "CUSTOM"


class DayType(str, enum.Enum):
    WORKDAY = "WORKDAY"
    NON_WORKDAY = "NON_WORKDAY"
    HOLIDAY = "HOLIDAY"
    PTO = "PTO"
    # Reserved: no resolution path produces it yet.
    SICK_DAY = "SICK_DAY"


class DayOfWeek(str, enum.Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @classmethod
    def of(cls, day: date) -> "DayOfWeek":
        return list(cls)[day.weekday()]


def _enum_column(enum_cls, **kwargs):
    return Column(Enum(enum_cls, native_enum=False, length=32), **kwargs)


class AuditMixin:
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    is_deleted = Column(Boolean, nullable=False, default=False)

    def soft_delete(self):
        self.is_deleted = True


class ActivitySession(AuditMixin, Base):
    """Raw activity session as recorded by the wearable."""

    __tablename__ = "activity_sessions"

    user_id = Column(String, nullable=False)
    activity_type = _enum_column(ActivityType, nullable=False)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    timezone = Column(String, nullable=False)

    # Metrics - nullable, depending on activity type
    step_count = Column(Integer, nullable=True)
    calories_burned = Column(Float, nullable=True)
    average_heart_rate = Column(Integer, nullable=True)
    min_heart_rate = Column(Integer, nullable=True)
    max_heart_rate = Column(Integer, nullable=True)

    exercise_type = Column(String, nullable=True)
    exercise_title = Column(String, nullable=True)

    data_source = Column(String, nullable=False)
    external_record_id = Column(String, nullable=True, unique=True)
    ingested_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # True once the session has been split into segments
    processed = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_activity_session_user", "user_id"),
        Index("idx_activity_session_start_time", "start_time"),
        Index("idx_activity_session_end_time", "end_time"),
        Index("idx_activity_session_processed", "processed"),
    )


class ActivitySegment(AuditMixin, Base):
    """Work-hours or off-hours slice of one ActivitySession."""

    __tablename__ = "activity_segments"

    # Plain foreign key; segments never navigate or mutate their parent.
    session_id = Column(
        Uuid(as_uuid=True), ForeignKey("activity_sessions.id"), nullable=False
    )
    segment_type = _enum_column(SegmentType, nullable=False)
    activity_date = Column(Date, nullable=False)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    duration_seconds = Column(Float, nullable=False)

    # Allocated proportionally to time
    step_count = Column(Integer, nullable=True)
    calories_burned = Column(Float, nullable=True)

    # Copied from the session as-is
    average_heart_rate = Column(Integer, nullable=True)
    min_heart_rate = Column(Integer, nullable=True)
    max_heart_rate = Column(Integer, nullable=True)

    allocation_ratio = Column(Float, nullable=False)
    is_split = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_activity_segment_date", "activity_date"),
        Index("idx_activity_segment_type", "segment_type"),
        Index("idx_activity_segment_session", "session_id"),
    )


class WorkingSchedule(AuditMixin, Base):
    __tablename__ = "working_schedules"

    user_id = Column(String, nullable=False)
    day_of_week = _enum_column(DayOfWeek, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    effective_from = Column(Date, nullable=True)
    effective_to = Column(Date, nullable=True)

    __table_args__ = (
        Index("idx_working_schedule_user_day", "user_id", "day_of_week"),
    )


class ScheduleOverride(AuditMixin, Base):
    """Exception to the regular schedule. Keyed by date for all users."""

    __tablename__ = "schedule_overrides"

    date = Column(Date, nullable=False, unique=True)
    override_type = _enum_column(OverrideType, nullable=False)
    custom_start_time = Column(Time, nullable=True)
    custom_end_time = Column(Time, nullable=True)
    reason = Column(String, nullable=True)


class DailyAggregation(AuditMixin, Base):
    __tablename__ = "daily_aggregations"

    user_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    day_type = _enum_column(DayType, nullable=False)

    work_hours_steps = Column(Integer, nullable=True)
    work_hours_calories = Column(Float, nullable=True)
    work_hours_active_minutes = Column(Integer, nullable=True)
    work_hours_avg_heart_rate = Column(Float, nullable=True)

    off_hours_steps = Column(Integer, nullable=True)
    off_hours_calories = Column(Float, nullable=True)
    off_hours_active_minutes = Column(Integer, nullable=True)
    off_hours_avg_heart_rate = Column(Float, nullable=True)

    total_steps = Column(Integer, nullable=True)
    total_calories = Column(Float, nullable=True)
    total_active_minutes = Column(Integer, nullable=True)

    sleep_duration_seconds = Column(Float, nullable=True)
    sleep_quality_score = Column(Float, nullable=True)

    computed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_aggregation_user_date"),
        Index("idx_daily_agg_date", "date"),
    )
