import uuid
from datetime import date, datetime, time, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models import ActivityType, DayOfWeek, DayType, OverrideType, SegmentType
from app.timeutils import is_valid_zone


def _check_zone(v: str) -> str:
    if not is_valid_zone(v):
        raise ValueError(f"Unknown timezone: {v}")
    return v


def _to_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Activity sessions
# ---------------------------------------------------------------------------
class ActivitySessionRequest(BaseModel):
    user_id: str = Field(min_length=1)
    activity_type: ActivityType
    start_time: datetime
    end_time: datetime
    timezone: str

    step_count: Optional[int] = Field(default=None, gt=0)
    calories_burned: Optional[float] = Field(default=None, gt=0)
    average_heart_rate: Optional[int] = Field(default=None, gt=0)
    min_heart_rate: Optional[int] = Field(default=None, gt=0)
    max_heart_rate: Optional[int] = Field(default=None, gt=0)

    exercise_type: Optional[str] = None
    exercise_title: Optional[str] = None

    data_source: str = Field(min_length=1)
    external_record_id: Optional[str] = None

    model_config = {"extra": "ignore"}

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return _check_zone(v)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_instant(cls, v: datetime) -> datetime:
        return _to_utc(v)

    @model_validator(mode="after")
    def validate_range(self):
        if self.end_time < self.start_time:
            raise ValueError("end_time cannot be before start_time")
        return self


class ActivitySessionResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    activity_type: ActivityType
    start_time: datetime
    end_time: datetime
    timezone: str
    step_count: Optional[int] = None
    calories_burned: Optional[float] = None
    average_heart_rate: Optional[int] = None
    min_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    exercise_type: Optional[str] = None
    exercise_title: Optional[str] = None
    data_source: str
    external_record_id: Optional[str] = None
    processed: bool

    model_config = {"from_attributes": True}


class BatchIngestResponse(BaseModel):
    total_ingested: int
    sessions: List[ActivitySessionResponse]


class ReprocessResponse(BaseModel):
    sessions_reprocessed: int


class ActivitySegmentResponse(BaseModel):
    id: uuid.UUID
    session_id: uuid.UUID
    segment_type: SegmentType
    activity_date: date
    start_time: datetime
    end_time: datetime
    duration_seconds: float
    step_count: Optional[int] = None
    calories_burned: Optional[float] = None
    average_heart_rate: Optional[int] = None
    min_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    allocation_ratio: float
    is_split: bool

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------
class WorkingScheduleRequest(BaseModel):
    user_id: str = Field(min_length=1)
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    timezone: str
    is_active: bool = True
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return _check_zone(v)

    @model_validator(mode="after")
    def validate_hours(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if (
            self.effective_from is not None
            and self.effective_to is not None
            and self.effective_to < self.effective_from
        ):
            raise ValueError("effective_to cannot be before effective_from")
        return self


class WorkingScheduleResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    timezone: str
    is_active: bool
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None

    model_config = {"from_attributes": True}


class ScheduleOverrideRequest(BaseModel):
    date: date
    override_type: OverrideType
    custom_start_time: Optional[time] = None
    custom_end_time: Optional[time] = None
    reason: Optional[str] = None

    @model_validator(mode="after")
    def validate_custom_hours(self):
        if (self.custom_start_time is None) != (self.custom_end_time is None):
            raise ValueError("custom_start_time and custom_end_time must be given together")
        if self.custom_start_time is not None and self.custom_end_time <= self.custom_start_time:
            raise ValueError("custom_end_time must be after custom_start_time")
        return self


class ScheduleOverrideResponse(BaseModel):
    id: uuid.UUID
    date: date
    override_type: OverrideType
    custom_start_time: Optional[time] = None
    custom_end_time: Optional[time] = None
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------
class DailyAggregationResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    date: date
    day_type: DayType

    work_hours_steps: Optional[int] = None
    work_hours_calories: Optional[float] = None
    work_hours_active_minutes: Optional[int] = None
    work_hours_avg_heart_rate: Optional[float] = None

    off_hours_steps: Optional[int] = None
    off_hours_calories: Optional[float] = None
    off_hours_active_minutes: Optional[int] = None
    off_hours_avg_heart_rate: Optional[float] = None

    total_steps: Optional[int] = None
    total_calories: Optional[float] = None
    total_active_minutes: Optional[int] = None

    sleep_duration_seconds: Optional[float] = None
    sleep_quality_score: Optional[float] = None

    computed_at: datetime

    model_config = {"from_attributes": True}


class RecomputeRangeRequest(BaseModel):
    user_id: str = Field(min_length=1)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def validate_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class RecomputeRangeResponse(BaseModel):
    total_recomputed: int
