"""Daily work-hours / off-hours aggregation.

Every metric is carried as ``Optional``: ``None`` means "no data", which is
different from a measured zero, and must survive each accumulation step.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import NotFoundError, PersistenceError
from app.models import ActivitySegment, ActivityType, DailyAggregation, SegmentType
from app.resolver import WorkHoursResolver
from app.stores import AggregationStore, OverrideStore, ScheduleStore, SegmentStore, SessionStore
from app.timeutils import get_zone, iter_dates, local_date, seconds_between, utcnow

logger = logging.getLogger("worktime.aggregator")

OPTIMAL_SLEEP_MIN_HOURS = 7.0
OPTIMAL_SLEEP_MAX_HOURS = 9.0
OVERSLEEP_PENALTY_PER_HOUR = 10.0

# Widest UTC offset spread; a session ending on local `date` ends inside
# [date - 2 days, date + 2 days) in UTC.
_SLEEP_SEARCH_PAD = timedelta(days=2)


def safe_add(a, b):
    """Add two optional numbers; None only when both are None."""
    if a is None:
        return b
    if b is None:
        return a
    return a + b


@dataclass(frozen=True)
class PartitionMetrics:
    steps: Optional[int] = None
    calories: Optional[float] = None
    active_minutes: Optional[int] = None
    avg_heart_rate: Optional[float] = None


@dataclass(frozen=True)
class SleepMetrics:
    duration_seconds: Optional[float] = None
    quality_score: Optional[float] = None


def aggregate_segments(segments: Iterable[ActivitySegment]) -> PartitionMetrics:
    steps = None
    calories = None
    duration_seconds = None
    heart_rates = []

    for segment in segments:
        steps = safe_add(steps, segment.step_count)
        calories = safe_add(calories, segment.calories_burned)
        duration_seconds = safe_add(duration_seconds, segment.duration_seconds)
        if segment.average_heart_rate is not None:
            heart_rates.append(segment.average_heart_rate)

    return PartitionMetrics(
        steps=steps,
        calories=calories,
        active_minutes=int(duration_seconds // 60) if duration_seconds is not None else None,
        # Unweighted: every segment counts once regardless of its length.
        avg_heart_rate=sum(heart_rates) / len(heart_rates) if heart_rates else None,
    )


def sleep_quality_score(sleep_seconds: float) -> float:
    """Score 0-100 from total sleep: 7-9 hours is optimal."""
    if sleep_seconds <= 0:
        return 0.0

    hours = sleep_seconds / 3600.0
    if OPTIMAL_SLEEP_MIN_HOURS <= hours <= OPTIMAL_SLEEP_MAX_HOURS:
        return 100.0
    if hours < OPTIMAL_SLEEP_MIN_HOURS:
        return max(0.0, (hours / OPTIMAL_SLEEP_MIN_HOURS) * 100.0)
    excess = hours - OPTIMAL_SLEEP_MAX_HOURS
    return max(0.0, 100.0 - excess * OVERSLEEP_PENALTY_PER_HOUR)


class DailyAggregator:
    def __init__(
        self,
        db: AsyncSession,
        resolver: Optional[WorkHoursResolver] = None,
    ):
        self.db = db
        self.sessions = SessionStore(db)
        self.segments = SegmentStore(db)
        self.aggregations = AggregationStore(db)
        self.resolver = resolver or WorkHoursResolver.from_stores(
            ScheduleStore(db), OverrideStore(db)
        )

    async def sleep_metrics(self, user_id: str, day: date) -> SleepMetrics:
        """Sleep ending on ``day`` (in each session's own zone) counts for that day."""
        around = datetime.combine(day, time.min, tzinfo=timezone.utc)
        candidates = await self.sessions.fetch_by_user(
            user_id,
            activity_type=ActivityType.SLEEP_SESSION,
            ended_after=around - _SLEEP_SEARCH_PAD,
            ended_before=around + _SLEEP_SEARCH_PAD + timedelta(days=1),
        )
        nights = [
            s for s in candidates if local_date(s.end_time, get_zone(s.timezone)) == day
        ]
        if not nights:
            return SleepMetrics()

        total = sum(seconds_between(s.start_time, s.end_time) for s in nights)
        return SleepMetrics(total, sleep_quality_score(total))

    async def build_values(self, user_id: str, day: date) -> dict:
        segments = await self.segments.fetch_by_date(day, user_id=user_id)
        logger.debug("Found %d segments for user %s on %s", len(segments), user_id, day)

        work = aggregate_segments(s for s in segments if s.segment_type == SegmentType.WORK_HOURS)
        off = aggregate_segments(s for s in segments if s.segment_type == SegmentType.OFF_HOURS)
        sleep = await self.sleep_metrics(user_id, day)
        day_type = await self.resolver.classify_day(user_id, day)

        return {
            "day_type": day_type,
            "work_hours_steps": work.steps,
            "work_hours_calories": work.calories,
            "work_hours_active_minutes": work.active_minutes,
            "work_hours_avg_heart_rate": work.avg_heart_rate,
            "off_hours_steps": off.steps,
            "off_hours_calories": off.calories,
            "off_hours_active_minutes": off.active_minutes,
            "off_hours_avg_heart_rate": off.avg_heart_rate,
            "total_steps": safe_add(work.steps, off.steps),
            "total_calories": safe_add(work.calories, off.calories),
            "total_active_minutes": safe_add(work.active_minutes, off.active_minutes),
            "sleep_duration_seconds": sleep.duration_seconds,
            "sleep_quality_score": sleep.quality_score,
            "computed_at": utcnow(),
        }

    async def compute(self, user_id: str, day: date) -> DailyAggregation:
        """Compute and upsert the aggregation for (user_id, day)."""
        logger.info("Computing daily aggregation for user %s on %s", user_id, day)
        try:
            values = await self.build_values(user_id, day)
            aggregation = await self.aggregations.upsert(user_id, day, values)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Aggregation failed for user %s on %s: %s", user_id, day, e)
            raise PersistenceError(f"Could not store aggregation for {user_id} on {day}") from e

        logger.info(
            "Daily aggregation computed for %s on %s: %s steps, %s calories, day type: %s",
            user_id,
            day,
            aggregation.total_steps,
            aggregation.total_calories,
            aggregation.day_type.value,
        )
        return aggregation

    async def get(self, user_id: str, day: date) -> DailyAggregation:
        aggregation = await self.aggregations.fetch_by_user_and_date(user_id, day)
        if aggregation is None:
            raise NotFoundError("Daily aggregation", f"{user_id} on {day}")
        return aggregation

    async def get_or_compute(self, user_id: str, day: date) -> DailyAggregation:
        aggregation = await self.aggregations.fetch_by_user_and_date(user_id, day)
        if aggregation is None:
            logger.info("Daily aggregation for %s on %s not found, computing", user_id, day)
            aggregation = await self.compute(user_id, day)
        return aggregation

    async def list_range(
        self, start: date, end: date, user_id: Optional[str] = None
    ) -> List[DailyAggregation]:
        return await self.aggregations.fetch_by_date_range(start, end, user_id=user_id)

    async def recompute_range(self, user_id: str, start: date, end: date) -> int:
        """Recompute every date in [start, end]; failures are logged and skipped."""
        logger.info("Recomputing aggregations for user %s from %s to %s", user_id, start, end)

        days = list(iter_dates(start, end))
        recomputed = 0
        for day in days:
            try:
                await self.compute(user_id, day)
                recomputed += 1
            except Exception:
                logger.exception("Failed to recompute aggregation for %s on %s", user_id, day)
                await self.db.rollback()

        logger.info("Recomputed %d/%d aggregations for user %s", recomputed, len(days), user_id)
        return recomputed
