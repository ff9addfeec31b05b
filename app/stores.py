"""Data-access stores used by the segmentation engine.

Each store wraps an ``AsyncSession`` and only flushes; committing or rolling
back is left to the service that owns the unit of work.
"""

import uuid
from datetime import date, datetime
from typing import Iterable, List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    ActivitySegment,
    ActivitySession,
    ActivityType,
    DailyAggregation,
    DayOfWeek,
    ScheduleOverride,
    SegmentType,
    WorkingSchedule,
)


class SessionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_by_id(self, session_id: uuid.UUID) -> Optional[ActivitySession]:
        return await self.db.get(ActivitySession, session_id, populate_existing=True)

    async def fetch_by_user(
        self,
        user_id: str,
        activity_type: Optional[ActivityType] = None,
        ended_after: Optional[datetime] = None,
        ended_before: Optional[datetime] = None,
    ) -> List[ActivitySession]:
        stmt = select(ActivitySession).where(
            ActivitySession.user_id == user_id,
            ActivitySession.is_deleted.is_(False),
        )
        if activity_type is not None:
            stmt = stmt.where(ActivitySession.activity_type == activity_type)
        if ended_after is not None:
            stmt = stmt.where(ActivitySession.end_time >= ended_after)
        if ended_before is not None:
            stmt = stmt.where(ActivitySession.end_time < ended_before)
        result = await self.db.execute(stmt.order_by(ActivitySession.start_time))
        return list(result.scalars().all())

    async def fetch_by_user_and_start_range(
        self, user_id: str, start: datetime, end: datetime
    ) -> List[ActivitySession]:
        stmt = (
            select(ActivitySession)
            .where(
                ActivitySession.user_id == user_id,
                ActivitySession.is_deleted.is_(False),
                ActivitySession.start_time >= start,
                ActivitySession.start_time <= end,
            )
            .order_by(ActivitySession.start_time)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def fetch_unprocessed(self, user_id: Optional[str] = None) -> List[ActivitySession]:
        stmt = select(ActivitySession).where(
            ActivitySession.processed.is_(False),
            ActivitySession.is_deleted.is_(False),
        )
        if user_id is not None:
            stmt = stmt.where(ActivitySession.user_id == user_id)
        result = await self.db.execute(stmt.order_by(ActivitySession.start_time))
        return list(result.scalars().all())

    async def fetch_by_external_record_id(self, record_id: str) -> Optional[ActivitySession]:
        result = await self.db.execute(
            select(ActivitySession).where(ActivitySession.external_record_id == record_id)
        )
        return result.scalars().first()

    async def save(self, session: ActivitySession) -> ActivitySession:
        self.db.add(session)
        await self.db.flush()
        return session


class ScheduleStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_by_id(self, schedule_id: uuid.UUID) -> Optional[WorkingSchedule]:
        return await self.db.get(WorkingSchedule, schedule_id, populate_existing=True)

    async def fetch_active_by_user(self, user_id: str) -> List[WorkingSchedule]:
        stmt = (
            select(WorkingSchedule)
            .where(
                WorkingSchedule.user_id == user_id,
                WorkingSchedule.is_active.is_(True),
                WorkingSchedule.is_deleted.is_(False),
            )
            .order_by(WorkingSchedule.day_of_week, WorkingSchedule.start_time)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def fetch_by_user_and_day(
        self,
        user_id: str,
        day_of_week: DayOfWeek,
        on_date: Optional[date] = None,
    ) -> Optional[WorkingSchedule]:
        """Schedule for a weekday, active rows first, newest first.

        ``on_date`` restricts the lookup to schedules whose effective window
        covers that date; without it the bounds are ignored.
        """
        stmt = select(WorkingSchedule).where(
            WorkingSchedule.user_id == user_id,
            WorkingSchedule.day_of_week == day_of_week,
            WorkingSchedule.is_deleted.is_(False),
        )
        if on_date is not None:
            stmt = stmt.where(
                or_(WorkingSchedule.effective_from.is_(None), WorkingSchedule.effective_from <= on_date),
                or_(WorkingSchedule.effective_to.is_(None), WorkingSchedule.effective_to >= on_date),
            )
        stmt = stmt.order_by(
            WorkingSchedule.is_active.desc(), WorkingSchedule.updated_at.desc()
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def save(self, schedule: WorkingSchedule) -> WorkingSchedule:
        self.db.add(schedule)
        await self.db.flush()
        return schedule


class OverrideStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_by_id(self, override_id: uuid.UUID) -> Optional[ScheduleOverride]:
        return await self.db.get(ScheduleOverride, override_id, populate_existing=True)

    async def fetch_by_date(
        self, day: date, include_deleted: bool = False
    ) -> Optional[ScheduleOverride]:
        stmt = select(ScheduleOverride).where(ScheduleOverride.date == day)
        if not include_deleted:
            stmt = stmt.where(ScheduleOverride.is_deleted.is_(False))
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def fetch_by_date_range(self, start: date, end: date) -> List[ScheduleOverride]:
        stmt = (
            select(ScheduleOverride)
            .where(
                ScheduleOverride.date >= start,
                ScheduleOverride.date <= end,
                ScheduleOverride.is_deleted.is_(False),
            )
            .order_by(ScheduleOverride.date)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def save(self, override: ScheduleOverride) -> ScheduleOverride:
        self.db.add(override)
        await self.db.flush()
        return override


class SegmentStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _live(self, stmt):
        # Segments of soft-deleted sessions no longer count.
        return stmt.join(
            ActivitySession, ActivitySegment.session_id == ActivitySession.id
        ).where(
            ActivitySegment.is_deleted.is_(False),
            ActivitySession.is_deleted.is_(False),
        )

    async def fetch_by_date(
        self, day: date, user_id: Optional[str] = None
    ) -> List[ActivitySegment]:
        stmt = self._live(select(ActivitySegment)).where(ActivitySegment.activity_date == day)
        if user_id is not None:
            stmt = stmt.where(ActivitySession.user_id == user_id)
        result = await self.db.execute(stmt.order_by(ActivitySegment.start_time))
        return list(result.scalars().all())

    async def fetch_by_date_and_type(
        self, day: date, segment_type: SegmentType
    ) -> List[ActivitySegment]:
        stmt = self._live(select(ActivitySegment)).where(
            and_(
                ActivitySegment.activity_date == day,
                ActivitySegment.segment_type == segment_type,
            )
        )
        result = await self.db.execute(stmt.order_by(ActivitySegment.start_time))
        return list(result.scalars().all())

    async def fetch_by_session(self, session_id: uuid.UUID) -> List[ActivitySegment]:
        stmt = (
            select(ActivitySegment)
            .where(
                ActivitySegment.session_id == session_id,
                ActivitySegment.is_deleted.is_(False),
            )
            .order_by(ActivitySegment.start_time)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def save_batch(self, segments: Iterable[ActivitySegment]) -> List[ActivitySegment]:
        segments = list(segments)
        self.db.add_all(segments)
        await self.db.flush()
        return segments


class AggregationStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_by_user_and_date(self, user_id: str, day: date) -> Optional[DailyAggregation]:
        stmt = (
            select(DailyAggregation)
            .where(DailyAggregation.user_id == user_id, DailyAggregation.date == day)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def fetch_by_date_range(
        self, start: date, end: date, user_id: Optional[str] = None
    ) -> List[DailyAggregation]:
        stmt = select(DailyAggregation).where(
            DailyAggregation.date >= start,
            DailyAggregation.date <= end,
            DailyAggregation.is_deleted.is_(False),
        )
        if user_id is not None:
            stmt = stmt.where(DailyAggregation.user_id == user_id)
        result = await self.db.execute(stmt.order_by(DailyAggregation.date.desc()))
        return list(result.scalars().all())

    def _insert(self):
        if self.db.get_bind().dialect.name == "postgresql":
            return postgresql.insert
        return sqlite.insert

    async def upsert(self, user_id: str, day: date, values: dict) -> DailyAggregation:
        """Insert or overwrite the row for (user_id, day), keeping its id."""
        stmt = self._insert()(DailyAggregation).values(
            id=uuid.uuid4(), user_id=user_id, date=day, **values
        )
        update = {key: stmt.excluded[key] for key in values}
        update["updated_at"] = func.now()
        update["is_deleted"] = False
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "date"],
            set_=update,
        )
        await self.db.execute(stmt)
        return await self.fetch_by_user_and_date(user_id, day)
