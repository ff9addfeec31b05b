"""Pytest configuration and shared fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("API_KEY", "test-api-key")

import uuid
from datetime import date, datetime, time, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.models import (
    ActivitySession,
    ActivityType,
    DayOfWeek,
    OverrideType,
    ScheduleOverride,
    WorkingSchedule,
)

UTC = timezone.utc


@pytest_asyncio.fixture
async def db() -> AsyncSession:
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def make_session():
    """Build a transient ActivitySession with sensible defaults."""

    def _make(
        start: datetime,
        end: datetime,
        user_id: str = "alice",
        tz: str = "UTC",
        activity_type: ActivityType = ActivityType.STEPS,
        **metrics,
    ) -> ActivitySession:
        return ActivitySession(
            id=uuid.uuid4(),
            user_id=user_id,
            activity_type=activity_type,
            start_time=start,
            end_time=end,
            timezone=tz,
            data_source="Health Connect",
            ingested_at=datetime.now(UTC),
            processed=False,
            is_deleted=False,
            **metrics,
        )

    return _make


@pytest.fixture
def add_schedule(db):
    async def _add(
        day_of_week: DayOfWeek = DayOfWeek.MONDAY,
        start: time = time(9, 0),
        end: time = time(17, 0),
        user_id: str = "alice",
        tz: str = "UTC",
        **kwargs,
    ) -> WorkingSchedule:
        schedule = WorkingSchedule(
            id=uuid.uuid4(),
            user_id=user_id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            timezone=tz,
            is_active=kwargs.pop("is_active", True),
            is_deleted=False,
            **kwargs,
        )
        db.add(schedule)
        await db.commit()
        return schedule

    return _add


@pytest.fixture
def add_override(db):
    async def _add(
        day: date,
        override_type: OverrideType,
        start: time = None,
        end: time = None,
        **kwargs,
    ) -> ScheduleOverride:
        override = ScheduleOverride(
            id=uuid.uuid4(),
            date=day,
            override_type=override_type,
            custom_start_time=start,
            custom_end_time=end,
            is_deleted=kwargs.pop("is_deleted", False),
            **kwargs,
        )
        db.add(override)
        await db.commit()
        return override

    return _add
