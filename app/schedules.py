import logging
import uuid
from datetime import date
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import InvalidStateError, NotFoundError, PersistenceError
from app.models import ScheduleOverride, WorkingSchedule
from app.schemas import ScheduleOverrideRequest, WorkingScheduleRequest
from app.stores import OverrideStore, ScheduleStore

logger = logging.getLogger("worktime.schedules")


class ScheduleManagementService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.schedules = ScheduleStore(db)
        self.overrides = OverrideStore(db)

    async def _commit(self, action: str, store=None, entity=None):
        """Save ``entity`` through ``store`` (if given) and commit as one unit."""
        try:
            if entity is not None:
                await store.save(entity)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to %s: %s", action, e)
            raise PersistenceError(f"Database error while trying to {action}") from e

    # -----------------------------------------------------------------------
    # Working schedules
    # -----------------------------------------------------------------------
    async def create_schedule(self, payload: WorkingScheduleRequest) -> WorkingSchedule:
        logger.info(
            "Creating working schedule for user %s on %s",
            payload.user_id,
            payload.day_of_week.value,
        )
        schedule = WorkingSchedule(**payload.model_dump(), id=uuid.uuid4(), is_deleted=False)
        await self._commit("create working schedule", self.schedules, schedule)
        logger.info("Created working schedule %s", schedule.id)
        return schedule

    async def list_active_schedules(self, user_id: str) -> List[WorkingSchedule]:
        return await self.schedules.fetch_active_by_user(user_id)

    async def get_schedule(self, schedule_id: uuid.UUID) -> WorkingSchedule:
        schedule = await self.schedules.fetch_by_id(schedule_id)
        if schedule is None or schedule.is_deleted:
            raise NotFoundError("Working schedule", schedule_id)
        return schedule

    async def update_schedule(
        self, schedule_id: uuid.UUID, payload: WorkingScheduleRequest
    ) -> WorkingSchedule:
        schedule = await self.get_schedule(schedule_id)
        for field, value in payload.model_dump().items():
            setattr(schedule, field, value)
        await self._commit("update working schedule", self.schedules, schedule)
        await self.db.refresh(schedule)
        logger.info("Updated working schedule %s", schedule_id)
        return schedule

    async def delete_schedule(self, schedule_id: uuid.UUID) -> None:
        schedule = await self.get_schedule(schedule_id)
        schedule.soft_delete()
        await self._commit("delete working schedule")
        logger.info("Soft deleted working schedule %s", schedule_id)

    # -----------------------------------------------------------------------
    # Overrides
    # -----------------------------------------------------------------------
    async def create_override(self, payload: ScheduleOverrideRequest) -> ScheduleOverride:
        logger.info(
            "Creating schedule override for %s (type: %s)",
            payload.date,
            payload.override_type.value,
        )
        # Dates are unique even across soft-deleted rows, so a deleted
        # override is revived in place.
        override = await self.overrides.fetch_by_date(payload.date, include_deleted=True)
        if override is not None and not override.is_deleted:
            raise InvalidStateError(f"An override already exists for {payload.date}")
        if override is None:
            override = ScheduleOverride(id=uuid.uuid4())
        for field, value in payload.model_dump().items():
            setattr(override, field, value)
        override.is_deleted = False

        await self._commit("create schedule override", self.overrides, override)
        logger.info("Created schedule override %s", override.id)
        return override

    async def list_overrides(self, start: date, end: date) -> List[ScheduleOverride]:
        return await self.overrides.fetch_by_date_range(start, end)

    async def delete_override(self, override_id: uuid.UUID) -> None:
        override = await self.overrides.fetch_by_id(override_id)
        if override is None or override.is_deleted:
            raise NotFoundError("Schedule override", override_id)
        override.soft_delete()
        await self._commit("delete schedule override")
        logger.info("Soft deleted schedule override %s", override_id)
