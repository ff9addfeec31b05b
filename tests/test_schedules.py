"""Tests for working-schedule and override management."""

import uuid
from datetime import date, time

import pytest

from app.errors import InvalidStateError, NotFoundError, PersistenceError
from app.models import DayOfWeek, DayType, OverrideType
from app.resolver import WorkHoursResolver
from app.schedules import ScheduleManagementService
from app.schemas import ScheduleOverrideRequest, WorkingScheduleRequest
from app.stores import OverrideStore, ScheduleStore

MONDAY = date(2026, 1, 5)


def schedule_request(**kwargs):
    fields = {
        "user_id": "alice",
        "day_of_week": DayOfWeek.MONDAY,
        "start_time": time(9, 0),
        "end_time": time(17, 0),
        "timezone": "Europe/Berlin",
    }
    fields.update(kwargs)
    return WorkingScheduleRequest(**fields)


@pytest.fixture
def service(db):
    return ScheduleManagementService(db)


@pytest.mark.unit
class TestRequests:
    def test_schedule_end_must_follow_start(self):
        with pytest.raises(ValueError):
            schedule_request(start_time=time(17, 0), end_time=time(9, 0))

    def test_schedule_effective_range_must_be_ordered(self):
        with pytest.raises(ValueError):
            schedule_request(effective_from=date(2026, 2, 1), effective_to=date(2026, 1, 1))

    def test_custom_hours_come_in_pairs(self):
        with pytest.raises(ValueError):
            ScheduleOverrideRequest(
                date=MONDAY,
                override_type=OverrideType.CUSTOM,
                custom_start_time=time(10, 0),
            )


@pytest.mark.integration
class TestWorkingSchedules:
    @pytest.mark.asyncio
    async def test_create_and_list(self, service):
        created = await service.create_schedule(schedule_request())
        await service.create_schedule(schedule_request(is_active=False, day_of_week=DayOfWeek.TUESDAY))

        schedules = await service.list_active_schedules("alice")

        assert [s.id for s in schedules] == [created.id]
        assert schedules[0].timezone == "Europe/Berlin"

    @pytest.mark.asyncio
    async def test_update(self, service):
        created = await service.create_schedule(schedule_request())

        updated = await service.update_schedule(
            created.id, schedule_request(start_time=time(8, 0), end_time=time(16, 0))
        )

        assert updated.id == created.id
        assert updated.start_time == time(8, 0)
        assert updated.end_time == time(16, 0)

    @pytest.mark.asyncio
    async def test_delete_hides_schedule(self, service):
        created = await service.create_schedule(schedule_request())

        await service.delete_schedule(created.id)

        assert await service.list_active_schedules("alice") == []
        with pytest.raises(NotFoundError):
            await service.get_schedule(created.id)

    @pytest.mark.asyncio
    async def test_unknown_schedule(self, service):
        with pytest.raises(NotFoundError):
            await service.update_schedule(uuid.uuid4(), schedule_request())


@pytest.mark.integration
class TestOverrides:
    @pytest.mark.asyncio
    async def test_create_and_list(self, service):
        await service.create_override(
            ScheduleOverrideRequest(date=MONDAY, override_type=OverrideType.HOLIDAY, reason="Bridge day")
        )
        await service.create_override(
            ScheduleOverrideRequest(date=date(2026, 2, 1), override_type=OverrideType.PTO)
        )

        overrides = await service.list_overrides(date(2026, 1, 1), date(2026, 1, 31))

        assert len(overrides) == 1
        assert overrides[0].reason == "Bridge day"

    @pytest.mark.asyncio
    async def test_duplicate_date_is_rejected(self, service):
        request = ScheduleOverrideRequest(date=MONDAY, override_type=OverrideType.HOLIDAY)
        await service.create_override(request)

        with pytest.raises(InvalidStateError):
            await service.create_override(request)

    @pytest.mark.asyncio
    async def test_unique_date_violation_is_rolled_back(
        self, service, db, add_override, monkeypatch
    ):
        await add_override(MONDAY, OverrideType.HOLIDAY)

        # Another writer created the row after our existence check.
        async def not_seen(day, include_deleted=False):
            return None

        monkeypatch.setattr(service.overrides, "fetch_by_date", not_seen)

        with pytest.raises(PersistenceError):
            await service.create_override(
                ScheduleOverrideRequest(date=MONDAY, override_type=OverrideType.PTO)
            )
        assert not db.in_transaction()

        monkeypatch.undo()
        existing = await service.overrides.fetch_by_date(MONDAY)
        assert existing.override_type == OverrideType.HOLIDAY

    @pytest.mark.asyncio
    async def test_recreate_after_delete_revives_row(self, service, db):
        first = await service.create_override(
            ScheduleOverrideRequest(date=MONDAY, override_type=OverrideType.HOLIDAY)
        )
        first_id = first.id
        await service.delete_override(first_id)

        second = await service.create_override(
            ScheduleOverrideRequest(
                date=MONDAY,
                override_type=OverrideType.CUSTOM,
                custom_start_time=time(12, 0),
                custom_end_time=time(18, 0),
            )
        )

        assert second.id == first_id
        assert second.override_type == OverrideType.CUSTOM
        resolver = WorkHoursResolver.from_stores(ScheduleStore(db), OverrideStore(db))
        assert await resolver.classify_day("alice", MONDAY) == DayType.WORKDAY

    @pytest.mark.asyncio
    async def test_deleted_override_no_longer_applies(self, service, db, add_schedule):
        await add_schedule()
        override = await service.create_override(
            ScheduleOverrideRequest(date=MONDAY, override_type=OverrideType.PTO)
        )

        await service.delete_override(override.id)

        resolver = WorkHoursResolver.from_stores(ScheduleStore(db), OverrideStore(db))
        assert await resolver.classify_day("alice", MONDAY) == DayType.WORKDAY
        with pytest.raises(NotFoundError):
            await service.delete_override(override.id)
