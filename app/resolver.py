"""Work-hours resolution for a user on a calendar date.

Resolution walks an ordered list of strategies. Each strategy either gives a
definitive answer for the date (work hours, or explicitly none) or returns
``None`` to let the next strategy decide.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import List, Optional, Protocol, Sequence
from zoneinfo import ZoneInfo

from app.config import settings
from app.models import DayOfWeek, DayType, OverrideType
from app.stores import OverrideStore, ScheduleStore
from app.timeutils import localize

logger = logging.getLogger("worktime.resolver")


@dataclass(frozen=True)
class WorkHoursBoundary:
    """Work hours on one date, as UTC instants."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class Resolution:
    """Definitive answer for a date.

    ``start``/``end`` are wall-clock times; both ``None`` means no work hours.
    """

    day_type: DayType
    start: Optional[time] = None
    end: Optional[time] = None
    source: str = ""

    @property
    def has_work_hours(self) -> bool:
        return self.start is not None and self.end is not None


NO_WORK_DEFAULT = Resolution(DayType.NON_WORKDAY, source="default")


class ResolutionStrategy(Protocol):
    async def resolve(self, user_id: str, day: date) -> Optional[Resolution]:
        """Definitive answer for ``day``, or None when the strategy does not apply."""
        ...


class OverrideStrategy:
    """Date overrides win over everything else."""

    name = "override"

    _DAY_TYPES = {
        OverrideType.HOLIDAY: DayType.HOLIDAY,
        OverrideType.PTO: DayType.PTO,
        OverrideType.IRREGULAR_WORK: DayType.WORKDAY,
        OverrideType.CUSTOM: DayType.WORKDAY,
    }

    def __init__(self, overrides: OverrideStore):
        self.overrides = overrides

    async def resolve(self, user_id: str, day: date) -> Optional[Resolution]:
        override = await self.overrides.fetch_by_date(day)
        if override is None:
            return None

        logger.debug("Override for %s: type=%s", day, override.override_type.value)
        day_type = self._DAY_TYPES[override.override_type]
        if override.override_type in (OverrideType.HOLIDAY, OverrideType.PTO):
            return Resolution(day_type, source=self.name)
        if override.custom_start_time is not None and override.custom_end_time is not None:
            return Resolution(
                day_type,
                override.custom_start_time,
                override.custom_end_time,
                source=self.name,
            )
        return Resolution(day_type, source=self.name)


class ScheduleStrategy:
    """Regular weekly schedule; always definitive."""

    name = "schedule"

    def __init__(self, schedules: ScheduleStore, respect_effective_window: bool = False):
        self.schedules = schedules
        self.respect_effective_window = respect_effective_window

    async def resolve(self, user_id: str, day: date) -> Optional[Resolution]:
        day_of_week = DayOfWeek.of(day)
        schedule = await self.schedules.fetch_by_user_and_day(
            user_id,
            day_of_week,
            on_date=day if self.respect_effective_window else None,
        )
        if schedule is None or not schedule.is_active:
            logger.debug("No active working schedule for user %s on %s", user_id, day_of_week.value)
            return Resolution(DayType.NON_WORKDAY, source=self.name)
        return Resolution(
            DayType.WORKDAY, schedule.start_time, schedule.end_time, source=self.name
        )


class WorkHoursResolver:
    def __init__(self, strategies: Sequence[ResolutionStrategy]):
        self.strategies: List[ResolutionStrategy] = list(strategies)

    @classmethod
    def from_stores(cls, schedules: ScheduleStore, overrides: OverrideStore) -> "WorkHoursResolver":
        return cls(
            [
                OverrideStrategy(overrides),
                ScheduleStrategy(
                    schedules,
                    respect_effective_window=settings.SCHEDULE_RESPECT_EFFECTIVE_WINDOW,
                ),
            ]
        )

    async def lookup(self, user_id: str, day: date) -> Resolution:
        for strategy in self.strategies:
            resolution = await strategy.resolve(user_id, day)
            if resolution is not None:
                return resolution
        return NO_WORK_DEFAULT

    async def resolve(
        self, user_id: str, day: date, zone: ZoneInfo
    ) -> Optional[WorkHoursBoundary]:
        """Work hours for ``user_id`` on ``day`` in ``zone``, or None."""
        resolution = await self.lookup(user_id, day)
        if not resolution.has_work_hours:
            return None

        boundary = WorkHoursBoundary(
            localize(day, resolution.start, zone),
            localize(day, resolution.end, zone),
        )
        if boundary.end <= boundary.start:
            logger.warning(
                "Discarding %s work hours for user %s on %s: end %s is not after start %s",
                resolution.source,
                user_id,
                day,
                resolution.end,
                resolution.start,
            )
            return None
        return boundary

    async def classify_day(self, user_id: str, day: date) -> DayType:
        resolution = await self.lookup(user_id, day)
        return resolution.day_type
