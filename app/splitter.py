"""Split raw activity sessions into work-hours and off-hours segments.

A session is cut at every local midnight it crosses and then at the work-hours
boundary of each date it touches. Additive metrics (steps, calories) are
spread over the pieces in proportion to their duration; heart-rate values are
copied to every piece since an average cannot be apportioned by time.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from app.models import ActivitySegment, ActivitySession, SegmentType
from app.resolver import WorkHoursBoundary, WorkHoursResolver
from app.stores import SegmentStore
from app.timeutils import as_utc, get_zone, local_date, seconds_between, start_of_day

logger = logging.getLogger("worktime.splitter")

# (segment type, start, end, is_split)
Piece = Tuple[SegmentType, datetime, datetime, bool]


@dataclass(frozen=True)
class DayWindow:
    day: date
    start: datetime
    end: datetime


def day_windows(start: datetime, end: datetime, zone) -> List[DayWindow]:
    """Cut [start, end) at each local midnight of ``zone``.

    Returned windows are UTC-based and contiguous. Empty windows are dropped
    unless the whole range is empty.
    """
    start = as_utc(start)
    end = as_utc(end)
    current = local_date(start, zone)
    last = local_date(end, zone)

    windows = []
    window_start = start
    while current <= last:
        if current == last:
            window_end = end
        else:
            window_end = start_of_day(current + timedelta(days=1), zone)
        windows.append(DayWindow(current, window_start, window_end))
        current += timedelta(days=1)
        window_start = window_end

    if start == end:
        return windows[:1]
    return [w for w in windows if w.end > w.start]


def classify_window(window: DayWindow, boundary: Optional[WorkHoursBoundary]) -> List[Piece]:
    """Pieces of one day window relative to that date's work hours."""
    if boundary is None:
        return [(SegmentType.OFF_HOURS, window.start, window.end, False)]

    if window.end <= boundary.start or window.start >= boundary.end:
        return [(SegmentType.OFF_HOURS, window.start, window.end, False)]

    if window.start >= boundary.start and window.end <= boundary.end:
        return [(SegmentType.WORK_HOURS, window.start, window.end, False)]

    pieces = []
    if window.start < boundary.start:
        pieces.append((SegmentType.OFF_HOURS, window.start, boundary.start, True))
    pieces.append(
        (
            SegmentType.WORK_HOURS,
            max(window.start, boundary.start),
            min(window.end, boundary.end),
            True,
        )
    )
    if window.end > boundary.end:
        pieces.append((SegmentType.OFF_HOURS, boundary.end, window.end, True))
    return pieces


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def allocate_steps(step_count: Optional[int], ratio: float) -> Optional[int]:
    if step_count is None:
        return None
    return round_half_up(step_count * ratio)


def allocate_calories(calories: Optional[float], ratio: float) -> Optional[float]:
    if calories is None:
        return None
    return calories * ratio


class SessionSplitter:
    def __init__(self, resolver: WorkHoursResolver, segments: SegmentStore):
        self.resolver = resolver
        self.segments = segments

    async def build_segments(self, session: ActivitySession) -> List[ActivitySegment]:
        """Compute the segments for ``session`` without persisting them."""
        zone = get_zone(session.timezone)
        start = as_utc(session.start_time)
        end = as_utc(session.end_time)
        total_seconds = seconds_between(start, end)

        segments = []
        for window in day_windows(start, end, zone):
            boundary = await self.resolver.resolve(session.user_id, window.day, zone)
            if boundary is not None:
                logger.debug("Work hours for %s: %s - %s", window.day, boundary.start, boundary.end)
            for segment_type, piece_start, piece_end, is_split in classify_window(window, boundary):
                segments.append(
                    self._make_segment(
                        session, window.day, segment_type, piece_start, piece_end, is_split, total_seconds
                    )
                )
        return segments

    def _make_segment(
        self,
        session: ActivitySession,
        day: date,
        segment_type: SegmentType,
        start: datetime,
        end: datetime,
        is_split: bool,
        total_seconds: float,
    ) -> ActivitySegment:
        duration = seconds_between(start, end)
        ratio = duration / total_seconds if total_seconds > 0 else 0.0

        logger.debug(
            "Creating %s segment: %s - %s (ratio: %.3f, split: %s)",
            segment_type.value,
            start,
            end,
            ratio,
            is_split,
        )
        return ActivitySegment(
            session_id=session.id,
            segment_type=segment_type,
            activity_date=day,
            start_time=start,
            end_time=end,
            duration_seconds=duration,
            step_count=allocate_steps(session.step_count, ratio),
            calories_burned=allocate_calories(session.calories_burned, ratio),
            average_heart_rate=session.average_heart_rate,
            min_heart_rate=session.min_heart_rate,
            max_heart_rate=session.max_heart_rate,
            allocation_ratio=ratio,
            is_split=is_split,
            is_deleted=False,
        )

    async def split(self, session: ActivitySession) -> List[ActivitySegment]:
        """Build and persist the segments of ``session`` as one batch.

        Only flushes; the caller commits together with the processed flag.
        """
        logger.info(
            "Splitting session %s for user %s (type: %s, %s - %s)",
            session.id,
            session.user_id,
            session.activity_type.value,
            session.start_time,
            session.end_time,
        )
        segments = await self.build_segments(session)
        saved = await self.segments.save_batch(segments)
        logger.info("Session %s split into %d segments", session.id, len(saved))
        return saved
