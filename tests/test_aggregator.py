"""Tests for daily aggregation and sleep attribution."""

import uuid
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from app.aggregator import (
    DailyAggregator,
    PartitionMetrics,
    aggregate_segments,
    safe_add,
    sleep_quality_score,
)
from app.errors import NotFoundError
from app.ingestion import ActivityIngestionService
from app.models import ActivitySession, ActivityType, DailyAggregation, DayType, OverrideType
from app.schemas import ActivitySessionRequest

UTC = timezone.utc
MONDAY = date(2026, 1, 5)
HOUR = 3600.0


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def seg(duration_seconds, steps=None, calories=None, heart_rate=None):
    return SimpleNamespace(
        duration_seconds=duration_seconds,
        step_count=steps,
        calories_burned=calories,
        average_heart_rate=heart_rate,
    )


def request(start, end, activity_type=ActivityType.STEPS, tz="UTC", **metrics):
    return ActivitySessionRequest(
        user_id="alice",
        activity_type=activity_type,
        start_time=start,
        end_time=end,
        timezone=tz,
        data_source="Health Connect",
        **metrics,
    )


async def add_sleep(db, start, end, tz):
    db.add(
        ActivitySession(
            id=uuid.uuid4(),
            user_id="alice",
            activity_type=ActivityType.SLEEP_SESSION,
            start_time=start,
            end_time=end,
            timezone=tz,
            data_source="Health Connect",
            ingested_at=utc(2026, 1, 6),
            processed=True,
            is_deleted=False,
        )
    )
    await db.commit()


@pytest.mark.unit
class TestSafeAdd:
    def test_none_only_when_both_none(self):
        assert safe_add(None, None) is None
        assert safe_add(100, None) == 100
        assert safe_add(None, 5.5) == 5.5
        assert safe_add(3, 4) == 7

    def test_measured_zero_is_kept(self):
        assert safe_add(0, None) == 0
        assert safe_add(None, 0.0) == 0.0


@pytest.mark.unit
class TestAggregateSegments:
    def test_empty_partition_is_all_none(self):
        assert aggregate_segments([]) == PartitionMetrics()

    def test_missing_values_do_not_erase_known_ones(self):
        metrics = aggregate_segments([seg(600, steps=100), seg(600, steps=None)])
        assert metrics.steps == 100
        assert metrics.calories is None
        assert metrics.avg_heart_rate is None

    def test_heart_rate_is_unweighted_mean(self):
        metrics = aggregate_segments(
            [seg(8 * HOUR, heart_rate=100), seg(HOUR, heart_rate=140), seg(HOUR)]
        )
        assert metrics.avg_heart_rate == 120.0

    def test_active_minutes_are_floored(self):
        metrics = aggregate_segments([seg(59), seg(60.5)])
        assert metrics.active_minutes == 1

    def test_zero_duration_gives_zero_minutes(self):
        assert aggregate_segments([seg(0.0)]).active_minutes == 0


@pytest.mark.unit
class TestSleepQualityScore:
    @pytest.mark.parametrize(
        "hours, expected",
        [
            (0, 0.0),
            (3.5, 50.0),
            (7, 100.0),
            (8, 100.0),
            (9, 100.0),
            (11, 80.0),
            (25, 0.0),
        ],
    )
    def test_score(self, hours, expected):
        assert sleep_quality_score(hours * HOUR) == pytest.approx(expected)

    def test_score_stays_in_range(self):
        for hours in range(0, 30):
            assert 0.0 <= sleep_quality_score(hours * HOUR) <= 100.0


@pytest.mark.integration
class TestCompute:
    @pytest.mark.asyncio
    async def test_workday_with_overlapping_sessions(self, db, add_schedule):
        await add_schedule()
        ingestion = ActivityIngestionService(db)
        await ingestion.ingest_session(
            request(
                utc(2026, 1, 5, 7),
                utc(2026, 1, 5, 19),
                step_count=1200,
                calories_burned=600.0,
                average_heart_rate=100,
            )
        )
        await ingestion.ingest_session(
            request(
                utc(2026, 1, 5, 12),
                utc(2026, 1, 5, 13),
                activity_type=ActivityType.EXERCISE_SESSION,
                calories_burned=300.0,
                average_heart_rate=140,
            )
        )

        result = await DailyAggregator(db).compute("alice", MONDAY)

        assert result.day_type == DayType.WORKDAY
        assert result.work_hours_steps == 800
        assert result.work_hours_calories == pytest.approx(700.0)
        assert result.work_hours_active_minutes == 540
        assert result.work_hours_avg_heart_rate == pytest.approx(120.0)
        assert result.off_hours_steps == 400
        assert result.off_hours_calories == pytest.approx(200.0)
        assert result.off_hours_active_minutes == 240
        assert result.off_hours_avg_heart_rate == pytest.approx(100.0)
        assert result.total_steps == 1200
        assert result.total_calories == pytest.approx(900.0)
        assert result.total_active_minutes == 780
        assert result.sleep_duration_seconds is None
        assert result.sleep_quality_score is None

    @pytest.mark.asyncio
    async def test_compute_is_idempotent(self, db, add_schedule):
        await add_schedule()
        await ActivityIngestionService(db).ingest_session(
            request(utc(2026, 1, 5, 10), utc(2026, 1, 5, 11), step_count=500)
        )
        aggregator = DailyAggregator(db)

        first = await aggregator.compute("alice", MONDAY)
        first_id, first_steps = first.id, first.total_steps
        second = await aggregator.compute("alice", MONDAY)

        count = await db.scalar(select(func.count()).select_from(DailyAggregation))
        assert count == 1
        assert second.id == first_id
        assert second.total_steps == first_steps == 500

    @pytest.mark.asyncio
    async def test_recompute_picks_up_new_sessions(self, db, add_schedule):
        await add_schedule()
        ingestion = ActivityIngestionService(db)
        aggregator = DailyAggregator(db)
        await ingestion.ingest_session(
            request(utc(2026, 1, 5, 10), utc(2026, 1, 5, 11), step_count=500)
        )
        await aggregator.compute("alice", MONDAY)

        await ingestion.ingest_session(
            request(utc(2026, 1, 5, 20), utc(2026, 1, 5, 21), step_count=250)
        )
        result = await aggregator.compute("alice", MONDAY)

        assert result.work_hours_steps == 500
        assert result.off_hours_steps == 250
        assert result.total_steps == 750

    @pytest.mark.asyncio
    async def test_empty_day_is_stored_with_no_data(self, db):
        result = await DailyAggregator(db).compute("alice", MONDAY)

        assert result.day_type == DayType.NON_WORKDAY
        assert result.total_steps is None
        assert result.total_calories is None
        assert result.total_active_minutes is None
        assert result.work_hours_avg_heart_rate is None
        assert result.computed_at is not None

    @pytest.mark.asyncio
    async def test_holiday_counts_everything_as_off_hours(self, db, add_schedule, add_override):
        await add_schedule()
        await add_override(MONDAY, OverrideType.HOLIDAY)
        await ActivityIngestionService(db).ingest_session(
            request(utc(2026, 1, 5, 10), utc(2026, 1, 5, 12), step_count=2000)
        )

        result = await DailyAggregator(db).compute("alice", MONDAY)

        assert result.day_type == DayType.HOLIDAY
        assert result.work_hours_steps is None
        assert result.off_hours_steps == 2000
        assert result.off_hours_active_minutes == 120

    @pytest.mark.asyncio
    async def test_other_users_segments_are_ignored(self, db):
        payload = request(utc(2026, 1, 5, 10), utc(2026, 1, 5, 11), step_count=500)
        payload.user_id = "bob"
        await ActivityIngestionService(db).ingest_session(payload)

        result = await DailyAggregator(db).compute("alice", MONDAY)

        assert result.total_steps is None


@pytest.mark.integration
class TestSleepAttribution:
    @pytest.mark.asyncio
    async def test_sleep_counts_for_local_wake_up_date(self, db):
        # 22:00 Jan 4 to 06:00 Jan 5 in Ho Chi Minh City, all of it on Jan 4 in UTC.
        await add_sleep(db, utc(2026, 1, 4, 15), utc(2026, 1, 4, 23), "Asia/Ho_Chi_Minh")
        aggregator = DailyAggregator(db)

        monday = await aggregator.compute("alice", MONDAY)
        sunday = await aggregator.compute("alice", MONDAY - timedelta(days=1))

        assert monday.sleep_duration_seconds == 8 * HOUR
        assert monday.sleep_quality_score == 100.0
        assert sunday.sleep_duration_seconds is None
        assert sunday.sleep_quality_score is None

    @pytest.mark.asyncio
    async def test_multiple_sleep_sessions_are_summed(self, db):
        await add_sleep(db, utc(2026, 1, 4, 23), utc(2026, 1, 5, 3), "UTC")
        await add_sleep(db, utc(2026, 1, 5, 13), utc(2026, 1, 5, 14, 30), "UTC")

        result = await DailyAggregator(db).compute("alice", MONDAY)

        assert result.sleep_duration_seconds == 5.5 * HOUR
        assert result.sleep_quality_score == pytest.approx(5.5 / 7 * 100)


@pytest.mark.integration
class TestQueries:
    @pytest.mark.asyncio
    async def test_get_missing_raises_not_found(self, db):
        with pytest.raises(NotFoundError):
            await DailyAggregator(db).get("alice", MONDAY)

    @pytest.mark.asyncio
    async def test_get_or_compute_creates_row(self, db):
        aggregator = DailyAggregator(db)
        created = await aggregator.get_or_compute("alice", MONDAY)
        fetched = await aggregator.get("alice", MONDAY)
        assert fetched.id == created.id

    @pytest.mark.asyncio
    async def test_list_range_is_newest_first(self, db):
        aggregator = DailyAggregator(db)
        await aggregator.recompute_range("alice", MONDAY, MONDAY + timedelta(days=2))
        await aggregator.compute("bob", MONDAY)

        rows = await aggregator.list_range(MONDAY, MONDAY + timedelta(days=6), user_id="alice")

        assert [r.date for r in rows] == [
            MONDAY + timedelta(days=2),
            MONDAY + timedelta(days=1),
            MONDAY,
        ]


@pytest.mark.integration
class TestRecomputeRange:
    @pytest.mark.asyncio
    async def test_every_date_inclusive(self, db):
        count = await DailyAggregator(db).recompute_range(
            "alice", MONDAY, MONDAY + timedelta(days=4)
        )
        assert count == 5

    @pytest.mark.asyncio
    async def test_failed_date_is_skipped(self, db, monkeypatch):
        aggregator = DailyAggregator(db)
        bad_day = MONDAY + timedelta(days=2)
        original = aggregator.compute

        async def flaky_compute(user_id, day):
            if day == bad_day:
                raise RuntimeError("boom")
            return await original(user_id, day)

        monkeypatch.setattr(aggregator, "compute", flaky_compute)

        count = await aggregator.recompute_range("alice", MONDAY, MONDAY + timedelta(days=4))

        assert count == 4
        rows = await aggregator.list_range(MONDAY, MONDAY + timedelta(days=4), user_id="alice")
        assert bad_day not in [r.date for r in rows]
        assert len(rows) == 4
