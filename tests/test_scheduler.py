"""Tests for the cron scheduler."""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from bazarr_sync.bazarr import CatalogError
from bazarr_sync.config import ScheduleConfig
from bazarr_sync.models import CacheKind, SyncSummary
from bazarr_sync.scheduler import (
    INITIAL_JOB_ID,
    JOB_ID,
    RunRecord,
    ScheduleConfigError,
    SchedulerState,
    SyncScheduler,
    build_trigger,
    resolve_timezone,
    run_sync_jobs,
    translate_day_of_week,
)
from bazarr_sync.sync import TraversalEngine
from conftest import movie, series, episode, subtitle


@pytest.fixture
def scheduled_context(make_context, config):
    def _make(**schedule):
        config.schedule = ScheduleConfig(enabled=True, **schedule)
        return make_context()

    return _make


class TestTriggers:
    """Test cron and timezone parsing."""

    def test_invalid_cron_raises(self):
        with pytest.raises(ScheduleConfigError, match="Invalid cron expression"):
            build_trigger("not a cron", UTC)

    def test_too_few_fields_raises(self):
        with pytest.raises(ScheduleConfigError):
            build_trigger("0 1 *", UTC)

    def test_weekly_trigger(self):
        trigger = build_trigger("0 1 * * 0", UTC)
        now = datetime(2024, 1, 3, 12, 0, tzinfo=UTC)  # Wednesday

        next_run = trigger.get_next_fire_time(None, now)

        assert next_run == datetime(2024, 1, 7, 1, 0, tzinfo=UTC)  # Sunday 01:00

    @pytest.mark.parametrize(
        "expression,now,expected",
        [
            # Saturday noon -> Monday, weekdays only
            ("0 1 * * 1-5", datetime(2024, 1, 6, 12, 0, tzinfo=UTC), datetime(2024, 1, 8, 1, 0, tzinfo=UTC)),
            # Wednesday noon -> Thursday
            ("0 1 * * 1-5", datetime(2024, 1, 3, 12, 0, tzinfo=UTC), datetime(2024, 1, 4, 1, 0, tzinfo=UTC)),
            # 7 is Sunday too
            ("0 1 * * 7", datetime(2024, 1, 3, 12, 0, tzinfo=UTC), datetime(2024, 1, 7, 1, 0, tzinfo=UTC)),
            ("0 1 * * 5-7", datetime(2024, 1, 3, 12, 0, tzinfo=UTC), datetime(2024, 1, 5, 1, 0, tzinfo=UTC)),
            ("0 1 * * 6,0", datetime(2024, 1, 3, 12, 0, tzinfo=UTC), datetime(2024, 1, 6, 1, 0, tzinfo=UTC)),
            ("0 1 * * sun", datetime(2024, 1, 3, 12, 0, tzinfo=UTC), datetime(2024, 1, 7, 1, 0, tzinfo=UTC)),
        ],
    )
    def test_day_of_week_counts_from_sunday(self, expression, now, expected):
        assert build_trigger(expression, UTC).get_next_fire_time(None, now) == expected

    @pytest.mark.parametrize(
        "field,expected",
        [
            ("*", "*"),
            ("0", "sun"),
            ("7", "sun"),
            ("1-5", "mon,tue,wed,thu,fri"),
            ("0-6", "sun,mon,tue,wed,thu,fri,sat"),
            ("*/2", "sun,tue,thu,sat"),
            ("1,3,5", "mon,wed,fri"),
            ("MON-WED", "mon,tue,wed"),
        ],
    )
    def test_translate_day_of_week(self, field, expected):
        assert translate_day_of_week(field) == expected

    @pytest.mark.parametrize("field", ["8", "5-2", "funday", "1/0"])
    def test_invalid_day_of_week(self, field):
        with pytest.raises(ScheduleConfigError):
            build_trigger(f"0 1 * * {field}", UTC)

    def test_timezone(self):
        tz = resolve_timezone("Europe/Berlin")
        assert str(tz) == "Europe/Berlin"

    def test_invalid_timezone_falls_back_to_utc(self, caplog):
        assert resolve_timezone("Mars/Olympus_Mons") is UTC
        assert "Invalid timezone" in caplog.text

    def test_scheduler_rejects_invalid_cron(self, scheduled_context):
        with pytest.raises(ScheduleConfigError):
            SyncScheduler(scheduled_context(cron_expression="61 * * * *"))


class TestRunSyncJobs:
    """Test a single firing."""

    async def test_shows_then_movies(self, scheduled_context):
        order: list[str] = []

        async def shows(self):
            order.append("shows")
            return SyncSummary(newly_synced=2)

        async def movies(self):
            order.append("movies")
            return SyncSummary(failed=1)

        with (
            patch.object(TraversalEngine, "sync_shows", shows),
            patch.object(TraversalEngine, "sync_movies", movies),
        ):
            record = await run_sync_jobs(scheduled_context())

        assert order == ["shows", "movies"]
        assert record.summary == SyncSummary(newly_synced=2, failed=1)
        assert record.error is None
        assert record.finished_at is not None

    @pytest.mark.parametrize(
        "flags,expected",
        [
            ({"sync_movies": False}, ["shows"]),
            ({"sync_shows": False}, ["movies"]),
            ({"sync_movies": False, "sync_shows": False}, []),
        ],
    )
    async def test_enable_flags(self, scheduled_context, flags, expected):
        ctx = scheduled_context(**flags)
        shows = AsyncMock(return_value=SyncSummary())
        movies = AsyncMock(return_value=SyncSummary())

        with patch.object(TraversalEngine, "sync_shows", shows), patch.object(TraversalEngine, "sync_movies", movies):
            await run_sync_jobs(ctx)

        called = [name for name, mock in (("shows", shows), ("movies", movies)) if mock.await_count]
        assert called == expected

    async def test_listing_failure_is_recorded(self, scheduled_context, fake_bazarr, caplog):
        fake_bazarr.failing_endpoints = {"series"}
        fake_bazarr.movies = [movie(1, subtitle("/m/1.en.srt"))]

        record = await run_sync_jobs(scheduled_context())

        assert "500" in record.error
        assert "Sync job aborted" in caplog.text
        # Shows failed first, so movies were never attempted
        assert fake_bazarr.sync_calls == []

    async def test_unexpected_error_is_recorded(self, scheduled_context):
        with patch.object(TraversalEngine, "sync_shows", AsyncMock(side_effect=RuntimeError("boom"))):
            record = await run_sync_jobs(scheduled_context())

        assert record.error == "boom"

    async def test_cache_reloaded_for_each_firing(self, scheduled_context, fake_bazarr, config, tmp_path):
        fake_bazarr.movies = [movie(1, subtitle("/m/1.en.srt")), movie(2, subtitle("/m/2.en.srt"))]
        ctx = scheduled_context(sync_shows=False)

        # Written by another process between firings
        (tmp_path / "movies-cache").write_text("/m/1.en.srt\n")
        record = await run_sync_jobs(ctx)

        assert fake_bazarr.synced_ids() == [2]
        assert record.summary == SyncSummary(newly_synced=1, skipped=1)
        assert ctx.cache.contains(CacheKind.MOVIES, "/m/2.en.srt")

    async def test_full_firing_against_fake_server(self, scheduled_context, fake_bazarr):
        fake_bazarr.movies = [movie(1, subtitle("/m/1.en.srt"))]
        fake_bazarr.series = [series(5)]
        fake_bazarr.episodes = {5: [episode(50, subtitle("/tv/50.en.srt"))]}

        record = await run_sync_jobs(scheduled_context())

        assert [call["type"] for call in fake_bazarr.sync_calls] == ["episode", "movie"]
        assert record.summary == SyncSummary(newly_synced=2)


class TestSyncScheduler:
    """Test the scheduler lifecycle."""

    async def test_run_once_terminates(self, scheduled_context):
        scheduler = SyncScheduler(scheduled_context())

        with patch("bazarr_sync.scheduler.run_sync_jobs", AsyncMock(return_value=RunRecord(datetime.now(UTC)))):
            record = await scheduler.run_once()

        assert record is scheduler.last_run
        assert scheduler.state is SchedulerState.TERMINATED
        assert scheduler.next_fire_time() is None
        assert scheduler.running is False

    async def test_fire_skips_while_running(self, scheduled_context, caplog):
        scheduler = SyncScheduler(scheduled_context())
        release = asyncio.Event()

        async def slow_job(ctx):
            await release.wait()
            return RunRecord(datetime.now(UTC))

        with patch("bazarr_sync.scheduler.run_sync_jobs", side_effect=slow_job) as job:
            first = asyncio.create_task(scheduler.fire())
            await asyncio.sleep(0.01)
            assert scheduler.state is SchedulerState.FIRING

            assert await scheduler.fire() is None
            release.set()
            await first

        assert job.call_count == 1
        assert "still running" in caplog.text
        assert scheduler.state is SchedulerState.IDLE

    async def test_start_arms_cron_job(self, scheduled_context):
        scheduler = SyncScheduler(scheduled_context(cron_expression="30 2 * * *"))

        scheduler.start()
        try:
            assert scheduler.state is SchedulerState.ARMED
            assert scheduler.running is True
            assert scheduler._scheduler.get_job(JOB_ID) is not None
            assert scheduler._scheduler.get_job(INITIAL_JOB_ID) is None
            next_run = scheduler.next_fire_time()
            assert (next_run.hour, next_run.minute) == (2, 30)
        finally:
            scheduler.shutdown()

        assert scheduler.state is SchedulerState.TERMINATED
        assert scheduler.next_fire_time() is None

    async def test_start_with_initial_run(self, scheduled_context):
        scheduler = SyncScheduler(scheduled_context(run_initial=True))

        scheduler.start()
        try:
            assert scheduler._scheduler.get_job(INITIAL_JOB_ID) is not None
        finally:
            scheduler.shutdown()

    async def test_serve_stops_on_shutdown(self, scheduled_context):
        scheduler = SyncScheduler(scheduled_context())

        serving = asyncio.create_task(scheduler.serve())
        await asyncio.sleep(0.01)
        assert scheduler.running is True

        scheduler._stop.set()
        await asyncio.wait_for(serving, timeout=5)

        assert scheduler.state is SchedulerState.TERMINATED

    async def test_shutdown_during_firing_stays_terminated(self, scheduled_context):
        scheduler = SyncScheduler(scheduled_context())
        release = asyncio.Event()

        async def slow_job(ctx):
            await release.wait()
            return RunRecord(datetime.now(UTC))

        scheduler.start()
        with patch("bazarr_sync.scheduler.run_sync_jobs", side_effect=slow_job):
            firing = asyncio.create_task(scheduler.fire())
            await asyncio.sleep(0.01)
            scheduler.shutdown()
            release.set()
            await firing

        assert scheduler.state is SchedulerState.TERMINATED


def test_run_record_duration():
    record = RunRecord(started_at=datetime(2024, 1, 1, 1, 0, tzinfo=UTC))
    assert record.duration_seconds is None
    record.finished_at = datetime(2024, 1, 1, 1, 2, 30, tzinfo=UTC)
    assert record.duration_seconds == 150


def test_scheduler_states():
    """Test the states reported by the status API."""
    assert SchedulerState.__doc__
    assert [state.value for state in SchedulerState] == ["idle", "armed", "firing", "one_shot", "terminated"]
