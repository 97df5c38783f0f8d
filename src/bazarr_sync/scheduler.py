"""Cron-driven recurring sync jobs."""

import asyncio
import logging
import signal
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from .bazarr import CatalogError
from .models import SyncSummary
from .sync import OrchestratorContext, TraversalEngine

logger = logging.getLogger(__name__)

JOB_ID = "bazarr-sync"
INITIAL_JOB_ID = "bazarr-sync-initial"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S %Z"


class ScheduleConfigError(Exception):
    """The schedule cannot be armed (invalid cron expression)."""


class SchedulerState(str, Enum):
    """Lifecycle of the scheduler, reported by the status API."""

    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"
    ONE_SHOT = "one_shot"
    TERMINATED = "terminated"


@dataclass
class RunRecord:
    """Outcome of one firing."""

    started_at: datetime
    finished_at: datetime | None = None
    summary: SyncSummary | None = None
    error: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


def resolve_timezone(name: str) -> tzinfo:
    """Load an IANA timezone, falling back to UTC."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning("Invalid timezone '%s': %s. Using UTC instead.", name, e)
        return UTC


CRONTAB_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _crontab_day(value: str) -> int:
    value = value.lower()
    if value in CRONTAB_WEEKDAYS:
        return CRONTAB_WEEKDAYS.index(value)
    day = int(value)
    if not 0 <= day <= 7:
        raise ValueError(f"day of week {day} out of range")
    return day


def translate_day_of_week(field: str) -> str:
    """Rewrite a crontab day-of-week field as weekday names.

    Crontab counts from Sunday (0 and 7 both mean Sunday) while APScheduler
    counts from Monday, so numbers are expanded to an explicit list of names.
    """
    if field in ("*", "?"):
        return "*"

    days: set[int] = set()
    for part in field.split(","):
        span, _, step_text = part.partition("/")
        step = int(step_text) if step_text else 1
        if step < 1:
            raise ValueError(f"invalid step in '{part}'")
        if span == "*":
            first, last = 0, 6
        elif "-" in span:
            start, end = span.split("-", 1)
            first, last = _crontab_day(start), _crontab_day(end)
        else:
            first = _crontab_day(span)
            last = 6 if step_text else first
        if first > last:
            raise ValueError(f"invalid range '{span}'")
        days.update(day % 7 for day in range(first, last + 1, step))

    return ",".join(CRONTAB_WEEKDAYS[day] for day in sorted(days))


def build_trigger(expression: str, timezone: tzinfo) -> CronTrigger:
    """Parse a standard 5-field crontab expression."""
    fields = expression.split()
    try:
        if len(fields) != 5:
            raise ValueError(f"expected 5 fields, got {len(fields)}")
        minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=translate_day_of_week(day_of_week),
            timezone=timezone,
        )
    except ValueError as e:
        raise ScheduleConfigError(f"Invalid cron expression '{expression}': {e}") from e


async def run_sync_jobs(ctx: OrchestratorContext) -> RunRecord:
    """One firing: reload the cache, then shows, then movies.

    Listing failures end the firing but never escape it.
    """
    schedule = ctx.config.schedule
    record = RunRecord(started_at=datetime.now(UTC))
    logger.info("Starting scheduled sync job")

    ctx.cache.load_all()
    engine = TraversalEngine(ctx)
    summary = SyncSummary()

    try:
        if schedule.sync_shows:
            logger.info("Syncing TV shows...")
            summary = summary.merge(await engine.sync_shows())
        if schedule.sync_movies:
            logger.info("Syncing movies...")
            summary = summary.merge(await engine.sync_movies())
    except CatalogError as e:
        logger.error("Sync job aborted: %s", e)
        record.error = str(e)
    except Exception as e:
        logger.exception("Error in sync job: %s", e)
        record.error = str(e)

    record.summary = summary
    record.finished_at = datetime.now(UTC)
    logger.info("Sync job completed in %ds", round(record.duration_seconds or 0))
    return record


class SyncScheduler:
    """Runs sync jobs once, or on a cron schedule in the configured timezone.

    The trigger is validated on construction, so an invalid expression fails
    before anything is armed.
    """

    def __init__(self, ctx: OrchestratorContext):
        self.ctx = ctx
        self.schedule = ctx.config.schedule
        self.timezone = resolve_timezone(self.schedule.timezone)
        self.trigger = build_trigger(self.schedule.cron_expression, self.timezone)
        self.state = SchedulerState.IDLE
        self.last_run: RunRecord | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._job: Job | None = None
        self._lock = asyncio.Lock()
        self._stop = asyncio.Event()

    def next_fire_time(self) -> datetime | None:
        """Next time the cron trigger fires, computed from now."""
        if self.state is SchedulerState.TERMINATED:
            return None
        return self.trigger.get_next_fire_time(None, datetime.now(self.timezone))

    @property
    def running(self) -> bool:
        return self.state in (SchedulerState.ARMED, SchedulerState.FIRING)

    async def fire(self) -> RunRecord | None:
        """Run one sync job unless one is already running."""
        if self._lock.locked():
            logger.warning("Previous sync job still running, skipping this firing")
            return None

        async with self._lock:
            previous = self.state
            self.state = SchedulerState.FIRING
            try:
                self.last_run = await run_sync_jobs(self.ctx)
            finally:
                if self.state is SchedulerState.FIRING:
                    self.state = previous

        next_run = self.next_fire_time() if previous is SchedulerState.ARMED else None
        if next_run is not None:
            logger.info("Next sync scheduled for: %s", next_run.strftime(TIME_FORMAT))
        return self.last_run

    async def run_once(self) -> RunRecord | None:
        """One-shot mode: fire once and terminate."""
        self.state = SchedulerState.ONE_SHOT
        try:
            return await self.fire()
        finally:
            self.state = SchedulerState.TERMINATED

    def start(self) -> None:
        """Arm the cron job. Must be called with a running event loop."""
        if self._scheduler is not None:
            return

        self._scheduler = AsyncIOScheduler(timezone=self.timezone)
        self._job = self._scheduler.add_job(
            self.fire,
            self.trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        if self.schedule.run_initial:
            logger.info("Running initial sync...")
            self._scheduler.add_job(
                self.fire,
                DateTrigger(run_date=datetime.now(self.timezone), timezone=self.timezone),
                id=INITIAL_JOB_ID,
            )

        self._scheduler.start()
        self.state = SchedulerState.ARMED

        next_run = self.next_fire_time()
        logger.info(
            "Scheduler started. Next sync scheduled for: %s",
            next_run.strftime(TIME_FORMAT) if next_run else "never",
        )
        logger.info("Schedule: %s (Timezone: %s)", self.schedule.cron_expression, self.schedule.timezone)

    def shutdown(self) -> None:
        """Stop future firings. A firing in progress is not aborted."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self._job = None
        self.state = SchedulerState.TERMINATED
        self._stop.set()
        logger.info("Scheduler stopped gracefully.")

    async def serve(self) -> None:
        """Arm the schedule and block until SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._stop.set)
                installed.append(sig)
            except (NotImplementedError, RuntimeError) as e:
                logger.debug("Cannot handle %s: %s", sig.name, e)

        self.start()
        try:
            await self._stop.wait()
            logger.warning("Received interrupt signal. Shutting down scheduler...")
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            self.shutdown()
