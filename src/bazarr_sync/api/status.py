"""Status API endpoints for monitoring the scheduler."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from .. import __version__
from ..bazarr import BazarrClient
from ..models import CacheKind, SyncSummary
from ..scheduler import SyncScheduler

router = APIRouter(prefix="/api", tags=["status"])


class BazarrStatus(BaseModel):
    """Reachability of the Bazarr server."""

    url: str
    healthy: bool
    version: str | None = None


class ScheduleStatus(BaseModel):
    """State of the cron schedule."""

    state: str
    cron_expression: str
    timezone: str
    sync_movies: bool
    sync_shows: bool
    next_run_at: datetime | None


class LastRunStatus(BaseModel):
    """Outcome of the most recent firing."""

    started_at: datetime
    finished_at: datetime | None
    duration_seconds: float | None
    summary: SyncSummary | None
    error: str | None


class CacheStatus(BaseModel):
    """Size of the skip-caches."""

    enabled: bool
    movies: int
    shows: int


class OverallStatus(BaseModel):
    """Overall system status."""

    status: str  # healthy, degraded, unhealthy
    uptime_seconds: float
    version: str
    bazarr: BazarrStatus
    schedule: ScheduleStatus
    last_run: LastRunStatus | None
    cache: CacheStatus


# Track service start time
_start_time: datetime | None = None


def get_start_time() -> datetime:
    """Get or initialize the service start time."""
    global _start_time
    if _start_time is None:
        _start_time = datetime.now(UTC)
    return _start_time


def schedule_status(scheduler: SyncScheduler) -> ScheduleStatus:
    schedule = scheduler.schedule
    return ScheduleStatus(
        state=scheduler.state.value,
        cron_expression=schedule.cron_expression,
        timezone=schedule.timezone,
        sync_movies=schedule.sync_movies,
        sync_shows=schedule.sync_shows,
        next_run_at=scheduler.next_fire_time(),
    )


def last_run_status(scheduler: SyncScheduler) -> LastRunStatus | None:
    record = scheduler.last_run
    if record is None:
        return None
    return LastRunStatus(
        started_at=record.started_at,
        finished_at=record.finished_at,
        duration_seconds=record.duration_seconds,
        summary=record.summary,
        error=record.error,
    )


@router.get("/status", response_model=OverallStatus)
async def get_status(request: Request) -> OverallStatus:
    """Get comprehensive system status."""
    scheduler: SyncScheduler = request.app.state.scheduler
    client: BazarrClient = request.app.state.client
    cache = scheduler.ctx.cache

    version = await client.get_version()
    bazarr = BazarrStatus(url=client.config.bazarr_url, healthy=version is not None, version=version)

    last_run = last_run_status(scheduler)

    if bazarr.healthy and scheduler.running and not (last_run and last_run.error):
        status = "healthy"
    elif scheduler.running:
        status = "degraded"
    else:
        status = "unhealthy"

    uptime = (datetime.now(UTC) - get_start_time()).total_seconds()

    return OverallStatus(
        status=status,
        uptime_seconds=uptime,
        version=__version__,
        bazarr=bazarr,
        schedule=schedule_status(scheduler),
        last_run=last_run,
        cache=CacheStatus(
            enabled=cache.enabled,
            movies=cache.size(CacheKind.MOVIES),
            shows=cache.size(CacheKind.SHOWS),
        ),
    )


@router.get("/schedule")
async def get_schedule(request: Request) -> ScheduleStatus:
    """Get the schedule and its next fire time."""
    return schedule_status(request.app.state.scheduler)


@router.get("/last-run")
async def get_last_run(request: Request) -> LastRunStatus | None:
    """Get the outcome of the most recent sync job."""
    return last_run_status(request.app.state.scheduler)
