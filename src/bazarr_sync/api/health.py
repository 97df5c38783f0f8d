"""Health check endpoints for Kubernetes/Docker."""

from fastapi import APIRouter, Request, Response

from ..scheduler import SyncScheduler

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> Response:
    """
    Liveness check.

    Returns 200 if the process is running.
    """
    return Response(content="ok", media_type="text/plain")


@router.get("/readyz")
async def readyz(request: Request) -> Response:
    """
    Readiness check.

    Returns 200 once the cron schedule is armed (or a job is firing).
    Bazarr being unreachable does not make the service unready: the next
    firing simply logs the failure.
    """
    scheduler: SyncScheduler | None = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return Response(
            content="scheduler not initialized",
            status_code=503,
            media_type="text/plain",
        )

    if not scheduler.running:
        return Response(
            content=f"scheduler {scheduler.state.value}",
            status_code=503,
            media_type="text/plain",
        )

    return Response(content="ok", media_type="text/plain")
