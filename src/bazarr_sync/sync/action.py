"""The remote sync mutation and classification of its response."""

import logging

import httpx

from ..bazarr import BazarrClient
from ..models import SyncOutcome, SyncRequest

logger = logging.getLogger(__name__)

ALREADY_SYNCED_MARKERS = ("already synchronized", "already in sync")
SYNC_TOOL_MARKERS = ("subsync", "ffmpeg")


def classify_response(status_code: int, body: str) -> SyncOutcome:
    """Map a PATCH /api/subtitles response to a semantic outcome."""
    body = body.strip()
    lowered = body.lower()

    if status_code == 204:
        return SyncOutcome.success()
    if status_code == 304:
        return SyncOutcome.already_in_sync("no changes needed")
    if status_code == 409:
        return SyncOutcome.already_in_sync("already in perfect sync")
    if status_code == 400:
        if body:
            return SyncOutcome.failure(f"bad request: {body}")
        return SyncOutcome.failure("bad request (check subtitle file)")
    if status_code == 404:
        return SyncOutcome.failure("subtitle file not found")
    if status_code == 500:
        if not body:
            return SyncOutcome.failure("server error during sync")
        if any(marker in lowered for marker in ALREADY_SYNCED_MARKERS):
            return SyncOutcome.already_in_sync("already synchronized")
        if any(marker in lowered for marker in SYNC_TOOL_MARKERS):
            return SyncOutcome.failure("sync tool not available (check subsync/ffmpeg)")
        return SyncOutcome.failure(f"server error: {body}")

    if body:
        return SyncOutcome.failure(f"status {status_code}: {body}")
    return SyncOutcome.failure(f"unknown status: {status_code}")


class SyncAction:
    """Issues one sync request per call. Retrying is the caller's job."""

    def __init__(self, client: BazarrClient):
        self.client = client

    async def request_sync(self, request: SyncRequest) -> SyncOutcome:
        try:
            response = await self.client.patch_subtitle(request)
        except httpx.HTTPError as e:
            logger.debug("Sync request for %s failed: %s", request.path, e)
            return SyncOutcome.failure(f"connection error: {e}")

        outcome = classify_response(response.status_code, response.text)
        logger.debug(
            "Sync %s id=%d lang=%s -> %d %s",
            request.media_kind.value,
            request.external_id,
            request.language,
            response.status_code,
            outcome.status.value,
        )
        return outcome
