"""Per-subtitle sync state machine."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from ..config import SyncOptionsConfig
from ..models import CacheKind, MediaKind, OutcomeStatus, SubtitleTrack, SyncOutcome, SyncRequest, SyncSummary
from .action import SyncAction
from .cache import CacheStore
from .report import SyncObserver

logger = logging.getLogger(__name__)


class TrackState(str, Enum):
    """Terminal state of one subtitle track."""

    INELIGIBLE = "ineligible"  # Embedded or empty subtitle
    CACHE_HIT = "cache_hit"
    SYNCED = "synced"
    ALREADY_IN_SYNC = "already_in_sync"
    FAILED = "failed"


@dataclass
class TrackResult:
    """What happened to one subtitle track."""

    state: TrackState
    message: str = ""
    attempts: int = 0

    def tally(self, summary: SyncSummary) -> None:
        """Add this result to the run counters."""
        if self.state in (TrackState.INELIGIBLE, TrackState.CACHE_HIT):
            summary.skipped += 1
        elif self.state is TrackState.SYNCED:
            summary.newly_synced += 1
        elif self.state is TrackState.ALREADY_IN_SYNC:
            summary.already_in_sync += 1
        else:
            summary.failed += 1


class ItemProcessor:
    """Decides skip / cache-hit / attempt / retry / record for each subtitle.

    A failed first attempt is retried exactly once after `retry_delay_seconds`;
    the second outcome is final. Every attempted track is followed by
    `item_delay_seconds` so requests to Bazarr stay sequential and spaced out.
    """

    def __init__(
        self,
        action: SyncAction,
        cache: CacheStore,
        options: SyncOptionsConfig,
        observer: SyncObserver | None = None,
        use_cache: bool = True,
    ):
        self.action = action
        self.cache = cache
        self.options = options
        self.observer = observer or SyncObserver()
        self.use_cache = use_cache

    def build_request(self, media_kind: MediaKind, external_id: int, track: SubtitleTrack) -> SyncRequest:
        return SyncRequest(
            media_kind=media_kind,
            external_id=external_id,
            path=track.path or "",
            language=track.code2,
            use_golden_section=self.options.golden_section,
            fix_framerate=not self.options.no_framerate_fix,
        )

    async def process(
        self,
        cache_kind: CacheKind,
        media_kind: MediaKind,
        external_id: int,
        track: SubtitleTrack,
        label: str,
    ) -> TrackResult:
        """Run one subtitle track through the state machine."""
        if not track.eligible:
            result = TrackResult(TrackState.INELIGIBLE, "embedded or missing subtitle")
            self.observer.on_track(label, track.code2, result)
            return result

        path = track.path or ""
        if self.use_cache and self.cache.contains(cache_kind, path):
            result = TrackResult(TrackState.CACHE_HIT, "already synced")
            self.observer.on_track(label, track.code2, result)
            return result

        request = self.build_request(media_kind, external_id, track)
        self.observer.on_attempt(label, track.code2)

        outcome = await self.action.request_sync(request)
        attempts = 1
        if not outcome.ok:
            logger.debug("Sync of %s failed (%s), retrying once", path, outcome.message)
            self.observer.on_retry(label, track.code2, outcome.message)
            await asyncio.sleep(self.options.retry_delay_seconds)
            outcome = await self.action.request_sync(request)
            attempts = 2

        result = self._finish(cache_kind, path, outcome, attempts)
        self.observer.on_track(label, track.code2, result)

        await asyncio.sleep(self.options.item_delay_seconds)
        return result

    def _finish(self, cache_kind: CacheKind, path: str, outcome: SyncOutcome, attempts: int) -> TrackResult:
        if outcome.status is OutcomeStatus.FAILURE:
            logger.info("Failed to sync %s: %s", path, outcome.message)
            return TrackResult(TrackState.FAILED, outcome.message, attempts)

        self.cache.record(cache_kind, path)
        if outcome.status is OutcomeStatus.SUCCESS:
            return TrackResult(TrackState.SYNCED, outcome.message, attempts)
        return TrackResult(TrackState.ALREADY_IN_SYNC, outcome.message, attempts)
