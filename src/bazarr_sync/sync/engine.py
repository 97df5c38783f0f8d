"""Traversal engine: walks the Bazarr catalog and syncs every subtitle."""

import logging
from dataclasses import dataclass, field

from ..bazarr import BazarrClient, CatalogError
from ..config import Config
from ..models import CacheKind, MediaKind, SyncSummary
from .action import SyncAction
from .cache import CacheStore
from .processor import ItemProcessor
from .report import SyncObserver
from .supervisor import ProgressTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """Which units a run covers: an id allow-list and an optional resume marker."""

    ids: frozenset[int] = frozenset()
    resume_from: int | None = None

    @classmethod
    def build(cls, ids: list[int] | tuple[int, ...] = (), resume_from: int | None = None) -> "Selection":
        # -1 on the command line means "no marker"
        if resume_from is not None and resume_from < 0:
            resume_from = None
        return cls(ids=frozenset(ids), resume_from=resume_from)

    def is_selected(self, external_id: int) -> bool:
        return not self.ids or external_id in self.ids


class ResumeGate:
    """Closed until the resume marker id is seen; the marker unit itself passes."""

    def __init__(self, marker: int | None):
        self.marker = marker
        self.open = marker is None

    def admits(self, external_id: int) -> bool:
        if not self.open and external_id == self.marker:
            self.open = True
        return self.open


@dataclass
class OrchestratorContext:
    """Everything one invocation needs, owned by the caller."""

    config: Config
    client: BazarrClient
    cache: CacheStore
    selection: Selection = field(default_factory=Selection)
    progress: ProgressTracker = field(default_factory=ProgressTracker)
    observer: SyncObserver = field(default_factory=SyncObserver)


class TraversalEngine:
    """Drives the item processor over movies or shows -> episodes."""

    def __init__(self, ctx: OrchestratorContext):
        self.ctx = ctx
        self.action = SyncAction(ctx.client)

    def _processor(self) -> ItemProcessor:
        # An explicit id list means "resync these", so the cache is not consulted
        return ItemProcessor(
            self.action,
            self.ctx.cache,
            self.ctx.config.sync_options,
            observer=self.ctx.observer,
            use_cache=not self.ctx.selection.ids,
        )

    def _stopping(self) -> bool:
        if self.ctx.progress.cancelled:
            logger.info("Sync cancelled, last unit seen: %s", self.ctx.progress.last_seen_id)
            return True
        return False

    def _check_marker(self, gate: ResumeGate) -> None:
        if not gate.open and not self.ctx.progress.cancelled:
            logger.warning("Resume marker %s was never reached, nothing was synced", gate.marker)

    async def sync_movies(self) -> SyncSummary:
        """Sync every subtitle of every selected movie.

        Raises CatalogError if the movie list itself cannot be fetched.
        """
        movies = await self.ctx.client.list_movies()
        total = len(movies)
        observer = self.ctx.observer
        observer.on_listing("movies", total)

        selection = self.ctx.selection
        gate = ResumeGate(selection.resume_from)
        processor = self._processor()
        summary = SyncSummary()

        for index, movie in enumerate(movies, start=1):
            if not selection.is_selected(movie.radarr_id):
                continue
            if not gate.admits(movie.radarr_id):
                observer.on_unit_skipped(index, total, movie.title, "SKIPPING (continue mode)")
                summary.skipped += len(movie.subtitles)
                continue
            if self._stopping():
                break

            self.ctx.progress.report(movie.radarr_id)

            if not movie.subtitles:
                observer.on_unit_skipped(index, total, movie.title, "NO SUBS")
                continue

            observer.on_unit(index, total, movie.title, len(movie.subtitles), "subtitles")
            for track in movie.subtitles:
                result = await processor.process(
                    CacheKind.MOVIES, MediaKind.MOVIE, movie.radarr_id, track, movie.title
                )
                result.tally(summary)

        self._check_marker(gate)
        observer.on_summary(summary)
        return summary

    async def sync_shows(self) -> SyncSummary:
        """Sync every subtitle of every episode of every selected show.

        The resume marker is an episode id: episodes before it are skipped,
        that episode and everything after it are processed. Raises CatalogError
        if the series list cannot be fetched; an episode listing failure only
        skips that show.
        """
        shows = await self.ctx.client.list_shows()
        total = len(shows)
        observer = self.ctx.observer
        observer.on_listing("shows", total)

        selection = self.ctx.selection
        gate = ResumeGate(selection.resume_from)
        processor = self._processor()
        summary = SyncSummary()

        for index, show in enumerate(shows, start=1):
            if not selection.is_selected(show.sonarr_series_id):
                continue
            if self._stopping():
                break

            try:
                episodes = await self.ctx.client.list_episodes(show.sonarr_series_id)
            except CatalogError as e:
                logger.warning("Could not query episodes of %s: %s", show.title, e)
                observer.on_unit_skipped(index, total, show.title, "ERROR (could not query episodes)")
                continue

            if not episodes:
                observer.on_unit_skipped(index, total, show.title, "NO EPISODES")
                continue

            observer.on_unit(index, total, show.title, len(episodes), "episodes")
            for episode in episodes:
                if not gate.admits(episode.sonarr_episode_id):
                    summary.skipped += len(episode.subtitles)
                    continue
                if self._stopping():
                    break

                for track in episode.subtitles:
                    self.ctx.progress.report(episode.sonarr_episode_id)
                    result = await processor.process(
                        CacheKind.SHOWS, MediaKind.EPISODE, episode.sonarr_episode_id, track, episode.title
                    )
                    result.tally(summary)

            if self.ctx.progress.cancelled:
                break

        self._check_marker(gate)
        observer.on_summary(summary)
        return summary
