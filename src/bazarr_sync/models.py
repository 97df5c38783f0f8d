"""Data models for bazarr-bulk-sync."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MediaKind(str, Enum):
    """Media type as understood by the Bazarr subtitles endpoint."""

    MOVIE = "movie"
    EPISODE = "episode"


class CacheKind(str, Enum):
    """Scope of a skip-cache file."""

    MOVIES = "movies"
    SHOWS = "shows"


class OutcomeStatus(str, Enum):
    """Semantic result of a single sync request."""

    SUCCESS = "success"
    ALREADY_IN_SYNC = "already_in_sync"
    FAILURE = "failure"


class SubtitleTrack(BaseModel):
    """A subtitle file attached to a movie or episode."""

    path: str | None = ""  # Empty for embedded subtitles
    code2: str = ""
    file_size: int | None = 0

    model_config = ConfigDict(extra="ignore")

    @property
    def eligible(self) -> bool:
        """External subtitles with content are the only ones Bazarr can sync."""
        return bool(self.path) and bool(self.file_size)


class Movie(BaseModel):
    """Movie entry from GET /api/movies."""

    title: str = ""
    radarr_id: int = Field(alias="radarrId")
    monitored: bool = False
    imdb_id: str | None = Field(alias="imdbId", default=None)
    subtitles: list[SubtitleTrack] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def external_id(self) -> int:
        return self.radarr_id


class Show(BaseModel):
    """Series entry from GET /api/series."""

    title: str = ""
    sonarr_series_id: int = Field(alias="sonarrSeriesId")
    monitored: bool = False
    imdb_id: str | None = Field(alias="imdbId", default=None)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def external_id(self) -> int:
        return self.sonarr_series_id


class Episode(BaseModel):
    """Episode entry from GET /api/episodes."""

    title: str = ""
    sonarr_episode_id: int = Field(alias="sonarrEpisodeId")
    monitored: bool = False
    subtitles: list[SubtitleTrack] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def external_id(self) -> int:
        return self.sonarr_episode_id


class SyncRequest(BaseModel):
    """Parameters of one PATCH /api/subtitles?action=sync call."""

    media_kind: MediaKind
    external_id: int
    path: str
    language: str
    use_golden_section: bool = False
    fix_framerate: bool = True

    model_config = ConfigDict(frozen=True)

    def to_params(self) -> dict[str, str]:
        """Render as the query string Bazarr expects."""
        return {
            "path": self.path,
            "id": str(self.external_id),
            "action": "sync",
            "language": self.language,
            "type": self.media_kind.value,
            "gss": str(self.use_golden_section),
            "no_fix_framerate": str(not self.fix_framerate),
        }


class SyncOutcome(BaseModel):
    """Classified response of a sync request."""

    status: OutcomeStatus
    message: str = ""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def success(cls) -> "SyncOutcome":
        return cls(status=OutcomeStatus.SUCCESS, message="success")

    @classmethod
    def already_in_sync(cls, reason: str) -> "SyncOutcome":
        return cls(status=OutcomeStatus.ALREADY_IN_SYNC, message=reason)

    @classmethod
    def failure(cls, reason: str) -> "SyncOutcome":
        return cls(status=OutcomeStatus.FAILURE, message=reason)

    @property
    def ok(self) -> bool:
        """Whether the subtitle can be considered synced."""
        return self.status is not OutcomeStatus.FAILURE


class SyncSummary(BaseModel):
    """Counters accumulated over a traversal."""

    newly_synced: int = 0
    already_in_sync: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.newly_synced + self.already_in_sync + self.skipped + self.failed

    def merge(self, other: "SyncSummary") -> "SyncSummary":
        """Return a new summary with both sets of counters added."""
        return SyncSummary(
            newly_synced=self.newly_synced + other.newly_synced,
            already_in_sync=self.already_in_sync + other.already_in_sync,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
        )


class ResumeDirective(BaseModel):
    """What an interrupted run tells the operator."""

    last_seen_id: int | None = None
    command: str | None = None  # Full command line to continue from last_seen_id

    @property
    def has_marker(self) -> bool:
        return self.last_seen_id is not None
