"""Shared fixtures: a fake Bazarr server behind httpx.MockTransport."""

from typing import Any

import httpx
import pytest

from bazarr_sync.bazarr import BazarrClient
from bazarr_sync.config import CacheConfig, Config, SyncOptionsConfig
from bazarr_sync.sync import CacheStore, OrchestratorContext, Selection, SyncObserver


def subtitle(path: str, code2: str = "en", file_size: int = 1024) -> dict[str, Any]:
    return {"path": path, "code2": code2, "file_size": file_size}


def movie(radarr_id: int, *subtitles: dict[str, Any], title: str | None = None) -> dict[str, Any]:
    return {
        "title": title or f"Movie {radarr_id}",
        "radarrId": radarr_id,
        "monitored": True,
        "imdbId": f"tt{radarr_id:07d}",
        "subtitles": list(subtitles),
    }


def series(series_id: int, title: str | None = None) -> dict[str, Any]:
    return {"title": title or f"Show {series_id}", "sonarrSeriesId": series_id, "monitored": True}


def episode(episode_id: int, *subtitles: dict[str, Any]) -> dict[str, Any]:
    return {
        "title": f"Episode {episode_id}",
        "sonarrEpisodeId": episode_id,
        "monitored": True,
        "subtitles": list(subtitles),
    }


class FakeBazarr:
    """Request handler imitating the Bazarr endpoints used by the client."""

    def __init__(self) -> None:
        self.movies: list[dict[str, Any]] = []
        self.series: list[dict[str, Any]] = []
        self.episodes: dict[int, list[dict[str, Any]]] = {}
        self.sync_responses: list[httpx.Response] = []  # Consumed in order, then 204
        self.sync_calls: list[dict[str, str]] = []
        self.requests: list[httpx.Request] = []
        self.failing_endpoints: set[str] = set()
        self.failing_series: set[int] = set()
        self.version = "1.4.2"

    def synced_ids(self) -> list[int]:
        return [int(call["id"]) for call in self.sync_calls]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.removeprefix("/api/") in self.failing_endpoints:
            return httpx.Response(500, text="internal error")

        if request.method == "PATCH" and path == "/api/subtitles":
            self.sync_calls.append(dict(request.url.params))
            if self.sync_responses:
                return self.sync_responses.pop(0)
            return httpx.Response(204)

        if path == "/api/movies":
            return httpx.Response(200, json={"data": self.movies})
        if path == "/api/series":
            return httpx.Response(200, json={"data": self.series})
        if path == "/api/episodes":
            series_id = int(request.url.params["seriesid[]"])
            if series_id in self.failing_series:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json={"data": self.episodes.get(series_id, [])})
        if path == "/api/system/status":
            return httpx.Response(200, json={"data": {"bazarr_version": self.version}})

        return httpx.Response(404)


class RecordingObserver(SyncObserver):
    """Collects the callbacks a traversal makes."""

    def __init__(self) -> None:
        self.units: list[str] = []
        self.skipped_units: list[tuple[str, str]] = []
        self.tracks: list[tuple[str, Any]] = []
        self.retries: list[str] = []
        self.summaries: list[Any] = []

    def on_unit(self, index, total, title, count, noun):
        self.units.append(title)

    def on_unit_skipped(self, index, total, title, reason):
        self.skipped_units.append((title, reason))

    def on_retry(self, label, language, message):
        self.retries.append(message)

    def on_track(self, label, language, result):
        self.tracks.append((label, result.state))

    def on_summary(self, summary):
        self.summaries.append(summary)


@pytest.fixture
def config(tmp_path):
    """Test configuration with caching on and no delays."""
    return Config(
        address="bazarr",
        port="6767",
        protocol="http",
        api_token="secret-token",
        cache=CacheConfig(
            enabled=True,
            movies_cache=str(tmp_path / "movies-cache"),
            shows_cache=str(tmp_path / "shows-cache"),
        ),
        sync_options=SyncOptionsConfig(retry_delay_seconds=0, item_delay_seconds=0),
    )


@pytest.fixture
def fake_bazarr():
    return FakeBazarr()


@pytest.fixture
async def client(config, fake_bazarr):
    """Bazarr client wired to the fake server."""
    bazarr = BazarrClient(config, transport=httpx.MockTransport(fake_bazarr))
    yield bazarr
    await bazarr.close()


@pytest.fixture
def make_context(config, client):
    """Build an orchestrator context with a freshly loaded cache."""

    def _make(selection: Selection | None = None, observer: SyncObserver | None = None) -> OrchestratorContext:
        cache = CacheStore(config.cache)
        cache.load_all()
        return OrchestratorContext(
            config=config,
            client=client,
            cache=cache,
            selection=selection or Selection(),
            observer=observer or RecordingObserver(),
        )

    return _make
