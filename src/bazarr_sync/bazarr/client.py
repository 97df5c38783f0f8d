"""Bazarr API client."""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..config import Config
from ..models import Episode, Movie, Show, SyncRequest

logger = logging.getLogger(__name__)

# Listings must answer within 30s; syncing a subtitle can take minutes
DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)
SYNC_TIMEOUT = httpx.Timeout(None)


class CatalogError(Exception):
    """A listing request failed (transport error, non-200 status or bad body)."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DecodeError(CatalogError):
    """The response body could not be decoded into the expected records."""


class BazarrClient:
    """Async client for the Bazarr REST API."""

    def __init__(
        self,
        config: Config,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.api_url = config.api_url
        self.headers = {"X-API-KEY": config.api_token}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                headers=self.headers,
                timeout=DEFAULT_TIMEOUT,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BazarrClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _get_data(self, endpoint: str, **kwargs: Any) -> list[dict[str, Any]]:
        """GET a listing endpoint and return its `data` array."""
        client = await self._get_client()
        try:
            response = await client.get(endpoint, **kwargs)
        except httpx.HTTPError as e:
            raise CatalogError(f"Connection error on {endpoint}: {e}") from e

        if response.status_code != 200:
            raise CatalogError(
                f"GET {endpoint} returned status {response.status_code}. "
                "Are you sure the address/port are correct?",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise DecodeError(
                f"Could not decode response of {endpoint}: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise DecodeError(
                f"Unexpected response shape from {endpoint}",
                status_code=response.status_code,
                body=response.text,
            )
        return payload["data"]

    # ========== Catalog ==========

    async def list_movies(self) -> list[Movie]:
        """Get every movie known to Bazarr."""
        data = await self._get_data("movies")
        try:
            movies = [Movie.model_validate(item) for item in data]
        except ValidationError as e:
            raise DecodeError(f"Invalid movie record: {e}") from e
        logger.debug("Found %d movies", len(movies))
        return movies

    async def list_shows(self) -> list[Show]:
        """Get every series known to Bazarr."""
        data = await self._get_data("series")
        try:
            shows = [Show.model_validate(item) for item in data]
        except ValidationError as e:
            raise DecodeError(f"Invalid series record: {e}") from e
        logger.debug("Found %d series", len(shows))
        return shows

    async def list_episodes(self, series_id: int) -> list[Episode]:
        """Get the episodes of one series."""
        data = await self._get_data("episodes", params={"seriesid[]": str(series_id)})
        try:
            episodes = [Episode.model_validate(item) for item in data]
        except ValidationError as e:
            raise DecodeError(f"Invalid episode record for series {series_id}: {e}") from e
        logger.debug("Series %d has %d episodes", series_id, len(episodes))
        return episodes

    # ========== Sync ==========

    async def patch_subtitle(self, request: SyncRequest) -> httpx.Response:
        """Ask Bazarr to sync one subtitle. Transport errors propagate as httpx.HTTPError."""
        client = await self._get_client()
        logger.debug("PATCH subtitles %s", request.to_params())
        return await client.patch(
            "subtitles",
            params=request.to_params(),
            timeout=SYNC_TIMEOUT,
        )

    # ========== Health Check ==========

    async def get_version(self) -> str | None:
        """Get the Bazarr version, or None if the server is unreachable."""
        client = await self._get_client()
        try:
            response = await client.get("system/status")
            response.raise_for_status()
            return response.json().get("data", {}).get("bazarr_version")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("Health check FAILED: %s", e)
            return None

    async def health_check(self) -> bool:
        """Check if the server is reachable."""
        return await self.get_version() is not None
