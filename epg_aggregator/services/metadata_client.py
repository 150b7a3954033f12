"""TMDB catalog client for series episode metadata."""

import logging

import httpx

from epg_aggregator.exceptions import MetadataLookupFailure
from epg_aggregator.services.fetch_types import EpisodeDetails, ShowMatch

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
TMDB_STILL_BASE_URL = "https://image.tmdb.org/t/p/w300"


class TMDBClient:
    """Async client for show search and episode lookup."""

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 4.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=TMDB_BASE_URL,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def _get(self, path: str, **params) -> dict:
        try:
            response = await self.client.get(path, params={"api_key": self.api_key, **params})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise MetadataLookupFailure(f"{path}: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise MetadataLookupFailure(f"{path}: {type(e).__name__}") from e
        except ValueError as e:
            raise MetadataLookupFailure(f"{path}: invalid JSON") from e

        if not isinstance(data, dict):
            raise MetadataLookupFailure(f"{path}: expected a JSON object")
        return data

    async def search_show(self, name: str) -> ShowMatch | None:
        """Return the best TV match for a show name, or None when nothing matches."""
        data = await self._get("/search/tv", query=name, include_adult="false")
        results = data.get("results") or []
        if not results:
            logger.debug("[TMDB] No match for %r", name)
            return None

        best = results[0]
        if not isinstance(best, dict) or best.get("id") is None:
            raise MetadataLookupFailure(f"/search/tv: malformed result for {name!r}")

        try:
            show_id = int(best["id"])
        except (TypeError, ValueError) as e:
            raise MetadataLookupFailure(f"/search/tv: non-numeric id {best['id']!r}") from e

        poster_path = best.get("poster_path")
        return ShowMatch(
            show_id=show_id,
            name=best.get("name") or name,
            poster_ref=f"{TMDB_POSTER_BASE_URL}{poster_path}" if poster_path else None,
        )

    async def get_episode(self, show_id: int, season: int, episode: int) -> EpisodeDetails:
        """Fetch a specific season/episode record."""
        data = await self._get(f"/tv/{show_id}/season/{season}/episode/{episode}")
        still_path = data.get("still_path")
        return EpisodeDetails(
            name=data.get("name") or None,
            overview=data.get("overview") or None,
            still_ref=f"{TMDB_STILL_BASE_URL}{still_path}" if still_path else None,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
