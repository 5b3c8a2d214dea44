"""
TMDB client for CineMatch.
- Async httpx client, one short-lived connection per call.
- Raises on HTTP failure; retry/backoff is applied by the caller
  (see rate_limit.with_catalog_retry).
- No in-module caching; poster bytes are cached by PosterCache.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from cinematch.core.config import settings
from cinematch.core.errors import UpstreamUnavailable
from cinematch.models import tmdb_media_type

logger = logging.getLogger(__name__)

SEARCH_TIMEOUT = 5
LIST_TIMEOUT = 15
TV_POOL_TIMEOUT = 20


class TMDBClient:
    """Thin async wrapper over the TMDB v3 REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        image_base: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.tmdb_api_key
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.image_base = (image_base or settings.tmdb_image_base).rstrip("/")
        self.timeout = timeout or settings.tmdb_timeout_seconds
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout or self.timeout, transport=self.transport)

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Dict[str, Any]:
        if not self.api_key:
            logger.warning("TMDB API key not configured")
            raise UpstreamUnavailable("TMDB API key not configured", service="tmdb_api")
        query = {"api_key": self.api_key}
        for key, value in (params or {}).items():
            if value is not None:
                query[key] = value
        async with self._client(timeout) as client:
            resp = await client.get(f"{self.base_url}/{path}", params=query)
            resp.raise_for_status()
            try:
                data = resp.json()
            except ValueError as e:
                raise UpstreamUnavailable(f"TMDB returned a non-JSON body for {path}: {e}", service="tmdb_api") from e
            if not isinstance(data, dict):
                raise UpstreamUnavailable(f"TMDB returned an unexpected payload for {path}", service="tmdb_api")
            return data

    async def _results(self, path: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> List[Dict[str, Any]]:
        data = await self._get(path, params, timeout)
        return list(data.get("results") or [])

    async def search_by_title(
        self,
        query: str,
        media_type: str = "movie",
        year: Optional[int] = None,
        language: Optional[str] = None,
        region: Optional[str] = None,
        page: int = 1,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Free-text search on /search/movie or /search/tv."""
        kind = tmdb_media_type(media_type)
        params: Dict[str, Any] = {
            "query": query,
            "page": page,
            "include_adult": "false",
            "language": language,
            "region": region,
        }
        if year:
            params["year" if kind == "movie" else "first_air_date_year"] = year
        return await self._results(f"search/{kind}", params, timeout)

    async def discover(self, media_type: str = "movie", filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Filtered discovery (/discover/movie, /discover/tv)."""
        params: Dict[str, Any] = {"page": 1, "include_adult": "false"}
        params.update(filters or {})
        timeout = TV_POOL_TIMEOUT if filters and "with_origin_country" in filters else None
        return await self._results(f"discover/{tmdb_media_type(media_type)}", params, timeout)

    async def get_details(self, tmdb_id: int, media_type: str = "movie", append: str = "credits,keywords") -> Dict[str, Any]:
        """Full detail payload including credits and keywords."""
        params = {"append_to_response": append, "language": "en"}
        return await self._get(f"{tmdb_media_type(media_type)}/{tmdb_id}", params)

    async def similar(self, tmdb_id: int, media_type: str = "movie") -> List[Dict[str, Any]]:
        return await self._results(f"{tmdb_media_type(media_type)}/{tmdb_id}/similar", {"page": 1, "language": "en"})

    async def recommendations(self, tmdb_id: int, media_type: str = "movie") -> List[Dict[str, Any]]:
        return await self._results(f"{tmdb_media_type(media_type)}/{tmdb_id}/recommendations", {"page": 1, "language": "en"})

    async def trending(self, media_type: str = "movie", window: str = "day") -> List[Dict[str, Any]]:
        """Trending list for a time window ('day' or 'week')."""
        timeout = LIST_TIMEOUT if tmdb_media_type(media_type) == "movie" else TV_POOL_TIMEOUT
        return await self._results(f"trending/{tmdb_media_type(media_type)}/{window}", timeout=timeout)

    async def movie_list(self, kind: str, region: Optional[str] = None) -> List[Dict[str, Any]]:
        """Curated movie lists: 'upcoming', 'now_playing' or 'popular'."""
        if kind not in ("upcoming", "now_playing", "popular"):
            raise ValueError(f"Unknown movie list: {kind}")
        return await self._results(f"movie/{kind}", {"region": region, "page": 1}, LIST_TIMEOUT)

    async def tv_popular(self) -> List[Dict[str, Any]]:
        return await self._results("tv/popular", {"page": 1}, TV_POOL_TIMEOUT)

    async def fetch_image(self, image_path: str) -> bytes:
        """Download raw image bytes (posters, backdrops)."""
        async with self._client() as client:
            resp = await client.get(f"{self.image_base}{image_path}")
            resp.raise_for_status()
            return resp.content
