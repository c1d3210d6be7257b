"""Utilities for resolving metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
STILL_BASE_URL = "https://image.tmdb.org/t/p/w300"
PAGE_SIZE = 20

WATCH_PROVIDERS: dict[str, str] = {
    "netflix": "8",
    "hbo": "384",
    "disney": "337",
    "amazon": "119",
    "apple": "350",
}


@dataclass(slots=True)
class TMDBFindResult:
    """First hit of an external id lookup."""

    tmdb_id: int
    content_type: str
    title: str
    poster_path: str | None


class TMDBClient:
    """Client for TMDB detail, season and discovery endpoints."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def _get(self, endpoint: str, **params: Any) -> dict[str, Any] | None:
        query = {
            "api_key": self._settings.tmdb_api_key,
            "language": self._settings.tmdb_language,
            **params,
        }
        try:
            response = await self._client.get(endpoint, params=query)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request %s failed: %s", endpoint, exc)
            return None
        if response.status_code >= 400:
            logger.debug(
                "TMDB request %s failed: HTTP %s", endpoint, response.status_code
            )
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Unexpected non-JSON TMDB response for %s", endpoint)
            return None
        return payload if isinstance(payload, dict) else None

    async def find_by_imdb(
        self, imdb_id: str, *, content_type: str | None = None
    ) -> TMDBFindResult | None:
        """Look up a TMDB entity by IMDb id, preferring ``content_type`` hits."""

        data = await self._get(f"/find/{imdb_id}", external_source="imdb_id")
        if not data:
            return None
        movie_hits = [hit for hit in data.get("movie_results") or [] if isinstance(hit, dict)]
        tv_hits = [hit for hit in data.get("tv_results") or [] if isinstance(hit, dict)]
        ordered = [("movie", movie_hits), ("series", tv_hits)]
        if content_type == "series":
            ordered.reverse()
        for hit_type, hits in ordered:
            if not hits:
                continue
            hit = hits[0]
            try:
                tmdb_id = int(hit["id"])
            except (KeyError, TypeError, ValueError):
                continue
            return TMDBFindResult(
                tmdb_id=tmdb_id,
                content_type=hit_type,
                title=str(hit.get("title") or hit.get("name") or imdb_id),
                poster_path=hit.get("poster_path"),
            )
        return None

    async def details(self, tmdb_id: int | str, content_type: str) -> dict[str, Any] | None:
        """Fetch details together with the external id cross-reference."""

        endpoint = f"/{self._kind(content_type)}/{tmdb_id}"
        return await self._get(endpoint, append_to_response="external_ids")

    async def season(self, tmdb_id: int | str, season_number: int) -> dict[str, Any] | None:
        return await self._get(f"/tv/{tmdb_id}/season/{season_number}")

    async def catalog(
        self, content_type: str, catalog_id: str, *, skip: int = 0
    ) -> list[dict[str, Any]]:
        """Return Stremio metas for a discovery catalog.

        Stremio pages with ``skip`` in steps of 20, which maps onto TMDB pages.
        Two pages are fetched per request so scrolling stays smooth.
        """

        kind = self._kind(content_type)
        params: dict[str, Any] = {
            "region": self._settings.tmdb_region,
            "include_adult": "false",
        }
        if catalog_id == "trending":
            endpoint = f"/trending/{kind}/week"
        elif catalog_id == "top_rated":
            endpoint = f"/{kind}/top_rated"
        elif catalog_id in WATCH_PROVIDERS:
            endpoint = f"/discover/{kind}"
            params.update(
                {
                    "with_watch_providers": WATCH_PROVIDERS[catalog_id],
                    "watch_region": self._settings.tmdb_region,
                    "sort_by": "popularity.desc",
                }
            )
        else:
            return []

        start_page = max(0, skip) // PAGE_SIZE + 1
        results: list[dict[str, Any]] = []
        for page in (start_page, start_page + 1):
            data = await self._get(endpoint, page=page, **params)
            if not data or not isinstance(data.get("results"), list):
                break
            results.extend(item for item in data["results"] if isinstance(item, dict))

        metas: list[dict[str, Any]] = []
        for item in results:
            if not item.get("poster_path") or item.get("id") is None:
                continue
            metas.append(
                {
                    "id": f"tmdb:{item['id']}",
                    "type": content_type,
                    "name": item.get("title") or item.get("name"),
                    "poster": self.build_image_url(item["poster_path"]),
                    "description": item.get("overview"),
                    "releaseInfo": self.extract_year(item),
                }
            )
        return metas

    @staticmethod
    def _kind(content_type: str) -> str:
        return "tv" if content_type == "series" else "movie"

    @staticmethod
    def extract_year(result: dict[str, Any]) -> str:
        date_value = result.get("release_date") or result.get("first_air_date") or ""
        if not isinstance(date_value, str):
            return ""
        return date_value[:4]

    @staticmethod
    def build_image_url(path: str | None, base_url: str = POSTER_BASE_URL) -> str | None:
        if not path:
            return None
        if path.startswith("http"):
            return path
        return f"{base_url}{path}"
