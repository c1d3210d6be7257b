"""Canonical identity lookup backed by an ordered chain of metadata providers."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Protocol, Sequence

from ..models import (
    CanonicalId,
    ContentType,
    Episode,
    ImdbId,
    MetadataEntry,
    ProviderId,
    parse_canonical_id,
)
from .metadata_addon import MetadataAddonClient
from .tmdb import STILL_BASE_URL, TMDBClient

logger = logging.getLogger(__name__)

CacheKey = tuple[str, "str | None"]


class ResolverStrategy(Protocol):
    """One provider in the resolution chain."""

    name: str

    def supports(self, canonical_id: CanonicalId) -> bool: ...

    async def resolve(
        self, canonical_id: CanonicalId, content_type: ContentType | None
    ) -> MetadataEntry | None: ...


def _type_order(content_type: ContentType | None) -> tuple[ContentType, ...]:
    if content_type == "movie":
        return ("movie", "series")
    return ("series", "movie")


def sort_episodes(episodes: Sequence[Episode]) -> tuple[Episode, ...]:
    unique = {(episode.season, episode.episode): episode for episode in episodes}
    return tuple(unique[key] for key in sorted(unique))


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class CinemetaStrategy:
    """Resolves IMDb ids through a Cinemeta-compatible add-on."""

    name = "cinemeta"

    def __init__(self, client: MetadataAddonClient):
        self._client = client

    def supports(self, canonical_id: CanonicalId) -> bool:
        return isinstance(canonical_id, ImdbId)

    async def resolve(
        self, canonical_id: CanonicalId, content_type: ContentType | None
    ) -> MetadataEntry | None:
        for candidate_type in _type_order(content_type):
            meta = await self._client.fetch_meta(candidate_type, str(canonical_id))
            if meta is None:
                continue
            entry_id = str(meta.get("imdb_id") or meta.get("id") or canonical_id)
            name = str(meta.get("name") or "").strip()
            if not name:
                continue
            episodes: tuple[Episode, ...] = ()
            if candidate_type == "series":
                episodes = self._episodes(entry_id, meta.get("videos"))
            return MetadataEntry(
                id=entry_id,
                name=name,
                type=candidate_type,
                poster=self._client.ensure_url(meta.get("poster")),
                description=_as_text(meta.get("description")),
                release_info=_as_text(meta.get("releaseInfo") or meta.get("year")),
                episodes=episodes,
            )
        return None

    @staticmethod
    def _episodes(entry_id: str, videos: Any) -> tuple[Episode, ...]:
        if not isinstance(videos, list):
            return ()
        episodes: list[Episode] = []
        for video in videos:
            if not isinstance(video, dict):
                continue
            season = _as_int(video.get("season"))
            number = _as_int(video.get("episode") or video.get("number"))
            if season is None or number is None:
                continue
            episodes.append(
                Episode(
                    id=f"{entry_id}:{season}:{number}",
                    season=season,
                    episode=number,
                    title=video.get("name") or video.get("title"),
                    released=video.get("released"),
                    thumbnail=MetadataAddonClient.ensure_url(video.get("thumbnail")),
                )
            )
        return sort_episodes(episodes)


class TMDBStrategy:
    """Resolves TMDB ids directly and IMDb ids through TMDB's find endpoint."""

    name = "tmdb"

    def __init__(self, client: TMDBClient):
        self._client = client

    def supports(self, canonical_id: CanonicalId) -> bool:
        if isinstance(canonical_id, ProviderId):
            return canonical_id.provider == "tmdb"
        return isinstance(canonical_id, ImdbId)

    async def resolve(
        self, canonical_id: CanonicalId, content_type: ContentType | None
    ) -> MetadataEntry | None:
        if isinstance(canonical_id, ImdbId):
            hit = await self._client.find_by_imdb(
                canonical_id.value, content_type=content_type
            )
            if hit is None:
                return None
            entry = await self._resolve_details(hit.tmdb_id, hit.content_type)
            if entry is None:
                return MetadataEntry(
                    id=canonical_id.value,
                    name=hit.title,
                    type=hit.content_type,  # type: ignore[arg-type]
                    poster=self._client.build_image_url(hit.poster_path),
                    tmdb_id=str(hit.tmdb_id),
                )
            if entry.id != canonical_id.value:
                entry = self._rekey(entry, canonical_id.value)
            return entry

        for candidate_type in ((content_type,) if content_type else _type_order(None)):
            entry = await self._resolve_details(canonical_id.value, candidate_type)
            if entry is not None:
                return entry
        return None

    async def _resolve_details(
        self, tmdb_id: int | str, content_type: ContentType
    ) -> MetadataEntry | None:
        data = await self._client.details(tmdb_id, content_type)
        if not data:
            return None
        external = data.get("external_ids") or {}
        imdb_id = data.get("imdb_id") or external.get("imdb_id")
        entry_id = imdb_id if parse_canonical_id(imdb_id) else f"tmdb:{tmdb_id}"
        name = data.get("title") or data.get("name")
        if not name:
            return None
        episodes: tuple[Episode, ...] = ()
        if content_type == "series":
            episodes = await self._episodes(entry_id, tmdb_id, data.get("seasons"))
        return MetadataEntry(
            id=entry_id,
            name=str(name),
            type=content_type,
            poster=self._client.build_image_url(data.get("poster_path")),
            tmdb_id=str(tmdb_id),
            description=data.get("overview"),
            release_info=self._client.extract_year(data) or None,
            episodes=episodes,
        )

    async def _episodes(
        self, entry_id: str, tmdb_id: int | str, seasons: Any
    ) -> tuple[Episode, ...]:
        if not isinstance(seasons, list):
            return ()
        found: set[int] = set()
        for season in seasons:
            if isinstance(season, dict):
                number = _as_int(season.get("season_number"))
                if number is not None:
                    found.add(number)
        numbers = sorted(found)
        payloads = await asyncio.gather(
            *(self._client.season(tmdb_id, number) for number in numbers)
        )
        episodes: list[Episode] = []
        for season_number, payload in zip(numbers, payloads):
            if not payload:
                continue
            for raw in payload.get("episodes") or []:
                if not isinstance(raw, dict):
                    continue
                number = _as_int(raw.get("episode_number"))
                if number is None:
                    continue
                episodes.append(
                    Episode(
                        id=f"{entry_id}:{season_number}:{number}",
                        season=season_number,
                        episode=number,
                        title=raw.get("name"),
                        released=raw.get("air_date"),
                        thumbnail=self._client.build_image_url(
                            raw.get("still_path"), STILL_BASE_URL
                        ),
                    )
                )
        return sort_episodes(episodes)

    @staticmethod
    def _rekey(entry: MetadataEntry, entry_id: str) -> MetadataEntry:
        episodes = tuple(
            episode.model_copy(
                update={"id": f"{entry_id}:{episode.season}:{episode.episode}"}
            )
            for episode in entry.episodes
        )
        return entry.model_copy(update={"id": entry_id, "episodes": episodes})


class _Missing:
    """Cached marker for ids that resolved to nothing."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class MetadataResolver:
    """Read-through cache in front of the strategy chain.

    Results, including misses, are cached per ``(id, type)`` for
    ``ttl_seconds``. Concurrent lookups of the same key share one request.
    """

    def __init__(
        self,
        strategies: Sequence[ResolverStrategy],
        *,
        ttl_seconds: float = 86_400,
        timeout_seconds: float = 20.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._strategies = tuple(strategies)
        self._ttl = ttl_seconds
        self._timeout = timeout_seconds
        self._clock = clock
        self._cache: dict[CacheKey, tuple[float, MetadataEntry | _Missing]] = {}
        self._inflight: dict[CacheKey, asyncio.Task[MetadataEntry | None]] = {}

    def cached(
        self, raw_id: str, content_type: ContentType | None = None
    ) -> MetadataEntry | _Missing | None:
        """Return the cached value for a key, ``None`` when absent or expired."""

        cached = self._cache.get((raw_id, content_type))
        if cached is None:
            return None
        expires_at, value = cached
        if expires_at <= self._clock():
            self._cache.pop((raw_id, content_type), None)
            return None
        return value

    async def resolve(
        self, raw_id: str, content_type: ContentType | None = None
    ) -> MetadataEntry | None:
        """Return the metadata for an id, or ``None`` when no provider knows it."""

        raw_id = (raw_id or "").strip()
        canonical_id = parse_canonical_id(raw_id)
        if canonical_id is None:
            logger.info("Ignoring unrecognised metadata id %r", raw_id)
            return None
        key: CacheKey = (str(canonical_id), content_type)

        cached = self.cached(*key)
        if cached is MISSING:
            return None
        if isinstance(cached, MetadataEntry):
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._resolve_uncached(canonical_id, content_type))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def _resolve_uncached(
        self, canonical_id: CanonicalId, content_type: ContentType | None
    ) -> MetadataEntry | None:
        key: CacheKey = (str(canonical_id), content_type)
        entry = await self._run_chain(canonical_id, content_type)
        self._cache[key] = (self._clock() + self._ttl, entry or MISSING)
        if entry is None:
            logger.info("No metadata found for %s", canonical_id)
        return entry

    async def _run_chain(
        self, canonical_id: CanonicalId, content_type: ContentType | None
    ) -> MetadataEntry | None:
        deadline = time.monotonic() + self._timeout
        for strategy in self._strategies:
            if not strategy.supports(canonical_id):
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("Metadata lookup budget exhausted for %s", canonical_id)
                break
            try:
                entry = await asyncio.wait_for(
                    strategy.resolve(canonical_id, content_type), timeout=remaining
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Metadata provider %s timed out for %s", strategy.name, canonical_id
                )
                break
            except Exception as exc:
                logger.warning(
                    "Metadata provider %s failed for %s: %s",
                    strategy.name,
                    canonical_id,
                    exc,
                )
                continue
            if entry is not None:
                return entry
        return None
