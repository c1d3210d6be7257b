"""Tests for metadata resolution and its cache."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from app.config import Settings
from app.models import CanonicalId, ImdbId, MetadataEntry
from app.services.metadata_addon import MetadataAddonClient
from app.services.resolver import (
    MISSING,
    CinemetaStrategy,
    MetadataResolver,
    TMDBStrategy,
)
from app.services.tmdb import TMDBClient


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


class CountingStrategy:
    """Strategy returning a fixed entry and counting its invocations."""

    def __init__(
        self,
        entry: MetadataEntry | None,
        *,
        name: str = "counting",
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.entry = entry
        self.delay = delay
        self.error = error
        self.calls = 0

    def supports(self, canonical_id: CanonicalId) -> bool:
        return True

    async def resolve(self, canonical_id: CanonicalId, content_type: Any) -> MetadataEntry | None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.entry


INCEPTION = MetadataEntry(id="tt1375666", name="Inception", type="movie")


@pytest.mark.anyio("asyncio")
async def test_results_are_cached_until_ttl_expires() -> None:
    clock = FakeClock()
    strategy = CountingStrategy(INCEPTION)
    resolver = MetadataResolver([strategy], ttl_seconds=60, clock=clock)

    assert await resolver.resolve("tt1375666") == INCEPTION
    assert await resolver.resolve("tt1375666") == INCEPTION
    assert strategy.calls == 1

    clock.now += 61
    assert await resolver.resolve("tt1375666") == INCEPTION
    assert strategy.calls == 2


@pytest.mark.anyio("asyncio")
async def test_misses_are_cached() -> None:
    strategy = CountingStrategy(None)
    resolver = MetadataResolver([strategy], ttl_seconds=60, clock=FakeClock())

    assert await resolver.resolve("tt0000001") is None
    assert await resolver.resolve("tt0000001") is None
    assert strategy.calls == 1
    assert resolver.cached("tt0000001") is MISSING


@pytest.mark.anyio("asyncio")
async def test_unrecognised_ids_skip_providers() -> None:
    strategy = CountingStrategy(INCEPTION)
    resolver = MetadataResolver([strategy])

    assert await resolver.resolve("inception") is None
    assert await resolver.resolve("imdb:tt1") is None
    assert strategy.calls == 0


@pytest.mark.anyio("asyncio")
async def test_concurrent_lookups_share_one_request() -> None:
    strategy = CountingStrategy(INCEPTION, delay=0.01)
    resolver = MetadataResolver([strategy])

    first, second = await asyncio.gather(
        resolver.resolve("tt1375666"), resolver.resolve("tt1375666")
    )

    assert first == second == INCEPTION
    assert strategy.calls == 1


@pytest.mark.anyio("asyncio")
async def test_failing_provider_falls_through_to_next() -> None:
    broken = CountingStrategy(None, name="broken", error=RuntimeError("down"))
    fallback = CountingStrategy(INCEPTION, name="fallback")
    resolver = MetadataResolver([broken, fallback])

    assert await resolver.resolve("tt1375666") == INCEPTION
    assert (broken.calls, fallback.calls) == (1, 1)


@pytest.mark.anyio("asyncio")
async def test_timeout_stops_the_chain() -> None:
    slow = CountingStrategy(INCEPTION, name="slow", delay=1.0)
    fallback = CountingStrategy(INCEPTION, name="fallback")
    resolver = MetadataResolver([slow, fallback], timeout_seconds=0.05)

    assert await resolver.resolve("tt1375666") is None
    assert fallback.calls == 0


@pytest.mark.anyio("asyncio")
async def test_cinemeta_tries_series_then_movie() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path == "/meta/movie/tt1375666.json":
            return httpx.Response(
                200,
                json={
                    "meta": {
                        "id": "tt1375666",
                        "name": "Inception",
                        "poster": "https://images.test/inception.jpg",
                        "year": 2010,
                    }
                },
            )
        return httpx.Response(404)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as http_client:
        strategy = CinemetaStrategy(MetadataAddonClient(http_client, "https://cinemeta.test"))
        entry = await strategy.resolve(ImdbId("tt1375666"), None)

    assert requested == ["/meta/series/tt1375666.json", "/meta/movie/tt1375666.json"]
    assert entry is not None
    assert entry.type == "movie"
    assert entry.name == "Inception"
    assert entry.poster == "https://images.test/inception.jpg"
    assert entry.release_info == "2010"


@pytest.mark.anyio("asyncio")
async def test_cinemeta_series_videos_become_sorted_episodes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "meta": {
                    "id": "tt0903747",
                    "name": "Breaking Bad",
                    "videos": [
                        {"season": 1, "episode": 2, "name": "Cat's in the Bag"},
                        {"season": 1, "episode": 1, "name": "Pilot"},
                        {"season": 0, "number": 1, "name": "Special"},
                        {"name": "Trailer"},
                    ],
                }
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as http_client:
        strategy = CinemetaStrategy(MetadataAddonClient(http_client, "https://cinemeta.test"))
        entry = await strategy.resolve(ImdbId("tt0903747"), "series")

    assert entry is not None
    assert [(episode.season, episode.episode) for episode in entry.episodes] == [
        (0, 1),
        (1, 1),
        (1, 2),
    ]
    videos = entry.to_meta()["videos"]
    assert videos[1] == {"id": "tt0903747:1:1", "season": 1, "episode": 1, "title": "Pilot"}


@pytest.mark.anyio("asyncio")
async def test_tmdb_id_resolves_to_imdb_cross_reference() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["api_key"] == "tmdb-key"
        path = request.url.path
        if path == "/3/tv/1396":
            return httpx.Response(
                200,
                json={
                    "name": "Breaking Bad",
                    "poster_path": "/bb.jpg",
                    "first_air_date": "2008-01-20",
                    "external_ids": {"imdb_id": "tt0903747"},
                    "seasons": [{"season_number": 1}],
                },
            )
        if path == "/3/tv/1396/season/1":
            return httpx.Response(
                200,
                json={"episodes": [{"episode_number": 1, "name": "Pilot", "still_path": "/p.jpg"}]},
            )
        return httpx.Response(404)

    settings = Settings(_env_file=None, TMDB_KEY="tmdb-key")  # type: ignore[call-arg]
    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.test/3") as http_client:
        resolver = MetadataResolver([TMDBStrategy(TMDBClient(settings, http_client))])
        entry = await resolver.resolve("tmdb:1396", "series")

    assert entry is not None
    assert entry.id == "tt0903747"
    assert entry.tmdb_id == "1396"
    assert entry.release_info == "2008"
    assert entry.poster == "https://image.tmdb.org/t/p/w500/bb.jpg"
    assert [episode.id for episode in entry.episodes] == ["tt0903747:1:1"]
    assert entry.episodes[0].thumbnail == "https://image.tmdb.org/t/p/w300/p.jpg"


@pytest.mark.anyio("asyncio")
async def test_tmdb_find_keeps_requested_imdb_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/3/find/tt1375666":
            return httpx.Response(
                200,
                json={"movie_results": [{"id": 27205, "title": "Incepcja"}], "tv_results": []},
            )
        if path == "/3/movie/27205":
            return httpx.Response(
                200,
                json={"title": "Incepcja", "release_date": "2010-07-15", "external_ids": {}},
            )
        return httpx.Response(404)

    settings = Settings(_env_file=None, TMDB_KEY="tmdb-key")  # type: ignore[call-arg]
    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.test/3") as http_client:
        strategy = TMDBStrategy(TMDBClient(settings, http_client))
        entry = await strategy.resolve(ImdbId("tt1375666"), "movie")

    assert entry is not None
    assert entry.id == "tt1375666"
    assert entry.name == "Incepcja"
    assert entry.type == "movie"


def test_tmdb_client_requires_key() -> None:
    settings = Settings(_env_file=None, TMDB_KEY="")  # type: ignore[call-arg]

    with pytest.raises(ValueError):
        TMDBClient(settings, httpx.AsyncClient())
