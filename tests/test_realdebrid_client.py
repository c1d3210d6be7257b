"""Tests for the Real-Debrid API client."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from app.config import Settings
from app.services.realdebrid import RealDebridClient, RealDebridError


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {
        "RD_TOKEN": "secret-token",
        "SYNC_PAGE_SIZE": 2,
        "SYNC_PAGE_DELAY": 0,
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def _entry(index: int) -> dict[str, Any]:
    return {"id": f"D{index}", "filename": f"File.{index}.mkv"}


@pytest.mark.anyio("asyncio")
async def test_list_downloads_follows_pages_until_short_page() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        page = int(request.url.params["page"])
        if page == 1:
            return httpx.Response(200, json=[_entry(1), _entry(2)])
        return httpx.Response(200, json=[_entry(3)])

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://rd.test") as http_client:
        client = RealDebridClient(build_settings(), http_client)
        batch = await client.list_downloads()

    assert batch.complete is True
    assert [item["id"] for item in batch.items] == ["D1", "D2", "D3"]
    assert [request.url.params["page"] for request in requests] == ["1", "2"]
    assert all(request.url.params["limit"] == "2" for request in requests)
    assert requests[0].headers["Authorization"] == "Bearer secret-token"
    assert requests[0].url.path == "/downloads"


@pytest.mark.anyio("asyncio")
async def test_no_content_ends_listing() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["page"] == "1":
            return httpx.Response(200, json=[_entry(1), _entry(2)])
        return httpx.Response(204)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://rd.test") as http_client:
        batch = await RealDebridClient(build_settings(), http_client).list_torrents()

    assert batch.complete is True
    assert len(batch.items) == 2


@pytest.mark.anyio("asyncio")
async def test_failed_page_returns_partial_listing() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["page"] == "1":
            return httpx.Response(200, json=[_entry(1), _entry(2)])
        return httpx.Response(503, json={"error": "service_unavailable"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://rd.test") as http_client:
        batch = await RealDebridClient(build_settings(), http_client).list_downloads()

    assert batch.complete is False
    assert [item["id"] for item in batch.items] == ["D1", "D2"]


@pytest.mark.anyio("asyncio")
async def test_transport_error_returns_incomplete_listing() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://rd.test") as http_client:
        batch = await RealDebridClient(build_settings(), http_client).list_downloads()

    assert batch.complete is False
    assert batch.items == []


@pytest.mark.anyio("asyncio")
async def test_torrent_info_failure_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "unknown_ressource"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://rd.test") as http_client:
        info = await RealDebridClient(build_settings(), http_client).torrent_info("T1")

    assert info is None


@pytest.mark.anyio("asyncio")
async def test_unrestrict_link_posts_form() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.content.decode()
        return httpx.Response(200, json={"id": "D9", "download": "https://dl.test/file"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://rd.test") as http_client:
        data = await RealDebridClient(build_settings(), http_client).unrestrict_link(
            "https://hoster.test/abc"
        )

    assert data["download"] == "https://dl.test/file"
    assert seen["path"] == "/unrestrict/link"
    assert "link=https%3A%2F%2Fhoster.test%2Fabc" in seen["body"]


@pytest.mark.anyio("asyncio")
async def test_write_errors_raise_with_status() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(404, json={"error": "unknown_ressource"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://rd.test") as http_client:
        client = RealDebridClient(build_settings(), http_client)
        with pytest.raises(RealDebridError) as excinfo:
            await client.delete_download("D1")

    assert excinfo.value.status_code == 404
    assert "unknown_ressource" in str(excinfo.value)
    assert paths == ["/downloads/delete/D1"]
