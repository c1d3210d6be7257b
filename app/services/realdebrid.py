"""Client for the Real-Debrid account REST API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)


class RealDebridError(RuntimeError):
    """Raised when a write operation is refused by the account service."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class PageBatch:
    """Items collected from a paginated listing.

    ``complete`` is False when a page failed and the listing stopped early.
    """

    items: list[dict[str, Any]] = field(default_factory=list)
    complete: bool = True


class RealDebridClient:
    """Thin wrapper around the Real-Debrid HTTP API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": f"{self._settings.app_name} (debridshelf)"}
        if self._settings.rd_token:
            headers["Authorization"] = f"Bearer {self._settings.rd_token}"
        return headers

    async def list_downloads(self) -> PageBatch:
        """Return every entry of the downloads list."""

        return await self._fetch_all("/downloads")

    async def list_torrents(self) -> PageBatch:
        """Return every entry of the torrents list without file details."""

        return await self._fetch_all("/torrents")

    async def _fetch_all(self, path: str) -> PageBatch:
        page_size = self._settings.sync_page_size
        collected: list[dict[str, Any]] = []
        page = 1

        while True:
            params = {"limit": page_size, "page": page}
            try:
                response = await self._client.get(
                    path, headers=self._headers(), params=params
                )
            except httpx.HTTPError as exc:
                logger.warning(
                    "Failed to fetch %s page %s (%s): %s",
                    path,
                    page,
                    exc.__class__.__name__,
                    exc,
                )
                return PageBatch(items=collected, complete=False)

            # Real-Debrid answers 204 once the page index runs past the list.
            if response.status_code == 204:
                break
            if response.status_code >= 400:
                logger.warning(
                    "Failed to fetch %s page %s: HTTP %s",
                    path,
                    page,
                    response.status_code,
                )
                return PageBatch(items=collected, complete=False)

            try:
                data = response.json()
            except ValueError:
                logger.warning("Unexpected non-JSON response for %s page %s", path, page)
                return PageBatch(items=collected, complete=False)
            if not isinstance(data, list):
                logger.warning("Unexpected response structure for %s page %s", path, page)
                return PageBatch(items=collected, complete=False)
            if not data:
                break

            collected.extend(entry for entry in data if isinstance(entry, dict))
            if len(data) < page_size:
                break
            page += 1
            await asyncio.sleep(self._settings.sync_page_delay)

        return PageBatch(items=collected, complete=True)

    async def torrent_info(self, torrent_id: str) -> dict[str, Any] | None:
        """Return the detail payload of a torrent, or ``None`` on failure."""

        try:
            response = await self._client.get(
                f"/torrents/info/{torrent_id}", headers=self._headers()
            )
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch torrent %s details: %s", torrent_id, exc)
            return None
        if response.status_code >= 400:
            logger.warning(
                "Failed to fetch torrent %s details: HTTP %s",
                torrent_id,
                response.status_code,
            )
            return None
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    async def unrestrict_link(self, link: str) -> dict[str, Any]:
        """Turn a hoster link into a direct download, registering it in the account."""

        return await self._post_form("/unrestrict/link", {"link": link})

    async def add_magnet(self, magnet: str) -> dict[str, Any]:
        return await self._post_form("/torrents/addMagnet", {"magnet": magnet})

    async def select_files(self, torrent_id: str, files: str = "all") -> None:
        await self._post_form(f"/torrents/selectFiles/{torrent_id}", {"files": files})

    async def delete_download(self, download_id: str) -> None:
        await self._delete(f"/downloads/delete/{download_id}")

    async def delete_torrent(self, torrent_id: str) -> None:
        await self._delete(f"/torrents/delete/{torrent_id}")

    async def _post_form(self, path: str, form: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self._client.post(path, headers=self._headers(), data=form)
        except httpx.HTTPError as exc:
            raise RealDebridError(f"Request to {path} failed: {exc}") from exc
        self._raise_for_status(path, response)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as exc:
            raise RealDebridError(
                f"Invalid JSON from {path}", response.status_code
            ) from exc
        return data if isinstance(data, dict) else {}

    async def _delete(self, path: str) -> None:
        try:
            response = await self._client.delete(path, headers=self._headers())
        except httpx.HTTPError as exc:
            raise RealDebridError(f"Request to {path} failed: {exc}") from exc
        self._raise_for_status(path, response)

    @staticmethod
    def _raise_for_status(path: str, response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        detail = ""
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            detail = str(payload.get("error") or payload.get("message") or "")
        raise RealDebridError(
            f"{path} returned HTTP {response.status_code} {detail}".strip(),
            response.status_code,
        )
