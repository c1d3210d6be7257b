"""Helper client for fetching metadata from Cinemeta-compatible add-ons."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class MetadataAddonClient:
    """Wrapper around the ``/meta/{type}/{id}.json`` endpoint of an add-on."""

    _META_PATH = "/meta/{type}/{id}.json"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        default_base_url: str | None = None,
    ) -> None:
        self._client = http_client
        self._default_base_url = self._normalize_base_url(default_base_url)
        self._semaphore = asyncio.Semaphore(8)

    @property
    def default_base_url(self) -> str | None:
        """Return the default metadata add-on URL, if configured."""

        return self._default_base_url

    async def fetch_meta(self, content_type: str, meta_id: str) -> dict[str, Any] | None:
        """Return the ``meta`` object for an id, or ``None`` when unavailable."""

        if not self._default_base_url or not meta_id:
            return None
        path = self._META_PATH.format(type=content_type, id=meta_id)
        url = f"{self._default_base_url}{path}"
        try:
            async with self._semaphore:
                response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.debug(
                "Metadata add-on lookup failed for %s (%s): %s",
                meta_id,
                content_type,
                exc,
            )
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Metadata add-on returned invalid JSON for %s", meta_id)
            return None
        meta = payload.get("meta") if isinstance(payload, dict) else None
        if not isinstance(meta, dict) or not meta:
            return None
        return meta

    @staticmethod
    def ensure_url(value: Any) -> str | None:
        if isinstance(value, str) and value.startswith("http"):
            return value
        return None

    @staticmethod
    def _normalize_base_url(value: str | None) -> str | None:
        if not value:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        normalized = normalized.split("?", 1)[0].rstrip("/")
        lowered = normalized.lower()
        for suffix in ("/manifest.json", "/manifest"):
            if lowered.endswith(suffix):
                normalized = normalized[: -len(suffix)].rstrip("/")
                break
        return normalized or None
