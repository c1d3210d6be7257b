"""Background mirroring of the account's downloads and torrents."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field

from pydantic import ValidationError

from ..config import Settings
from ..models import MetadataEntry, RemoteFile, RemoteTorrent
from .realdebrid import PageBatch, RealDebridClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LibraryStore:
    """In-memory state shared by request handlers.

    ``files`` and ``torrents`` are immutable snapshots replaced wholesale by the
    sync engine. ``metadata`` and ``hidden`` survive syncs and are only changed
    by user actions.
    """

    files: tuple[RemoteFile, ...] = ()
    torrents: tuple[RemoteTorrent, ...] = ()
    metadata: dict[str, MetadataEntry] = field(default_factory=dict)
    hidden: set[str] = field(default_factory=set)

    def find_torrent(self, torrent_id: str) -> RemoteTorrent | None:
        for torrent in self.torrents:
            if torrent.id == torrent_id:
                return torrent
        return None


class SyncEngine:
    """Single-flight full refresh of the account listings."""

    def __init__(
        self,
        settings: Settings,
        client: RealDebridClient,
        store: LibraryStore | None = None,
    ):
        self._settings = settings
        self._client = client
        self.store = store or LibraryStore()
        self._busy = False
        self._loop_task: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def is_syncing(self) -> bool:
        return self._busy

    def get_file_cache(self) -> tuple[RemoteFile, ...]:
        return self.store.files

    def get_torrent_cache(self) -> tuple[RemoteTorrent, ...]:
        return self.store.torrents

    async def start(self) -> None:
        """Run the periodic sync loop, starting with an immediate refresh."""

        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._sync_loop())

    async def stop(self) -> None:
        """Cancel the loop and any scheduled syncs."""

        tasks = list(self._pending)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
            self._loop_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._pending.clear()

    async def _sync_loop(self) -> None:
        while True:
            try:
                await self.sync()
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Scheduled sync failed: %s", exc)
            await asyncio.sleep(self._settings.sync_interval_seconds)

    def request_sync(self, delay: float = 0.0) -> None:
        """Schedule a sync in the background after ``delay`` seconds."""

        async def _runner() -> None:
            if delay > 0:
                await asyncio.sleep(delay)
            await self.sync()

        task = asyncio.create_task(_runner())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def sync(self) -> bool:
        """Refresh both listings; returns False when a sync was already running."""

        if self._busy:
            logger.debug("Sync already in progress, skipping request")
            return False
        self._busy = True
        try:
            logger.info("Syncing account listings")
            files = await self._sync_downloads()
            torrents = await self._sync_torrents()
            logger.info(
                "Sync finished: %s downloads, %s torrents",
                len(files),
                len(torrents),
            )
        except Exception as exc:
            logger.exception("Sync failed: %s", exc)
        finally:
            self._busy = False
        return True

    async def _sync_downloads(self) -> tuple[RemoteFile, ...]:
        batch = await self._client.list_downloads()
        files = tuple(self._parse_records(batch, RemoteFile))
        if self._should_replace(batch, files):
            self.store.files = files
        return self.store.files

    async def _sync_torrents(self) -> tuple[RemoteTorrent, ...]:
        batch = await self._client.list_torrents()
        torrents = self._parse_records(batch, RemoteTorrent)
        detailed: list[RemoteTorrent] = []
        for torrent in torrents:
            if not torrent.is_downloaded:
                detailed.append(torrent)
                continue
            await asyncio.sleep(self._settings.sync_detail_delay)
            info = await self._client.torrent_info(torrent.id)
            if info is None:
                detailed.append(torrent)
                continue
            try:
                detailed.append(torrent.with_details(info))
            except ValidationError as exc:
                logger.warning("Ignoring malformed details for torrent %s: %s", torrent.id, exc)
                detailed.append(torrent)
        result = tuple(detailed)
        if self._should_replace(batch, result):
            self.store.torrents = result
        return self.store.torrents

    @staticmethod
    def _should_replace(batch: PageBatch, records: tuple) -> bool:
        # An aborted listing only replaces the cache if it produced something.
        return batch.complete or bool(records)

    @staticmethod
    def _parse_records(batch: PageBatch, model: type) -> list:
        records = []
        for entry in batch.items:
            try:
                records.append(model.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping malformed %s entry: %s", model.__name__, exc)
        return records
