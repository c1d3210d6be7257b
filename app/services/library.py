"""Grouping of account records and the user-facing library operations."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from ..config import Settings
from ..episodes import StreamTarget, matches_episode, parse_stream_id
from ..models import (
    ContentType,
    Group,
    LibraryRecord,
    MetadataEntry,
    RecordOrigin,
    RemoteFile,
    RemoteTorrent,
    parse_canonical_id,
)
from ..naming import detect_type, display_title, is_video_path, normalize_key
from ..scoring import pick_best
from ..utils import coerce_bool, coerce_int, describe_stream
from .persistence import StateRepository
from .realdebrid import RealDebridClient, RealDebridError
from .resolver import MetadataResolver
from .sync import LibraryStore, SyncEngine
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

LIBRARY_CATALOGS: dict[str, ContentType] = {
    "rd_series": "series",
    "rd_movies": "movie",
}
ADD_SYNC_DELAY = 1.5
LINKS_SYNC_DELAY = 1.0


def build_groups(
    records: Iterable[LibraryRecord],
    metadata: Mapping[str, MetadataEntry],
    hidden: Iterable[str],
    *,
    origin: RecordOrigin,
    content_type: ContentType | None = None,
    show_hidden: bool = False,
) -> dict[str, Group]:
    """Fold records into groups keyed by their normalised filename.

    Metadata attached to any member overwrites the group's identity fields; the
    last member with metadata wins. Hidden groups are left out unless
    ``show_hidden`` is set, and ``content_type`` filters on the final type.
    """

    hidden_keys = set(hidden)
    groups: dict[str, Group] = {}
    for record in records:
        key = normalize_key(record.filename)
        group = groups.get(key)
        if group is None:
            group = Group(
                key=key,
                display_name=display_title(record.filename),
                origin=origin,
                type=detect_type(record.filename),  # type: ignore[arg-type]
                hidden=key in hidden_keys,
            )
            groups[key] = group
        group.records.append(record)
        group.size += record.size
        entry = metadata.get(record.id)
        if entry is not None:
            group.attach(entry)

    return {
        key: group
        for key, group in groups.items()
        if (show_hidden or not group.hidden)
        and (content_type is None or group.type == content_type)
    }


def sort_groups(groups: Iterable[Group]) -> list[Group]:
    """Unidentified groups first, then by descending member count."""

    return sorted(
        groups, key=lambda group: (group.assigned_id is not None, -group.count)
    )


@dataclass(slots=True)
class LibraryView:
    """Grouped snapshot rendered by the dashboard."""

    downloads: dict[str, Group] = field(default_factory=dict)
    torrents: dict[str, Group] = field(default_factory=dict)
    total_files: int = 0
    total_size: int = 0

    def sorted(self, origin: RecordOrigin, content_type: ContentType) -> list[Group]:
        source = self.downloads if origin == "downloads" else self.torrents
        return sort_groups(group for group in source.values() if group.type == content_type)


class LibraryService:
    """Coordinates the store, the sync engine and metadata resolution."""

    def __init__(
        self,
        settings: Settings,
        engine: SyncEngine,
        rd_client: RealDebridClient,
        resolver: MetadataResolver,
        *,
        tmdb_client: TMDBClient | None = None,
        repository: StateRepository | None = None,
    ):
        self._settings = settings
        self._engine = engine
        self._rd = rd_client
        self._resolver = resolver
        self._tmdb = tmdb_client
        self._repository = repository

    @property
    def store(self) -> LibraryStore:
        return self._engine.store

    @property
    def engine(self) -> SyncEngine:
        return self._engine

    async def start(self) -> None:
        if self._repository is not None:
            metadata, hidden = await self._repository.load()
            self.store.metadata.update(metadata)
            self.store.hidden.update(hidden)
        await self._engine.start()

    async def stop(self) -> None:
        await self._engine.stop()

    def dashboard_files(self) -> list[RemoteFile]:
        return [record for record in self.store.files if record.is_hoster]

    def playable_files(self) -> list[RemoteFile]:
        return [record for record in self.store.files if record.is_playable]

    def downloaded_torrents(self) -> list[RemoteTorrent]:
        return [torrent for torrent in self.store.torrents if torrent.is_downloaded]

    def build_groups(
        self, content_type: ContentType | None = None, show_hidden: bool = False
    ) -> LibraryView:
        """Return the dashboard view of both namespaces."""

        files = self.dashboard_files()
        torrents = list(self.store.torrents)
        return LibraryView(
            downloads=self._group(files, "downloads", content_type, show_hidden),
            torrents=self._group(torrents, "torrents", content_type, show_hidden),
            total_files=len(files) + len(torrents),
            total_size=sum(record.size for record in files)
            + sum(torrent.size for torrent in torrents),
        )

    def _group(
        self,
        records: Sequence[LibraryRecord],
        origin: RecordOrigin,
        content_type: ContentType | None,
        show_hidden: bool,
    ) -> dict[str, Group]:
        return build_groups(
            records,
            self.store.metadata,
            self.store.hidden,
            origin=origin,
            content_type=content_type,
            show_hidden=show_hidden,
        )

    # -- dashboard actions -------------------------------------------------

    async def assign_group(
        self, group_key: str, raw_id: str, content_type: ContentType | None = None
    ) -> MetadataEntry | None:
        """Attach the metadata of ``raw_id`` to every record of a group."""

        entry = await self._resolver.resolve(raw_id, content_type)
        if entry is None:
            logger.warning("No metadata found for %s, group %r left unchanged", raw_id, group_key)
            return None
        records: list[LibraryRecord] = [*self.dashboard_files(), *self.store.torrents]
        assignments = {
            record.id: entry
            for record in records
            if normalize_key(record.filename) == group_key
        }
        await self._store_assignments(assignments)
        logger.info("Assigned %s (%s) to group %r", entry.id, entry.name, group_key)
        return entry

    async def toggle_hidden(self, group_key: str) -> bool:
        """Flip the hidden state of a group; returns the new state."""

        hidden = group_key not in self.store.hidden
        if hidden:
            self.store.hidden.add(group_key)
        else:
            self.store.hidden.discard(group_key)
        if self._repository is not None:
            await self._repository.set_hidden(group_key, hidden)
        return hidden

    async def delete_records(self, record_ids: Iterable[str]) -> None:
        """Remove ids from the account, trying both the downloads and torrents lists."""

        for record_id in (value.strip() for value in record_ids):
            if not record_id:
                continue
            for remove in (self._rd.delete_download, self._rd.delete_torrent):
                try:
                    await remove(record_id)
                except RealDebridError as exc:
                    logger.debug("Delete of %s via %s failed: %s", record_id, remove.__name__, exc)
        await self._engine.sync()

    async def add_magnet(self, magnet: str, raw_id: str | None = None) -> str | None:
        """Add a magnet, select all of its files and optionally assign metadata."""

        torrent_id: str | None = None
        try:
            added = await self._rd.add_magnet(magnet)
            torrent_id = str(added.get("id") or "") or None
            if torrent_id:
                await self._rd.select_files(torrent_id, "all")
        except RealDebridError as exc:
            logger.warning("Adding magnet failed: %s", exc)
        if torrent_id and raw_id:
            entry = await self._resolver.resolve(raw_id)
            if entry is not None:
                await self._store_assignments({torrent_id: entry})
        self._engine.request_sync(ADD_SYNC_DELAY)
        return torrent_id

    async def add_links(self, links: str, raw_id: str | None = None) -> list[str]:
        """Unrestrict each hoster link so it lands in the downloads list."""

        entry = await self._resolver.resolve(raw_id) if raw_id else None
        added: list[str] = []
        for link in (line.strip() for line in (links or "").splitlines()):
            if not link:
                continue
            try:
                data = await self._rd.unrestrict_link(link)
            except RealDebridError as exc:
                logger.warning("Unrestricting %s failed: %s", link, exc)
                continue
            download_id = str(data.get("id") or "")
            if download_id:
                added.append(download_id)
        if entry is not None:
            await self._store_assignments({download_id: entry for download_id in added})
        self._engine.request_sync(LINKS_SYNC_DELAY)
        return added

    async def refresh(self) -> bool:
        return await self._engine.sync()

    async def _store_assignments(self, assignments: Mapping[str, MetadataEntry]) -> None:
        self.store.metadata.update(assignments)
        if self._repository is not None:
            await self._repository.save_assignments(assignments)

    # -- addon resources ---------------------------------------------------

    def library_metas(
        self, content_type: ContentType, *, show_hidden: bool = False
    ) -> list[dict[str, object]]:
        """Unique IMDb-identified titles of playable records."""

        metas: list[dict[str, object]] = []
        seen: set[str] = set()
        sources = (
            (self.playable_files(), "downloads"),
            (self.downloaded_torrents(), "torrents"),
        )
        for records, origin in sources:
            groups = self._group(records, origin, content_type, show_hidden)  # type: ignore[arg-type]
            for group in groups.values():
                for record in group.records:
                    entry = self.store.metadata.get(record.id)
                    if entry is None or not entry.has_imdb_id or entry.type != content_type:
                        continue
                    if entry.id in seen:
                        continue
                    seen.add(entry.id)
                    metas.append(entry.to_catalog_stub())
        return metas[: self._settings.catalog_limit]

    async def catalog_payload(
        self, content_type: ContentType, catalog_id: str, extra: Mapping[str, str]
    ) -> dict[str, Any]:
        if catalog_id in LIBRARY_CATALOGS:
            if LIBRARY_CATALOGS[catalog_id] != content_type:
                return {"metas": []}
            show_hidden = coerce_bool(extra.get("showHidden"))
            return {"metas": self.library_metas(content_type, show_hidden=show_hidden)}
        if self._tmdb is None:
            return {"metas": []}
        skip = max(0, coerce_int(extra.get("skip"), default=0))
        return {"metas": await self._tmdb.catalog(content_type, catalog_id, skip=skip)}

    async def meta_payload(
        self, content_type: ContentType, raw_id: str
    ) -> dict[str, Any] | None:
        entry = await self._resolver.resolve(raw_id, content_type)
        if entry is None:
            return None
        meta = entry.to_meta()
        # Keep the id Stremio asked for so its library entry stays stable.
        if parse_canonical_id(raw_id) is not None:
            meta["id"] = raw_id
        return {"meta": meta}

    async def stream_payload(
        self, content_type: ContentType, raw_id: str, base_url: str
    ) -> dict[str, Any]:
        target = parse_stream_id(raw_id)
        files, torrents = self._assigned_records(target.base_id)
        if not files and not torrents:
            files, torrents = await self._fuzzy_records(content_type, target)

        streams: list[dict[str, Any]] = []
        name = self._settings.app_name
        for record in files:
            if not record.download:
                continue
            if content_type == "series" and not matches_episode(
                record.filename, target.season, target.episode
            ):
                continue
            streams.append(
                {
                    "name": name,
                    "title": f"{record.filename}\n{describe_stream(record.filename, record.size)}",
                    "url": record.download,
                }
            )
        for torrent in torrents:
            for index, entry in enumerate(torrent.files):
                if content_type == "series":
                    if not matches_episode(entry.path, target.season, target.episode):
                        continue
                elif not is_video_path(entry.path):
                    continue
                if torrent.link_for(index) is None:
                    continue
                basename = posixpath.basename(entry.path)
                streams.append(
                    {
                        "name": f"{name} Cloud",
                        "title": f"[TORRENT] {basename}\n{describe_stream(entry.path, entry.bytes)}",
                        "url": f"{base_url.rstrip('/')}/play/t/{torrent.id}/{index}",
                    }
                )
        return {"streams": streams}

    def _assigned_records(
        self, base_id: str
    ) -> tuple[list[RemoteFile], list[RemoteTorrent]]:
        metadata = self.store.metadata

        def _matches(record: LibraryRecord) -> bool:
            entry = metadata.get(record.id)
            return entry is not None and entry.id == base_id

        files = [record for record in self.store.files if _matches(record)]
        torrents = [torrent for torrent in self.downloaded_torrents() if _matches(torrent)]
        return files, torrents

    async def _fuzzy_records(
        self, content_type: ContentType, target: StreamTarget
    ) -> tuple[list[RemoteFile], list[RemoteTorrent]]:
        """Pick the unassigned title whose name confidently matches the requested id.

        Groups of both namespaces sharing a key are one candidate, so a torrent
        and the download unrestricted from it never compete with each other.
        """

        entry = await self._resolver.resolve(target.base_id, content_type)
        if entry is None:
            return [], []
        namespaces = (
            build_groups(
                [record for record in self.store.files if record.download],
                self.store.metadata,
                self.store.hidden,
                origin="downloads",
                content_type=content_type,
            ),
            build_groups(
                self.downloaded_torrents(),
                self.store.metadata,
                self.store.hidden,
                origin="torrents",
                content_type=content_type,
            ),
        )
        unassigned: dict[str, list[Group]] = {}
        for groups in namespaces:
            for key, group in groups.items():
                if group.assigned_id is None:
                    unassigned.setdefault(key, []).append(group)
        candidates = {key: groups[0].display_name for key, groups in unassigned.items()}
        match = pick_best(entry.name, candidates)
        if match is None:
            return [], []
        key = str(match.key)
        logger.info(
            "Matched %s (%s) to unassigned group %r with score %.2f",
            entry.id,
            entry.name,
            key,
            match.score,
        )
        files: list[RemoteFile] = []
        torrents: list[RemoteTorrent] = []
        for group in unassigned[key]:
            if group.origin == "downloads":
                files.extend(group.records)  # type: ignore[arg-type]
            else:
                torrents.extend(group.records)  # type: ignore[arg-type]
        return files, torrents

    async def play_url(self, torrent_id: str, index: int) -> str | None:
        """Unrestrict a torrent file's hoster link; ``None`` if it is unknown."""

        torrent = self.store.find_torrent(torrent_id)
        if torrent is None:
            return None
        link = torrent.link_for(index)
        if link is None:
            return None
        data = await self._rd.unrestrict_link(link)
        download = data.get("download")
        if not download:
            raise RealDebridError(f"No download link returned for torrent {torrent_id}")
        return str(download)
