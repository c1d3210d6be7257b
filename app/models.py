"""Models describing account records, metadata and derived library groups."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

ContentType = Literal["movie", "series"]
RecordOrigin = Literal["downloads", "torrents"]

DOWNLOADED_STATUS = "downloaded"

_IMDB_ID_RE = re.compile(r"^tt\d+$")
KNOWN_PROVIDERS = frozenset({"tmdb"})


@dataclass(frozen=True, slots=True)
class ImdbId:
    """IMDb identifier such as ``tt1375666``."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ProviderId:
    """Identifier scoped to a metadata provider, rendered as ``tmdb:27205``."""

    provider: str
    value: str

    def __str__(self) -> str:
        return f"{self.provider}:{self.value}"


CanonicalId = Union[ImdbId, ProviderId]


def parse_canonical_id(raw: str | None) -> CanonicalId | None:
    """Parse a user or Stremio supplied id, returning ``None`` when unrecognised."""

    text = (raw or "").strip()
    if not text:
        return None
    if _IMDB_ID_RE.match(text):
        return ImdbId(text)
    provider, sep, value = text.partition(":")
    provider = provider.strip().lower()
    value = value.strip()
    if sep and provider in KNOWN_PROVIDERS and value.isdigit():
        return ProviderId(provider, value)
    return None


class RemoteFile(BaseModel):
    """Entry of the account's downloads list."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str
    filename: str = ""
    download: str | None = None
    link: str = ""
    streamable: int = 0
    filesize: int = 0
    mimetype: str | None = Field(
        default=None, validation_alias=AliasChoices("mimeType", "mimetype")
    )

    @property
    def size(self) -> int:
        return self.filesize or 0

    @property
    def is_hoster(self) -> bool:
        """Whether the file came from a hoster rather than a ``/d/`` direct link."""

        return "/d/" not in (self.link or "")

    @property
    def is_playable(self) -> bool:
        return self.streamable == 1 and self.is_hoster


class TorrentFile(BaseModel):
    """Selected file inside a downloaded torrent."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int | None = None
    path: str = ""
    bytes: int = 0
    selected: int = 1


class RemoteTorrent(BaseModel):
    """Entry of the account's torrents list, with files once downloaded."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    filename: str = ""
    status: str = ""
    progress: float = 0
    bytes: int = 0
    files: tuple[TorrentFile, ...] = ()
    links: tuple[str, ...] = ()

    @property
    def size(self) -> int:
        return self.bytes or 0

    @property
    def is_downloaded(self) -> bool:
        return self.status == DOWNLOADED_STATUS

    def with_details(self, payload: dict[str, Any]) -> "RemoteTorrent":
        """Return a copy carrying the selected files and their hoster links."""

        raw_files = payload.get("files") or []
        files = tuple(
            TorrentFile.model_validate(entry)
            for entry in raw_files
            if isinstance(entry, dict) and entry.get("selected") == 1
        )
        links = tuple(str(link) for link in payload.get("links") or [] if link)
        return self.model_copy(update={"files": files, "links": links})

    def link_for(self, index: int) -> str | None:
        if 0 <= index < len(self.links):
            return self.links[index]
        return None


class Episode(BaseModel):
    """Single episode of a series keyed as ``<canonical id>:<season>:<episode>``."""

    model_config = ConfigDict(frozen=True)

    id: str
    season: int
    episode: int
    title: str | None = None
    released: str | None = None
    thumbnail: str | None = None

    def to_video(self) -> dict[str, object]:
        video: dict[str, object] = {
            "id": self.id,
            "season": self.season,
            "episode": self.episode,
            "title": self.title or f"Episode {self.episode}",
        }
        if self.released:
            video["released"] = self.released
        if self.thumbnail:
            video["thumbnail"] = self.thumbnail
        return video


class MetadataEntry(BaseModel):
    """Canonical identity attached to account records."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: ContentType
    poster: str | None = None
    tmdb_id: str | None = None
    description: str | None = None
    release_info: str | None = None
    episodes: tuple[Episode, ...] = ()

    @property
    def canonical_id(self) -> CanonicalId | None:
        return parse_canonical_id(self.id)

    @property
    def has_imdb_id(self) -> bool:
        return isinstance(self.canonical_id, ImdbId)

    def to_catalog_stub(self) -> dict[str, object]:
        meta: dict[str, object] = {"id": self.id, "type": self.type, "name": self.name}
        if self.poster:
            meta["poster"] = self.poster
        return meta

    def to_meta(self) -> dict[str, object]:
        """Return a Stremio meta object."""

        meta = self.to_catalog_stub()
        if self.description:
            meta["description"] = self.description
        if self.release_info:
            meta["releaseInfo"] = self.release_info
        if self.type == "series" and self.episodes:
            meta["videos"] = [episode.to_video() for episode in self.episodes]
        return meta


LibraryRecord = Union[RemoteFile, RemoteTorrent]


@dataclass(slots=True)
class Group:
    """Records believed to be the same title, keyed by normalised filename."""

    key: str
    display_name: str
    origin: RecordOrigin
    type: ContentType
    records: list[LibraryRecord] = field(default_factory=list)
    size: int = 0
    hidden: bool = False
    assigned_id: str | None = None
    detected_name: str | None = None
    poster: str | None = None

    @property
    def title(self) -> str:
        return self.detected_name or self.display_name

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def record_ids(self) -> list[str]:
        return [record.id for record in self.records]

    def attach(self, entry: MetadataEntry) -> None:
        self.assigned_id = entry.id
        self.detected_name = entry.name
        self.poster = entry.poster
        self.type = entry.type
