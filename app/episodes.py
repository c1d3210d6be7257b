"""Season/episode recognition for release filenames and stream ids."""

from __future__ import annotations

import re
from dataclasses import dataclass

_ANY_TAG_RE = re.compile(r"S[0O]*\d+[^0-9]*?E[0O]*\d+|\b\d+x\d+\b", re.IGNORECASE)
_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")
_CODEC_PREFIXES = frozenset({"h", "x", "aac", "dd", "ddp", "ac3"})


@dataclass(frozen=True, slots=True)
class StreamTarget:
    """Parsed form of a Stremio stream id such as ``tt123:1:5``."""

    base_id: str
    season: int | None = None
    episode: int | None = None

    @property
    def is_episode(self) -> bool:
        return self.season is not None and self.episode is not None


def _coerce_number(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def parse_stream_id(raw_id: str) -> StreamTarget:
    """Split a stream id into its base id and optional season/episode.

    Provider-prefixed ids keep their prefix: ``tmdb:42:1:5`` has base id
    ``tmdb:42``.
    """

    parts = (raw_id or "").split(":")
    if len(parts) >= 2 and not parts[0].startswith("tt") and not parts[0].isdigit():
        head = f"{parts[0]}:{parts[1]}"
        rest = parts[2:]
    else:
        head = parts[0]
        rest = parts[1:]
    season = _coerce_number(rest[0]) if len(rest) > 0 else None
    episode = _coerce_number(rest[1]) if len(rest) > 1 else None
    return StreamTarget(base_id=head, season=season, episode=episode)


def matches_season_episode_tag(filename: str, season: int, episode: int) -> bool:
    """Match ``S01E05`` style tags, allowing noise such as ``S01.E05`` or ``S01 - E05``."""

    pattern = re.compile(rf"S[0O]*{season}[^0-9]*?E[0O]*{episode}(?![0-9])", re.IGNORECASE)
    return bool(pattern.search(filename))


def matches_cross_tag(filename: str, season: int, episode: int) -> bool:
    """Match ``1x05`` style tags as a whole word."""

    pattern = re.compile(rf"\b0*{season}x0*{episode}\b", re.IGNORECASE)
    return bool(pattern.search(filename))


def has_episode_tag(filename: str) -> bool:
    """Return whether the filename carries any structural season/episode tag."""

    return bool(_ANY_TAG_RE.search(filename))


def matches_absolute_number(filename: str, season: int, episode: int) -> bool:
    """Match ``105`` as season 1 episode 5 for single-digit seasons.

    Numbers that follow a codec or audio token (``H.264``) are ignored.
    """

    if season > 9 or episode > 99:
        return False
    wanted = f"{season}{episode:02d}"
    tokens = [token for token in _TOKEN_SPLIT_RE.split(filename.lower()) if token]
    for index, token in enumerate(tokens):
        if token != wanted:
            continue
        if index > 0 and tokens[index - 1] in _CODEC_PREFIXES:
            continue
        return True
    return False


def matches_episode(filename: str | None, season: object, episode: object) -> bool:
    """Return whether ``filename`` holds the given season and episode.

    Both coordinates are required; a missing or zero season/episode never
    matches, so movie files cannot satisfy an episode request. Structural
    ``SxxEyy``/``NxM`` tags win over the absolute-number fallback.
    """

    season_number = _coerce_number(season)
    episode_number = _coerce_number(episode)
    if season_number is None or episode_number is None:
        return False
    name = str(filename or "")
    if matches_season_episode_tag(name, season_number, episode_number):
        return True
    if matches_cross_tag(name, season_number, episode_number):
        return True
    if has_episode_tag(name):
        return False
    return matches_absolute_number(name, season_number, episode_number)
