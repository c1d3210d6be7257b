"""Filename normalisation used to group releases of the same title."""

from __future__ import annotations

import re

_SEPARATOR_RE = re.compile(r"[._]")
_LEADING_TAG_RE = re.compile(r"^\s*[\[(][^\])]*[\])]\s*")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

# The lazy prefix stops at the earliest marker, so "Show 2019 S01" cuts at 2019.
_KEY_CUT_RE = re.compile(
    r"^(.+?)(?=\s+(?:s\d{2}|19\d{2}|20\d{2}|4k|2160p|1080p|720p|480p|[\[(]))",
    re.IGNORECASE,
)
_SEASON_CUT_RE = re.compile(r"^(.+?)(?=\s+s\d{2})", re.IGNORECASE)
_YEAR_CUT_RE = re.compile(r"^(.+?)\s+(?:19\d{2}|20\d{2})")
_QUALITY_CUT_RE = re.compile(
    r"^(.+?)(?=\s+(?:1080|720|4k|2160p|bluray|web|dvd|x264|uhd))",
    re.IGNORECASE,
)
_SEASON_MARKER_RE = re.compile(r"S\d{2}", re.IGNORECASE)
_VIDEO_EXTENSION_RE = re.compile(r"\.(?:mkv|mp4|avi)$", re.IGNORECASE)

LEET_TABLE = str.maketrans(
    {"0": "o", "1": "i", "3": "e", "4": "a", "5": "s", "7": "t", "@": "a"}
)


def de_leet(value: str | None) -> str:
    """Replace digits commonly used as letters with those letters."""

    return str(value or "").translate(LEET_TABLE)


def clean_filename(filename: str | None) -> str:
    """Return the filename with dot and underscore separators turned into spaces."""

    return _SEPARATOR_RE.sub(" ", str(filename or ""))


def normalize_key(filename: str | None) -> str:
    """Return the grouping fingerprint for a release filename.

    Everything from the first season, year, resolution or bracketed tag onwards
    is discarded, leetspeak digits are mapped back to letters and the result is
    reduced to lowercase alphanumerics. Filenames without any marker use the
    whole cleaned name.
    """

    clean = _LEADING_TAG_RE.sub("", clean_filename(filename)) or clean_filename(filename)
    match = _KEY_CUT_RE.match(clean)
    raw_title = match.group(1) if match else clean
    return _NON_ALNUM_RE.sub("", de_leet(raw_title).lower())


def display_title(filename: str | None) -> str:
    """Return a human readable title with the original casing.

    Series names keep any year that precedes the season marker. Names without
    a season marker are cut at the first year or resolution tag instead.
    """

    clean = clean_filename(filename)
    match = _SEASON_CUT_RE.match(clean) or _KEY_CUT_RE.match(clean)
    if match:
        return match.group(1).strip()
    return clean.strip()


def search_query(filename: str | None) -> str:
    """Return a best-effort title suitable for an external search engine."""

    clean = _LEADING_TAG_RE.sub("", clean_filename(filename)).strip()
    for pattern in (_YEAR_CUT_RE, _SEASON_CUT_RE, _QUALITY_CUT_RE):
        match = pattern.match(clean)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return clean


def detect_type(filename: str | None) -> str:
    """Guess ``series`` or ``movie`` from the presence of a season marker."""

    return "series" if _SEASON_MARKER_RE.search(str(filename or "")) else "movie"


def is_video_path(path: str | None) -> bool:
    return bool(_VIDEO_EXTENSION_RE.search(str(path or "")))
