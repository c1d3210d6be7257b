"""Character-weighted token overlap scoring between titles and filenames."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Hashable, Iterable, Mapping, Sequence

from .naming import de_leet

MATCH_THRESHOLD = 0.55
MIN_MARGIN = 0.08
MIN_HITS = 2

STOPWORDS: frozenset[str] = frozenset(
    {
        # articles and connectors
        "a", "an", "the", "and", "or", "of", "to", "in", "on", "at", "for",
        "with", "by", "from", "is", "vs", "i", "w", "z", "na", "do",
        "le", "la", "les", "de", "der", "die", "das", "el",
        # release noise
        "4k", "uhd", "hdr", "hdr10", "dv", "sdr", "remux", "bluray", "bdrip",
        "brrip", "webrip", "webdl", "web", "dl", "hdtv", "dvdrip", "dvd",
        "x264", "x265", "h264", "h265", "hevc", "avc", "xvid", "10bit",
        "aac", "ac3", "dts", "ddp", "dd", "atmos", "truehd", "eac3",
        "proper", "repack", "internal", "extended", "remastered", "uncut",
        "multi", "dual", "pl", "eng", "dubbing", "lektor", "napisy", "sub",
        "subs", "mkv", "mp4", "avi", "complete",
        # season, episode and part words
        "season", "seasons", "episode", "episodes", "part", "sezon",
        "odcinek", "vol", "volume", "s", "e",
    }
)

_NOISE_TOKEN_RE = re.compile(
    r"^(?:\d{3,4}p|s\d{1,2}(?:e\d{1,3})?|e\d{1,3}|\d{1,2}x\d{1,3}|(?:19|20)\d{2})$"
)
_PUNCTUATION_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class FuzzyMatch:
    """Best candidate picked by :func:`pick_best`."""

    key: Hashable
    score: float
    hits: int


def _de_leet_token(token: str) -> str:
    # Pure numbers ("2049", "24") are part of the title, not leetspeak.
    if token.isdigit():
        return token
    return de_leet(token)


def tokenize(title: str | None) -> list[str]:
    """Return the ordered meaningful tokens of a title or filename."""

    text = str(title or "").lower().replace("&", " and ").replace("'", "")
    text = _PUNCTUATION_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    tokens: list[str] = []
    for raw in text.split(" "):
        if not raw or raw in STOPWORDS or _NOISE_TOKEN_RE.match(raw):
            continue
        token = _de_leet_token(raw)
        if token in STOPWORDS:
            continue
        tokens.append(token)
    return tokens


def _unique(tokens: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(tokens))


def score(needle_tokens: Sequence[str], haystack_tokens: Iterable[str]) -> float:
    """Return the share of needle characters found among the haystack tokens.

    Each distinct needle token weighs as much as its length, so a long
    distinguishing word outweighs a short incidental one.
    """

    needle = _unique(needle_tokens)
    total = sum(len(token) for token in needle)
    if total == 0:
        return 0.0
    haystack = set(haystack_tokens)
    matched = sum(len(token) for token in needle if token in haystack)
    return matched / total


def score_title(title: str | None, candidate: str | None) -> float:
    """Convenience wrapper scoring raw strings."""

    return score(tokenize(title), tokenize(candidate))


def required_hits(needle_tokens: Sequence[str]) -> int:
    """Minimum distinct token hits for a confident match."""

    return max(1, min(MIN_HITS, len(_unique(needle_tokens))))


def pick_best(
    title: str | None,
    candidates: Mapping[Hashable, str],
    *,
    threshold: float = MATCH_THRESHOLD,
    margin: float = MIN_MARGIN,
) -> FuzzyMatch | None:
    """Return the candidate confidently matching ``title`` or ``None``.

    A match needs a score of at least ``threshold``, enough distinct token hits
    and a lead of at least ``margin`` over the runner-up. Ties yield ``None``.
    """

    needle = _unique(tokenize(title))
    if not needle:
        return None
    minimum_hits = required_hits(needle)

    ranked: list[FuzzyMatch] = []
    for key, text in candidates.items():
        haystack = set(tokenize(text))
        value = score(needle, haystack)
        hits = sum(1 for token in needle if token in haystack)
        ranked.append(FuzzyMatch(key=key, score=value, hits=hits))
    if not ranked:
        return None

    ranked.sort(key=lambda match: match.score, reverse=True)
    best = ranked[0]
    if best.score < threshold or best.hits < minimum_hits:
        return None
    if len(ranked) > 1 and best.score - ranked[1].score < margin:
        return None
    return best
