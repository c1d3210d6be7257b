"""Utility helpers for the DebridShelf service."""

from __future__ import annotations

import math
from urllib.parse import parse_qsl, unquote

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(size: int | float | None) -> str:
    """Return a short human readable size such as ``1.5 GB``."""

    try:
        value = float(size or 0)
    except (TypeError, ValueError):
        value = 0.0
    if value <= 0:
        return "0 B"
    exponent = min(int(math.log(value, 1024)), len(_SIZE_UNITS) - 1)
    scaled = round(value / (1024**exponent), 2)
    text = f"{scaled:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[exponent]}"


def describe_stream(filename: str, size: int | None = None) -> str:
    """Return size and quality tags shown under a stream title."""

    lowered = (filename or "").lower()
    tags: list[str] = []
    if size:
        tags.append(format_bytes(size))
    if "2160p" in lowered or "4k" in lowered:
        tags.append("4K")
    elif "1080p" in lowered:
        tags.append("1080p")
    if "hdr" in lowered:
        tags.append("HDR")
    if "dv" in lowered:
        tags.append("DV")
    return " | ".join(tags)


def coerce_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return bool(value)
    return False


def parse_extra(extra: str | None) -> dict[str, str]:
    """Parse a Stremio ``extra`` path segment such as ``skip=20&showHidden=true``."""

    if not extra:
        return {}
    text = unquote(extra)
    if text.endswith(".json"):
        text = text[: -len(".json")]
    return {key: value for key, value in parse_qsl(text, keep_blank_values=True)}


def coerce_int(value: object, *, default: int = 0) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
