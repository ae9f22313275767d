"""Utility helpers for the tubecrawl service."""

from __future__ import annotations

import base64
import re
from typing import Any, Mapping, Sequence


PathKey = str | int

ISO_DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")
COUNT_SUFFIX_RE = re.compile(r"([\d,.]+)\s*([kmb])\b", re.IGNORECASE)
PLAIN_NUMBER_RE = re.compile(r"([\d,]+)")
HANDLE_RE = re.compile(r"@[\w.-]+")
VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")

_COUNT_MULTIPLIERS = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}

SEARCH_SORT_VALUES = {
    "relevance": 0,
    "rating": 1,
    "upload_date": 2,
    "date": 2,
    "view_count": 3,
    "views": 3,
}
SEARCH_TYPE_VALUES = {"video": 1, "channel": 2, "playlist": 3, "movie": 4}
SEARCH_DURATION_VALUES = {"short": 1, "long": 2, "medium": 3}
SEARCH_UPLOAD_DATE_VALUES = {"hour": 1, "today": 2, "week": 3, "month": 4, "year": 5}


def split_path(path: str | Sequence[PathKey]) -> tuple[PathKey, ...]:
    """Turn ``"a.b.0.c"`` into ``("a", "b", 0, "c")``."""

    if not isinstance(path, str):
        return tuple(path)
    keys: list[PathKey] = []
    for part in path.split("."):
        if not part:
            continue
        if part.lstrip("-").isdigit():
            keys.append(int(part))
        else:
            keys.append(part)
    return tuple(keys)


def get_path(data: Any, path: str | Sequence[PathKey], default: Any = None) -> Any:
    """Safely walk nested dicts and lists, returning ``default`` when unreachable."""

    current = data
    for key in split_path(path):
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return default
            current = current[key]
        else:
            if not isinstance(current, Mapping):
                return default
            current = current.get(key)
        if current is None:
            return default
    return current


def extract_text(field: Any) -> str | None:
    """Return the display text of the many text encodings the upstream uses."""

    if field is None:
        return None
    if isinstance(field, str):
        return field
    if isinstance(field, bool):
        return None
    if isinstance(field, (int, float)):
        return str(field)
    if isinstance(field, Mapping):
        for key in ("simpleText", "text", "content"):
            value = field.get(key)
            if isinstance(value, str):
                return value
            if isinstance(value, Mapping):
                nested = extract_text(value)
                if nested:
                    return nested
        runs = field.get("runs")
        if isinstance(runs, list):
            joined = "".join(
                str(run.get("text", "")) for run in runs if isinstance(run, Mapping)
            )
            return joined or None
    return None


def parse_count(value: Any) -> int:
    """Convert ``"297K views"``/``"1,234"``/numbers into an integer count."""

    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else 0
    text = value if isinstance(value, str) else extract_text(value)
    if not text:
        return 0
    lowered = text.lower()
    suffix_match = COUNT_SUFFIX_RE.search(lowered)
    if suffix_match:
        try:
            number = float(suffix_match.group(1).replace(",", ""))
        except ValueError:
            number = 0.0
        return int(round(number * _COUNT_MULTIPLIERS[suffix_match.group(2).lower()]))
    plain_match = PLAIN_NUMBER_RE.search(lowered)
    if plain_match:
        digits = plain_match.group(1).replace(",", "")
        if digits.isdigit():
            return int(digits)
    return 0


def parse_duration(value: Any) -> int:
    """Canonicalize a duration into whole seconds.

    Accepts integers, ISO-8601 (``PT1H2M3S``), clock text (``1:02:03``),
    millisecond strings and plain second strings. Returns 0 when unknown.
    """

    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else 0
    text = value if isinstance(value, str) else extract_text(value)
    if not text:
        return 0
    text = text.strip()

    iso_match = ISO_DURATION_RE.fullmatch(text)
    if iso_match and any(iso_match.groups()):
        hours, minutes, seconds = (int(group or 0) for group in iso_match.groups())
        return hours * 3600 + minutes * 60 + seconds

    if ":" in text:
        parts = [int(part) if part.isdigit() else 0 for part in text.split(":")]
        if len(parts) == 3:
            return parts[0] * 3600 + parts[1] * 60 + parts[2]
        if len(parts) == 2:
            return parts[0] * 60 + parts[1]
        return 0

    if text.isdigit():
        number = int(text)
        # Long digit runs are millisecond values (approxDurationMs).
        if len(text) >= 4 and number > 10_000:
            return number // 1000
        return number
    return 0


def format_duration(seconds: int | None) -> str:
    if not seconds or seconds <= 0:
        return "0:00"
    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_count(count: int | None) -> str:
    """Render a count in the compact ``1.2M`` style."""

    if not count:
        return "0"
    if count >= 1_000_000_000:
        return f"{count / 1_000_000_000:.1f}B"
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def normalize_url(url: Any) -> str | None:
    if not isinstance(url, str) or not url:
        return None
    if url.startswith("//"):
        return f"https:{url}"
    return url


def best_thumbnail(thumbnails: Any) -> str | None:
    """Return the widest thumbnail URL from a thumbnails/sources list."""

    if isinstance(thumbnails, Mapping):
        thumbnails = thumbnails.get("thumbnails") or thumbnails.get("sources")
    if not isinstance(thumbnails, list) or not thumbnails:
        return None
    candidates = [
        thumb for thumb in thumbnails if isinstance(thumb, Mapping) and thumb.get("url")
    ]
    if not candidates:
        return None
    if any(thumb.get("width") for thumb in candidates):
        widest = max(candidates, key=lambda thumb: thumb.get("width") or 0)
        return normalize_url(widest["url"])
    return normalize_url(candidates[-1]["url"])


def extract_handle(value: Any) -> str | None:
    """Return the ``@handle`` contained in a URL or path."""

    if not isinstance(value, str):
        return None
    match = HANDLE_RE.search(value)
    return match.group(0) if match else None


def is_video_id(value: Any) -> bool:
    return isinstance(value, str) and bool(VIDEO_ID_RE.match(value))


def coerce_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, (int, float)):
        return bool(value)
    return False


def _varint(value: int) -> bytes:
    encoded = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            encoded.append(byte | 0x80)
        else:
            encoded.append(byte)
            return bytes(encoded)


def _varint_field(field_number: int, value: int) -> bytes:
    return _varint(field_number << 3) + _varint(value)


def _message_field(field_number: int, payload: bytes) -> bytes:
    return _varint((field_number << 3) | 2) + _varint(len(payload)) + payload


def encode_search_params(
    *,
    sort: str | None = None,
    content_type: str | None = None,
    duration: str | None = None,
    upload_date: str | None = None,
) -> str | None:
    """Encode search filters into the protobuf ``params`` string.

    Unknown or default values are skipped; ``None`` means no filters at all.
    """

    sort_value = SEARCH_SORT_VALUES.get((sort or "").strip().lower(), 0)
    filters = b""
    upload_value = SEARCH_UPLOAD_DATE_VALUES.get((upload_date or "").strip().lower())
    if upload_value:
        filters += _varint_field(1, upload_value)
    type_value = SEARCH_TYPE_VALUES.get((content_type or "").strip().lower())
    if type_value:
        filters += _varint_field(2, type_value)
    duration_value = SEARCH_DURATION_VALUES.get((duration or "").strip().lower())
    if duration_value:
        filters += _varint_field(3, duration_value)

    message = b""
    if sort_value:
        message += _varint_field(1, sort_value)
    if filters:
        message += _message_field(2, filters)
    if not message:
        return None
    return base64.b64encode(message).decode("ascii")
