"""Heuristics turning titles, descriptions and keywords into searchable tags."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from .models import Credits

HASHTAG_RE = re.compile(r"#[\w\u0080-\uFFFF]+")
FEATURING_RE = re.compile(r"(?:feat\.?|ft\.?|featuring)\s+([^|(\[\]]+)", re.IGNORECASE)
BRACKETS_RE = re.compile(r"[(\[\])]")
TITLE_PUNCTUATION_RE = re.compile(r"[|:\-\[\]()]")
UPPERCASE_RE = re.compile(r"^[A-Z]+$")

GENERIC_TERMS = (
    "song", "video", "official", "full", "hd", "4k", "new", "latest", "best",
    "music", "audio", "lyrics", "lyrical", "movie", "film", "trailer",
    "2025", "2024", "2023", "2022", "2021", "2020",
    "bollywood", "hollywood", "songs", "videos", "movies",
    "hindi", "english", "punjabi", "tamil", "telugu",
    "tseries", "t-series", "vevo", "records", "entertainment",
)

CREDIT_PATTERNS = {
    "song": re.compile(r"SONG\s*[:\-]\s*([^\n]+)", re.IGNORECASE),
    "singer": re.compile(r"(?:SINGER|VOCALS?|ARTIST)\s*[:\-]\s*([^\n]+)", re.IGNORECASE),
    "starring": re.compile(r"STARRING\s*[:\-]\s*([^\n]+)", re.IGNORECASE),
    "music": re.compile(
        r"(?:MUSIC|COMPOSED)\s*(?:BY|PRODUCED\s+BY)?\s*[:\-]\s*([^\n]+)", re.IGNORECASE
    ),
    "lyrics": re.compile(r"(?:LYRICS|WRITTEN)\s*(?:BY)?\s*[:\-]\s*([^\n]+)", re.IGNORECASE),
    "director": re.compile(r"(?:DIRECTED|DIRECTOR)\s*(?:BY)?\s*[:\-]\s*([^\n]+)", re.IGNORECASE),
    "label": re.compile(r"(?:MUSIC\s+LABEL|LABEL|BANNER)\s*[:\-]\s*([^\n]+)", re.IGNORECASE),
}

CATEGORY_QUERIES = {
    "Music": "trending music videos",
    "Entertainment": "trending entertainment videos",
    "Film & Animation": "latest movie songs",
    "Gaming": "trending gaming",
    "Comedy": "funny videos trending",
}


def unique(values: Iterable[str]) -> list[str]:
    """Deduplicate while keeping first-seen order."""

    return list(dict.fromkeys(values))


def is_valid_tag(value: object) -> bool:
    if not isinstance(value, str):
        return False
    trimmed = value.strip()
    if len(trimmed) < 2:
        return False
    if "http://" in trimmed or "https://" in trimmed or "bit.ly" in trimmed:
        return False
    if trimmed.isdigit():
        return False
    return trimmed not in {"N/A", "null", "undefined"}


def clean_tags(tags: Iterable[object]) -> list[str]:
    return [tag.strip() for tag in tags if is_valid_tag(tag)]  # type: ignore[union-attr]


def extract_hashtags(title: str | None, description: str | None) -> list[str]:
    found: list[str] = []
    for source in (title, description):
        if source:
            found.extend(HASHTAG_RE.findall(source))
    return unique(found)


def extract_artist_names(title: str | None) -> list[str]:
    """Guess performer names from ``feat.`` clauses, ``:`` and ``|`` segments."""

    if not title:
        return []
    artists: list[str] = []
    featuring = FEATURING_RE.search(title)
    if featuring:
        artists.append(featuring.group(1).strip())

    colon_parts = title.split(":")
    if len(colon_parts) >= 2:
        candidate = colon_parts[1].split("|")[0].strip()
        if 2 < len(candidate) < 50:
            artists.append(candidate)

    pipe_parts = [part.strip() for part in title.split("|")]
    pipe_parts = [part for part in pipe_parts if 2 < len(part) < 30]
    if len(pipe_parts) > 1:
        artists.extend(pipe_parts[1:4])

    cleaned = (BRACKETS_RE.sub("", artist).strip() for artist in artists)
    return unique(
        artist for artist in cleaned if 2 < len(artist) < 40 and is_valid_tag(artist)
    )


def extract_meaningful_keywords(keywords: Iterable[str]) -> list[str]:
    """Drop generic marketing words; keep multi-word or longer keywords."""

    meaningful: list[str] = []
    for keyword in keywords:
        if not is_valid_tag(keyword):
            continue
        lowered = keyword.lower()
        if any(
            lowered == term or f"{term} " in lowered or lowered.startswith(term)
            for term in GENERIC_TERMS
        ):
            continue
        if len(keyword.split(" ")) >= 2 or len(keyword) > 4:
            meaningful.append(keyword)
    return meaningful


def extract_credits(description: str | None) -> Credits:
    credits = Credits()
    if not description:
        return credits
    for key, pattern in CREDIT_PATTERNS.items():
        match = pattern.search(description)
        if not match:
            continue
        value = match.group(1).strip()
        if not is_valid_tag(value):
            continue
        if key == "starring":
            credits.starring = clean_tags(re.split(r"[,&]", value))
        else:
            setattr(credits, key, value)
    return credits


@dataclass(slots=True)
class RelatedQuery:
    """A search used to discover videos related to a source video."""

    query: str
    type: str
    weight: int


def build_related_queries(
    *,
    title: str,
    channel_name: str,
    hashtags: list[str],
    artists: list[str],
    meaningful_keywords: list[str],
    category: str | None,
    singer: str | None,
) -> list[RelatedQuery]:
    """Return weighted related-video queries, strongest first."""

    queries: list[RelatedQuery] = []
    has_channel = bool(channel_name) and channel_name != "Unknown"
    if not title and not has_channel:
        return queries

    if has_channel:
        queries.append(RelatedQuery(f"{channel_name} latest", "channel", 8))

    if title:
        words = [word for word in TITLE_PUNCTUATION_RE.sub(" ", title).split(" ") if len(word) > 3]
        key_words = " ".join(words[:3])
        if len(key_words) > 5:
            queries.append(RelatedQuery(key_words, "title_keywords", 9))

    if singer:
        queries.append(RelatedQuery(f"{singer} songs", "singer", 12))

    bare = [tag.replace("#", "") for tag in hashtags]
    artist_tags = [tag for tag in bare if UPPERCASE_RE.match(tag) and len(tag) > 4]
    if artist_tags:
        queries.append(RelatedQuery(artist_tags[0].lower(), "artist_hashtag", 11))
    topic_tags = [tag for tag in bare if not UPPERCASE_RE.match(tag) and len(tag) > 3]
    if topic_tags:
        queries.append(RelatedQuery(topic_tags[0], "topic_hashtag", 8))

    if artists:
        queries.append(RelatedQuery(f"{artists[0]} latest songs", "artist", 10))
        if len(artists) > 1:
            queries.append(RelatedQuery(f"{artists[1]} songs", "featured_artist", 7))

    if meaningful_keywords:
        top_keyword = " ".join(meaningful_keywords[0].split(" ")[:3])
        queries.append(RelatedQuery(top_keyword, "topic_category", 6))

    if category in CATEGORY_QUERIES:
        queries.append(RelatedQuery(CATEGORY_QUERIES[category], "category_trending", 3))

    queries.sort(key=lambda query: query.weight, reverse=True)
    return queries


def fallback_related_queries(*, title: str, channel_name: str) -> list[RelatedQuery]:
    queries: list[RelatedQuery] = []
    if channel_name and channel_name != "Unknown":
        queries.append(RelatedQuery(channel_name, "channel_fallback", 5))
    if title:
        words = " ".join(title.split(" ")[:3])
        if len(words) > 3:
            queries.append(RelatedQuery(words, "title_fallback", 4))
    if not queries:
        queries.append(RelatedQuery("popular videos", "fallback", 1))
    return queries
