"""Article title handling: query parsing, comparison keys and link filtering.

Every dedup check in the engine compares titles through normalize_title(),
applied on both sides of the comparison. Wikipedia treats "Albert_Einstein"
and "Albert Einstein" as the same page, so the graph must too.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import quote, unquote

DEFAULT_BASE_URL = "https://en.wikipedia.org"

_WIKIPEDIA_URL = re.compile(
    r"^(?:https?://)?(?:www\.)?(?:[a-z]+\.)?(?:m\.)?wikipedia\.org/wiki/(.+)$",
    re.IGNORECASE,
)
_WHITESPACE = re.compile(r"\s+")

EXCLUDED_PREFIXES = (
    "Category:",
    "File:",
    "Template:",
    "Wikipedia:",
    "Help:",
    "Portal:",
    "Project:",
    "User:",
    "User talk:",
    "Talk:",
    "Special:",
    "MediaWiki:",
    "Module:",
    "Draft:",
    "TimedText:",
    "Media:",
    "Book:",
    "Education Program:",
    "Gadget:",
    "Gadget definition:",
    "Topic:",
)

EXCLUDED_PATTERNS = (
    re.compile(r"^List of "),
    re.compile(r"disambiguation$", re.IGNORECASE),
    re.compile(r"\(disambiguation\)$", re.IGNORECASE),
    re.compile(r"^Index of "),
    re.compile(r"^Outline of "),
    re.compile(r"^Timeline of "),
    re.compile(r"^Glossary of "),
    re.compile(r"^Bibliography of "),
    re.compile(r" navigation$", re.IGNORECASE),
    re.compile(r" template$", re.IGNORECASE),
    re.compile(r"^Navigation "),
    re.compile(r"^Template "),
)

# Coordinates, years, ids: digits, whitespace and dash/punctuation only
_NUMERIC_ONLY = re.compile(r"^[\d\s\-–—.,:;]+$")

MIN_LINK_TITLE_LENGTH = 3


def normalize_title(title: str) -> str:
    """Comparison key for a title: underscores become spaces, whitespace collapsed."""
    return _WHITESPACE.sub(" ", title.replace("_", " ")).strip()


def title_from_query(query: str) -> str:
    """Turn a plain title, underscored title or full article URL into a lookup title.

    Examples:
        >>> title_from_query("Albert_Einstein")
        'Albert Einstein'
        >>> title_from_query("https://en.wikipedia.org/wiki/Albert_Einstein")
        'Albert Einstein'

    Raises:
        ValueError: If the query is empty after cleanup
    """
    if not isinstance(query, str):
        raise TypeError(f"Query must be a string, got: {type(query).__name__}")
    cleaned = query.strip()
    match = _WIKIPEDIA_URL.match(cleaned)
    if match:
        cleaned = match.group(1).split("#", 1)[0].split("?", 1)[0]
        cleaned = unquote(cleaned)
    title = normalize_title(cleaned)
    if not title:
        raise ValueError("Article title must be a non-empty string")
    return title


def article_url(title: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Canonical desktop URL for an article title."""
    slug = quote(normalize_title(title).replace(" ", "_"), safe="")
    return f"{base_url.rstrip('/')}/wiki/{slug}"


def is_article_link(title: str) -> bool:
    """True if a raw link title looks like a real article worth showing."""
    if title.startswith(EXCLUDED_PREFIXES):
        return False
    if any(pattern.search(title) for pattern in EXCLUDED_PATTERNS):
        return False
    if len(title) < MIN_LINK_TITLE_LENGTH:
        return False
    if _NUMERIC_ONLY.match(title):
        return False
    return True


def filter_article_links(titles: Iterable[str], limit: int = 50) -> list[str]:
    """Keep the first ``limit`` article links, in source order, without duplicates.

    Duplicates are detected on the normalized title; the first raw spelling wins.
    """
    kept: list[str] = []
    seen: set[str] = set()
    for title in titles:
        if len(kept) >= limit:
            break
        if not is_article_link(title):
            continue
        key = normalize_title(title)
        if key in seen:
            continue
        seen.add(key)
        kept.append(title)
    return kept
