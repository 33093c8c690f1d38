"""Derived node attributes: size weight and presentation color seed.

Both are pure functions of the node's own data, recomputed whenever content
or outgoing links change. Nothing here depends on the rest of the graph.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

MIN_WEIGHT = 6
MAX_WEIGHT = 40

_NON_ARTICLE_PREFIXES = (
    "file:",
    "category:",
    "template:",
    "help:",
    "wikipedia:",
    "user:",
    "talk:",
)


def is_substantive_link(title: str) -> bool:
    """True for links that count towards the link bonus.

    Namespaced pages (anything with a colon) and one-character titles are not
    substantive.
    """
    lowered = title.lower()
    return (
        not lowered.startswith(_NON_ARTICLE_PREFIXES)
        and ":" not in lowered
        and len(lowered) > 1
    )


def _content_size(length: int) -> float:
    if length < 500:
        return MIN_WEIGHT + (length / 500) * 8
    if length < 2000:
        return MIN_WEIGHT + 8 + ((length - 500) / 1500) * 12
    if length < 10000:
        return MIN_WEIGHT + 20 + ((length - 2000) / 8000) * 12
    return MIN_WEIGHT + 32 + min(8.0, math.log(length / 10000) * 4)


def _link_bonus(count: int) -> float:
    if count <= 10:
        return 0.0
    if count < 50:
        return ((count - 10) / 40) * 6
    return 6 + min(4.0, math.log(count / 50) * 3)


def compute_weight(content: str, link_titles: Iterable[str] = ()) -> int:
    """Size weight for a node from its content length and substantive link count.

    Piecewise scale on content length plus a bonus for well-linked articles,
    clamped to [6, 40] and rounded half-up.

    Examples:
        >>> compute_weight("")
        6
        >>> compute_weight("x" * 20000, [f"Link {i}" for i in range(100)])
        40
    """
    link_count = sum(1 for title in link_titles if is_substantive_link(title))
    size = _content_size(len(content)) + _link_bonus(link_count)
    clamped = max(MIN_WEIGHT, min(MAX_WEIGHT, size))
    return math.floor(clamped + 0.5)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def color_seed(node_id: str) -> int:
    """Stable hue in [0, 360) derived from the node id.

    Uses the classic ``hash * 31 + code`` string hash over UTF-16 code units
    with 32-bit shifts, so the same title always maps to the same hue that
    browsers computed for shared snapshots.
    """
    encoded = node_id.encode("utf-16-le")
    value = 0
    for i in range(0, len(encoded), 2):
        code = encoded[i] | (encoded[i + 1] << 8)
        value = code + (_to_int32(_to_int32(value) << 5) - value)
    return abs(value) % 360


def node_color(seed: int) -> str:
    """CSS color for a color seed."""
    return f"hsl({seed}, 70%, 60%)"
