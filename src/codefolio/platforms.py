"""Platform identifiers and account linkage."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum

from codefolio.errors import UnknownPlatform


class Platform(str, Enum):
    LEETCODE = "leetcode"
    GITHUB = "github"
    CODEFORCES = "codeforces"
    CODECHEF = "codechef"
    GEEKSFORGEEKS = "geeksforgeeks"
    HACKERRANK = "hackerrank"
    CODINGNINJAS = "codingninjas"


# Platforms whose contest rating feeds the coding score, with the rating that
# maps to a full 100 points.
RATING_REFERENCE_MAX: dict[Platform, float] = {
    Platform.LEETCODE: 3000.0,
    Platform.CODEFORCES: 2000.0,
    Platform.CODECHEF: 2000.0,
}


def parse_platform(value: str | Platform) -> Platform:
    """Return the Platform for value, raising UnknownPlatform otherwise."""
    if isinstance(value, Platform):
        return value
    try:
        return Platform(str(value).strip().lower())
    except ValueError:
        raise UnknownPlatform(f"Unknown platform: {value!r}") from None


def normalize_links(
    raw: Mapping[str, str | None] | Iterable[tuple[str, str | None]] | None,
) -> dict[Platform, str]:
    """Normalize platform linkage into {Platform: handle}.

    Accepts either a mapping or a sequence of (platform, handle) pairs.
    Unknown platform keys raise UnknownPlatform. Empty handles are dropped.
    """
    if raw is None:
        return {}
    pairs = raw.items() if isinstance(raw, Mapping) else raw
    links: dict[Platform, str] = {}
    for item in pairs:
        try:
            key, handle = item
        except (TypeError, ValueError):
            raise UnknownPlatform(f"Malformed platform link: {item!r}") from None
        platform = parse_platform(key)
        if handle is None:
            continue
        handle = str(handle).strip()
        if handle:
            links[platform] = handle
    return links
