"""Pattern-based category hints for untagged domains.

Hints are shown next to unknown domains to speed up manual tagging; they are
never applied automatically.
"""

from __future__ import annotations

# Strong TLD signals only; ".io" and friends are too ambiguous.
_TLD_HINTS: tuple[tuple[str, str], ...] = (
    (".news", "news"),
    (".dev", "developer"),
    (".edu", "reference"),
    (".gov", "reference"),
)

_PATH_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("/blog/", "/blog."), "blog"),
    (("/article/", "/articles/"), "news"),
    (("/docs/", "/documentation/"), "developer"),
    (("/wiki/",), "reference"),
    (("/video/", "/watch"), "video"),
)

_KEYWORD_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("news", "journal", "times", "post"), "news"),
    (("exchange", "swap", "dex", "trade"), "exchange"),
    (("blog",), "blog"),
    (("wiki", "pedia"), "reference"),
    (("forum", "community"), "social"),
)


def suggest_category(domain: str, url: str = "") -> str | None:
    """Guess a category from the domain's TLD, the URL path, or domain keywords."""
    d = domain.lower()
    u = (url or "").lower()

    for suffix, category in _TLD_HINTS:
        if d.endswith(suffix):
            return category

    for needles, category in _PATH_HINTS:
        if any(needle in u for needle in needles):
            return category

    for needles, category in _KEYWORD_HINTS:
        if any(needle in d for needle in needles):
            return category

    return None
