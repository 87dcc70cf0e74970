"""Link parsing and value suggestions used by the audit."""

import math
import re
from urllib.parse import unquote

from bowerbird.utils import levenshtein

WIKILINK = re.compile(r"^\[\[([^\[\]]+)\]\]$")
MARKDOWN_LINK = re.compile(r"^\[([^\[\]]*)\]\(([^()]+)\)$")

# One bracket short on either side: "[[Note]" or "[Note]]"
_MISSING_CLOSE = re.compile(r"^\[\[([^\[\]]+)\]$")
_MISSING_OPEN = re.compile(r"^\[([^\[\]]+)\]\]$")


def is_wikilink(value: str) -> bool:
    return WIKILINK.match(value.strip()) is not None


def is_markdown_link(value: str) -> bool:
    return MARKDOWN_LINK.match(value.strip()) is not None


def matches_format(value: str, link_format: str) -> bool:
    if link_format == "markdown":
        return is_markdown_link(value)
    return is_wikilink(value)


def extract_link_target(value: str) -> str | None:
    """Target note of a wikilink or markdown link, without alias, heading or extension.

    >>> extract_link_target("[[Projects/Roadmap|the roadmap]]")
    'Projects/Roadmap'
    >>> extract_link_target("[Roadmap](Projects/Road%20map.md)")
    'Projects/Road map'
    """
    value = value.strip()
    match = WIKILINK.match(value)
    if match:
        target = match.group(1).split("|", 1)[0]
    else:
        match = MARKDOWN_LINK.match(value)
        if not match:
            return None
        target = unquote(match.group(2))
    target = target.split("#", 1)[0].strip()
    if target.endswith(".md"):
        target = target[:-3]
    return target or None


def repair_near_wikilink(value: str) -> str | None:
    """Return the repaired link when `value` is one bracket short of a wikilink."""
    stripped = value.strip()
    if _MISSING_CLOSE.match(stripped):
        return stripped + "]"
    if _MISSING_OPEN.match(stripped):
        return "[" + stripped
    return None


def to_link(value: str, link_format: str = "wikilink") -> str:
    """Convert a bare note name (or a link in the other format) to `link_format`."""
    target = extract_link_target(value) or value.strip()
    if link_format == "markdown":
        return f"[{target}]({target.replace(' ', '%20')}.md)"
    return f"[[{target}]]"


def suggest_value(value: str, candidates: list[str], max_distance: int = 2) -> str | None:
    """Suggest the intended candidate for a misspelled value.

    A case-insensitive exact match wins outright. Otherwise the candidate with
    the smallest edit distance is returned when that distance is within both
    `max_distance` and 40% of the value's length, and no other candidate ties
    with it.
    """
    lowered = value.lower()
    for candidate in candidates:
        if candidate.lower() == lowered:
            return candidate

    limit = min(max_distance, math.ceil(len(value) * 0.4))
    if limit <= 0:
        return None

    distances = sorted((levenshtein(lowered, c.lower()), c) for c in candidates)
    within = [(d, c) for d, c in distances if d <= limit]
    if not within:
        return None
    best_distance = within[0][0]
    best = [c for d, c in within if d == best_distance]
    return best[0] if len(best) == 1 else None
