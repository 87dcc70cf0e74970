"""Shared helpers for bowerbird."""

import sys
from pathlib import Path
from typing import Union

from loguru import logger

FilePath = Union[Path, str]

# Frontmatter values after YAML decoding. Dates are normalized to ISO strings
# when the block is parsed, so no other scalar types reach the audit.
type Value = str | int | float | bool | list[Value] | dict[str, Value] | None


def setup_logging(level: str = "WARNING") -> None:
    """Configure loguru for command-line use.

    Removes the default handler and logs to stderr so that report output on
    stdout (including JSON) stays machine readable.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        colorize=True,
    )


def to_posix(path: FilePath) -> str:
    """Return a forward-slash relative path string."""
    return Path(path).as_posix()


def note_name(path: FilePath) -> str:
    """Filename without the .md extension."""
    name = Path(path).name
    return name[:-3] if name.endswith(".md") else name


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit costs for insert, delete and substitute."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def is_within(child_dir: str, parent_dir: str) -> bool:
    """Segment-aware check that ``child_dir`` equals or lies beneath ``parent_dir``.

    ``objectives/tasks`` is within ``objectives`` but ``objectives-old`` is not.
    """
    child = [part for part in child_dir.strip("/").split("/") if part and part != "."]
    parent = [part for part in parent_dir.strip("/").split("/") if part and part != "."]
    return child[: len(parent)] == parent
