"""Gitignore pattern handling."""

from pathlib import Path
from typing import List, Optional

import pathspec

# Patterns applied even without a .gitignore: editor and sync clutter that
# never holds notes.
DEFAULT_PATTERNS = [
    "node_modules/",
    "*.tmp",
    "*.swp",
    ".DS_Store",
    ".trash/",
]


def get_gitignore_patterns(vault_root: Path) -> List[str]:
    """Get gitignore patterns from the vault's .gitignore file.

    Args:
        vault_root: Root directory containing .gitignore

    Returns:
        List of gitignore pattern strings, defaults first
    """
    gitignore_path = vault_root / ".gitignore"
    patterns = list(DEFAULT_PATTERNS)

    if gitignore_path.exists():
        with open(gitignore_path, encoding="utf-8") as f:
            patterns.extend(
                line.strip() for line in f if line.strip() and not line.strip().startswith("#")
            )

    return patterns


def build_gitignore_spec(vault_root: Path) -> pathspec.PathSpec:
    """Build a PathSpec object from gitignore patterns.

    Args:
        vault_root: Root directory containing .gitignore

    Returns:
        PathSpec object for matching paths
    """
    patterns = get_gitignore_patterns(vault_root)
    return pathspec.PathSpec.from_lines("gitwildmatch", patterns)


def should_ignore_path(
    relative_path: str, spec: Optional[pathspec.PathSpec], is_dir: bool = False
) -> bool:
    """Check a vault-relative path against an ignore spec.

    Directories are matched with a trailing slash so that `build/` style
    patterns apply to them.
    """
    if spec is None:
        return False
    candidate = relative_path.rstrip("/") + "/" if is_dir else relative_path
    return spec.match_file(candidate)
