"""Vault discovery for bowerbird.

Enumerates the notes an audit run looks at. Without a type filter the whole
vault is walked; with one, only the storage directories of that type and its
descendants are read, plus any owned notes of those types.
"""

import asyncio
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Optional

import pathspec
from loguru import logger

from bowerbird.config import RunConfig
from bowerbird.file_utils import build_gitignore_spec, normalize_path_separators, should_ignore_path
from bowerbird.ownership import OwnerInfo, OwnershipIndex
from bowerbird.schema.resolver import ROOT_TYPE, ResolvedSchema
from bowerbird.utils import FilePath, is_within, levenshtein, note_name, to_posix


@dataclass
class ManagedFile:
    """A note found by discovery. `expected_type` comes from its location only."""

    path: Path
    relative_path: str
    expected_type: str | None = None
    instance_folder: str | None = None
    ownership: OwnerInfo | None = None

    @property
    def name(self) -> str:
        return note_name(self.relative_path)

    @property
    def directory(self) -> str:
        parent = Path(self.relative_path).parent.as_posix()
        return "" if parent == "." else parent


class CorpusScanner:
    """Finds managed files under a vault root."""

    def __init__(
        self,
        schema: ResolvedSchema,
        vault_root: FilePath,
        config: RunConfig,
        ownership: OwnershipIndex | None = None,
    ):
        self.schema = schema
        self.vault_root = Path(vault_root)
        self.config = config
        self.ownership = ownership or OwnershipIndex()
        self._ignore_spec: Optional[pathspec.PathSpec] = (
            build_gitignore_spec(self.vault_root) if config.respect_gitignore else None
        )
        self._dir_types = self._types_by_directory()

    # --- Exclusion ---

    def is_excluded_dir(self, relative_dir: str, audit_scope: bool = True) -> bool:
        """Whether a directory is skipped by the walk.

        Hidden directories (the schema directory among them) and `.gitignore`
        matches are always skipped. The configured exclusions only apply when
        `audit_scope` is set; link targets may still live there.
        """
        if any(part.startswith(".") for part in relative_dir.split("/") if part):
            return True
        if audit_scope and any(
            is_within(relative_dir, excluded) for excluded in self.config.excluded_dirs
        ):
            return True
        return should_ignore_path(relative_dir, self._ignore_spec, is_dir=True)

    def _is_candidate(self, relative_path: str) -> bool:
        if not relative_path.endswith(".md"):
            return False
        if Path(relative_path).name.startswith("."):
            return False
        return not should_ignore_path(relative_path, self._ignore_spec)

    # --- Walking ---

    async def scan_directory(
        self, directory: Path, audit_scope: bool = True
    ) -> AsyncIterator[Path]:
        """Stream candidate notes from a directory tree, skipping excluded folders.

        Args:
            directory: Directory to scan
            audit_scope: Also skip the configured audit exclusions

        Yields:
            Absolute paths of notes
        """

        def _sync_scandir(dir_path: Path) -> tuple[list[Path], list[Path]]:
            try:
                entries = list(os.scandir(dir_path))
            except PermissionError:
                logger.warning(f"Permission denied scanning directory: {dir_path}")
                return [], []

            files = []
            subdirs = []
            for entry in entries:
                entry_path = Path(entry.path)
                relative = to_posix(entry_path.relative_to(self.vault_root))
                if entry.is_dir(follow_symlinks=False):
                    if self.is_excluded_dir(relative, audit_scope):
                        logger.trace(f"Skipping excluded directory: {relative}")
                        continue
                    subdirs.append(entry_path)
                elif entry.is_file(follow_symlinks=False) and self._is_candidate(relative):
                    files.append(entry_path)
            return files, subdirs

        loop = asyncio.get_event_loop()
        files, subdirs = await loop.run_in_executor(None, _sync_scandir, directory)

        for file_path in files:
            yield file_path

        for subdir in subdirs:
            async for result in self.scan_directory(subdir, audit_scope):
                yield result

    async def _list_directory(self, directory: Path) -> list[Path]:
        """Notes directly inside `directory`, without recursion."""

        def _sync_list() -> list[Path]:
            if not directory.is_dir():
                return []
            with os.scandir(directory) as entries:
                return [
                    Path(entry.path)
                    for entry in entries
                    if entry.is_file(follow_symlinks=False)
                    and self._is_candidate(to_posix(Path(entry.path).relative_to(self.vault_root)))
                ]

        return await asyncio.to_thread(_sync_list)

    # --- Typing by location ---

    def _types_by_directory(self) -> dict[str, str | None]:
        """Map storage directory to the single type stored there (None when shared)."""
        mapping: dict[str, str | None] = {}
        for type_name in self.schema.type_names:
            if type_name == ROOT_TYPE:
                continue
            directory = self.schema.output_dir(type_name)
            mapping[directory] = None if directory in mapping else type_name
        return mapping

    def _managed(self, path: Path, expected_type: str | None = None) -> ManagedFile:
        relative = to_posix(path.relative_to(self.vault_root))
        managed = ManagedFile(path=path, relative_path=relative, expected_type=expected_type)

        owner = self.ownership.is_owned(relative)
        if owner is not None:
            managed.ownership = owner
            managed.instance_folder = self.ownership.owners[owner.owner_path].folder
            managed.expected_type = self._owned_child_type(owner) or expected_type
        elif relative in self.ownership.owners:
            managed.instance_folder = self.ownership.owners[relative].folder
            managed.expected_type = self.ownership.owners[relative].owner_type
        elif managed.expected_type is None:
            managed.expected_type = self._dir_types.get(managed.directory)
        return managed

    def _owned_child_type(self, owner: OwnerInfo) -> str | None:
        for owned in self.schema.ownership.owns.get(owner.owner_type, []):
            if owned.field_name == owner.field_name:
                return owned.child_type
        return None

    # --- Entry points ---

    async def discover(self, type_name: str | None = None) -> list[ManagedFile]:
        """Enumerate managed files, sorted by relative path.

        Args:
            type_name: Restrict discovery to this type and its descendants.

        Raises:
            KeyError: If `type_name` is not a resolved type.
        """
        if type_name is None:
            found = [self._managed(path) async for path in self.scan_directory(self.vault_root)]
        else:
            found = await self._discover_type(type_name)

        unique = {managed.relative_path: managed for managed in found}
        result = [unique[key] for key in sorted(unique)]
        logger.debug(f"Discovered {len(result)} notes", type_filter=type_name)
        return result

    async def discover_link_targets(self) -> list[ManagedFile]:
        """Every note a link can point at, sorted by relative path.

        Unlike `discover`, notes in audit-excluded directories are included.
        """
        found = [
            self._managed(path)
            async for path in self.scan_directory(self.vault_root, audit_scope=False)
        ]
        return sorted(found, key=lambda managed: managed.relative_path)

    async def _discover_type(self, type_name: str) -> list[ManagedFile]:
        if type_name not in self.schema.types:
            raise KeyError(type_name)

        found: list[ManagedFile] = []
        for name in [type_name, *self.schema.descendants(type_name)]:
            directory = self.vault_root / self.schema.output_dir(name)
            for path in sorted(await self._list_directory(directory)):
                found.append(self._managed(path, expected_type=name))

            # Owner notes sit one level down, inside their instance folders
            for owner_path, instance in sorted(self.ownership.owners.items()):
                if instance.owner_type == name:
                    found.append(self._managed(self.vault_root / owner_path, expected_type=name))

            if not self.schema.ownership.can_be_owned(name):
                continue
            for owned_path, owner in sorted(self.ownership.owned_notes.items()):
                if self._owned_child_type(owner) == name:
                    found.append(self._managed(self.vault_root / owned_path, expected_type=name))
        return found


async def discover_files(
    schema: ResolvedSchema,
    vault_root: FilePath,
    config: RunConfig,
    ownership: OwnershipIndex | None = None,
    type_name: str | None = None,
) -> list[ManagedFile]:
    """Discover the managed files of a vault. See `CorpusScanner.discover`."""
    scanner = CorpusScanner(schema, vault_root, config, ownership)
    return await scanner.discover(type_name)


# --- Scoping ---

_GLOB_CHARS = re.compile(r"[*?\[]")


def filter_by_path(files: list[ManagedFile], pattern: str) -> list[ManagedFile]:
    """Keep files matching a gitignore-style glob, or lying under a directory or equal to a path."""
    pattern = normalize_path_separators(pattern)
    if not pattern:
        return files
    if _GLOB_CHARS.search(pattern):
        spec = pathspec.PathSpec.from_lines("gitwildmatch", [pattern])
        return [f for f in files if spec.match_file(f.relative_path)]
    return [
        f
        for f in files
        if f.relative_path == pattern
        or f.relative_path == f"{pattern}.md"
        or is_within(f.directory, pattern)
    ]


# --- Similar files ---


def _words(value: str) -> set[str]:
    return {word for word in re.split(r"[^a-z0-9]+", value.lower()) if word}


def find_similar_files(target: str, candidates: list[str], limit: int = 5) -> list[str]:
    """Rank note names by resemblance to a link target that did not resolve.

    Scoring: shared prefix +50, containment +30, +10 per shared word, and +20
    when the edit distance is within a fifth of the shorter name.
    """
    needle = note_name(target).lower()
    if not needle:
        return []

    scored: list[tuple[int, str]] = []
    for candidate in candidates:
        name = note_name(candidate).lower()
        score = 0
        if name.startswith(needle) or needle.startswith(name):
            score += 50
        elif needle in name or name in needle:
            score += 30
        score += 10 * len(_words(needle) & _words(name))
        shorter = min(len(needle), len(name))
        if levenshtein(needle, name) <= max(1, shorter // 5):
            score += 20
        if score > 0:
            scored.append((score, candidate))

    scored.sort(key=lambda item: (-item[0], item[1]))
    return [candidate for _, candidate in scored[:limit]]
