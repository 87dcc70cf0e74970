"""Ownership index for bowerbird vaults.

A type that declares an `owned` relation field owns notes of the field's
source type. Ownership is expressed purely by location:

    drafts/                      <- storage directory of the owner type
      My Draft/                  <- owner instance folder
        My Draft.md              <- owner note (same name as its folder)
        research/                <- folder named after the owned child type
          Sources.md             <- owned by drafts/My Draft/My Draft.md

The index is built once per run from the filesystem and is read-only after.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from loguru import logger

from bowerbird.schema.resolver import ResolvedSchema
from bowerbird.utils import FilePath, to_posix


@dataclass(frozen=True)
class OwnerInfo:
    owner_path: str
    owner_type: str
    field_name: str


@dataclass(frozen=True)
class OwnerInstance:
    """An owner note and the folder its owned notes live under."""

    owner_path: str
    owner_type: str
    folder: str


class RejectReason(str, Enum):
    REFERENCING_OWNED = "referencing-owned"
    ALREADY_OWNED = "already-owned"


@dataclass(frozen=True)
class OwnershipCheck:
    valid: bool
    reason: RejectReason | None = None
    owner_path: str | None = None  # The existing owner when invalid


@dataclass
class OwnershipIndex:
    owned_notes: dict[str, OwnerInfo] = field(default_factory=dict)
    owner_to_owned: dict[str, set[str]] = field(default_factory=dict)
    owners: dict[str, OwnerInstance] = field(default_factory=dict)

    def is_owned(self, path: str) -> OwnerInfo | None:
        return self.owned_notes.get(path)

    def owned_by(self, owner_path: str) -> set[str]:
        return self.owner_to_owned.get(owner_path, set())

    def can_reference(self, from_path: str, to_path: str) -> OwnershipCheck:
        """A note may link to an owned note only if it is that note's owner."""
        info = self.owned_notes.get(to_path)
        if info is None or info.owner_path == from_path:
            return OwnershipCheck(valid=True)
        return OwnershipCheck(
            valid=False, reason=RejectReason.REFERENCING_OWNED, owner_path=info.owner_path
        )

    def validate_new_owned(self, new_path: str, proposed_owner_path: str) -> OwnershipCheck:
        """Check that claiming `new_path` for an owner does not steal it from another.

        Re-claiming a note for the owner that already holds it is valid.
        """
        info = self.owned_notes.get(new_path)
        if info is None or info.owner_path == proposed_owner_path:
            return OwnershipCheck(valid=True)
        return OwnershipCheck(
            valid=False, reason=RejectReason.ALREADY_OWNED, owner_path=info.owner_path
        )

    def add(self, owned_path: str, info: OwnerInfo) -> None:
        check = self.validate_new_owned(owned_path, info.owner_path)
        if not check.valid:
            raise ValueError(f"{owned_path} is already owned by {check.owner_path}")
        self.owned_notes[owned_path] = info
        self.owner_to_owned.setdefault(info.owner_path, set()).add(owned_path)


def _subdirectories(directory: Path) -> list[Path]:
    with os.scandir(directory) as entries:
        return sorted(
            (Path(entry.path) for entry in entries if entry.is_dir() and not entry.name.startswith(".")),
            key=lambda p: p.name,
        )


def _markdown_files(directory: Path) -> list[Path]:
    with os.scandir(directory) as entries:
        return sorted(
            (Path(entry.path) for entry in entries if entry.is_file() and entry.name.endswith(".md")),
            key=lambda p: p.name,
        )


def build_ownership_index(schema: ResolvedSchema, vault_root: FilePath) -> OwnershipIndex:
    """Scan owner storage directories and record every owned note.

    Args:
        schema: The resolved schema.
        vault_root: Vault root directory.

    Returns:
        The ownership index. Empty when no type declares an owned field.
    """
    root = Path(vault_root)
    index = OwnershipIndex()

    for owner_type in sorted(schema.ownership.owns):
        storage = root / schema.output_dir(owner_type)
        if not storage.is_dir():
            continue

        for instance_dir in _subdirectories(storage):
            owner_note = instance_dir / f"{instance_dir.name}.md"
            if not owner_note.is_file():
                continue

            owner_path = to_posix(owner_note.relative_to(root))
            index.owners[owner_path] = OwnerInstance(
                owner_path=owner_path,
                owner_type=owner_type,
                folder=to_posix(instance_dir.relative_to(root)),
            )

            for owned in schema.ownership.owns[owner_type]:
                child_dir = instance_dir / owned.child_type
                if not child_dir.is_dir():
                    continue
                for note in _markdown_files(child_dir):
                    owned_path = to_posix(note.relative_to(root))
                    index.add(owned_path, OwnerInfo(owner_path, owner_type, owned.field_name))

    logger.debug(
        f"Ownership index built: {len(index.owners)} owners, {len(index.owned_notes)} owned notes"
    )
    return index
