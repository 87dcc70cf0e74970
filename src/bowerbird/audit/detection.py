"""Audit engine for bowerbird vaults.

A run has two phases. First every note of the vault is read and parsed,
concurrently and with a bounded number of files in flight. Only when the
whole snapshot is in memory are the issues computed, because reference
checks need the complete filename index, ownership index and the declared
type of every note.

Per-note checks, in order:
  1. parse failure         -> parse-error, nothing else for that note
  2. raw-text hygiene      -> frontmatter-not-at-top, duplicate keys, malformed links
  3. declared type         -> orphan-file / invalid-type end the note's checks
  4. location              -> wrong-directory / owned-wrong-location
  5. fields                -> missing-required, invalid-option, list elements,
                              dates, scalar types, link format, key casing,
                              unknown fields
  6. references            -> stale, ambiguous, self, source type, owned notes
Parent cycles are found once over the whole vault and reported once per cycle.
"""

import asyncio
import dataclasses
import re
from dataclasses import dataclass, field as dataclass_field
from pathlib import Path

from loguru import logger

from bowerbird.audit.links import (
    extract_link_target,
    matches_format,
    suggest_value,
    to_link,
)
from bowerbird.audit.structural import hygiene_issues
from bowerbird.audit.types import (
    AuditIssue,
    AuditOptions,
    AuditSummary,
    FileAuditResult,
    IssueCode,
    Severity,
    default_severity,
)
from bowerbird.config import RunConfig
from bowerbird.discovery import CorpusScanner, ManagedFile, filter_by_path, find_similar_files
from bowerbird.file_utils import (
    FileError,
    ParsedNote,
    decode_text,
    parse_note_text,
    read_file_bytes,
)
from bowerbird.ownership import OwnerInstance, OwnershipIndex, build_ownership_index
from bowerbird.schema.resolver import (
    PARENT_FIELD,
    ROOT_TYPE,
    Field,
    FieldKind,
    ResolvedSchema,
    ResolvedType,
)
from bowerbird.utils import FilePath, Value, is_within, note_name

ALLOWED_NATIVE_FIELDS = frozenset({"tags", "aliases", "cssclasses", "publish", "type"})

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_DATETIME = re.compile(
    r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?$"
)
_INTEGER = re.compile(r"^[+-]?\d+$")
_DECIMAL = re.compile(r"^[+-]?\d+\.\d+$")


# --- Snapshot ---


@dataclass
class NoteSnapshot:
    """One note as read at the start of the run."""

    file: ManagedFile
    note: ParsedNote | None = None
    error: str | None = None
    raw_text: str | None = None


@dataclass
class AuditContext:
    """Vault-wide indexes shared by every check. Read-only once built."""

    schema: ResolvedSchema
    vault_root: Path
    config: RunConfig
    ownership: OwnershipIndex
    files: dict[str, ManagedFile] = dataclass_field(default_factory=dict)
    names: dict[str, list[str]] = dataclass_field(default_factory=dict)  # lower name -> paths
    paths: dict[str, str] = dataclass_field(default_factory=dict)  # lower path sans .md -> path
    note_types: dict[str, str] = dataclass_field(default_factory=dict)
    parent_links: dict[str, str] = dataclass_field(default_factory=dict)

    def resolve_link(self, target: str) -> list[str]:
        """Notes a link target can refer to: by vault path when it has a folder, else by name."""
        key = target.strip().strip("/").lower()
        if "/" in key:
            match = self.paths.get(key)
            return [match] if match else []
        return sorted(self.names.get(key, []))

    def owner_instance_containing(self, directory: str) -> OwnerInstance | None:
        for instance in self.ownership.owners.values():
            if is_within(directory, instance.folder):
                return instance
        return None


def resolve_declared_type(schema: ResolvedSchema, frontmatter: dict[str, Value]) -> str | None:
    """Read the note's type from `type`, refined by `<type>-type` subtype keys.

    `type: objective` with `objective-type: task` resolves to `task` when
    `task` descends from `objective`. Returns the raw `type` string when it
    names no known type, and None when the note has no usable `type`.
    """
    value = frontmatter.get("type")
    if not isinstance(value, str) or not value.strip():
        return None

    current = value.strip()
    if current not in schema.types:
        return current

    while True:
        subtype = frontmatter.get(f"{current}-type")
        if (
            isinstance(subtype, str)
            and subtype != current
            and schema.is_subtype(subtype, current)
        ):
            current = subtype
            continue
        return current


def build_context(
    schema: ResolvedSchema,
    vault_root: Path,
    config: RunConfig,
    ownership: OwnershipIndex,
    snapshots: list[NoteSnapshot],
) -> AuditContext:
    ctx = AuditContext(schema=schema, vault_root=vault_root, config=config, ownership=ownership)
    for snapshot in snapshots:
        rel = snapshot.file.relative_path
        ctx.files[rel] = snapshot.file
        ctx.names.setdefault(snapshot.file.name.lower(), []).append(rel)
        ctx.paths[rel[:-3].lower()] = rel

    for snapshot in snapshots:
        if snapshot.note is None:
            continue
        rel = snapshot.file.relative_path
        declared = resolve_declared_type(schema, snapshot.note.frontmatter)
        if declared is not None and declared in schema.types:
            ctx.note_types[rel] = declared
        parent = parent_link(ctx, declared, snapshot.note.frontmatter)
        if parent is not None:
            ctx.parent_links[rel] = parent
    return ctx


def parent_link(
    ctx: AuditContext, declared: str | None, frontmatter: dict[str, Value]
) -> str | None:
    """Path of the note's parent when its type is recursive and the link resolves uniquely."""
    resolved = ctx.schema.get_type(declared) if declared else None
    if resolved is None or not resolved.recursive:
        return None
    value = frontmatter.get(PARENT_FIELD)
    if not isinstance(value, str):
        return None
    target = extract_link_target(value)
    if target is None:
        return None
    matches = ctx.resolve_link(target)
    return matches[0] if len(matches) == 1 else None


# --- Issue helpers ---


def _issue(code: IssueCode, file: ManagedFile, message: str, **kwargs) -> AuditIssue:
    severity = kwargs.pop("severity", None) or default_severity(code)
    return AuditIssue(
        code=code, severity=severity, file=file.relative_path, message=message, **kwargs
    )


def _is_missing(value: Value) -> bool:
    return value is None or value == "" or value == []


def _elements(value: Value) -> list[tuple[int | None, Value]]:
    """(list index, element) pairs; a scalar is a single element with no index."""
    if isinstance(value, list):
        return list(enumerate(value))
    return [(None, value)]


def _with_index(extra: dict, index: int | None) -> dict:
    if index is not None:
        extra["list_index"] = index
    return extra


def _is_iso_date(value: Value) -> bool:
    return isinstance(value, str) and bool(_ISO_DATE.match(value) or _ISO_DATETIME.match(value))


def _describe(field_name: str, index: int | None) -> str:
    return field_name if index is None else f"{field_name}[{index}]"


def coerce_scalar(kind: FieldKind, text: str) -> tuple[bool, Value]:
    """Convert a quoted boolean or number to the type its field expects.

    Returns `(True, value)` on a clean conversion and `(False, None)` otherwise.
    Only `true`/`false` (any case) count as booleans.
    """
    trimmed = text.strip()
    if kind is FieldKind.BOOLEAN:
        lowered = trimmed.lower()
        if lowered in ("true", "false"):
            return True, lowered == "true"
        return False, None
    if _INTEGER.match(trimmed):
        return True, int(trimmed)
    if _DECIMAL.match(trimmed):
        return True, float(trimmed)
    return False, None


def _scalar_text(value: Value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# --- Per-note checks ---


def check_location(
    ctx: AuditContext, file: ManagedFile, resolved: ResolvedType
) -> list[AuditIssue]:
    schema = ctx.schema
    if resolved.name == ROOT_TYPE:
        return []
    expected = schema.output_dir(resolved.name)

    if file.ownership is not None:
        child_types = [
            owned.child_type
            for owned in schema.ownership.owns.get(file.ownership.owner_type, [])
            if owned.field_name == file.ownership.field_name
        ]
        if any(schema.is_subtype(resolved.name, child) for child in child_types):
            return []
        return [
            _issue(
                IssueCode.WRONG_DIRECTORY,
                file,
                f"Note of type '{resolved.name}' is inside an owned '{', '.join(child_types)}' "
                f"folder of {file.ownership.owner_path}; expected in {expected or '/'}",
                extra={"expected_directory": expected, "actual_directory": file.directory},
            )
        ]

    if is_within(file.directory, expected):
        return []

    owners = schema.ownership.can_be_owned_by.get(resolved.name, [])
    instance = ctx.owner_instance_containing(file.directory) if owners else None
    if instance is not None and any(o.owner_type == instance.owner_type for o in owners):
        expected_owned = f"{instance.folder}/{resolved.name}"
        return [
            _issue(
                IssueCode.OWNED_WRONG_LOCATION,
                file,
                f"Owned note of type '{resolved.name}' should be in {expected_owned}",
                extra={
                    "expected_directory": expected_owned,
                    "actual_directory": file.directory,
                    "owner_path": instance.owner_path,
                },
            )
        ]

    return [
        _issue(
            IssueCode.WRONG_DIRECTORY,
            file,
            f"Note of type '{resolved.name}' is in {file.directory or '/'}; expected {expected}",
            extra={"expected_directory": expected, "actual_directory": file.directory},
        )
    ]


def _check_enum(
    ctx: AuditContext, file: ManagedFile, field_def: Field, value: Value, allowed: list[str]
) -> list[AuditIssue]:
    issues = []
    for index, element in _elements(value):
        if isinstance(element, (list, dict)) or element is None:
            continue
        text = element if isinstance(element, str) else str(element)
        if text in allowed:
            continue
        suggestion = suggest_value(text, allowed, ctx.config.suggestion_max_distance)
        hint = f" Did you mean '{suggestion}'?" if suggestion else ""
        issues.append(
            _issue(
                IssueCode.INVALID_OPTION,
                file,
                f"Invalid value '{text}' for {_describe(field_def.name, index)}; "
                f"expected one of: {', '.join(allowed)}.{hint}",
                field=field_def.name,
                suggestion=suggestion,
                auto_fixable=suggestion is not None,
                extra=_with_index({"value": element, "allowed": allowed}, index),
            )
        )
    return issues


def _check_relation_format(
    ctx: AuditContext, file: ManagedFile, field_def: Field, value: Value
) -> list[AuditIssue]:
    link_format = ctx.schema.relation_format(field_def)
    issues = []
    for index, element in _elements(value):
        if isinstance(element, str):
            if not element.strip() or matches_format(element, link_format):
                continue
            suggestion: str | None = to_link(element, link_format)
        elif field_def.is_list and index is not None:
            continue  # Reported as invalid-list-element
        else:
            suggestion = None
        issues.append(
            _issue(
                IssueCode.FORMAT_VIOLATION,
                file,
                f"{_describe(field_def.name, index)} should be a {link_format} link, "
                f"got {element!r}",
                field=field_def.name,
                suggestion=suggestion,
                extra=_with_index({"value": element, "expected_format": link_format}, index),
            )
        )
    return issues


def _check_scalar_type(file: ManagedFile, field_def: Field, value: str) -> AuditIssue:
    expected = field_def.kind.value
    converted_ok, converted = coerce_scalar(field_def.kind, value)
    extra: dict = {"value": value, "expected": expected}
    if converted_ok:
        extra["converted"] = converted
        message = f"String value for {field_def.name} should be a {expected}"
    else:
        message = f"Invalid {expected} for {field_def.name}: '{value}'"
    return _issue(
        IssueCode.WRONG_SCALAR_TYPE,
        file,
        message,
        field=field_def.name,
        suggestion=_scalar_text(converted) if converted_ok else None,
        auto_fixable=converted_ok,
        extra=extra,
    )


def _miscased_keys(resolved: ResolvedType, frontmatter: dict[str, Value]) -> dict[str, str]:
    """Frontmatter keys that name a field of the type in the wrong case, mapped to the field."""
    canonical = {name.lower(): name for name in resolved.fields}
    return {
        key: canonical[key.lower()]
        for key in frontmatter
        if key not in resolved.fields
        and key.lower() in canonical
        and key.lower() != "type"
        and not key.endswith("-type")
    }


def _key_casing_issue(
    file: ManagedFile, key: str, canonical: str, frontmatter: dict[str, Value]
) -> AuditIssue:
    conflict = not _is_missing(frontmatter.get(canonical)) and not _is_missing(frontmatter[key])
    extra: dict = {"value": frontmatter[key], "canonical_key": canonical}
    if conflict:
        extra["conflict_value"] = frontmatter[canonical]
    return _issue(
        IssueCode.FRONTMATTER_KEY_CASING,
        file,
        f"Key '{key}' should be '{canonical}'" + (" (both are set)" if conflict else ""),
        field=key,
        suggestion=canonical,
        auto_fixable=not conflict,
        extra=extra,
    )


def check_fields(
    ctx: AuditContext, file: ManagedFile, resolved: ResolvedType, frontmatter: dict[str, Value]
) -> list[AuditIssue]:
    issues: list[AuditIssue] = []
    miscased = _miscased_keys(resolved, frontmatter)

    for name in resolved.field_order:
        field_def = resolved.fields[name]
        value = frontmatter.get(name)

        if _is_missing(value):
            if name not in frontmatter and name in miscased.values():
                continue  # Reported as frontmatter-key-casing
            if field_def.required:
                extra = {"default": field_def.default} if field_def.has_default else {}
                issues.append(
                    _issue(
                        IssueCode.MISSING_REQUIRED,
                        file,
                        f"Missing required field '{name}'",
                        field=name,
                        suggestion=str(field_def.default) if field_def.has_default else None,
                        auto_fixable=field_def.has_default,
                        extra=extra,
                    )
                )
            continue

        allowed = ctx.schema.enum_values(field_def)
        if allowed is not None:
            issues.extend(_check_enum(ctx, file, field_def, value, allowed))

        if field_def.is_list and isinstance(value, list):
            for index, element in enumerate(value):
                if not isinstance(element, str):
                    issues.append(
                        _issue(
                            IssueCode.INVALID_LIST_ELEMENT,
                            file,
                            f"{_describe(name, index)} must be a string, got {element!r}",
                            field=name,
                            extra={"value": element, "list_index": index},
                        )
                    )

        if field_def.kind is FieldKind.DATE:
            for index, element in _elements(value):
                if not _is_iso_date(element):
                    issues.append(
                        _issue(
                            IssueCode.INVALID_DATE_FORMAT,
                            file,
                            f"{_describe(name, index)} is not an ISO date (YYYY-MM-DD): "
                            f"{element!r}",
                            field=name,
                            extra=_with_index({"value": element}, index),
                        )
                    )

        if field_def.kind in (FieldKind.BOOLEAN, FieldKind.NUMBER) and isinstance(value, str):
            issues.append(_check_scalar_type(file, field_def, value))

        if field_def.is_relation:
            issues.extend(_check_relation_format(ctx, file, field_def, value))

    allowed_extra = ctx.config.allowed_extra_fields
    for key in frontmatter:
        if key in resolved.fields or key in ALLOWED_NATIVE_FIELDS or key.endswith("-type"):
            continue
        if key in allowed_extra:
            continue
        if key in miscased:
            issues.append(_key_casing_issue(file, key, miscased[key], frontmatter))
            continue
        suggestion = suggest_value(key, list(resolved.fields), ctx.config.suggestion_max_distance)
        hint = f" Did you mean '{suggestion}'?" if suggestion else ""
        issues.append(
            _issue(
                IssueCode.UNKNOWN_FIELD,
                file,
                f"Unknown field '{key}' for type '{resolved.name}'.{hint}",
                severity=Severity.ERROR if ctx.config.strict else Severity.WARNING,
                field=key,
                suggestion=suggestion,
                extra={"value": frontmatter[key]},
            )
        )

    return issues


def _reference_issue(
    code: IssueCode, file: ManagedFile, field_name: str, index: int | None, message: str, **extra
) -> AuditIssue:
    return _issue(code, file, message, field=field_name, extra=_with_index(extra, index))


def check_references(
    ctx: AuditContext, file: ManagedFile, resolved: ResolvedType, frontmatter: dict[str, Value]
) -> list[AuditIssue]:
    issues: list[AuditIssue] = []

    for name in resolved.field_order:
        field_def = resolved.fields[name]
        value = frontmatter.get(name)
        if not field_def.is_relation or _is_missing(value):
            continue
        link_format = ctx.schema.relation_format(field_def)

        for index, element in _elements(value):
            if not isinstance(element, str) or not matches_format(element, link_format):
                continue
            target = extract_link_target(element)
            if target is None:
                continue
            where = _describe(name, index)
            matches = ctx.resolve_link(target)

            if not matches:
                similar = find_similar_files(target, sorted(ctx.files))
                issue = _reference_issue(
                    IssueCode.STALE_REFERENCE,
                    file,
                    name,
                    index,
                    f"{where} links to '{target}', which does not exist",
                    value=element,
                    target=target,
                    similar_files=similar,
                )
                suggestion = similar[0] if similar else None
                issues.append(dataclasses.replace(issue, suggestion=suggestion))
                continue

            if len(matches) > 1:
                issues.append(
                    _reference_issue(
                        IssueCode.AMBIGUOUS_LINK_TARGET,
                        file,
                        name,
                        index,
                        f"{where} link '{target}' matches {len(matches)} notes: "
                        f"{', '.join(matches)}",
                        value=element,
                        target=target,
                        candidates=matches,
                    )
                )
                continue

            target_path = matches[0]
            if target_path == file.relative_path:
                issues.append(
                    _reference_issue(
                        IssueCode.SELF_REFERENCE,
                        file,
                        name,
                        index,
                        f"{where} links the note to itself",
                        value=element,
                    )
                )
                continue

            check = ctx.ownership.can_reference(file.relative_path, target_path)
            if not check.valid:
                issues.append(
                    _reference_issue(
                        IssueCode.OWNED_NOTE_REFERENCED,
                        file,
                        name,
                        index,
                        f"{where} links to {target_path}, which is owned by {check.owner_path}",
                        value=element,
                        target_path=target_path,
                        owner_path=check.owner_path,
                    )
                )

            target_type = ctx.note_types.get(target_path)
            sources = field_def.source_types
            if not sources or target_type is None:
                continue
            if not any(ctx.schema.is_subtype(target_type, source) for source in sources):
                issues.append(
                    _reference_issue(
                        IssueCode.INVALID_SOURCE_TYPE,
                        file,
                        name,
                        index,
                        f"{where} links to a '{target_type}' note; "
                        f"expected {' or '.join(sources)}",
                        value=element,
                        target_type=target_type,
                        expected_types=list(sources),
                    )
                )

    return issues


def audit_note(ctx: AuditContext, file: ManagedFile, note: ParsedNote) -> list[AuditIssue]:
    """All per-note issues of a parsed note, parent cycles excepted."""
    issues = hygiene_issues(file.relative_path, note.structure)
    frontmatter = note.frontmatter

    declared = resolve_declared_type(ctx.schema, frontmatter)
    if declared is None:
        inferred = file.expected_type
        issues.append(
            _issue(
                IssueCode.ORPHAN_FILE,
                file,
                "Note has no 'type' in its frontmatter"
                + (f"; its location suggests '{inferred}'" if inferred else ""),
                suggestion=inferred,
                extra={"inferred_type": inferred} if inferred else {},
            )
        )
        return issues

    resolved = ctx.schema.get_type(declared)
    if resolved is None:
        suggestion = suggest_value(
            declared, ctx.schema.type_names, ctx.config.suggestion_max_distance
        )
        hint = f" Did you mean '{suggestion}'?" if suggestion else ""
        issues.append(
            _issue(
                IssueCode.INVALID_TYPE,
                file,
                f"Unknown type '{declared}'.{hint}",
                field="type",
                suggestion=suggestion or file.expected_type,
                extra={"value": declared},
            )
        )
        return issues

    issues.extend(check_location(ctx, file, resolved))
    issues.extend(check_fields(ctx, file, resolved, frontmatter))
    issues.extend(check_references(ctx, file, resolved, frontmatter))
    return issues


def parse_error_issue(file: ManagedFile, error: str) -> AuditIssue:
    return _issue(IssueCode.PARSE_ERROR, file, f"Failed to parse frontmatter: {error}")


# --- Parent cycles ---


def find_parent_cycles(parent_links: dict[str, str]) -> list[list[str]]:
    """Distinct cycles of two or more notes in the parent graph.

    Each cycle is listed once, rotated to start at its smallest path.
    A note pointing at itself is a self-reference, not a cycle.
    """
    finished: set[str] = set()
    cycles: list[list[str]] = []

    for start in sorted(parent_links):
        walk: list[str] = []
        position: dict[str, int] = {}
        node: str | None = start
        while node is not None and node not in finished and node not in position:
            position[node] = len(walk)
            walk.append(node)
            node = parent_links.get(node)

        if node is not None and node in position:
            cycle = walk[position[node] :]
            if len(cycle) > 1:
                pivot = cycle.index(min(cycle))
                cycles.append(cycle[pivot:] + cycle[:pivot])
        finished.update(walk)

    return cycles


def parent_cycle_issues(ctx: AuditContext, parent_links: dict[str, str]) -> list[AuditIssue]:
    issues = []
    for cycle in find_parent_cycles(parent_links):
        names = [note_name(path) for path in cycle]
        owner = ctx.files.get(cycle[0]) or ManagedFile(
            path=ctx.vault_root / cycle[0], relative_path=cycle[0]
        )
        issues.append(
            _issue(
                IssueCode.PARENT_CYCLE,
                owner,
                f"Parent cycle: {' -> '.join(names + [names[0]])}",
                field=PARENT_FIELD,
                extra={"cycle": names, "cycle_paths": cycle},
            )
        )
    return issues


# --- Engine ---


@dataclass
class AuditReport:
    """Result of an audit run.

    `issues` honors the only/ignore filters; `summary` counts every issue
    found before those filters.
    """

    issues: list[AuditIssue]
    all_issues: list[AuditIssue]
    summary: AuditSummary
    context: AuditContext
    files: list[ManagedFile]

    @property
    def by_file(self) -> list[FileAuditResult]:
        results: dict[str, FileAuditResult] = {}
        for issue in self.issues:
            results.setdefault(issue.file, FileAuditResult(issue.file)).issues.append(issue)
        return [results[key] for key in sorted(results)]

    @property
    def has_errors(self) -> bool:
        return any(issue.severity is Severity.ERROR for issue in self.issues)


class AuditEngine:
    """Runs audits against one vault with one resolved schema."""

    def __init__(self, schema: ResolvedSchema, vault_root: FilePath, config: RunConfig):
        self.schema = schema
        self.vault_root = Path(vault_root)
        self.config = config

    async def load_snapshot(self, file: ManagedFile) -> NoteSnapshot:
        try:
            raw_text = decode_text(await read_file_bytes(file.path), file.relative_path)
        except FileError as e:
            logger.warning(f"Could not read {file.relative_path}: {e}")
            return NoteSnapshot(file=file, error=str(e))
        try:
            return NoteSnapshot(file=file, note=parse_note_text(raw_text), raw_text=raw_text)
        except FileError as e:
            logger.debug("Frontmatter parse failed", path=file.relative_path, error=str(e))
            return NoteSnapshot(file=file, error=str(e), raw_text=raw_text)

    async def load_snapshots(self, files: list[ManagedFile]) -> list[NoteSnapshot]:
        semaphore = asyncio.Semaphore(self.config.max_workers)

        async def _load(file: ManagedFile) -> NoteSnapshot:
            async with semaphore:
                return await self.load_snapshot(file)

        return list(await asyncio.gather(*(_load(file) for file in files)))

    def _in_scope(self, snapshot: NoteSnapshot, options: AuditOptions) -> bool:
        if options.text_filter is not None:
            if snapshot.raw_text is None or options.text_filter not in snapshot.raw_text:
                return False
        if options.predicate is not None and snapshot.note is not None:
            return options.predicate(snapshot.file.relative_path, snapshot.note.frontmatter)
        return True

    async def run(self, options: AuditOptions | None = None) -> AuditReport:
        """Audit the vault.

        Raises:
            KeyError: If `options.type_name` is not a resolved type.
        """
        options = options or AuditOptions()
        ownership = await asyncio.to_thread(build_ownership_index, self.schema, self.vault_root)
        scanner = CorpusScanner(self.schema, self.vault_root, self.config, ownership)

        # Audit exclusions narrow what is checked, not what links can resolve to
        link_targets = await scanner.discover_link_targets()
        if options.type_name:
            scoped = await scanner.discover(options.type_name)
        else:
            scoped = await scanner.discover()
        if options.path_filter:
            scoped = filter_by_path(scoped, options.path_filter)

        known = {f.relative_path for f in link_targets}
        extra_files = [f for f in scoped if f.relative_path not in known]
        snapshots = await self.load_snapshots(link_targets + extra_files)
        by_path = {snapshot.file.relative_path: snapshot for snapshot in snapshots}
        ctx = build_context(self.schema, self.vault_root, self.config, ownership, snapshots)

        scoped_snapshots = []
        for file in scoped:
            snapshot = dataclasses.replace(by_path[file.relative_path], file=file)
            if self._in_scope(snapshot, options):
                scoped_snapshots.append(snapshot)

        issues_by_file: dict[str, list[AuditIssue]] = {}
        for snapshot in scoped_snapshots:
            rel = snapshot.file.relative_path
            if snapshot.note is None:
                error = snapshot.error or "unreadable"
                issues_by_file[rel] = [parse_error_issue(snapshot.file, error)]
            else:
                issues_by_file[rel] = audit_note(ctx, snapshot.file, snapshot.note)

        for issue in parent_cycle_issues(ctx, ctx.parent_links):
            if issue.file in issues_by_file:
                issues_by_file[issue.file].append(issue)

        all_issues = [issue for rel in sorted(issues_by_file) for issue in issues_by_file[rel]]
        issues = [issue for issue in all_issues if options.keeps(issue)]
        summary = AuditSummary.from_issues(all_issues, files_checked=len(scoped_snapshots))
        logger.info(
            f"Audited {summary.files_checked} notes: "
            f"{summary.errors} errors, {summary.warnings} warnings"
        )
        return AuditReport(
            issues=issues,
            all_issues=all_issues,
            summary=summary,
            context=ctx,
            files=[snapshot.file for snapshot in scoped_snapshots],
        )

    async def audit_file(self, ctx: AuditContext, file: ManagedFile) -> list[AuditIssue]:
        """Re-audit a single note from disk against the run's indexes.

        The indexes are not modified; the note's own parent link is taken
        from its current content when looking for cycles.
        """
        snapshot = await self.load_snapshot(file)
        if snapshot.note is None:
            return [parse_error_issue(file, snapshot.error or "unreadable")]

        issues = audit_note(ctx, file, snapshot.note)
        links = dict(ctx.parent_links)
        links.pop(file.relative_path, None)
        declared = resolve_declared_type(ctx.schema, snapshot.note.frontmatter)
        parent = parent_link(ctx, declared, snapshot.note.frontmatter)
        if parent is not None:
            links[file.relative_path] = parent
        issues.extend(i for i in parent_cycle_issues(ctx, links) if i.file == file.relative_path)
        return issues


async def run_audit(
    schema: ResolvedSchema,
    vault_root: FilePath,
    config: RunConfig,
    options: AuditOptions | None = None,
) -> AuditReport:
    """Audit a vault. See `AuditEngine.run`."""
    return await AuditEngine(schema, vault_root, config).run(options)
