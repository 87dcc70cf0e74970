"""Repair pipeline for audit issues.

Every repair follows the same contract: read the note, compute the new text
from its current content, write it atomically, re-audit that one note, and
keep the write only if the issue it targeted is gone. Otherwise the original
bytes are written back and the issue is marked errored.

Auto mode applies only deterministic repairs and may work on several notes at
once. Interactive mode asks a `FixPrompter` about each issue in turn.
"""

import asyncio
import sys
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any, Callable, Protocol

from loguru import logger

from bowerbird.audit.detection import AuditEngine, AuditReport, resolve_declared_type
from bowerbird.audit.structural import (
    drop_duplicate_key,
    relocate_frontmatter,
    repair_malformed_link,
)
from bowerbird.audit.types import AuditIssue, IssueCode
from bowerbird.discovery import ManagedFile
from bowerbird.file_utils import (
    FileError,
    decode_text,
    parse_note_text,
    read_file_bytes,
    replace_primary_yaml,
    write_file_atomic,
)
from bowerbird.schema.resolver import ROOT_TYPE, ResolvedSchema
from bowerbird.utils import Value


class InteractiveUnavailableError(Exception):
    """Raised when interactive repair is requested without a terminal."""

    pass


class FixStatus(str, Enum):
    PENDING = "pending"
    FIXED = "fixed"
    SKIPPED = "skipped"
    REMAINING = "remaining"
    ERRORED = "errored"


class ActionKind(str, Enum):
    RELOCATE = "relocate"  # Move the frontmatter block to the top
    DEDUPE = "dedupe"  # Keep one occurrence of a key; `value` picks which
    RELINK = "relink"  # Close a near-miss wikilink
    SET = "set"
    REMOVE = "remove"
    RENAME = "rename"  # Move `field`'s value to the key named by `value`


# Raw-text repairs run before value rewrites, which re-serialize the whole block
_ACTION_ORDER = {
    ActionKind.RELOCATE: 0,
    ActionKind.DEDUPE: 1,
    ActionKind.RELINK: 2,
    ActionKind.SET: 3,
    ActionKind.REMOVE: 3,
    ActionKind.RENAME: 3,
}


@dataclass(frozen=True)
class FixAction:
    kind: ActionKind
    field: str | None = None
    value: Value = None
    list_index: int | None = None


# --- Results ---


@dataclass
class IssueOutcome:
    issue: AuditIssue
    status: FixStatus = FixStatus.PENDING
    action: FixAction | None = None
    message: str | None = None


@dataclass
class FileFixResult:
    relative_path: str
    outcomes: list[IssueOutcome] = dataclass_field(default_factory=list)

    def count(self, status: FixStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)


@dataclass
class FixSummary:
    files: list[FileFixResult] = dataclass_field(default_factory=list)
    dry_run: bool = False
    aborted: bool = False

    def count(self, status: FixStatus) -> int:
        return sum(result.count(status) for result in self.files)

    @property
    def fixed(self) -> int:
        return self.count(FixStatus.FIXED)

    @property
    def skipped(self) -> int:
        return self.count(FixStatus.SKIPPED)

    @property
    def remaining(self) -> int:
        return self.count(FixStatus.REMAINING)

    @property
    def errored(self) -> int:
        return self.count(FixStatus.ERRORED)

    @property
    def planned(self) -> int:
        """Dry run only: issues a real run would attempt."""
        return sum(
            1
            for result in self.files
            for outcome in result.outcomes
            if outcome.status is FixStatus.PENDING and outcome.action is not None
        )

    @property
    def has_unresolved(self) -> bool:
        return self.remaining > 0 or self.errored > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "aborted": self.aborted,
            "fixed": self.fixed,
            "skipped": self.skipped,
            "remaining": self.remaining,
            "errored": self.errored,
            "planned": self.planned,
            "files": [
                {
                    "file": result.relative_path,
                    "outcomes": [
                        {
                            "code": outcome.issue.code.value,
                            "field": outcome.issue.field,
                            "status": outcome.status.value,
                            "message": outcome.message,
                        }
                        for outcome in result.outcomes
                    ],
                }
                for result in self.files
            ],
        }


# --- Interactive protocol ---


class DecisionKind(str, Enum):
    APPLY = "apply"
    SKIP = "skip"
    ABORT = "abort"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    value: Value = None

    @classmethod
    def apply(cls, value: Value = None) -> "Decision":
        return cls(DecisionKind.APPLY, value)

    @classmethod
    def skip(cls) -> "Decision":
        return cls(DecisionKind.SKIP)

    @classmethod
    def abort(cls) -> "Decision":
        return cls(DecisionKind.ABORT)


@dataclass(frozen=True)
class FixProposal:
    """What the user is asked about one issue.

    With `choices`, the answer must be one of them. With `allow_free_text`,
    any non-empty answer is accepted. With neither, the question is a yes/no
    on `action`, which is applied as is.
    """

    issue: AuditIssue
    question: str
    action: FixAction
    current_value: Value = None
    choices: list[str] = dataclass_field(default_factory=list)
    default: str | None = None
    allow_free_text: bool = False

    @property
    def confirm_only(self) -> bool:
        return not self.choices and not self.allow_free_text

    def action_for(self, decision: Decision) -> FixAction:
        if self.confirm_only or decision.value is None:
            return self.action
        if self.action.value is not None and decision.value == self.default:
            return self.action
        return FixAction(
            kind=self.action.kind,
            field=self.action.field,
            value=decision.value,
            list_index=self.action.list_index,
        )


class FixPrompter(Protocol):
    def prompt(self, proposal: FixProposal) -> Decision: ...


# --- Classification ---


def auto_action(issue: AuditIssue) -> FixAction | None:
    """The deterministic repair for an issue, or None when it needs a person."""
    match issue.code:
        case IssueCode.FRONTMATTER_NOT_AT_TOP if issue.auto_fixable:
            return FixAction(ActionKind.RELOCATE)
        case IssueCode.DUPLICATE_FRONTMATTER_KEYS if issue.auto_fixable:
            return FixAction(ActionKind.DEDUPE, field=issue.field)
        case IssueCode.FRONTMATTER_KEY_CASING if issue.auto_fixable:
            return FixAction(ActionKind.RENAME, field=issue.field, value=issue.suggestion)
        case IssueCode.WRONG_SCALAR_TYPE if "converted" in issue.extra:
            return FixAction(ActionKind.SET, field=issue.field, value=issue.extra["converted"])
        case IssueCode.MALFORMED_WIKILINK:
            return FixAction(ActionKind.RELINK, field=issue.field, list_index=issue.list_index)
        case IssueCode.MISSING_REQUIRED if "default" in issue.extra:
            return FixAction(ActionKind.SET, field=issue.field, value=issue.extra["default"])
        case IssueCode.INVALID_OPTION if issue.suggestion is not None:
            return FixAction(
                ActionKind.SET,
                field=issue.field,
                value=issue.suggestion,
                list_index=issue.list_index,
            )
    return None


def propose(
    issue: AuditIssue, schema: ResolvedSchema, declared_type: str | None
) -> FixProposal | None:
    """Build the interactive question for an issue, or None when nothing can be offered."""
    current = issue.value
    deterministic = auto_action(issue)

    match issue.code:
        case IssueCode.MISSING_REQUIRED:
            resolved = schema.get_type(declared_type) if declared_type else None
            field_def = resolved.fields.get(issue.field) if resolved and issue.field else None
            if field_def is None:
                return None
            allowed = schema.enum_values(field_def) or []
            default = field_def.default if field_def.has_default else None
            return FixProposal(
                issue=issue,
                question=f"Value for required field '{issue.field}'",
                action=FixAction(ActionKind.SET, field=issue.field, value=default),
                choices=list(allowed),
                default=None if default is None else str(default),
                allow_free_text=not allowed,
            )
        case IssueCode.INVALID_OPTION:
            return FixProposal(
                issue=issue,
                question=f"Replace '{current}' in '{issue.field}' with",
                action=FixAction(ActionKind.SET, field=issue.field, list_index=issue.list_index),
                current_value=current,
                choices=list(issue.extra.get("allowed", [])),
                default=issue.suggestion,
            )
        case IssueCode.UNKNOWN_FIELD:
            return FixProposal(
                issue=issue,
                question=f"Remove unknown field '{issue.field}'?",
                action=FixAction(ActionKind.REMOVE, field=issue.field),
                current_value=current,
            )
        case IssueCode.FORMAT_VIOLATION if issue.suggestion is not None:
            return FixProposal(
                issue=issue,
                question=f"Convert '{current}' to {issue.suggestion}?",
                action=FixAction(
                    ActionKind.SET,
                    field=issue.field,
                    value=issue.suggestion,
                    list_index=issue.list_index,
                ),
                current_value=current,
            )
        case IssueCode.ORPHAN_FILE | IssueCode.INVALID_TYPE:
            return FixProposal(
                issue=issue,
                question="Type for this note",
                action=FixAction(ActionKind.SET, field="type"),
                current_value=current,
                choices=[name for name in schema.type_names if name != ROOT_TYPE],
                default=issue.suggestion,
            )
        case IssueCode.DUPLICATE_FRONTMATTER_KEYS if deterministic is None:
            values = issue.extra.get("values", [])
            if len(values) < 2:
                return None
            # The parsed frontmatter holds the last occurrence
            return FixProposal(
                issue=issue,
                question=f"Key '{issue.field}' has different values; keep which",
                action=FixAction(ActionKind.DEDUPE, field=issue.field),
                choices=list(values),
                default=values[-1],
            )
        case IssueCode.FRONTMATTER_KEY_CASING if deterministic is None:
            canonical = issue.suggestion
            return FixProposal(
                issue=issue,
                question=f"'{canonical}' is already set; remove '{issue.field}'?",
                action=FixAction(ActionKind.REMOVE, field=issue.field),
                current_value=current,
            )
        case (
            IssueCode.FRONTMATTER_NOT_AT_TOP
            | IssueCode.DUPLICATE_FRONTMATTER_KEYS
            | IssueCode.FRONTMATTER_KEY_CASING
            | IssueCode.WRONG_SCALAR_TYPE
            | IssueCode.MALFORMED_WIKILINK
        ):
            if deterministic is None:
                return None
            return FixProposal(
                issue=issue,
                question=f"{issue.message}. Apply fix?",
                action=deterministic,
                current_value=current,
            )
    return None


# --- Applying ---


def _set_value(values: dict[str, Value], action: FixAction) -> bool:
    if action.field is None:
        return False
    current = values.get(action.field)
    if action.list_index is not None and isinstance(current, list):
        if action.list_index >= len(current):
            return False
        updated = list(current)
        updated[action.list_index] = action.value
        values[action.field] = updated
    else:
        values[action.field] = action.value
    return True


def apply_action(raw: str, action: FixAction, schema: ResolvedSchema) -> str | None:
    """New note text with `action` applied, or None when it does not apply to this text."""
    match action.kind:
        case ActionKind.RELOCATE:
            return relocate_frontmatter(raw)
        case ActionKind.DEDUPE:
            if action.field is None:
                return None
            keep = None if action.value is None else str(action.value)
            return drop_duplicate_key(raw, action.field, keep)
        case ActionKind.RELINK:
            if action.field is None:
                return None
            return repair_malformed_link(raw, action.field, action.list_index)

    try:
        note = parse_note_text(raw)
    except FileError:
        return None

    values = dict(note.frontmatter)
    if action.kind is ActionKind.REMOVE:
        if action.field not in values:
            return None
        del values[action.field]
    elif action.kind is ActionKind.RENAME:
        if action.field not in values or not isinstance(action.value, str):
            return None
        if values.get(action.value) not in (None, "", []):
            return None
        # An empty value under the target key is replaced
        values = {
            (action.value if key == action.field else key): value
            for key, value in values.items()
            if key != action.value
        }
    elif not _set_value(values, action):
        return None

    declared = resolve_declared_type(schema, values)
    resolved = schema.get_type(declared) if declared else None
    field_order = resolved.field_order if resolved else []
    return replace_primary_yaml(note.structure, values, field_order)


# --- Pipeline ---


class RepairPipeline:
    """Applies fixes for the issues of one audit report."""

    def __init__(self, engine: AuditEngine, report: AuditReport):
        self.engine = engine
        self.report = report
        self.schema = engine.schema
        self._files = {file.relative_path: file for file in report.files}

    def _file(self, relative_path: str) -> ManagedFile:
        file = self._files.get(relative_path) or self.report.context.files.get(relative_path)
        if file is None:
            file = ManagedFile(
                path=self.engine.vault_root / relative_path, relative_path=relative_path
            )
        return file

    def _grouped(self) -> list[tuple[str, list[AuditIssue]]]:
        grouped: dict[str, list[AuditIssue]] = {}
        for issue in self.report.issues:
            grouped.setdefault(issue.file, []).append(issue)
        return [(path, grouped[path]) for path in sorted(grouped)]

    async def _still_present(self, file: ManagedFile, issue: AuditIssue) -> bool:
        issues = await self.engine.audit_file(self.report.context, file)
        return any(found.key == issue.key for found in issues)

    async def apply(self, file: ManagedFile, outcome: IssueOutcome, action: FixAction) -> None:
        """Write one fix, re-verify it, and roll back when the issue survives."""
        outcome.action = action
        try:
            original = await read_file_bytes(file.path)
            raw = decode_text(original, file.relative_path)
        except FileError as e:
            outcome.status, outcome.message = FixStatus.ERRORED, str(e)
            return

        updated = apply_action(raw, action, self.schema)
        if updated is None or updated == raw:
            # An earlier fix to the same note may already have resolved it
            if await self._still_present(file, outcome.issue):
                outcome.status, outcome.message = FixStatus.ERRORED, "Fix could not be applied"
            else:
                outcome.status, outcome.message = FixStatus.FIXED, "Resolved by an earlier fix"
            return

        try:
            await write_file_atomic(file.path, updated)
        except FileError as e:
            outcome.status, outcome.message = FixStatus.ERRORED, str(e)
            return

        if not await self._still_present(file, outcome.issue):
            outcome.status = FixStatus.FIXED
            logger.debug("Fixed issue", path=file.relative_path, code=outcome.issue.code.value)
            return

        logger.warning(
            f"Fix for {outcome.issue.code.value} in {file.relative_path} "
            "did not resolve it; rolling back"
        )
        try:
            await write_file_atomic(file.path, original)
            outcome.message = "Fix did not resolve the issue and was rolled back"
        except FileError as e:
            logger.error(f"Rollback failed for {file.relative_path}: {e}")
            outcome.message = f"Fix did not resolve the issue and rollback failed: {e}"
        outcome.status = FixStatus.ERRORED

    async def _auto_file(
        self, relative_path: str, issues: list[AuditIssue], dry_run: bool
    ) -> FileFixResult:
        result = FileFixResult(relative_path, [IssueOutcome(issue) for issue in issues])
        planned = [(auto_action(outcome.issue), outcome) for outcome in result.outcomes]
        planned.sort(
            key=lambda item: _ACTION_ORDER[item[0].kind] if item[0] else len(_ACTION_ORDER)
        )

        file = self._file(relative_path)
        for action, outcome in planned:
            if action is None:
                outcome.status = FixStatus.REMAINING
            elif dry_run:
                outcome.action = action
            else:
                await self.apply(file, outcome, action)
        return result

    async def run_auto(self, dry_run: bool = False) -> FixSummary:
        """Apply every deterministic fix, several notes at a time.

        With `dry_run`, nothing is written: fixable issues stay pending with
        their planned action and the rest are reported as remaining.
        """
        semaphore = asyncio.Semaphore(self.engine.config.max_workers)

        async def _bounded(relative_path: str, issues: list[AuditIssue]) -> FileFixResult:
            async with semaphore:
                return await self._auto_file(relative_path, issues, dry_run)

        results = await asyncio.gather(
            *(_bounded(path, issues) for path, issues in self._grouped())
        )
        summary = FixSummary(files=list(results), dry_run=dry_run)
        logger.info(
            f"Auto-fix: {summary.fixed} fixed, {summary.remaining} remaining, "
            f"{summary.errored} errored"
        )
        return summary

    async def run_interactive(
        self,
        prompter: FixPrompter,
        is_tty: Callable[[], bool] | None = None,
    ) -> FixSummary:
        """Walk the issues note by note, asking `prompter` about each one.

        Raises:
            InteractiveUnavailableError: If there is no interactive terminal.
        """
        if not (is_tty or sys.stdin.isatty)():
            raise InteractiveUnavailableError(
                "Interactive fixing needs a terminal; use --auto for unattended runs"
            )

        summary = FixSummary()
        for relative_path, issues in self._grouped():
            result = FileFixResult(relative_path, [IssueOutcome(issue) for issue in issues])
            summary.files.append(result)
            file = self._file(relative_path)

            for outcome in result.outcomes:
                if summary.aborted:
                    outcome.status = FixStatus.REMAINING
                    continue

                declared = self.report.context.note_types.get(relative_path)
                proposal = propose(outcome.issue, self.schema, declared)
                if proposal is None:
                    outcome.status = FixStatus.REMAINING
                    continue

                try:
                    decision = prompter.prompt(proposal)
                except KeyboardInterrupt:
                    decision = Decision.abort()

                if decision.kind is DecisionKind.ABORT:
                    logger.info("Interactive fix aborted")
                    summary.aborted = True
                    outcome.status = FixStatus.REMAINING
                elif decision.kind is DecisionKind.SKIP:
                    outcome.status = FixStatus.SKIPPED
                else:
                    await self.apply(file, outcome, proposal.action_for(decision))

        return summary


async def run_auto_fix(
    engine: AuditEngine, report: AuditReport, dry_run: bool = False
) -> FixSummary:
    return await RepairPipeline(engine, report).run_auto(dry_run=dry_run)


async def run_interactive_fix(
    engine: AuditEngine,
    report: AuditReport,
    prompter: FixPrompter,
    is_tty: Callable[[], bool] | None = None,
) -> FixSummary:
    return await RepairPipeline(engine, report).run_interactive(prompter, is_tty=is_tty)
