"""Audit result types.

Issues are immutable: a fix never edits an issue, it triggers a new audit
pass whose issues replace the old ones.
"""

from collections import Counter
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any, Callable

from bowerbird.utils import Value


class IssueCode(str, Enum):
    PARSE_ERROR = "parse-error"
    ORPHAN_FILE = "orphan-file"
    INVALID_TYPE = "invalid-type"
    MISSING_REQUIRED = "missing-required"
    INVALID_OPTION = "invalid-option"
    INVALID_LIST_ELEMENT = "invalid-list-element"
    INVALID_DATE_FORMAT = "invalid-date-format"
    WRONG_SCALAR_TYPE = "wrong-scalar-type"
    UNKNOWN_FIELD = "unknown-field"
    FRONTMATTER_KEY_CASING = "frontmatter-key-casing"
    FORMAT_VIOLATION = "format-violation"
    WRONG_DIRECTORY = "wrong-directory"
    OWNED_WRONG_LOCATION = "owned-wrong-location"
    STALE_REFERENCE = "stale-reference"
    AMBIGUOUS_LINK_TARGET = "ambiguous-link-target"
    SELF_REFERENCE = "self-reference"
    INVALID_SOURCE_TYPE = "invalid-source-type"
    PARENT_CYCLE = "parent-cycle"
    OWNED_NOTE_REFERENCED = "owned-note-referenced"
    FRONTMATTER_NOT_AT_TOP = "frontmatter-not-at-top"
    DUPLICATE_FRONTMATTER_KEYS = "duplicate-frontmatter-keys"
    MALFORMED_WIKILINK = "malformed-wikilink"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


# unknown-field is handled separately: its severity depends on strict mode
DEFAULT_SEVERITY: dict[IssueCode, Severity] = {
    IssueCode.STALE_REFERENCE: Severity.WARNING,
    IssueCode.AMBIGUOUS_LINK_TARGET: Severity.WARNING,
    IssueCode.UNKNOWN_FIELD: Severity.WARNING,
    IssueCode.FRONTMATTER_KEY_CASING: Severity.WARNING,
    IssueCode.FRONTMATTER_NOT_AT_TOP: Severity.WARNING,
    IssueCode.MALFORMED_WIKILINK: Severity.WARNING,
}


def default_severity(code: IssueCode) -> Severity:
    return DEFAULT_SEVERITY.get(code, Severity.ERROR)


def parse_issue_code(value: str) -> IssueCode:
    """Look up an issue code by its kebab-case name.

    Raises:
        ValueError: If the name is not a known code.
    """
    try:
        return IssueCode(value)
    except ValueError:
        known = ", ".join(code.value for code in IssueCode)
        raise ValueError(f"Unknown issue code '{value}'. Known codes: {known}") from None


@dataclass(frozen=True)
class AuditIssue:
    code: IssueCode
    severity: Severity
    file: str  # Vault-relative path
    message: str
    field: str | None = None
    suggestion: str | None = None
    auto_fixable: bool = False
    extra: dict[str, Any] = dataclass_field(default_factory=dict, compare=False)

    @property
    def value(self) -> Value:
        return self.extra.get("value")

    @property
    def list_index(self) -> int | None:
        return self.extra.get("list_index")

    @property
    def key(self) -> tuple[IssueCode, str | None, int | None]:
        """Identity used to decide whether a fix made the issue go away."""
        return (self.code, self.field, self.list_index)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "code": self.code.value,
            "severity": self.severity.value,
            "file": self.file,
            "message": self.message,
        }
        if self.field is not None:
            data["field"] = self.field
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion
        data["auto_fixable"] = self.auto_fixable
        if self.extra:
            data["extra"] = self.extra
        return data


@dataclass
class FileAuditResult:
    relative_path: str
    issues: list[AuditIssue] = dataclass_field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity is Severity.ERROR for issue in self.issues)


@dataclass
class AuditSummary:
    """Counts over a set of issues. Recomputed, never stored."""

    files_checked: int = 0
    files_with_issues: int = 0
    errors: int = 0
    warnings: int = 0
    by_code: dict[str, int] = dataclass_field(default_factory=dict)

    @classmethod
    def from_issues(cls, issues: list[AuditIssue], files_checked: int) -> "AuditSummary":
        by_code = Counter(issue.code.value for issue in issues)
        return cls(
            files_checked=files_checked,
            files_with_issues=len({issue.file for issue in issues}),
            errors=sum(1 for issue in issues if issue.severity is Severity.ERROR),
            warnings=sum(1 for issue in issues if issue.severity is Severity.WARNING),
            by_code=dict(sorted(by_code.items())),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_checked": self.files_checked,
            "files_with_issues": self.files_with_issues,
            "errors": self.errors,
            "warnings": self.warnings,
            "by_code": self.by_code,
        }


# Caller-supplied scope predicate: (relative path, frontmatter) -> keep?
type FilePredicate = Callable[[str, dict[str, Value]], bool]


@dataclass(frozen=True)
class AuditOptions:
    type_name: str | None = None
    path_filter: str | None = None
    text_filter: str | None = None
    only_issue: IssueCode | None = None
    ignore_issue: IssueCode | None = None
    predicate: FilePredicate | None = None

    def keeps(self, issue: AuditIssue) -> bool:
        if self.only_issue is not None and issue.code is not self.only_issue:
            return False
        if self.ignore_issue is not None and issue.code is self.ignore_issue:
            return False
        return True
