"""Rendering of audit reports and fix summaries."""

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bowerbird.audit.detection import AuditReport
from bowerbird.audit.fix import FixStatus, FixSummary
from bowerbird.audit.types import Severity

_SEVERITY_STYLE = {Severity.ERROR: ("red", "✗"), Severity.WARNING: ("yellow", "!")}

_STATUS_STYLE = {
    FixStatus.FIXED: "green",
    FixStatus.SKIPPED: "dim",
    FixStatus.REMAINING: "yellow",
    FixStatus.ERRORED: "red",
    FixStatus.PENDING: "cyan",
}


def report_to_dict(report: AuditReport) -> dict[str, Any]:
    return {
        "summary": report.summary.to_dict(),
        "files": [
            {
                "file": result.relative_path,
                "issues": [issue.to_dict() for issue in result.issues],
            }
            for result in report.by_file
        ],
    }


def report_to_json(report: AuditReport, fix_summary: FixSummary | None = None) -> str:
    data = report_to_dict(report)
    if fix_summary is not None:
        data["fix"] = fix_summary.to_dict()
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def print_report(report: AuditReport, console: Console) -> None:
    """Print issues grouped by note, then a summary table."""
    if not report.issues:
        console.print(
            f"[green]✓ No issues found in {report.summary.files_checked} notes[/green]"
        )
    for result in report.by_file:
        console.print(f"\n[bold cyan]{escape(result.relative_path)}[/bold cyan]")
        for issue in result.issues:
            color, mark = _SEVERITY_STYLE[issue.severity]
            fixable = " [dim](auto-fixable)[/dim]" if issue.auto_fixable else ""
            console.print(
                f"  [{color}]{mark} {issue.code.value}[/{color}] {escape(issue.message)}{fixable}"
            )

    summary = report.summary
    if not summary.by_code:
        return

    table = Table(title="Audit Summary")
    table.add_column("Issue", style="cyan")
    table.add_column("Count", justify="right")
    for code, count in summary.by_code.items():
        table.add_row(code, str(count))
    console.print()
    console.print(table)
    console.print(
        f"\n{summary.files_checked} notes checked, {summary.files_with_issues} with issues: "
        f"[red]{summary.errors} errors[/red], [yellow]{summary.warnings} warnings[/yellow]"
    )


def print_fix_summary(summary: FixSummary, console: Console) -> None:
    if summary.dry_run:
        console.print("\n[bold]Dry run: no files were changed[/bold]")
        for result in summary.files:
            for outcome in result.outcomes:
                if outcome.status is FixStatus.PENDING and outcome.action is not None:
                    target = outcome.issue.field or outcome.action.kind.value
                    console.print(
                        f"  [cyan]would fix[/cyan] {escape(result.relative_path)}: "
                        f"{outcome.issue.code.value} ({escape(target)})"
                    )
        console.print(f"\n{summary.planned} fixable, {summary.remaining} need attention")
        return

    for result in summary.files:
        for outcome in result.outcomes:
            if outcome.status is FixStatus.ERRORED:
                console.print(
                    f"  [red]✗[/red] {escape(result.relative_path)}: {outcome.issue.code.value}: "
                    f"{escape(outcome.message or 'failed')}"
                )

    table = Table(title="Fix Summary")
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status in (FixStatus.FIXED, FixStatus.SKIPPED, FixStatus.REMAINING, FixStatus.ERRORED):
        style = _STATUS_STYLE[status]
        table.add_row(f"[{style}]{status.value}[/{style}]", str(summary.count(status)))
    console.print()
    console.print(table)
    if summary.aborted:
        console.print("[yellow]Stopped early; remaining issues were left untouched[/yellow]")
