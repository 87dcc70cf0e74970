"""Audit command for bowerbird.

`bwrb audit` checks every note against the schema and, with `--fix`, repairs
what it can. Exit status: 0 when no errors remain, 1 when validation errors
remain (or on a usage error), 2 when the schema itself is invalid.
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Annotated, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape

from bowerbird.audit import (
    AuditEngine,
    AuditOptions,
    AuditReport,
    FixSummary,
    InteractiveUnavailableError,
    RepairPipeline,
    parse_issue_code,
)
from bowerbird.audit.output import print_fix_summary, print_report, report_to_json
from bowerbird.audit.prompt import TerminalPrompter
from bowerbird.cli.app import app
from bowerbird.cli.commands.command_utils import (
    EXIT_ISSUES,
    EXIT_OK,
    err_console,
    load_vault_schema,
)
from bowerbird.config import BowerbirdSettings, RunConfig
from bowerbird.schema import ResolvedSchema
from bowerbird.utils import setup_logging

console = Console()


class OutputFormat(str, Enum):
    TEXT = "text"
    JSON = "json"


def _usage_error(message: str) -> typer.Exit:
    err_console.print(f"[red]Error: {escape(message)}[/red]")
    return typer.Exit(EXIT_ISSUES)


def _build_options(
    schema: ResolvedSchema,
    target: Optional[str],
    type_name: Optional[str],
    path: Optional[str],
    text: Optional[str],
    only: Optional[str],
    ignore: Optional[str],
) -> AuditOptions:
    """Turn command-line scoping into `AuditOptions`.

    TARGET names a type when it matches one, otherwise it is a path filter.
    """
    if target:
        if target in schema.types and type_name is None:
            type_name = target
        elif path is None:
            path = target
        else:
            raise _usage_error("TARGET cannot be combined with both --type and --path")

    if type_name is not None and schema.get_type(type_name) is None:
        available = ", ".join(schema.type_names)
        raise _usage_error(f"Unknown type '{type_name}'. Available types: {available}")

    try:
        only_issue = parse_issue_code(only) if only else None
        ignore_issue = parse_issue_code(ignore) if ignore else None
    except ValueError as e:
        raise _usage_error(str(e))

    return AuditOptions(
        type_name=type_name,
        path_filter=path,
        text_filter=text,
        only_issue=only_issue,
        ignore_issue=ignore_issue,
    )


async def _run(
    engine: AuditEngine,
    options: AuditOptions,
    fix: bool,
    auto: bool,
    dry_run: bool,
) -> tuple[AuditReport, FixSummary | None, AuditReport | None]:
    report = await engine.run(options)
    if not fix or not report.issues:
        return report, None, None

    pipeline = RepairPipeline(engine, report)
    if auto:
        summary = await pipeline.run_auto(dry_run=dry_run)
    else:
        summary = await pipeline.run_interactive(TerminalPrompter(console=err_console))

    if summary.dry_run:
        return report, summary, None
    # Report what is left after the writes
    return report, summary, await engine.run(options)


@app.command()
def audit(
    target: Annotated[
        Optional[str],
        typer.Argument(help="Type name or vault-relative path/glob to audit"),
    ] = None,
    vault: Annotated[
        Path,
        typer.Option("--vault", help="Vault root directory", envvar="BWRB_VAULT"),
    ] = Path("."),
    type_name: Annotated[
        Optional[str], typer.Option("--type", help="Audit only this type and its subtypes")
    ] = None,
    path: Annotated[
        Optional[str], typer.Option("--path", help="Audit only notes under this path or glob")
    ] = None,
    text: Annotated[
        Optional[str], typer.Option("--text", help="Audit only notes containing this text")
    ] = None,
    strict: bool = typer.Option(False, "--strict", help="Treat unknown fields as errors"),
    only: Annotated[
        Optional[str], typer.Option("--only", help="Report only this issue code")
    ] = None,
    ignore: Annotated[
        Optional[str], typer.Option("--ignore", help="Do not report this issue code")
    ] = None,
    allow_field: Annotated[
        Optional[list[str]],
        typer.Option("--allow-field", help="Extra frontmatter field to accept (repeatable)"),
    ] = None,
    output: OutputFormat = typer.Option(OutputFormat.TEXT, "--output", help="Report format"),
    fix: bool = typer.Option(False, "--fix", help="Repair issues (interactive unless --auto)"),
    auto: bool = typer.Option(False, "--auto", help="With --fix: apply deterministic fixes only"),
    dry_run: bool = typer.Option(False, "--dry-run", help="With --fix: show fixes without writing"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging on stderr"),
):
    """Audit vault notes against the schema.

    TARGET can be a type name (e.g. task) or a path inside the vault
    (e.g. Projects/ or "Ideas/*.md"). Without TARGET the whole vault is audited.

    Use --fix --auto to apply unambiguous repairs, --fix alone to be asked
    about each issue, and --dry-run to preview.
    """
    settings = BowerbirdSettings()
    if verbose:
        setup_logging("DEBUG")

    if (auto or dry_run) and not fix:
        raise _usage_error("--auto and --dry-run require --fix")
    if dry_run and not auto:
        raise _usage_error("--dry-run is only supported with --auto")
    if fix and not auto and output is OutputFormat.JSON:
        raise _usage_error("Interactive fixing cannot be combined with --output json")

    vault = vault.expanduser().resolve()
    schema = load_vault_schema(vault)
    options = _build_options(schema, target, type_name, path, text, only, ignore)
    config = RunConfig.build(
        schema, settings, strict=strict, allowed_extra_fields=allow_field or []
    )
    engine = AuditEngine(schema, vault, config)

    try:
        report, fix_summary, after = asyncio.run(_run(engine, options, fix, auto, dry_run))
    except InteractiveUnavailableError as e:
        raise _usage_error(str(e))

    final = after or report
    if output is OutputFormat.JSON:
        typer.echo(report_to_json(final, fix_summary))
    else:
        print_report(report, console)
        if fix_summary is not None:
            print_fix_summary(fix_summary, console)
            if after is not None:
                console.print(
                    f"\nAfter fixing: [red]{after.summary.errors} errors[/red], "
                    f"[yellow]{after.summary.warnings} warnings[/yellow]"
                )

    unresolved = final.has_errors
    if fix_summary is not None and not auto:
        unresolved = unresolved or fix_summary.has_unresolved
    logger.debug("Audit finished", errors=final.summary.errors, unresolved=unresolved)
    raise typer.Exit(EXIT_ISSUES if unresolved else EXIT_OK)
