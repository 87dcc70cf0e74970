"""Schema inspection CLI commands for bowerbird.

Registered as a subcommand group: `bwrb schema show [TYPE]`.
"""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from bowerbird.cli.app import schema_app
from bowerbird.cli.commands.command_utils import EXIT_ISSUES, err_console, load_vault_schema
from bowerbird.schema import Field, ResolvedSchema

console = Console()


def _describe_field(schema: ResolvedSchema, field: Field) -> str:
    details = []
    allowed = schema.enum_values(field)
    if allowed is not None:
        details.append(", ".join(allowed))
    if field.source_types:
        details.append("-> " + ", ".join(field.source_types))
    if field.value is not None:
        details.append(f"= {field.value}")
    if field.has_default:
        details.append(f"default {field.default}")
    if field.owned:
        details.append("owned")
    return "; ".join(details)


def _print_types(schema: ResolvedSchema) -> None:
    table = Table(title="Types")
    table.add_column("Type", style="cyan")
    table.add_column("Parent")
    table.add_column("Directory")
    table.add_column("Fields")
    for name in schema.type_names:
        resolved = schema.types[name]
        table.add_row(
            name,
            resolved.parent or "",
            schema.output_dir(name) or "/",
            ", ".join(resolved.field_order),
        )
    console.print(table)


def _print_type(schema: ResolvedSchema, type_name: str) -> None:
    resolved = schema.types[type_name]
    console.print(f"[bold]{type_name}[/bold]")
    if resolved.ancestors:
        console.print(f"  inherits: {' -> '.join(resolved.ancestors)}")
    console.print(f"  directory: {schema.output_dir(type_name) or '/'}")
    if resolved.children:
        console.print(f"  subtypes: {', '.join(sorted(resolved.children))}")

    table = Table(title=f"Fields of {type_name}")
    table.add_column("Field", style="cyan")
    table.add_column("Kind")
    table.add_column("Required", justify="center")
    table.add_column("Details")
    for name in resolved.field_order:
        field = resolved.fields[name]
        table.add_row(
            name,
            field.kind.value + (" (list)" if field.is_list else ""),
            "yes" if field.required else "",
            _describe_field(schema, field),
        )
    console.print(table)


@schema_app.command()
def show(
    type_name: Annotated[
        Optional[str],
        typer.Argument(help="Type to show; all types when omitted"),
    ] = None,
    vault: Annotated[
        Path,
        typer.Option("--vault", help="Vault root directory", envvar="BWRB_VAULT"),
    ] = Path("."),
):
    """Show the resolved schema: every type, or the fields of one type."""
    schema = load_vault_schema(vault.expanduser().resolve())
    if type_name is None:
        _print_types(schema)
        return

    if schema.get_type(type_name) is None:
        available = ", ".join(schema.type_names)
        err_console.print(f"[red]Unknown type '{type_name}'. Available types: {available}[/red]")
        raise typer.Exit(EXIT_ISSUES)
    _print_type(schema, type_name)
