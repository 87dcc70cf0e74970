"""utility functions for commands"""

from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape

from bowerbird.schema import ResolvedSchema, SchemaError, load_schema, resolve_schema

err_console = Console(stderr=True)

# Exit statuses
EXIT_OK = 0
EXIT_ISSUES = 1
EXIT_SCHEMA = 2


def load_vault_schema(vault: Path) -> ResolvedSchema:
    """Load and resolve the vault's schema, exiting with status 2 on any schema error."""
    try:
        return resolve_schema(load_schema(vault))
    except SchemaError as e:
        logger.debug("Schema error", vault=str(vault), error=str(e))
        err_console.print(f"[red]Schema error: {escape(str(e))}[/red]")
        raise typer.Exit(EXIT_SCHEMA)
