from typing import Optional

import typer

from bowerbird.config import BowerbirdSettings
from bowerbird.utils import setup_logging


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:  # pragma: no cover
        import bowerbird

        typer.echo(f"bowerbird version: {bowerbird.__version__}")
        raise typer.Exit()


app = typer.Typer(name="bwrb", no_args_is_help=True)


@app.callback()
def app_callback(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """bowerbird - schema audits for markdown vaults."""
    setup_logging(BowerbirdSettings().log_level)


# Register sub-command groups
schema_app = typer.Typer(help="Inspect the vault schema")
app.add_typer(schema_app, name="schema")
