"""Main CLI entry point for bowerbird."""  # pragma: no cover

from bowerbird.cli.app import app  # pragma: no cover

# Register commands
from bowerbird.cli.commands import audit, schema  # noqa: F401  # pragma: no cover

if __name__ == "__main__":  # pragma: no cover
    app()
