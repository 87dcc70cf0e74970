"""CLI commands for bowerbird."""

from . import audit, schema

__all__ = [
    "audit",
    "schema",
]
