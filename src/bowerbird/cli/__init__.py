"""Command line interface for bowerbird."""
