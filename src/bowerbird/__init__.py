"""bowerbird - schema-driven auditing and repair for markdown vaults."""

__version__ = "0.4.0"
