"""
Fatal schema errors. Any of these aborts a run before the vault is scanned.
"""


class SchemaError(Exception):
    """Base exception for all schema errors."""

    pass


class SchemaLoadError(SchemaError):
    """Raised when the schema document is missing, unreadable or malformed."""

    pass


class UnknownParentError(SchemaError):
    """Raised when a type extends a type that does not exist."""

    def __init__(self, type_name: str, parent: str, available: list[str]):
        self.type_name = type_name
        self.parent = parent
        self.available = available
        super().__init__(
            f"Type '{type_name}' extends unknown type '{parent}'. "
            f"Available types: {', '.join(available)}"
        )


class InheritanceCycleError(SchemaError):
    """Raised when following `extends` revisits a type."""

    def __init__(self, cycle_path: list[str]):
        self.cycle_path = cycle_path
        super().__init__(f"Circular inheritance detected: {' -> '.join(cycle_path)}")


class InvalidOwnershipError(SchemaError):
    """Raised when an owned field is not a relation with at least one source type."""

    def __init__(self, type_name: str, field_name: str):
        self.type_name = type_name
        self.field_name = field_name
        super().__init__(
            f"Field '{field_name}' on type '{type_name}' is owned but is not a relation "
            "with a source type"
        )
