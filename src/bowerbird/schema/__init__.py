"""Schema loading and type graph resolution for bowerbird."""

from bowerbird.schema.errors import (
    InheritanceCycleError,
    InvalidOwnershipError,
    SchemaError,
    SchemaLoadError,
    UnknownParentError,
)
from bowerbird.schema.parser import RawField, RawSchema, RawType, load_schema, parse_schema
from bowerbird.schema.resolver import (
    ROOT_TYPE,
    Field,
    FieldKind,
    OwnershipMap,
    ResolvedSchema,
    ResolvedType,
    pluralize,
    resolve_schema,
)

__all__ = [
    "ROOT_TYPE",
    "Field",
    "FieldKind",
    "InheritanceCycleError",
    "InvalidOwnershipError",
    "OwnershipMap",
    "RawField",
    "RawSchema",
    "RawType",
    "ResolvedSchema",
    "ResolvedType",
    "SchemaError",
    "SchemaLoadError",
    "UnknownParentError",
    "load_schema",
    "parse_schema",
    "pluralize",
    "resolve_schema",
]
