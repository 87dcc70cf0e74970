"""Type graph resolution for bowerbird.

Turns a `RawSchema` into a `ResolvedSchema`: every type gets its parent,
children, ancestor chain, merged field set, field order and storage
directory, and the schema gets a two-way ownership map.

Resolution runs in passes over the raw document:
  1. synthesize the implicit root type `meta` when the document omits it
  2. assign parents (`extends`, else `meta`)
  3. validate: unknown parents, inheritance cycles, owned fields
  4. ancestors (immediate parent first, root last) and children
  5. field merge, root to leaf (copy-if-absent, then restricted override)
  6. field order
  7. synthesized `parent` field for recursive types
  8. ownership map

Every failure in pass 3 raises a `SchemaError`; there is no partial result.
"""

import dataclasses
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any

from loguru import logger

from bowerbird.schema.errors import (
    InheritanceCycleError,
    InvalidOwnershipError,
    UnknownParentError,
)
from bowerbird.schema.parser import RawField, RawSchema, RawType
from bowerbird.utils import Value

ROOT_TYPE = "meta"
PARENT_FIELD = "parent"


# --- Data Model ---


class FieldKind(str, Enum):
    STATIC = "static"
    SELECT = "select"
    DYNAMIC = "dynamic"
    MULTI_INPUT = "multi-input"
    DATE = "date"
    BOOLEAN = "boolean"
    NUMBER = "number"
    PLAIN_INPUT = "plain-input"


@dataclass(frozen=True)
class Field:
    """A resolved field. Inherited fields are shared between types as-is."""

    name: str
    kind: FieldKind
    required: bool = False
    default: Value = None
    value: Value = None  # Static identity value
    enum_ref: str | None = None
    options: tuple[str, ...] | None = None  # Inline options, used when enum_ref is unset
    source_types: tuple[str, ...] = ()  # Dynamic fields only
    multiple: bool = False
    owned: bool = False
    label: str | None = None
    format: str | None = None  # "wikilink" | "markdown"
    list_format: str | None = None
    filter: Any = None

    @property
    def is_relation(self) -> bool:
        return self.kind is FieldKind.DYNAMIC

    @property
    def is_list(self) -> bool:
        return self.multiple or self.kind is FieldKind.MULTI_INPUT

    @property
    def has_default(self) -> bool:
        return self.default is not None


@dataclass(frozen=True)
class FieldOverride:
    """The only parts of a field a subtype may change on an inherited field."""

    default: Value = None
    value: Value = None
    sets_default: bool = False
    sets_value: bool = False


@dataclass
class ResolvedType:
    name: str
    parent: str | None
    children: list[str] = dataclass_field(default_factory=list)
    ancestors: list[str] = dataclass_field(default_factory=list)  # Immediate parent first
    fields: dict[str, Field] = dataclass_field(default_factory=dict)
    field_order: list[str] = dataclass_field(default_factory=list)
    body_sections: list[Any] = dataclass_field(default_factory=list)
    recursive: bool = False
    output_dir: str | None = None  # Explicit directory only; see ResolvedSchema.output_dir
    filename_pattern: str | None = None
    plural: str = ""


@dataclass(frozen=True)
class OwnedField:
    """One entry of `owns[owner_type]`."""

    field_name: str
    child_type: str
    multiple: bool


@dataclass(frozen=True)
class OwnerField:
    """One entry of `can_be_owned_by[child_type]`."""

    owner_type: str
    field_name: str
    multiple: bool


@dataclass
class OwnershipMap:
    owns: dict[str, list[OwnedField]] = dataclass_field(default_factory=dict)
    can_be_owned_by: dict[str, list[OwnerField]] = dataclass_field(default_factory=dict)

    def can_be_owned(self, type_name: str) -> bool:
        return bool(self.can_be_owned_by.get(type_name))


@dataclass
class ResolvedSchema:
    """The resolved type graph plus the schema-level settings the audit needs."""

    types: dict[str, ResolvedType]
    enums: dict[str, list[str]]
    ownership: OwnershipMap
    link_format: str = "wikilink"
    ignored_directories: list[str] = dataclass_field(default_factory=list)
    allowed_extra_fields: list[str] = dataclass_field(default_factory=list)

    def get_type(self, name: str) -> ResolvedType | None:
        return self.types.get(name)

    @property
    def type_names(self) -> list[str]:
        return sorted(self.types)

    def enum_values(self, field: Field) -> list[str] | None:
        """Allowed values of a select field, or None when it is unconstrained."""
        if field.enum_ref is not None:
            values = self.enums.get(field.enum_ref)
            if values is None:
                logger.warning(f"Field '{field.name}' references undefined enum '{field.enum_ref}'")
            return values
        if field.options is not None:
            return list(field.options)
        return None

    def output_dir(self, type_name: str) -> str:
        """Storage directory of a type, relative to the vault root.

        Uses the type's explicit `output_dir`, else the nearest ancestor's,
        else the plurals of its non-root ancestors and itself joined root to
        leaf. The root type is stored at the vault root ("").
        """
        resolved = self.types[type_name]
        if resolved.output_dir:
            return resolved.output_dir
        for ancestor in resolved.ancestors:
            explicit = self.types[ancestor].output_dir
            if explicit:
                return explicit
        if type_name == ROOT_TYPE:
            return ""

        chain = [a for a in reversed(resolved.ancestors) if a != ROOT_TYPE]
        segments = [self.types[a].plural for a in chain] + [resolved.plural]
        return "/".join(segments)

    def descendants(self, type_name: str) -> list[str]:
        """All types below `type_name`, depth first, children in name order."""
        result: list[str] = []
        stack = list(reversed(sorted(self.types[type_name].children)))
        while stack:
            name = stack.pop()
            result.append(name)
            stack.extend(reversed(sorted(self.types[name].children)))
        return result

    def is_subtype(self, type_name: str, of: str) -> bool:
        """True when `type_name` is `of` or one of its descendants."""
        resolved = self.types.get(type_name)
        if resolved is None:
            return False
        return type_name == of or of in resolved.ancestors

    def relation_format(self, field: Field) -> str:
        return field.format or self.link_format


# --- Pluralization ---


def pluralize(name: str) -> str:
    """English-style plural used for default storage directories.

    >>> pluralize("story"), pluralize("box"), pluralize("day"), pluralize("task")
    ('stories', 'boxes', 'days', 'tasks')
    """
    if name == ROOT_TYPE:
        return ROOT_TYPE
    if name.endswith(("s", "x", "z", "ch", "sh")):
        return name + "es"
    if len(name) > 1 and name.endswith("y") and name[-2] not in "aeiou":
        return name[:-1] + "ies"
    return name + "s"


# --- Raw Field Conversion ---


def _field_kind(raw: RawField) -> FieldKind:
    prompt = (raw.prompt or "").lower()
    if prompt in ("relation", "dynamic"):
        return FieldKind.DYNAMIC
    if prompt == "select":
        return FieldKind.SELECT
    if prompt in ("list", "multi-input"):
        return FieldKind.MULTI_INPUT
    if prompt == "date":
        return FieldKind.DATE
    if prompt == "boolean":
        return FieldKind.BOOLEAN
    if prompt == "number":
        return FieldKind.NUMBER
    if not prompt:
        if raw.enum or raw.options:
            return FieldKind.SELECT
        if raw.source_types:
            return FieldKind.DYNAMIC
        if raw.has_value:
            return FieldKind.STATIC
    return FieldKind.PLAIN_INPUT


def _to_field(name: str, raw: RawField) -> Field:
    return Field(
        name=name,
        kind=_field_kind(raw),
        required=raw.required,
        default=raw.default,
        value=raw.value,
        enum_ref=raw.enum,
        options=tuple(raw.options) if raw.options is not None else None,
        source_types=tuple(raw.source_types),
        multiple=raw.multiple,
        owned=raw.owned,
        label=raw.label,
        format=raw.format,
        list_format=raw.list_format,
        filter=raw.filter,
    )


def _to_override(raw: RawField) -> FieldOverride:
    return FieldOverride(
        default=raw.default,
        value=raw.value,
        sets_default=raw.has_default,
        sets_value=raw.has_value,
    )


def apply_override(inherited: Field, override: FieldOverride) -> Field:
    """Apply a subtype's redefinition of an inherited field.

    Only the default and the static value carry over; `required`, the enum,
    the kind and every other structural attribute stay as inherited.
    """
    changes: dict[str, Any] = {}
    if override.sets_default:
        changes["default"] = override.default
    if override.sets_value:
        changes["value"] = override.value
    return dataclasses.replace(inherited, **changes) if changes else inherited


# --- Resolution Passes ---


def _validate_parents(raw_types: dict[str, RawType], parents: dict[str, str | None]) -> None:
    available = sorted(raw_types)
    for name in sorted(parents):
        parent = parents[name]
        if parent is not None and parent not in raw_types:
            raise UnknownParentError(name, parent, available)

    for name in sorted(parents):
        visited: list[str] = []
        current: str | None = name
        while current is not None:
            if current in visited:
                cycle_start = visited.index(current)
                raise InheritanceCycleError(visited[cycle_start:] + [current])
            visited.append(current)
            current = parents[current]


def _validate_owned_fields(raw_types: dict[str, RawType]) -> None:
    for type_name in sorted(raw_types):
        for field_name, raw_field in raw_types[type_name].fields.items():
            if not raw_field.owned:
                continue
            if _field_kind(raw_field) is not FieldKind.DYNAMIC or not raw_field.source_types:
                raise InvalidOwnershipError(type_name, field_name)


def _ancestors(name: str, parents: dict[str, str | None]) -> list[str]:
    chain: list[str] = []
    current = parents[name]
    while current is not None:
        chain.append(current)
        current = parents[current]
    return chain


def _merge_fields(
    raw_type: RawType, ancestors: list[str], raw_types: dict[str, RawType]
) -> dict[str, Field]:
    fields: dict[str, Field] = {}

    # Copy-if-absent, most distant ancestor first
    for ancestor in reversed(ancestors):
        for name, raw_field in raw_types[ancestor].fields.items():
            if name not in fields:
                fields[name] = _to_field(name, raw_field)

    # The type's own fields: restricted override when inherited, insert otherwise
    for name, raw_field in raw_type.fields.items():
        if name in fields:
            fields[name] = apply_override(fields[name], _to_override(raw_field))
        else:
            fields[name] = _to_field(name, raw_field)

    return fields


def _field_order(
    raw_type: RawType,
    ancestors: list[str],
    raw_types: dict[str, RawType],
    fields: dict[str, Field],
) -> list[str]:
    explicit = raw_type.field_order
    if explicit is not None and len(explicit) == len(set(explicit)) and set(explicit) == set(fields):
        return list(explicit)

    order: list[str] = []

    def place(names: list[str] | None) -> None:
        for name in names or []:
            if name in fields and name not in order:
                order.append(name)

    for ancestor in reversed(ancestors):
        place(raw_types[ancestor].field_order)
    place(explicit)
    place(list(fields))
    return order


def _parent_field(resolved: ResolvedType) -> Field:
    if resolved.parent is not None and resolved.parent != ROOT_TYPE:
        sources: tuple[str, ...] = (resolved.parent, resolved.name)
    else:
        sources = (resolved.name,)
    return Field(
        name=PARENT_FIELD,
        kind=FieldKind.DYNAMIC,
        required=False,
        source_types=sources,
        format="wikilink",
    )


def build_ownership_map(types: dict[str, ResolvedType]) -> OwnershipMap:
    ownership = OwnershipMap()
    for owner_type in sorted(types):
        for field_name, resolved_field in types[owner_type].fields.items():
            if not resolved_field.owned or not resolved_field.source_types:
                continue
            child_type = resolved_field.source_types[0]
            ownership.owns.setdefault(owner_type, []).append(
                OwnedField(field_name, child_type, resolved_field.multiple)
            )
            ownership.can_be_owned_by.setdefault(child_type, []).append(
                OwnerField(owner_type, field_name, resolved_field.multiple)
            )

    for owners in ownership.can_be_owned_by.values():
        owners.sort(key=lambda owner: (owner.owner_type, owner.field_name))
    return ownership


def resolve_schema(raw: RawSchema) -> ResolvedSchema:
    """Resolve a raw schema document into its type graph.

    Args:
        raw: The parsed schema document.

    Returns:
        The resolved schema.

    Raises:
        UnknownParentError: A type extends a type that does not exist.
        InheritanceCycleError: Following `extends` revisits a type.
        InvalidOwnershipError: An owned field is not a relation with a source type.
    """
    raw_types = dict(raw.types)
    if ROOT_TYPE not in raw_types:
        raw_types[ROOT_TYPE] = RawType()

    parents: dict[str, str | None] = {}
    for name, raw_type in raw_types.items():
        if raw_type.extends is not None:
            parents[name] = raw_type.extends
        else:
            parents[name] = None if name == ROOT_TYPE else ROOT_TYPE

    _validate_parents(raw_types, parents)
    _validate_owned_fields(raw_types)

    types: dict[str, ResolvedType] = {}
    for name, raw_type in raw_types.items():
        ancestors = _ancestors(name, parents)
        fields = _merge_fields(raw_type, ancestors, raw_types)
        types[name] = ResolvedType(
            name=name,
            parent=parents[name],
            ancestors=ancestors,
            fields=fields,
            field_order=_field_order(raw_type, ancestors, raw_types, fields),
            body_sections=list(raw_type.body_sections),
            recursive=raw_type.recursive,
            output_dir=raw_type.output_dir.strip("/") if raw_type.output_dir else None,
            filename_pattern=raw_type.filename_pattern,
            plural=raw_type.plural or pluralize(name),
        )

    for name in sorted(types):
        parent = types[name].parent
        if parent is not None:
            types[parent].children.append(name)

    for resolved in types.values():
        if resolved.recursive and PARENT_FIELD not in resolved.fields:
            resolved.fields[PARENT_FIELD] = _parent_field(resolved)
            if PARENT_FIELD not in resolved.field_order:
                resolved.field_order.append(PARENT_FIELD)

    logger.debug(f"Resolved schema with {len(types)} types")
    return ResolvedSchema(
        types=types,
        enums={name: list(values) for name, values in raw.enums.items()},
        ownership=build_ownership_map(types),
        link_format=raw.config.link_format,
        ignored_directories=raw.ignored_directories,
        allowed_extra_fields=raw.allowed_extra_fields,
    )
