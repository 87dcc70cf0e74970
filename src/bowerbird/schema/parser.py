"""Schema document parser for bowerbird.

The schema lives at `<vault>/.bwrb/schema.json`. It is parsed into pydantic
models that mirror the JSON shape one to one; nothing here resolves
inheritance (see `bowerbird.schema.resolver`).

Example document:

    {
      "version": 2,
      "enums": {"status": ["raw", "active", "done"]},
      "types": {
        "idea": {
          "fields": {"status": {"prompt": "select", "enum": "status", "required": true}}
        },
        "task": {"extends": "objective", "recursive": true}
      },
      "config": {"link_format": "wikilink"}
    }
"""

import json
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from bowerbird.schema.errors import SchemaLoadError
from bowerbird.utils import FilePath

SCHEMA_DIR = ".bwrb"
SCHEMA_FILE = "schema.json"


# --- Raw Data Model ---


class RawField(BaseModel):
    """A field as written in the schema document."""

    model_config = ConfigDict(extra="ignore")

    prompt: str | None = None
    value: Any = None
    enum: str | None = None
    options: list[str] | None = None
    source: str | list[str] | None = None
    filter: Any = None
    required: bool = False
    default: Any = None
    list_format: str | None = None
    label: str | None = None
    multiple: bool = False
    owned: bool = False
    format: Literal["wikilink", "markdown"] | None = None

    @property
    def has_value(self) -> bool:
        """True when the document set a static `value`, even to null."""
        return "value" in self.model_fields_set

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set and self.default is not None

    @property
    def source_types(self) -> list[str]:
        if self.source is None:
            return []
        if isinstance(self.source, str):
            return [self.source]
        return list(self.source)


class RawType(BaseModel):
    """A type definition as written in the schema document."""

    model_config = ConfigDict(extra="ignore")

    extends: str | None = None
    fields: dict[str, RawField] = Field(default_factory=dict)
    field_order: list[str] | None = None
    output_dir: str | None = None
    filename_pattern: str | None = Field(
        default=None, validation_alias=AliasChoices("filename_pattern", "filename")
    )
    body_sections: list[Any] = Field(default_factory=list)
    recursive: bool = False
    plural: str | None = None


class SchemaConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    link_format: Literal["wikilink", "markdown"] = "wikilink"
    ignored_directories: list[str] = Field(default_factory=list)
    allowed_extra_fields: list[str] = Field(default_factory=list)


class AuditSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ignored_directories: list[str] = Field(default_factory=list)
    allowed_extra_fields: list[str] = Field(default_factory=list)


class RawSchema(BaseModel):
    """The whole schema document."""

    model_config = ConfigDict(extra="ignore")

    version: int | str | None = None
    enums: dict[str, list[str]] = Field(default_factory=dict)
    types: dict[str, RawType] = Field(default_factory=dict)
    config: SchemaConfig = Field(default_factory=SchemaConfig)
    audit: AuditSettings = Field(default_factory=AuditSettings)

    @property
    def ignored_directories(self) -> list[str]:
        """Directory names excluded from scanning, from both `config` and `audit`."""
        return _merge_unique(self.config.ignored_directories, self.audit.ignored_directories)

    @property
    def allowed_extra_fields(self) -> list[str]:
        return _merge_unique(self.config.allowed_extra_fields, self.audit.allowed_extra_fields)


def _merge_unique(first: list[str], second: list[str]) -> list[str]:
    merged: list[str] = []
    for item in [*first, *second]:
        if item not in merged:
            merged.append(item)
    return merged


# --- Loading ---


def parse_schema(data: dict[str, Any]) -> RawSchema:
    """Validate a decoded schema document.

    Raises:
        SchemaLoadError: If the document does not match the schema shape.
    """
    try:
        return RawSchema.model_validate(data)
    except ValidationError as e:
        raise SchemaLoadError(f"Invalid schema document: {e}") from e


def schema_path(vault_root: FilePath) -> Path:
    return Path(vault_root) / SCHEMA_DIR / SCHEMA_FILE


def load_schema(vault_root: FilePath) -> RawSchema:
    """Read and validate `<vault_root>/.bwrb/schema.json`.

    Raises:
        SchemaLoadError: If the file is missing, is not valid JSON, or has the wrong shape.
    """
    path = schema_path(vault_root)
    if not path.exists():
        raise SchemaLoadError(f"Schema not found at {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SchemaLoadError(f"Schema at {path} is not valid JSON: {e}") from e
    except OSError as e:
        raise SchemaLoadError(f"Could not read schema at {path}: {e}") from e

    if not isinstance(data, dict):
        raise SchemaLoadError(f"Schema at {path} must be a JSON object")

    logger.debug("Loaded schema", path=str(path), types=len(data.get("types", {}) or {}))
    return parse_schema(data)
