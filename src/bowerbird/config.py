"""Configuration for bowerbird runs.

Environment settings are read once, at the command-line boundary, by
`BowerbirdSettings` (pydantic-settings, `BWRB_` prefix). They are folded
together with the schema's own settings and the command-line flags into a
frozen `RunConfig`, which is the only configuration the core reads.

    BWRB_AUDIT_EXCLUDE=archive,templates/   extra directories to skip
    BWRB_MAX_WORKERS=8                      concurrent file operations
    BWRB_SUGGESTION_MAX_DISTANCE=2          edit distance for option suggestions
    BWRB_LOG_LEVEL=WARNING
"""

from dataclasses import dataclass, field
from typing import Iterable

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bowerbird.schema.parser import SCHEMA_DIR
from bowerbird.schema.resolver import ResolvedSchema


class BowerbirdSettings(BaseSettings):
    """Settings taken from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="BWRB_",
        case_sensitive=False,
        extra="ignore",
    )

    audit_exclude: str = ""
    max_workers: int = Field(default=8, ge=1)
    suggestion_max_distance: int = Field(default=2, ge=0)
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def excluded_dirs(self) -> list[str]:
        return split_dir_list(self.audit_exclude)


def normalize_dir(name: str) -> str:
    return name.strip().replace("\\", "/").strip("/")


def split_dir_list(value: str) -> list[str]:
    """Split a comma separated directory list, dropping empties and trailing separators."""
    return [normalize_dir(part) for part in value.split(",") if normalize_dir(part)]


@dataclass(frozen=True)
class RunConfig:
    """Immutable settings for one audit or repair run."""

    excluded_dirs: frozenset[str] = field(default_factory=lambda: frozenset({SCHEMA_DIR}))
    allowed_extra_fields: frozenset[str] = frozenset()
    strict: bool = False
    max_workers: int = 8
    suggestion_max_distance: int = 2
    respect_gitignore: bool = True

    @classmethod
    def build(
        cls,
        schema: ResolvedSchema,
        settings: BowerbirdSettings | None = None,
        strict: bool = False,
        allowed_extra_fields: Iterable[str] = (),
        extra_excluded_dirs: Iterable[str] = (),
        respect_gitignore: bool = True,
    ) -> "RunConfig":
        """Combine schema settings, environment settings and run flags."""
        settings = settings or BowerbirdSettings()
        excluded = {SCHEMA_DIR}
        for name in [*schema.ignored_directories, *settings.excluded_dirs, *extra_excluded_dirs]:
            if normalize_dir(name):
                excluded.add(normalize_dir(name))

        return cls(
            excluded_dirs=frozenset(excluded),
            allowed_extra_fields=frozenset([*schema.allowed_extra_fields, *allowed_extra_fields]),
            strict=strict,
            max_workers=settings.max_workers,
            suggestion_max_distance=settings.suggestion_max_distance,
            respect_gitignore=respect_gitignore,
        )
