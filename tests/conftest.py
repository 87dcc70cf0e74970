"""Common test fixtures: small vaults built in tmp_path."""

import json
from pathlib import Path
from textwrap import dedent
from typing import Any, Callable

import pytest

from bowerbird.config import BowerbirdSettings, RunConfig
from bowerbird.schema import ResolvedSchema, parse_schema, resolve_schema


def make_schema(data: dict[str, Any]) -> ResolvedSchema:
    return resolve_schema(parse_schema(data))


def make_config(schema: ResolvedSchema, **kwargs) -> RunConfig:
    """RunConfig built from the (cleaned) test environment."""
    return RunConfig.build(schema, BowerbirdSettings(), **kwargs)


IDEA_SCHEMA: dict[str, Any] = {
    "version": 2,
    "enums": {"status": ["raw", "active"]},
    "types": {
        "idea": {
            "fields": {
                "status": {"prompt": "select", "enum": "status", "required": True},
            }
        },
        "task": {
            "recursive": True,
            "fields": {
                "status": {"prompt": "select", "enum": "status", "default": "raw", "required": True},
            },
        },
    },
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep BWRB_* variables of the developer's shell out of the tests."""
    for name in (
        "BWRB_VAULT",
        "BWRB_LOG_LEVEL",
        "BWRB_AUDIT_EXCLUDE",
        "BWRB_MAX_WORKERS",
        "BWRB_SUGGESTION_MAX_DISTANCE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def vault(tmp_path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def write_schema(vault) -> Callable[[dict[str, Any]], ResolvedSchema]:
    """Write `.bwrb/schema.json` and return the resolved schema."""

    def _write(data: dict[str, Any]) -> ResolvedSchema:
        schema_dir = vault / ".bwrb"
        schema_dir.mkdir(exist_ok=True)
        (schema_dir / "schema.json").write_text(json.dumps(data, indent=2), encoding="utf-8")
        return make_schema(data)

    return _write


@pytest.fixture
def write_note(vault) -> Callable[[str, str], Path]:
    """Write a note relative to the vault; the text is dedented."""

    def _write(relative_path: str, text: str) -> Path:
        path = vault / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(dedent(text).lstrip("\n").encode("utf-8"))
        return path

    return _write
