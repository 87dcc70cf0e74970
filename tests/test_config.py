"""Test configuration management."""

import pytest
from pydantic import ValidationError

from bowerbird.config import BowerbirdSettings, RunConfig, split_dir_list
from conftest import make_schema


class TestBowerbirdSettings:
    """Test BowerbirdSettings behavior with BWRB_* environment variables."""

    def test_defaults(self):
        """Test the defaults when no BWRB_* variables are set."""
        settings = BowerbirdSettings()
        assert settings.excluded_dirs == []
        assert settings.max_workers == 8
        assert settings.suggestion_max_distance == 2
        assert settings.log_level == "WARNING"

    def test_audit_exclude_from_environment(self, monkeypatch):
        """Test that BWRB_AUDIT_EXCLUDE is split into normalized directory names."""
        monkeypatch.setenv("BWRB_AUDIT_EXCLUDE", "Archive, Templates/ ,,skip\\old")
        settings = BowerbirdSettings()
        assert settings.excluded_dirs == ["Archive", "Templates", "skip/old"]

    def test_numeric_settings(self, monkeypatch):
        monkeypatch.setenv("BWRB_MAX_WORKERS", "2")
        monkeypatch.setenv("BWRB_SUGGESTION_MAX_DISTANCE", "1")
        settings = BowerbirdSettings()
        assert settings.max_workers == 2
        assert settings.suggestion_max_distance == 1

    def test_invalid_worker_count(self, monkeypatch):
        monkeypatch.setenv("BWRB_MAX_WORKERS", "0")
        with pytest.raises(ValidationError):
            BowerbirdSettings()

    def test_log_level_uppercased(self, monkeypatch):
        monkeypatch.setenv("BWRB_LOG_LEVEL", "debug")
        assert BowerbirdSettings().log_level == "DEBUG"


def test_split_dir_list():
    assert split_dir_list("") == []
    assert split_dir_list("a/,/b/c/, ") == ["a", "b/c"]


class TestRunConfig:
    """Test that RunConfig folds schema, environment and flags together."""

    def test_build_merges_sources(self, monkeypatch):
        monkeypatch.setenv("BWRB_AUDIT_EXCLUDE", "Archive")
        schema = make_schema(
            {
                "config": {"ignored_directories": ["Templates/"], "allowed_extra_fields": ["id"]},
                "types": {},
            }
        )
        config = RunConfig.build(
            schema,
            BowerbirdSettings(),
            strict=True,
            allowed_extra_fields=["source"],
            extra_excluded_dirs=["Inbox"],
        )
        assert config.excluded_dirs == frozenset({".bwrb", "Templates", "Archive", "Inbox"})
        assert config.allowed_extra_fields == frozenset({"id", "source"})
        assert config.strict is True

    def test_is_immutable(self):
        config = RunConfig.build(make_schema({"types": {}}), BowerbirdSettings())
        with pytest.raises(AttributeError):
            config.strict = True
