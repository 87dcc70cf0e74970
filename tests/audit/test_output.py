"""Tests for report rendering."""

import io
import json

import pytest
from rich.console import Console

from bowerbird.audit import run_audit, run_auto_fix
from bowerbird.audit.detection import AuditEngine
from bowerbird.audit.output import print_fix_summary, print_report, report_to_json
from conftest import IDEA_SCHEMA, make_config


@pytest.fixture
def schema(write_schema):
    return write_schema(IDEA_SCHEMA)


def _console():
    return Console(file=io.StringIO(), force_terminal=False, width=200)


class TestJson:
    @pytest.mark.asyncio
    async def test_structure(self, vault, schema, write_note):
        write_note("ideas/Rae.md", "---\ntype: idea\nstatus: rae\n---\n")
        report = await run_audit(schema, vault, make_config(schema))

        data = json.loads(report_to_json(report))

        assert data["summary"]["errors"] == 1
        assert data["summary"]["by_code"] == {"invalid-option": 1}
        [entry] = data["files"]
        assert entry["file"] == "ideas/Rae.md"
        issue = entry["issues"][0]
        assert issue["code"] == "invalid-option"
        assert issue["severity"] == "error"
        assert issue["field"] == "status"
        assert issue["suggestion"] == "raw"
        assert issue["auto_fixable"] is True
        assert issue["extra"]["allowed"] == ["raw", "active"]

    @pytest.mark.asyncio
    async def test_with_fix_summary(self, vault, schema, write_note):
        write_note("ideas/Rae.md", "---\ntype: idea\nstatus: rae\n---\n")
        engine = AuditEngine(schema, vault, make_config(schema))
        report = await engine.run()
        summary = await run_auto_fix(engine, report, dry_run=True)

        data = json.loads(report_to_json(report, summary))

        assert data["fix"]["dry_run"] is True
        assert data["fix"]["planned"] == 1
        assert data["fix"]["files"][0]["outcomes"][0]["status"] == "pending"


class TestText:
    @pytest.mark.asyncio
    async def test_clean_vault(self, vault, schema, write_note):
        write_note("ideas/Good.md", "---\ntype: idea\nstatus: raw\n---\n")
        report = await run_audit(schema, vault, make_config(schema))
        console = _console()

        print_report(report, console)

        assert "No issues found in 1 notes" in console.file.getvalue()

    @pytest.mark.asyncio
    async def test_issues_and_fix_summary(self, vault, schema, write_note):
        write_note("ideas/Rae.md", "---\ntype: idea\nstatus: rae\n---\n")
        engine = AuditEngine(schema, vault, make_config(schema))
        report = await engine.run()
        console = _console()

        print_report(report, console)
        print_fix_summary(await run_auto_fix(engine, report), console)

        output = console.file.getvalue()
        assert "ideas/Rae.md" in output
        assert "invalid-option" in output
        assert "Audit Summary" in output
        assert "Fix Summary" in output
        assert "fixed" in output
