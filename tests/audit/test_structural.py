"""Tests for raw-text frontmatter hygiene checks and their rewrites."""

from bowerbird.audit.structural import (
    candidate_values,
    drop_duplicate_key,
    duplicate_entries,
    find_malformed_links,
    hygiene_issues,
    is_relocatable,
    mapping_entries,
    relocate_frontmatter,
    repair_malformed_link,
)
from bowerbird.audit.types import IssueCode, Severity
from bowerbird.file_utils import read_structure


class TestDuplicateKeys:
    def test_mapping_entries_spans(self):
        entries = mapping_entries("a: 1\nb:\n  - x\n  - y\nc: 3\n")
        assert [(e.key, e.start_line, e.end_line) for e in entries] == [
            ("a", 0, 1),
            ("b", 1, 4),
            ("c", 4, 5),
        ]

    def test_not_a_block_mapping(self):
        assert mapping_entries("{a: 1}") is None
        assert mapping_entries("- a\n") is None
        assert mapping_entries("a: [unclosed") is None

    def test_find_duplicates(self):
        found = duplicate_entries("status: raw\ntitle: x\nstatus: done\n")
        assert [(e.start_line, e.value) for e in found["status"]] == [(0, "raw"), (2, "done")]
        assert duplicate_entries("status: raw\n") == {}

    def test_candidate_values(self):
        found = duplicate_entries('status:\nstatus: raw\nstatus: "raw"\ntags: [a]\ntags:\n  - a\n')
        assert candidate_values(found["status"]) == ["raw"]
        assert candidate_values(found["tags"]) == ["[a]"]

        found = duplicate_entries("status: raw\nstatus: active\n")
        assert candidate_values(found["status"]) == ["raw", "active"]

    def test_drop_keeps_first_value(self):
        raw = "---\nstatus:\nstatus: raw\n---\n"
        assert drop_duplicate_key(raw, "status") == "---\nstatus: raw\n---\n"

    def test_drop_keeps_chosen_value(self):
        raw = "---\nstatus: raw\ntitle: x\nstatus: active\n---\n"
        assert drop_duplicate_key(raw, "status", keep="active") == "---\ntitle: x\nstatus: active\n---\n"
        assert drop_duplicate_key(raw, "status", keep="done") is None

    def test_drop_keeps_first(self):
        raw = "---\nstatus: raw\ntags:\n  - a\nstatus: done\ntags:\n  - b\n---\nBody\n"
        updated = drop_duplicate_key(raw, "tags")
        assert updated == "---\nstatus: raw\ntags:\n  - a\nstatus: done\n---\nBody\n"
        assert drop_duplicate_key(updated, "status") == "---\nstatus: raw\ntags:\n  - a\n---\nBody\n"

    def test_drop_without_duplicates(self):
        assert drop_duplicate_key("---\nstatus: raw\n---\n", "status") is None


class TestMalformedLinks:
    def test_scalar_and_list_items(self):
        raw = '---\nparent: "[[Goal]"\nrelated:\n  - "[[A]]"\n  - "[B]]"\nother: text\n---\n'
        links = find_malformed_links(read_structure(raw))
        assert [(link.field, link.list_index, link.value, link.repaired) for link in links] == [
            ("parent", None, "[[Goal]", "[[Goal]]"),
            ("related", 1, "[B]]", "[[B]]"),
        ]

    def test_repair_scalar(self):
        raw = "---\nparent: '[[Goal]'\n---\nBody [[Goal]\n"
        assert repair_malformed_link(raw, "parent", None) == "---\nparent: '[[Goal]]'\n---\nBody [[Goal]\n"

    def test_repair_list_item(self):
        raw = '---\nrelated:\n  - "[[A]]"\n  - "[B]]"\n---\n'
        assert repair_malformed_link(raw, "related", 1) == '---\nrelated:\n  - "[[A]]"\n  - "[[B]]"\n---\n'

    def test_repair_missing_target(self):
        assert repair_malformed_link("---\nparent: '[[Goal]]'\n---\n", "parent", None) is None


class TestRelocate:
    def test_moves_block(self):
        assert relocate_frontmatter("Intro\n---\ntype: idea\n---\nBody\n") == (
            "---\ntype: idea\n---\nIntro\nBody\n"
        )

    def test_already_at_top(self):
        assert relocate_frontmatter("---\ntype: idea\n---\n") is None


class TestHygieneIssues:
    def test_clean_note(self):
        assert hygiene_issues("a.md", read_structure("---\ntype: idea\n---\n")) == []

    def test_all_three(self):
        raw = "# Title\n---\ntype: idea\ntype: task\nparent: '[[Goal]'\n---\n"
        issues = hygiene_issues("a.md", read_structure(raw))
        by_code = {issue.code: issue for issue in issues}

        assert set(by_code) == {
            IssueCode.FRONTMATTER_NOT_AT_TOP,
            IssueCode.DUPLICATE_FRONTMATTER_KEYS,
            IssueCode.MALFORMED_WIKILINK,
        }
        assert by_code[IssueCode.FRONTMATTER_NOT_AT_TOP].severity is Severity.WARNING
        assert by_code[IssueCode.FRONTMATTER_NOT_AT_TOP].extra["line"] == 2
        assert by_code[IssueCode.DUPLICATE_FRONTMATTER_KEYS].severity is Severity.ERROR
        assert by_code[IssueCode.DUPLICATE_FRONTMATTER_KEYS].field == "type"
        assert by_code[IssueCode.DUPLICATE_FRONTMATTER_KEYS].extra["lines"] == [3, 4]
        assert by_code[IssueCode.MALFORMED_WIKILINK].suggestion == "[[Goal]]"
        assert by_code[IssueCode.FRONTMATTER_NOT_AT_TOP].auto_fixable
        assert by_code[IssueCode.MALFORMED_WIKILINK].auto_fixable

    def test_conflicting_duplicates_need_a_choice(self):
        raw = "---\ntype: idea\nstatus: raw\nstatus: active\n---\n"
        [issue] = hygiene_issues("a.md", read_structure(raw))
        assert issue.code is IssueCode.DUPLICATE_FRONTMATTER_KEYS
        assert not issue.auto_fixable
        assert issue.extra["values"] == ["raw", "active"]
        assert "different values" in issue.message

    def test_equal_duplicates_are_fixable(self):
        raw = "---\ntype: idea\nstatus: raw\nstatus:\nstatus: 'raw'\n---\n"
        [issue] = hygiene_issues("a.md", read_structure(raw))
        assert issue.auto_fixable
        assert issue.extra["values"] == ["raw"]


class TestRelocatable:
    def test_single_block(self):
        assert is_relocatable(read_structure("Intro\n---\ntype: idea\n---\nBody\n"))

    def test_second_block_in_body(self):
        structure = read_structure("Intro\n---\ntype: idea\n---\nBody\n---\nmore\n---\n")
        assert structure.primary is not None
        assert not is_relocatable(structure)

    def test_unterminated_trailing_delimiter(self):
        structure = read_structure("Intro\n---\ntype: idea\n---\nBody\n---\n")
        assert not is_relocatable(structure)

    def test_issue_not_fixable_with_several_blocks(self):
        raw = "Intro\n---\ntype: idea\n---\nBody\n---\nmore\n---\n"
        [issue] = hygiene_issues("a.md", read_structure(raw))
        assert issue.code is IssueCode.FRONTMATTER_NOT_AT_TOP
        assert not issue.auto_fixable
        assert issue.extra["blocks"] == 2
