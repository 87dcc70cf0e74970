"""Tests for the ownership index."""

import pytest

from bowerbird.ownership import OwnerInfo, RejectReason, build_ownership_index

DRAFT_SCHEMA = {
    "types": {
        "draft": {
            "fields": {
                "research": {
                    "prompt": "relation",
                    "source": "research",
                    "owned": True,
                    "multiple": True,
                }
            }
        },
        "research": {},
    }
}


@pytest.fixture
def draft_schema(write_schema):
    return write_schema(DRAFT_SCHEMA)


class TestBuildOwnershipIndex:
    def test_standalone_note_not_owned(self, vault, draft_schema, write_note):
        write_note("researches/Loose.md", "---\ntype: research\n---\n")
        index = build_ownership_index(draft_schema, vault)
        assert index.is_owned("researches/Loose.md") is None

    def test_nested_note_owned(self, vault, draft_schema, write_note):
        write_note("drafts/X/X.md", "---\ntype: draft\n---\n")
        write_note("drafts/X/research/Y.md", "---\ntype: research\n---\n")

        index = build_ownership_index(draft_schema, vault)

        assert index.is_owned("drafts/X/research/Y.md") == OwnerInfo(
            owner_path="drafts/X/X.md", owner_type="draft", field_name="research"
        )
        assert index.owned_by("drafts/X/X.md") == {"drafts/X/research/Y.md"}
        assert index.owners["drafts/X/X.md"].folder == "drafts/X"

    def test_folder_without_owner_note(self, vault, draft_schema, write_note):
        write_note("drafts/X/research/Y.md", "---\ntype: research\n---\n")
        index = build_ownership_index(draft_schema, vault)
        assert index.is_owned("drafts/X/research/Y.md") is None
        assert index.owners == {}

    def test_no_owner_types(self, vault, write_schema):
        schema = write_schema({"types": {"idea": {}}})
        index = build_ownership_index(schema, vault)
        assert index.owned_notes == {}


class TestOwnershipRules:
    @pytest.fixture
    def index(self, vault, draft_schema, write_note):
        write_note("drafts/X/X.md", "---\ntype: draft\n---\n")
        write_note("drafts/X/research/Y.md", "---\ntype: research\n---\n")
        write_note("drafts/Other/Other.md", "---\ntype: draft\n---\n")
        return build_ownership_index(draft_schema, vault)

    def test_owner_may_reference(self, index):
        assert index.can_reference("drafts/X/X.md", "drafts/X/research/Y.md").valid

    def test_other_note_may_not_reference(self, index):
        check = index.can_reference("drafts/Other/Other.md", "drafts/X/research/Y.md")
        assert not check.valid
        assert check.reason is RejectReason.REFERENCING_OWNED
        assert check.owner_path == "drafts/X/X.md"

    def test_unowned_target_is_free(self, index):
        assert index.can_reference("drafts/Other/Other.md", "drafts/X/X.md").valid

    def test_validate_new_owned(self, index):
        assert index.validate_new_owned("drafts/X/research/Y.md", "drafts/X/X.md").valid
        assert index.validate_new_owned("drafts/Other/research/Z.md", "drafts/Other/Other.md").valid

        check = index.validate_new_owned("drafts/X/research/Y.md", "drafts/Other/Other.md")
        assert not check.valid
        assert check.reason is RejectReason.ALREADY_OWNED
        assert check.owner_path == "drafts/X/X.md"

    def test_add_rejects_second_owner(self, index):
        with pytest.raises(ValueError, match="already owned"):
            index.add(
                "drafts/X/research/Y.md",
                OwnerInfo("drafts/Other/Other.md", "draft", "research"),
            )
