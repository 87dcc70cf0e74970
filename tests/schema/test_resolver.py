"""Tests for bowerbird.schema.resolver -- type graph resolution."""

import pytest

from bowerbird.schema import (
    ROOT_TYPE,
    FieldKind,
    InheritanceCycleError,
    InvalidOwnershipError,
    SchemaError,
    UnknownParentError,
    pluralize,
)
from bowerbird.schema.resolver import PARENT_FIELD
from conftest import make_schema


def _objective_schema() -> dict:
    return {
        "enums": {"status": ["raw", "active", "done"], "size": ["s", "m", "l"]},
        "types": {
            "meta": {
                "fields": {
                    "status": {"prompt": "select", "enum": "status", "required": True},
                    "created": {"prompt": "date"},
                }
            },
            "objective": {
                "fields": {"owner": {"prompt": "text"}},
                "field_order": ["owner", "status"],
            },
            "task": {
                "extends": "objective",
                "fields": {
                    "status": {"default": "raw", "enum": "size", "required": False},
                    "due": {"prompt": "date"},
                },
            },
            "milestone": {"extends": "objective"},
        },
    }


# --- Graph structure ---


class TestTypeGraph:
    def test_implicit_root_type(self):
        schema = make_schema({"types": {"idea": {}}})
        assert ROOT_TYPE in schema.types
        assert schema.types["idea"].parent == ROOT_TYPE
        assert schema.types[ROOT_TYPE].parent is None
        assert schema.types[ROOT_TYPE].children == ["idea"]

    def test_ancestors_immediate_parent_first(self):
        schema = make_schema(_objective_schema())
        assert schema.types["task"].ancestors == ["objective", ROOT_TYPE]
        assert schema.types[ROOT_TYPE].ancestors == []

    def test_ancestors_have_no_duplicates(self):
        schema = make_schema(_objective_schema())
        for resolved in schema.types.values():
            assert len(resolved.ancestors) == len(set(resolved.ancestors))

    def test_children_sorted(self):
        schema = make_schema(_objective_schema())
        assert schema.types["objective"].children == ["milestone", "task"]

    def test_descendants_and_subtypes(self):
        schema = make_schema(_objective_schema())
        assert schema.descendants("objective") == ["milestone", "task"]
        assert schema.is_subtype("task", "objective")
        assert schema.is_subtype("task", "task")
        assert not schema.is_subtype("objective", "task")
        assert not schema.is_subtype("unknown", "objective")


class TestResolutionErrors:
    def test_two_type_cycle(self):
        with pytest.raises(InheritanceCycleError) as exc_info:
            make_schema({"types": {"a": {"extends": "b"}, "b": {"extends": "a"}}})
        assert exc_info.value.cycle_path == ["a", "b", "a"]
        assert "Circular inheritance detected: a -> b -> a" in str(exc_info.value)

    def test_self_cycle(self):
        with pytest.raises(InheritanceCycleError):
            make_schema({"types": {"a": {"extends": "a"}}})

    def test_unknown_parent(self):
        with pytest.raises(UnknownParentError) as exc_info:
            make_schema({"types": {"task": {"extends": "objetive"}, "objective": {}}})
        error = exc_info.value
        assert error.type_name == "task"
        assert error.parent == "objetive"
        assert "objective" in error.available
        assert isinstance(error, SchemaError)

    def test_owned_field_must_be_relation(self):
        with pytest.raises(InvalidOwnershipError) as exc_info:
            make_schema({"types": {"draft": {"fields": {"notes": {"prompt": "text", "owned": True}}}}})
        assert exc_info.value.field_name == "notes"

    def test_owned_relation_needs_source(self):
        with pytest.raises(InvalidOwnershipError):
            make_schema(
                {"types": {"draft": {"fields": {"notes": {"prompt": "relation", "owned": True}}}}}
            )


# --- Field merge ---


class TestFieldMerge:
    def test_inherits_root_fields(self):
        schema = make_schema(_objective_schema())
        assert set(schema.types["milestone"].fields) == {"status", "created", "owner"}

    def test_override_only_changes_default(self):
        schema = make_schema(_objective_schema())
        status = schema.types["task"].fields["status"]
        assert status.default == "raw"
        # Structural attributes stay as inherited
        assert status.required is True
        assert status.enum_ref == "status"
        assert status.kind is FieldKind.SELECT

    def test_override_does_not_touch_ancestor(self):
        schema = make_schema(_objective_schema())
        assert schema.types["objective"].fields["status"].default is None

    def test_static_value_override(self):
        schema = make_schema(
            {
                "types": {
                    "meta": {"fields": {"kind": {"value": "note"}}},
                    "idea": {"fields": {"kind": {"value": "idea"}}},
                }
            }
        )
        assert schema.types["idea"].fields["kind"].value == "idea"
        assert schema.types["idea"].fields["kind"].kind is FieldKind.STATIC
        assert schema.types[ROOT_TYPE].fields["kind"].value == "note"

    def test_new_fields_added(self):
        schema = make_schema(_objective_schema())
        assert schema.types["task"].fields["due"].kind is FieldKind.DATE

    @pytest.mark.parametrize(
        "raw, kind",
        [
            ({"prompt": "select", "options": ["a"]}, FieldKind.SELECT),
            ({"enum": "status"}, FieldKind.SELECT),
            ({"prompt": "relation", "source": "idea"}, FieldKind.DYNAMIC),
            ({"source": ["idea", "task"]}, FieldKind.DYNAMIC),
            ({"prompt": "list"}, FieldKind.MULTI_INPUT),
            ({"prompt": "multi-input"}, FieldKind.MULTI_INPUT),
            ({"prompt": "date"}, FieldKind.DATE),
            ({"prompt": "boolean"}, FieldKind.BOOLEAN),
            ({"prompt": "number"}, FieldKind.NUMBER),
            ({"value": "fixed"}, FieldKind.STATIC),
            ({"prompt": "text"}, FieldKind.PLAIN_INPUT),
            ({}, FieldKind.PLAIN_INPUT),
        ],
    )
    def test_field_kinds(self, raw, kind):
        schema = make_schema({"types": {"idea": {"fields": {"f": raw}}}})
        assert schema.types["idea"].fields["f"].kind is kind


# --- Field order ---


class TestFieldOrder:
    def test_order_is_permutation_of_fields(self):
        schema = make_schema(_objective_schema())
        for resolved in schema.types.values():
            assert sorted(resolved.field_order) == sorted(resolved.fields)
            assert len(resolved.field_order) == len(set(resolved.field_order))

    def test_ancestor_order_comes_first(self):
        schema = make_schema(_objective_schema())
        order = schema.types["task"].field_order
        assert order.index("owner") < order.index("status")
        assert order[-1] == "due"

    def test_complete_explicit_order_wins(self):
        schema = make_schema(
            {
                "types": {
                    "idea": {
                        "fields": {"a": {}, "b": {}, "c": {}},
                        "field_order": ["c", "a", "b"],
                    }
                }
            }
        )
        assert schema.types["idea"].field_order == ["c", "a", "b"]

    def test_order_ignores_unknown_names(self):
        schema = make_schema(
            {"types": {"idea": {"fields": {"a": {}, "b": {}}, "field_order": ["b", "zzz"]}}}
        )
        assert schema.types["idea"].field_order == ["b", "a"]


# --- Storage directories ---


class TestOutputDir:
    def test_pluralize(self):
        assert pluralize("story") == "stories"
        assert pluralize("box") == "boxes"
        assert pluralize("day") == "days"
        assert pluralize("task") == "tasks"
        assert pluralize("meta") == "meta"

    def test_default_directory_from_plurals(self):
        schema = make_schema(_objective_schema())
        assert schema.output_dir("objective") == "objectives"
        assert schema.output_dir("task") == "objectives/tasks"
        assert schema.output_dir(ROOT_TYPE) == ""

    def test_explicit_plural(self):
        schema = make_schema({"types": {"person": {"plural": "people"}}})
        assert schema.output_dir("person") == "people"

    def test_explicit_output_dir_is_inherited(self):
        schema = make_schema(
            {
                "types": {
                    "objective": {"output_dir": "Work/"},
                    "task": {"extends": "objective"},
                }
            }
        )
        assert schema.output_dir("objective") == "Work"
        assert schema.output_dir("task") == "Work"


# --- Recursive types ---


class TestRecursiveTypes:
    def test_parent_field_synthesized(self):
        schema = make_schema({"types": {"task": {"recursive": True}}})
        parent = schema.types["task"].fields[PARENT_FIELD]
        assert parent.kind is FieldKind.DYNAMIC
        assert parent.source_types == ("task",)
        assert parent.required is False
        assert schema.types["task"].field_order[-1] == PARENT_FIELD

    def test_parent_field_accepts_parent_type(self):
        schema = make_schema(
            {"types": {"objective": {}, "task": {"extends": "objective", "recursive": True}}}
        )
        assert schema.types["task"].fields[PARENT_FIELD].source_types == ("objective", "task")

    def test_existing_parent_field_kept(self):
        schema = make_schema(
            {
                "types": {
                    "task": {
                        "recursive": True,
                        "fields": {"parent": {"prompt": "relation", "source": "task", "required": True}},
                    }
                }
            }
        )
        assert schema.types["task"].fields[PARENT_FIELD].required is True


# --- Ownership map ---


class TestOwnershipMap:
    def test_owns_and_owned_by(self):
        schema = make_schema(
            {
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
        )
        owned = schema.ownership.owns["draft"]
        assert [(o.field_name, o.child_type, o.multiple) for o in owned] == [
            ("research", "research", True)
        ]
        owners = schema.ownership.can_be_owned_by["research"]
        assert [(o.owner_type, o.field_name) for o in owners] == [("draft", "research")]
        assert schema.ownership.can_be_owned("research")
        assert not schema.ownership.can_be_owned("draft")


class TestEnums:
    def test_inline_options(self):
        schema = make_schema({"types": {"idea": {"fields": {"s": {"options": ["a", "b"]}}}}})
        assert schema.enum_values(schema.types["idea"].fields["s"]) == ["a", "b"]

    def test_undefined_enum_is_unconstrained(self):
        schema = make_schema({"types": {"idea": {"fields": {"s": {"enum": "missing"}}}}})
        assert schema.enum_values(schema.types["idea"].fields["s"]) is None
