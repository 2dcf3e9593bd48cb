import json

import pytest

from voice_dispatch.core.errors import (
    ArgumentValidationError,
    MissingArgumentError,
    SchemaError,
)
from voice_dispatch.tools.schema import KINDS, NO_DEFAULT, ToolSchema


@pytest.fixture
def todo_schema():
    return (
        ToolSchema()
        .string("title", "The todo title")
        .string("priority", "Priority level", enum=["low", "medium", "high"], default="medium")
    )


class TestDeclare:
    def test_required_without_default(self, todo_schema):
        assert todo_schema["title"].required
        assert not todo_schema["title"].has_default

    def test_optional_with_default(self, todo_schema):
        spec = todo_schema["priority"]
        assert not spec.required
        assert spec.default == "medium"
        assert spec.enum == ("low", "medium", "high")

    def test_required_names_in_declaration_order(self):
        schema = ToolSchema().string("a").integer("b", default=1).boolean("c").number("d")
        assert schema.required_names == ["a", "c", "d"]

    @pytest.mark.parametrize("kind", KINDS)
    def test_required_invariant_for_every_kind(self, kind):
        schema = ToolSchema()
        schema.declare("plain", kind)
        schema.declare("nullable", kind, nullable=True)
        for spec in schema.parameters:
            assert spec.required == (not spec.has_default and not spec.nullable)
        assert schema["plain"].required
        assert not schema["nullable"].required

    def test_duplicate_name(self):
        schema = ToolSchema().string("title")
        with pytest.raises(SchemaError, match="already declared"):
            schema.string("title")

    def test_unknown_kind(self):
        with pytest.raises(SchemaError, match="Unknown kind"):
            ToolSchema().declare("when", "datetime")

    def test_enum_requires_string(self):
        with pytest.raises(SchemaError, match="enum requires kind 'string'"):
            ToolSchema().integer("level", enum=["1", "2"])

    def test_empty_enum(self):
        with pytest.raises(SchemaError, match="must not be empty"):
            ToolSchema().string("color", enum=[])

    def test_default_outside_enum(self):
        with pytest.raises(SchemaError, match="not one of"):
            ToolSchema().string("priority", enum=["low", "high"], default="medium")

    def test_default_must_match_kind(self):
        with pytest.raises(SchemaError, match="invalid default"):
            ToolSchema().boolean("done", default="maybe")

    def test_none_default_rejected(self):
        with pytest.raises(SchemaError):
            ToolSchema().string("note", default=None)

    def test_items_only_for_arrays(self):
        with pytest.raises(SchemaError, match="items only apply to arrays"):
            ToolSchema().string("tag", items={"type": "string"})

    def test_bounds_only_for_numbers(self):
        with pytest.raises(SchemaError, match="minimum/maximum"):
            ToolSchema().string("title", minimum=1)

    def test_minimum_above_maximum(self):
        with pytest.raises(SchemaError, match="exceeds maximum"):
            ToolSchema().integer("count", minimum=10, maximum=1)

    def test_default_outside_bounds(self):
        with pytest.raises(SchemaError, match="below minimum"):
            ToolSchema().integer("count", minimum=1, default=0)

    def test_frozen_schema_rejects_declarations(self):
        schema = ToolSchema().string("title").freeze()
        with pytest.raises(SchemaError, match="frozen"):
            schema.string("other")


class TestDeclareOptional:
    def test_with_default_is_not_nullable(self):
        schema = ToolSchema().declare_optional("count", "integer", default=3)
        spec = schema["count"]
        assert not spec.required
        assert not spec.nullable
        assert spec.default == 3

    def test_without_default_is_nullable(self):
        schema = ToolSchema().declare_optional("due_date", "string")
        spec = schema["due_date"]
        assert not spec.required
        assert spec.nullable
        assert spec.default is NO_DEFAULT

    def test_nullable_yields_none_not_zero_value(self):
        schema = ToolSchema().declare_optional("count", "integer").declare_optional("done", "boolean")
        assert schema.coerce_arguments({}) == {"count": None, "done": None}


class TestWireSchema:
    def test_shape(self, todo_schema):
        assert todo_schema.to_wire_schema() == {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "The todo title"},
                "priority": {
                    "type": "string",
                    "description": "Priority level",
                    "enum": ["low", "medium", "high"],
                    "default": "medium",
                },
            },
            "required": ["title"],
        }

    def test_property_order_is_insertion_order(self):
        schema = ToolSchema().string("zeta").string("alpha").string("mid")
        assert list(schema.to_wire_schema()["properties"]) == ["zeta", "alpha", "mid"]

    def test_optional_fields(self):
        schema = (
            ToolSchema()
            .integer("count", minimum=1, maximum=10)
            .array("tags", items={"type": "string"}, default=["inbox"])
        )
        props = schema.to_wire_schema()["properties"]
        assert props["count"] == {"type": "integer", "minimum": 1, "maximum": 10}
        assert props["tags"] == {"type": "array", "default": ["inbox"], "items": {"type": "string"}}

    def test_empty_schema_has_empty_required(self):
        assert ToolSchema().to_wire_schema() == {"type": "object", "properties": {}, "required": []}

    def test_json_round_trip_is_structurally_identical(self, todo_schema):
        todo_schema.integer("estimate", minimum=0, maximum=480, default=30)
        todo_schema.array("labels", items={"type": "string"}, nullable=True)
        wire = todo_schema.to_wire_schema()
        assert json.loads(json.dumps(wire)) == wire

    def test_returned_containers_are_fresh(self):
        schema = ToolSchema().array("tags", items={"type": "string"}, default=["inbox"])
        wire = schema.to_wire_schema()
        wire["properties"]["tags"]["default"].append("mutated")
        wire["required"].append("bogus")
        assert schema.to_wire_schema()["properties"]["tags"]["default"] == ["inbox"]
        assert schema.to_wire_schema()["required"] == []


class TestCoerceArguments:
    def test_default_substituted(self, todo_schema):
        assert todo_schema.coerce_arguments({"title": "Buy milk"}) == {
            "title": "Buy milk",
            "priority": "medium",
        }

    def test_enum_violation_names_parameter(self, todo_schema):
        with pytest.raises(ArgumentValidationError) as exc_info:
            todo_schema.coerce_arguments({"title": "x", "priority": "urgent"})
        assert exc_info.value.parameter == "priority"
        assert "priority" in str(exc_info.value)

    def test_missing_required(self, todo_schema):
        with pytest.raises(MissingArgumentError) as exc_info:
            todo_schema.coerce_arguments({"priority": "low"})
        assert exc_info.value.parameter == "title"

    def test_null_for_required_is_missing(self, todo_schema):
        with pytest.raises(MissingArgumentError):
            todo_schema.coerce_arguments({"title": None})

    def test_null_for_defaulted_uses_default(self, todo_schema):
        result = todo_schema.coerce_arguments({"title": "x", "priority": None})
        assert result["priority"] == "medium"

    @pytest.mark.parametrize("value", ["nan", "inf", "-Infinity", float("nan"), float("inf")])
    def test_non_finite_numbers_rejected(self, value):
        schema = ToolSchema().number("level", minimum=0, maximum=10)
        with pytest.raises(ArgumentValidationError, match="finite"):
            schema.coerce_arguments({"level": value})

    def test_finite_number_strings_accepted(self):
        schema = ToolSchema().number("level", minimum=0, maximum=10)
        assert schema.coerce_arguments({"level": " 2.5 "}) == {"level": 2.5}
        assert schema.coerce_arguments({"level": 3}) == {"level": 3}

    def test_explicit_null_for_nullable_with_default(self):
        schema = ToolSchema().declare_optional("note", "string", default="none", nullable=True)
        assert schema.coerce_arguments({"note": None}) == {"note": None}
        assert schema.coerce_arguments({}) == {"note": "none"}

    def test_unknown_keys_ignored(self, todo_schema):
        result = todo_schema.coerce_arguments({"title": "x", "vendor_extra": 1})
        assert result == {"title": "x", "priority": "medium"}

    def test_wrong_kind(self, todo_schema):
        with pytest.raises(ArgumentValidationError, match="title"):
            todo_schema.coerce_arguments({"title": 42})

    def test_lenient_numeric_and_boolean_encodings(self):
        schema = ToolSchema().integer("count").number("ratio").boolean("done")
        result = schema.coerce_arguments({"count": "7", "ratio": "0.5", "done": "true"})
        assert result == {"count": 7, "ratio": 0.5, "done": True}
        assert schema.coerce_arguments({"count": 3.0, "ratio": 2, "done": False}) == {
            "count": 3,
            "ratio": 2,
            "done": False,
        }

    def test_non_integral_float_rejected_for_integer(self):
        schema = ToolSchema().integer("count")
        with pytest.raises(ArgumentValidationError, match="count"):
            schema.coerce_arguments({"count": 2.5})

    def test_boolean_is_not_an_integer(self):
        schema = ToolSchema().integer("count")
        with pytest.raises(ArgumentValidationError):
            schema.coerce_arguments({"count": True})

    def test_bounds(self):
        schema = ToolSchema().integer("count", minimum=1, maximum=5)
        with pytest.raises(ArgumentValidationError, match="above maximum"):
            schema.coerce_arguments({"count": 6})
        with pytest.raises(ArgumentValidationError, match="below minimum"):
            schema.coerce_arguments({"count": 0})

    def test_array_elements_coerced(self):
        schema = ToolSchema().array("ids", items={"type": "integer"})
        assert schema.coerce_arguments({"ids": ("1", 2, 3.0)}) == {"ids": [1, 2, 3]}
        with pytest.raises(ArgumentValidationError, match="element 1"):
            schema.coerce_arguments({"ids": [1, "two"]})

    def test_string_is_not_an_array(self):
        schema = ToolSchema().array("tags")
        with pytest.raises(ArgumentValidationError):
            schema.coerce_arguments({"tags": "a,b"})

    def test_default_is_copied(self):
        schema = ToolSchema().array("tags", default=["inbox"])
        first = schema.coerce_arguments({})
        first["tags"].append("mutated")
        assert schema.coerce_arguments({}) == {"tags": ["inbox"]}

    def test_non_mapping_arguments(self, todo_schema):
        with pytest.raises(ArgumentValidationError, match="must be an object"):
            todo_schema.coerce_arguments(["Buy milk"])

    def test_idempotent(self):
        schema = (
            ToolSchema()
            .string("title")
            .string("priority", enum=["low", "medium", "high"], default="medium")
            .integer("estimate", default=30)
            .number("ratio")
            .boolean("done", default=False)
            .array("ids", items={"type": "integer"})
            .object("meta", nullable=True)
            .declare_optional("due", "string")
        )
        raw = {"title": "x", "ratio": "1.5", "ids": ["1", 2.0], "estimate": "45"}
        once = schema.coerce_arguments(raw)
        twice = schema.coerce_arguments(json.loads(json.dumps(once)))
        assert once == twice
        assert once == {
            "title": "x",
            "priority": "medium",
            "estimate": 45,
            "ratio": 1.5,
            "done": False,
            "ids": [1, 2],
            "meta": None,
            "due": None,
        }
