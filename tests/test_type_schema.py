import sys
import unittest
from collections import OrderedDict
from dataclasses import dataclass, fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Literal, NamedTuple, Optional, TypedDict

from jsonschema import Draft202012Validator


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from mdi_schemakit.errors import AnnotationMismatchError
from mdi_schemakit.type_schema import (
    Annotation,
    LLMAdapter,
    gather_reference_types,
    register_annotation,
    schema,
    unregister_annotation,
)


@dataclass
class BasicSchema:
    int: int
    float: float
    string: str


class Fruit(Enum):
    apple = 1
    orange = 2


@dataclass
class EnumeratedSchema:
    fruit: Fruit


@dataclass
class OptionalFieldSchema:
    int: int
    optional: Optional[str] = None


@dataclass
class ArraySchema:
    integers: list[int]
    types: list[OptionalFieldSchema]


@dataclass
class NestedSchema:
    int: int
    optional: OptionalFieldSchema
    enum: EnumeratedSchema


@dataclass
class DoubleNestedSchema:
    int: int
    arrays: ArraySchema
    enum: EnumeratedSchema
    nested: NestedSchema


@dataclass
class Person:
    name: str
    age: int


@dataclass
class Query:
    text: str
    max_results: int | None = None


@dataclass
class TreeNode:
    label: str
    children: list["TreeNode"]


@dataclass
class LinkedItem:
    value: int
    next: Optional["LinkedItem"] = None


class Priority(str, Enum):
    LOW = "low"
    HIGH = "high"


class Point(NamedTuple):
    x: float
    y: float


class Movie(TypedDict):
    title: str
    year: int


@dataclass
class Ticket:
    priority: Priority
    severity: Literal["minor", "major"]
    location: Point
    tags: tuple[str, ...]
    scores: list[Optional[int]]


def annotate_test_types():
    register_annotation(
        BasicSchema,
        Annotation(
            name="BasicSchema",
            description="A schema containing an integer, float, and string field.",
            markdown="Basic schema",
            parameters={
                "int": Annotation(name="int", description="An integer field"),
                "float": Annotation(name="float", description="A float field"),
                "string": Annotation(name="string", description="A string field"),
            },
        ),
    )
    register_annotation(
        EnumeratedSchema,
        Annotation(
            name="EnumeratedSchema",
            description="A schema containing a single Fruit field.",
            parameters={"fruit": Annotation(name="fruit", description="Fruit type")},
        ),
    )
    register_annotation(
        OptionalFieldSchema,
        Annotation(
            name="OptionalFieldSchema",
            description="A schema containing an optional field.",
            parameters={
                "int": "An integer field",
                "optional": "An optional string field",
            },
        ),
    )
    register_annotation(
        ArraySchema,
        Annotation(
            name="ArraySchema",
            description="A schema containing an array of integers and an array of OptionalFieldSchema.",
            parameters={
                "integers": "An array of integers",
                "types": "An array of OptionalFieldSchema",
            },
        ),
    )
    register_annotation(
        NestedSchema,
        Annotation(
            name="NestedSchema",
            description="A schema containing an integer, an OptionalFieldSchema, and an EnumeratedSchema.",
            parameters={
                "int": "An integer field",
                "optional": "An optional field",
                "enum": "An enumerated field",
            },
        ),
    )
    register_annotation(
        DoubleNestedSchema,
        Annotation(
            name="DoubleNestedSchema",
            description="A schema containing an integer, an ArraySchema, an EnumeratedSchema, and a NestedSchema.",
            parameters={
                "int": "An integer field",
                "arrays": "An array of ArraySchema",
                "enum": "An enumerated field",
                "nested": "A nested field",
            },
        ),
    )
    register_annotation(
        Person,
        Annotation(
            name="Person",
            description="A schema for a person.",
            parameters={
                "name": Annotation(
                    name="name",
                    description="The name of the person",
                    enum=["Alice", "Bob"],
                ),
                "age": Annotation(name="age", description="The age of the person"),
            },
        ),
    )


annotate_test_types()


def sample_array_schema() -> ArraySchema:
    return ArraySchema([1, 2], [OptionalFieldSchema(1, "foo"), OptionalFieldSchema(1, None)])


def sample_nested_schema() -> NestedSchema:
    return NestedSchema(1, OptionalFieldSchema(1, None), EnumeratedSchema(Fruit.apple))


def sample_double_nested_schema() -> DoubleNestedSchema:
    return DoubleNestedSchema(
        1, sample_array_schema(), EnumeratedSchema(Fruit.apple), sample_nested_schema()
    )


def to_json_value(obj, omit_none: bool = True):
    """Plain JSON value of a test instance; ``None`` fields are dropped when ``omit_none``."""
    if is_dataclass(obj) and not isinstance(obj, type):
        retval = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if value is None and omit_none:
                continue
            retval[f.name] = to_json_value(value, omit_none)
        return retval
    if isinstance(obj, Enum):
        return obj.value if isinstance(obj.value, str) else obj.name
    if isinstance(obj, (list, tuple)):
        return [to_json_value(v, omit_none) for v in obj]
    return obj


class SchemaTestBase(unittest.TestCase):
    def assert_validates(self, json_schema, obj, omit_none: bool = True):
        Draft202012Validator.check_schema(json_schema)
        errors = list(
            Draft202012Validator(json_schema).iter_errors(to_json_value(obj, omit_none))
        )
        self.assertEqual(errors, [])


class BasicTypesTests(SchemaTestBase):
    def test_standard_schema_maps_scalar_fields(self):
        json_schema = schema(BasicSchema)

        self.assertEqual(json_schema["type"], "object")
        self.assertEqual(json_schema["required"], ["int", "float", "string"])
        self.assertEqual(list(json_schema["properties"]), ["int", "float", "string"])
        self.assertEqual(json_schema["properties"]["int"], {"type": "integer"})
        self.assertEqual(json_schema["properties"]["float"], {"type": "number"})
        self.assertEqual(json_schema["properties"]["string"], {"type": "string"})
        self.assertNotIn("additionalProperties", json_schema)

        self.assert_validates(json_schema, BasicSchema(1, 1.0, "a"))

    def test_openai_schema_wraps_and_describes_fields(self):
        json_schema = schema(BasicSchema, llm_adapter=LLMAdapter.OPENAI)

        self.assertEqual(json_schema["name"], "BasicSchema")
        self.assertEqual(
            json_schema["description"],
            "A schema containing an integer, float, and string field.",
        )
        self.assertIs(json_schema["strict"], True)

        inner = json_schema["schema"]
        self.assertEqual(inner["type"], "object")
        self.assertEqual(inner["required"], ["int", "float", "string"])
        self.assertIs(inner["additionalProperties"], False)
        self.assertNotIn("description", inner)
        self.assertEqual(
            inner["properties"]["int"], {"type": "integer", "description": "An integer field"}
        )
        self.assertEqual(inner["properties"]["float"]["type"], "number")
        self.assertEqual(inner["properties"]["string"]["type"], "string")

        self.assert_validates(inner, BasicSchema(1, 1.0, "a"))

    def test_adapter_accepts_plain_string(self):
        self.assertEqual(
            schema(BasicSchema, llm_adapter="openai"),
            schema(BasicSchema, llm_adapter=LLMAdapter.OPENAI),
        )

    def test_gemini_matches_standard(self):
        self.assertEqual(
            schema(NestedSchema, llm_adapter=LLMAdapter.GEMINI), schema(NestedSchema)
        )

    def test_unknown_adapter_is_rejected(self):
        with self.assertRaises(ValueError):
            schema(BasicSchema, llm_adapter="anthropic")


class EnumTests(SchemaTestBase):
    def test_enum_values_in_declaration_order(self):
        json_schema = schema(EnumeratedSchema)

        self.assertEqual(
            json_schema["properties"]["fruit"], {"type": "string", "enum": ["apple", "orange"]}
        )
        self.assert_validates(json_schema, EnumeratedSchema(Fruit.apple))

    def test_enum_values_in_openai_mode(self):
        json_schema = schema(EnumeratedSchema, llm_adapter=LLMAdapter.OPENAI)

        fruit = json_schema["schema"]["properties"]["fruit"]
        self.assertEqual(fruit["enum"], ["apple", "orange"])
        self.assertEqual(fruit["description"], "Fruit type")
        self.assert_validates(json_schema["schema"], EnumeratedSchema(Fruit.orange))

    def test_str_enum_literal_and_tuple_fields(self):
        json_schema = schema(Ticket)
        properties = json_schema["properties"]

        self.assertEqual(properties["priority"], {"type": "string", "enum": ["low", "high"]})
        self.assertEqual(properties["severity"], {"type": "string", "enum": ["minor", "major"]})
        self.assertEqual(properties["tags"], {"type": "array", "items": {"type": "string"}})
        self.assertEqual(
            properties["scores"],
            {"type": "array", "items": {"type": ["integer", "null"]}},
        )
        self.assertEqual(properties["location"]["type"], "object")
        self.assertEqual(properties["location"]["required"], ["x", "y"])

        ticket = Ticket(Priority.HIGH, "major", Point(1.0, 2.5), ("a", "b"), [1, None])
        instance = to_json_value(ticket)
        instance["location"] = {"x": 1.0, "y": 2.5}
        self.assertEqual(list(Draft202012Validator(json_schema).iter_errors(instance)), [])

    def test_mixed_literal_has_no_single_type(self):
        @dataclass
        class Setting:
            value: Literal[1, "auto"]

        self.assertEqual(schema(Setting)["properties"]["value"], {"enum": [1, "auto"]})


class OptionalFieldTests(SchemaTestBase):
    def test_standard_mode_leaves_optional_fields_out_of_required(self):
        json_schema = schema(OptionalFieldSchema)

        self.assertEqual(json_schema["required"], ["int"])
        self.assertEqual(json_schema["properties"]["optional"], {"type": "string"})

        self.assert_validates(json_schema, OptionalFieldSchema(1, None))
        self.assert_validates(json_schema, OptionalFieldSchema(1, "foo"))

    def test_openai_mode_requires_every_field_and_marks_nullable(self):
        json_schema = schema(OptionalFieldSchema, llm_adapter=LLMAdapter.OPENAI)
        inner = json_schema["schema"]

        self.assertEqual(inner["required"], ["int", "optional"])
        self.assertEqual(inner["properties"]["optional"]["type"], ["string", "null"])
        self.assertEqual(
            inner["properties"]["optional"]["description"], "An optional string field"
        )

        self.assert_validates(inner, OptionalFieldSchema(1, None), omit_none=False)
        self.assert_validates(inner, OptionalFieldSchema(1, "foo"), omit_none=False)

    def test_query_scenario(self):
        standard = schema(Query)
        self.assertEqual(standard["required"], ["text"])

        openai = schema(Query, llm_adapter=LLMAdapter.OPENAI)["schema"]
        self.assertEqual(openai["required"], ["text", "max_results"])
        self.assertEqual(openai["properties"]["max_results"]["type"], ["integer", "null"])

    def test_optional_annotated_enum_admits_null(self):
        @dataclass
        class Pick:
            choice: Optional[str] = None

        register_annotation(
            Pick,
            Annotation(
                name="Pick",
                parameters={"choice": Annotation(name="choice", enum=["x", "y"])},
            ),
        )
        self.addCleanup(unregister_annotation, Pick)

        inner = schema(Pick, llm_adapter=LLMAdapter.OPENAI)["schema"]
        self.assertEqual(inner["properties"]["choice"]["type"], ["string", "null"])
        self.assertEqual(inner["properties"]["choice"]["enum"], ["x", "y", None])
        self.assertEqual(list(Draft202012Validator(inner).iter_errors({"choice": None})), [])


class ArrayTests(SchemaTestBase):
    def test_array_items_follow_element_type(self):
        json_schema = schema(ArraySchema)

        self.assertEqual(
            json_schema["properties"]["integers"], {"type": "array", "items": {"type": "integer"}}
        )
        self.assertEqual(json_schema["properties"]["types"]["items"], schema(OptionalFieldSchema))

        self.assert_validates(json_schema, sample_array_schema())

    def test_array_items_in_openai_mode(self):
        json_schema = schema(ArraySchema, llm_adapter=LLMAdapter.OPENAI)
        opt_schema = schema(OptionalFieldSchema, llm_adapter=LLMAdapter.OPENAI)

        items = json_schema["schema"]["properties"]["types"]["items"]
        self.assertEqual(items["properties"], opt_schema["schema"]["properties"])
        self.assertEqual(items["required"], opt_schema["schema"]["required"])
        self.assertEqual(items["description"], "A schema containing an optional field.")

        self.assert_validates(json_schema["schema"], sample_array_schema(), omit_none=False)


class NestedTests(SchemaTestBase):
    def test_nested_types_are_inlined(self):
        nested_schema = schema(NestedSchema)
        self.assertEqual(nested_schema["properties"]["optional"], schema(OptionalFieldSchema))
        self.assert_validates(nested_schema, sample_nested_schema())

        double_nested_schema = schema(DoubleNestedSchema)
        self.assertEqual(double_nested_schema["properties"]["nested"], nested_schema)
        self.assert_validates(double_nested_schema, sample_double_nested_schema())

    def test_nested_types_in_openai_mode(self):
        nested_schema = schema(NestedSchema, llm_adapter=LLMAdapter.OPENAI)
        optional_field_schema = schema(OptionalFieldSchema, llm_adapter=LLMAdapter.OPENAI)

        inlined = dict(nested_schema["schema"]["properties"]["optional"])
        self.assertEqual(inlined.pop("description"), "An optional field")
        self.assertEqual(inlined, optional_field_schema["schema"])

        double_nested_schema = schema(DoubleNestedSchema, llm_adapter=LLMAdapter.OPENAI)
        nested = dict(double_nested_schema["schema"]["properties"]["nested"])
        del nested["description"]
        self.assertEqual(nested, nested_schema["schema"])

        self.assert_validates(
            double_nested_schema["schema"], sample_double_nested_schema(), omit_none=False
        )


class ReferenceTests(SchemaTestBase):
    def test_gathering_collects_nested_composites(self):
        self.assertEqual(
            gather_reference_types(NestedSchema), [OptionalFieldSchema, EnumeratedSchema]
        )
        self.assertEqual(gather_reference_types(ArraySchema), [OptionalFieldSchema])
        self.assertEqual(
            gather_reference_types(DoubleNestedSchema),
            [ArraySchema, OptionalFieldSchema, EnumeratedSchema, NestedSchema],
        )
        self.assertEqual(gather_reference_types(BasicSchema), [])

    def test_gathering_terminates_on_cycles(self):
        self.assertEqual(gather_reference_types(TreeNode), [TreeNode])
        self.assertEqual(gather_reference_types(LinkedItem), [LinkedItem])

    def test_references_replace_nested_definitions(self):
        json_schema = schema(DoubleNestedSchema, use_references=True)

        self.assertEqual(json_schema["properties"]["arrays"]["$ref"], "#/$defs/ArraySchema")
        self.assertEqual(
            json_schema["properties"]["arrays"]["description"], "An array of ArraySchema"
        )
        self.assertEqual(
            list(json_schema["$defs"]),
            ["ArraySchema", "OptionalFieldSchema", "EnumeratedSchema", "NestedSchema"],
        )

        array_def = json_schema["$defs"]["ArraySchema"]
        self.assertEqual(
            array_def["properties"]["types"]["items"],
            {"$ref": "#/$defs/OptionalFieldSchema"},
        )
        nested_def = json_schema["$defs"]["NestedSchema"]
        self.assertEqual(
            nested_def["properties"]["optional"]["$ref"], "#/$defs/OptionalFieldSchema"
        )
        self.assertNotIn("$defs", nested_def)

        self.assert_validates(json_schema, sample_double_nested_schema())

    def test_referenced_definition_matches_inlined_one(self):
        referenced = schema(NestedSchema, use_references=True)
        inlined = schema(NestedSchema)

        self.assertEqual(
            referenced["$defs"]["OptionalFieldSchema"], inlined["properties"]["optional"]
        )
        self.assertEqual(referenced["$defs"]["EnumeratedSchema"], inlined["properties"]["enum"])

    def test_self_reference_is_factored_into_defs(self):
        json_schema = schema(TreeNode, use_references=True)

        self.assertEqual(
            json_schema["properties"]["children"],
            {"type": "array", "items": {"$ref": "#/$defs/TreeNode"}},
        )
        self.assertEqual(list(json_schema["$defs"]), ["TreeNode"])

        instance = {"label": "root", "children": [{"label": "leaf", "children": []}]}
        self.assertEqual(list(Draft202012Validator(json_schema).iter_errors(instance)), [])

    def test_optional_reference_uses_any_of_in_openai_mode(self):
        inner = schema(LinkedItem, use_references=True, llm_adapter=LLMAdapter.OPENAI)["schema"]

        self.assertEqual(
            inner["properties"]["next"],
            {
                "description": "Semantic of next in the context of the schema",
                "anyOf": [{"$ref": "#/$defs/LinkedItem"}, {"type": "null"}],
            },
        )
        self.assertEqual(inner["required"], ["value", "next"])

        instance = {"value": 1, "next": {"value": 2, "next": None}}
        self.assertEqual(list(Draft202012Validator(inner).iter_errors(instance)), [])


class OpenAIToolsTests(SchemaTestBase):
    def test_tools_envelope_uses_parameters_key(self):
        json_schema = schema(BasicSchema, llm_adapter=LLMAdapter.OPENAI_TOOLS)

        self.assertEqual(json_schema["type"], "function")
        self.assertEqual(json_schema["name"], "BasicSchema")
        self.assertIs(json_schema["strict"], True)
        self.assertIn("parameters", json_schema)
        self.assertNotIn("schema", json_schema)
        self.assertIs(json_schema["parameters"]["additionalProperties"], False)

    def test_optional_fields_in_tools_mode(self):
        inner = schema(OptionalFieldSchema, llm_adapter=LLMAdapter.OPENAI_TOOLS)["parameters"]

        self.assertEqual(inner["required"], ["int", "optional"])
        self.assertEqual(inner["properties"]["optional"]["type"], ["string", "null"])

    def test_openai_and_tools_inner_schemas_match(self):
        for tp in (BasicSchema, OptionalFieldSchema, EnumeratedSchema, DoubleNestedSchema):
            with self.subTest(tp=tp.__name__):
                openai_schema = schema(tp, llm_adapter=LLMAdapter.OPENAI)
                tools_schema = schema(tp, llm_adapter=LLMAdapter.OPENAI_TOOLS)

                self.assertEqual(openai_schema["schema"], tools_schema["parameters"])
                self.assertEqual(openai_schema["name"], tools_schema["name"])
                self.assertEqual(openai_schema["description"], tools_schema["description"])
                self.assertEqual(openai_schema["strict"], tools_schema["strict"])


class PersonScenarioTests(unittest.TestCase):
    def test_openai_schema_for_person(self):
        self.assertEqual(
            schema(Person, llm_adapter=LLMAdapter.OPENAI),
            {
                "name": "Person",
                "description": "A schema for a person.",
                "strict": True,
                "schema": {
                    "type": "object",
                    "properties": {
                        "name": {
                            "type": "string",
                            "description": "The name of the person",
                            "enum": ["Alice", "Bob"],
                        },
                        "age": {"type": "integer", "description": "The age of the person"},
                    },
                    "required": ["name", "age"],
                    "additionalProperties": False,
                },
            },
        )

    def test_annotation_enum_is_ignored_in_standard_mode(self):
        self.assertEqual(
            schema(Person),
            {
                "type": "object",
                "properties": {"name": {"type": "string"}, "age": {"type": "integer"}},
                "required": ["name", "age"],
            },
        )


class OtherCompositeTests(unittest.TestCase):
    def test_typed_dict_and_named_tuple(self):
        self.assertEqual(
            schema(Movie),
            {
                "type": "object",
                "properties": {"title": {"type": "string"}, "year": {"type": "integer"}},
                "required": ["title", "year"],
            },
        )
        self.assertEqual(schema(Point)["properties"], {"x": {"type": "number"}, "y": {"type": "number"}})

    def test_dict_field_is_an_open_object(self):
        @dataclass
        class Bag:
            items: dict[str, int]

        self.assertEqual(
            schema(Bag)["properties"]["items"],
            {"type": "object"},
        )
        self.assertEqual(
            list(Draft202012Validator(schema(Bag)).iter_errors({"items": {"a": 1, "b": 2}})), []
        )
        self.assertEqual(
            schema(Bag, llm_adapter=LLMAdapter.OPENAI)["schema"]["properties"]["items"],
            {"type": "object", "description": "Semantic of items in the context of the schema"},
        )

    def test_any_field_is_an_open_object(self):
        @dataclass
        class Envelope:
            payload: Any

        self.assertEqual(schema(Envelope)["properties"]["payload"], {"type": "object"})

    def test_output_container_is_used_throughout(self):
        json_schema = schema(
            NestedSchema, output_container=OrderedDict, llm_adapter=LLMAdapter.OPENAI
        )

        self.assertIsInstance(json_schema, OrderedDict)
        self.assertIsInstance(json_schema["schema"], OrderedDict)
        self.assertIsInstance(json_schema["schema"]["properties"], OrderedDict)
        self.assertIsInstance(json_schema["schema"]["properties"]["optional"], OrderedDict)
        self.assertEqual(
            list(json_schema["schema"]["properties"]), ["int", "optional", "enum"]
        )


class ConfigurationErrorTests(unittest.TestCase):
    def test_annotation_naming_unknown_field_raises(self):
        @dataclass
        class Widget:
            size: int

        register_annotation(
            Widget,
            Annotation(name="Widget", parameters={"size": "Size", "colour": "Colour"}),
        )
        self.addCleanup(unregister_annotation, Widget)

        with self.assertRaises(AnnotationMismatchError) as ctx:
            schema(Widget)
        self.assertEqual(ctx.exception.field, "colour")
        self.assertEqual(ctx.exception.type_name, "Widget")
        self.assertIn("colour", str(ctx.exception))

    def test_annotation_may_describe_a_subset_of_fields(self):
        @dataclass
        class Gadget:
            size: int
            weight: float

        register_annotation(Gadget, Annotation(name="Gadget", parameters={"size": "Size"}))
        self.addCleanup(unregister_annotation, Gadget)

        properties = schema(Gadget, llm_adapter=LLMAdapter.OPENAI)["schema"]["properties"]
        self.assertEqual(properties["size"]["description"], "Size")
        self.assertEqual(
            properties["weight"]["description"],
            "Semantic of weight in the context of the schema",
        )

    def test_invalid_enum_duplicate_policy_raises(self):
        with self.assertRaisesRegex(ValueError, "enum_duplicate_policy"):
            schema(BasicSchema, enum_duplicate_policy="ignore")


if __name__ == "__main__":
    unittest.main()
