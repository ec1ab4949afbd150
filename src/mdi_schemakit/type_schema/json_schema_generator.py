"""JSON Schema generation from annotated Python types.

``schema(tp)`` walks the fields of ``tp`` in declaration order and emits a
JSON Schema object, consulting the annotation registry for descriptions and
enum hints. The ``llm_adapter`` chooses between plain JSON Schema and the
OpenAI rule-set:

- STANDARD / GEMINI: optional fields are left out of ``required``; field
  descriptions are attached only to ``$ref`` properties.
- OPENAI / OPENAI_TOOLS: every field is required, optional fields are typed
  ``[type, "null"]`` (or ``anyOf`` with a null branch for references),
  objects get ``additionalProperties: false``, every field gets a
  description, and annotated enums are emitted.

Mappings, ``Any`` and other types without declared fields become an open
``{"type": "object"}``. OpenAI strict mode does not accept free-form objects,
so such fields need a concrete composite type when targeting OpenAI.

With ``use_references=True`` each nested composite type is emitted once under
``$defs`` and referenced through ``$ref``. A self-referencing type must be
generated with references enabled; inlining it never terminates.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, MutableMapping

from mdi_schemakit.errors import AnnotationMismatchError

from .adapters import LLMAdapter, is_openai_mode, wrap_schema
from .annotations import annotate, get_description, get_enum, get_name
from .reflection import (
    array_element_type,
    enum_string,
    enum_values,
    field_items,
    is_composite,
    is_optional,
    json_type,
    optional_inner,
    scalar_json_type,
    type_name,
    type_to_gather,
)

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_PATH = "#/$defs/"


class EnumDuplicatePolicy(str, Enum):
    """What to do with a repeated value while normalizing a function enum."""

    DEDUPE = "dedupe"
    ERROR = "error"


@dataclass(frozen=True)
class SchemaSettings:
    """Generation context shared by every recursive call of one ``schema`` call."""

    use_references: bool = False
    reference_types: tuple = ()
    reference_path: str = DEFAULT_REFERENCE_PATH
    output_container: Callable[[], MutableMapping[str, Any]] = dict
    llm_adapter: LLMAdapter = LLMAdapter.STANDARD
    enum_duplicate_policy: EnumDuplicatePolicy = EnumDuplicatePolicy.DEDUPE

    @property
    def openai_mode(self) -> bool:
        return is_openai_mode(self.llm_adapter)

    def make_dict(self, *pairs: tuple[str, Any]) -> MutableMapping[str, Any]:
        d = self.output_container()
        for k, v in pairs:
            d[k] = v
        return d

    def is_reference(self, tp: Any) -> bool:
        return self.use_references and tp in self.reference_types


def make_settings(
    *,
    use_references: bool = False,
    reference_types: tuple = (),
    output_container: Callable[[], MutableMapping[str, Any]] = dict,
    llm_adapter: LLMAdapter | str = LLMAdapter.STANDARD,
    enum_duplicate_policy: EnumDuplicatePolicy | str = EnumDuplicatePolicy.DEDUPE,
) -> SchemaSettings:
    """Validate keyword options and freeze them into a SchemaSettings."""
    try:
        policy = EnumDuplicatePolicy(enum_duplicate_policy)
    except ValueError:
        raise ValueError(
            f"Unsupported enum_duplicate_policy={enum_duplicate_policy!r}. "
            f"Expected one of: {', '.join(p.value for p in EnumDuplicatePolicy)}."
        ) from None
    return SchemaSettings(
        use_references=use_references,
        reference_types=tuple(reference_types) if use_references else (),
        output_container=output_container,
        llm_adapter=LLMAdapter(llm_adapter),
        enum_duplicate_policy=policy,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def schema(
    schema_type: Any,
    *,
    use_references: bool = False,
    output_container: Callable[[], MutableMapping[str, Any]] = dict,
    llm_adapter: LLMAdapter | str = LLMAdapter.STANDARD,
    enum_duplicate_policy: EnumDuplicatePolicy | str = EnumDuplicatePolicy.DEDUPE,
) -> MutableMapping[str, Any]:
    """Generate a JSON Schema for ``schema_type``.

    Args:
        schema_type: A composite type (dataclass, NamedTuple, TypedDict or
            annotated class).
        use_references: Factor nested composite types into ``$defs``.
        output_container: Factory for every mapping in the output.
        llm_adapter: Provider format; see :class:`LLMAdapter`.
        enum_duplicate_policy: Accepted for symmetry with function schemas.

    Returns:
        The schema, wrapped in the adapter's envelope. For OPENAI and
        OPENAI_TOOLS the envelope ``name`` and ``description`` come from the
        type's Annotation.

    Raises:
        AnnotationMismatchError: An Annotation describes a field that its type
            does not declare.
    """
    reference_types = gather_reference_types(schema_type) if use_references else []
    settings = make_settings(
        use_references=use_references,
        reference_types=tuple(reference_types),
        output_container=output_container,
        llm_adapter=llm_adapter,
        enum_duplicate_policy=enum_duplicate_policy,
    )
    d = generate_object(schema_type, settings, toplevel=True)

    annotation = annotate(schema_type)
    return wrap_schema(
        d,
        settings.llm_adapter,
        get_name(annotation),
        get_description(annotation),
        settings.output_container,
    )


# ---------------------------------------------------------------------------
# Objects
# ---------------------------------------------------------------------------


def _check_annotation_fields(schema_type: Any, annotation, names: list[str]) -> None:
    if not annotation.parameters:
        return
    known = set(names)
    for key in annotation.parameters:
        if key not in known:
            raise AnnotationMismatchError(type_name(schema_type), key)


def generate_object(
    schema_type: Any, settings: SchemaSettings, toplevel: bool = False
) -> MutableMapping[str, Any]:
    annotation = annotate(schema_type)
    fields = field_items(schema_type)
    _check_annotation_fields(schema_type, annotation, [name for name, _ in fields])

    properties = settings.make_dict()
    required = []

    for name, field_type in fields:
        optional = is_optional(field_type)
        if optional:
            field_type = optional_inner(field_type)
            if settings.openai_mode:
                required.append(name)
        else:
            required.append(name)

        description = get_description(annotation, name)

        if settings.is_reference(field_type):
            ref = json_reference(field_type, settings)
            if optional and settings.openai_mode:
                # OpenAI rejects a nullable bare $ref
                properties[name] = settings.make_dict(
                    ("description", description),
                    ("anyOf", [ref, settings.make_dict(("type", "null"))]),
                )
            else:
                ref["description"] = description
                properties[name] = ref
            continue

        type_def = generate_type_def(field_type, settings)
        if settings.openai_mode:
            type_def["description"] = description
            enum = get_enum(annotation, name)
            if enum is not None:
                type_def["enum"] = [
                    enum_string(v) if isinstance(v, Enum) else v for v in enum
                ]
            if optional:
                with_null(type_def)
        properties[name] = type_def

    d = settings.make_dict(
        ("type", "object"),
        ("properties", properties),
        ("required", required),
    )

    if settings.openai_mode:
        d["additionalProperties"] = False
        if not toplevel:
            d["description"] = get_description(annotation)

    if toplevel and settings.use_references:
        d["$defs"] = generate_reference_defs(settings)

    return d


# ---------------------------------------------------------------------------
# Type definitions
# ---------------------------------------------------------------------------


def generate_type_def(tp: Any, settings: SchemaSettings) -> MutableMapping[str, Any]:
    """Definition for a non-top-level type (object, array, enum or scalar)."""
    if is_optional(tp):
        d = generate_type_def(optional_inner(tp), settings)
        return with_null(d)

    base = json_type(tp)
    if base == "object":
        if not is_composite(tp):
            # mappings, Any and field-less classes accept any object
            return settings.make_dict(("type", "object"))
        return generate_object(tp, settings)
    if base == "array":
        return generate_array(tp, settings)
    if base == "enum":
        return generate_enum(tp, settings)
    return settings.make_dict(("type", base))


def generate_array(tp: Any, settings: SchemaSettings) -> MutableMapping[str, Any]:
    element_type = array_element_type(tp)
    if settings.is_reference(element_type):
        items = json_reference(element_type, settings)
    elif is_optional(element_type) and settings.is_reference(optional_inner(element_type)):
        items = settings.make_dict(
            ("anyOf", [
                json_reference(optional_inner(element_type), settings),
                settings.make_dict(("type", "null")),
            ]),
        )
    else:
        items = generate_type_def(element_type, settings)
    return settings.make_dict(("type", "array"), ("items", items))


def generate_enum(tp: Any, settings: SchemaSettings) -> MutableMapping[str, Any]:
    values = enum_values(tp)
    types = {scalar_json_type(v) for v in values}
    d = settings.make_dict()
    if len(types) == 1 and None not in types:
        d["type"] = types.pop()
    d["enum"] = values
    return d


def _allow_null_enum(d: MutableMapping[str, Any]) -> None:
    enum = d.get("enum")
    if enum is not None and None not in enum:
        enum.append(None)


def with_null(d: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Make a definition nullable: ``"T"`` becomes ``["T", "null"]``."""
    current = d.get("type")
    if isinstance(current, str):
        if current != "null":
            d["type"] = [current, "null"]
    elif isinstance(current, list):
        if "null" not in current:
            current.append("null")
    _allow_null_enum(d)
    return d


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


def json_reference(tp: Any, settings: SchemaSettings) -> MutableMapping[str, Any]:
    return settings.make_dict(("$ref", settings.reference_path + type_name(tp)))


def generate_reference_defs(settings: SchemaSettings) -> MutableMapping[str, Any]:
    defs = settings.make_dict()
    for ref_type in settings.reference_types:
        defs[type_name(ref_type)] = generate_type_def(ref_type, settings)
    return defs


def gather_reference_types(root_type: Any) -> list:
    """Composite types reachable from the fields of ``root_type``.

    Returned in discovery order without duplicates. The root itself is only
    included when some field refers back to it. Types are marked before their
    fields are walked, so cyclic graphs terminate.
    """
    gathered = gather_from_field_types(t for _, t in field_items(root_type))
    logger.debug(
        "Gathered %d reference type(s) for %s", len(gathered), type_name(root_type)
    )
    return gathered


def gather_from_field_types(field_types: Iterable[Any]) -> list:
    """Composite types reachable from a sequence of declared field types."""
    gathered: dict[Any, None] = {}

    def _visit(field_type: Any) -> None:
        candidate = type_to_gather(field_type)
        if candidate in gathered or not is_composite(candidate):
            return
        gathered[candidate] = None
        for _, nested in field_items(candidate):
            _visit(nested)

    for field_type in field_types:
        _visit(field_type)
    return list(gathered)
