"""JSON Schema generation from function signatures, for LLM tool calling.

The parameters object is built from the visible (non-excluded) arguments in
signature order, reusing the type generator's definitions for each argument
type. In OpenAI mode every visible argument is required and non-required ones
are made nullable; a ``null`` from the model then means "use the default".
"""

import logging
from enum import Enum
from typing import Any, Callable, Iterable, MutableMapping, Optional

from mdi_schemakit.errors import EnumValueError
from mdi_schemakit.type_schema.adapters import LLMAdapter, wrap_schema
from mdi_schemakit.type_schema.json_schema_generator import (
    EnumDuplicatePolicy,
    SchemaSettings,
    gather_from_field_types,
    generate_reference_defs,
    generate_type_def,
    json_reference,
    make_settings,
    with_null,
)
from mdi_schemakit.type_schema.reflection import enum_string, is_optional, optional_inner

from .annotations import MethodAnnotation, annotate_function, apply_annotation
from .signature import FunArg, MethodSignature, Selector, extract_signature

logger = logging.getLogger(__name__)


def normalize_enum_values(
    values: Iterable[Any],
    enum_duplicate_policy: EnumDuplicatePolicy | str = EnumDuplicatePolicy.DEDUPE,
) -> list:
    """Normalize enum values to JSON scalars, keeping first occurrences in order.

    Enum members become their string form. Under ``DEDUPE`` later duplicates
    are dropped; under ``ERROR`` the first duplicate raises.

    Raises:
        EnumValueError: A value is not a JSON scalar, or is a duplicate under
            the ``ERROR`` policy.
    """
    policy = EnumDuplicatePolicy(enum_duplicate_policy)
    normalized = []
    seen = set()
    for value in values:
        json_value = enum_string(value) if isinstance(value, Enum) else value
        if json_value is not None and not isinstance(json_value, (str, int, float, bool)):
            raise EnumValueError(
                "Function enum values must be JSON scalars (str/Enum/int/float/bool/None). "
                f"Got {type(value).__name__}.",
                value,
            )

        # bool is an int subclass; keep True and 1 apart
        key = (isinstance(json_value, bool), json_value)
        if key in seen:
            if policy == EnumDuplicatePolicy.ERROR:
                raise EnumValueError(
                    f"Duplicate enum value after normalization: {json_value!r}.", json_value
                )
            continue

        normalized.append(json_value)
        seen.add(key)

    return normalized


def arg_accepts_null(arg: FunArg, settings: SchemaSettings) -> bool:
    if is_optional(arg.type):
        return True
    return settings.openai_mode and not arg.required


def arg_schema_type(arg: FunArg) -> Any:
    if is_optional(arg.type):
        return optional_inner(arg.type)
    return arg.type


def generate_arg_schema(arg: FunArg, settings: SchemaSettings) -> MutableMapping[str, Any]:
    arg_type = arg_schema_type(arg)
    nullable = arg_accepts_null(arg, settings)

    reference = settings.is_reference(arg_type)
    if reference:
        d = json_reference(arg_type, settings)
        if nullable:
            d = settings.make_dict(("anyOf", [d, settings.make_dict(("type", "null"))]))
    else:
        d = generate_type_def(arg_type, settings)

    # $ref arguments always carry a description
    if settings.openai_mode or reference:
        d["description"] = (
            arg.description
            if arg.description is not None
            else f"Semantic of {arg.name} in the context of function calling"
        )
    if settings.openai_mode and arg.enum is not None:
        d["enum"] = normalize_enum_values(arg.enum, settings.enum_duplicate_policy)

    if nullable and "anyOf" not in d:
        with_null(d)
    return d


def generate_parameters_schema(
    signature: MethodSignature, settings: SchemaSettings
) -> MutableMapping[str, Any]:
    properties = settings.make_dict()
    required = []

    for arg in signature.included_args():
        properties[arg.name] = generate_arg_schema(arg, settings)
        if settings.openai_mode or arg.required:
            required.append(arg.name)

    d = settings.make_dict(
        ("type", "object"),
        ("properties", properties),
        ("required", required),
    )
    if settings.openai_mode:
        d["additionalProperties"] = False
    if settings.use_references:
        d["$defs"] = generate_reference_defs(settings)
    return d


def annotated_signature(
    fn: Callable[..., Any],
    selector: Selector = 1,
    method_annotation: Optional[MethodAnnotation] = None,
) -> tuple[MethodSignature, MethodAnnotation]:
    """Extract the selected signature of ``fn`` and apply its annotation."""
    signature = extract_signature(fn, selector)
    annotation = (
        method_annotation
        if method_annotation is not None
        else annotate_function(fn, signature)
    )
    return apply_annotation(signature, annotation), annotation


def function_schema(
    fn: Callable[..., Any],
    *,
    selector: Selector = 1,
    method_annotation: Optional[MethodAnnotation] = None,
    use_references: bool = False,
    output_container: Callable[[], MutableMapping[str, Any]] = dict,
    llm_adapter: LLMAdapter | str = LLMAdapter.STANDARD,
    enum_duplicate_policy: EnumDuplicatePolicy | str = EnumDuplicatePolicy.DEDUPE,
) -> MutableMapping[str, Any]:
    """Generate a JSON Schema describing the arguments of ``fn``.

    Args:
        fn: The callable to describe.
        selector: Which overload to describe: a 1-based index, one of the
            ``@overload`` variants, or a function choosing one from the list.
        method_annotation: Explicit annotation; otherwise the registered one
            (or the docstring-derived default) is used.
        use_references: Factor composite argument types into ``$defs``.
        output_container: Factory for every mapping in the output.
        llm_adapter: ``OPENAI_TOOLS`` for a tool definition, ``OPENAI`` for a
            structured-output format, ``STANDARD`` for the bare parameters.
        enum_duplicate_policy: ``"dedupe"`` drops repeated enum values,
            ``"error"`` raises on them.

    Raises:
        MethodSelectorError: ``selector`` does not pick a candidate.
        UnsupportedSignatureError: ``fn`` takes ``*args`` or ``**kwargs``.
        MethodAnnotationError: The annotation misses an argument.
        EnumValueError: An enum value is invalid or duplicated under ``"error"``.
    """
    # Reject a bad policy before doing any work.
    make_settings(enum_duplicate_policy=enum_duplicate_policy)

    signature, annotation = annotated_signature(fn, selector, method_annotation)

    reference_types = []
    if use_references:
        reference_types = gather_from_field_types(
            arg.type for arg in signature.included_args()
        )
    settings = make_settings(
        use_references=use_references,
        reference_types=tuple(reference_types),
        output_container=output_container,
        llm_adapter=llm_adapter,
        enum_duplicate_policy=enum_duplicate_policy,
    )

    d = generate_parameters_schema(signature, settings)
    logger.debug(
        "Generated %s schema for %s with %d parameter(s)",
        settings.llm_adapter.value,
        annotation.name,
        len(d["properties"]),
    )
    return wrap_schema(
        d,
        settings.llm_adapter,
        str(annotation.name),
        annotation.description or "",
        settings.output_container,
    )
