"""Invoke a Python function from the JSON arguments an LLM produced for it.

The arguments are checked against the same annotated signature the tool schema
was generated from: unknown keys are rejected, required arguments must be
present, enum-constrained values must be members, and every value is coerced
to the argument's declared type (including nested dataclasses and enums).
"""

import collections.abc
import dataclasses
import json
import logging
from enum import Enum
from typing import Any, Callable, Literal, Mapping, Optional, Union, get_args, get_origin

from mdi_schemakit.errors import ArgumentCoercionError
from mdi_schemakit.type_schema.reflection import (
    NoneType,
    array_element_type,
    enum_string,
    field_items,
    is_composite,
    is_mapping,
    is_optional,
    is_union,
    json_type,
    optional_inner,
    type_name,
)

from .annotations import MethodAnnotation
from .function_schema_generator import annotated_signature, normalize_enum_values
from .signature import NO_DEFAULT, FunArg, KeywordArg, PositionalArg, Selector

logger = logging.getLogger(__name__)


def _decode_object(text: str, what: str) -> dict:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ArgumentCoercionError(f"{what} is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ArgumentCoercionError(f"Expected {what} to decode to an object.")
    return parsed


def raw_arguments_dict(arguments: Union[str, Mapping[str, Any]]) -> Mapping[str, Any]:
    """Unwrap a JSON string, a mapping, or an OpenAI-style ``{"arguments": ...}`` wrapper."""
    if isinstance(arguments, str):
        arguments = _decode_object(arguments, "JSON arguments")
    if not isinstance(arguments, Mapping):
        raise ArgumentCoercionError(
            f"Arguments must be a JSON string or a mapping, got {type(arguments).__name__}."
        )
    if "arguments" in arguments:
        inner = arguments["arguments"]
        if isinstance(inner, str):
            return _decode_object(inner, "`arguments` JSON string")
        if isinstance(inner, Mapping):
            return inner
        raise ArgumentCoercionError("`arguments` must be an object or a JSON string object.")
    return arguments


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def _coerce_enum(value: Any, target_type: type, arg_name: str) -> Enum:
    if isinstance(value, target_type):
        return value
    if isinstance(value, str):
        for member in target_type:
            if enum_string(member) == value:
                return member
        if value in target_type.__members__:
            return target_type[value]
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        try:
            return target_type(value)
        except ValueError:
            pass
    raise ArgumentCoercionError(
        f"Argument `{arg_name}` expects enum {type_name(target_type)}. "
        "Supported inputs are member values or member names.",
        arg_name,
    )


def _coerce_literal(value: Any, target_type: Any, arg_name: str) -> Any:
    for option in get_args(target_type):
        if isinstance(option, Enum):
            if value == enum_string(option) or value is option:
                return option
        elif value == option and isinstance(value, bool) == isinstance(option, bool):
            return option
    raise ArgumentCoercionError(
        f"Argument `{arg_name}` value {value!r} is not one of {list(get_args(target_type))!r}.",
        arg_name,
    )


def _coerce_array(value: Any, target_type: Any, arg_name: str) -> Any:
    if not isinstance(value, (list, tuple)):
        raise ArgumentCoercionError(
            f"Argument `{arg_name}` expects array, got {type(value).__name__}.", arg_name
        )
    origin = get_origin(target_type) or target_type
    args = get_args(target_type)
    if origin is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
        if len(args) != len(value):
            raise ArgumentCoercionError(
                f"Argument `{arg_name}` expects {len(args)} item(s), got {len(value)}.",
                arg_name,
            )
        return tuple(coerce_value(v, t, arg_name) for v, t in zip(value, args))

    element_type = array_element_type(target_type)
    items = [coerce_value(v, element_type, arg_name) for v in value]
    if origin in (tuple, set, frozenset):
        return origin(items)
    if isinstance(origin, type) and issubclass(origin, collections.abc.Set):
        return set(items)
    return items


def _build_composite(value: Any, target_type: type, arg_name: str) -> Any:
    if not isinstance(value, Mapping):
        raise ArgumentCoercionError(
            f"Argument `{arg_name}` expects object for {type_name(target_type)}, "
            f"got {type(value).__name__}.",
            arg_name,
        )
    init_names = None
    if dataclasses.is_dataclass(target_type):
        init_names = {f.name for f in dataclasses.fields(target_type) if f.init}

    kwargs = {}
    for field_name, field_type in field_items(target_type):
        if init_names is not None and field_name not in init_names:
            continue
        if field_name not in value:
            if is_optional(field_type):
                kwargs[field_name] = None
                continue
            raise ArgumentCoercionError(
                f"Argument `{arg_name}` object for {type_name(target_type)} is missing "
                f"required field `{field_name}`.",
                arg_name,
            )
        kwargs[field_name] = coerce_value(value[field_name], field_type, field_name)
    return target_type(**kwargs)


def coerce_value(value: Any, target_type: Any, arg_name: str = "value") -> Any:
    """Convert a decoded JSON value into an instance of ``target_type``.

    Raises:
        ArgumentCoercionError: ``value`` cannot represent ``target_type``.
    """
    if value is None:
        if target_type is Any or target_type is NoneType or is_optional(target_type):
            return None
        raise ArgumentCoercionError(
            f"Argument `{arg_name}` does not accept null values for type "
            f"{type_name(target_type)}.",
            arg_name,
        )

    if target_type is Any:
        return value
    if is_optional(target_type):
        return coerce_value(value, optional_inner(target_type), arg_name)
    if is_union(target_type):
        for member in get_args(target_type):
            try:
                return coerce_value(value, member, arg_name)
            except ArgumentCoercionError:
                continue
        raise ArgumentCoercionError(
            f"Argument `{arg_name}` value {value!r} matches no member of "
            f"{type_name(target_type)}.",
            arg_name,
        )
    if get_origin(target_type) is Literal:
        return _coerce_literal(value, target_type, arg_name)

    base = json_type(target_type)
    if base == "enum":
        return _coerce_enum(value, target_type, arg_name)
    if base == "string":
        if not isinstance(value, str):
            raise ArgumentCoercionError(
                f"Argument `{arg_name}` expects string, got {type(value).__name__}.", arg_name
            )
        return value
    if base == "boolean":
        if not isinstance(value, bool):
            raise ArgumentCoercionError(
                f"Argument `{arg_name}` expects boolean, got {type(value).__name__}.", arg_name
            )
        return value
    if base == "integer":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ArgumentCoercionError(
                f"Argument `{arg_name}` expects integer, got {type(value).__name__}.", arg_name
            )
        return target_type(value)
    if base == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ArgumentCoercionError(
                f"Argument `{arg_name}` expects number, got {type(value).__name__}.", arg_name
            )
        return target_type(value)
    if base == "null":
        raise ArgumentCoercionError(
            f"Argument `{arg_name}` only accepts null, got {type(value).__name__}.", arg_name
        )
    if base == "array":
        return _coerce_array(value, target_type, arg_name)

    if is_mapping(target_type):
        if not isinstance(value, Mapping):
            raise ArgumentCoercionError(
                f"Argument `{arg_name}` expects object/dict, got {type(value).__name__}.",
                arg_name,
            )
        return dict(value)
    if is_composite(target_type):
        return _build_composite(value, target_type, arg_name)
    return value


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


def _check_enum_membership(value: Any, arg: FunArg) -> None:
    normalized = normalize_enum_values(arg.enum)
    probe = enum_string(value) if isinstance(value, Enum) else value
    if probe not in normalized:
        raise ArgumentCoercionError(
            f"Argument `{arg.name}` value {value!r} is not in enum {normalized!r}.", arg.name
        )


def _lookup(
    arg: FunArg, raw_arguments: Mapping[str, Any], extra_arguments: Mapping[str, Any]
) -> tuple[bool, Any]:
    source = raw_arguments if arg.included else extra_arguments
    if arg.name in source:
        return True, source[arg.name]
    return False, None


def _resolve(
    arg: FunArg,
    raw_arguments: Mapping[str, Any],
    extra_arguments: Mapping[str, Any],
    fn_name: str,
) -> tuple[bool, Any]:
    """``(present, value)`` for one argument; absent means "use the default"."""
    present, raw_value = _lookup(arg, raw_arguments, extra_arguments)

    if not arg.included:
        if not present and arg.default is NO_DEFAULT:
            raise ArgumentCoercionError(
                f"Missing out-of-band argument `{arg.name}` for function {fn_name}.", arg.name
            )
        return present, raw_value

    if not present:
        if arg.required:
            kind = "keyword argument" if isinstance(arg, KeywordArg) else "argument"
            raise ArgumentCoercionError(
                f"Missing required {kind} `{arg.name}` for function {fn_name}.", arg.name
            )
        return False, None

    # Strict schemas encode optional arguments as nullable; null means "use the default".
    if raw_value is None and not arg.required:
        return False, None

    if arg.enum is not None:
        _check_enum_membership(raw_value, arg)
    return True, coerce_value(raw_value, arg.type, arg.name)


def call_function(
    fn: Callable[..., Any],
    arguments: Union[str, Mapping[str, Any]],
    *,
    selector: Selector = 1,
    method_annotation: Optional[MethodAnnotation] = None,
    extra_arguments: Optional[Mapping[str, Any]] = None,
) -> Any:
    """Call ``fn`` with arguments decoded from an LLM function call.

    Args:
        fn: The function to call.
        arguments: A JSON object string, a mapping, or an OpenAI-style
            ``{"arguments": "<json>"}`` / ``{"arguments": {...}}`` wrapper.
        selector: Overload used to interpret the arguments (see
            :func:`function_schema`).
        method_annotation: Explicit annotation; otherwise the registered one.
        extra_arguments: Values for arguments hidden from the LLM
            (``llmexclude`` / ``userprovided``), passed through unchanged.

    Returns:
        Whatever ``fn`` returns.

    Raises:
        ArgumentCoercionError: The payload does not fit the signature.
    """
    raw_arguments = raw_arguments_dict(arguments)
    extra_arguments = extra_arguments or {}
    signature, _ = annotated_signature(fn, selector, method_annotation)

    included_names = {arg.name for arg in signature.included_args()}
    for key in raw_arguments:
        if str(key) not in included_names:
            raise ArgumentCoercionError(
                f"Unexpected argument key `{key}` for function {signature.name}.", str(key)
            )

    positional_args = sorted(
        (arg for arg in signature.args if isinstance(arg, PositionalArg)),
        key=lambda arg: arg.position,
    )
    keyword_args = [arg for arg in signature.args if isinstance(arg, KeywordArg)]

    positional_values = []
    keyword_values = {}
    seen_optional_gap = False
    for arg in positional_args:
        present, value = _resolve(arg, raw_arguments, extra_arguments, signature.name)
        if not present:
            seen_optional_gap = True
            continue
        if not seen_optional_gap:
            positional_values.append(value)
        elif not arg.positional_only:
            # the earlier argument keeps its default, so bind this one by name
            keyword_values[arg.name] = value
        else:
            raise ArgumentCoercionError(
                f"Cannot supply positional-only argument `{arg.name}` after omitting an "
                "earlier optional positional argument.",
                arg.name,
            )

    for arg in keyword_args:
        present, value = _resolve(arg, raw_arguments, extra_arguments, signature.name)
        if present:
            keyword_values[arg.name] = value

    logger.debug(
        "Calling %s with %d positional and %d keyword argument(s)",
        signature.name,
        len(positional_values),
        len(keyword_values),
    )
    return fn(*positional_values, **keyword_values)
