"""Type introspection used by the schema generators.

Everything the generators need to know about a Python type goes through this
module: its JSON base type, its fields in declaration order, whether it is an
optional wrapper, and the element type of array-likes.
"""

import collections.abc
import dataclasses
import decimal
import logging
import numbers
import types
import typing
from enum import Enum
from typing import Any, Literal, Union, get_args, get_origin

logger = logging.getLogger(__name__)

NoneType = type(None)

_ARRAY_ORIGINS = (list, tuple, set, frozenset)


def type_name(tp: Any) -> str:
    """Canonical string identifier of a type (also the ``$defs`` key)."""
    name = getattr(tp, "__name__", None)
    if isinstance(name, str):
        return name
    return str(tp)


def is_union(tp: Any) -> bool:
    origin = get_origin(tp)
    return origin is Union or origin is types.UnionType


def is_optional(tp: Any) -> bool:
    """True for ``T | None``; a bare ``None`` is not optional."""
    return is_union(tp) and NoneType in get_args(tp)


def optional_inner(tp: Any) -> Any:
    """``T`` for ``T | None``; ``A | B`` for ``A | B | None``."""
    rest = tuple(arg for arg in get_args(tp) if arg is not NoneType)
    if len(rest) == 1:
        return rest[0]
    return Union[rest]


def _is_class(tp: Any) -> bool:
    # list[int] and friends are not classes, even where isinstance(.., type) says so
    return isinstance(tp, type) and get_origin(tp) is None


def _is_namedtuple(tp: Any) -> bool:
    return _is_class(tp) and issubclass(tp, tuple) and hasattr(tp, "_fields")


def is_mapping(tp: Any) -> bool:
    """True for dict-like types other than TypedDicts."""
    origin = get_origin(tp) or tp
    return (
        isinstance(origin, type)
        and issubclass(origin, collections.abc.Mapping)
        and not typing.is_typeddict(tp)
    )


def is_array_like(tp: Any) -> bool:
    origin = get_origin(tp)
    if origin is not None:
        if origin in _ARRAY_ORIGINS:
            return True
        return (
            isinstance(origin, type)
            and issubclass(origin, (collections.abc.Sequence, collections.abc.Set))
            and not issubclass(origin, (str, bytes))
        )
    if not isinstance(tp, type) or _is_namedtuple(tp):
        return False
    return issubclass(tp, _ARRAY_ORIGINS)


def array_element_type(tp: Any) -> Any:
    """Element type of an array-like; ``Any`` when it is not parameterized."""
    args = get_args(tp)
    if not args:
        return Any
    if get_origin(tp) is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return args[0]
        if all(arg == args[0] for arg in args):
            return args[0]
        return Any
    return args[0]


def is_enumeration(tp: Any) -> bool:
    if get_origin(tp) is Literal:
        return True
    return _is_class(tp) and issubclass(tp, Enum)


def enum_string(member: Enum) -> str:
    """String form of an enum member: its value when that is a str, else its name."""
    if isinstance(member.value, str):
        return member.value
    return member.name


def enum_values(tp: Any) -> list:
    """Values an enumeration type admits, in declaration order."""
    if get_origin(tp) is Literal:
        return [enum_string(v) if isinstance(v, Enum) else v for v in get_args(tp)]
    return [enum_string(member) for member in tp]


def scalar_json_type(value: Any) -> str | None:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, (float, decimal.Decimal)):
        return "number"
    if isinstance(value, (str, Enum)):
        return "string"
    return None


def json_type(tp: Any) -> str:
    """Base JSON type for ``tp``.

    One of ``boolean``, ``integer``, ``number``, ``null``, ``array``,
    ``enum``, ``string`` or ``object``; anything unrecognized is an object.
    """
    if tp is NoneType or tp is None:
        return "null"
    if is_enumeration(tp):
        return "enum"
    if _is_class(tp):
        if issubclass(tp, bool):
            return "boolean"
        if issubclass(tp, numbers.Integral):
            return "integer"
        if issubclass(tp, (numbers.Real, decimal.Decimal)):
            return "number"
        if issubclass(tp, str):
            return "string"
    if is_array_like(tp):
        return "array"
    return "object"


def _resolved_hints(tp: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(tp)
    except (NameError, TypeError) as e:
        logger.debug("Could not resolve type hints of %s (%s); using raw annotations", tp, e)
    hints = {}
    for klass in reversed(getattr(tp, "__mro__", (tp,))):
        for name, hint in getattr(klass, "__annotations__", {}).items():
            hints[name] = Any if isinstance(hint, str) else hint
    return hints


def field_items(tp: Any) -> list[tuple[str, Any]]:
    """Ordered ``(name, declared type)`` pairs of a composite type."""
    if not _is_class(tp) or tp is Any:
        return []
    hints = _resolved_hints(tp)
    if dataclasses.is_dataclass(tp):
        return [(f.name, hints.get(f.name, Any)) for f in dataclasses.fields(tp)]
    if _is_namedtuple(tp):
        return [(name, hints.get(name, Any)) for name in tp._fields]
    return [
        (name, hint)
        for name, hint in hints.items()
        if get_origin(hint) is not typing.ClassVar
    ]


def is_composite(tp: Any) -> bool:
    """True for structured types with named fields (reference-eligible)."""
    if not _is_class(tp) or tp is Any or json_type(tp) != "object":
        return False
    if dataclasses.is_dataclass(tp) or _is_namedtuple(tp) or typing.is_typeddict(tp):
        return True
    if issubclass(tp, collections.abc.Mapping):
        return False
    return bool(field_items(tp))


def type_to_gather(tp: Any) -> Any:
    """Strip optional and array wrappers down to the type that may be referenced."""
    while True:
        if is_optional(tp):
            tp = optional_inner(tp)
        elif is_array_like(tp):
            tp = array_element_type(tp)
        else:
            return tp
