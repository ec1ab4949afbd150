"""Descriptive metadata for types and their fields.

An :class:`Annotation` carries the display name, description and optional
enum constraint for a type, plus nested Annotations for its fields. Annotations
are attached to types through a registry rather than through inheritance, so
any class (including ones you do not own) can be described:

    @dataclass
    class Person:
        name: str
        age: int

    register_annotation(
        Person,
        Annotation(
            name="Person",
            description="A schema for a person.",
            parameters={
                "name": Annotation(name="name", description="The name of the person"),
                "age": "The age of the person",
            },
        ),
    )

A plain string in ``parameters`` is shorthand for an Annotation with that
description. Types without a registered Annotation get a default one named
after the type, whose field descriptions are synthesized.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from .reflection import type_name

EnumScalar = Union[str, int, float, bool, None]


def fallback_description(field_name: str) -> str:
    return f"Semantic of {field_name} in the context of the schema"


def _as_annotation(key: str, value: Any) -> "Annotation":
    if isinstance(value, Annotation):
        return value
    if isinstance(value, str):
        return Annotation(name=key, description=value)
    raise TypeError(
        f"Annotation parameter `{key}` must be an Annotation or a description string, "
        f"got {type(value).__name__}."
    )


@dataclass(frozen=True)
class Annotation:
    """Metadata for one type or field.

    Attributes:
        name: Display name used in schema envelopes.
        description: Human-readable description; ``""`` means unset.
        markdown: Free-form documentation, not used by schema generation.
        enum: Allowed values offered to the LLM, or ``None``.
        parameters: Per-field Annotations keyed by field name, or ``None``.
            Accepts a mapping or an iterable of ``(name, annotation)`` pairs.
    """

    name: str
    description: str = ""
    markdown: str = ""
    enum: Optional[Sequence[Any]] = None
    parameters: Optional[Mapping[str, "Annotation"]] = field(default=None)

    def __post_init__(self):
        if self.enum is not None:
            object.__setattr__(self, "enum", tuple(self.enum))
        if self.parameters is not None:
            pairs = (
                self.parameters.items()
                if isinstance(self.parameters, Mapping)
                else self.parameters
            )
            object.__setattr__(
                self,
                "parameters",
                {str(k): _as_annotation(str(k), v) for k, v in pairs},
            )

    @classmethod
    def default(cls, name: str) -> "Annotation":
        """Annotation with a synthesized description, used when none is registered."""
        return cls(name=name, description=fallback_description(name))

    @classmethod
    def from_pairs(
        cls,
        name: str,
        description: str = "",
        *pairs: tuple[str, Any],
        **kwargs: Any,
    ) -> "Annotation":
        return cls(name=name, description=description, parameters=list(pairs), **kwargs)


def get_name(annotation: Annotation) -> str:
    return annotation.name


def get_description(annotation: Annotation, field_name: Optional[str] = None) -> str:
    """Description of the annotated type, or of one of its fields.

    A field without its own Annotation gets a synthesized description.
    """
    if field_name is None:
        return annotation.description
    params = annotation.parameters
    if params is None or field_name not in params:
        return fallback_description(field_name)
    return get_description(params[field_name])


def get_enum(annotation: Annotation, field_name: Optional[str] = None) -> Optional[list]:
    if field_name is None:
        return None if annotation.enum is None else list(annotation.enum)
    params = annotation.parameters
    if params is None or field_name not in params:
        return None
    return get_enum(params[field_name])


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_registry: dict[Any, Callable[[], Annotation]] = {}
_registry_lock = threading.Lock()


def register_annotation(
    tp: Any, annotation: Union[Annotation, Callable[[], Annotation]]
) -> None:
    """Attach an Annotation (or a zero-argument provider of one) to ``tp``."""
    provider = annotation if callable(annotation) else (lambda: annotation)
    with _registry_lock:
        _registry[tp] = provider


def annotates(tp: Any) -> Callable[[Callable[[], Annotation]], Callable[[], Annotation]]:
    """Decorator form of :func:`register_annotation`.

        @annotates(Person)
        def _person():
            return Annotation(name="Person", description="...")
    """

    def decorator(provider: Callable[[], Annotation]) -> Callable[[], Annotation]:
        register_annotation(tp, provider)
        return provider

    return decorator


def unregister_annotation(tp: Any) -> None:
    with _registry_lock:
        _registry.pop(tp, None)


def annotate(tp: Any) -> Annotation:
    """Annotation for ``tp``; a default one when nothing is registered."""
    provider = _registry.get(tp)
    if provider is None:
        return Annotation.default(type_name(tp))
    return provider()
