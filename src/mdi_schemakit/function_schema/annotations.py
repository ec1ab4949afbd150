"""Function-level annotations: per-argument descriptions, enums and visibility.

A :class:`MethodAnnotation` names a callable for the LLM, describes it, and
carries one :class:`ArgAnnotation` per argument. Arguments can be hidden from
the LLM (``llmexclude``) or marked as supplied by the user (``userprovided``);
either way they are dropped from the generated schema and must be passed
out-of-band when the function is called.

When no annotation is registered for a callable, the default one reads the
callable's docstring (Google, NumPy, reST or Epydoc style) for the method and
argument descriptions.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import docstring_parser

from mdi_schemakit.errors import ArgAnnotationError, MethodAnnotationError

from .signature import MethodSignature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArgAnnotation:
    """Annotation for one function argument.

    ``required=True`` cannot be combined with ``llmexclude=True`` or
    ``userprovided=True``.
    """

    name: str = ""
    description: Optional[str] = None
    enum: Optional[Sequence[Any]] = None
    required: bool = True
    llmexclude: bool = False
    userprovided: bool = False

    def __post_init__(self):
        if self.required and self.llmexclude:
            raise ArgAnnotationError(
                f"Cannot have required=True and llmexclude=True for {self.name}.", self.name
            )
        if self.required and self.userprovided:
            raise ArgAnnotationError(
                f"Cannot have required=True and userprovided=True for {self.name}.", self.name
            )
        if self.enum is not None:
            object.__setattr__(self, "enum", tuple(self.enum))


@dataclass(frozen=True)
class MethodAnnotation:
    name: str
    description: Optional[str] = None
    argsannot: Mapping[str, ArgAnnotation] = field(default_factory=dict)


def fallback_arg_description(arg_name: str, fn_name: str) -> str:
    return f"Semantic of {arg_name} in the context of {fn_name}"


def fallback_method_description(fn_name: str) -> str:
    return f"Semantic of {fn_name} in the context of function calling"


def default_method_annotation(signature: MethodSignature) -> MethodAnnotation:
    """Annotation derived from the signature and its docstring."""
    parsed = docstring_parser.parse(signature.description or "")
    param_docs = {p.arg_name: p.description for p in parsed.params if p.description}

    argsannot = {}
    for arg in signature.args:
        argsannot[arg.name] = ArgAnnotation(
            name=arg.name,
            description=param_docs.get(
                arg.name, fallback_arg_description(arg.name, signature.name)
            ),
            required=arg.required,
        )

    description = parsed.description or fallback_method_description(signature.name)
    return MethodAnnotation(name=signature.name, description=description, argsannot=argsannot)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

MethodAnnotationProvider = Union[
    MethodAnnotation, Callable[[MethodSignature], MethodAnnotation]
]

_registry: dict[Any, Callable[[MethodSignature], MethodAnnotation]] = {}
_registry_lock = threading.Lock()


def _registry_key(fn: Callable[..., Any]) -> Any:
    return getattr(fn, "__func__", fn)


def register_method_annotation(
    fn: Callable[..., Any], provider: MethodAnnotationProvider
) -> None:
    """Attach a MethodAnnotation, or a ``(signature) -> MethodAnnotation`` provider, to ``fn``."""
    if isinstance(provider, MethodAnnotation):
        annotation = provider
        provider = lambda _signature: annotation  # noqa: E731
    with _registry_lock:
        _registry[_registry_key(fn)] = provider


def annotates_function(fn: Callable[..., Any]):
    """Decorator form of :func:`register_method_annotation`."""

    def decorator(provider: Callable[[MethodSignature], MethodAnnotation]):
        register_method_annotation(fn, provider)
        return provider

    return decorator


def unregister_method_annotation(fn: Callable[..., Any]) -> None:
    with _registry_lock:
        _registry.pop(_registry_key(fn), None)


def annotate_function(fn: Callable[..., Any], signature: MethodSignature) -> MethodAnnotation:
    provider = _registry.get(_registry_key(fn))
    if provider is None:
        return default_method_annotation(signature)
    return provider(signature)


def apply_annotation(
    signature: MethodSignature, annotation: MethodAnnotation
) -> MethodSignature:
    """Return ``signature`` with ``annotation`` applied.

    Every argument of the signature must be covered by ``annotation.argsannot``.
    An argument annotated ``required`` becomes required and visible; one
    annotated ``llmexclude`` or ``userprovided`` becomes hidden and optional.

    Raises:
        MethodAnnotationError: An argument has no ArgAnnotation.
    """
    args = []
    for arg in signature.args:
        ann = annotation.argsannot.get(arg.name)
        if ann is None:
            raise MethodAnnotationError(arg.name)

        changes: dict[str, Any] = {"description": ann.description, "enum": ann.enum}
        if ann.required:
            changes.update(required=True, llmexclude=False)
        if ann.llmexclude or ann.userprovided:
            changes.update(required=False, llmexclude=True)
        args.append(replace(arg, **changes))

    unknown = set(annotation.argsannot) - {arg.name for arg in signature.args}
    if unknown:
        logger.warning(
            "Method annotation %s describes argument(s) not in the signature: %s",
            annotation.name,
            ", ".join(sorted(unknown)),
        )

    description = signature.description
    if annotation.description is not None:
        description = annotation.description
    return replace(signature, description=description, args=tuple(args))
