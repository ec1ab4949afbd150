"""Signature extraction: turn one overload of a callable into a MethodSignature."""

import inspect
import logging
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from mdi_schemakit.errors import MethodSelectorError, UnsupportedSignatureError

logger = logging.getLogger(__name__)

NO_DEFAULT = inspect.Parameter.empty

Selector = Union[int, Callable[..., Any]]


@dataclass(frozen=True, kw_only=True)
class FunArg:
    name: str
    type: Any = Any
    required: bool = True
    default: Any = NO_DEFAULT
    enum: Optional[tuple] = None
    description: Optional[str] = None
    llmexclude: bool = False

    @property
    def included(self) -> bool:
        """False when the argument is hidden from the LLM and supplied out-of-band."""
        return not self.llmexclude


@dataclass(frozen=True, kw_only=True)
class PositionalArg(FunArg):
    position: int
    positional_only: bool = False


@dataclass(frozen=True, kw_only=True)
class KeywordArg(FunArg):
    pass


@dataclass(frozen=True, kw_only=True)
class MethodSignature:
    name: str
    description: Optional[str] = None
    args: tuple[FunArg, ...] = field(default_factory=tuple)

    def included_args(self) -> list[FunArg]:
        return [arg for arg in self.args if arg.included]


def overload_candidates(fn: Callable[..., Any]) -> list[Callable[..., Any]]:
    """Registered ``@overload`` variants of ``fn``, or ``[fn]`` when there are none."""
    overloads = typing.get_overloads(fn)
    return list(overloads) if overloads else [fn]


def select_overload(fn: Callable[..., Any], selector: Selector = 1) -> Callable[..., Any]:
    """Pick one candidate of ``fn``.

    ``selector`` is a 1-based index, one of the candidates itself, or a
    function that receives the candidate list and returns one of them.
    """
    candidates = overload_candidates(fn)
    fn_name = getattr(fn, "__name__", repr(fn))

    if isinstance(selector, int) and not isinstance(selector, bool):
        if selector < 1 or selector > len(candidates):
            raise MethodSelectorError(
                f"Invalid method selector index={selector} for function {fn_name}. "
                f"Available methods: {len(candidates)}.",
                selector,
            )
        return candidates[selector - 1]

    if any(selector is c for c in candidates):
        return selector

    if callable(selector):
        chosen = selector(candidates)
        if not any(chosen is c for c in candidates):
            raise MethodSelectorError(
                f"Method selector for function {fn_name} did not return one of its "
                f"{len(candidates)} candidate(s).",
                selector,
            )
        return chosen

    raise MethodSelectorError(
        f"Unsupported method selector {selector!r} for function {fn_name}.", selector
    )


def _docstring(fn: Callable[..., Any]) -> Optional[str]:
    doc = inspect.getdoc(fn)
    if doc is None or not doc.strip():
        return None
    return doc.strip()


def _type_hints(candidate: Callable[..., Any]) -> dict[str, Any]:
    target = candidate.__init__ if isinstance(candidate, type) else candidate
    try:
        return typing.get_type_hints(target)
    except (NameError, TypeError) as e:
        logger.debug(
            "Could not resolve type hints of %s (%s); unresolved arguments become Any",
            candidate,
            e,
        )
        return {}


def extract_signature(fn: Callable[..., Any], selector: Selector = 1) -> MethodSignature:
    """Extract the selected overload of ``fn`` into a MethodSignature.

    Raises:
        MethodSelectorError: ``selector`` does not resolve to a candidate.
        UnsupportedSignatureError: The overload takes ``*args`` or ``**kwargs``.
    """
    candidate = select_overload(fn, selector)
    hints = _type_hints(candidate)
    args: list[FunArg] = []
    position = 0

    for param in inspect.signature(candidate).parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            raise UnsupportedSignatureError(
                "Varargs (`*args`) are not supported for function schema extraction.",
                param.name,
            )
        if param.kind is inspect.Parameter.VAR_KEYWORD:
            raise UnsupportedSignatureError(
                "Keyword varargs (`**kwargs`) are not supported for function schema extraction.",
                param.name,
            )

        arg_type = hints.get(param.name)
        if arg_type is None:
            raw = param.annotation
            arg_type = Any if raw is NO_DEFAULT or isinstance(raw, str) else raw
        required = param.default is NO_DEFAULT

        if param.kind is inspect.Parameter.KEYWORD_ONLY:
            args.append(
                KeywordArg(
                    name=param.name, type=arg_type, required=required, default=param.default
                )
            )
        else:
            position += 1
            args.append(
                PositionalArg(
                    name=param.name,
                    position=position,
                    type=arg_type,
                    required=required,
                    default=param.default,
                    positional_only=param.kind is inspect.Parameter.POSITIONAL_ONLY,
                )
            )

    name = getattr(fn, "__name__", type(fn).__name__)
    logger.debug("Extracted signature of %s with %d argument(s)", name, len(args))
    return MethodSignature(name=name, description=_docstring(fn), args=tuple(args))
