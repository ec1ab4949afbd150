"""LLM-provider schema formats and the envelopes each one expects.

OpenAI consumes JSON Schema in two places:

- ``OPENAI`` wraps the schema for structured output (the ``text.format`` of the
  Responses API) under a ``"schema"`` key.
- ``OPENAI_TOOLS`` wraps the schema for function / tool calling under a
  ``"parameters"`` key, with ``"type": "function"``.

Both share one rule-set for the inner schema (every property required,
``additionalProperties: false``, optional values as ``[type, "null"]``), so
the inner schema is identical between them.
"""

from enum import Enum
from typing import Any, Callable, MutableMapping


class LLMAdapter(str, Enum):
    """Schema format selector."""

    STANDARD = "standard"
    OPENAI = "openai"
    OPENAI_TOOLS = "openai_tools"
    GEMINI = "gemini"


def is_openai_mode(adapter: LLMAdapter) -> bool:
    """True for either OpenAI flavour; they share the inner-schema rules."""
    return adapter in (LLMAdapter.OPENAI, LLMAdapter.OPENAI_TOOLS)


def wrap_schema(
    inner_schema: MutableMapping[str, Any],
    adapter: LLMAdapter,
    name: str,
    description: str,
    output_container: Callable[[], MutableMapping[str, Any]] = dict,
) -> MutableMapping[str, Any]:
    """Wrap a generated schema in the envelope for ``adapter``.

    STANDARD and GEMINI return ``inner_schema`` unchanged.
    """
    if adapter == LLMAdapter.OPENAI:
        retval = output_container()
        retval["name"] = name
        retval["description"] = description
        retval["strict"] = True
        retval["schema"] = inner_schema
        return retval

    if adapter == LLMAdapter.OPENAI_TOOLS:
        retval = output_container()
        retval["type"] = "function"
        retval["name"] = name
        retval["description"] = description
        retval["strict"] = True
        retval["parameters"] = inner_schema
        return retval

    # GEMINI has no envelope of its own yet.
    return inner_schema
