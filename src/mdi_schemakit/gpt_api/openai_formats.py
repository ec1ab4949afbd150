"""Helpers for using generated schemas with the OpenAI Responses API.

``JSONSchemaFormat`` and ``FunctionTool`` build the request payloads; the
other two helpers go the other way and turn what the model sent back into
Python values:

    response = client.responses.create(
        model="gpt-4.1",
        input=messages,
        text=JSONSchemaFormat(Person),
    )
    person = parse_structured_output(Person, response)

    response = client.responses.create(
        model="gpt-4.1", input=messages, tools=[FunctionTool(get_weather)]
    )
    for item in response.output:
        if item.type == "function_call":
            result = call_tool(get_weather, item)
"""

import json
import logging
from typing import Any, Callable, Mapping, Optional, Union, cast

from openai.types.responses import FunctionToolParam, ResponseTextConfigParam

from mdi_schemakit.errors import ArgumentCoercionError
from mdi_schemakit.function_schema.annotations import MethodAnnotation
from mdi_schemakit.function_schema.call_function import call_function, coerce_value
from mdi_schemakit.function_schema.function_schema_generator import (
    annotated_signature,
    function_schema,
)
from mdi_schemakit.function_schema.signature import Selector
from mdi_schemakit.type_schema.adapters import LLMAdapter
from mdi_schemakit.type_schema.json_schema_generator import schema

logger = logging.getLogger(__name__)


def JSONSchemaFormat(tp: Any, *, use_references: bool = False) -> ResponseTextConfigParam:
    """Build a strict ``text.format`` payload describing ``tp``.

    Returns:
        ``{"format": {"type": "json_schema", "name": ..., "description": ...,
        "strict": True, "schema": ...}}``
    """
    envelope = schema(tp, use_references=use_references, llm_adapter=LLMAdapter.OPENAI)
    return cast(ResponseTextConfigParam, {"format": {"type": "json_schema", **envelope}})


def FunctionTool(
    fn: Callable[..., Any],
    *,
    selector: Selector = 1,
    method_annotation: Optional[MethodAnnotation] = None,
    use_references: bool = False,
) -> FunctionToolParam:
    """Build a strict ``function`` tool definition for ``fn``."""
    tool = function_schema(
        fn,
        selector=selector,
        method_annotation=method_annotation,
        use_references=use_references,
        llm_adapter=LLMAdapter.OPENAI_TOOLS,
    )
    return cast(FunctionToolParam, tool)


def _tool_call_field(tool_call: Any, key: str) -> Any:
    if isinstance(tool_call, Mapping):
        return tool_call.get(key)
    return getattr(tool_call, key, None)


def call_tool(
    fn: Callable[..., Any],
    tool_call: Any,
    *,
    selector: Selector = 1,
    method_annotation: Optional[MethodAnnotation] = None,
    extra_arguments: Optional[Mapping[str, Any]] = None,
) -> Any:
    """Invoke ``fn`` from a Responses API ``function_call`` output item.

    ``tool_call`` may be the SDK object or its dict form; only its ``name``
    and ``arguments`` are read.

    Raises:
        ArgumentCoercionError: The call names another function, or its
            arguments do not fit the signature of ``fn``.
    """
    _, annotation = annotated_signature(fn, selector, method_annotation)
    name = _tool_call_field(tool_call, "name")
    if name != annotation.name:
        raise ArgumentCoercionError(
            f"Tool call is for `{name}`, but the function is exposed as `{annotation.name}`."
        )

    arguments = _tool_call_field(tool_call, "arguments")
    if arguments is None:
        arguments = {}
    logger.debug("Dispatching tool call %s", name)
    return call_function(
        fn,
        arguments,
        selector=selector,
        method_annotation=method_annotation,
        extra_arguments=extra_arguments,
    )


def parse_structured_output(tp: Any, response_or_text: Union[str, Any]) -> Any:
    """Decode a structured-output reply and build a ``tp`` from it.

    Args:
        tp: The type the response format was generated from.
        response_or_text: A Responses API response (its ``output_text`` is
            read) or the raw JSON text.

    Raises:
        ArgumentCoercionError: The text is not JSON or does not fit ``tp``.
    """
    if isinstance(response_or_text, str):
        text = response_or_text
    else:
        text = getattr(response_or_text, "output_text", None)
        if not isinstance(text, str):
            raise ArgumentCoercionError("Response has no output_text to parse.")

    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise ArgumentCoercionError(f"Structured output is not valid JSON: {e}") from e
    return coerce_value(value, tp, getattr(tp, "__name__", "value"))
