from .openai_formats import (
    FunctionTool,
    JSONSchemaFormat,
    call_tool,
    parse_structured_output,
)

__all__ = [
    "FunctionTool",
    "JSONSchemaFormat",
    "call_tool",
    "parse_structured_output",
]
