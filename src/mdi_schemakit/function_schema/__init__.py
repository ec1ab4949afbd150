from .annotations import (
    ArgAnnotation,
    MethodAnnotation,
    annotate_function,
    annotates_function,
    apply_annotation,
    register_method_annotation,
    unregister_method_annotation,
)
from .call_function import call_function, coerce_value
from .function_schema_generator import function_schema, normalize_enum_values
from .signature import (
    KeywordArg,
    MethodSignature,
    PositionalArg,
    extract_signature,
)

__all__ = [
    "ArgAnnotation",
    "KeywordArg",
    "MethodAnnotation",
    "MethodSignature",
    "PositionalArg",
    "annotate_function",
    "annotates_function",
    "apply_annotation",
    "call_function",
    "coerce_value",
    "extract_signature",
    "function_schema",
    "normalize_enum_values",
    "register_method_annotation",
    "unregister_method_annotation",
]
