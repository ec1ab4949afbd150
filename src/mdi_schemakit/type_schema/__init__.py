from .adapters import LLMAdapter, is_openai_mode, wrap_schema
from .annotations import (
    Annotation,
    annotate,
    annotates,
    get_description,
    get_enum,
    get_name,
    register_annotation,
    unregister_annotation,
)
from .json_schema_generator import (
    EnumDuplicatePolicy,
    SchemaSettings,
    gather_reference_types,
    schema,
)

__all__ = [
    "Annotation",
    "EnumDuplicatePolicy",
    "LLMAdapter",
    "SchemaSettings",
    "annotate",
    "annotates",
    "gather_reference_types",
    "get_description",
    "get_enum",
    "get_name",
    "is_openai_mode",
    "register_annotation",
    "schema",
    "unregister_annotation",
    "wrap_schema",
]
