"""Exception types raised by schema generation and function invocation."""

from typing import Any


class SchemaGenerationError(ValueError):
    """Base class for configuration errors found while building a schema."""


class AnnotationMismatchError(SchemaGenerationError):
    """An Annotation describes a field that the annotated type does not declare."""

    def __init__(self, type_name: str, field: str):
        super().__init__(
            f"Annotation for {type_name} describes field `{field}`, "
            f"which {type_name} does not declare."
        )
        self.type_name = type_name
        self.field = field


class MethodAnnotationError(SchemaGenerationError):
    """A MethodAnnotation does not cover every argument of the signature."""

    def __init__(self, argument: str):
        super().__init__(
            "Method annotation does not match method signature. "
            f"Missing argument: {argument}"
        )
        self.argument = argument


class ArgAnnotationError(SchemaGenerationError):
    """An ArgAnnotation was constructed with contradictory flags."""

    def __init__(self, message: str, argument: str):
        super().__init__(message)
        self.argument = argument


class EnumValueError(SchemaGenerationError):
    """An enum value is not a JSON scalar, or is repeated under the strict policy."""

    def __init__(self, message: str, value: Any):
        super().__init__(message)
        self.value = value


class UnsupportedSignatureError(SchemaGenerationError):
    """The callable has a parameter shape that cannot be described as JSON."""

    def __init__(self, message: str, parameter: str):
        super().__init__(message)
        self.parameter = parameter


class MethodSelectorError(SchemaGenerationError):
    """The overload selector did not resolve to exactly one candidate."""

    def __init__(self, message: str, selector: Any):
        super().__init__(message)
        self.selector = selector


class ArgumentCoercionError(ValueError):
    """A JSON payload could not be turned into arguments for a function call."""

    def __init__(self, message: str, argument: str | None = None):
        super().__init__(message)
        self.argument = argument
