"""Errors raised while deserializing a message.

The deserializer reports exactly these five kinds of failure. Format-level
problems (malformed bytes, syntax errors) belong to the framing and are raised
as ``FramingError`` subclasses instead.
"""

from enum import StrEnum
from typing import ClassVar, Self


class ErrorKind(StrEnum):
    """The closed set of deserialization failures."""

    NO_ENUM_VALUE_WITH_NAME = "no_enum_value_with_name"
    NO_ENUM_VALUE_WITH_NUMBER = "no_enum_value_with_number"
    NO_FIELD_WITH_NAME = "no_field_with_name"
    NO_FIELD_WITH_NUMBER = "no_field_with_number"
    NO_VALUE_FOR_REQUIRED_FIELD = "no_value_for_required_field"


class DeserializationError(RuntimeError):
    """Base class for lookup and validation failures during deserialization.

    Attributes:
        kind: Which of the closed set of failures this is.
        owner: Name of the message or enum the lookup ran against.
        context: Optional location information added by the framing,
            e.g. ``"line 3, column 7"``.
    """

    kind: ClassVar[ErrorKind]

    def __init__(self, owner: str, detail: str) -> None:
        super().__init__(detail)
        self.owner = owner
        self.detail = detail
        self.context: str | None = None

    def with_context(self, context: str) -> Self:
        """Attach location information and return the same error."""
        self.context = context
        return self

    def __str__(self) -> str:
        if self.context:
            return f"{self.context}: {self.detail}"
        return self.detail


class NoEnumValueWithName(DeserializationError):
    """An enum value was identified by a name the enum does not declare."""

    kind = ErrorKind.NO_ENUM_VALUE_WITH_NAME

    def __init__(self, enum: str, name: str) -> None:
        super().__init__(enum, f"enum {enum} has no value named {name!r}")
        self.name = name


class NoEnumValueWithNumber(DeserializationError):
    """An enum value was identified by a number the enum does not declare."""

    kind = ErrorKind.NO_ENUM_VALUE_WITH_NUMBER

    def __init__(self, enum: str, number: int) -> None:
        super().__init__(enum, f"enum {enum} has no value numbered {number}")
        self.number = number


class NoFieldWithName(DeserializationError):
    """A field was identified by a name the message does not declare."""

    kind = ErrorKind.NO_FIELD_WITH_NAME

    def __init__(self, message: str, name: str) -> None:
        super().__init__(message, f"message {message} has no field named {name!r}")
        self.name = name


class NoFieldWithNumber(DeserializationError):
    """A field was identified by a number the message does not declare."""

    kind = ErrorKind.NO_FIELD_WITH_NUMBER

    def __init__(self, message: str, number: int) -> None:
        super().__init__(message, f"message {message} has no field numbered {number}")
        self.number = number


class NoValueForRequiredField(DeserializationError):
    """A required field never occurred in the message."""

    kind = ErrorKind.NO_VALUE_FOR_REQUIRED_FIELD

    def __init__(self, message: str, name: str) -> None:
        super().__init__(message, f"message {message} is missing required field {name!r}")
        self.name = name
