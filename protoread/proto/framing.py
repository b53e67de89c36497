"""The framing interface consumed by the deserializer.

A framing turns one concrete input format (binary wire format, text format,
JSON-style mappings, ...) into a sequence of field events. The deserializer
drives it strictly in order and never looks ahead, so a framing only has to
track its current position and the stack of messages it is inside.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, NoReturn

from ..schema.types import ScalarKind
from .errors import DeserializationError

DEFAULT_MAX_DEPTH = 100


class FramingError(RuntimeError):
    """Base exception for format-level failures raised by a framing."""


class NestingTooDeep(FramingError):
    """Raised when nested messages exceed the framing's maximum depth."""


@dataclass(frozen=True, slots=True)
class ByName:
    """A field or enum value identified by its symbolic name."""

    name: str


@dataclass(frozen=True, slots=True)
class ByNumber:
    """A field or enum value identified by its number."""

    number: int


FieldIdentity = ByName | ByNumber
EnumIdentity = ByName | ByNumber


class EndOfMessage(Enum):
    END_OF_MESSAGE = "end of message"


END_OF_MESSAGE = EndOfMessage.END_OF_MESSAGE


class Framing(ABC):
    """Base class for format-specific field event sources.

    Subclasses implement the abstract methods for their format. The
    ``decode_*`` methods and ``next_enum_identity`` read the value of the field
    most recently returned by ``next_field_identity``.

    A framing instance is single use: it serves one top-level deserialize call
    and must not be shared between concurrent calls.
    """

    def __init__(self, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.max_depth = max_depth
        self._depth = 0

    @property
    def depth(self) -> int:
        """How many nested messages the framing is currently inside."""
        return self._depth

    def _push_frame(self) -> None:
        """Record entry into a nested message, enforcing ``max_depth``."""
        if self._depth >= self.max_depth:
            raise NestingTooDeep(f"Messages nested deeper than {self.max_depth} levels")
        self._depth += 1

    def _pop_frame(self) -> None:
        """Record the end of a nested message."""
        if self._depth == 0:
            raise FramingError("Left a nested message that was never entered")
        self._depth -= 1

    @abstractmethod
    def next_field_identity(self) -> FieldIdentity | EndOfMessage:
        """Read the identity of the next field in the current message."""

    @abstractmethod
    def is_at_message_end(self) -> bool:
        """Check whether the current message has no more fields.

        Reporting the end of a nested message returns the framing to the
        enclosing message.
        """

    @abstractmethod
    def enter_nested_message(self) -> None:
        """Start reading the current field's value as a sub-message."""

    @abstractmethod
    def next_enum_identity(self) -> EnumIdentity:
        """Read the current field's value as an enum identity."""

    @abstractmethod
    def decode_double(self) -> float: ...

    @abstractmethod
    def decode_float(self) -> float: ...

    @abstractmethod
    def decode_int32(self) -> int: ...

    @abstractmethod
    def decode_int64(self) -> int: ...

    @abstractmethod
    def decode_uint32(self) -> int: ...

    @abstractmethod
    def decode_uint64(self) -> int: ...

    @abstractmethod
    def decode_sint32(self) -> int: ...

    @abstractmethod
    def decode_sint64(self) -> int: ...

    @abstractmethod
    def decode_fixed32(self) -> int: ...

    @abstractmethod
    def decode_fixed64(self) -> int: ...

    @abstractmethod
    def decode_sfixed32(self) -> int: ...

    @abstractmethod
    def decode_sfixed64(self) -> int: ...

    @abstractmethod
    def decode_bool(self) -> bool: ...

    @abstractmethod
    def decode_string(self) -> str: ...

    @abstractmethod
    def decode_bytes(self) -> bytes: ...

    def decode_scalar(self, kind: ScalarKind) -> Any:
        """Decode the current field's value as the given scalar kind."""
        return getattr(self, f"decode_{kind.value}")()

    def report_error(self, error: DeserializationError) -> NoReturn:
        """Raise a deserialization error through the framing.

        Subclasses override this to attach positional context with
        ``error.with_context(...)`` before raising. It never returns.
        """
        raise error
