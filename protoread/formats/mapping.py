"""Framing for JSON-style mappings.

Reads the structure produced by ``json.loads`` on Protocol Buffer JSON, or
built directly in Python. Keys are field names, or field numbers when they are
integers or ASCII digit strings. A list value stands for one occurrence per
element, ``None`` values are skipped, and nested mappings are sub-messages.
"""

import base64
import binascii
import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, NoReturn

from ..proto.deserializer import deserialize
from ..proto.errors import DeserializationError
from ..proto.framing import (
    DEFAULT_MAX_DEPTH,
    END_OF_MESSAGE,
    ByName,
    ByNumber,
    EndOfMessage,
    EnumIdentity,
    FieldIdentity,
    Framing,
    FramingError,
)
from ..proto.message import ParsedMessage
from ..schema.types import INTEGER_RANGES, MessageDescriptor, ScalarKind

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"[-+]?[0-9]+")
_FLOAT_STRINGS = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}


class MappingFormatError(FramingError):
    """Raised when a mapping holds a value that does not fit the schema."""


@dataclass
class _Event:
    identity: FieldIdentity
    value: Any
    path: str


@dataclass
class _Frame:
    events: list[_Event]
    path: str
    index: int = 0


def _identity(key: Any, path: str) -> FieldIdentity:
    if isinstance(key, bool):
        raise MappingFormatError(f"{path}: invalid key {key!r}")
    if isinstance(key, int):
        return ByNumber(key)
    if isinstance(key, str):
        return ByNumber(int(key)) if key.isascii() and key.isdigit() else ByName(key)
    raise MappingFormatError(f"{path}: keys must be strings or integers, got {type(key).__name__}")


def _events(obj: Mapping, path: str) -> list[_Event]:
    events = []
    for key, value in obj.items():
        key_path = f"{path}.{key}"
        identity = _identity(key, key_path)
        if value is None:
            logger.debug("Skipping null value at %s", key_path)
        elif isinstance(value, list):
            events.extend(_Event(identity, v, f"{key_path}[{i}]") for i, v in enumerate(value))
        else:
            events.append(_Event(identity, value, key_path))
    return events


class MappingFraming(Framing):
    """Read field events from a JSON-style mapping."""

    def __init__(self, obj: Mapping, *, max_depth: int = DEFAULT_MAX_DEPTH):
        super().__init__(max_depth=max_depth)
        if not isinstance(obj, Mapping):
            raise MappingFormatError(f"$: expected an object, got {type(obj).__name__}")
        self._frames = [_Frame(_events(obj, "$"), "$")]
        self._current: _Event | None = None
        self._path = "$"

    def _fail(self, reason: str) -> NoReturn:
        raise MappingFormatError(f"{self._path}: {reason}")

    def _value(self) -> Any:
        if self._current is None:
            self._fail("no field has been read")
        return self._current.value

    def _int(self, kind: ScalarKind) -> int:
        value = self._value()
        if isinstance(value, bool):
            self._fail(f"expected an integer, got {value!r}")
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        elif isinstance(value, str):
            if not _INT_RE.fullmatch(value):
                self._fail(f"expected an integer, got {value!r}")
            value = int(value)
        if not isinstance(value, int):
            self._fail(f"expected an integer, got {value!r}")
        low, high = INTEGER_RANGES[kind]
        if not low <= value <= high:
            self._fail(f"{value} is out of range for {kind.value}")
        return value

    def _float(self) -> float:
        value = self._value()
        if isinstance(value, str):
            if value in _FLOAT_STRINGS:
                return _FLOAT_STRINGS[value]
            try:
                return float(value)
            except ValueError:
                self._fail(f"expected a number, got {value!r}")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            self._fail(f"expected a number, got {value!r}")
        try:
            return float(value)
        except OverflowError:
            self._fail("integer is out of range for a double")

    def next_field_identity(self) -> FieldIdentity | EndOfMessage:
        frame = self._frames[-1]
        if frame.index >= len(frame.events):
            return END_OF_MESSAGE
        self._current = frame.events[frame.index]
        frame.index += 1
        self._path = self._current.path
        return self._current.identity

    def is_at_message_end(self) -> bool:
        frame = self._frames[-1]
        if frame.index < len(frame.events):
            return False
        self._path = frame.path
        if len(self._frames) > 1:
            self._frames.pop()
            self._pop_frame()
        return True

    def enter_nested_message(self) -> None:
        value = self._value()
        if not isinstance(value, Mapping):
            self._fail(f"expected an object, got {value!r}")
        self._push_frame()
        self._frames.append(_Frame(_events(value, self._path), self._path))

    def next_enum_identity(self) -> EnumIdentity:
        value = self._value()
        if isinstance(value, str):
            return ByName(value)
        return ByNumber(self._int(ScalarKind.INT32))

    def decode_double(self) -> float:
        return self._float()

    def decode_float(self) -> float:
        return self._float()

    def decode_int32(self) -> int:
        return self._int(ScalarKind.INT32)

    def decode_int64(self) -> int:
        return self._int(ScalarKind.INT64)

    def decode_uint32(self) -> int:
        return self._int(ScalarKind.UINT32)

    def decode_uint64(self) -> int:
        return self._int(ScalarKind.UINT64)

    def decode_sint32(self) -> int:
        return self._int(ScalarKind.SINT32)

    def decode_sint64(self) -> int:
        return self._int(ScalarKind.SINT64)

    def decode_fixed32(self) -> int:
        return self._int(ScalarKind.FIXED32)

    def decode_fixed64(self) -> int:
        return self._int(ScalarKind.FIXED64)

    def decode_sfixed32(self) -> int:
        return self._int(ScalarKind.SFIXED32)

    def decode_sfixed64(self) -> int:
        return self._int(ScalarKind.SFIXED64)

    def decode_bool(self) -> bool:
        value = self._value()
        if not isinstance(value, bool):
            self._fail(f"expected true or false, got {value!r}")
        return value

    def decode_string(self) -> str:
        value = self._value()
        if not isinstance(value, str):
            self._fail(f"expected a string, got {value!r}")
        return value

    def decode_bytes(self) -> bytes:
        value = self._value()
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if not isinstance(value, str):
            self._fail(f"expected a base64 string, got {value!r}")

        # Both alphabets are accepted, with or without padding
        data = value.replace("-", "+").replace("_", "/")
        data += "=" * (-len(data) % 4)
        try:
            return base64.b64decode(data, validate=True)
        except binascii.Error as e:
            self._fail(f"invalid base64: {e}")

    def report_error(self, error: DeserializationError) -> NoReturn:
        raise error.with_context(f"at {self._path}")


def decode(
    descriptor: MessageDescriptor, obj: Mapping, *, max_depth: int = DEFAULT_MAX_DEPTH
) -> ParsedMessage:
    """Deserialize a message from a JSON-style mapping."""
    return deserialize(descriptor, MappingFraming(obj, max_depth=max_depth))
