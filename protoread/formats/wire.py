"""Framing for the Protocol Buffer binary wire format."""

import logging
import struct
from typing import NoReturn

from ..proto.deserializer import deserialize
from ..proto.errors import DeserializationError
from ..proto.framing import (
    DEFAULT_MAX_DEPTH,
    END_OF_MESSAGE,
    ByNumber,
    EndOfMessage,
    EnumIdentity,
    FieldIdentity,
    Framing,
    FramingError,
)
from ..proto.message import ParsedMessage
from ..schema.types import MessageDescriptor

logger = logging.getLogger(__name__)

# https://protobuf.dev/programming-guides/encoding/#structure
WIRE_TYPE_VARINT = 0
WIRE_TYPE_I64 = 1
WIRE_TYPE_LEN = 2
WIRE_TYPE_I32 = 5

_WIRE_TYPE_NAMES = {
    WIRE_TYPE_VARINT: "VARINT",
    WIRE_TYPE_I64: "I64",
    WIRE_TYPE_LEN: "LEN",
    3: "SGROUP",
    4: "EGROUP",
    WIRE_TYPE_I32: "I32",
}

_MASK_32 = (1 << 32) - 1
_MASK_64 = (1 << 64) - 1
_MAX_VARINT_BYTES = 10


class WireFormatError(FramingError):
    """Raised when binary input is malformed or does not fit the schema."""


def _to_signed(value: int, bits: int) -> int:
    """Interpret the low ``bits`` of a two's complement value as signed."""
    value &= (1 << bits) - 1
    if value >> (bits - 1):
        value -= 1 << bits
    return value


def _dezigzag(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


class WireFraming(Framing):
    """Read field events from Protocol Buffer binary data.

    Fields are always identified by number. Packed repeated scalars are
    delivered as one field event per element.
    """

    def __init__(self, data: bytes | bytearray | memoryview, *, max_depth: int = DEFAULT_MAX_DEPTH):
        super().__init__(max_depth=max_depth)
        self._data = memoryview(data).cast("B")
        self._pos = 0
        self._limits = [len(self._data)]
        self._tag_pos = 0
        self._number = 0
        self._wire_type = WIRE_TYPE_VARINT
        self._packed_end: int | None = None

    @property
    def position(self) -> int:
        """Current byte offset into the input."""
        return self._pos

    @property
    def _limit(self) -> int:
        return self._limits[-1]

    def _fail(self, reason: str) -> NoReturn:
        raise WireFormatError(f"byte offset {self._tag_pos}: field {self._number}: {reason}")

    def _read_varint(self) -> int:
        result = 0
        for i in range(_MAX_VARINT_BYTES):
            if self._pos >= self._limit:
                self._fail("truncated varint")
            byte = self._data[self._pos]
            self._pos += 1
            result |= (byte & 0x7F) << (7 * i)
            if not byte & 0x80:
                return result & _MASK_64
        self._fail("varint is longer than 10 bytes")

    def _read_length(self) -> int:
        length = self._read_varint()
        if self._pos + length > self._limit:
            self._fail(f"length {length} runs past the end of the message")
        return length

    def _expect(self, *wire_types: int) -> None:
        if self._packed_end is not None or self._wire_type not in wire_types:
            expected = " or ".join(_WIRE_TYPE_NAMES[t] for t in wire_types)
            actual = "packed" if self._packed_end is not None else _WIRE_TYPE_NAMES[self._wire_type]
            self._fail(f"expected wire type {expected}, got {actual}")

    def _begin_element(self, wire_type: int) -> None:
        """Position at the next value of a numeric field, entering packed runs."""
        if self._packed_end is not None:
            return
        if self._wire_type == WIRE_TYPE_LEN:
            length = self._read_length()
            if length == 0:
                self._fail("empty packed run")
            self._packed_end = self._pos + length
            logger.debug("Field %d: packed run of %d bytes", self._number, length)
            return
        self._expect(wire_type)

    def _end_element(self) -> None:
        if self._packed_end is None:
            return
        if self._pos > self._packed_end:
            self._fail("element overruns the packed run")
        if self._pos == self._packed_end:
            self._packed_end = None

    def _varint_value(self) -> int:
        self._begin_element(WIRE_TYPE_VARINT)
        value = self._read_varint()
        self._end_element()
        return value

    def _fixed_value(self, fmt: str):
        wire_type = WIRE_TYPE_I32 if struct.calcsize(fmt) == 4 else WIRE_TYPE_I64
        self._begin_element(wire_type)
        size = struct.calcsize(fmt)
        if self._pos + size > (self._packed_end or self._limit):
            self._fail("truncated fixed-width value")
        (value,) = struct.unpack_from(fmt, self._data, self._pos)
        self._pos += size
        self._end_element()
        return value

    def _length_delimited(self) -> memoryview:
        self._expect(WIRE_TYPE_LEN)
        length = self._read_length()
        value = self._data[self._pos : self._pos + length]
        self._pos += length
        return value

    def next_field_identity(self) -> FieldIdentity | EndOfMessage:
        if self._packed_end is not None:
            return ByNumber(self._number)
        if self._pos >= self._limit:
            return END_OF_MESSAGE

        self._tag_pos = self._pos
        tag = self._read_varint()
        self._wire_type = tag & 7
        self._number = tag >> 3
        if self._number == 0:
            self._fail("field number 0 is not allowed")
        if self._wire_type not in (WIRE_TYPE_VARINT, WIRE_TYPE_I64, WIRE_TYPE_LEN, WIRE_TYPE_I32):
            name = _WIRE_TYPE_NAMES.get(self._wire_type, str(self._wire_type))
            self._fail(f"unsupported wire type {name}")
        return ByNumber(self._number)

    def is_at_message_end(self) -> bool:
        if self._packed_end is not None or self._pos < self._limit:
            return False
        if self._pos > self._limit:
            self._fail("value overruns the enclosing message")
        # Errors raised while closing the message point at its end
        self._tag_pos = self._pos
        if len(self._limits) > 1:
            self._limits.pop()
            self._pop_frame()
        return True

    def enter_nested_message(self) -> None:
        self._expect(WIRE_TYPE_LEN)
        length = self._read_length()
        self._push_frame()
        self._limits.append(self._pos + length)

    def next_enum_identity(self) -> EnumIdentity:
        return ByNumber(_to_signed(self._varint_value(), 32))

    def decode_double(self) -> float:
        return self._fixed_value("<d")

    def decode_float(self) -> float:
        return self._fixed_value("<f")

    def decode_int32(self) -> int:
        return _to_signed(self._varint_value(), 32)

    def decode_int64(self) -> int:
        return _to_signed(self._varint_value(), 64)

    def decode_uint32(self) -> int:
        return self._varint_value() & _MASK_32

    def decode_uint64(self) -> int:
        return self._varint_value()

    def decode_sint32(self) -> int:
        return _dezigzag(self._varint_value() & _MASK_32)

    def decode_sint64(self) -> int:
        return _dezigzag(self._varint_value())

    def decode_fixed32(self) -> int:
        return self._fixed_value("<I")

    def decode_fixed64(self) -> int:
        return self._fixed_value("<Q")

    def decode_sfixed32(self) -> int:
        return self._fixed_value("<i")

    def decode_sfixed64(self) -> int:
        return self._fixed_value("<q")

    def decode_bool(self) -> bool:
        return self._varint_value() != 0

    def decode_string(self) -> str:
        data = self._length_delimited()
        try:
            return str(data, "utf-8")
        except UnicodeDecodeError as e:
            self._fail(f"invalid UTF-8 in string: {e.reason}")

    def decode_bytes(self) -> bytes:
        return bytes(self._length_delimited())

    def report_error(self, error: DeserializationError) -> NoReturn:
        raise error.with_context(f"byte offset {self._tag_pos}")


def decode(
    descriptor: MessageDescriptor,
    data: bytes | bytearray | memoryview,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> ParsedMessage:
    """Deserialize a message from Protocol Buffer binary data."""
    return deserialize(descriptor, WireFraming(data, max_depth=max_depth))
