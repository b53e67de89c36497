"""Framing for the Protocol Buffer text format.

The input is parsed with Lark into positioned field records up front, then
served to the deserializer one field at a time. Errors carry the line and
column of the field being read.

Example:
    name: "Ann"
    tag: "x"
    age: 30
    address { city: "Oslo" }
    tag: ["y", "z"]
"""

import logging
import math
import os
import re
from dataclasses import dataclass
from typing import Any, NoReturn

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedInput, VisitError
from lark.visitors import Transformer_NonRecursive

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
    NestingTooDeep,
)
from ..proto.message import ParsedMessage
from ..schema.types import INTEGER_RANGES, MessageDescriptor, ScalarKind

logger = logging.getLogger(__name__)

_g_parser: Lark | None = None


class TextFormatError(FramingError):
    """Raised when text input is malformed or does not fit the schema."""


def _location(line: int, column: int) -> str:
    return f"line {line}, column {column}"


_INT_RE = re.compile(r"-?(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")
_FLOAT_WORDS = {"inf": math.inf, "infinity": math.inf, "nan": math.nan}
_TRUE_WORDS = frozenset(["true", "True", "t"])
_FALSE_WORDS = frozenset(["false", "False", "f"])

_SIMPLE_ESCAPES = {
    "a": b"\a",
    "b": b"\b",
    "f": b"\f",
    "n": b"\n",
    "r": b"\r",
    "t": b"\t",
    "v": b"\v",
    "\\": b"\\",
    "'": b"'",
    '"': b'"',
    "?": b"?",
}
_ESCAPE_RE = re.compile(
    r"\\(?:([0-7]{1,3})|[xX]([0-9a-fA-F]{1,2})|u([0-9a-fA-F]{4})|U([0-9a-fA-F]{8})|(.))",
    re.DOTALL,
)


def unescape(body: str) -> bytes:
    """Decode the C-style escapes of a quoted text format string."""
    output = bytearray()
    pos = 0
    for m in _ESCAPE_RE.finditer(body):
        output += body[pos : m.start()].encode("utf-8")
        octal, hex_byte, short_code, long_code, char = m.groups()
        if octal:
            value = int(octal, 8)
            if value > 0xFF:
                raise ValueError(f"octal escape \\{octal} is out of range")
            output.append(value)
        elif hex_byte:
            output.append(int(hex_byte, 16))
        elif short_code or long_code:
            code = int(short_code or long_code, 16)
            if code > 0x10FFFF or 0xD800 <= code <= 0xDFFF:
                raise ValueError(f"invalid unicode escape {m.group(0)}")
            output += chr(code).encode("utf-8")
        elif char in _SIMPLE_ESCAPES:
            output += _SIMPLE_ESCAPES[char]
        else:
            raise ValueError(f"invalid escape \\{char}")
        pos = m.end()
    output += body[pos:].encode("utf-8")
    return bytes(output)


def parse_int(text: str) -> int:
    """Parse a decimal, hexadecimal or octal integer literal."""
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"{text!r} is not an integer")
    negative = text.startswith("-")
    body = text.lstrip("-")
    if body[:2] in ("0x", "0X"):
        value = int(body[2:], 16)
    elif len(body) > 1 and body[0] == "0":
        value = int(body[1:], 8)
    else:
        value = int(body)
    return -value if negative else value


@dataclass
class _Scalar:
    kind: str  # string, number or ident
    text: str
    parts: list[str]
    line: int
    column: int


@dataclass
class _Message:
    fields: list["_TextField"]
    end_line: int
    end_column: int


@dataclass
class _TextField:
    identity: FieldIdentity
    value: _Scalar | _Message
    line: int
    column: int


@dataclass
class _Frame:
    fields: list[_TextField]
    end: str
    index: int = 0


@dataclass
class _FieldName:
    identity: FieldIdentity
    token: Token


def _flatten(args: list[Any]) -> list[_TextField]:
    fields: list[_TextField] = []
    for arg in args:
        if isinstance(arg, list):
            fields.extend(arg)
        else:
            fields.append(arg)
    return fields


class TreeTransformer(Transformer_NonRecursive):
    """Transform a text format parse tree into positioned field records."""

    def start(self, args: list[Any]) -> list[_TextField]:
        return _flatten(args)

    def field_name(self, args: list[Any]) -> _FieldName:
        token = args[0]
        if token.type == "IDENT":
            return _FieldName(ByName(str(token)), token)
        if not str(token).isdigit():
            raise TextFormatError(
                f"{_location(token.line, token.column)}: invalid field number {token}"
            )
        return _FieldName(ByNumber(int(str(token))), token)

    def field(self, args: list[Any]) -> _TextField:
        name, value = args
        return _TextField(name.identity, value, name.token.line, name.token.column)

    def list_field(self, args: list[Any]) -> list[_TextField]:
        name, *values = args
        return [_TextField(name.identity, v, name.token.line, name.token.column) for v in values]

    def message(self, args: list[Any]) -> _Message:
        closing = args[-1]
        return _Message(_flatten(args[1:-1]), closing.line, closing.column)

    def string_value(self, args: list[Any]) -> _Scalar:
        first = args[0]
        if len(args) > 1:
            logger.debug("Concatenating %d strings at line %d", len(args), first.line)
        return _Scalar("string", "", [str(a)[1:-1] for a in args], first.line, first.column)

    def number_value(self, args: list[Any]) -> _Scalar:
        token = args[0]
        return _Scalar("number", str(token), [], token.line, token.column)

    def ident_value(self, args: list[Any]) -> _Scalar:
        first = args[0]
        return _Scalar("ident", "".join(str(a) for a in args), [], first.line, first.column)


def _check_depth(tree: Tree, max_depth: int) -> None:
    pending = [(tree, 0)]
    while pending:
        node, depth = pending.pop()
        if node.data == "message":
            depth += 1
            if depth > max_depth:
                raise NestingTooDeep(f"Messages nested deeper than {max_depth} levels")
        pending.extend((child, depth) for child in node.children if isinstance(child, Tree))


def parse(text: str, *, max_depth: int = DEFAULT_MAX_DEPTH) -> list[_TextField]:
    """Parse text format input into field records.

    Raises NestingTooDeep before building any records if messages nest
    deeper than ``max_depth``.
    """
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/textformat.lark", encoding="utf-8") as f:
            grammar = f.read()

        _g_parser = Lark(grammar, parser="lalr")

    try:
        tree = _g_parser.parse(text)
    except UnexpectedInput as e:
        location = _location(e.line, e.column) if e.line > 0 else "end of input"
        raise TextFormatError(f"{location}: syntax error") from e

    _check_depth(tree, max_depth)
    try:
        return TreeTransformer().transform(tree)
    except VisitError as e:
        raise e.orig_exc from None


class TextFraming(Framing):
    """Read field events from Protocol Buffer text format."""

    def __init__(self, text: str, *, max_depth: int = DEFAULT_MAX_DEPTH):
        super().__init__(max_depth=max_depth)
        self._frames = [_Frame(parse(text, max_depth=max_depth), end="end of input")]
        self._current: _TextField | None = None
        self._location = _location(1, 1)

    def _fail(self, reason: str, at: _Scalar | _TextField | None = None) -> NoReturn:
        location = _location(at.line, at.column) if at else self._location
        raise TextFormatError(f"{location}: {reason}")

    def _scalar(self) -> _Scalar:
        if self._current is None:
            self._fail("no field has been read")
        value = self._current.value
        if not isinstance(value, _Scalar):
            self._fail("expected a scalar value, got a message", self._current)
        return value

    def _int(self, kind: ScalarKind) -> int:
        value = self._scalar()
        if value.kind != "number":
            self._fail(f"expected an integer, got {value.text or 'a string'}", value)
        try:
            number = parse_int(value.text)
        except ValueError as e:
            self._fail(str(e), value)
        low, high = INTEGER_RANGES[kind]
        if not low <= number <= high:
            self._fail(f"{number} is out of range for {kind.value}", value)
        return number

    def _float(self) -> float:
        value = self._scalar()
        if value.kind == "ident":
            word = value.text.lstrip("-").lower()
            if word not in _FLOAT_WORDS:
                self._fail(f"expected a number, got {value.text}", value)
            result = _FLOAT_WORDS[word]
            return -result if value.text.startswith("-") else result
        if value.kind != "number":
            self._fail("expected a number, got a string", value)
        text = value.text
        try:
            if text.lstrip("-")[:2] in ("0x", "0X"):
                return float(parse_int(text))
            return float(text.rstrip("fF"))
        except ValueError:
            self._fail(f"invalid number {text}", value)

    def _raw_bytes(self) -> bytes:
        value = self._scalar()
        if value.kind != "string":
            self._fail(f"expected a quoted string, got {value.text}", value)
        try:
            return b"".join(unescape(part) for part in value.parts)
        except ValueError as e:
            self._fail(str(e), value)

    def next_field_identity(self) -> FieldIdentity | EndOfMessage:
        frame = self._frames[-1]
        if frame.index >= len(frame.fields):
            return END_OF_MESSAGE
        self._current = frame.fields[frame.index]
        frame.index += 1
        self._location = _location(self._current.line, self._current.column)
        return self._current.identity

    def is_at_message_end(self) -> bool:
        frame = self._frames[-1]
        if frame.index < len(frame.fields):
            return False
        self._location = frame.end
        if len(self._frames) > 1:
            self._frames.pop()
            self._pop_frame()
        return True

    def enter_nested_message(self) -> None:
        if self._current is None or not isinstance(self._current.value, _Message):
            self._fail("expected a message value", self._current)
        value = self._current.value
        self._push_frame()
        self._frames.append(_Frame(value.fields, end=_location(value.end_line, value.end_column)))

    def next_enum_identity(self) -> EnumIdentity:
        value = self._scalar()
        if value.kind == "ident" and not value.text.startswith("-"):
            return ByName(value.text)
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
        value = self._scalar()
        if value.kind == "ident" and value.text in _TRUE_WORDS:
            return True
        if value.kind == "ident" and value.text in _FALSE_WORDS:
            return False
        if value.kind == "number" and value.text in ("0", "1"):
            return value.text == "1"
        self._fail(f"expected a boolean, got {value.text or 'a string'}", value)

    def decode_string(self) -> str:
        data = self._raw_bytes()
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            self._fail(f"invalid UTF-8 in string: {e.reason}", self._current)

    def decode_bytes(self) -> bytes:
        return self._raw_bytes()

    def report_error(self, error: DeserializationError) -> NoReturn:
        raise error.with_context(self._location)


def decode(
    descriptor: MessageDescriptor, text: str, *, max_depth: int = DEFAULT_MAX_DEPTH
) -> ParsedMessage:
    """Deserialize a message from Protocol Buffer text format."""
    return deserialize(descriptor, TextFraming(text, max_depth=max_depth))
