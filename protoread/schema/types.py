"""Runtime descriptors for protoread message schemas.

These dataclasses describe the structure of messages and enums at runtime.
The deserializer walks them to decode any message without generated code.
Descriptors are immutable and validated on construction.
"""

from dataclasses import dataclass, field
from enum import StrEnum


class SchemaError(ValueError):
    """Raised when a schema or descriptor is invalid."""


class Cardinality(StrEnum):
    """How many times a field may occur in a message."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    REPEATED = "repeated"


class ScalarKind(StrEnum):
    """Scalar field types understood by every framing."""

    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"


SCALAR_KINDS = frozenset(kind.value for kind in ScalarKind)

# Inclusive value range of each integer kind
INTEGER_RANGES: dict[ScalarKind, tuple[int, int]] = {
    ScalarKind.INT32: (-(1 << 31), (1 << 31) - 1),
    ScalarKind.SINT32: (-(1 << 31), (1 << 31) - 1),
    ScalarKind.SFIXED32: (-(1 << 31), (1 << 31) - 1),
    ScalarKind.INT64: (-(1 << 63), (1 << 63) - 1),
    ScalarKind.SINT64: (-(1 << 63), (1 << 63) - 1),
    ScalarKind.SFIXED64: (-(1 << 63), (1 << 63) - 1),
    ScalarKind.UINT32: (0, (1 << 32) - 1),
    ScalarKind.FIXED32: (0, (1 << 32) - 1),
    ScalarKind.UINT64: (0, (1 << 64) - 1),
    ScalarKind.FIXED64: (0, (1 << 64) - 1),
}


def _index(names: list) -> dict:
    return {name: i for i, name in enumerate(names)}


def _check_unique(owner: str, what: str, items: list) -> None:
    seen = set()
    for item in items:
        if item in seen:
            raise SchemaError(f"{owner}: duplicate {what} {item!r}")
        seen.add(item)


@dataclass(frozen=True, slots=True)
class EnumValue:
    """A single named enum constant."""

    name: str
    number: int


@dataclass(frozen=True, slots=True)
class EnumDescriptor:
    """Describes an enum type with its ordered values."""

    name: str
    values: tuple[EnumValue, ...]
    _by_name: dict[str, int] = field(init=False, repr=False, compare=False, hash=False)
    _by_number: dict[int, int] = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))
        if not self.values:
            raise SchemaError(f"enum {self.name} has no values")
        names = [v.name for v in self.values]
        numbers = [v.number for v in self.values]
        _check_unique(f"enum {self.name}", "value name", names)
        _check_unique(f"enum {self.name}", "value number", numbers)
        object.__setattr__(self, "_by_name", _index(names))
        object.__setattr__(self, "_by_number", _index(numbers))

    def index_of_name(self, name: str) -> int | None:
        return self._by_name.get(name)

    def index_of_number(self, number: int) -> int | None:
        return self._by_number.get(number)


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Describes one field of a message."""

    name: str
    number: int
    cardinality: Cardinality
    type: "FieldType"

    def __post_init__(self) -> None:
        if self.number < 1:
            raise SchemaError(f"field {self.name}: number must be positive, got {self.number}")

    @property
    def is_message(self) -> bool:
        return isinstance(self.type, MessageDescriptor)

    @property
    def is_enum(self) -> bool:
        return isinstance(self.type, EnumDescriptor)

    @property
    def type_name(self) -> str:
        """The name of the field's type as written in a schema."""
        if isinstance(self.type, ScalarKind):
            return self.type.value
        return self.type.name


@dataclass(frozen=True, slots=True)
class MessageDescriptor:
    """Describes a message type with its fields in declaration order.

    The position of a field in ``fields`` is the slot its value occupies in a
    decoded message, regardless of the order fields arrive in.
    """

    name: str
    fields: tuple[FieldDescriptor, ...]
    _by_name: dict[str, int] = field(init=False, repr=False, compare=False, hash=False)
    _by_number: dict[int, int] = field(init=False, repr=False, compare=False, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))
        names = [f.name for f in self.fields]
        numbers = [f.number for f in self.fields]
        _check_unique(f"message {self.name}", "field name", names)
        _check_unique(f"message {self.name}", "field number", numbers)
        object.__setattr__(self, "_by_name", _index(names))
        object.__setattr__(self, "_by_number", _index(numbers))

    def index_of_name(self, name: str) -> int | None:
        return self._by_name.get(name)

    def index_of_number(self, number: int) -> int | None:
        return self._by_number.get(number)


FieldType = ScalarKind | EnumDescriptor | MessageDescriptor


@dataclass(frozen=True)
class Schema:
    """A parsed schema file.

    Messages and enums are keyed by their name qualified with any enclosing
    messages (``Outer.Inner``), but without the package.
    """

    syntax: str
    package: str | None
    messages: dict[str, MessageDescriptor]
    enums: dict[str, EnumDescriptor]

    def _local_name(self, name: str) -> str:
        name = name.lstrip(".")
        if self.package and name.startswith(self.package + "."):
            return name[len(self.package) + 1 :]
        return name

    def message(self, name: str) -> MessageDescriptor:
        """Look up a message descriptor by (optionally package-qualified) name."""
        local = self._local_name(name)
        if local not in self.messages:
            raise SchemaError(f"No message named {name}")
        return self.messages[local]

    def enum(self, name: str) -> EnumDescriptor:
        """Look up an enum descriptor by (optionally package-qualified) name."""
        local = self._local_name(name)
        if local not in self.enums:
            raise SchemaError(f"No enum named {name}")
        return self.enums[local]
