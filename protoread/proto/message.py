"""Decoded message values."""

import base64
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from ..schema.types import Cardinality, FieldDescriptor, MessageDescriptor


@dataclass(frozen=True, slots=True)
class ParsedMessage:
    """A fully decoded message.

    ``values`` holds one slot per field of ``descriptor``, in declaration
    order. A required field's slot holds its value, an optional field's slot
    holds its value or ``None`` when absent, and a repeated field's slot holds
    a list in arrival order. Enum values are the index of the selected value
    in the field's ``EnumDescriptor``. Nested messages are ``ParsedMessage``
    instances.

    Example:
        person = deserialize(person_descriptor, framing)
        person["name"]   # "Ann"
        person[2]        # ["x", "y"]
    """

    descriptor: MessageDescriptor
    values: tuple[Any, ...]

    def __post_init__(self) -> None:
        if len(self.values) != len(self.descriptor.fields):
            raise ValueError(
                f"{self.descriptor.name} has {len(self.descriptor.fields)} fields, "
                f"got {len(self.values)} values"
            )

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, key: str | int) -> Any:
        if isinstance(key, str):
            index = self.descriptor.index_of_name(key)
            if index is None:
                raise KeyError(key)
            return self.values[index]
        return self.values[key]

    def __iter__(self) -> Iterator[tuple[FieldDescriptor, Any]]:
        return iter(zip(self.descriptor.fields, self.values))

    def to_dict(self, *, bytes_as_base64: bool = False) -> dict[str, Any]:
        """Convert to plain Python data keyed by field name.

        Enum values become their value names and nested messages become
        dicts. Absent optional fields map to ``None``.
        """
        result: dict[str, Any] = {}
        for field, value in self:
            if field.cardinality == Cardinality.REPEATED:
                result[field.name] = [_plain(field, v, bytes_as_base64) for v in value]
            elif value is None:
                result[field.name] = None
            else:
                result[field.name] = _plain(field, value, bytes_as_base64)
        return result


def _plain(field: FieldDescriptor, value: Any, bytes_as_base64: bool) -> Any:
    if isinstance(value, ParsedMessage):
        return value.to_dict(bytes_as_base64=bytes_as_base64)
    if field.is_enum:
        return field.type.values[value].name
    if bytes_as_base64 and isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    return value
