"""Schema-driven message deserialization.

One algorithm reads every message type: fields are accumulated in arrival
order against the message descriptor, then grouped and reduced per field
according to its cardinality. Nested messages are read by recursing with the
nested descriptor.
"""

import logging
from enum import Enum, auto
from typing import Any, NoReturn

from ..schema.types import Cardinality, EnumDescriptor, FieldDescriptor, MessageDescriptor
from .errors import (
    DeserializationError,
    NoEnumValueWithName,
    NoEnumValueWithNumber,
    NoFieldWithName,
    NoFieldWithNumber,
    NoValueForRequiredField,
)
from .framing import END_OF_MESSAGE, ByName, ByNumber, Framing
from .message import ParsedMessage

logger = logging.getLogger(__name__)


def _report(framing: Framing, error: DeserializationError) -> NoReturn:
    framing.report_error(error)
    # report_error must not return; never let the engine carry on if it does
    raise error


class FieldAccumulator:
    """Collect the (field index, value) pairs of one message level."""

    def __init__(self, assembler: "MessageAssembler", descriptor: MessageDescriptor) -> None:
        self._assembler = assembler
        self._framing = assembler.framing
        self.descriptor = descriptor
        self.entries: list[tuple[int, Any]] = []

    def step(self) -> bool:
        """Read one field. Returns False once the message has ended."""
        if self._framing.is_at_message_end():
            return False

        identity = self._framing.next_field_identity()
        if identity is END_OF_MESSAGE:
            return False

        index = self._resolve_field(identity)
        field = self.descriptor.fields[index]
        self.entries.append((index, self._read_value(field)))
        return True

    def _resolve_field(self, identity: ByName | ByNumber) -> int:
        if isinstance(identity, ByName):
            index = self.descriptor.index_of_name(identity.name)
            if index is None:
                _report(self._framing, NoFieldWithName(self.descriptor.name, identity.name))
        else:
            index = self.descriptor.index_of_number(identity.number)
            if index is None:
                _report(self._framing, NoFieldWithNumber(self.descriptor.name, identity.number))
        return index

    def _read_value(self, field: FieldDescriptor) -> Any:
        if isinstance(field.type, MessageDescriptor):
            self._framing.enter_nested_message()
            return self._assembler.read(field.type)
        if isinstance(field.type, EnumDescriptor):
            return resolve_enum(self._framing, field.type)
        return self._framing.decode_scalar(field.type)


def resolve_enum(framing: Framing, enum: EnumDescriptor) -> int:
    """Read an enum identity and return the index of the value it selects."""
    identity = framing.next_enum_identity()
    if isinstance(identity, ByName):
        index = enum.index_of_name(identity.name)
        if index is None:
            _report(framing, NoEnumValueWithName(enum.name, identity.name))
    else:
        index = enum.index_of_number(identity.number)
        if index is None:
            _report(framing, NoEnumValueWithNumber(enum.name, identity.number))
    return index


def resolve_cardinality(
    framing: Framing, descriptor: MessageDescriptor, entries: list[tuple[int, Any]]
) -> ParsedMessage:
    """Group accumulated values per field and reduce them by cardinality."""
    groups: list[list[Any]] = [[] for _ in descriptor.fields]
    for index, value in entries:
        groups[index].append(value)

    values = []
    for field, group in zip(descriptor.fields, groups):
        if field.cardinality == Cardinality.REPEATED:
            values.append(group)
        elif group:
            # Last occurrence wins for singular fields
            values.append(group[-1])
        elif field.cardinality == Cardinality.REQUIRED:
            _report(framing, NoValueForRequiredField(descriptor.name, field.name))
        else:
            values.append(None)

    return ParsedMessage(descriptor=descriptor, values=tuple(values))


class _State(Enum):
    READING_FIELDS = auto()
    DONE = auto()


class MessageAssembler:
    """Read whole messages from a framing, recursing into nested messages."""

    def __init__(self, framing: Framing) -> None:
        self.framing = framing
        self._level = 0

    def read(self, descriptor: MessageDescriptor) -> ParsedMessage:
        """Read one message, from its first field to its end."""
        logger.debug("Reading %s at level %d", descriptor.name, self._level)
        accumulator = FieldAccumulator(self, descriptor)

        self._level += 1
        try:
            state = _State.READING_FIELDS
            while state is _State.READING_FIELDS:
                if not accumulator.step():
                    state = _State.DONE
        finally:
            self._level -= 1

        message = resolve_cardinality(self.framing, descriptor, accumulator.entries)
        logger.debug(
            "Finished %s with %d field occurrences", descriptor.name, len(accumulator.entries)
        )
        return message


def deserialize(descriptor: MessageDescriptor, framing: Framing) -> ParsedMessage:
    """Deserialize a message of the given type from a framing.

    Args:
        descriptor: The message type to read.
        framing: A fresh framing positioned at the start of the message.

    Returns:
        The fully decoded message.

    Raises:
        DeserializationError: A field or enum value could not be resolved, or
            a required field was missing.
        FramingError: The framing rejected its input.
    """
    return MessageAssembler(framing).read(descriptor)
