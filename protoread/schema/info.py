"""Summary information for schema messages."""

from dataclasses import dataclass

from dataclasses_json import DataClassJsonMixin

from .types import Cardinality, MessageDescriptor, Schema


@dataclass
class FieldInfo(DataClassJsonMixin):
    """Summary of one message field."""

    name: str
    number: int
    cardinality: str
    type: str
    kind: str  # scalar, enum or message


@dataclass
class MessageInfo(DataClassJsonMixin):
    """Summary of one message type."""

    name: str
    fields: list[FieldInfo]
    required_count: int
    depth: int  # Deepest nesting of message values, 1 for a flat message


def message_depth(descriptor: MessageDescriptor, _cache: dict[str, int] | None = None) -> int:
    """Calculate the deepest chain of nested messages below a message type."""
    cache = _cache if _cache is not None else {}
    if descriptor.name in cache:
        return cache[descriptor.name]

    depth = 1 + max(
        (message_depth(f.type, cache) for f in descriptor.fields if f.is_message),
        default=0,
    )
    cache[descriptor.name] = depth
    return depth


def describe_message(
    descriptor: MessageDescriptor, _cache: dict[str, int] | None = None
) -> MessageInfo:
    """Summarize a message descriptor."""
    fields = []
    for f in descriptor.fields:
        if f.is_message:
            kind = "message"
        elif f.is_enum:
            kind = "enum"
        else:
            kind = "scalar"
        fields.append(
            FieldInfo(
                name=f.name,
                number=f.number,
                cardinality=f.cardinality.value,
                type=f.type_name,
                kind=kind,
            )
        )

    return MessageInfo(
        name=descriptor.name,
        fields=fields,
        required_count=sum(1 for f in descriptor.fields if f.cardinality == Cardinality.REQUIRED),
        depth=message_depth(descriptor, _cache),
    )


def describe_schema(schema: Schema) -> list[MessageInfo]:
    """Summarize every message in a schema, in declaration order."""
    cache: dict[str, int] = {}
    return [describe_message(m, cache) for m in schema.messages.values()]
