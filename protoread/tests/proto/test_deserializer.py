"""Tests for the format-independent deserializer."""

import pytest

from protoread.proto import (
    END_OF_MESSAGE,
    ByName,
    ByNumber,
    ErrorKind,
    Framing,
    NestingTooDeep,
    NoEnumValueWithName,
    NoEnumValueWithNumber,
    NoFieldWithName,
    NoFieldWithNumber,
    NoValueForRequiredField,
    deserialize,
)
from protoread.schema.types import (
    Cardinality,
    EnumDescriptor,
    EnumValue,
    FieldDescriptor,
    MessageDescriptor,
    ScalarKind,
)


class ScriptedFraming(Framing):
    """Serve a fixed list of (identity, value) events.

    A list value is a nested message with its own events. Enum fields carry a
    ``ByName`` or ``ByNumber`` as their value.
    """

    def __init__(self, events, max_depth=100):
        super().__init__(max_depth=max_depth)
        self._frames = [[list(events), 0]]
        self._value = None
        self.position = None
        self.steps = 0

    def is_at_message_end(self):
        frame = self._frames[-1]
        if frame[1] < len(frame[0]):
            return False
        if len(self._frames) > 1:
            self._frames.pop()
            self._pop_frame()
        return True

    def next_field_identity(self):
        frame = self._frames[-1]
        if frame[1] >= len(frame[0]):
            return END_OF_MESSAGE
        identity, self._value = frame[0][frame[1]]
        frame[1] += 1
        self.steps += 1
        self.position = f"event {self.steps}"
        return identity

    def enter_nested_message(self):
        self._push_frame()
        self._frames.append([list(self._value), 0])

    def next_enum_identity(self):
        return self._value

    def _current(self):
        return self._value

    decode_double = decode_float = _current
    decode_int32 = decode_int64 = decode_uint32 = decode_uint64 = _current
    decode_sint32 = decode_sint64 = _current
    decode_fixed32 = decode_fixed64 = decode_sfixed32 = decode_sfixed64 = _current
    decode_bool = decode_string = decode_bytes = _current

    def report_error(self, error):
        raise error.with_context(self.position or "start")


class SilentFraming(ScriptedFraming):
    def report_error(self, error):
        self.reported = error


ROLE = EnumDescriptor("Role", (EnumValue("MEMBER", 0), EnumValue("ADMIN", 7)))

PERSON = MessageDescriptor(
    "Person",
    (
        FieldDescriptor("name", 1, Cardinality.REQUIRED, ScalarKind.STRING),
        FieldDescriptor("age", 2, Cardinality.OPTIONAL, ScalarKind.INT32),
        FieldDescriptor("tag", 3, Cardinality.REPEATED, ScalarKind.STRING),
    ),
)


def nest(depth):
    """Build a chain of messages ``depth`` levels deep."""
    leaf = MessageDescriptor(
        f"Level{depth}", (FieldDescriptor("value", 1, Cardinality.REQUIRED, ScalarKind.INT64),)
    )
    descriptor = leaf
    for level in range(depth - 1, 0, -1):
        descriptor = MessageDescriptor(
            f"Level{level}",
            (FieldDescriptor("child", 1, Cardinality.OPTIONAL, descriptor),),
        )
    return descriptor


def nested_events(depth, value):
    events = [(ByNumber(1), value)]
    for _ in range(depth - 1):
        events = [(ByNumber(1), events)]
    return events


def describe_deserialize():
    def reads_a_person(expect):
        framing = ScriptedFraming(
            [
                (ByName("name"), "Ann"),
                (ByName("tag"), "x"),
                (ByName("age"), 30),
                (ByName("tag"), "y"),
            ]
        )
        person = deserialize(PERSON, framing)

        expect(person.to_dict()) == {"name": "Ann", "age": 30, "tag": ["x", "y"]}
        expect(person.values) == ("Ann", 30, ["x", "y"])

    def ignores_arrival_order_across_fields(expect):
        first = deserialize(
            PERSON, ScriptedFraming([(ByNumber(2), 1), (ByNumber(1), "a"), (ByNumber(3), "t")])
        )
        second = deserialize(
            PERSON, ScriptedFraming([(ByNumber(3), "t"), (ByNumber(1), "a"), (ByNumber(2), 1)])
        )
        expect(first) == second

    def accepts_names_and_numbers_interchangeably(expect):
        by_name = deserialize(PERSON, ScriptedFraming([(ByName("name"), "Bo")]))
        by_number = deserialize(PERSON, ScriptedFraming([(ByNumber(1), "Bo")]))
        expect(by_name) == by_number

    def leaves_absent_optional_fields_empty(expect):
        person = deserialize(PERSON, ScriptedFraming([(ByName("name"), "Cy")]))
        expect(person["age"]) == None
        expect(person["tag"]) == []

    def keeps_repeated_values_in_arrival_order(expect):
        tags = ["c", "a", "b", "a"]
        events = [(ByName("name"), "n")] + [(ByName("tag"), t) for t in tags]
        expect(deserialize(PERSON, ScriptedFraming(events))["tag"]) == tags

    def keeps_the_last_value_of_singular_fields(expect):
        person = deserialize(
            PERSON,
            ScriptedFraming(
                [(ByName("name"), "first"), (ByName("age"), 1), (ByName("name"), "last")]
            ),
        )
        expect(person["name"]) == "last"
        expect(person["age"]) == 1

    def reads_empty_messages(expect):
        empty = MessageDescriptor("Empty", ())
        message = deserialize(empty, ScriptedFraming([]))
        expect(len(message)) == 0

    def checks_every_scalar_kind(expect):
        fields = tuple(
            FieldDescriptor(kind.value, i + 1, Cardinality.OPTIONAL, kind)
            for i, kind in enumerate(ScalarKind)
        )
        descriptor = MessageDescriptor("AllTypes", fields)
        events = [(ByNumber(f.number), f"{f.name}-value") for f in fields]
        message = deserialize(descriptor, ScriptedFraming(events))
        expect(message["bytes"]) == "bytes-value"
        expect(message["sfixed64"]) == "sfixed64-value"


def describe_required_fields():
    def fail_when_missing(expect):
        with pytest.raises(NoValueForRequiredField) as exinfo:
            deserialize(PERSON, ScriptedFraming([(ByName("age"), 3)]))
        expect(exinfo.value.kind) == ErrorKind.NO_VALUE_FOR_REQUIRED_FIELD
        expect(exinfo.value.name) == "name"
        expect(exinfo.value.owner) == "Person"

    def fail_for_nested_messages(expect):
        inner = MessageDescriptor(
            "Inner", (FieldDescriptor("id", 1, Cardinality.REQUIRED, ScalarKind.UINT32),)
        )
        outer = MessageDescriptor(
            "Outer", (FieldDescriptor("inner", 1, Cardinality.OPTIONAL, inner),)
        )
        with pytest.raises(NoValueForRequiredField) as exinfo:
            deserialize(outer, ScriptedFraming([(ByName("inner"), [])]))
        expect(exinfo.value.owner) == "Inner"


def describe_unknown_fields():
    def fail_by_name(expect):
        with pytest.raises(NoFieldWithName) as exinfo:
            deserialize(PERSON, ScriptedFraming([(ByName("nickname"), "x")]))
        expect(exinfo.value.kind) == ErrorKind.NO_FIELD_WITH_NAME
        expect(exinfo.value.name) == "nickname"

    def fail_by_number(expect):
        with pytest.raises(NoFieldWithNumber) as exinfo:
            deserialize(PERSON, ScriptedFraming([(ByName("name"), "a"), (ByNumber(99), 1)]))
        expect(exinfo.value.kind) == ErrorKind.NO_FIELD_WITH_NUMBER
        expect(exinfo.value.number) == 99

    def carry_the_framing_context(expect):
        with pytest.raises(NoFieldWithNumber) as exinfo:
            deserialize(PERSON, ScriptedFraming([(ByName("name"), "a"), (ByNumber(99), 1)]))
        expect(exinfo.value.context) == "event 2"
        expect(str(exinfo.value)) == "event 2: message Person has no field numbered 99"

    def raise_even_if_the_framing_returns(expect):
        framing = SilentFraming([(ByName("nickname"), "x")])
        with pytest.raises(NoFieldWithName):
            deserialize(PERSON, framing)
        expect(framing.reported.name) == "nickname"

    def fail_when_a_number_is_given_as_a_name(expect):
        with pytest.raises(NoFieldWithName) as exinfo:
            deserialize(PERSON, ScriptedFraming([(ByName("name"), "a"), (ByName("1"), "b")]))
        expect(exinfo.value.name) == "1"


def describe_enums():
    @pytest.fixture
    def account():
        return MessageDescriptor(
            "Account",
            (
                FieldDescriptor("role", 1, Cardinality.OPTIONAL, ROLE),
                FieldDescriptor("history", 2, Cardinality.REPEATED, ROLE),
            ),
        )

    def resolve_to_value_indices(expect, account):
        message = deserialize(
            account,
            ScriptedFraming(
                [
                    (ByName("role"), ByNumber(7)),
                    (ByName("history"), ByName("ADMIN")),
                    (ByName("history"), ByNumber(0)),
                ]
            ),
        )
        expect(message["role"]) == 1
        expect(message["history"]) == [1, 0]
        expect(message.to_dict()) == {"role": "ADMIN", "history": ["ADMIN", "MEMBER"]}

    def fail_for_unknown_names(expect, account):
        with pytest.raises(NoEnumValueWithName) as exinfo:
            deserialize(account, ScriptedFraming([(ByName("role"), ByName("OWNER"))]))
        expect(exinfo.value.kind) == ErrorKind.NO_ENUM_VALUE_WITH_NAME
        expect(exinfo.value.owner) == "Role"
        expect(str(exinfo.value)).includes("enum Role has no value named 'OWNER'")

    def fail_for_unknown_numbers(expect, account):
        with pytest.raises(NoEnumValueWithNumber) as exinfo:
            deserialize(account, ScriptedFraming([(ByName("role"), ByNumber(3))]))
        expect(exinfo.value.kind) == ErrorKind.NO_ENUM_VALUE_WITH_NUMBER
        expect(exinfo.value.number) == 3

    def fail_when_a_number_is_given_as_a_name(expect, account):
        with pytest.raises(NoEnumValueWithName) as exinfo:
            deserialize(account, ScriptedFraming([(ByName("role"), ByName("7"))]))
        expect(exinfo.value.name) == "7"
        expect(str(exinfo.value)) == "event 1: enum Role has no value named '7'"


def describe_nested_messages():
    def read_several_levels_deep(expect):
        message = deserialize(nest(4), ScriptedFraming(nested_events(4, 42)))
        expect(message.to_dict()) == {"child": {"child": {"child": {"value": 42}}}}
        expect(message["child"]["child"]["child"]["value"]) == 42

    def continue_the_outer_message_afterwards(expect):
        point = MessageDescriptor(
            "Point",
            (
                FieldDescriptor("x", 1, Cardinality.REQUIRED, ScalarKind.SINT32),
                FieldDescriptor("y", 2, Cardinality.REQUIRED, ScalarKind.SINT32),
            ),
        )
        line = MessageDescriptor(
            "Line",
            (
                FieldDescriptor("points", 1, Cardinality.REPEATED, point),
                FieldDescriptor("label", 2, Cardinality.OPTIONAL, ScalarKind.STRING),
            ),
        )
        framing = ScriptedFraming(
            [
                (ByName("points"), [(ByName("x"), 1), (ByName("y"), 2)]),
                (ByName("label"), "diagonal"),
                (ByName("points"), [(ByName("y"), 4), (ByName("x"), 3)]),
            ]
        )
        message = deserialize(line, framing)
        expect(message.to_dict()) == {
            "points": [{"x": 1, "y": 2}, {"x": 3, "y": 4}],
            "label": "diagonal",
        }
        expect(framing.depth) == 0

    def stop_at_the_maximum_depth(expect):
        with pytest.raises(NestingTooDeep):
            deserialize(nest(5), ScriptedFraming(nested_events(5, 1), max_depth=3))

    def allow_exactly_the_maximum_depth(expect):
        message = deserialize(nest(4), ScriptedFraming(nested_events(4, 1), max_depth=3))
        expect(message["child"]["child"]["child"]["value"]) == 1
