"""Tests for the JSON-style mapping framing."""

import json
import math

import pytest

from protoread.formats import mapping
from protoread.formats.mapping import MappingFormatError
from protoread.proto import NoEnumValueWithName, NoFieldWithName, NoValueForRequiredField
from protoread.schema import parse

SCHEMA = """
syntax = "proto3";

message Values {
    double real = 1;
    bytes raw = 2;
    bool flag = 3;
    uint32 count = 4;
    int64 big = 5;
    repeated sint32 deltas = 6;
}
"""


@pytest.fixture
def values():
    return parse(SCHEMA).message("Values")


def describe_decode():
    def reads_a_person(expect, person, data_dir):
        with open(f"{data_dir}/person.json", encoding="utf-8") as f:
            message = mapping.decode(person, json.load(f))
        expect(message.to_dict()) == {
            "name": "Ann",
            "age": 30,
            "tag": ["x", "y"],
            "role": "ADMIN",
            "address": {"city": "Oslo", "street": None},
        }

    def reads_fields_by_number(expect, person):
        message = mapping.decode(person, {"1": "Ann", 2: 41, "4": 1})
        expect(message.to_dict()["age"]) == 41
        expect(message.to_dict()["role"]) == "ADMIN"

    def skips_null_values(expect, person):
        message = mapping.decode(person, {"name": "Ann", "age": None, "address": None})
        expect(message["age"]) == None
        expect(message["address"]) == None

    def reads_numeric_strings_and_integral_floats(expect, values):
        message = mapping.decode(values, {"count": "12", "big": 3.0, "deltas": [-1, "-2"]})
        expect(message["count"]) == 12
        expect(message["big"]) == 3
        expect(message["deltas"]) == [-1, -2]

    def reads_special_floats(expect, values):
        expect(mapping.decode(values, {"real": "-Infinity"})["real"]) == -math.inf
        expect(math.isnan(mapping.decode(values, {"real": "NaN"})["real"])) == True
        expect(mapping.decode(values, {"real": 2})["real"]) == 2.0

    def reads_base64_in_either_alphabet(expect, values):
        expect(mapping.decode(values, {"raw": "/++/"})["raw"]) == b"\xff\xef\xbf"
        expect(mapping.decode(values, {"raw": "_--_"})["raw"]) == b"\xff\xef\xbf"
        expect(mapping.decode(values, {"raw": "AP8"})["raw"]) == b"\x00\xff"
        expect(mapping.decode(values, {"raw": b"\x01"})["raw"]) == b"\x01"

    def reads_bools(expect, values):
        expect(mapping.decode(values, {"flag": True})["flag"]) == True


def describe_errors():
    def reject_non_mapping_input(expect, person):
        with pytest.raises(MappingFormatError) as exinfo:
            mapping.decode(person, ["Ann"])
        expect(str(exinfo.value)) == "$: expected an object, got list"

    def reject_non_mapping_messages(expect, person):
        with pytest.raises(MappingFormatError) as exinfo:
            mapping.decode(person, {"name": "Ann", "address": "Oslo"})
        expect(str(exinfo.value)) == "$.address: expected an object, got 'Oslo'"

    def reject_wrong_value_types(expect, person):
        with pytest.raises(MappingFormatError) as exinfo:
            mapping.decode(person, {"name": "Ann", "tag": ["x", 5]})
        expect(str(exinfo.value)) == "$.tag[1]: expected a string, got 5"

    def reject_bools_for_integers(expect, values):
        with pytest.raises(MappingFormatError) as exinfo:
            mapping.decode(values, {"count": True})
        expect(str(exinfo.value)).includes("expected an integer, got True")

    def reject_integers_for_bools(expect, values):
        with pytest.raises(MappingFormatError) as exinfo:
            mapping.decode(values, {"flag": 1})
        expect(str(exinfo.value)).includes("expected true or false")

    def reject_fractional_integers(expect, values):
        with pytest.raises(MappingFormatError):
            mapping.decode(values, {"big": 1.5})

    def reject_values_out_of_range(expect, values):
        with pytest.raises(MappingFormatError) as exinfo:
            mapping.decode(values, {"count": -1})
        expect(str(exinfo.value)) == "$.count: -1 is out of range for uint32"

    def reject_invalid_base64(expect, values):
        with pytest.raises(MappingFormatError) as exinfo:
            mapping.decode(values, {"raw": "a"})
        expect(str(exinfo.value)).includes("invalid base64")

    def report_unknown_fields_with_their_path(expect, person):
        with pytest.raises(NoFieldWithName) as exinfo:
            mapping.decode(person, {"name": "Ann", "address": {"city": "x", "zip": "1"}})
        expect(exinfo.value.owner) == "Person.Address"
        expect(exinfo.value.context) == "at $.address.zip"

    def report_unknown_enum_names(expect, person):
        with pytest.raises(NoEnumValueWithName) as exinfo:
            mapping.decode(person, {"name": "Ann", "role": "OWNER"})
        expect(str(exinfo.value)) == "at $.role: enum Role has no value named 'OWNER'"

    def report_missing_fields_at_the_message_path(expect, person):
        with pytest.raises(NoValueForRequiredField) as exinfo:
            mapping.decode(person, {"name": "Ann", "address": {}})
        expect(exinfo.value.context) == "at $.address"

    def treat_non_ascii_digit_keys_as_names(expect, person):
        with pytest.raises(NoFieldWithName) as exinfo:
            mapping.decode(person, {"name": "Ann", "²": 1})
        expect(exinfo.value.name) == "²"
        expect(exinfo.value.context) == "at $.²"

    def reject_integer_strings_with_underscores_or_spaces(expect, values):
        for text in ["1_000", " 12", "12 ", "0x10", ""]:
            with pytest.raises(MappingFormatError) as exinfo:
                mapping.decode(values, {"count": text})
            expect(str(exinfo.value)) == f"$.count: expected an integer, got {text!r}"

    def reject_integers_too_large_for_a_double(expect, values):
        with pytest.raises(MappingFormatError) as exinfo:
            mapping.decode(values, {"real": 10**400})
        expect(str(exinfo.value)) == "$.real: integer is out of range for a double"
