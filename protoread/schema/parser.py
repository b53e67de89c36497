"""Schema definition parser using Lark."""

import os
from dataclasses import dataclass
from typing import Any, TypeVar

from lark import Lark, Token
from lark.exceptions import LarkError, VisitError
from lark.visitors import Discard, Transformer

from .types import (
    SCALAR_KINDS,
    Cardinality,
    EnumDescriptor,
    EnumValue,
    FieldDescriptor,
    FieldType,
    MessageDescriptor,
    ScalarKind,
    Schema,
    SchemaError,
)

_g_parser: Lark | None = None


@dataclass
class _Syntax:
    value: str


@dataclass
class _Package:
    value: str


@dataclass
class _Label:
    value: str


@dataclass
class _TypeRef:
    name: str
    absolute: bool


@dataclass
class _FieldDef:
    label: str | None
    type_ref: _TypeRef
    name: str
    number: int


@dataclass
class _EnumDef:
    name: str
    values: list[EnumValue]


@dataclass
class _MessageDef:
    name: str
    fields: list[_FieldDef]
    messages: list["_MessageDef"]
    enums: list[_EnumDef]


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[TFilter]) -> TFilter | None:
    filtered = _filter(args, class_type)
    if len(filtered) > 1:
        raise SchemaError(f"Found more than one {class_type.__name__.lstrip('_').lower()}")
    return filtered[0] if filtered else None


def _unquote(token: Token) -> str:
    return str(token)[1:-1]


def _discard(self: Transformer, args: list[Any]) -> Any:
    return Discard


class TreeTransformer(Transformer):
    """Transform parse tree into schema definitions."""

    import_ = _discard
    option = _discard
    reserved = _discard
    field_options = _discard

    def start(self, args: list[Any]) -> list[Any]:
        return args

    def syntax(self, args: list[Any]) -> _Syntax:
        return _Syntax(value=_unquote(args[0]))

    def package(self, args: list[Any]) -> _Package:
        return _Package(value=args[0])

    def full_ident(self, args: list[Any]) -> str:
        return ".".join(str(a) for a in args)

    def relative_type(self, args: list[Any]) -> _TypeRef:
        return _TypeRef(name=args[0], absolute=False)

    def absolute_type(self, args: list[Any]) -> _TypeRef:
        return _TypeRef(name=args[0], absolute=True)

    def label(self, args: list[Any]) -> _Label:
        return _Label(value=str(args[0]))

    def field(self, args: list[Any]) -> _FieldDef:
        label = _find_one(args, _Label)
        name, number = _filter(args, Token)
        return _FieldDef(
            label=label.value if label else None,
            type_ref=_find_one(args, _TypeRef),
            name=str(name),
            number=int(number),
        )

    def enum_value(self, args: list[Any]) -> EnumValue:
        name, number = _filter(args, Token)
        return EnumValue(name=str(name), number=int(number))

    def enum(self, args: list[Any]) -> _EnumDef:
        return _EnumDef(name=str(args[0]), values=_filter(args, EnumValue))

    def message(self, args: list[Any]) -> _MessageDef:
        return _MessageDef(
            name=str(args[0]),
            fields=_filter(args, _FieldDef),
            messages=_filter(args, _MessageDef),
            enums=_filter(args, _EnumDef),
        )


class _Resolver:
    """Resolve type references and build immutable descriptors."""

    def __init__(self, syntax: str, package: str | None, items: list[Any]):
        self.syntax = syntax
        self.package = package
        self.defs: dict[str, _MessageDef | _EnumDef] = {}
        self.messages: dict[str, MessageDescriptor] = {}
        self.enums: dict[str, EnumDescriptor] = {}
        self._building: list[str] = []

        for item in items:
            if isinstance(item, (_MessageDef, _EnumDef)):
                self._register(item, "")

    def _register(self, item: _MessageDef | _EnumDef, scope: str) -> None:
        full_name = f"{scope}.{item.name}" if scope else item.name
        if full_name in self.defs:
            raise SchemaError(f"{full_name} is already defined")
        self.defs[full_name] = item

        if isinstance(item, _MessageDef):
            for nested in [*item.messages, *item.enums]:
                self._register(nested, full_name)

    def lookup(self, ref: _TypeRef, scope: str) -> str:
        """Find the fully qualified name a type reference points at."""
        name = ref.name
        if self.package and name.startswith(self.package + "."):
            stripped = name[len(self.package) + 1 :]
            if ref.absolute or stripped in self.defs:
                name = stripped

        if ref.absolute:
            if name in self.defs:
                return name
            raise SchemaError(f"Unknown type .{ref.name}")

        # Innermost scope first, the way protoc resolves names
        parts = scope.split(".") if scope else []
        for i in range(len(parts), -1, -1):
            prefix = ".".join(parts[:i])
            candidate = f"{prefix}.{name}" if prefix else name
            if candidate in self.defs:
                return candidate

        raise SchemaError(f"Unknown type {ref.name} referenced from {scope}")

    def build(self) -> Schema:
        for full_name, item in self.defs.items():
            if isinstance(item, _MessageDef):
                self.build_message(full_name)
            else:
                self.build_enum(full_name)

        # Dependencies may have been built first, restore declaration order
        return Schema(
            syntax=self.syntax,
            package=self.package,
            messages={name: self.messages[name] for name in self.defs if name in self.messages},
            enums={name: self.enums[name] for name in self.defs if name in self.enums},
        )

    def build_enum(self, full_name: str) -> EnumDescriptor:
        if full_name not in self.enums:
            item = self.defs[full_name]
            assert isinstance(item, _EnumDef)
            self.enums[full_name] = EnumDescriptor(name=full_name, values=tuple(item.values))
        return self.enums[full_name]

    def build_message(self, full_name: str) -> MessageDescriptor:
        if full_name in self.messages:
            return self.messages[full_name]
        if full_name in self._building:
            chain = " -> ".join([*self._building[self._building.index(full_name) :], full_name])
            raise SchemaError(f"Recursive message types are not supported: {chain}")

        item = self.defs[full_name]
        assert isinstance(item, _MessageDef)

        self._building.append(full_name)
        try:
            fields = tuple(self.build_field(f, full_name) for f in item.fields)
        finally:
            self._building.pop()

        descriptor = MessageDescriptor(name=full_name, fields=fields)
        self.messages[full_name] = descriptor
        return descriptor

    def build_field(self, field_def: _FieldDef, scope: str) -> FieldDescriptor:
        if field_def.label is None:
            cardinality = Cardinality.OPTIONAL
        elif field_def.label == "required" and self.syntax == "proto3":
            raise SchemaError(
                f"{scope}.{field_def.name}: required fields are not allowed in proto3"
            )
        else:
            cardinality = Cardinality(field_def.label)

        field_type: FieldType
        if not field_def.type_ref.absolute and field_def.type_ref.name in SCALAR_KINDS:
            field_type = ScalarKind(field_def.type_ref.name)
        else:
            target = self.lookup(field_def.type_ref, scope)
            if isinstance(self.defs[target], _EnumDef):
                field_type = self.build_enum(target)
            else:
                field_type = self.build_message(target)

        return FieldDescriptor(
            name=field_def.name,
            number=field_def.number,
            cardinality=cardinality,
            type=field_type,
        )


def parse(text: str) -> Schema:
    """Parse a schema definition."""
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/schema.lark", encoding="utf-8") as f:
            grammar = f.read()

        _g_parser = Lark(grammar, parser="lalr")

    try:
        tree = _g_parser.parse(text)
    except LarkError as e:
        raise SchemaError(f"Invalid schema: {e}") from e

    try:
        items = TreeTransformer().transform(tree)
    except VisitError as e:
        raise e.orig_exc from None

    syntax = _find_one(items, _Syntax)
    package = _find_one(items, _Package)
    syntax_value = syntax.value if syntax else "proto2"
    if syntax_value not in ("proto2", "proto3"):
        raise SchemaError(f"Unsupported syntax {syntax_value!r}")

    resolver = _Resolver(syntax_value, package.value if package else None, items)
    return resolver.build()
