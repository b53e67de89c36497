"""Command-line interface for protoread."""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING, Any, NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from protoread.formats import mapping, text, wire
from protoread.proto import DEFAULT_MAX_DEPTH, DeserializationError, FramingError
from protoread.schema import SchemaError, describe_schema, parse
from protoread.schema.types import Cardinality

if TYPE_CHECKING:
    from protoread.proto import ParsedMessage
    from protoread.schema import MessageInfo

FORMATS = ("wire", "text", "json")

err_console = Console(stderr=True)


def _fail(message: str) -> NoReturn:
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}", highlight=False)
    sys.exit(1)


def _load_schema(schema_file: str):
    with open(schema_file, encoding="utf-8") as f:
        return parse(f.read())


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log decoding steps")
def cli(verbose: bool) -> None:
    """Schema-driven Protocol Buffer message decoder."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@cli.command()
@click.option("--schema", "-s", "schema_file", required=True, help="Schema definition file")
@click.option("--message", "-m", "message_name", required=True, help="Message type to decode")
@click.option(
    "--format",
    "-f",
    "input_format",
    type=click.Choice(FORMATS),
    default="wire",
    show_default=True,
    help="Input format",
)
@click.option("--input", "-i", "input_file", default="-", help="Input file, - for stdin")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option(
    "--max-depth",
    type=click.IntRange(min=1),
    default=DEFAULT_MAX_DEPTH,
    show_default=True,
    help="Maximum message nesting depth",
)
def decode(
    schema_file: str,
    message_name: str,
    input_format: str,
    input_file: str,
    output_json: bool,
    max_depth: int,
) -> None:
    """Decode a message and print it."""
    try:
        descriptor = _load_schema(schema_file).message(message_name)

        if input_format == "wire":
            mode, encoding = "rb", None
        else:
            mode, encoding = "r", "utf-8"
        with click.open_file(input_file, mode, encoding=encoding) as f:
            data = f.read()

        if input_format == "wire":
            message = wire.decode(descriptor, data, max_depth=max_depth)
        elif input_format == "text":
            message = text.decode(descriptor, data, max_depth=max_depth)
        else:
            message = mapping.decode(descriptor, json.loads(data), max_depth=max_depth)
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON: {e}")
    except UnicodeDecodeError as e:
        _fail(f"Invalid UTF-8 input at byte {e.start}: {e.reason}")
    except (DeserializationError, FramingError, SchemaError, OSError) as e:
        _fail(str(e))

    if output_json:
        print(json.dumps(message.to_dict(bytes_as_base64=True), indent=2))
    else:
        Console().print(_message_tree(message, message.descriptor.name))


@cli.command()
@click.option("--schema", "-s", "schema_file", required=True, help="Schema definition file")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(schema_file: str, output_json: bool) -> None:
    """Display the messages and fields of a schema."""
    try:
        schema = _load_schema(schema_file)
    except UnicodeDecodeError as e:
        _fail(f"Invalid UTF-8 in schema at byte {e.start}: {e.reason}")
    except (SchemaError, OSError) as e:
        _fail(str(e))

    messages = describe_schema(schema)

    if output_json:
        _output_json(messages, schema.package, list(schema.enums))
    else:
        _output_plain(messages, schema.package, list(schema.enums))


def _format_value(value: Any) -> str:
    if isinstance(value, bytes):
        return f"[magenta]{escape(repr(value))}[/magenta]"
    if isinstance(value, str):
        return f"[green]{escape(json.dumps(value))}[/green]"
    return f"[yellow]{value}[/yellow]"


def _message_tree(message: ParsedMessage, label: str) -> Tree:
    """Render a decoded message as a rich tree."""
    tree = Tree(f"[bold cyan]{label}[/bold cyan]")

    for field, value in message:
        values = value if field.cardinality == Cardinality.REPEATED else [value]
        for i, item in enumerate(values):
            name = f"{field.name}[{i}]" if field.cardinality == Cardinality.REPEATED else field.name
            if item is None:
                tree.add(f"{name}: [dim]absent[/dim]")
            elif field.is_message:
                tree.add(_message_tree(item, f"{name} ({field.type_name})"))
            elif field.is_enum:
                tree.add(f"{name}: [blue]{field.type.values[item].name}[/blue]")
            else:
                tree.add(f"{name}: {_format_value(item)}")

    return tree


def _output_json(messages: list[MessageInfo], package: str | None, enums: list[str]) -> None:
    """Output schema info as JSON."""
    data = {
        "package": package,
        "messages": [m.to_dict() for m in messages],
        "enums": enums,
    }
    print(json.dumps(data, indent=2))


def _output_plain(messages: list[MessageInfo], package: str | None, enums: list[str]) -> None:
    """Output schema info using rich text formatting."""
    console = Console()

    if package:
        console.print(f"[bold cyan]Package[/bold cyan] {package}")
        console.print()

    for message in messages:
        console.print(
            f"[bold cyan]{message.name}[/bold cyan] "
            f"[dim]({len(message.fields)} fields, depth {message.depth})[/dim]"
        )

        table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        table.add_column("#", style="yellow", justify="right")
        table.add_column("Name", style="white")
        table.add_column("Type", style="green")
        table.add_column("Cardinality", style="dim")

        for field in message.fields:
            table.add_row(str(field.number), field.name, field.type, field.cardinality)

        console.print(table)
        console.print()

    if enums:
        console.print("[bold cyan]Enums[/bold cyan]")
        for name in enums:
            console.print(f"  {name}")


def main() -> None:
    """Main entry point."""
    cli(auto_envvar_prefix="PROTOREAD")


if __name__ == "__main__":
    main()
