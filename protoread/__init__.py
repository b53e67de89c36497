"""protoread - Schema-driven Protocol Buffer message deserialization."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("protoread")
except PackageNotFoundError:
    __version__ = "(local)"
