"""protoread schema model and schema language parser."""

from .info import FieldInfo as FieldInfo
from .info import MessageInfo as MessageInfo
from .info import describe_schema as describe_schema
from .parser import parse as parse
from .types import *
