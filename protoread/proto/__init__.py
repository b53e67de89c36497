"""protoread deserialization engine."""

from .deserializer import deserialize as deserialize
from .errors import DeserializationError as DeserializationError
from .errors import ErrorKind as ErrorKind
from .errors import NoEnumValueWithName as NoEnumValueWithName
from .errors import NoEnumValueWithNumber as NoEnumValueWithNumber
from .errors import NoFieldWithName as NoFieldWithName
from .errors import NoFieldWithNumber as NoFieldWithNumber
from .errors import NoValueForRequiredField as NoValueForRequiredField
from .framing import DEFAULT_MAX_DEPTH as DEFAULT_MAX_DEPTH
from .framing import END_OF_MESSAGE as END_OF_MESSAGE
from .framing import ByName as ByName
from .framing import ByNumber as ByNumber
from .framing import Framing as Framing
from .framing import FramingError as FramingError
from .framing import NestingTooDeep as NestingTooDeep
from .message import ParsedMessage as ParsedMessage
