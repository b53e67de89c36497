"""Framings for concrete input formats."""

from .mapping import MappingFormatError as MappingFormatError
from .mapping import MappingFraming as MappingFraming
from .text import TextFormatError as TextFormatError
from .text import TextFraming as TextFraming
from .wire import WireFormatError as WireFormatError
from .wire import WireFraming as WireFraming
