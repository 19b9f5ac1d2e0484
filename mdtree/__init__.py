VERSION = (1,0,0)

from .parser import parse, ParseError
from .io import to_mermaid, to_ink
