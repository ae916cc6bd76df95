"""Built-in middleware."""

from .common import PARSE_TYPES, ParseType, headers, parse, stringify
from .http import ACCEPT_ENCODING, content_encoding, content_length, user_agent

__all__ = [
    "ACCEPT_ENCODING",
    "PARSE_TYPES",
    "ParseType",
    "content_encoding",
    "content_length",
    "headers",
    "parse",
    "stringify",
    "user_agent",
]
