"""
granita: an asyncio HTTP request library built around middleware.

Requests are plain objects, started explicitly and executed by a transport
(httpx, or `XMLHttpRequest` under Pyodide) behind a composable middleware
chain.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .body import Body, Bytes, Data, Empty, Stream, Text
from .client import build, defaults, delete, fetch, get, head, patch, post, put, request
from .cookies import CookieJar, MemoryCookieJar
from .exceptions import (
    BlockedError,
    BodyError,
    CSPError,
    ErrorCode,
    GranitaError,
    InvalidURLError,
    MaxRedirectsError,
    MiddlewareError,
    ParseError,
    RequestAbortedError,
    RequestError,
    RequestTimeoutError,
    ResponseTypeError,
    StringifyError,
    UnavailableError,
)
from .headers import Headers
from .lifecycle import RequestState
from .models import RequestJSON, ResponseJSON
from .pipeline import compose
from .plugins import content_encoding, content_length, parse, stringify, user_agent
from .policies import RedirectOptions, RedirectPolicy
from .redirects import follow_redirects
from .request import Request, RequestOptions
from .response import Response
from .transports import (
    HttpTransport,
    HttpTransportConfig,
    XhrTransport,
    XhrTransportConfig,
    create_transport,
)
from .types import Middleware, Transport

__all__ = [
    "__version__",
    # Entities
    "Request",
    "RequestOptions",
    "RequestState",
    "Response",
    "Headers",
    "RequestJSON",
    "ResponseJSON",
    # Bodies
    "Body",
    "Bytes",
    "Data",
    "Empty",
    "Stream",
    "Text",
    # Factories
    "build",
    "defaults",
    "delete",
    "fetch",
    "get",
    "head",
    "patch",
    "post",
    "put",
    "request",
    # Middleware
    "Middleware",
    "compose",
    "content_encoding",
    "content_length",
    "follow_redirects",
    "parse",
    "stringify",
    "user_agent",
    "CookieJar",
    "MemoryCookieJar",
    "RedirectOptions",
    "RedirectPolicy",
    # Transports
    "Transport",
    "HttpTransport",
    "HttpTransportConfig",
    "XhrTransport",
    "XhrTransportConfig",
    "create_transport",
    # Errors
    "ErrorCode",
    "GranitaError",
    "MiddlewareError",
    "RequestError",
    "RequestAbortedError",
    "RequestTimeoutError",
    "InvalidURLError",
    "UnavailableError",
    "MaxRedirectsError",
    "ParseError",
    "StringifyError",
    "CSPError",
    "ResponseTypeError",
    "BodyError",
    "BlockedError",
]
