"""Transports: the execution strategy behind `Request`."""

from __future__ import annotations

import sys
from typing import Any

from .http import DEFAULT_USER_AGENT, HttpTransport, HttpTransportConfig
from .xhr import XhrTransport, XhrTransportConfig

__all__ = [
    "DEFAULT_USER_AGENT",
    "HttpTransport",
    "HttpTransportConfig",
    "XhrTransport",
    "XhrTransportConfig",
    "create_transport",
]


def create_transport(**options: Any) -> HttpTransport | XhrTransport:
    """Default transport for the running platform: XHR under Pyodide, httpx elsewhere."""
    if sys.platform == "emscripten":
        return XhrTransport(**options)
    return HttpTransport(**options)
