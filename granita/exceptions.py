"""
Exception hierarchy.

Every failure of a request surfaces as a `RequestError` carrying a stable
machine readable `code`, a back-reference to the originating request, and the
underlying cause when there is one.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .request import Request


class ErrorCode(str, Enum):
    ABORT = "EABORT"
    TIMEOUT = "ETIMEOUT"
    INVALID = "EINVALID"
    UNAVAILABLE = "EUNAVAILABLE"
    MAX_REDIRECTS = "EMAXREDIRECTS"
    PARSE = "EPARSE"
    STRINGIFY = "ESTRINGIFY"
    CSP = "ECSP"
    TYPE = "ETYPE"
    BODY = "EBODY"
    BLOCKED = "EBLOCKED"


class GranitaError(Exception):
    """Base class for all errors raised by this package."""


class MiddlewareError(GranitaError):
    """Programmer error in how the middleware pipeline was used."""


class RequestError(GranitaError):
    code: str = "EUNKNOWN"

    def __init__(
        self,
        message: str,
        request: Request | None = None,
        *,
        code: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.request = request
        if code is not None:
            self.code = code
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r})"


class RequestAbortedError(RequestError):
    code = ErrorCode.ABORT.value


class RequestTimeoutError(RequestAbortedError):
    code = ErrorCode.TIMEOUT.value


class InvalidURLError(RequestError):
    code = ErrorCode.INVALID.value


class UnavailableError(RequestError):
    code = ErrorCode.UNAVAILABLE.value


class MaxRedirectsError(RequestError):
    code = ErrorCode.MAX_REDIRECTS.value


class ParseError(RequestError):
    code = ErrorCode.PARSE.value


class StringifyError(RequestError):
    code = ErrorCode.STRINGIFY.value


class CSPError(RequestError):
    code = ErrorCode.CSP.value


class ResponseTypeError(RequestError):
    code = ErrorCode.TYPE.value


class BodyError(RequestError):
    code = ErrorCode.BODY.value


class BlockedError(RequestError):
    code = ErrorCode.BLOCKED.value


_ERRORS_BY_CODE: dict[str, type[RequestError]] = {
    cls.code: cls
    for cls in (
        RequestAbortedError,
        RequestTimeoutError,
        InvalidURLError,
        UnavailableError,
        MaxRedirectsError,
        ParseError,
        StringifyError,
        CSPError,
        ResponseTypeError,
        BodyError,
        BlockedError,
    )
}


def error_for_code(
    message: str,
    code: str | ErrorCode,
    request: Request | None = None,
    cause: BaseException | None = None,
) -> RequestError:
    """Build the `RequestError` subclass registered for `code`."""
    value = code.value if isinstance(code, ErrorCode) else code
    cls = _ERRORS_BY_CODE.get(value)
    if cls is None:
        return RequestError(message, request, code=value, cause=cause)
    return cls(message, request, cause=cause)
