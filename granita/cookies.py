"""
Cookie persistence.

`cookies(jar)` sends matching cookies with each request and stores every
`Set-Cookie` header the response carries. Installed inside the redirect loop,
it runs once per hop, so cookies set by a redirect response reach the next
location.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import httpx

from .types import Middleware, Next

if TYPE_CHECKING:
    from .request import Request
    from .response import Response

logger = logging.getLogger(__name__)


@runtime_checkable
class CookieJar(Protocol):
    async def get_cookie_string(self, url: str) -> str: ...

    async def set_cookie(self, cookie: str, url: str, *, ignore_error: bool = True) -> None: ...


class MemoryCookieJar:
    """
    In-memory jar backed by `httpx.Cookies`.

    Domain, path, expiry and secure matching follow the standard library
    cookie policy that httpx wraps.
    """

    def __init__(self, cookies: httpx.Cookies | None = None):
        self.cookies = cookies if cookies is not None else httpx.Cookies()

    async def get_cookie_string(self, url: str) -> str:
        request = httpx.Request("GET", url)
        self.cookies.set_cookie_header(request)
        return request.headers.get("Cookie", "")

    async def set_cookie(self, cookie: str, url: str, *, ignore_error: bool = True) -> None:
        request = httpx.Request("GET", url)
        response = httpx.Response(200, headers=[("Set-Cookie", cookie)], request=request)
        self.cookies.extract_cookies(response)

        name = cookie.split(";", 1)[0].split("=", 1)[0].strip()
        if any(stored.name == name for stored in self.cookies.jar):
            return
        if not ignore_error:
            raise ValueError(f'Cookie "{name}" was rejected for {url}')
        logger.warning(f'Ignoring cookie "{name}" rejected for {url}')

    def __len__(self) -> int:
        return len(self.cookies.jar)


def cookies(jar: CookieJar) -> Middleware:
    """Attach cookies from `jar` and persist the ones the response sets."""

    async def middleware(req: Request, next: Next) -> Response:
        previous = req.get("Cookie")
        cookie_string = await jar.get_cookie_string(req.url)
        if cookie_string:
            req.set("Cookie", f"{previous}; {cookie_string}" if previous else cookie_string)

        response = await next()

        for cookie in response.headers.get_all("Set-Cookie"):
            await jar.set_cookie(cookie, req.url, ignore_error=True)
        return response

    return middleware
