"""
HTTP transport built on httpx.

Each logical request is sent through an `httpx.AsyncClient` in streaming mode,
so the response is handed back as soon as headers arrive and the body is read
lazily. Redirects are followed here, not by httpx, so every hop passes through
the cookie jar and reports progress on the original request.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import ssl
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from ..body import Bytes, Data, Empty, Stream, Text
from ..cookies import CookieJar, cookies
from ..exceptions import BodyError, InvalidURLError, UnavailableError
from ..pipeline import compose
from ..plugins import content_encoding, content_length, headers, stringify, user_agent
from ..policies import RedirectOptions
from ..redirects import follow_redirects
from ..response import Response
from ..types import Middleware, Pipeline

if TYPE_CHECKING:
    from ..request import Request

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"granita (python-httpx/{httpx.__version__})"


@dataclass(frozen=True, slots=True)
class HttpTransportConfig:
    """
    Settings for `HttpTransport`.

    Attributes:
        redirects: Redirect following policy.
        jar: Cookie jar used across requests and redirect hops; `None` disables cookies.
        unzip: Advertise and decode gzip/deflate responses.
        user_agent: Default `User-Agent` header.
        verify: TLS verification, passed to `httpx.AsyncClient`.
        client: Shared client. When unset an ephemeral client is opened per request.
        transport: httpx transport for ephemeral clients (e.g. `httpx.MockTransport`).
    """

    redirects: RedirectOptions = field(default_factory=RedirectOptions)
    jar: CookieJar | None = None
    unzip: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    verify: bool | ssl.SSLContext = True
    client: httpx.AsyncClient | None = None
    transport: httpx.AsyncBaseTransport | None = None


def default_middleware(config: HttpTransportConfig) -> list[Middleware]:
    use: list[Middleware] = [headers(), user_agent(config.user_agent)]
    if config.unzip:
        use.append(content_encoding())
    use.extend([stringify(), content_length()])
    return use


class HttpTransport:
    """
    Default transport outside the browser.

    Example:
        ```python
        transport = HttpTransport(jar=MemoryCookieJar())
        response = await Request("https://example.com", transport=transport)
        ```
    """

    def __init__(self, config: HttpTransportConfig | None = None, **overrides: Any):
        config = config or HttpTransportConfig()
        if overrides:
            config = dataclasses.replace(config, **overrides)
        self.config = config
        self.use: list[Middleware] = default_middleware(config)

        inner = compose([cookies(config.jar)] if config.jar is not None else [], self.send)
        if config.redirects.follow:
            inner = follow_redirects(
                inner,
                max_redirects=config.redirects.max_redirects,
                confirm_redirect=config.redirects.confirm_redirect,
            )
        self._pipeline: Pipeline = inner
        self._inflight: dict[Request, asyncio.Task[Any]] = {}

    async def open(self, req: Request) -> Response:
        task = asyncio.current_task()
        if task is not None:
            self._inflight[req] = task
        try:
            return await self._pipeline(req)
        finally:
            self._inflight.pop(req, None)

    def abort(self, req: Request) -> None:
        task = self._inflight.pop(req, None)
        if task is not None and not task.done():
            logger.debug(f"Cancelling in-flight {req.method} {req.url}")
            task.cancel()

    def _client(self) -> tuple[httpx.AsyncClient, bool]:
        if self.config.client is not None:
            return self.config.client, False
        client = httpx.AsyncClient(transport=self.config.transport, verify=self.config.verify)
        return client, True

    async def send(self, req: Request) -> Response:
        """Send one hop. Progress is counted on `req.origin`."""
        target = req.origin
        content, length = _request_content(req, target)

        target.upload_length = length
        target.download_length = None
        target.uploaded_bytes = 0
        target.downloaded_bytes = 0

        try:
            request = httpx.Request(req.method, req.url, headers=req.headers.raw, content=content)
        except httpx.InvalidURL as e:
            raise InvalidURLError(f'Refused to connect to invalid URL "{req.url}"', req, cause=e) from e

        client, owned = self._client()
        release = _releaser(client if owned else None)

        try:
            upstream = await client.send(request, stream=True)
        except httpx.TransportError as e:
            await release(None)
            raise UnavailableError("Unable to connect", req, cause=e) from e
        except asyncio.CancelledError:
            await release(None)
            raise

        target.finish_upload()

        declared = upstream.headers.get("Content-Length")
        if declared is not None and declared.isdigit() and req.method != "HEAD":
            target.download_length = int(declared)

        response = Response(
            upstream.status_code,
            status_text=upstream.reason_phrase,
            headers=[(name.decode("latin-1"), value.decode("latin-1")) for name, value in upstream.headers.raw],
            body=Stream(
                _download(upstream, target),
                length=target.download_length,
                close=lambda: release(upstream),
            ),
            url=str(upstream.url),
            request=req,
        )
        target.emit("response", response)
        return response


def _request_content(req: Request, target: Request) -> tuple[Any, int | None]:
    body = req.body
    if isinstance(body, Empty):
        return None, 0
    if isinstance(body, Text):
        content = body.value.encode("utf-8")
        return content, len(content)
    if isinstance(body, Bytes):
        return body.value, len(body.value)
    if isinstance(body, Stream):
        return _upload(body, target), body.length
    if isinstance(body, Data):
        raise BodyError("Argument error, `options.body`", req)
    raise TypeError(f"Unsupported body {body!r}")


def _releaser(client: httpx.AsyncClient | None) -> Callable[[httpx.Response | None], Awaitable[None]]:
    async def release(upstream: httpx.Response | None) -> None:
        try:
            if upstream is not None:
                await upstream.aclose()
        finally:
            if client is not None:
                await client.aclose()

    return release


async def _upload(body: Stream, target: Request) -> AsyncIterator[bytes]:
    async for chunk in body:
        target.uploaded_bytes += len(chunk)
        yield chunk


async def _download(upstream: httpx.Response, target: Request) -> AsyncIterator[bytes]:
    if target.aborted:
        raise target.abort_error()
    try:
        async for chunk in upstream.aiter_raw():
            if target.aborted:
                raise target.abort_error()
            target.downloaded_bytes += len(chunk)
            yield chunk
    except httpx.TransportError as e:
        raise UnavailableError("Connection lost while reading the response", target, cause=e) from e
    target.finish_download()
