"""
Browser transport for Pyodide, driving the page's `XMLHttpRequest`.

The browser owns cookies, redirects and compression here, so the default
middleware is limited to header defaults and body encoding.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from ..body import Bytes, Data, Empty, Stream, Text
from ..exceptions import BlockedError, BodyError, CSPError, ResponseTypeError, UnavailableError
from ..headers import Header
from ..plugins import headers, stringify
from ..response import Response
from ..types import Middleware

if TYPE_CHECKING:
    from ..request import Request

logger = logging.getLogger(__name__)

# IE reports 204 responses as 1223.
IE_NO_CONTENT = 1223


@dataclass(frozen=True, slots=True)
class XhrTransportConfig:
    """
    Settings for `XhrTransport`.

    Attributes:
        response_type: `XMLHttpRequest.responseType` to request. `None` reads
            `responseText`.
        with_credentials: Send cookies with cross-origin requests.
        override_mime_type: Forwarded to `overrideMimeType()`.
        factory: Creates the XHR object; defaults to the page's `XMLHttpRequest`.
        page_protocol: Protocol of the embedding page (`"https:"`). Read from
            `window.location` when unset and no `factory` is given.
    """

    response_type: str | None = None
    with_credentials: bool = False
    override_mime_type: str | None = None
    factory: Callable[[], Any] | None = None
    page_protocol: str | None = None


def _browser_xhr() -> Any:
    from js import XMLHttpRequest  # Pyodide only

    return XMLHttpRequest.new()


def _browser_protocol() -> str:
    from js import location  # Pyodide only

    return str(location.protocol)


def parse_raw_headers(value: str) -> list[Header]:
    """Split `getAllResponseHeaders()` output into raw pairs."""
    pairs: list[Header] = []
    for line in re.split(r"\r?\n", re.sub(r"\r?\n$", "", value or "")):
        if not line:
            continue
        name, _, rest = line.partition(":")
        pairs.append((name.strip(), rest.strip()))
    return pairs


def _send_body(req: Request) -> Any:
    body = req.body
    if isinstance(body, Empty):
        return None
    if isinstance(body, Text):
        return body.value
    if isinstance(body, Bytes):
        return body.value
    if isinstance(body, Stream):
        raise BodyError("Streaming request bodies are not supported by XMLHttpRequest", req)
    if isinstance(body, Data):
        raise BodyError("Argument error, `options.body`", req)
    raise TypeError(f"Unsupported body {body!r}")


class XhrTransport:
    def __init__(self, config: XhrTransportConfig | None = None, **overrides: Any):
        config = config or XhrTransportConfig()
        if overrides:
            config = dataclasses.replace(config, **overrides)
        self.config = config
        self.use: list[Middleware] = [headers(), stringify()]
        self._inflight: dict[Request, tuple[Any, asyncio.Future[Response]]] = {}

    def _page_protocol(self) -> str | None:
        if self.config.page_protocol is not None:
            return self.config.page_protocol
        if self.config.factory is not None:
            return None
        return _browser_protocol()

    async def open(self, req: Request) -> Response:
        config = self.config
        target = req.origin

        if self._page_protocol() == "https:" and httpx.URL(req.url).scheme == "http":
            raise BlockedError(f'The request to "{req.url}" was blocked', req)

        loop = asyncio.get_running_loop()
        settled: asyncio.Future[Response] = loop.create_future()
        xhr = (config.factory or _browser_xhr)()

        def resolve(response: Response) -> None:
            if not settled.done():
                settled.set_result(response)

        def reject(exc: BaseException) -> None:
            if not settled.done():
                settled.set_exception(exc)

        def onload(*_: Any) -> None:
            status = 204 if xhr.status == IE_NO_CONTENT else int(xhr.status)
            body = xhr.responseText if config.response_type is None else xhr.response
            target.finish_download()
            resolve(
                Response(
                    status,
                    status_text=str(xhr.statusText or ""),
                    headers=parse_raw_headers(xhr.getAllResponseHeaders()),
                    body=body,
                    url=str(xhr.responseURL or req.url),
                    request=req,
                )
            )

        def onabort(*_: Any) -> None:
            reject(req.abort_error())

        def onerror(*_: Any) -> None:
            reject(UnavailableError(f'Unable to connect to "{req.url}"', req))

        def ondownload(event: Any) -> None:
            if event.lengthComputable:
                target.download_length = int(event.total)
            target.downloaded_bytes = int(event.loaded)

        def onupload(event: Any) -> None:
            if event.lengthComputable:
                target.upload_length = int(event.total)
            target.uploaded_bytes = int(event.loaded)

        xhr.onload = onload
        xhr.onabort = onabort
        xhr.onerror = onerror
        xhr.onprogress = ondownload

        if req.method in ("GET", "HEAD") or not getattr(xhr, "upload", None):
            target.upload_length = 0
            target.uploaded_bytes = 0
        else:
            xhr.upload.onprogress = onupload

        # Opening fails when the page's Content Security Policy forbids the URL.
        try:
            xhr.open(req.method, req.url)
        except Exception as e:
            raise CSPError(f'Refused to connect to "{req.url}"', req, cause=e) from e

        if config.with_credentials:
            xhr.withCredentials = True
        if config.override_mime_type:
            xhr.overrideMimeType(config.override_mime_type)

        if config.response_type is not None:
            response_type = config.response_type
            try:
                xhr.responseType = response_type
            except Exception as e:
                raise ResponseTypeError(f"Unsupported response type: {response_type}", req, cause=e) from e
            if xhr.responseType != response_type:
                raise ResponseTypeError(f"Unsupported response type: {response_type}", req)

        for name, value in req.headers.raw:
            xhr.setRequestHeader(name, value)

        self._inflight[req] = (xhr, settled)
        try:
            xhr.send(_send_body(req))
            return await settled
        finally:
            self._inflight.pop(req, None)

    def abort(self, req: Request) -> None:
        inflight = self._inflight.pop(req, None)
        if inflight is None:
            return
        xhr, settled = inflight
        logger.debug(f"Aborting XMLHttpRequest for {req.url}")
        xhr.abort()
        if not settled.done():
            settled.set_exception(req.abort_error())
