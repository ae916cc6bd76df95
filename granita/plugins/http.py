"""Middleware used by `HttpTransport`, where the client controls every header."""

from __future__ import annotations

import zlib
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from ..body import Bytes, Data, Empty, Stream, byte_length
from ..exceptions import BodyError, ParseError
from ..types import Middleware, Next

if TYPE_CHECKING:
    from ..request import Request
    from ..response import Response

ACCEPT_ENCODING = "gzip, deflate"


def user_agent(value: str) -> Middleware:
    """Set `User-Agent` unless the request already carries one."""

    async def middleware(req: Request, next: Next) -> Response:
        if not req.get("User-Agent"):
            req.set("User-Agent", value)
        return await next()

    return middleware


def content_length() -> Middleware:
    """
    Fill in `Content-Length` for bodies of known size.

    Streams of unknown size are sent with `Transfer-Encoding: chunked`. A body
    still holding structured data here was never encoded, which is an error.
    """

    async def middleware(req: Request, next: Next) -> Response:
        body = req.body
        if isinstance(body, Data):
            raise BodyError("Argument error, `options.body`", req)

        if not isinstance(body, Empty) and not req.get("Content-Length"):
            length = byte_length(body)
            if length is not None:
                req.set("Content-Length", length)
            elif not req.get("Transfer-Encoding"):
                req.set("Transfer-Encoding", "chunked")

        return await next()

    return middleware


class _Decoder:
    def __init__(self, encoding: str):
        self.encoding = encoding
        if encoding == "gzip":
            self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        else:
            self._decompressor = zlib.decompressobj()
        self._first = True

    def decode(self, chunk: bytes) -> bytes:
        if self.encoding == "deflate" and self._first and chunk:
            self._first = False
            # Some servers send raw deflate streams without the zlib wrapper.
            try:
                return self._decompressor.decompress(chunk)
            except zlib.error:
                self._decompressor = zlib.decompressobj(-zlib.MAX_WBITS)
        return self._decompressor.decompress(chunk)

    def flush(self) -> bytes:
        return self._decompressor.flush()


async def _decode_chunks(req: Request, source: Stream, encoding: str) -> AsyncIterator[bytes]:
    decoder = _Decoder(encoding)
    try:
        async for chunk in source:
            decoded = decoder.decode(chunk)
            if decoded:
                yield decoded
        tail = decoder.flush()
    except zlib.error as e:
        raise ParseError(f"Unable to decode {encoding} response body", req, cause=e) from e
    if tail:
        yield tail


def content_encoding() -> Middleware:
    """Advertise gzip/deflate support and transparently decode the response body."""

    async def middleware(req: Request, next: Next) -> Response:
        if not req.get("Accept-Encoding"):
            req.set("Accept-Encoding", ACCEPT_ENCODING)

        response = await next()
        encoding = (response.get("Content-Encoding") or "").strip().lower()
        if encoding not in ("gzip", "deflate"):
            return response

        body = response.body
        if isinstance(body, Bytes):
            decoder = _Decoder(encoding)
            try:
                response.body = Bytes(decoder.decode(body.value) + decoder.flush())
            except zlib.error as e:
                raise ParseError(f"Unable to decode {encoding} response body", req, cause=e) from e
        elif isinstance(body, Stream):
            response.body = Stream(_decode_chunks(req, body, encoding), close=body.aclose)
        return response

    return middleware
