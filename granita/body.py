"""
Request and response bodies.

A body is classified once, when it is handed to a request or response, into
one of a small set of variants. Middleware and transports switch on the
variant instead of sniffing the payload type.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeAlias


@dataclass(frozen=True, slots=True)
class Empty:
    pass


@dataclass(frozen=True, slots=True)
class Text:
    value: str


@dataclass(frozen=True, slots=True)
class Bytes:
    value: bytes


@dataclass(frozen=True, slots=True)
class Data:
    """Structured payload that middleware encodes (request) or has decoded (response)."""

    value: Any


@dataclass(slots=True, eq=False)
class Stream:
    """
    A one-shot asynchronous byte stream.

    `close` releases whatever produces the chunks (an open connection, a file).
    It runs at most once: after the stream is exhausted, or when `aclose()` is
    called before that.
    """

    chunks: AsyncIterable[bytes]
    length: int | None = None
    close: Callable[[], Awaitable[None]] | None = None
    _consumed: bool = field(default=False, init=False)
    _closed: bool = field(default=False, init=False)

    @property
    def consumed(self) -> bool:
        return self._consumed

    async def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("Stream body has already been consumed")
        self._consumed = True
        try:
            async for chunk in self.chunks:
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.close is not None:
            await self.close()


Body: TypeAlias = Empty | Text | Bytes | Stream | Data


def to_body(value: Any) -> Body:
    """Classify a user supplied body value."""
    if isinstance(value, (Empty, Text, Bytes, Stream, Data)):
        return value
    if value is None:
        return Empty()
    if isinstance(value, str):
        return Text(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return Bytes(bytes(value))
    if isinstance(value, (bool, int, float)):
        return Text(str(value).lower() if isinstance(value, bool) else str(value))
    if isinstance(value, AsyncIterable):
        return Stream(value)
    return Data(value)


def byte_length(body: Body) -> int | None:
    """Length in bytes when it is known without consuming the body."""
    if isinstance(body, Empty):
        return 0
    if isinstance(body, Text):
        return len(body.value.encode("utf-8"))
    if isinstance(body, Bytes):
        return len(body.value)
    if isinstance(body, Stream):
        return body.length
    return None


async def read_body(body: Body) -> bytes:
    """Buffer a body into bytes. Streams are consumed and closed."""
    if isinstance(body, Empty):
        return b""
    if isinstance(body, Text):
        return body.value.encode("utf-8")
    if isinstance(body, Bytes):
        return body.value
    if isinstance(body, Stream):
        return b"".join([chunk async for chunk in body])
    raise TypeError("Structured bodies must be encoded before they can be read as bytes")


async def close_body(body: Body) -> None:
    if isinstance(body, Stream):
        await body.aclose()
