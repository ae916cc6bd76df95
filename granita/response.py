"""Response entity."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from .body import Body, Bytes, Data, Empty, Stream, Text, close_body, read_body, to_body
from .exceptions import RequestError, error_for_code
from .headers import Headers, HeadersInit, HeaderValue
from .models import ResponseJSON, snapshot_body

if TYPE_CHECKING:
    from .request import Request


class Response:
    """
    Result of a transport call.

    A response exists as soon as the status line and headers are known; the
    body may still be streaming. Parsing middleware replaces `body` with a
    `Data` variant holding the decoded value.
    """

    def __init__(
        self,
        status: int,
        *,
        status_text: str = "",
        headers: HeadersInit | None = None,
        body: Any = None,
        url: str | None = None,
        request: Request | None = None,
    ):
        self.status = status
        self.status_text = status_text
        self.headers = Headers(headers)
        self.body: Body = to_body(body)
        self.url = url
        self.request = request

    # Header delegation

    def get(self, name: str) -> str | None:
        return self.headers.get(name)

    def set(self, name: str, value: HeaderValue) -> Response:
        self.headers.set(name, value)
        return self

    def append(self, name: str, value: HeaderValue) -> Response:
        self.headers.append(name, value)
        return self

    def remove(self, name: str) -> Response:
        self.headers.remove(name)
        return self

    def type(self) -> str | None:
        return self.headers.type()

    # Status helpers

    def status_type(self) -> int:
        return self.status // 100

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    # Body helpers

    @property
    def data(self) -> Any:
        """Decoded body set by parsing middleware, else `None`."""
        if isinstance(self.body, Data):
            return self.body.value
        return None

    async def read(self) -> bytes:
        """Buffer the body. A streamed body is replaced with its bytes."""
        if isinstance(self.body, Data):
            raise TypeError("Response body has already been parsed; use `.data`")
        content = await read_body(self.body)
        if isinstance(self.body, Stream):
            self.body = Bytes(content)
        return content

    async def text(self, encoding: str = "utf-8") -> str:
        if isinstance(self.body, Text):
            return self.body.value
        return (await self.read()).decode(encoding)

    async def json(self) -> Any:
        if isinstance(self.body, Data):
            return self.body.value
        return json.loads(await self.text())

    async def close(self) -> None:
        """Discard an unread streamed body."""
        await close_body(self.body)
        if isinstance(self.body, Stream):
            self.body = Empty()

    def error(self, message: str, code: str, cause: BaseException | None = None) -> RequestError:
        return error_for_code(message, code, self.request, cause)

    def to_json(self) -> ResponseJSON:
        return ResponseJSON(
            url=self.url,
            status=self.status,
            status_text=self.status_text,
            headers=self.headers.as_dict(),
            body=snapshot_body(self.body),
        )

    def __repr__(self) -> str:
        return f"<Response [{self.status}]>"
