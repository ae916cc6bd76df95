from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

import pytest

from granita.request import Request
from granita.response import Response
from granita.types import Middleware


class StubTransport:
    """In-memory transport; `handler(req)` produces the response (sync or async)."""

    def __init__(self, handler: Callable[[Request], Any] | None = None):
        self.use: list[Middleware] = []
        self.handler = handler or (lambda req: Response(200, body="ok", request=req))
        self.opened: list[Request] = []
        self.aborted: list[Request] = []
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def open(self, req: Request) -> Response:
        self.opened.append(req)
        self.entered.set()
        result = self.handler(req)
        if inspect.isawaitable(result):
            result = await result
        return result

    def abort(self, req: Request) -> None:
        self.aborted.append(req)
        self.release.set()

    async def wait_for_release(self, req: Request) -> Response:
        await self.release.wait()
        return Response(200, body="late", request=req)


@pytest.fixture
def transport() -> StubTransport:
    return StubTransport()
