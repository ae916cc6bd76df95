"""
Middleware composition.

Requests are modelled independently of the transport that executes them, so
cross-cutting behavior (headers, encoding, cookies, redirects) is written as
middleware: `(request, next) -> Response`. `compose` chains a list of them in
front of a terminal handler.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING

from .exceptions import MiddlewareError
from .types import Middleware, Next, Pipeline

if TYPE_CHECKING:
    from .request import Request
    from .response import Response


async def _resolve(result: Response | Awaitable[Response]) -> Response:
    if inspect.isawaitable(result):
        return await result
    return result


def compose(middlewares: Sequence[Middleware], terminal: Pipeline) -> Pipeline:
    """
    Chain `middlewares` in front of `terminal`.

    Code before `await next()` runs in list order, code after it in reverse
    order. Each middleware invocation may call `next()` at most once, and
    `next()` refuses to continue once the request has been aborted.
    """
    chain = list(middlewares)

    async def pipeline(req: Request) -> Response:
        index = -1

        def dispatch(pos: int) -> Awaitable[Response]:
            nonlocal index
            if pos <= index:
                raise MiddlewareError("next() called multiple times")
            if req.aborted:
                raise req.abort_error()
            index = pos

            if pos == len(chain):
                return terminal(req)

            middleware = chain[pos]
            next_: Next = lambda: dispatch(pos + 1)  # noqa: E731
            return _resolve(middleware(req, next_))

        return await dispatch(0)

    return pipeline
