"""Shared type aliases and protocols."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypeAlias, runtime_checkable

if TYPE_CHECKING:
    from .request import Request
    from .response import Response

Next: TypeAlias = "Callable[[], Awaitable[Response]]"
Pipeline: TypeAlias = "Callable[[Request], Awaitable[Response]]"
ProgressListener: TypeAlias = "Callable[[Request], Any]"
ConfirmRedirect: TypeAlias = "Callable[[Request, Response], bool | Awaitable[bool]]"

EventName: TypeAlias = Literal["abort", "progress", "redirect", "response"]


class Middleware(Protocol):
    def __call__(self, req: Request, next: Next) -> Response | Awaitable[Response]: ...


@runtime_checkable
class Transport(Protocol):
    """
    Execution strategy a request is bound to.

    `open` performs the network call; `abort` is a best-effort cancel of an
    `open` still in flight; `use` is the default middleware for requests that
    don't bring their own.
    """

    use: list[Middleware]

    async def open(self, req: Request) -> Response: ...

    def abort(self, req: Request) -> None: ...
