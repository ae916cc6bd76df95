"""
Request entity and the public request API.

A `Request` is built first and started explicitly: constructing one never
touches the network, so middleware and listeners can be attached before
`start()`, `send()` or `await request` begins execution.

Example:
    ```python
    from granita import Request

    req = Request("https://example.com/items", method="POST", body={"name": "x"})
    req.use(log_middleware)
    req.progress(lambda r: print(f"{r.completed:.0%}"))

    response = await req
    print(response.status, await response.text())
    ```
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, TypedDict

from .body import Body, to_body
from .exceptions import MiddlewareError, RequestAbortedError, RequestError, error_for_code
from .headers import Headers, HeadersInit, HeaderValue
from .lifecycle import Lifecycle, RequestState
from .models import RequestJSON, snapshot_body
from .transports import create_transport
from .types import EventName, Middleware, ProgressListener, Transport

if TYPE_CHECKING:
    from collections.abc import Generator

    from .response import Response


class RequestOptions(TypedDict, total=False):
    method: str
    headers: HeadersInit
    body: Any
    timeout: int
    use: list[Middleware]
    transport: Transport


class _Once:
    """Listener wrapper that removes itself after the first call."""

    def __init__(self, target: Request, event: str, listener: Callable[..., Any]):
        self.target = target
        self.event = event
        self.listener = listener
        self.fired = False

    def __call__(self, *args: Any) -> Any:
        if self.fired:
            return None
        self.fired = True
        self.target.off(self.event, self.listener)
        return self.listener(*args)


def _as_list(fns: Any) -> list[Any]:
    if fns is None:
        return []
    if callable(fns):
        return [fns]
    return list(fns)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _retrieve(outcome: asyncio.Future[Any]) -> None:
    # Marks the error as retrieved once a handler is attached.
    if not outcome.cancelled():
        outcome.exception()


class Request:
    """
    One HTTP call, mutable until it settles.

    Args:
        url: Absolute URL to request.
        method: HTTP method (normalized to upper case). Defaults to GET.
        headers: Initial headers (mapping, list of pairs or flat raw list).
        body: Body value, classified once into a `granita.body` variant.
        timeout: Timeout in milliseconds; 0 disables it.
        use: Middleware list. Defaults to the transport's `use`.
        transport: Execution strategy; defaults to `create_transport()`.
        progress: Progress listener(s), called with the request.
    """

    def __init__(
        self,
        url: str,
        *,
        method: str | None = None,
        headers: HeadersInit | None = None,
        body: Any = None,
        timeout: int | None = 0,
        use: Iterable[Middleware] | None = None,
        transport: Transport | None = None,
        progress: ProgressListener | Iterable[ProgressListener] | None = None,
    ):
        if not isinstance(url, str):
            raise TypeError("The URL must be a string")

        if transport is None:
            transport = create_transport()

        self.url = url
        self.method = (method or "GET").upper()
        self.headers = Headers(headers)
        self.body: Body = to_body(body)
        self.timeout = int(timeout or 0)
        self.transport = transport
        self.middleware: list[Middleware] = []
        self.response: Response | None = None

        # Redirect hops report progress into the request they were cloned from.
        self.origin: Request = self

        self.started = False
        self.opened = False
        self.aborted = False
        self.timedout = False

        self.upload_length: int | None = None
        self.download_length: int | None = None
        self._uploaded_bytes = 0
        self._downloaded_bytes = 0

        self._events: dict[str, list[Callable[..., Any]]] = {}
        self._lifecycle = Lifecycle(self)

        self.use(list(use) if use is not None else list(transport.use))
        self.progress(progress)

    # =========================================================================
    # Header delegation
    # =========================================================================

    def get(self, name: str) -> str | None:
        return self.headers.get(name)

    def set(self, name: str, value: HeaderValue) -> Request:
        self.headers.set(name, value)
        return self

    def append(self, name: str, value: HeaderValue) -> Request:
        self.headers.append(name, value)
        return self

    def remove(self, name: str) -> Request:
        self.headers.remove(name)
        return self

    def name(self, name: str) -> str | None:
        return self.headers.name(name)

    def type(self, value: str | None = None) -> Any:
        if value is None:
            return self.headers.type()
        self.headers.type(value)
        return self

    # =========================================================================
    # Plugins and events
    # =========================================================================

    def _ensure_not_started(self) -> None:
        if self.started:
            raise MiddlewareError("Middleware can not be used after the request has started")

    def use(self, fns: Middleware | Iterable[Middleware] | None) -> Request:
        self._ensure_not_started()
        for fn in _as_list(fns):
            if not callable(fn):
                raise TypeError(f"Expected a function, but got {fn!r} instead")
            self.middleware.append(fn)
        return self

    def progress(self, fns: ProgressListener | Iterable[ProgressListener] | None) -> Request:
        self._ensure_not_started()
        for fn in _as_list(fns):
            if not callable(fn):
                raise TypeError(f"Expected a function, but got {fn!r} instead")
            self.on("progress", fn)
        return self

    def on(self, event: EventName | str, listener: Callable[..., Any]) -> Request:
        self._events.setdefault(event, []).append(listener)
        return self

    def once(self, event: EventName | str, listener: Callable[..., Any]) -> Request:
        return self.on(event, _Once(self, event, listener))

    def off(self, event: EventName | str, listener: Callable[..., Any]) -> Request:
        listeners = self._events.get(event)
        if not listeners:
            return self
        for i, fn in enumerate(listeners):
            if fn == listener or (isinstance(fn, _Once) and fn.listener == listener):
                del listeners[i]
                break
        if not listeners:
            del self._events[event]
        return self

    def listeners(self, event: EventName | str) -> list[Callable[..., Any]]:
        return list(self._events.get(event, ()))

    def emit(self, event: EventName | str, *args: Any) -> Request:
        """Call listeners for `event`. Progress listeners receive the request."""
        if event == "progress":
            self._lifecycle.emit_progress()
            return self
        for listener in self.listeners(event):
            listener(*args)
        return self

    # =========================================================================
    # Execution
    # =========================================================================

    @property
    def state(self) -> RequestState:
        return self._lifecycle.state

    @property
    def errored(self) -> BaseException | None:
        return self._lifecycle.error

    def start(self) -> asyncio.Future[Response]:
        """Begin execution (idempotent). Must be called with a running event loop."""
        return self._lifecycle.start()

    async def send(self) -> Response:
        return await self.start()

    def __await__(self) -> Generator[Any, None, Response]:
        return self.start().__await__()

    def then(
        self,
        on_fulfilled: Callable[[Response], Any] | None = None,
        on_rejected: Callable[[BaseException], Any] | None = None,
    ) -> asyncio.Task[Any]:
        outcome = self.start()
        outcome.add_done_callback(_retrieve)

        async def settle() -> Any:
            try:
                response = await outcome
            except Exception as exc:
                if on_rejected is None:
                    raise
                return await _maybe_await(on_rejected(exc))
            if on_fulfilled is None:
                return response
            return await _maybe_await(on_fulfilled(response))

        return asyncio.ensure_future(settle())

    def catch(self, on_rejected: Callable[[BaseException], Any]) -> asyncio.Task[Any]:
        return self.then(None, on_rejected)

    def exec(self, callback: Callable[[BaseException | None, Response | None], Any]) -> None:
        """Node-style completion: `callback(error, response)`."""

        def done(outcome: asyncio.Future[Response]) -> None:
            if outcome.cancelled():
                callback(self.abort_error(), None)
                return
            exc = outcome.exception()
            if exc is not None:
                callback(exc, None)
            else:
                callback(None, outcome.result())

        self.start().add_done_callback(done)

    def abort(self) -> Request:
        self._lifecycle.abort()
        return self

    def abort_error(self) -> BaseException:
        """Error a request aborted by any means settles with."""
        error = self._lifecycle.error
        if error is not None:
            return error
        return RequestAbortedError("Request aborted", self)

    def error(self, message: str, code: str, cause: BaseException | None = None) -> RequestError:
        return error_for_code(message, code, self, cause)

    # =========================================================================
    # Progress
    # =========================================================================

    @property
    def uploaded_bytes(self) -> int:
        return self._uploaded_bytes

    @uploaded_bytes.setter
    def uploaded_bytes(self, value: int) -> None:
        if value != self._uploaded_bytes:
            self._uploaded_bytes = value
            self._lifecycle.emit_progress()

    @property
    def downloaded_bytes(self) -> int:
        return self._downloaded_bytes

    @downloaded_bytes.setter
    def downloaded_bytes(self, value: int) -> None:
        if value != self._downloaded_bytes:
            self._downloaded_bytes = value
            self._lifecycle.emit_progress()

    def finish_upload(self) -> None:
        if self.upload_length is None:
            self.upload_length = self._uploaded_bytes
            self._lifecycle.emit_progress()
        else:
            self.uploaded_bytes = self.upload_length

    def finish_download(self) -> None:
        if self.download_length is None:
            self.download_length = self._downloaded_bytes
            self._lifecycle.emit_progress()
        else:
            self.downloaded_bytes = self.download_length

    @staticmethod
    def _ratio(done: int, total: int | None) -> float:
        if total is None:
            return 0.0
        if total == 0:
            return 1.0
        return min(done / total, 1.0)

    @property
    def uploaded(self) -> float:
        return self._ratio(self._uploaded_bytes, self.upload_length)

    @property
    def downloaded(self) -> float:
        return self._ratio(self._downloaded_bytes, self.download_length)

    @property
    def completed(self) -> float:
        return (self.uploaded + self.downloaded) / 2

    @property
    def completed_bytes(self) -> int:
        return self._uploaded_bytes + self._downloaded_bytes

    @property
    def total_bytes(self) -> int | None:
        if self.upload_length is None or self.download_length is None:
            return None
        return self.upload_length + self.download_length

    # =========================================================================
    # Copies and snapshots
    # =========================================================================

    def to_options(self) -> RequestOptions:
        return RequestOptions(
            method=self.method,
            headers=self.headers.clone(),
            body=self.body,
            timeout=self.timeout,
            use=list(self.middleware),
            transport=self.transport,
        )

    def clone(self) -> Request:
        """Unstarted copy with its own headers, middleware list and listeners."""
        cloned = Request(self.url, **self.to_options())
        cloned._events = {event: list(fns) for event, fns in self._events.items()}
        return cloned

    def to_json(self) -> RequestJSON:
        return RequestJSON(
            url=self.url,
            method=self.method,
            headers=self.headers.as_dict(),
            body=snapshot_body(self.body),
            timeout=self.timeout,
        )

    def __repr__(self) -> str:
        return f"<Request [{self.method} {self.url}]>"
