"""
Request lifecycle.

`Lifecycle` owns the state machine of one request: it starts dispatch, arms
the timeout, hands the request to its transport, handles abort, and settles
the caller-visible future exactly once. Timers, transports and middleware
all race to settle a request; the first settlement wins and everything that
arrives later is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import re
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import InvalidURLError, RequestAbortedError, RequestTimeoutError
from .pipeline import compose
from .types import Pipeline

if TYPE_CHECKING:
    from .request import Request
    from .response import Response

logger = logging.getLogger(__name__)

# URLs that hang some client environments indefinitely instead of failing.
INVALID_URL = re.compile(r"^https?:/*(?:[~#\\?;:]|$)")


class RequestState(Enum):
    CREATED = "created"
    STARTED = "started"
    OPENED = "opened"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class Lifecycle:
    def __init__(self, request: Request):
        self._request = request
        self.state = RequestState.CREATED
        self.error: BaseException | None = None
        self._outcome: asyncio.Future[Response] | None = None
        self._inflight: asyncio.Future[Response] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._transport_task: asyncio.Future[Response] | None = None
        self._discarded: set[asyncio.Task[None]] = set()
        self._progress_closed = False

    @property
    def settled(self) -> bool:
        return self.state in (RequestState.RESOLVED, RequestState.REJECTED)

    # =========================================================================
    # Transitions
    # =========================================================================

    def start(self) -> asyncio.Future[Response]:
        """Begin dispatch (once) and return the outer future."""
        if self._outcome is not None:
            return self._outcome

        loop = asyncio.get_running_loop()
        req = self._request
        self._outcome = loop.create_future()
        self.state = RequestState.STARTED
        req.started = True
        logger.debug(f"Starting {req.method} {req.url}")

        if self.error is not None:
            self._reject(self.error)
            return self._outcome

        if INVALID_URL.match(req.url):
            self._reject(InvalidURLError(f'Refused to connect to invalid URL "{req.url}"', req))
            return self._outcome

        if req.timeout > 0:
            self._timer = loop.call_later(req.timeout / 1000, self._on_timeout)

        self._task = loop.create_task(self._run(compose(req.middleware, self.open)))
        return self._outcome

    async def _run(self, pipeline: Pipeline) -> None:
        req = self._request
        try:
            response = await pipeline(req)
        except asyncio.CancelledError:
            self._reject(self.error or req.abort_error())
            raise
        except Exception as exc:
            self._reject(exc)
        else:
            if not self._resolve(response):
                await response.close()

    async def open(self, req: Request) -> Response:
        """Terminal handler of the middleware chain: run the transport."""
        loop = asyncio.get_running_loop()
        req.opened = True
        self.state = RequestState.OPENED
        logger.debug(f"Opening {req.method} {req.url}")

        self._inflight = loop.create_future()
        self._transport_task = asyncio.ensure_future(req.transport.open(req))
        self._transport_task.add_done_callback(self._on_transport_done)
        return await self._inflight

    def _on_transport_done(self, task: asyncio.Future[Response]) -> None:
        inflight = self._inflight
        if task.cancelled():
            if inflight is not None and not inflight.done():
                inflight.set_exception(self.error or self._request.abort_error())
            return

        exc = task.exception()
        if exc is not None:
            if inflight is not None and not inflight.done():
                inflight.set_exception(exc)
            else:
                logger.debug(f"Discarding late transport error: {exc!r}")
            return

        response = task.result()
        if inflight is not None and not inflight.done():
            inflight.set_result(response)
            return

        logger.debug(f"Discarding late response {response.status} for {self._request.url}")
        self._close_later(response)

    def _close_later(self, response: Response) -> None:
        cleanup = asyncio.ensure_future(response.close())
        self._discarded.add(cleanup)
        cleanup.add_done_callback(self._discarded.discard)

    def abort(self) -> None:
        req = self._request
        # Counters may read 1 between redirect hops; only a resolved request is finished.
        if req.aborted or (self.state is RequestState.RESOLVED and req.completed == 1):
            return

        req.aborted = True
        if self.error is None:
            self.error = RequestAbortedError("Request aborted", req)
        logger.debug(f"Aborting {req.method} {req.url}: {self.error}")

        req.emit("abort")

        if req.opened:
            self.emit_progress()
            self._progress_closed = True

        self._reject(self.error)
        if self._inflight is not None and not self._inflight.done():
            self._inflight.set_exception(self.error)

        if req.opened:
            req.transport.abort(req)

        if req.response is not None:
            logger.debug(f"Closing unread response body for {req.url}")
            self._close_later(req.response)

    def _on_timeout(self) -> None:
        req = self._request
        self._timer = None
        if self.settled:
            return
        logger.debug(f"Timeout of {req.timeout}ms exceeded for {req.url}")
        if self.error is None:
            self.error = RequestTimeoutError(f"Timeout of {req.timeout}ms exceeded", req)
        req.timedout = True
        self.abort()

    # =========================================================================
    # Settlement
    # =========================================================================

    def _resolve(self, response: Response) -> bool:
        outcome = self._outcome
        if outcome is None or outcome.done():
            return False
        self._request.response = response
        self.state = RequestState.RESOLVED
        self._clear_timer()
        outcome.set_result(response)
        logger.debug(f"Resolved {self._request.url} with {response.status}")
        return True

    def _reject(self, exc: BaseException) -> bool:
        if self.error is None:
            self.error = exc
        outcome = self._outcome
        if outcome is None or outcome.done():
            return False
        self.state = RequestState.REJECTED
        self._clear_timer()
        outcome.set_exception(self.error)
        logger.debug(f"Rejected {self._request.url}: {self.error!r}")
        return True

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # =========================================================================
    # Progress
    # =========================================================================

    def emit_progress(self) -> None:
        """Notify progress listeners; a failing listener aborts the request."""
        if self._progress_closed:
            return
        req = self._request
        for listener in req.listeners("progress"):
            try:
                listener(req)
            except Exception as exc:
                if req.aborted:
                    logger.warning(f"Progress listener failed while aborting {req.url}: {exc!r}")
                    continue
                self.error = exc
                self.abort()
                self._reject(exc)
                return
