from __future__ import annotations

import asyncio
import gc
import logging

import pytest

from granita.exceptions import (
    InvalidURLError,
    MiddlewareError,
    RequestAbortedError,
    RequestTimeoutError,
    UnavailableError,
)
from granita.lifecycle import RequestState
from granita.request import Request
from granita.response import Response


@pytest.mark.asyncio
async def test_request_resolves_with_transport_response(transport) -> None:
    req = Request("http://example.com", transport=transport)
    assert req.state is RequestState.CREATED

    res = await req

    assert res.status == 200
    assert await res.text() == "ok"
    assert req.response is res
    assert req.state is RequestState.RESOLVED
    assert req.started and req.opened
    assert await req is res
    assert transport.opened == [req]


@pytest.mark.asyncio
async def test_start_is_idempotent(transport) -> None:
    req = Request("http://example.com", transport=transport)
    assert req.start() is req.start()
    await req.send()
    assert len(transport.opened) == 1


@pytest.mark.asyncio
async def test_abort_before_start_rejects_without_opening(transport) -> None:
    req = Request("http://example.com", transport=transport)
    req.abort()

    with pytest.raises(RequestAbortedError, match="Request aborted") as exc_info:
        await req

    assert exc_info.value.code == "EABORT"
    assert exc_info.value.request is req
    assert transport.opened == []


@pytest.mark.asyncio
async def test_abort_is_idempotent(transport) -> None:
    transport.handler = transport.wait_for_release
    aborts: list[None] = []

    req = Request("http://example.com", transport=transport)
    req.on("abort", lambda: aborts.append(None))
    req.start()
    await transport.entered.wait()

    req.abort()
    req.abort()

    with pytest.raises(RequestAbortedError):
        await req
    assert len(aborts) == 1
    assert transport.aborted == [req]


@pytest.mark.asyncio
async def test_late_transport_response_is_discarded_after_abort(transport) -> None:
    transport.handler = transport.wait_for_release

    req = Request("http://example.com", transport=transport)
    req.start()
    await transport.entered.wait()
    req.abort()

    with pytest.raises(RequestAbortedError):
        await req

    # Let the released transport finish; its response must not surface.
    for _ in range(5):
        await asyncio.sleep(0)
    assert req.response is None
    assert req.state is RequestState.REJECTED


@pytest.mark.asyncio
async def test_timeout_aborts_with_timeout_error(transport) -> None:
    transport.handler = transport.wait_for_release

    req = Request("http://example.com", timeout=10, transport=transport)

    with pytest.raises(RequestTimeoutError, match="Timeout of 10ms exceeded") as exc_info:
        await req

    assert exc_info.value.code == "ETIMEOUT"
    assert isinstance(exc_info.value, RequestAbortedError)
    assert req.timedout
    assert req.aborted
    assert transport.aborted == [req]


@pytest.mark.asyncio
async def test_response_before_timeout_wins(transport) -> None:
    req = Request("http://example.com", timeout=20, transport=transport)
    res = await req

    await asyncio.sleep(0.05)

    assert res.status == 200
    assert not req.timedout
    assert req.state is RequestState.RESOLVED


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["http://", "https://", "http:/~", "http://?x", "https://;"])
async def test_invalid_urls_are_refused(transport, url: str) -> None:
    req = Request(url, transport=transport)

    with pytest.raises(InvalidURLError) as exc_info:
        await req

    assert exc_info.value.code == "EINVALID"
    assert transport.opened == []


def test_url_must_be_a_string(transport) -> None:
    with pytest.raises(TypeError):
        Request(b"http://example.com", transport=transport)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_transport_errors_reject(transport) -> None:
    def fail(req: Request) -> Response:
        raise UnavailableError("Unable to connect", req)

    transport.handler = fail
    req = Request("http://example.com", transport=transport)

    with pytest.raises(UnavailableError):
        await req
    assert req.state is RequestState.REJECTED
    assert isinstance(req.errored, UnavailableError)


@pytest.mark.asyncio
async def test_progress_listener_error_aborts_request(transport, caplog) -> None:
    def produce(req: Request) -> Response:
        req.downloaded_bytes = 5
        return Response(200, request=req)

    def listener(req: Request) -> None:
        raise ValueError("listener failed")

    transport.handler = produce
    req = Request("http://example.com", transport=transport, progress=listener)

    with caplog.at_level(logging.WARNING, logger="granita.lifecycle"):
        with pytest.raises(ValueError, match="listener failed"):
            await req

    assert req.aborted
    assert transport.aborted == [req]
    assert any("Progress listener failed" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_progress_listeners_run_in_registration_order(transport) -> None:
    calls: list[str] = []

    def produce(req: Request) -> Response:
        req.download_length = 2
        req.downloaded_bytes = 2
        return Response(200, request=req)

    transport.handler = produce
    req = Request("http://example.com", transport=transport)
    req.progress(lambda r: calls.append("first"))
    req.progress(lambda r: calls.append("second"))

    await req
    assert calls == ["first", "second"]


@pytest.mark.asyncio
async def test_middleware_cannot_be_added_after_start(transport) -> None:
    req = Request("http://example.com", transport=transport)
    req.start()

    with pytest.raises(MiddlewareError):
        req.use(lambda r, n: n())
    with pytest.raises(MiddlewareError):
        req.progress(lambda r: None)

    await req


@pytest.mark.asyncio
async def test_then_and_catch(transport) -> None:
    req = Request("http://example.com", transport=transport)
    assert await req.then(lambda res: res.status) == 200

    def fail(req: Request) -> Response:
        raise UnavailableError("Unable to connect", req)

    transport.handler = fail
    failing = Request("http://example.com", transport=transport)
    error = await failing.catch(lambda e: e)
    assert isinstance(error, UnavailableError)


@pytest.mark.asyncio
async def test_exec_reports_error_first(transport) -> None:
    results: list[tuple[BaseException | None, Response | None]] = []
    done = asyncio.Event()

    def callback(err: BaseException | None, res: Response | None) -> None:
        results.append((err, res))
        done.set()

    req = Request("http://example.com", transport=transport)
    req.exec(callback)
    await done.wait()

    ((err, res),) = results
    assert err is None
    assert res is not None and res.status == 200


@pytest.mark.asyncio
async def test_middleware_errors_reject_the_request(transport) -> None:
    async def broken(req, next):
        raise RuntimeError("middleware failed")

    req = Request("http://example.com", transport=transport, use=[broken])
    with pytest.raises(RuntimeError, match="middleware failed"):
        await req
    assert transport.opened == []


@pytest.mark.asyncio
async def test_slow_transport_loses_the_timeout_race(transport) -> None:
    async def slow(req: Request) -> Response:
        await asyncio.sleep(0.15)
        return Response(200, request=req)

    transport.handler = slow
    req = Request("http://example.com", timeout=50, transport=transport)

    with pytest.raises(RequestTimeoutError):
        await req

    await asyncio.sleep(0.2)
    assert req.response is None
    assert req.state is RequestState.REJECTED


@pytest.mark.asyncio
async def test_catch_consumes_the_rejection(transport) -> None:
    loop = asyncio.get_running_loop()
    reported: list[dict] = []
    loop.set_exception_handler(lambda loop, context: reported.append(context))

    def fail(req: Request) -> Response:
        raise UnavailableError("Unable to connect", req)

    try:
        transport.handler = fail
        req = Request("http://example.com", transport=transport)
        handler = req.catch(lambda e: e)
        handler.cancel()

        outcome = req.start()
        while not outcome.done():
            await asyncio.sleep(0)

        del req, handler, outcome
        gc.collect()
    finally:
        loop.set_exception_handler(None)

    assert not any("never retrieved" in context.get("message", "") for context in reported)
