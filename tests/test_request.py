from __future__ import annotations

import pytest

from granita.body import Bytes, Data, Empty, Stream, Text
from granita.exceptions import MaxRedirectsError, RequestError
from granita.models import RequestJSON, ResponseJSON
from granita.request import Request
from granita.response import Response


def test_bodies_are_classified_once(transport) -> None:
    async def chunks():
        yield b""

    assert isinstance(Request("http://x.test", transport=transport).body, Empty)
    assert Request("http://x.test", body="a", transport=transport).body == Text("a")
    assert Request("http://x.test", body=b"a", transport=transport).body == Bytes(b"a")
    assert Request("http://x.test", body=True, transport=transport).body == Text("true")
    assert Request("http://x.test", body={"a": 1}, transport=transport).body == Data({"a": 1})
    assert isinstance(Request("http://x.test", body=chunks(), transport=transport).body, Stream)


def test_method_is_normalized(transport) -> None:
    assert Request("http://x.test", method="patch", transport=transport).method == "PATCH"


def test_header_delegation(transport) -> None:
    req = Request("http://x.test", transport=transport)
    req.set("X-A", "1").append("X-A", "2").type("text/plain")

    assert req.get("x-a") == "1, 2"
    assert req.type() == "text/plain"
    assert req.name("content-type") == "Content-Type"
    req.remove("X-A")
    assert req.get("X-A") is None


def test_once_listeners_fire_a_single_time(transport) -> None:
    calls: list[str] = []
    req = Request("http://x.test", transport=transport)
    req.once("redirect", calls.append)

    req.emit("redirect", "http://a.test")
    req.emit("redirect", "http://b.test")

    assert calls == ["http://a.test"]
    assert req.listeners("redirect") == []


def test_off_removes_listener(transport) -> None:
    calls: list[str] = []
    req = Request("http://x.test", transport=transport)
    req.on("redirect", calls.append)
    req.off("redirect", calls.append)
    req.emit("redirect", "http://a.test")
    assert calls == []


def test_clone_is_independent_and_unstarted(transport) -> None:
    req = Request("http://x.test", method="POST", headers={"A": "1"}, body="x", timeout=100, transport=transport)
    copy = req.clone()
    copy.set("A", "2")

    assert copy.method == "POST"
    assert copy.timeout == 100
    assert copy.body == Text("x")
    assert req.get("A") == "1"
    assert not copy.started
    assert copy.middleware == req.middleware
    assert copy.middleware is not req.middleware


def test_progress_ratios(transport) -> None:
    req = Request("http://x.test", transport=transport)
    assert req.completed == 0.0
    assert req.total_bytes is None

    req.upload_length = 0
    req.download_length = 4
    req.downloaded_bytes = 2

    assert req.uploaded == 1.0
    assert req.downloaded == 0.5
    assert req.completed == 0.75
    assert req.completed_bytes == 2
    assert req.total_bytes == 4


def test_error_builds_coded_subclass(transport) -> None:
    req = Request("http://x.test", transport=transport)
    cause = RuntimeError("root")
    error = req.error("too many", "EMAXREDIRECTS", cause)

    assert isinstance(error, MaxRedirectsError)
    assert error.request is req
    assert error.__cause__ is cause

    custom = req.error("odd", "ECUSTOM")
    assert type(custom) is RequestError
    assert custom.code == "ECUSTOM"


def test_json_snapshots(transport) -> None:
    req = Request("http://x.test", method="POST", headers={"A": "1"}, body="x", transport=transport)
    snapshot = req.to_json()
    assert snapshot == RequestJSON(url="http://x.test", method="POST", headers={"A": "1"}, body="x", timeout=0)

    res = Response(201, status_text="Created", headers={"B": "2"}, body=b"y", url="http://x.test")
    dumped = res.to_json()
    assert isinstance(dumped, ResponseJSON)
    assert dumped.model_dump(by_alias=True)["statusText"] == "Created"
    assert dumped.body == b"y"


@pytest.mark.asyncio
async def test_response_close_discards_stream() -> None:
    closed: list[bool] = []

    async def chunks():
        yield b"data"

    async def on_close() -> None:
        closed.append(True)

    res = Response(200, body=Stream(chunks(), close=on_close))
    await res.close()
    await res.close()

    assert closed == [True]
    assert isinstance(res.body, Empty)
