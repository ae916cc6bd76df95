from __future__ import annotations

import httpx
import pytest

import granita
from granita.client import build, defaults, fetch, get, head, post
from granita.lifecycle import RequestState
from granita.transports import HttpTransport


def test_method_presets(transport) -> None:
    assert get("http://example.com/", transport=transport).method == "GET"
    assert post("http://example.com/", transport=transport).method == "POST"
    assert head("http://example.com/", transport=transport).method == "HEAD"
    assert granita.delete("http://example.com/", transport=transport).method == "DELETE"


def test_build_returns_an_unstarted_request(transport) -> None:
    req = build("http://example.com/", transport=transport)
    assert req.state is RequestState.CREATED
    assert not req.started
    assert transport.opened == []


def test_defaults_merge_headers_with_overrides_winning(transport) -> None:
    api = defaults(method="PUT", headers={"Authorization": "Bearer a", "X-Client": "granita"}, transport=transport)
    req = api("http://example.com/", headers={"Authorization": "Bearer b"})

    assert req.method == "PUT"
    assert req.get("Authorization") == "Bearer b"
    assert req.get("X-Client") == "granita"


@pytest.mark.asyncio
async def test_fetch_sends_immediately(transport) -> None:
    res = await fetch("http://example.com/", transport=transport)
    assert res.status == 200
    assert len(transport.opened) == 1


@pytest.mark.asyncio
async def test_factory_with_parse_middleware_over_httpx() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"items": [1, 2]}, request=request)

    transport = HttpTransport(transport=httpx.MockTransport(handler))
    api = defaults(use=[granita.parse("json"), *transport.use], transport=transport)

    res = await api("http://example.com/items")
    assert res.data == {"items": [1, 2]}
    assert res.ok
    assert res.status_type() == 2
