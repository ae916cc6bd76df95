"""
Request factories.

Example:
    ```python
    import granita

    response = await granita.get("https://example.com/items")

    api = granita.defaults(
        headers={"Authorization": "Bearer token"},
        use=[granita.parse("json"), *granita.HttpTransport().use],
    )
    items = (await api("https://example.com/items")).data
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .headers import Headers
from .request import Request
from .response import Response

RequestFactory = Callable[..., Request]


def _merge(defaults: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    options = {**defaults, **overrides}
    if "headers" in defaults and "headers" in overrides:
        headers = Headers(defaults["headers"])
        extra = Headers(overrides["headers"])
        for name, _ in extra:
            headers.remove(name)
        for name, value in extra:
            headers.append(name, value)
        options["headers"] = headers
    return options


def defaults(**options: Any) -> RequestFactory:
    """
    Return a factory that builds unstarted requests with `options` preset.

    Per-call keyword arguments override the presets; headers are merged, with
    per-call values winning.
    """

    def factory(url: str, **overrides: Any) -> Request:
        return Request(url, **_merge(options, overrides))

    return factory


def build(url: str, **options: Any) -> Request:
    """Build an unstarted request. Nothing is sent until it is started or awaited."""
    return Request(url, **options)


request = defaults()
get = defaults(method="GET")
post = defaults(method="POST")
put = defaults(method="PUT")
patch = defaults(method="PATCH")
delete = defaults(method="DELETE")
head = defaults(method="HEAD")


async def fetch(url: str, **options: Any) -> Response:
    """Build, start and await a request in one call."""
    return await Request(url, **options)
