"""
Redirect following.

`follow_redirects` wraps a pipeline (normally cookies plus the terminal send)
and re-runs it for each hop. Every hop is a fresh clone of the request as it
entered the redirect loop, so hops never inherit headers added further down
the chain, such as the per-hop `Cookie` header.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING

import httpx

from .body import Empty, Stream
from .exceptions import BodyError, MaxRedirectsError
from .policies import DEFAULT_MAX_REDIRECTS, SAFE_METHODS, RedirectPolicy, classify_redirect
from .types import ConfirmRedirect, Pipeline

if TYPE_CHECKING:
    from .request import Request
    from .response import Response

logger = logging.getLogger(__name__)


async def _confirm(confirm_redirect: ConfirmRedirect | None, req: Request, response: Response) -> bool:
    if confirm_redirect is None:
        return False
    result = confirm_redirect(req, response)
    if inspect.isawaitable(result):
        result = await result
    return bool(result)


async def _next_hop(
    policy: RedirectPolicy,
    initial: Request,
    current: Request,
    response: Response,
    confirm_redirect: ConfirmRedirect | None,
) -> Request | None:
    """Build the next hop from `initial`, or `None` to stop at `response`."""
    if policy is RedirectPolicy.FOLLOW_WITH_GET:
        hop = initial.clone()
        hop.method = "HEAD" if initial.method == "HEAD" else "GET"
        hop.body = Empty()
        hop.remove("Content-Type")
        hop.remove("Transfer-Encoding")
        hop.set("Content-Length", "0")
        return hop
    if initial.method in SAFE_METHODS or await _confirm(confirm_redirect, current, response):
        return initial.clone()
    return None


def follow_redirects(
    pipeline: Pipeline,
    *,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    confirm_redirect: ConfirmRedirect | None = None,
) -> Pipeline:
    """
    Follow 3xx responses through `pipeline`.

    301, 302 and 303 are re-issued as GET (HEAD stays HEAD) with the body
    dropped. 307 and 308 keep method and body, which is only done for GET and
    HEAD unless `confirm_redirect(request, response)` returns true; otherwise
    the redirect response itself is returned. More than `max_redirects` hops
    raise `MaxRedirectsError`.
    """

    async def redirect_pipeline(req: Request) -> Response:
        initial = req.clone()
        current = req
        redirects = 0

        while True:
            response = await pipeline(current)

            policy = classify_redirect(response.status)
            location = response.get("Location")
            if policy is None or not location:
                return response

            url = str(httpx.URL(current.url).join(location))

            # The finished hop must not make the request look complete.
            target = req.origin
            target.download_length = None
            target.downloaded_bytes = 0

            try:
                hop = await _next_hop(policy, initial, current, response, confirm_redirect)
            except BaseException:
                await response.close()
                raise
            if hop is None:
                return response

            await response.close()

            if isinstance(hop.body, Stream):
                raise BodyError("Unable to replay a streamed request body on redirect", req)

            redirects += 1
            if redirects > max_redirects:
                raise MaxRedirectsError(f"Maximum redirects exceeded: {max_redirects}", req)
            if req.aborted:
                raise req.abort_error()

            logger.debug(f"Redirecting {current.method} {current.url} ({response.status}) to {url}")
            hop.url = url
            hop.origin = req.origin
            req.emit("redirect", url)
            current = hop

    return redirect_pipeline
