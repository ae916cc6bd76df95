"""
Redirect policies.

Maps 3xx status codes to how a redirect is re-issued. The table is applied
by `granita.redirects.follow_redirects`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import ConfirmRedirect


class RedirectPolicy(Enum):
    """How a redirect response is followed."""

    FOLLOW_WITH_GET = "follow_with_get"
    FOLLOW_WITH_CONFIRMATION = "follow_with_confirmation"


REDIRECT_STATUS: dict[int, RedirectPolicy] = {
    301: RedirectPolicy.FOLLOW_WITH_GET,
    302: RedirectPolicy.FOLLOW_WITH_GET,
    303: RedirectPolicy.FOLLOW_WITH_GET,
    307: RedirectPolicy.FOLLOW_WITH_CONFIRMATION,
    308: RedirectPolicy.FOLLOW_WITH_CONFIRMATION,
}

SAFE_METHODS = frozenset({"GET", "HEAD"})

DEFAULT_MAX_REDIRECTS = 5


def classify_redirect(status: int) -> RedirectPolicy | None:
    """Return the redirect policy for `status`, or `None` if it isn't a redirect."""
    return REDIRECT_STATUS.get(status)


@dataclass(frozen=True, slots=True)
class RedirectOptions:
    """Policy bundle for redirect following."""

    follow: bool = True
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    confirm_redirect: ConfirmRedirect | None = None

    def __post_init__(self) -> None:
        if self.max_redirects < 0:
            raise ValueError("max_redirects must be >= 0")
