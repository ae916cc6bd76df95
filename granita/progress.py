"""
Terminal progress bars for requests, rendered with rich.

Every tracked request gets two bars, one per direction. They follow the
request's `uploaded_bytes`/`downloaded_bytes` counters, restart on each
redirect hop and are labelled when the request is aborted.

Example:
    ```python
    with ProgressDisplay() as display:
        req = get("https://example.com/large.bin")
        display.track(req)
        response = await req
        data = await response.read()
    ```
"""

from __future__ import annotations

import sys
from contextlib import AbstractContextManager
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Literal

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    ProgressColumn,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)

from .types import Middleware, Next

if TYPE_CHECKING:
    from .request import Request
    from .response import Response

ProgressMode = Literal["auto", "always", "never"]

UPLOAD = "upload"
DOWNLOAD = "download"


@dataclass(frozen=True, slots=True)
class ProgressSettings:
    """
    Attributes:
        mode: `"auto"` shows bars only on a terminal.
        quiet: Suppress bars regardless of `mode`.
        transient: Clear the bars when the display exits.
    """

    mode: ProgressMode = "auto"
    quiet: bool = False
    transient: bool = True


@dataclass(frozen=True, slots=True)
class TrackedRequest:
    upload: TaskID
    download: TaskID


def _columns() -> tuple[ProgressColumn, ...]:
    return (
        TextColumn("{task.fields[direction]:>8}"),
        TextColumn("{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
    )


def _label(req: Request) -> str:
    return f"{req.method} {req.url}"


class _Tracker:
    """Feeds one request's counters into its pair of rich tasks."""

    def __init__(self, progress: Progress, req: Request, description: str | None):
        self.progress = progress
        self.fixed = description is not None
        self.label = description or _label(req)
        self.tasks = TrackedRequest(
            upload=progress.add_task(self.label, total=None, direction=UPLOAD),
            download=progress.add_task(self.label, total=None, direction=DOWNLOAD),
        )

    def _describe(self, description: str) -> None:
        self.progress.update(self.tasks.upload, description=description)
        self.progress.update(self.tasks.download, description=description)

    def on_progress(self, req: Request) -> None:
        self.progress.update(self.tasks.upload, total=req.upload_length, completed=req.uploaded_bytes)
        self.progress.update(self.tasks.download, total=req.download_length, completed=req.downloaded_bytes)

    def on_redirect(self, req: Request, url: str) -> None:
        if not self.fixed:
            self.label = f"{req.method} {url}"
            self._describe(self.label)
        self.progress.reset(self.tasks.upload)
        self.progress.reset(self.tasks.download)

    def on_abort(self, req: Request) -> None:
        reason = "timed out" if req.timedout else "aborted"
        self._describe(f"{self.label} ({reason})")
        self.progress.stop_task(self.tasks.upload)
        self.progress.stop_task(self.tasks.download)


class ProgressDisplay(AbstractContextManager["ProgressDisplay"]):
    def __init__(self, *, settings: ProgressSettings | None = None, console: Console | None = None):
        self._settings = settings or ProgressSettings()
        self._console = console or Console(file=sys.stderr)
        self._progress: Progress | None = None

    def __enter__(self) -> ProgressDisplay:
        if self.enabled:
            self._progress = Progress(
                *_columns(),
                console=self._console,
                transient=self._settings.transient,
            )
            self._progress.__enter__()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc, tb)
        self._progress = None

    @property
    def enabled(self) -> bool:
        settings = self._settings
        if settings.quiet or settings.mode == "never":
            return False
        return settings.mode == "always" or self._console.is_terminal

    @property
    def progress(self) -> Progress | None:
        return self._progress

    def track(self, req: Request, *, description: str | None = None) -> TrackedRequest | None:
        """
        Show upload and download bars for `req`.

        Listeners are attached with `Request.on`, so a request may be tracked
        after it has started. Returns `None` when the display is disabled.
        """
        progress = self._progress
        if progress is None:
            return None

        tracker = _Tracker(progress, req, description)
        req.on("progress", tracker.on_progress)
        req.on("redirect", lambda url: tracker.on_redirect(req, url))
        req.on("abort", lambda: tracker.on_abort(req))
        tracker.on_progress(req)
        return tracker.tasks

    def middleware(self) -> Middleware:
        """Middleware that tracks every request passing through it."""

        async def middleware(req: Request, next: Next) -> Response:
            self.track(req)
            return await next()

        return middleware
