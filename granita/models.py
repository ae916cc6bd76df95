"""
Serializable snapshots of requests and responses.

`Request.to_json()` and `Response.to_json()` return these models; use
`model_dump()` / `model_dump_json()` to get plain data.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .body import Body, Bytes, Data, Text


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        populate_by_name=True,
    )


class RequestJSON(_SnapshotModel):
    url: str
    method: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any | None = None
    timeout: int = 0


class ResponseJSON(_SnapshotModel):
    url: str | None = None
    status: int
    status_text: str = Field("", alias="statusText")
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any | None = None


def snapshot_body(body: Body) -> Any:
    """Body value suitable for a snapshot; streams and empty bodies become `None`."""
    if isinstance(body, (Text, Bytes, Data)):
        return body.value
    return None
