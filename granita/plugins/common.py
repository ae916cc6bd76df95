"""
Middleware shared by every transport: header defaults, request body encoding
and response body parsing.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

import httpx
import pydantic_core
from pydantic import BaseModel, ValidationError

from ..body import Bytes, Data, Empty, Text
from ..exceptions import ParseError, StringifyError
from ..types import Middleware, Next

if TYPE_CHECKING:
    from ..request import Request
    from ..response import Response

JSON_MIME = re.compile(r"^application/(?:[\w!#$%&*`\-.^~]*\+)?json$", re.IGNORECASE)
URL_ENCODED_MIME = re.compile(r"^application/x-www-form-urlencoded$", re.IGNORECASE)
FORM_MIME = re.compile(r"^multipart/form-data$", re.IGNORECASE)

JSON_PROTECTION_PREFIX = re.compile(r"^\)\]\}',?\n")

ParseType: TypeAlias = Literal["json", "urlencoded"]
PARSE_TYPES: tuple[ParseType, ...] = ("json", "urlencoded")


def headers() -> Middleware:
    """Default `Accept` to `*/*` and drop any user supplied `Host`."""

    async def middleware(req: Request, next: Next) -> Response:
        if not req.get("Accept"):
            req.set("Accept", "*/*")
        req.remove("Host")
        return await next()

    return middleware


def _dump_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return pydantic_core.to_json(value).decode("utf-8")


def _is_file_field(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray, tuple)) or hasattr(value, "read")


def _encode_form(req: Request, value: Any) -> None:
    if not isinstance(value, Mapping):
        raise TypeError("multipart/form-data bodies must be mappings")
    data = {key: item for key, item in value.items() if not _is_file_field(item)}
    files = {key: item for key, item in value.items() if _is_file_field(item)}
    encoded = httpx.Request(req.method, req.url, data=data, files=files or None)
    req.body = Bytes(encoded.read())
    req.set("Content-Type", encoded.headers["Content-Type"])


def stringify() -> Middleware:
    """
    Encode structured request bodies.

    `Data` bodies are serialized according to the request Content-Type, which
    defaults to JSON. Pydantic models are serialized with `model_dump_json()`.
    """

    async def middleware(req: Request, next: Next) -> Response:
        body = req.body
        if not isinstance(body, Data):
            return await next()

        content_type = req.type()
        if not content_type:
            content_type = "application/json"
            req.type(content_type)

        try:
            if JSON_MIME.match(content_type):
                req.body = Text(_dump_json(body.value))
            elif URL_ENCODED_MIME.match(content_type):
                req.body = Text(str(httpx.QueryParams(body.value)))
            elif FORM_MIME.match(content_type):
                _encode_form(req, body.value)
        except (TypeError, ValueError) as e:
            raise StringifyError(f"Unable to stringify request body: {e}", req, cause=e) from e

        return await next()

    return middleware


def _parse_urlencoded(text: str) -> dict[str, str | list[str]]:
    params = httpx.QueryParams(text)
    parsed: dict[str, str | list[str]] = {}
    for key in params.keys():
        values = params.get_list(key)
        parsed[key] = values[0] if len(values) == 1 else values
    return parsed


def _match(accepted: Sequence[ParseType], content_type: str) -> ParseType | None:
    for parse_type in accepted:
        pattern = JSON_MIME if parse_type == "json" else URL_ENCODED_MIME
        if pattern.match(content_type):
            return parse_type
    return None


def parse(
    types: ParseType | Sequence[ParseType],
    strict: bool = True,
    model: type[BaseModel] | None = None,
) -> Middleware:
    """
    Decode response bodies into `Data`.

    Args:
        types: Formats to accept, `"json"` and/or `"urlencoded"`.
        strict: Raise `ParseError` for responses of any other type. When false
            such responses pass through unread.
        model: Optional pydantic model the decoded value is validated into.

    Empty bodies always decode to `None`.
    """
    accepted: list[ParseType] = [types] if isinstance(types, str) else list(types)
    for parse_type in accepted:
        if parse_type not in PARSE_TYPES:
            raise ValueError(f"Unexpected parse type: {parse_type}")

    async def middleware(req: Request, next: Next) -> Response:
        response = await next()
        body = response.body

        if isinstance(body, Data):
            return response
        if isinstance(body, Empty):
            response.body = Data(None)
            return response

        content_type = response.type()
        matched = _match(accepted, content_type) if content_type is not None else None

        if matched is None and not strict and content_type is not None:
            return response

        try:
            text = await response.text()
        except UnicodeDecodeError as e:
            raise ParseError("Unable to parse non-string response body", req, cause=e) from e

        if text == "":
            response.body = Data(None)
            return response

        if content_type is None:
            raise ParseError("Unable to parse empty response content type", req)
        if matched is None:
            raise ParseError(f"Unhandled response type: {content_type}", req)

        try:
            if matched == "json":
                value: Any = json.loads(JSON_PROTECTION_PREFIX.sub("", text, count=1))
            else:
                value = _parse_urlencoded(text)
            if model is not None:
                value = model.model_validate(value)
        except ValidationError as e:
            raise ParseError(f"Unable to validate response body: {e}", req, cause=e) from e
        except ValueError as e:
            raise ParseError(f"Unable to parse response body: {e}", req, cause=e) from e

        response.body = Data(value)
        return response

    return middleware
