"""Body Parser Middleware — decodes JSON and URL-encoded request bodies up front.

Invariants:
    - request.state.body is always set: parsed dict/list for JSON, dict for
      URL-encoded forms, {} for anything else or an empty body
    - Malformed JSON → 400, oversized body → 413, both via the error formatter
    - A body over the limit is never buffered whole: a declared Content-Length
      over the limit is rejected before reading, and a streamed body is cut off
      as soon as the running total passes the limit
    - Downstream handlers can still read the raw body (it is replayed once)

Design Decisions:
    - Plain ASGI middleware rather than BaseHTTPMiddleware, so the body can be
      consumed chunk by chunk and handed on unchanged
    - Only application/json and application/x-www-form-urlencoded are parsed
    - Form keys use bracket nesting: a[b]=1 → {"a": {"b": "1"}}, a[]=1 → {"a": ["1"]};
      repeated plain keys collect into lists, single keys stay scalar
"""

import json
import re
from typing import Any
from urllib.parse import parse_qsl

from fastapi import status
from starlette.requests import ClientDisconnect, Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.api.error_handlers import build_error_response
from app.core.errors import AppError

JSON_MEDIA_TYPE = "application/json"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"

# Bracketed segments beyond this depth keep the key flat
MAX_FORM_DEPTH = 5

_BRACKET_SEGMENT = re.compile(r"\[([^\[\]]*)\]")


class BodyParserMiddleware:
    """Parse request bodies into request.state.body before routing."""

    def __init__(self, app: ASGIApp, *, limit_bytes: int, environment: str):
        self.app = app
        self._limit_bytes = limit_bytes
        self._environment = environment

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        request.state.body = {}
        media_type = _media_type(request)
        if media_type not in (JSON_MEDIA_TYPE, FORM_MEDIA_TYPE):
            await self.app(scope, receive, send)
            return

        try:
            raw = await self._read_body(request, receive)
            if raw:
                request.state.body = (
                    _parse_json(raw) if media_type == JSON_MEDIA_TYPE
                    else _parse_form(raw)
                )
        except ClientDisconnect:
            return
        except AppError as exc:
            response = build_error_response(request, exc, self._environment)
            await response(scope, receive, send)
            return
        await self.app(scope, _replay(raw, receive), send)

    async def _read_body(self, request: Request, receive: Receive) -> bytes:
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > self._limit_bytes:
            raise self._too_large()

        chunks: list[bytes] = []
        total = 0
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                raise ClientDisconnect()
            chunk = message.get("body", b"")
            total += len(chunk)
            if total > self._limit_bytes:
                raise self._too_large()
            chunks.append(chunk)
            more_body = message.get("more_body", False)
        return b"".join(chunks)

    def _too_large(self) -> AppError:
        return AppError(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            f"Request body exceeds {self._limit_bytes} bytes",
            code="PAYLOAD_TOO_LARGE",
        )


def _replay(raw: bytes, receive: Receive) -> Receive:
    """Receive callable that hands the consumed body on once, then defers to the client."""
    sent = False

    async def replay_receive() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": raw, "more_body": False}
        return await receive()

    return replay_receive


def _media_type(request: Request) -> str:
    content_type = request.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower()


def _parse_json(raw: bytes):
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise AppError(
            status.HTTP_400_BAD_REQUEST,
            "Malformed JSON in request body",
            code="INVALID_JSON",
        ) from exc


def _parse_form(raw: bytes) -> dict:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise AppError(
            status.HTTP_400_BAD_REQUEST,
            "Form body is not valid UTF-8",
            code="INVALID_FORM",
        ) from exc

    body: dict[str, Any] = {}
    for key, value in parse_qsl(text, keep_blank_values=True):
        _assign(body, _split_key(key), value)
    return body


def _split_key(key: str) -> list[str]:
    """'a[b][]' → ['a', 'b', '']; keys that are not well-formed stay whole."""
    head, bracket, _ = key.partition("[")
    if not bracket or not head:
        return [key]
    segments = [head]
    position = len(head)
    for match in _BRACKET_SEGMENT.finditer(key, position):
        if match.start() != position:
            return [key]
        segments.append(match.group(1))
        position = match.end()
    if position != len(key) or len(segments) > MAX_FORM_DEPTH + 1:
        return [key]
    return segments


def _assign(target: dict, segments: list[str], value: str) -> None:
    key, rest = segments[0], segments[1:]
    if not rest:
        _collect(target, key, value)
        return
    if rest == [""]:
        existing = target.get(key)
        if isinstance(existing, list):
            existing.append(value)
        elif existing is None:
            target[key] = [value]
        else:
            target[key] = [existing, value]
        return
    child = target.get(key)
    if not isinstance(child, dict):
        # A nested key replaces a scalar or list already stored under the same name
        child = {}
        target[key] = child
    _assign(child, rest, value)


def _collect(target: dict, key: str, value: str) -> None:
    existing = target.get(key)
    if existing is None:
        target[key] = value
    elif isinstance(existing, list):
        existing.append(value)
    elif isinstance(existing, dict):
        target[key] = value
    else:
        target[key] = [existing, value]
