from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from starlette.requests import Request

from mcp_http.server.exceptions import TransportError

DEFAULT_MAX_BODY_BYTES = 1_000_000


@dataclass(frozen=True)
class BodyTooLargeError(Exception):
    max_body_bytes: int

    def __str__(self) -> str:
        return f"Request body exceeds max_body_bytes={self.max_body_bytes}"


async def read_request_body(request: Request, *, max_body_bytes: int | None = DEFAULT_MAX_BODY_BYTES) -> bytes:
    """Read an HTTP request body with a hard cap.

    Notes:
    - This avoids unbounded buffering of the request body in Python.
    - If the body exceeds max_body_bytes, this raises BodyTooLargeError as soon
      as possible.
    """
    if max_body_bytes is None:
        return await request.body()

    if max_body_bytes <= 0:
        raise ValueError("max_body_bytes must be positive or None")

    # Fast-path: reject based on Content-Length when provided.
    content_length = request.headers.get("content-length")
    if content_length is not None:
        try:
            declared = int(content_length)
        except ValueError:
            # Ignore invalid Content-Length; we'll enforce while streaming.
            declared = None
        if declared is not None and declared > max_body_bytes:
            raise BodyTooLargeError(max_body_bytes)

    body = bytearray()
    async for chunk in request.stream():
        if not chunk:
            continue

        # Never buffer more than max_body_bytes bytes.
        remaining = max_body_bytes - len(body)
        if len(chunk) > remaining:
            raise BodyTooLargeError(max_body_bytes)

        body.extend(chunk)

    return bytes(body)


async def read_json_body(request: Request, *, max_body_bytes: int | None = DEFAULT_MAX_BODY_BYTES) -> Any:
    """Read and decode a JSON body.

    Raises TransportError 413 ``payload_too_large`` or 400 ``invalid_json``.
    """
    try:
        raw = await read_request_body(request, max_body_bytes=max_body_bytes)
    except BodyTooLargeError as e:
        raise TransportError(413, "payload_too_large", str(e)) from e

    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise TransportError(400, "invalid_json", f"Request body is not valid JSON: {e}") from e
