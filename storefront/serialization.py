# SPDX-License-Identifier: Apache-2.0
"""Length-prefixed JSON frames exchanged between transport proxies and service listeners."""
from __future__ import annotations

import asyncio
import json
import struct
from decimal import Decimal
from typing import Any, Dict

HEADER = struct.Struct("<I")
MAX_FRAME = 4 * 1024 * 1024


class FrameError(ValueError):
    pass


def _default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"cannot serialize {type(value)}")


def encode_frame(message: Dict[str, Any]) -> bytes:
    body = json.dumps(message, default=_default, separators=(",", ":")).encode("utf-8")
    if len(body) > MAX_FRAME:
        raise FrameError(f"frame of {len(body)} bytes exceeds limit {MAX_FRAME}")
    return HEADER.pack(len(body)) + body


def decode_frame(body: bytes) -> Dict[str, Any]:
    try:
        message = json.loads(body.decode("utf-8"))
    except ValueError as exc:
        raise FrameError(f"undecodable frame: {exc}") from exc
    if not isinstance(message, dict) or "id" not in message:
        raise FrameError("frame must be an object carrying an 'id'")
    return message


async def read_frame(reader: asyncio.StreamReader) -> Dict[str, Any]:
    """Read one frame; raises `asyncio.IncompleteReadError` when the peer hangs up."""
    (length,) = HEADER.unpack(await reader.readexactly(HEADER.size))
    if length > MAX_FRAME:
        raise FrameError(f"peer announced {length} byte frame, limit is {MAX_FRAME}")
    return decode_frame(await reader.readexactly(length))


def request_frame(correlation_id: int, tag: Dict[str, str], payload: Any) -> Dict[str, Any]:
    return {"id": correlation_id, "tag": tag, "payload": payload}


def response_frame(correlation_id: int, payload: Any = None, error: BaseException | None = None) -> Dict[str, Any]:
    if error is None:
        return {"id": correlation_id, "payload": payload}
    return {"id": correlation_id, "error": {"type": type(error).__name__, "message": str(error)}}
