# SPDX-License-Identifier: Apache-2.0
"""Transport proxy forwarding actions to a remote role service over one multiplexed TCP connection."""
from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from typing import Any, Dict

from storefront.config import RoleBinding
from storefront.messages import ActionRequest
from storefront.metrics import TRANSPORT_INFLIGHT
from storefront.serialization import FrameError, encode_frame, read_frame, request_frame

from .base import TransportError, error_from_wire

log = logging.getLogger(__name__)


class TransportProxy:
    """Callable handler standing in for every command of a remote role."""

    def __init__(self, binding: RoleBinding):
        self.binding = binding
        self.role = binding.role
        self.timeout = binding.timeout_s
        self._ids = itertools.count(1)
        self._inflight: Dict[int, asyncio.Future] = {}
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._read_task: asyncio.Task | None = None
        self._write_lock = asyncio.Lock()
        self._closed_reason: str | None = None

    @property
    def connected(self) -> bool:
        return self._writer is not None and self._closed_reason is None

    async def connect(self) -> None:
        if self._writer is not None:
            return
        host, port = self.binding.host, self.binding.port
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as exc:
            raise TransportError(f"role {self.role}: cannot connect to {host}:{port}: {exc}") from exc
        self._read_task = asyncio.create_task(self._read_loop(), name=f"transport-{self.role}")
        log.info("transport for role %s connected to %s:%s", self.role, host, port)

    async def close(self) -> None:
        if self._read_task:
            self._read_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._read_task
            self._read_task = None
        if self._writer:
            self._writer.close()
            with contextlib.suppress(Exception):
                await self._writer.wait_closed()
            self._writer = None
        self._fail_inflight("transport closed")

    async def __call__(self, request: ActionRequest, timeout: float | None = None) -> Any:
        if not self.connected:
            raise TransportError(f"role {self.role}: {self._closed_reason or 'not connected'}")
        correlation_id = next(self._ids)
        reply: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[correlation_id] = reply
        TRANSPORT_INFLIGHT.labels(self.role).inc()
        try:
            frame = encode_frame(request_frame(correlation_id, request.tag.as_dict(), request.payload))
            async with self._write_lock:
                self._writer.write(frame)
                await self._writer.drain()
            message = await asyncio.wait_for(reply, timeout=timeout or self.timeout)
        except asyncio.TimeoutError as exc:
            raise TransportError(
                f"role {self.role}: {request.tag} timed out after {timeout or self.timeout}s"
            ) from exc
        except (OSError, FrameError) as exc:
            raise TransportError(f"role {self.role}: {exc}") from exc
        finally:
            self._inflight.pop(correlation_id, None)
            TRANSPORT_INFLIGHT.labels(self.role).dec()
        error = message.get("error")
        if error:
            raise error_from_wire(error.get("type", "Exception"), error.get("message", ""))
        return message.get("payload")

    async def _read_loop(self) -> None:
        try:
            while True:
                message = await read_frame(self._reader)
                reply = self._inflight.get(message["id"])
                if reply is None or reply.done():
                    log.debug("role %s dropping late reply %s", self.role, message["id"])
                    continue
                reply.set_result(message)
        except asyncio.IncompleteReadError:
            self._fail_inflight("connection closed by peer")
        except (OSError, FrameError) as exc:
            log.exception("transport for role %s failed", self.role)
            self._fail_inflight(f"connection failed: {exc}")

    def _fail_inflight(self, reason: str) -> None:
        if self._closed_reason is None:
            log.warning("transport for role %s down: %s", self.role, reason)
        self._closed_reason = self._closed_reason or reason
        for reply in self._inflight.values():
            if not reply.done():
                reply.set_exception(TransportError(f"role {self.role}: {reason}"))
