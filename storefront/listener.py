# SPDX-License-Identifier: Apache-2.0
"""TCP listener exposing a pattern router to remote transport proxies."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Set

from storefront.actions.router import PatternRouter
from storefront.messages import ActionRequest, ActionTag
from storefront.serialization import FrameError, encode_frame, read_frame, response_frame

log = logging.getLogger(__name__)


class ServiceListener:
    def __init__(self, router: PatternRouter, host: str = "127.0.0.1", port: int = 0):
        self.router = router
        self.host = host
        self._port = port
        self._server: asyncio.AbstractServer | None = None
        self._connections: Set[asyncio.Task] = set()

    @property
    def port(self) -> int:
        if not self._server:
            raise RuntimeError("listener not started")
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self.host, self._port)
        log.info("listener %s serving %d patterns on %s:%s", self.router.name, len(self.router), self.host, self.port)

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            for task in list(self._connections):
                task.cancel()
            await asyncio.gather(*self._connections, return_exceptions=True)
            await self._server.wait_closed()
            self._server = None

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._connections.add(asyncio.current_task())
        peer = writer.get_extra_info("peername")
        lock = asyncio.Lock()
        calls: Set[asyncio.Task] = set()
        try:
            while True:
                message = await read_frame(reader)
                call = asyncio.create_task(self._serve(message, writer, lock))
                calls.add(call)
                call.add_done_callback(calls.discard)
        except asyncio.IncompleteReadError:
            log.debug("peer %s disconnected", peer)
        except FrameError:
            log.exception("peer %s sent a malformed frame; closing", peer)
        finally:
            for call in calls:
                call.cancel()
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()
            self._connections.discard(asyncio.current_task())

    async def _serve(self, message, writer: asyncio.StreamWriter, lock: asyncio.Lock) -> None:
        correlation_id = message["id"]
        try:
            request = ActionRequest(tag=ActionTag.of(message.get("tag") or {}), payload=message.get("payload") or {})
            handler = self.router.resolve(request.tag)
            reply = response_frame(correlation_id, payload=await handler(request))
        except Exception as exc:
            log.debug("request %s failed: %r", correlation_id, exc)
            reply = response_frame(correlation_id, error=exc)
        try:
            frame = encode_frame(reply)
        except (TypeError, ValueError) as exc:
            log.error("request %s produced an unserializable reply: %s", correlation_id, exc)
            frame = encode_frame(response_frame(correlation_id, error=exc))
        async with lock:
            writer.write(frame)
            with contextlib.suppress(ConnectionError):
                await writer.drain()
