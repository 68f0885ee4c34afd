# SPDX-License-Identifier: Apache-2.0
"""Transport proxy against a real loopback service listener."""
from __future__ import annotations

import asyncio
import socket
from contextlib import asynccontextmanager

import pytest

from storefront.actions.base import NoHandlerError, NotFound, RemoteActionError, TransportError
from storefront.actions.dispatcher import ActionDispatcher
from storefront.actions.router import PatternRouter
from storefront.actions.transport import TransportProxy
from storefront.config import RoleBinding
from storefront.listener import ServiceListener
from storefront.messages import ActionRequest, ActionTag
from storefront.serialization import HEADER, read_frame
from storefront.services.restaurant import RestaurantService

from .conftest import RecordingHandler


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@asynccontextmanager
async def remote_role(router: PatternRouter, role: str, timeout_s: float = 1.0):
    """Serve `router` on a loopback port and yield a dispatcher bound to it remotely."""
    listener = ServiceListener(router)
    await listener.start()
    proxy = TransportProxy(RoleBinding(role=role, host="127.0.0.1", port=listener.port, timeout_s=timeout_s))
    await proxy.connect()
    remote = PatternRouter("remote")
    remote.register({"role": role}, proxy)
    try:
        yield ActionDispatcher(PatternRouter("local"), remote), proxy, listener
    finally:
        await proxy.close()
        await listener.stop()


@pytest.mark.asyncio
async def test_remote_round_trip_preserves_tag_and_payload():
    handler = RecordingHandler({"items": [], "total": 0.0})
    router = PatternRouter("cart")
    router.register({"role": "cart", "cmd": "get"}, handler)

    async with remote_role(router, "cart") as (dispatcher, _, _):
        value = await dispatcher.act("role:cart,cmd:get", {"userId": "alice"})

    assert value == {"items": [], "total": 0.0}
    assert handler.requests[0].tag.as_dict() == {"role": "cart", "cmd": "get"}
    assert handler.requests[0].payload == {"userId": "alice"}


@pytest.mark.asyncio
async def test_out_of_order_replies_reach_their_callers():
    router = PatternRouter("cart")
    router.register({"role": "cart", "cmd": "slow"}, RecordingHandler("slow", delay=0.05))
    router.register({"role": "cart", "cmd": "fast"}, RecordingHandler("fast", delay=0.0))

    async with remote_role(router, "cart") as (dispatcher, _, _):
        order = []
        dispatcher.dispatch("role:cart,cmd:slow", continuation=lambda r: order.append(r.value))
        dispatcher.dispatch("role:cart,cmd:fast", continuation=lambda r: order.append(r.value))
        await dispatcher.join()

    assert order == ["fast", "slow"]


@pytest.mark.asyncio
async def test_timeout_is_isolated_to_its_own_action():
    router = PatternRouter("payment")
    router.register({"role": "payment", "cmd": "billCard"}, RecordingHandler({"success": True}, delay=2.0))
    router.register({"role": "payment", "cmd": "ping"}, RecordingHandler("pong"))

    async with remote_role(router, "payment", timeout_s=0.1) as (dispatcher, _, _):
        loop = asyncio.get_running_loop()
        results = {}
        start = loop.time()
        dispatcher.dispatch("role:payment,cmd:billCard", {"total": 1}, lambda r: results.__setitem__("bill", r))
        dispatcher.dispatch("role:payment,cmd:ping", None, lambda r: results.__setitem__("ping", (r, loop.time() - start)))
        await dispatcher.join()
        elapsed = loop.time() - start

    assert isinstance(results["bill"].error, TransportError)
    ping, ping_elapsed = results["ping"]
    assert ping.value == "pong"
    assert ping_elapsed < 0.1
    assert elapsed < 1.0


@pytest.mark.asyncio
async def test_remote_errors_keep_their_kind():
    router = PatternRouter("restaurant")
    RestaurantService("restaurant").bind(router)
    router.register({"role": "restaurant", "cmd": "explode"}, RecordingHandler(error=KeyError("gone")))

    async with remote_role(router, "restaurant") as (dispatcher, _, _):
        with pytest.raises(NotFound):
            await dispatcher.act("role:restaurant,cmd:item", {"restaurantId": "99", "itemId": "1"})
        with pytest.raises(NoHandlerError):
            await dispatcher.act("role:restaurant,cmd:unknown")
        with pytest.raises(RemoteActionError) as excinfo:
            await dispatcher.act("role:restaurant,cmd:explode")

    assert excinfo.value.kind == "KeyError"


@pytest.mark.asyncio
async def test_lost_connection_fails_inflight_and_later_calls():
    router = PatternRouter("cart")
    router.register({"role": "cart", "cmd": "get"}, RecordingHandler({}, delay=1.0))

    async with remote_role(router, "cart", timeout_s=5.0) as (dispatcher, proxy, listener):
        results = []
        dispatcher.dispatch("role:cart,cmd:get", {"userId": "alice"}, results.append)
        await asyncio.sleep(0.05)
        await listener.stop()
        await dispatcher.join()

        assert isinstance(results[0].error, TransportError)
        assert not proxy.connected
        with pytest.raises(TransportError):
            await dispatcher.act("role:cart,cmd:get", {"userId": "alice"})


@pytest.mark.asyncio
async def test_connect_to_closed_port_raises_transport_error():
    proxy = TransportProxy(RoleBinding(role="order", host="127.0.0.1", port=_free_port(), timeout_s=0.5))
    with pytest.raises(TransportError):
        await proxy.connect()


GARBAGE = b"\xff\xfe not json"


@pytest.mark.asyncio
async def test_undecodable_reply_fails_calls_promptly():
    async def reply_with_garbage(reader, writer):
        await read_frame(reader)
        writer.write(HEADER.pack(len(GARBAGE)) + GARBAGE)
        await writer.drain()
        await reader.read()
        writer.close()

    server = await asyncio.start_server(reply_with_garbage, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    proxy = TransportProxy(RoleBinding(role="cart", host="127.0.0.1", port=port, timeout_s=1.5))
    await proxy.connect()
    remote = PatternRouter("remote")
    remote.register({"role": "cart"}, proxy)
    dispatcher = ActionDispatcher(PatternRouter("local"), remote)
    loop = asyncio.get_running_loop()
    try:
        start = loop.time()
        with pytest.raises(TransportError):
            await dispatcher.act("role:cart,cmd:get", {"userId": "alice"})
        assert loop.time() - start < 0.5
        assert proxy.connected is False

        start = loop.time()
        with pytest.raises(TransportError):
            await dispatcher.act("role:cart,cmd:get", {"userId": "alice"})
        assert loop.time() - start < 0.1
    finally:
        await proxy.close()
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_listener_drops_peer_sending_undecodable_frame():
    router = PatternRouter("cart")
    router.register({"role": "cart", "cmd": "get"}, RecordingHandler({"total": 0}))
    listener = ServiceListener(router)
    await listener.start()
    try:
        reader, writer = await asyncio.open_connection("127.0.0.1", listener.port)
        writer.write(HEADER.pack(len(GARBAGE)) + GARBAGE)
        await writer.drain()
        assert await asyncio.wait_for(reader.read(), timeout=1.0) == b""
        writer.close()

        proxy = TransportProxy(RoleBinding(role="cart", host="127.0.0.1", port=listener.port))
        await proxy.connect()
        try:
            assert await proxy(ActionRequest(tag=ActionTag.of("role:cart,cmd:get"))) == {"total": 0}
        finally:
            await proxy.close()
    finally:
        await listener.stop()
