# SPDX-License-Identifier: Apache-2.0
"""Storefront runners: the web front end and standalone role service hosts."""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Dict

from aiohttp import web
from prometheus_client import start_http_server

from storefront import services
from storefront.actions.dispatcher import ActionDispatcher
from storefront.actions.router import PatternRouter
from storefront.actions.transport import TransportProxy
from storefront.config import StorefrontConfig, load_config
from storefront.listener import ServiceListener
from storefront.services.base import RoleService
from storefront.web import create_app

log = logging.getLogger("storefront")


class Storefront:
    """Long-lived routing state shared by every request's dispatcher."""

    def __init__(self, config: StorefrontConfig):
        self.config = config
        self.local = PatternRouter("local")
        self.remote = PatternRouter("remote")
        self.services: Dict[str, RoleService] = {}
        self.proxies: Dict[str, TransportProxy] = {}

    async def start(self) -> None:
        try:
            self.services = services.build_services(self.config.local_services())
            for service in self.services.values():
                await service.start()
                service.bind(self.local)
            for binding in self.config.bindings.values():
                proxy = TransportProxy(binding)
                await proxy.connect()
                self.proxies[binding.role] = proxy
                self.remote.register({"role": binding.role}, proxy)
        except BaseException:
            log.error("storefront failed to start; releasing connections")
            await self.stop()
            raise
        log.info("storefront started with %d local services, %d remote roles", len(self.services), len(self.proxies))

    async def stop(self) -> None:
        await asyncio.gather(*(proxy.close() for proxy in self.proxies.values()))
        self.proxies.clear()
        for service in self.services.values():
            await service.stop()

    def session(self) -> ActionDispatcher:
        return ActionDispatcher(self.local, self.remote)


class RoleServer:
    """Hosts a single role service behind a TCP listener on its binding port."""

    def __init__(self, config: StorefrontConfig, role: str):
        if role not in config.services:
            raise ValueError(f"role '{role}' has no service definition")
        if role not in config.bindings:
            raise ValueError(f"role '{role}' has no binding to listen on")
        self.role = role
        self.binding = config.bindings[role]
        self.service = services.build_service(config.services[role])
        self.router = PatternRouter(role)
        self.listener = ServiceListener(self.router, host=self.binding.host, port=self.binding.port)

    async def start(self) -> None:
        await self.service.start()
        self.service.bind(self.router)
        await self.listener.start()

    async def stop(self) -> None:
        await self.listener.stop()
        await self.service.stop()


async def _wait_for_shutdown() -> None:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows fallback
            pass
    await stop_event.wait()
    log.info("shutdown requested")


async def main_async(args) -> None:
    config = load_config(args.config)
    if args.role:
        server = RoleServer(config, args.role)
        try:
            await server.start()
            await _wait_for_shutdown()
        finally:
            await server.stop()
        return

    storefront = Storefront(config)
    await storefront.start()
    runner = web.AppRunner(create_app(storefront.session, config.web))
    try:
        await runner.setup()
        site = web.TCPSite(runner, config.web.host, config.web.port)
        await site.start()
        start_http_server(config.metrics_port)
        log.info("web front end listening on %s:%s", config.web.host, config.web.port)
        await _wait_for_shutdown()
    finally:
        await runner.cleanup()
        await storefront.stop()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    parser = argparse.ArgumentParser(description="Storefront web front end and role services")
    parser.add_argument("--config", default="config/storefront.yaml")
    parser.add_argument("--role", help="host this role service instead of the web front end")
    args = parser.parse_args()
    try:
        asyncio.run(main_async(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
