# SPDX-License-Identifier: Apache-2.0
"""Role service base class: a named set of command handlers owning its own data."""
from __future__ import annotations

import abc
import logging
from typing import Dict

from storefront.actions.base import Handler
from storefront.actions.router import PatternRouter

log = logging.getLogger(__name__)


class RoleService(abc.ABC):
    """Handlers are registered under `role:<name>,cmd:<command>`."""

    def __init__(self, name: str, **kwargs):
        self.name = name
        self.options = kwargs

    async def start(self) -> None:
        """Optional async initialisation."""

    async def stop(self) -> None:
        """Optional async teardown."""

    @abc.abstractmethod
    def commands(self) -> Dict[str, Handler]:
        raise NotImplementedError

    def bind(self, router: PatternRouter) -> None:
        for cmd, handler in self.commands().items():
            router.register({"role": self.name, "cmd": cmd}, handler)
        log.info("service %s bound %d commands to router %s", self.name, len(self.commands()), router.name)
