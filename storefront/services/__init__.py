# SPDX-License-Identifier: Apache-2.0
"""Role service factory."""
from __future__ import annotations

from typing import Callable

from storefront.config import ServiceConfig

from .base import RoleService

SERVICE_TYPES: dict[str, Callable[..., RoleService]] = {}


def register(service_type: str, factory: Callable[..., RoleService]) -> None:
    SERVICE_TYPES[service_type] = factory


def build_service(cfg: ServiceConfig) -> RoleService:
    if cfg.type not in SERVICE_TYPES:
        raise ValueError(f"unknown service type '{cfg.type}'")
    return SERVICE_TYPES[cfg.type](name=cfg.role, **cfg.options)


def build_services(service_defs: dict[str, ServiceConfig]) -> dict[str, RoleService]:
    return {role: build_service(cfg) for role, cfg in service_defs.items()}


from .cart import CartService
from .order import OrderService
from .payment import PaymentService
from .restaurant import RestaurantService

register("restaurant", lambda name, **opts: RestaurantService(name, **opts))
register("cart", lambda name, **opts: CartService(name, **opts))
register("payment", lambda name, **opts: PaymentService(name, **opts))
register("order", lambda name, **opts: OrderService(name, **opts))
