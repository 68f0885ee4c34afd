# SPDX-License-Identifier: Apache-2.0
"""Shared fixtures for storefront tests."""
from __future__ import annotations

import asyncio
from typing import Any, List

import pytest

from storefront.actions.dispatcher import ActionDispatcher
from storefront.actions.router import PatternRouter
from storefront.messages import ActionRequest, ActionTag
from storefront.services.cart import CartService
from storefront.services.order import OrderService
from storefront.services.payment import PaymentService
from storefront.services.restaurant import RestaurantService


class RecordingHandler:
    """Handler used in tests to capture requests and answer after an optional delay."""

    def __init__(self, value: Any = None, *, delay: float = 0.0, error: BaseException | None = None):
        self.value = value
        self.delay = delay
        self.error = error
        self.requests: List[ActionRequest] = []

    async def __call__(self, request: ActionRequest) -> Any:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


class RecordingDispatcher(ActionDispatcher):
    """Dispatcher that remembers the tag of every action it issued."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tags: List[str] = []

    def dispatch(self, tag, payload=None, continuation=None):
        self.tags.append(str(ActionTag.of(tag)))
        return super().dispatch(tag, payload, continuation)


@pytest.fixture
def cart_service() -> CartService:
    return CartService("cart")


@pytest.fixture
def local_router(cart_service) -> PatternRouter:
    router = PatternRouter("local")
    for service in (RestaurantService("restaurant"), cart_service, PaymentService("payment", decline_over=100), OrderService("order")):
        service.bind(router)
    return router
