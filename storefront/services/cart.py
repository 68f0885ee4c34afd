# SPDX-License-Identifier: Apache-2.0
"""Per-user shopping cart service."""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List

from storefront.actions.base import Handler, InvalidPayload
from storefront.messages import ActionRequest

from .base import RoleService


class CartService(RoleService):
    def __init__(self, name: str, **kwargs):
        super().__init__(name, **kwargs)
        self._carts: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    def commands(self) -> Dict[str, Handler]:
        return {"get": self.get, "add": self.add, "remove": self.remove, "clear": self.clear}

    def snapshot(self, user_id: str) -> Dict[str, Any]:
        items = [dict(line) for line in self._carts.get(user_id, [])]
        total = round(sum(line["itemPrice"] for line in items), 2)
        return {"userId": user_id, "items": items, "total": total}

    async def get(self, request: ActionRequest) -> Dict[str, Any]:
        return self.snapshot(request.require("userId"))

    async def add(self, request: ActionRequest) -> Dict[str, Any]:
        user_id, restaurant_name, item_name, price = request.require(
            "userId", "restaurantName", "itemName", "itemPrice"
        )
        try:
            price = float(price)
        except (TypeError, ValueError) as exc:
            raise InvalidPayload(f"itemPrice must be numeric, got {price!r}") from exc
        line = {"restaurantName": restaurant_name, "itemName": item_name, "itemPrice": price}
        for key in ("restaurantId", "itemId"):
            if request.payload.get(key) is not None:
                line[key] = str(request.payload[key])
        self._carts[user_id].append(line)
        return self.snapshot(user_id)

    async def remove(self, request: ActionRequest) -> Dict[str, Any]:
        user_id, restaurant_id, item_id = request.require("userId", "restaurantId", "itemId")
        lines = self._carts.get(user_id, [])
        for idx, line in enumerate(lines):
            if line.get("restaurantId") == str(restaurant_id) and line.get("itemId") == str(item_id):
                del lines[idx]
                break
        return self.snapshot(user_id)

    async def clear(self, request: ActionRequest) -> Dict[str, Any]:
        user_id = request.require("userId")
        self._carts.pop(user_id, None)
        return self.snapshot(user_id)
