# SPDX-License-Identifier: Apache-2.0
"""Order record service."""
from __future__ import annotations

import itertools
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List

from storefront.actions.base import Handler
from storefront.messages import ActionRequest

from .base import RoleService


class OrderService(RoleService):
    def __init__(self, name: str, **kwargs):
        super().__init__(name, **kwargs)
        self._ids = itertools.count(1)
        self._orders: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    def commands(self) -> Dict[str, Handler]:
        return {"create": self.create, "get": self.get}

    async def create(self, request: ActionRequest) -> Dict[str, Any]:
        user_id, total = request.require("userId", "total")
        order = {
            "orderId": str(next(self._ids)),
            "userId": user_id,
            "items": list(request.payload.get("items") or []),
            "total": total,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        self._orders[user_id].append(order)
        return dict(order)

    async def get(self, request: ActionRequest) -> List[Dict[str, Any]]:
        return [dict(order) for order in self._orders.get(request.require("userId"), [])]
