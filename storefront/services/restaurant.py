# SPDX-License-Identifier: Apache-2.0
"""Restaurant catalogue service."""
from __future__ import annotations

import copy
from typing import Any, Dict, List

from storefront.actions.base import Handler, NotFound
from storefront.messages import ActionRequest

from .base import RoleService

DEFAULT_CATALOGUE: List[Dict[str, Any]] = [
    {
        "id": "1",
        "name": "Pasta Palace",
        "menu": [
            {"id": "1", "name": "Spaghetti Carbonara", "price": 12.5},
            {"id": "2", "name": "Penne Arrabbiata", "price": 10.0},
        ],
    },
    {
        "id": "2",
        "name": "Taco Town",
        "menu": [
            {"id": "1", "name": "Carnitas Taco", "price": 3.75},
            {"id": "2", "name": "Churros", "price": 4.25},
        ],
    },
]


class RestaurantService(RoleService):
    def __init__(self, name: str, **kwargs):
        super().__init__(name, **kwargs)
        self._restaurants: List[Dict[str, Any]] = [
            _normalise(r) for r in kwargs.get("restaurants") or DEFAULT_CATALOGUE
        ]

    def commands(self) -> Dict[str, Handler]:
        return {"get": self.get, "item": self.item}

    async def get(self, request: ActionRequest) -> List[Dict[str, Any]]:
        # the catalogue is the same for every shopper; userId only identifies the caller
        request.require("userId")
        return copy.deepcopy(self._restaurants)

    async def item(self, request: ActionRequest) -> Dict[str, Any]:
        restaurant_id, item_id = (str(v) for v in request.require("restaurantId", "itemId"))
        for restaurant in self._restaurants:
            if restaurant["id"] != restaurant_id:
                continue
            for item in restaurant["menu"]:
                if item["id"] == item_id:
                    summary = {k: v for k, v in restaurant.items() if k != "menu"}
                    return {"restaurant": summary, "item": dict(item)}
            raise NotFound(f"restaurant {restaurant_id} has no item {item_id}")
        raise NotFound(f"no restaurant {restaurant_id}")


def _normalise(restaurant: Dict[str, Any]) -> Dict[str, Any]:
    menu = [
        {**item, "id": str(item["id"]), "price": float(item["price"])}
        for item in restaurant.get("menu", [])
    ]
    return {**restaurant, "id": str(restaurant["id"]), "menu": menu}
