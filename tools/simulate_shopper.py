#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0
"""Drive the storefront HTTP surface with synthetic shoppers for manual testing."""
from __future__ import annotations

import argparse
import asyncio
import random

import aiohttp


async def shop(session: aiohttp.ClientSession, base_url: str, user: str, items: int) -> None:
    headers = {"X-Authenticated-User": user}
    async with session.get(f"{base_url}/", headers=headers) as resp:
        resp.raise_for_status()
        home = await resp.json()
    menu = [(r["id"], item["id"]) for r in home["restaurants"] for item in r["menu"]]
    for restaurant_id, item_id in random.sample(menu, k=min(items, len(menu))):
        async with session.post(
            f"{base_url}/cart", json={"restaurantId": restaurant_id, "itemId": item_id}, headers=headers
        ) as resp:
            resp.raise_for_status()
            cart = await resp.json()
    print(f"{user}: cart total {cart['total']}")
    async with session.post(f"{base_url}/order", headers=headers, allow_redirects=False) as resp:
        if resp.status == 302:
            print(f"{user}: order confirmed")
        else:
            print(f"{user}: {resp.status} {await resp.text()}")


async def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--url", default="http://127.0.0.1:3000")
    ap.add_argument("--shoppers", type=int, default=3)
    ap.add_argument("--items", type=int, default=2)
    args = ap.parse_args()

    async with aiohttp.ClientSession() as session:
        await asyncio.gather(
            *(shop(session, args.url.rstrip("/"), f"shopper-{idx}", args.items) for idx in range(args.shoppers))
        )


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
