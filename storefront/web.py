# SPDX-License-Identifier: Apache-2.0
"""Thin aiohttp front end translating browser requests into actions."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from aiohttp import web

from storefront.actions.base import ActionError, InvalidPayload, NotFound
from storefront.actions.dispatcher import ActionDispatcher
from storefront.checkout import CheckoutOrchestrator
from storefront.config import WebConfig
from storefront.messages import ActionResult

log = logging.getLogger(__name__)

SESSION_FACTORY = web.AppKey("session_factory", Callable[[], ActionDispatcher])
WEB_CONFIG = web.AppKey("web_config", WebConfig)

RETRY_TEXT = "The store is temporarily unavailable, please retry."

routes = web.RouteTableDef()


def _user(request: web.Request) -> str:
    return request["user_id"]


def _actions(request: web.Request) -> ActionDispatcher:
    return request["actions"]


def _unwrap(result: ActionResult) -> Any:
    """Map an action error onto the HTTP error a browser should see."""
    try:
        return result.unwrap()
    except NotFound as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    except InvalidPayload as exc:
        raise web.HTTPBadRequest(text=str(exc)) from exc
    except ActionError as exc:
        log.error("action %s failed: %s", result.request.tag, exc)
        raise web.HTTPBadGateway(text=RETRY_TEXT) from exc
    except Exception as exc:
        log.error("action %s raised %r", result.request.tag, exc)
        raise web.HTTPBadGateway(text=RETRY_TEXT) from exc


async def _body(request: web.Request) -> Dict[str, Any]:
    if request.content_type == "application/json":
        data = await request.json()
        if not isinstance(data, dict):
            raise web.HTTPBadRequest(text="expected a JSON object")
        return data
    return dict(await request.post())


@web.middleware
async def identity_middleware(request: web.Request, handler):
    cfg = request.app[WEB_CONFIG]
    if request.path != cfg.login_path:
        user_id = request.headers.get(cfg.identity_header)
        if not user_id:
            raise web.HTTPUnauthorized(headers={"Location": cfg.login_path})
        request["user_id"] = user_id
        request["actions"] = request.app[SESSION_FACTORY]()
    return await handler(request)


@routes.get("/login")
async def login(request: web.Request) -> web.Response:
    return web.json_response({"login": "Sign in through the identity provider to continue."})


@routes.get("/")
async def home(request: web.Request) -> web.Response:
    user_id = _user(request)
    actions = _actions(request)
    results: Dict[str, ActionResult] = {}
    actions.dispatch("role:restaurant,cmd:get", {"userId": user_id}, lambda r: results.__setitem__("restaurants", r))
    actions.dispatch("role:cart,cmd:get", {"userId": user_id}, lambda r: results.__setitem__("cart", r))
    await actions.join()
    return web.json_response(
        {"user": user_id, "restaurants": _unwrap(results["restaurants"]), "cart": _unwrap(results["cart"])}
    )


@routes.get("/cart")
async def get_cart(request: web.Request) -> web.Response:
    cart = await _act(request, "role:cart,cmd:get", {"userId": _user(request)})
    return web.json_response({"user": _user(request), "cart": cart})


@routes.post("/cart")
async def add_to_cart(request: web.Request) -> web.Response:
    body = await _body(request)
    restaurant_id, item_id = body.get("restaurantId"), body.get("itemId")
    actions = _actions(request)
    captured: List[ActionResult] = []
    actions.dispatch(
        "role:restaurant,cmd:item", {"restaurantId": restaurant_id, "itemId": item_id}, captured.append
    )
    await actions.join()
    found = _unwrap(captured[0])
    cart = await _act(
        request,
        "role:cart,cmd:add",
        {
            "userId": _user(request),
            "restaurantName": found["restaurant"]["name"],
            "itemName": found["item"]["name"],
            "itemPrice": found["item"]["price"],
            "restaurantId": restaurant_id,
            "itemId": item_id,
        },
    )
    return web.json_response(cart)


@routes.delete("/cart")
async def remove_from_cart(request: web.Request) -> web.Response:
    body = await _body(request)
    cart = await _act(
        request,
        "role:cart,cmd:remove",
        {"userId": _user(request), "restaurantId": body.get("restaurantId"), "itemId": body.get("itemId")},
    )
    return web.json_response(cart)


@routes.post("/order")
async def place_order(request: web.Request) -> web.Response:
    outcome = await CheckoutOrchestrator(_actions(request)).run(_user(request))
    if outcome.confirmed:
        raise web.HTTPFound("/confirmation")
    if outcome.declined:
        return web.Response(text="Card Declined")
    raise web.HTTPBadGateway(text="Checkout could not be completed, please retry.")


@routes.get("/confirmation")
async def confirmation(request: web.Request) -> web.Response:
    cart = await _act(request, "role:cart,cmd:get", {"userId": _user(request)})
    return web.json_response({"user": _user(request), "cart": cart})


async def _act(request: web.Request, tag: str, payload: Dict[str, Any]) -> Any:
    captured: List[ActionResult] = []
    actions = _actions(request)
    actions.dispatch(tag, payload, captured.append)
    await actions.join()
    return _unwrap(captured[0])


def create_app(session_factory: Callable[[], ActionDispatcher], cfg: WebConfig) -> web.Application:
    app = web.Application(middlewares=[identity_middleware])
    app[SESSION_FACTORY] = session_factory
    app[WEB_CONFIG] = cfg
    app.add_routes(routes)
    return app
