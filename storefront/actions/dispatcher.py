# SPDX-License-Identifier: Apache-2.0
"""Per-request action dispatcher with a join barrier over its pending actions."""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from functools import partial
from typing import Any, Callable, List, Optional, Set, Tuple

from storefront.messages import ActionRequest, ActionResult, ActionTag, TagLike
from storefront.metrics import ACTION_LATENCY, ACTIONS_DISPATCHED, ACTIONS_FAILED, PENDING_ACTIONS

from .base import Continuation, Handler, NoHandlerError
from .router import PatternRouter

log = logging.getLogger(__name__)

Joiner = Tuple[Optional[Callable[[], Any]], "asyncio.Future[None]"]


class _PendingSet:
    __slots__ = ("tasks", "joiners", "sealed")

    def __init__(self) -> None:
        self.tasks: Set[asyncio.Task] = set()
        self.joiners: List[Joiner] = []
        self.sealed = False


class ActionDispatcher:
    """Fires actions against local handlers or transport proxies.

    Instances are cheap and meant to be created per call chain (one per web
    request); the pending set is never shared between instances.
    """

    def __init__(self, local: PatternRouter, remote: PatternRouter | None = None):
        self.local = local
        self.remote = remote
        self._pending = _PendingSet()

    @property
    def pending(self) -> int:
        return len(self._pending.tasks)

    def resolve(self, tag: ActionTag) -> Handler:
        try:
            return self.local.resolve(tag)
        except NoHandlerError:
            if self.remote is None:
                raise
        return self.remote.resolve(tag)

    def dispatch(
        self,
        tag: TagLike,
        payload: Optional[dict] = None,
        continuation: Optional[Continuation] = None,
    ) -> ActionRequest:
        request = ActionRequest(tag=ActionTag.of(tag), payload=dict(payload or {}))
        try:
            handler: Optional[Handler] = self.resolve(request.tag)
            missing: Optional[NoHandlerError] = None
        except NoHandlerError as exc:
            handler, missing = None, exc
        ACTIONS_DISPATCHED.labels(request.role, request.cmd).inc()
        pending = self._pending
        task = asyncio.ensure_future(self._run(request, handler, missing, continuation))
        pending.tasks.add(task)
        PENDING_ACTIONS.inc()
        task.add_done_callback(partial(self._settle, pending))
        return request

    async def _run(
        self,
        request: ActionRequest,
        handler: Optional[Handler],
        missing: Optional[NoHandlerError],
        continuation: Optional[Continuation],
    ) -> ActionResult:
        if handler is None:
            result = ActionResult.failure(request, missing or NoHandlerError(str(request.tag)))
        else:
            try:
                result = ActionResult.success(request, await handler(request))
            except Exception as exc:
                log.debug("action %s failed: %r", request.tag, exc)
                result = ActionResult.failure(request, exc)
        ACTION_LATENCY.labels(request.role).observe((time.perf_counter() - request.issued_at) * 1000)
        if not result.ok:
            ACTIONS_FAILED.labels(request.role, request.cmd, type(result.error).__name__).inc()
        if continuation is not None:
            try:
                outcome = continuation(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                log.exception("continuation for %s failed", request.tag)
        return result

    def _settle(self, pending: _PendingSet, task: asyncio.Task) -> None:
        pending.tasks.discard(task)
        PENDING_ACTIONS.dec()
        if pending.sealed and not pending.tasks:
            self._release(pending)

    def join(self, on_complete: Optional[Callable[[], Any]] = None) -> "asyncio.Future[None]":
        """Arm a barrier over every action dispatched so far.

        `on_complete` runs exactly once after those actions resolved; the
        returned future completes at the same point. Actions dispatched after
        this call belong to the next barrier.
        """
        pending = self._pending
        self._pending = _PendingSet()
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        pending.joiners.append((on_complete, waiter))
        pending.sealed = True
        if not pending.tasks:
            self._release(pending)
        return waiter

    def _release(self, pending: _PendingSet) -> None:
        joiners, pending.joiners = pending.joiners, []
        for on_complete, waiter in joiners:
            if on_complete is None:
                waiter.set_result(None)
                continue
            try:
                outcome = on_complete()
            except Exception as exc:
                log.exception("join callback failed")
                waiter.set_exception(exc)
                continue
            if inspect.isawaitable(outcome):
                asyncio.ensure_future(outcome).add_done_callback(partial(_chain, waiter))
            else:
                waiter.set_result(None)

    async def act(self, tag: TagLike, payload: Optional[dict] = None) -> Any:
        """Dispatch one action, wait for it and return its value or raise its error."""
        captured: List[ActionResult] = []
        self.dispatch(tag, payload, captured.append)
        await self.join()
        return captured[0].unwrap()


def _chain(waiter: "asyncio.Future[None]", task: "asyncio.Future[Any]") -> None:
    if waiter.done():
        return
    if task.cancelled():
        waiter.cancel()
    elif task.exception() is not None:
        waiter.set_exception(task.exception())
    else:
        waiter.set_result(None)
