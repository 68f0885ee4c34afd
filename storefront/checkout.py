# SPDX-License-Identifier: Apache-2.0
"""Checkout saga: quote the cart, charge the card, then clear the cart.

The sequence is not atomic. A failure between a successful charge and the
cart clear leaves the shopper charged with a full cart; that case is logged
and counted for out-of-band reconciliation rather than rolled back. The cart
is not locked between quote and charge either, so a concurrent cart change
can make the charged total differ from the final cart.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from storefront.actions.base import InvalidPayload
from storefront.actions.dispatcher import ActionDispatcher
from storefront.messages import ActionResult
from storefront.metrics import CHECKOUT_OUTCOMES, CHECKOUT_UNSETTLED

log = logging.getLogger(__name__)

CART_GET = "role:cart,cmd:get"
CART_CLEAR = "role:cart,cmd:clear"
BILL_CARD = "role:payment,cmd:billCard"


class CheckoutState(str, enum.Enum):
    QUOTING = "quoting"
    CHARGING = "charging"
    SETTLING = "settling"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    FAILED = "failed"


@dataclass(slots=True)
class CheckoutOutcome:
    user_id: str
    state: CheckoutState
    total: Any = None
    charge: Optional[Dict[str, Any]] = None
    error: Optional[BaseException] = None
    settled: bool = False

    @property
    def confirmed(self) -> bool:
        return self.state is CheckoutState.CONFIRMED

    @property
    def declined(self) -> bool:
        return self.state is CheckoutState.DECLINED


@dataclass
class CheckoutOrchestrator:
    actions: ActionDispatcher
    state: CheckoutState = CheckoutState.QUOTING
    history: List[CheckoutState] = field(default_factory=list)

    def _enter(self, state: CheckoutState) -> None:
        self.state = state
        self.history.append(state)

    async def run(self, user_id: str) -> CheckoutOutcome:
        captured: Dict[str, ActionResult] = {}

        self._enter(CheckoutState.QUOTING)
        self.actions.dispatch(CART_GET, {"userId": user_id}, _capture(captured, "quote"))
        await self.actions.join()
        quote = captured["quote"]
        if not quote.ok:
            return self._finish(CheckoutOutcome(user_id, CheckoutState.FAILED, error=quote.error))
        if not isinstance(quote.value, dict) or quote.value.get("total") is None:
            error = InvalidPayload(f"cart quote for {user_id} carried no total: {quote.value!r}")
            return self._finish(CheckoutOutcome(user_id, CheckoutState.FAILED, error=error))
        total = quote.value["total"]

        self._enter(CheckoutState.CHARGING)
        self.actions.dispatch(BILL_CARD, {"total": total}, _capture(captured, "charge"))
        await self.actions.join()
        charge = captured["charge"]
        if not charge.ok:
            return self._finish(CheckoutOutcome(user_id, CheckoutState.FAILED, total=total, error=charge.error))

        self._enter(CheckoutState.SETTLING)
        receipt = charge.value or {}
        if not isinstance(receipt, dict):
            error = InvalidPayload(f"charge for {user_id} returned no receipt: {receipt!r}")
            return self._finish(CheckoutOutcome(user_id, CheckoutState.FAILED, total=total, error=error))
        if not receipt.get("success"):
            log.info("checkout for %s declined (total %s)", user_id, total)
            return self._finish(CheckoutOutcome(user_id, CheckoutState.DECLINED, total=total, charge=receipt))

        self.actions.dispatch(CART_CLEAR, {"userId": user_id}, _capture(captured, "clear"))
        await self.actions.join()
        clear = captured["clear"]
        if not clear.ok:
            CHECKOUT_UNSETTLED.inc()
            log.error(
                "checkout for %s charged %s but cart clear failed; reconcile manually: %r",
                user_id,
                total,
                clear.error,
            )
        return self._finish(
            CheckoutOutcome(user_id, CheckoutState.CONFIRMED, total=total, charge=receipt, settled=clear.ok)
        )

    def _finish(self, outcome: CheckoutOutcome) -> CheckoutOutcome:
        self._enter(outcome.state)
        CHECKOUT_OUTCOMES.labels(outcome.state.value).inc()
        if outcome.error is not None:
            log.warning("checkout for %s failed in %s: %r", outcome.user_id, self.history[-2].value, outcome.error)
        return outcome


def _capture(captured: Dict[str, ActionResult], key: str):
    def store(result: ActionResult) -> None:
        captured[key] = result

    return store
