# SPDX-License-Identifier: Apache-2.0
"""Card payment service."""
from __future__ import annotations

import logging
from typing import Any, Dict

from storefront.actions.base import Handler, InvalidPayload
from storefront.messages import ActionRequest

from .base import RoleService

log = logging.getLogger(__name__)


class PaymentService(RoleService):
    """Approves every charge up to an optional `decline_over` limit.

    No card processor is wired in; the limit exists so the decline branch of
    checkout can be exercised.
    """

    def commands(self) -> Dict[str, Handler]:
        return {"billCard": self.bill_card}

    async def bill_card(self, request: ActionRequest) -> Dict[str, Any]:
        total = request.require("total")
        try:
            total = float(total)
        except (TypeError, ValueError) as exc:
            raise InvalidPayload(f"total must be numeric, got {total!r}") from exc
        limit = self.options.get("decline_over")
        if limit is not None and total > float(limit):
            log.info("declining charge of %.2f over limit %s", total, limit)
            return {"success": False, "total": total, "reason": "limit exceeded"}
        return {"success": True, "total": total}
