# SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the storefront action runtime."""
from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

ACTIONS_DISPATCHED = Counter(
    "storefront_actions_dispatched_total",
    "Actions issued through a dispatcher",
    labelnames=("role", "cmd"),
)

ACTIONS_FAILED = Counter(
    "storefront_actions_failed_total",
    "Actions whose result carried an error",
    labelnames=("role", "cmd", "reason"),
)

ACTION_LATENCY = Histogram(
    "storefront_action_latency_ms",
    "Time from dispatch to result per role (milliseconds)",
    labelnames=("role",),
    buckets=(1, 2, 5, 10, 20, 50, 100, 200, 500, 1000, 2000),
)

PENDING_ACTIONS = Gauge(
    "storefront_pending_actions",
    "Actions dispatched and not yet resolved across all dispatchers",
)

TRANSPORT_INFLIGHT = Gauge(
    "storefront_transport_inflight",
    "Remote calls awaiting a response per bound role",
    labelnames=("role",),
)

CHECKOUT_OUTCOMES = Counter(
    "storefront_checkout_outcomes_total",
    "Checkout runs by terminal state",
    labelnames=("state",),
)

CHECKOUT_UNSETTLED = Counter(
    "storefront_checkout_unsettled_total",
    "Checkouts charged successfully whose cart could not be cleared",
)
