"""Prometheus counters and gauges for pub/sub fanout."""

from prometheus_client import CollectorRegistry, Counter, Gauge

# Custom registry to avoid conflicts with host application metrics
REGISTRY = CollectorRegistry()

pubsub_published_total = Counter(
    "teatime_pubsub_published_total",
    "messages accepted for publish",
    ["backend"],
    registry=REGISTRY,
)

pubsub_no_subscribers_total = Counter(
    "teatime_pubsub_no_subscribers_total",
    "publishes that reached zero subscribers",
    ["backend"],
    registry=REGISTRY,
)

pubsub_delivered_total = Counter(
    "teatime_pubsub_delivered_total",
    "handler invocations that completed",
    ["backend"],
    registry=REGISTRY,
)

pubsub_handler_errors_total = Counter(
    "teatime_pubsub_handler_errors_total",
    "handler invocations that raised",
    ["backend"],
    registry=REGISTRY,
)

# reason: overflow | malformed
pubsub_dropped_total = Counter(
    "teatime_pubsub_dropped_total",
    "messages dropped before reaching a handler",
    ["backend", "reason"],
    registry=REGISTRY,
)

pubsub_active_subscriptions = Gauge(
    "teatime_pubsub_active_subscriptions",
    "subscriptions currently registered on this instance",
    ["backend"],
    registry=REGISTRY,
)

__all__ = [
    "REGISTRY",
    "pubsub_active_subscriptions",
    "pubsub_delivered_total",
    "pubsub_dropped_total",
    "pubsub_handler_errors_total",
    "pubsub_no_subscribers_total",
    "pubsub_published_total",
]
