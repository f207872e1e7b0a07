"""Prometheus metrics for the payments core.

Counters are module-level singletons registered on the default registry;
``GET /metrics`` renders them with ``generate_latest``.
"""
from __future__ import annotations

import logging

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

_PAYMENT_INTENTS = Counter(
    "payment_intents_total",
    "Payment intents created, by processor and canonical status",
    ["processor", "status"],
)
_APPLICATION_FEES = Counter(
    "payment_application_fee_cents_total",
    "Platform application fees attached to routed charges (minor units)",
)
_CONNECT_EVENTS = Counter(
    "connect_account_events_total",
    "Connect account lifecycle events",
    ["event"],
)
_CUSTOMER_EVENTS = Counter(
    "payment_customer_events_total",
    "Processor customer vault events",
    ["event"],
)
_WEBHOOK_EVENTS = Counter(
    "payment_webhook_events_total",
    "Inbound payment webhooks by type and outcome",
    ["event_type", "outcome"],
)
_REMOTE_ERRORS = Counter(
    "payment_remote_errors_total",
    "Failed processor API calls by provider and operation",
    ["provider", "operation"],
)
_ADAPTER_FALLBACKS = Counter(
    "payment_adapter_fallbacks_total",
    "Tenants routed to the default adapter because their processor type has no adapter",
    ["processor_type"],
)
_REMOTE_LATENCY = Histogram(
    "payment_remote_call_seconds",
    "Latency of processor API calls",
    ["provider"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)


def payment_intent_created(processor: str, status: str, application_fee: int | None = None):
    _PAYMENT_INTENTS.labels(processor=processor, status=status).inc()
    if application_fee:
        _APPLICATION_FEES.inc(application_fee)


def connect_event(event: str):
    _CONNECT_EVENTS.labels(event=event).inc()


def customer_event(event: str):
    _CUSTOMER_EVENTS.labels(event=event).inc()


def webhook_event(event_type: str, outcome: str):
    _WEBHOOK_EVENTS.labels(event_type=event_type, outcome=outcome).inc()


def remote_error(provider: str, operation: str):
    _REMOTE_ERRORS.labels(provider=provider, operation=operation).inc()
    logger.debug("metric payment_remote_errors_total{provider=%s,operation=%s} += 1", provider, operation)


def adapter_fallback(processor_type: str):
    _ADAPTER_FALLBACKS.labels(processor_type=processor_type).inc()


def observe_remote_latency(provider: str, seconds: float):
    _REMOTE_LATENCY.labels(provider=provider).observe(seconds)


def render_latest() -> tuple[bytes, str]:
    """Return the exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
