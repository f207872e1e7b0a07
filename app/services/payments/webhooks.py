"""Inbound Stripe webhook verification and dispatch."""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import metrics
from app.core.config import settings
from app.core.exceptions import ConfigurationError, InvalidWebhookError, WebhookPayloadMissingError
from app.models.models import Business, WebhookEvent

from .client import StripeProcessorClient
from .connect import ConnectAccountManager
from .remote import field

logger = logging.getLogger(__name__)

# handler(event, tenant_id): tenant_id is set when the delivery was verified
# with that tenant's own signing secret
EventHandler = Callable[[Any, Optional[str]], None]
CheckoutListener = Callable[[Any], None]


class WebhookProcessor:
    """
    Verify a Stripe webhook delivery and dispatch it by event type.

    Processed event ids are recorded in ``webhook_events``; a redelivered
    event is acknowledged without running its handler again. Handler
    exceptions propagate so Stripe retries the delivery.

    A delivery signed with a tenant's own secret only proves that tenant sent
    it. Such events are handled only when they concern that tenant (its
    Connect account, or ``tenant_id`` in the object's metadata), and their
    ids are recorded per tenant.
    """

    provider = "stripe"

    def __init__(self, db: Session, client: StripeProcessorClient):
        self.db = db
        self._client = client
        self._handlers: dict[str, EventHandler] = {}
        self._checkout_listeners: list[CheckoutListener] = []

        self.register_handler("checkout.session.completed", self._on_checkout_completed)
        self.register_handler("account.updated", self._on_account_updated)
        self.register_handler("payment_intent.succeeded", self._on_payment_succeeded)
        self.register_handler("payment_intent.payment_failed", self._on_payment_failed)

    def register_handler(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type] = handler

    def add_checkout_listener(self, listener: CheckoutListener) -> None:
        """Downstream consumer of completed checkout sessions (e.g. billing)."""
        self._checkout_listeners.append(listener)

    def handle(self, raw_body: bytes, signature: str | None, tenant_id: str | None = None) -> dict[str, bool]:
        if not raw_body:
            raise WebhookPayloadMissingError("payload")
        if not signature:
            raise WebhookPayloadMissingError("signature")

        secret, scope = self._signing_secret(tenant_id)
        try:
            event = stripe.Webhook.construct_event(raw_body, signature, secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            metrics.webhook_event("unverified", "rejected")
            logger.warning("Rejected Stripe webhook (tenant=%s): %s", tenant_id, exc)
            raise InvalidWebhookError("Invalid signature") from exc

        event_id = field(event, "id")
        event_type = field(event, "type")
        ledger_id = f"{scope}:{event_id}" if scope else event_id
        if self._already_processed(ledger_id):
            metrics.webhook_event(event_type, "duplicate")
            logger.info("Duplicate Stripe webhook %s (%s) acknowledged", event_id, event_type)
            return {"received": True}

        if scope and not self._concerns_tenant(event, scope):
            # Not recorded: the same id may still arrive legitimately for its owner
            metrics.webhook_event(event_type, "out_of_scope")
            logger.warning("Ignoring Stripe webhook %s (%s) outside tenant %s", event_id, event_type, scope)
            return {"received": True}

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled Stripe webhook type %s (%s)", event_type, event_id)
            outcome = "ignored"
        else:
            handler(event, scope)
            outcome = "processed"

        self._record(ledger_id, event_type, signature)
        metrics.webhook_event(event_type, outcome)
        return {"received": True}

    def _signing_secret(self, tenant_id: str | None) -> tuple[str, str | None]:
        """Secret to verify with, and the tenant the delivery is then scoped to."""
        if tenant_id:
            business = self.db.scalar(select(Business).where(Business.tenant_id == tenant_id))
            if business is not None and business.webhook_secret:
                return business.webhook_secret, tenant_id
        if not settings.STRIPE_WEBHOOK_SECRET:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET")
        return settings.STRIPE_WEBHOOK_SECRET, None

    def _concerns_tenant(self, event: Any, tenant_id: str) -> bool:
        obj = self._payload(event)
        if field(field(obj, "metadata"), "tenant_id") == tenant_id:
            return True
        account = ConnectAccountManager(self.db, self._client).find_for_tenant(tenant_id)
        if account is None:
            return False
        if field(event, "account") == account.remote_account_id:
            return True
        return field(obj, "object") == "account" and field(obj, "id") == account.remote_account_id

    def _already_processed(self, event_id: str) -> bool:
        existing = self.db.scalar(
            select(WebhookEvent.id).where(
                WebhookEvent.provider == self.provider,
                WebhookEvent.external_id == event_id,
            )
        )
        return existing is not None

    def _record(self, event_id: str, event_type: str | None, signature: str) -> None:
        self.db.add(
            WebhookEvent(
                provider=self.provider,
                external_id=event_id,
                event_type=event_type,
                signature=signature,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent delivery of the same event got there first
            self.db.rollback()
            logger.info("Stripe webhook %s already recorded", event_id)

    # ---------------------------------------------------------------- handlers
    @staticmethod
    def _payload(event: Any) -> Any:
        return field(field(event, "data"), "object")

    def _on_checkout_completed(self, event: Any, tenant_id: str | None) -> None:
        session = self._payload(event)
        logger.info(
            "Checkout session %s completed (customer=%s, tenant=%s)",
            field(session, "id"),
            field(session, "customer"),
            tenant_id,
        )
        for listener in self._checkout_listeners:
            listener(session)

    def _on_account_updated(self, event: Any, tenant_id: str | None) -> None:
        ConnectAccountManager(self.db, self._client).apply_remote_update(self._payload(event), tenant_id=tenant_id)

    def _on_payment_succeeded(self, event: Any, tenant_id: str | None) -> None:
        intent = self._payload(event)
        logger.info(
            "PaymentIntent %s succeeded amount=%s %s (tenant=%s)",
            field(intent, "id"),
            field(intent, "amount"),
            field(intent, "currency"),
            tenant_id,
        )

    def _on_payment_failed(self, event: Any, tenant_id: str | None) -> None:
        intent = self._payload(event)
        error = field(intent, "last_payment_error")
        logger.warning(
            "PaymentIntent %s failed (tenant=%s): %s",
            field(intent, "id"),
            tenant_id,
            field(error, "message") or "unknown reason",
        )
