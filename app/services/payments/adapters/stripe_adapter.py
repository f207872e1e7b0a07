"""Stripe adapter: durable customers, saved cards, Connect fee routing."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable

import stripe
from sqlalchemy.orm import Session

from app import metrics
from app.core.config import settings
from app.core.exceptions import InvalidPaymentRequestError, RemoteUnavailableError, UserNotFoundError
from app.db.session import session_scope
from app.models.models import ProcessorType, User
from app.models.schemas import (
    CreatePaymentIntentParams,
    PaymentCardInfo,
    PaymentCustomerResult,
    PaymentIntentResult,
)

from ..client import StripeProcessorClient
from ..connect import ConnectAccountManager
from ..customers import CustomerVaultManager
from ..remote import field, remote_failure
from .base import PaymentAdapter

logger = logging.getLogger(__name__)

# Stripe already reports intents in the canonical vocabulary
STRIPE_STATUSES = frozenset(
    {
        "succeeded",
        "processing",
        "requires_action",
        "requires_payment_method",
        "requires_confirmation",
        "requires_capture",
        "canceled",
    }
)


def normalize_stripe_status(status: str | None) -> str:
    if status in STRIPE_STATUSES:
        return status
    logger.warning("Unrecognized Stripe PaymentIntent status %r", status)
    return "processing"


class StripePaymentAdapter(PaymentAdapter):
    """
    Stripe implementation of the adapter contract.

    Charges for a tenant whose Connect account is complete are made on behalf
    of that account, transferred to it, and carry the platform's application
    fee. Without a complete account the charge stays on the platform and no
    fee is taken.
    """

    processor_type = ProcessorType.STRIPE

    def __init__(self, client: StripeProcessorClient, session_factory: Callable[[], Session] | None = None):
        self._client = client
        self._session_factory = session_factory

    def create_or_get_customer(self, user: User, tenant_id: str | None = None) -> PaymentCustomerResult:
        with session_scope(self._session_factory) as db:
            local_user = db.get(User, user.id)
            if local_user is None:
                raise UserNotFoundError(user.id)
            record = CustomerVaultManager(db, self._client).get_or_create(local_user, tenant_id)
            return PaymentCustomerResult(
                customer_id=record.remote_customer_id,
                metadata={"processor": self.name, "user_id": record.user_id},
            )

    def create_payment_intent(self, params: CreatePaymentIntentParams) -> PaymentIntentResult:
        fee = params.application_fee_amount or 0
        if fee >= params.amount_cents:
            raise InvalidPaymentRequestError(
                "Application fee must be smaller than the payment amount",
                details={"amount_cents": params.amount_cents, "application_fee_amount": fee},
            )

        payload: dict[str, Any] = {
            "amount": params.amount_cents,
            "currency": (params.currency or settings.DEFAULT_CURRENCY).lower(),
            "customer": params.customer_id,
            "payment_method": params.payment_method_id,
            "confirm": params.confirm,
            "metadata": dict(params.metadata),
        }
        if params.confirm:
            # Saved cards are confirmed server-side; redirect-based methods need a return_url
            payload["automatic_payment_methods"] = {"enabled": True, "allow_redirects": "never"}
        if params.description:
            payload["description"] = params.description
        if params.tenant_id:
            payload["metadata"].setdefault("tenant_id", params.tenant_id)

        destination = None
        if params.tenant_id and fee > 0:
            destination = self._fee_destination(params.tenant_id)
        if destination:
            payload["on_behalf_of"] = destination
            payload["transfer_data"] = {"destination": destination}
            payload["application_fee_amount"] = fee
        elif fee > 0:
            logger.info("Tenant %s has no complete Connect account; charging without platform fee", params.tenant_id)

        api = self._client.get()
        request_options: dict[str, Any] = {}
        if params.idempotency_key:
            request_options["idempotency_key"] = params.idempotency_key
        started = time.monotonic()
        try:
            intent = api.PaymentIntent.create(**payload, **request_options)
        except stripe.StripeError as exc:
            raise remote_failure("create payment intent", exc) from exc
        finally:
            metrics.observe_remote_latency(self.name, time.monotonic() - started)

        status = normalize_stripe_status(field(intent, "status"))
        metrics.payment_intent_created(self.name, status, fee if destination else None)
        logger.info(
            "Stripe PaymentIntent %s status=%s amount=%s routed_to=%s",
            field(intent, "id"),
            status,
            params.amount_cents,
            destination,
        )
        metadata: dict[str, Any] = {"processor": self.name}
        if destination:
            metadata["connected_account"] = destination
            metadata["application_fee_amount"] = fee
        return PaymentIntentResult(id=field(intent, "id"), status=status, metadata=metadata)

    def _fee_destination(self, tenant_id: str) -> str | None:
        """Remote id of the tenant's Connect account when it may receive routed charges."""
        with session_scope(self._session_factory) as db:
            manager = ConnectAccountManager(db, self._client)
            account = manager.find_for_tenant(tenant_id)
            if account is None:
                return None
            try:
                account = manager.reconcile(account)
            except RemoteUnavailableError as exc:
                logger.warning(
                    "Using cached Connect flags for %s: %s", account.remote_account_id, exc.remote_message
                )
            return account.remote_account_id if account.is_complete else None

    def get_card_info_from_payment_method(
        self, payment_method_id: str, tenant_id: str | None = None
    ) -> PaymentCardInfo | None:
        with session_scope(self._session_factory) as db:
            return CustomerVaultManager(db, self._client).get_card_info(payment_method_id)

    def attach_payment_method(
        self,
        customer_id: str,
        payment_method_id: str,
        set_as_default: bool = False,
        tenant_id: str | None = None,
    ) -> None:
        with session_scope(self._session_factory) as db:
            CustomerVaultManager(db, self._client).attach_payment_method(
                customer_id, payment_method_id, set_as_default
            )
