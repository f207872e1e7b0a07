"""Paysafe adapter: one-shot charges of single-use payment handle tokens.

Charges go through single-use tokens. Saved cards are managed separately by
PaysafeCustomerVault, so the adapter's customer is a synthetic placeholder
and attaching a card is a no-op.
"""
from __future__ import annotations

import logging
import time

import requests

from app import metrics
from app.core.config import settings
from app.models.models import ProcessorType, User
from app.models.schemas import (
    CreatePaymentIntentParams,
    PaymentCardInfo,
    PaymentCustomerResult,
    PaymentIntentResult,
)

from ..client import PaysafeApiError, PaysafeProcessorClient
from ..remote import remote_failure
from .base import PaymentAdapter

logger = logging.getLogger(__name__)

PAYSAFE_STATUS_MAP = {
    "COMPLETED": "succeeded",
    "PENDING": "processing",
    "PROCESSING": "processing",
    "RECEIVED": "processing",
    "FAILED": "failed",
    "ERROR": "failed",
    "CANCELLED": "canceled",
}


def normalize_paysafe_status(status: str | None) -> str:
    normalized = PAYSAFE_STATUS_MAP.get((status or "").upper())
    if normalized is None:
        logger.warning("Unrecognized Paysafe payment status %r", status)
        return "processing"
    return normalized


def placeholder_customer_id(user_id: int, tenant_id: str | None = None) -> str:
    return f"paysafe-{tenant_id or 'platform'}-{user_id}"


class PaysafePaymentAdapter(PaymentAdapter):
    processor_type = ProcessorType.PAYSAFE

    def __init__(self, client: PaysafeProcessorClient):
        self._client = client

    def create_or_get_customer(self, user: User, tenant_id: str | None = None) -> PaymentCustomerResult:
        return PaymentCustomerResult(
            customer_id=placeholder_customer_id(user.id, tenant_id),
            metadata={"processor": self.name, "placeholder": True},
        )

    def create_payment_intent(self, params: CreatePaymentIntentParams) -> PaymentIntentResult:
        if params.application_fee_amount:
            logger.debug(
                "Paysafe has no split payments; ignoring application fee %s for tenant %s",
                params.application_fee_amount,
                params.tenant_id,
            )

        merchant_ref_num = params.idempotency_key or f"gym-{int(time.time() * 1000)}"
        payload = {
            "merchantRefNum": merchant_ref_num,
            "amount": params.amount_cents,
            "currencyCode": (params.currency or settings.DEFAULT_CURRENCY).upper(),
            "settleWithAuth": True,
            "paymentHandleToken": params.payment_method_id,
        }
        if params.description:
            payload["description"] = params.description

        api = self._client.get()
        try:
            response = api.process_payment(payload)
        except (PaysafeApiError, requests.RequestException) as exc:
            raise remote_failure("process Paysafe payment", exc, provider=self.name) from exc

        native_status = response.get("status")
        status = normalize_paysafe_status(native_status)
        metrics.payment_intent_created(self.name, status)
        logger.info("Paysafe payment %s merchantRefNum=%s status=%s", response.get("id"), merchant_ref_num, native_status)
        return PaymentIntentResult(
            id=response.get("id") or merchant_ref_num,
            status=status,
            metadata={
                "processor": self.name,
                "merchant_ref_num": merchant_ref_num,
                "native_status": native_status,
            },
        )

    def get_card_info_from_payment_method(
        self, payment_method_id: str, tenant_id: str | None = None
    ) -> PaymentCardInfo | None:
        # Single-use tokens carry no card details
        return None

    def attach_payment_method(
        self,
        customer_id: str,
        payment_method_id: str,
        set_as_default: bool = False,
        tenant_id: str | None = None,
    ) -> None:
        """No-op: Paysafe handle tokens are single use and cannot be saved."""
        logger.debug("Paysafe attach_payment_method is a no-op (customer=%s)", customer_id)
