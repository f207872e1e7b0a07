"""Value objects returned by the payment adapter contract (not persisted)."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

CanonicalPaymentStatus = Literal[
    "succeeded",
    "processing",
    "requires_action",
    "requires_payment_method",
    "requires_confirmation",
    "requires_capture",
    "canceled",
    "failed",
]


class PaymentCustomerResult(BaseModel):
    customer_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentIntentResult(BaseModel):
    """Outcome of a charge, with status normalized across processors."""
    id: str
    status: CanonicalPaymentStatus
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentCardInfo(BaseModel):
    brand: str | None = None
    last4: str
    exp_month: int | None = None
    exp_year: int | None = None


class CreatePaymentIntentParams(BaseModel):
    """
    Input for PaymentAdapter.create_payment_intent.

    Amounts are integer minor units (cents). When ``currency`` is omitted the
    platform's DEFAULT_CURRENCY is used.
    """
    amount_cents: int = Field(gt=0)
    customer_id: str
    payment_method_id: str
    currency: str | None = Field(None, min_length=3, max_length=3)
    confirm: bool = True
    metadata: dict[str, str] = Field(default_factory=dict)
    tenant_id: str | None = None
    application_fee_amount: int | None = Field(None, ge=0)
    description: str | None = None
    # Stripe idempotency key / Paysafe merchantRefNum
    idempotency_key: str | None = Field(None, max_length=255)
