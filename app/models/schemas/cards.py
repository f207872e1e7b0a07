"""Saved card schemas shared by the card endpoints."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CardDetailsOut(BaseModel):
    brand: str
    last4: str
    exp_month: int
    exp_year: int
    funding: str | None = None


class BillingDetailsOut(BaseModel):
    name: str | None = None
    email: str | None = None


class PaymentCardOut(BaseModel):
    id: str
    card: CardDetailsOut | None = None
    billing_details: BillingDetailsOut | None = None
    created: int


class PaymentCardsOut(BaseModel):
    payment_methods: list[PaymentCardOut]
    default_payment_method_id: str | None = None


class AddCardIn(BaseModel):
    payment_method_id: str = Field(min_length=1, max_length=255)
    set_as_default: bool = False


class CustomerInfoOut(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    default_payment_method_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MessageOut(BaseModel):
    message: str


class WebhookAck(BaseModel):
    received: bool = True


class PaysafeConfigOut(BaseModel):
    """Public settings the frontend needs to tokenize cards with Paysafe.js."""
    single_use_token: str | None = None
    environment: str
