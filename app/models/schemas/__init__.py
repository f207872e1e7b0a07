"""Pydantic schemas for the payments API and adapter contract.

Sub-modules:
- payments: Adapter value objects (customer, intent, card info)
- connect: Stripe Connect onboarding/status schemas
- cards: Saved card and customer schemas
"""
from .cards import (
    AddCardIn,
    BillingDetailsOut,
    CardDetailsOut,
    CustomerInfoOut,
    MessageOut,
    PaymentCardOut,
    PaymentCardsOut,
    PaysafeConfigOut,
    WebhookAck,
)
from .connect import (
    ConnectAccountOut,
    ConnectCreateIn,
    ConnectCreateOut,
    ConnectOnboarding,
    ConnectStatus,
)
from .payments import (
    CanonicalPaymentStatus,
    CreatePaymentIntentParams,
    PaymentCardInfo,
    PaymentCustomerResult,
    PaymentIntentResult,
)

__all__ = [
    # Adapter contract
    "CanonicalPaymentStatus",
    "CreatePaymentIntentParams",
    "PaymentCardInfo",
    "PaymentCustomerResult",
    "PaymentIntentResult",
    # Connect
    "ConnectAccountOut",
    "ConnectCreateIn",
    "ConnectCreateOut",
    "ConnectOnboarding",
    "ConnectStatus",
    # Cards
    "AddCardIn",
    "BillingDetailsOut",
    "CardDetailsOut",
    "CustomerInfoOut",
    "MessageOut",
    "PaymentCardOut",
    "PaymentCardsOut",
    "PaysafeConfigOut",
    "WebhookAck",
]
