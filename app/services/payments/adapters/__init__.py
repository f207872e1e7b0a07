"""Payment adapter implementations."""
from .base import PaymentAdapter
from .paysafe_adapter import PaysafePaymentAdapter
from .stripe_adapter import StripePaymentAdapter

__all__ = [
    "PaymentAdapter",
    "StripePaymentAdapter",
    "PaysafePaymentAdapter",
]
