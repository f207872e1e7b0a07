"""Process-wide processor clients and the default adapter registry."""
import logging
from functools import lru_cache
from typing import Callable

from sqlalchemy.orm import Session

from app.models.models import ProcessorType

from .adapters import PaysafePaymentAdapter, StripePaymentAdapter
from .client import PaysafeProcessorClient, StripeProcessorClient
from .connect import ConnectAccountManager
from .customers import CustomerVaultManager
from .paysafe_customers import PaysafeCustomerVault
from .resolver import AdapterRegistry, PaymentAdapterResolver
from .webhooks import WebhookProcessor

logger = logging.getLogger(__name__)

stripe_client = StripeProcessorClient()
paysafe_client = PaysafeProcessorClient()


def build_registry(
    stripe: StripeProcessorClient,
    paysafe: PaysafeProcessorClient,
    session_factory: Callable[[], Session] | None = None,
) -> AdapterRegistry:
    """
    Register one adapter per supported processor.

    Stripe is the default for processor types without an adapter
    (CASH, OTHER).
    """
    registry = AdapterRegistry(default_type=ProcessorType.STRIPE)
    registry.register(ProcessorType.STRIPE, StripePaymentAdapter(stripe, session_factory))
    registry.register(ProcessorType.PAYSAFE, PaysafePaymentAdapter(paysafe))
    return registry


@lru_cache
def get_payment_adapter_resolver() -> PaymentAdapterResolver:
    return PaymentAdapterResolver(build_registry(stripe_client, paysafe_client))


def create_connect_manager(db: Session) -> ConnectAccountManager:
    return ConnectAccountManager(db, stripe_client)


def create_customer_vault(db: Session) -> CustomerVaultManager:
    return CustomerVaultManager(db, stripe_client)


def create_paysafe_customer_vault(db: Session, tenant_id: str | None = None) -> PaysafeCustomerVault:
    return PaysafeCustomerVault(db, paysafe_client, tenant_id)


def create_webhook_processor(db: Session) -> WebhookProcessor:
    return WebhookProcessor(db, stripe_client)
