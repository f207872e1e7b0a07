"""Payment routing and processor account lifecycle.

Each business selects a processor in Settings; billing workflows ask the
resolver for that tenant's adapter and use the uniform adapter contract.

Processors:
- Stripe (durable customers, saved cards, Connect fee routing)
- Paysafe (single-use payment handle tokens; saved handles on a customer profile)
"""
from .adapters import PaymentAdapter, PaysafePaymentAdapter, StripePaymentAdapter
from .client import (
    ClientState,
    LazyProcessorClient,
    PaysafeApi,
    PaysafeApiError,
    PaysafeProcessorClient,
    StripeProcessorClient,
)
from .connect import ConnectAccountManager
from .customers import CustomerVaultManager
from .factory import (
    build_registry,
    create_connect_manager,
    create_customer_vault,
    create_paysafe_customer_vault,
    create_webhook_processor,
    get_payment_adapter_resolver,
    paysafe_client,
    stripe_client,
)
from .paysafe_customers import PaysafeCustomerVault
from .resolver import AdapterRegistry, PaymentAdapterResolver
from .webhooks import WebhookProcessor

__all__ = [
    # Clients
    "ClientState",
    "LazyProcessorClient",
    "StripeProcessorClient",
    "PaysafeProcessorClient",
    "PaysafeApi",
    "PaysafeApiError",
    "stripe_client",
    "paysafe_client",
    # Managers
    "ConnectAccountManager",
    "CustomerVaultManager",
    "PaysafeCustomerVault",
    "WebhookProcessor",
    # Adapters
    "PaymentAdapter",
    "StripePaymentAdapter",
    "PaysafePaymentAdapter",
    # Routing
    "AdapterRegistry",
    "PaymentAdapterResolver",
    "build_registry",
    "get_payment_adapter_resolver",
    "create_connect_manager",
    "create_customer_vault",
    "create_paysafe_customer_vault",
    "create_webhook_processor",
]
