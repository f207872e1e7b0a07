"""Abstract payment adapter.

Every processor a business can select implements this contract; billing
workflows only ever talk to a ``PaymentAdapter`` obtained from the resolver.
"""
from abc import ABC, abstractmethod

from app.models.models import ProcessorType, User
from app.models.schemas import (
    CreatePaymentIntentParams,
    PaymentCardInfo,
    PaymentCustomerResult,
    PaymentIntentResult,
)


class PaymentAdapter(ABC):
    """
    Uniform processor contract.

    Amounts are integer minor units. Implementations translate processor
    failures into ``RemoteUnavailableError`` and report intent status in the
    canonical vocabulary of ``CanonicalPaymentStatus``.
    """

    processor_type: ProcessorType

    @property
    def name(self) -> str:
        return self.processor_type.value.lower()

    @abstractmethod
    def create_or_get_customer(self, user: User, tenant_id: str | None = None) -> PaymentCustomerResult:
        """
        Return the processor customer for ``user``, creating it if needed.

        Idempotent: repeated calls for the same user return the same id.
        """
        pass

    @abstractmethod
    def create_payment_intent(self, params: CreatePaymentIntentParams) -> PaymentIntentResult:
        """Charge ``params.amount_cents`` using ``params.payment_method_id``."""
        pass

    @abstractmethod
    def get_card_info_from_payment_method(
        self, payment_method_id: str, tenant_id: str | None = None
    ) -> PaymentCardInfo | None:
        """
        Best-effort card details for display.

        Never raises for missing card data or remote lookup failures; returns
        None instead.
        """
        pass

    @abstractmethod
    def attach_payment_method(
        self,
        customer_id: str,
        payment_method_id: str,
        set_as_default: bool = False,
        tenant_id: str | None = None,
    ) -> None:
        """Save ``payment_method_id`` on the customer for later charges."""
        pass
