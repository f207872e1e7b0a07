"""Tenant -> payment adapter routing."""
from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from app import metrics
from app.core.exceptions import ConfigurationError, NotConfiguredError
from app.db.session import session_scope
from app.models.models import Business, ProcessorType

from .adapters.base import PaymentAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """
    Explicit ProcessorType -> adapter mapping with a designated default.

    Supporting another processor means registering one more adapter here.
    """

    def __init__(self, default_type: ProcessorType = ProcessorType.STRIPE):
        self.default_type = default_type
        self._adapters: dict[ProcessorType, PaymentAdapter] = {}

    def register(self, processor_type: ProcessorType, adapter: PaymentAdapter) -> None:
        self._adapters[processor_type] = adapter
        logger.info("Registered payment adapter: %s", processor_type.value)

    def get(self, processor_type: ProcessorType) -> PaymentAdapter | None:
        return self._adapters.get(processor_type)

    @property
    def default(self) -> PaymentAdapter:
        adapter = self._adapters.get(self.default_type)
        if adapter is None:
            raise ConfigurationError(f"default payment adapter ({self.default_type.value})")
        return adapter

    def __contains__(self, processor_type: object) -> bool:
        return processor_type in self._adapters


class PaymentAdapterResolver:
    """Pick the adapter configured for a tenant's business."""

    def __init__(self, registry: AdapterRegistry, session_factory: Callable[[], Session] | None = None):
        self.registry = registry
        self._session_factory = session_factory

    def _configured_type(self, tenant_id: str | None) -> ProcessorType:
        if not tenant_id:
            raise NotConfiguredError(tenant_id, "Tenant could not be determined for this request.")

        with session_scope(self._session_factory) as db:
            business = db.scalar(
                select(Business)
                .options(joinedload(Business.payment_processor))
                .where(Business.tenant_id == tenant_id)
            )
            if business is None:
                raise NotConfiguredError(
                    tenant_id, "Business not found for this tenant. Please complete your business setup."
                )
            processor = business.payment_processor
            if processor is None:
                raise NotConfiguredError(
                    tenant_id, "Business has no payment processor configured. Please set one in Settings."
                )
            if not processor.enabled:
                raise NotConfiguredError(
                    tenant_id,
                    f"The {processor.type.value} payment processor is disabled. Please enable it in Settings.",
                )
            return processor.type

    def assert_configured(self, tenant_id: str | None) -> None:
        self._configured_type(tenant_id)

    def processor_type_for(self, tenant_id: str | None) -> ProcessorType:
        """Processor type the tenant is routed to, after default fallback."""
        processor_type = self._configured_type(tenant_id)
        if processor_type in self.registry:
            return processor_type

        logger.warning(
            "No payment adapter for processor type %s (tenant %s); falling back to %s",
            processor_type.value,
            tenant_id,
            self.registry.default_type.value,
        )
        metrics.adapter_fallback(processor_type.value)
        return self.registry.default_type

    def resolve(self, tenant_id: str | None) -> PaymentAdapter:
        processor_type = self.processor_type_for(tenant_id)
        adapter = self.registry.get(processor_type)
        return adapter if adapter is not None else self.registry.default
