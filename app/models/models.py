"""Tenant-side entities read by the payments core.

Users and businesses are owned by the platform's account services; only the
columns this core reads or writes are mapped here.
"""
from __future__ import annotations

import datetime as dt
import enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base_class import Base, utcnow

if TYPE_CHECKING:
    from app.models.payment_models import ConnectAccount, CustomerRecord
else:
    # Import at runtime for SQLAlchemy relationship resolution
    from app.models import payment_models  # noqa: F401
    ConnectAccount = "ConnectAccount"
    CustomerRecord = "CustomerRecord"


class ProcessorType(str, enum.Enum):
    """Payment processors a business can select in Settings."""
    STRIPE = "STRIPE"
    PAYSAFE = "PAYSAFE"
    CASH = "CASH"
    OTHER = "OTHER"


class ProcessorConfig(Base):
    """Per-tenant payment processor selection (managed by the settings service)."""
    __tablename__ = "payment_processors"

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[ProcessorType] = mapped_column(Enum(ProcessorType), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ProcessorConfig(id={self.id}, type={self.type}, enabled={self.enabled})>"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # Linked member accounts share the primary account's processor customer
    ref_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    customer_record: Mapped[CustomerRecord | None] = relationship(  # type: ignore
        "CustomerRecord",
        back_populates="user",
        uselist=False,
    )

    @property
    def display_name(self) -> str:
        return f"{self.first_name or 'User'} {self.last_name or ''}".strip()


class Business(Base):
    __tablename__ = "businesses"
    __table_args__ = (UniqueConstraint("tenant_id", name="uq_businesses_tenant_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    payment_processor_id: Mapped[int | None] = mapped_column(
        ForeignKey("payment_processors.id"), nullable=True
    )
    # Denormalized Connect account id for quick lookup; cleared on disconnect
    stripe_connect_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Optional per-tenant webhook signing secret (falls back to the platform secret)
    webhook_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)

    payment_processor: Mapped[ProcessorConfig | None] = relationship("ProcessorConfig")
    owner: Mapped[User | None] = relationship("User", foreign_keys=[owner_user_id])
    connect_account: Mapped[ConnectAccount | None] = relationship(  # type: ignore
        "ConnectAccount",
        back_populates="business",
        uselist=False,
    )


class WebhookEvent(Base):
    """Processed inbound webhook deliveries (idempotency ledger)."""
    __tablename__ = "webhook_events"
    __table_args__ = (UniqueConstraint("provider", "external_id", name="uq_webhook_provider_external"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    provider: Mapped[str] = mapped_column(String(40), nullable=False)
    external_id: Mapped[str] = mapped_column(String(120), nullable=False)
    event_type: Mapped[str | None] = mapped_column(String(120), nullable=True)
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
