"""Local cache of processor-side accounts and customers."""
from __future__ import annotations

import datetime as dt
import enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base_class import Base, utcnow

if TYPE_CHECKING:
    from app.models.models import Business, User


class ConnectState(str, enum.Enum):
    """Lifecycle of a business's Connect sub-account."""
    NONE = "none"                              # No account (never created, or disconnected)
    PENDING_ONBOARDING = "pending_onboarding"  # Created, onboarding details not submitted
    INCOMPLETE = "incomplete"                  # Details submitted, charges not enabled yet
    COMPLETE = "complete"                      # Can receive charges on the platform's behalf
    DISCONNECTED = "disconnected"              # Transient: reported by disconnect only


class CustomerStatus(str, enum.Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class ConnectAccount(Base):
    """
    A business's Stripe Connect sub-account.

    One row per business, enforced by the unique constraint on business_id.
    A row with remote_account_id = NULL is a creation reservation: it is
    written before the remote account exists so concurrent creators collide
    locally instead of both reaching Stripe.
    """
    __tablename__ = "connect_accounts"
    __table_args__ = (UniqueConstraint("business_id", name="uq_connect_accounts_business_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    remote_account_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True, index=True)
    account_kind: Mapped[str] = mapped_column(String(20), default="express", nullable=False)
    """express | standard"""

    country_code: Mapped[str] = mapped_column(String(2), default="US", nullable=False)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    charges_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    details_submitted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payouts_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id"), nullable=False)
    business: Mapped["Business"] = relationship(back_populates="connect_account")

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ConnectAccount(id={self.id}, remote={self.remote_account_id}, business={self.business_id})>"

    @property
    def is_complete(self) -> bool:
        return bool(self.details_submitted and self.charges_enabled)

    @property
    def is_reservation(self) -> bool:
        return self.remote_account_id is None

    @property
    def state(self) -> ConnectState:
        if self.is_reservation:
            return ConnectState.NONE
        if self.is_complete:
            return ConnectState.COMPLETE
        if self.details_submitted:
            return ConnectState.INCOMPLETE
        return ConnectState.PENDING_ONBOARDING


class CustomerRecord(Base):
    """Processor-side customer for a local user (one per user)."""
    __tablename__ = "customer_records"
    __table_args__ = (UniqueConstraint("user_id", name="uq_customer_records_user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    remote_customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    user: Mapped["User"] = relationship(back_populates="customer_record")

    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    country_code: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=CustomerStatus.ACTIVE.value, nullable=False)
    remote_created_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Renamed from 'metadata' to avoid SQLAlchemy reserved word
    customer_metadata: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CustomerRecord(id={self.id}, remote={self.remote_customer_id}, user={self.user_id})>"

    @property
    def is_active(self) -> bool:
        return self.status == CustomerStatus.ACTIVE.value


class PaysafeCustomer(Base):
    """
    Paysafe customer profile holding a user's saved payment handles.

    Paysafe keeps the handles; locally only the customer id and the token of
    the handle chosen as default are stored.
    """
    __tablename__ = "paysafe_customers"
    __table_args__ = (UniqueConstraint("user_id", name="uq_paysafe_customers_user_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    remote_customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    merchant_customer_id: Mapped[str] = mapped_column(String(160), nullable=False)
    """``{tenant_id}:{user_id}``, or the bare user id outside a tenant"""

    default_payment_handle_token: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    user: Mapped["User"] = relationship()

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<PaysafeCustomer(id={self.id}, remote={self.remote_customer_id}, user={self.user_id})>"
