"""Stripe Connect sub-account lifecycle.

States (see ``ConnectState``)::

    NONE -> PENDING_ONBOARDING -> INCOMPLETE | COMPLETE -> DISCONNECTED

Only ``sync_status`` (and the ``account.updated`` webhook) move an account
forward; both pull the flags from Stripe and persist them.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import metrics
from app.core.config import settings
from app.core.exceptions import AlreadyExistsError, ConnectAccountNotFoundError
from app.db.base_class import utcnow
from app.models.models import Business
from app.models.payment_models import ConnectAccount
from app.models.schemas import ConnectAccountOut, ConnectOnboarding, ConnectStatus

from .client import StripeProcessorClient
from .remote import field, is_missing, remote_failure

logger = logging.getLogger(__name__)


class ConnectAccountManager:
    """
    Create, sync, re-link and disconnect a business's Connect account.

    Creation writes a reservation row (no remote id yet) and commits it before
    calling Stripe, so two concurrent creators collide on the unique
    ``business_id`` constraint instead of both opening remote accounts. Any
    failure once the remote account exists deletes it again.
    """

    def __init__(self, db: Session, client: StripeProcessorClient):
        self.db = db
        self._client = client

    # ------------------------------------------------------------------ lookup
    def find_for_business(self, business_id: int) -> ConnectAccount | None:
        return self.db.scalar(select(ConnectAccount).where(ConnectAccount.business_id == business_id))

    def find_for_tenant(self, tenant_id: str) -> ConnectAccount | None:
        """Connect account (with a remote id) of the business owning ``tenant_id``."""
        return self.db.scalar(
            select(ConnectAccount)
            .join(Business, Business.id == ConnectAccount.business_id)
            .where(Business.tenant_id == tenant_id, ConnectAccount.remote_account_id.is_not(None))
        )

    # ---------------------------------------------------------------- creation
    def create(
        self,
        business: Business,
        account_kind: str = "express",
        country_code: str = "US",
        email: str | None = None,
    ) -> ConnectOnboarding:
        existing = self.find_for_business(business.id)
        if existing is not None:
            if existing.is_reservation and self._reservation_expired(existing):
                logger.warning(
                    "Reclaiming abandoned Connect reservation id=%s business=%s", existing.id, business.id
                )
                self.db.delete(existing)
                self.db.commit()
            else:
                raise self._already_exists(business.id)

        reservation = ConnectAccount(
            business_id=business.id,
            account_kind=account_kind,
            country_code=country_code.upper(),
            contact_email=email,
        )
        self.db.add(reservation)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise self._already_exists(business.id) from exc
        reservation_id = reservation.id

        api: Any = None
        remote_id: str | None = None
        try:
            api = self._client.get()
            try:
                remote = api.Account.create(
                    type=account_kind,
                    country=country_code.upper(),
                    email=email,
                    capabilities={
                        "card_payments": {"requested": True},
                        "transfers": {"requested": True},
                    },
                    metadata={"business_id": str(business.id), "business_name": business.name},
                )
            except stripe.StripeError as exc:
                raise remote_failure("create Stripe Connect account", exc) from exc
            remote_id = field(remote, "id")

            onboarding_url = self._account_link(api, remote_id)
            self._finalize(reservation, business, remote)
        except Exception:
            self.db.rollback()
            if remote_id:
                self._delete_remote_after_failure(api, remote_id)
            self._release_reservation(reservation_id)
            raise

        metrics.connect_event("created")
        logger.info("Created Connect account %s for business %s", remote_id, business.id)
        return ConnectOnboarding(account_id=remote_id, onboarding_url=onboarding_url)

    def _finalize(self, account: ConnectAccount, business: Business, remote: Any) -> None:
        account.remote_account_id = field(remote, "id")
        self._apply_flags(account, remote)
        business.stripe_connect_account_id = account.remote_account_id
        self.db.commit()

    def _delete_remote_after_failure(self, api: Any, remote_id: str) -> None:
        try:
            api.Account.delete(remote_id)
            metrics.connect_event("rolled_back")
            logger.info("Rolled back Connect account %s after failed creation", remote_id)
        except stripe.StripeError as exc:
            # Left for the reconciliation job
            metrics.connect_event("orphaned")
            logger.error("Could not delete orphaned Connect account %s: %s", remote_id, exc)

    def _release_reservation(self, reservation_id: int) -> None:
        try:
            self.db.query(ConnectAccount).filter(
                ConnectAccount.id == reservation_id,
                ConnectAccount.remote_account_id.is_(None),
            ).delete(synchronize_session=False)
            self.db.commit()
        except Exception as exc:  # noqa: BLE001 - original failure is re-raised by caller
            self.db.rollback()
            logger.error("Could not release Connect reservation %s: %s", reservation_id, exc)

    @staticmethod
    def _reservation_expired(account: ConnectAccount) -> bool:
        created = account.created_at
        if created is None:
            return True
        if created.tzinfo is None:
            created = created.replace(tzinfo=dt.timezone.utc)
        age = utcnow() - created
        return age.total_seconds() > settings.CONNECT_RESERVATION_TTL_SECONDS

    @staticmethod
    def _already_exists(business_id: int) -> AlreadyExistsError:
        return AlreadyExistsError(
            "Stripe Connect account already exists for this business",
            details={"business_id": business_id},
        )

    # ------------------------------------------------------------------ status
    def sync_status(self, business_id: int) -> ConnectStatus:
        account = self.find_for_business(business_id)
        if account is None or account.is_reservation:
            return ConnectStatus.no_account()
        account = self.reconcile(account)
        return self._to_status(account)

    def get_status(self, business: Business) -> ConnectStatus:
        return self.sync_status(business.id)

    def reconcile(self, account: ConnectAccount) -> ConnectAccount:
        """Pull the account flags from Stripe and persist them."""
        api = self._client.get()
        try:
            remote = api.Account.retrieve(account.remote_account_id)
        except stripe.StripeError as exc:
            raise remote_failure("retrieve Stripe Connect account", exc) from exc

        was_complete = account.is_complete
        self._apply_flags(account, remote)
        self.db.commit()
        if account.is_complete and not was_complete:
            metrics.connect_event("completed")
            logger.info("Connect account %s completed onboarding", account.remote_account_id)
        return account

    def apply_remote_update(self, remote_account: Any, tenant_id: str | None = None) -> ConnectAccount | None:
        """
        Refresh a known sub-account from an ``account.updated`` payload.

        With ``tenant_id`` only that tenant's own account may be updated.
        """
        remote_id = field(remote_account, "id")
        if tenant_id:
            account = self.find_for_tenant(tenant_id)
            if account is None or account.remote_account_id != remote_id:
                logger.warning("Ignoring update of Connect account %s not owned by tenant %s", remote_id, tenant_id)
                return None
        else:
            account = self.db.scalar(select(ConnectAccount).where(ConnectAccount.remote_account_id == remote_id))
        if account is None:
            logger.info("Ignoring update for unknown Connect account %s", remote_id)
            return None
        was_complete = account.is_complete
        self._apply_flags(account, remote_account)
        self.db.commit()
        metrics.connect_event("updated")
        if account.is_complete and not was_complete:
            metrics.connect_event("completed")
        return account

    @staticmethod
    def _apply_flags(account: ConnectAccount, remote: Any) -> None:
        account.charges_enabled = bool(field(remote, "charges_enabled", False))
        account.details_submitted = bool(field(remote, "details_submitted", False))
        account.payouts_enabled = bool(field(remote, "payouts_enabled", False))
        account.account_kind = field(remote, "type") or account.account_kind
        account.country_code = (field(remote, "country") or account.country_code).upper()
        account.contact_email = field(remote, "email") or account.contact_email

    @staticmethod
    def _to_status(account: ConnectAccount) -> ConnectStatus:
        return ConnectStatus(
            is_complete=account.is_complete,
            state=account.state,
            account=ConnectAccountOut(
                id=account.remote_account_id,
                type=account.account_kind,
                country=account.country_code,
                email=account.contact_email,
                charges_enabled=account.charges_enabled,
                details_submitted=account.details_submitted,
                payouts_enabled=account.payouts_enabled,
            ),
            stripe_account_id=account.remote_account_id,
        )

    # -------------------------------------------------------------- onboarding
    def get_onboarding_link(self, business: Business) -> ConnectOnboarding:
        account = self.find_for_business(business.id)
        if account is None or account.is_reservation:
            raise ConnectAccountNotFoundError(business.id)
        if account.is_complete:
            logger.info("Issuing account link for already complete Connect account %s", account.remote_account_id)

        api = self._client.get()
        url = self._account_link(api, account.remote_account_id)
        return ConnectOnboarding(account_id=account.remote_account_id, onboarding_url=url)

    @staticmethod
    def _account_link(api: Any, remote_id: str) -> str:
        base = settings.FRONTEND_URL.rstrip("/")
        try:
            link = api.AccountLink.create(
                account=remote_id,
                refresh_url=f"{base}/admin/account?tab=stripe-connect&refresh=true",
                return_url=f"{base}/admin/account?tab=stripe-connect&success=true",
                type="account_onboarding",
            )
        except stripe.StripeError as exc:
            raise remote_failure("create Stripe onboarding link", exc) from exc
        return field(link, "url")

    # ------------------------------------------------------------- disconnect
    def disconnect(self, business: Business) -> None:
        """
        Delete the sub-account remotely, then locally.

        If Stripe refuses the delete the local row is kept so the two sides
        stay consistent; an account Stripe no longer knows is cleaned up
        locally.
        """
        account = self.find_for_business(business.id)
        if account is None or account.is_reservation:
            raise ConnectAccountNotFoundError(business.id)

        api = self._client.get()
        try:
            api.Account.delete(account.remote_account_id)
        except stripe.StripeError as exc:
            if not is_missing(exc):
                raise remote_failure("disconnect Stripe Connect account", exc) from exc
            logger.warning("Connect account %s already gone remotely", account.remote_account_id)

        remote_id = account.remote_account_id
        self.db.delete(account)
        business.stripe_connect_account_id = None
        self.db.commit()
        metrics.connect_event("disconnected")
        logger.info("Disconnected Connect account %s from business %s", remote_id, business.id)
