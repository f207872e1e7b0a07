"""Local user <-> Stripe customer mapping and saved cards."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any

import stripe
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import metrics
from app.core.exceptions import (
    CustomerNotFoundError,
    DefaultPaymentMethodError,
    GymStackException,
    OwnershipMismatchError,
    PaymentMethodNotFoundError,
)
from app.models.models import User
from app.models.payment_models import CustomerRecord, CustomerStatus
from app.models.schemas import (
    BillingDetailsOut,
    CardDetailsOut,
    CustomerInfoOut,
    PaymentCardInfo,
    PaymentCardOut,
    PaymentCardsOut,
)

from .client import StripeProcessorClient
from .remote import field, is_missing, remote_failure

logger = logging.getLogger(__name__)


def _plain_dict(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    to_dict = getattr(value, "to_dict", None)
    return to_dict() if callable(to_dict) else {}


def _object_id(value: Any) -> str | None:
    """Stripe returns either an id or an expanded object for references."""
    if value is None or isinstance(value, str):
        return value
    return field(value, "id")


class CustomerVaultManager:
    """
    Resolve (or lazily create) the Stripe customer behind a local user and
    manage the cards saved on it.

    One CustomerRecord per user. Member accounts linked through
    ``User.ref_user_id`` share the primary account's customer.
    """

    def __init__(self, db: Session, client: StripeProcessorClient):
        self.db = db
        self._client = client

    # --------------------------------------------------------------- customers
    def find_record(self, user: User) -> CustomerRecord | None:
        record = self.db.scalar(select(CustomerRecord).where(CustomerRecord.user_id == user.id))
        if record is None and user.ref_user_id:
            record = self.db.scalar(select(CustomerRecord).where(CustomerRecord.user_id == user.ref_user_id))
        return record

    def get_or_create(self, user: User, tenant_id: str | None = None) -> CustomerRecord:
        record, _ = self._resolve(user, tenant_id)
        return record

    def _resolve(self, user: User, tenant_id: str | None = None) -> tuple[CustomerRecord, Any]:
        """Return the usable local record together with the live remote customer."""
        record = self.find_record(user)
        if record is not None:
            remote = self.reconcile(record)
            if remote is not None:
                return record, remote

        owner = user
        if record is not None and record.user is not None:
            owner = record.user

        api = self._client.get()
        metadata = {"user_id": str(owner.id)}
        if tenant_id:
            metadata["tenant_id"] = tenant_id
        try:
            remote = api.Customer.create(email=owner.email, name=owner.display_name, metadata=metadata)
        except stripe.StripeError as exc:
            raise remote_failure("create Stripe customer", exc) from exc

        if record is not None:
            # Remote customer was deleted out-of-band: point the row at the new one
            logger.warning(
                "Replacing deleted Stripe customer %s for user %s", record.remote_customer_id, owner.id
            )
            record.remote_customer_id = field(remote, "id")
            self._apply_remote(record, remote)
            self.db.commit()
            metrics.customer_event("recreated")
            return record, remote

        record = CustomerRecord(user_id=owner.id, remote_customer_id=field(remote, "id"))
        self._apply_remote(record, remote)
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent creator: keep theirs
            self.db.rollback()
            self._delete_orphan(api, field(remote, "id"))
            winner = self.db.scalar(select(CustomerRecord).where(CustomerRecord.user_id == owner.id))
            if winner is None:
                raise
            metrics.customer_event("create_race_lost")
            remote = self.reconcile(winner)
            if remote is None:
                raise CustomerNotFoundError(winner.remote_customer_id)
            return winner, remote

        metrics.customer_event("created")
        logger.info("Created Stripe customer %s for user %s", record.remote_customer_id, owner.id)
        return record, remote

    def _delete_orphan(self, api: Any, remote_id: str) -> None:
        try:
            api.Customer.delete(remote_id)
        except stripe.StripeError as exc:
            logger.error("Could not delete orphaned Stripe customer %s: %s", remote_id, exc)

    def reconcile(self, record: CustomerRecord) -> Any | None:
        """
        Verify the cached customer against Stripe.

        Returns the live remote customer after refreshing the cached fields,
        or None when Stripe reports it deleted or missing (the record is then
        marked deleted). Any other failure raises RemoteUnavailableError.
        """
        api = self._client.get()
        try:
            remote = api.Customer.retrieve(record.remote_customer_id)
        except stripe.StripeError as exc:
            if not is_missing(exc):
                raise remote_failure("retrieve Stripe customer", exc) from exc
            remote = None

        if remote is None or field(remote, "deleted", False):
            record.status = CustomerStatus.DELETED.value
            self.db.commit()
            logger.info("Stripe customer %s no longer exists", record.remote_customer_id)
            return None

        self._apply_remote(record, remote)
        self.db.commit()
        return remote

    @staticmethod
    def _apply_remote(record: CustomerRecord, remote: Any) -> None:
        record.email = field(remote, "email")
        record.display_name = field(remote, "name")
        country = field(field(remote, "address"), "country")
        record.country_code = country.upper() if country else None
        record.status = CustomerStatus.ACTIVE.value
        created = field(remote, "created")
        if created:
            record.remote_created_at = dt.datetime.fromtimestamp(created, tz=dt.timezone.utc)
        record.customer_metadata = _plain_dict(field(remote, "metadata"))

    def get_customer_info(self, user: User) -> CustomerInfoOut:
        """Live customer of the user; one deleted out-of-band is recreated first."""
        _, remote = self._resolve(user)
        return CustomerInfoOut(
            id=field(remote, "id"),
            email=field(remote, "email"),
            name=field(remote, "name"),
            default_payment_method_id=self._default_id(remote),
            metadata=_plain_dict(field(remote, "metadata")),
        )

    # ------------------------------------------------------------------- cards
    def list_cards(self, user: User) -> PaymentCardsOut:
        record, remote = self._resolve(user)
        api = self._client.get()
        try:
            listing = api.PaymentMethod.list(customer=record.remote_customer_id, type="card")
        except stripe.StripeError as exc:
            raise remote_failure("list payment methods", exc) from exc
        return PaymentCardsOut(
            payment_methods=[self._to_card_out(pm) for pm in field(listing, "data", [])],
            default_payment_method_id=self._default_id(remote),
        )

    def add_payment_method(self, user: User, payment_method_id: str, set_as_default: bool = False) -> PaymentCardOut:
        record = self.get_or_create(user)
        payment_method = self.attach_payment_method(record.remote_customer_id, payment_method_id, set_as_default)
        return self._to_card_out(payment_method)

    def attach_payment_method(self, customer_id: str, payment_method_id: str, set_as_default: bool = False) -> Any:
        api = self._client.get()
        try:
            payment_method = api.PaymentMethod.attach(payment_method_id, customer=customer_id)
        except stripe.StripeError as exc:
            if is_missing(exc):
                raise PaymentMethodNotFoundError(payment_method_id) from exc
            raise remote_failure("attach payment method", exc) from exc

        if set_as_default:
            self._set_default(api, customer_id, payment_method_id)
        metrics.customer_event("card_attached")
        logger.info("Attached payment method %s to customer %s", payment_method_id, customer_id)
        return payment_method

    def set_default_payment_method(self, user: User, payment_method_id: str) -> None:
        record = self.get_or_create(user)
        api = self._client.get()
        self._owned_payment_method(api, record.remote_customer_id, payment_method_id)
        self._set_default(api, record.remote_customer_id, payment_method_id)

    def delete_payment_method(self, user: User, payment_method_id: str) -> None:
        record, remote = self._resolve(user)
        api = self._client.get()
        self._owned_payment_method(api, record.remote_customer_id, payment_method_id)
        if self._default_id(remote) == payment_method_id:
            raise DefaultPaymentMethodError(payment_method_id)
        try:
            api.PaymentMethod.detach(payment_method_id)
        except stripe.StripeError as exc:
            raise remote_failure("detach payment method", exc) from exc
        metrics.customer_event("card_detached")
        logger.info("Detached payment method %s from customer %s", payment_method_id, record.remote_customer_id)

    def get_default_payment_method(self, user: User) -> PaymentCardOut | None:
        _, remote = self._resolve(user)
        default_id = self._default_id(remote)
        if not default_id:
            return None
        api = self._client.get()
        try:
            payment_method = api.PaymentMethod.retrieve(default_id)
        except stripe.StripeError as exc:
            if is_missing(exc):
                return None
            raise remote_failure("retrieve payment method", exc) from exc
        return self._to_card_out(payment_method)

    def get_card_info(self, payment_method_id: str) -> PaymentCardInfo | None:
        """Brand/last4/expiry of a card payment method; None when unavailable."""
        try:
            api = self._client.get()
            payment_method = api.PaymentMethod.retrieve(payment_method_id)
        except (stripe.StripeError, GymStackException) as exc:
            logger.warning("Card info lookup failed for %s: %s", payment_method_id, exc)
            return None
        card = field(payment_method, "card")
        last4 = field(card, "last4")
        if not last4:
            return None
        return PaymentCardInfo(
            brand=field(card, "brand"),
            last4=last4,
            exp_month=field(card, "exp_month"),
            exp_year=field(card, "exp_year"),
        )

    # ----------------------------------------------------------------- helpers
    def _owned_payment_method(self, api: Any, customer_id: str, payment_method_id: str) -> Any:
        try:
            payment_method = api.PaymentMethod.retrieve(payment_method_id)
        except stripe.StripeError as exc:
            if is_missing(exc):
                raise PaymentMethodNotFoundError(payment_method_id) from exc
            raise remote_failure("retrieve payment method", exc) from exc
        if _object_id(field(payment_method, "customer")) != customer_id:
            logger.warning("Payment method %s does not belong to customer %s", payment_method_id, customer_id)
            raise OwnershipMismatchError(payment_method_id)
        return payment_method

    @staticmethod
    def _set_default(api: Any, customer_id: str, payment_method_id: str) -> None:
        try:
            api.Customer.modify(customer_id, invoice_settings={"default_payment_method": payment_method_id})
        except stripe.StripeError as exc:
            raise remote_failure("set default payment method", exc) from exc

    @staticmethod
    def _default_id(remote_customer: Any) -> str | None:
        settings_ = field(remote_customer, "invoice_settings")
        return _object_id(field(settings_, "default_payment_method"))

    @staticmethod
    def _to_card_out(payment_method: Any) -> PaymentCardOut:
        card = field(payment_method, "card")
        billing = field(payment_method, "billing_details")
        return PaymentCardOut(
            id=field(payment_method, "id"),
            card=CardDetailsOut(
                brand=field(card, "brand"),
                last4=field(card, "last4"),
                exp_month=field(card, "exp_month"),
                exp_year=field(card, "exp_year"),
                funding=field(card, "funding"),
            )
            if card is not None
            else None,
            billing_details=BillingDetailsOut(name=field(billing, "name"), email=field(billing, "email"))
            if billing is not None
            else None,
            created=field(payment_method, "created", 0) or 0,
        )
