"""Local user <-> Paysafe customer mapping and saved payment handles.

Cards are saved by exchanging a single-use token from Paysafe.js for a
multi-use payment handle on the customer profile. Paysafe has no notion of a
default handle, so the default is tracked locally.
"""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any

import requests
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import metrics
from app.core.exceptions import PaymentMethodNotFoundError, RemoteUnavailableError
from app.models.models import User
from app.models.payment_models import PaysafeCustomer
from app.models.schemas import (
    BillingDetailsOut,
    CardDetailsOut,
    CustomerInfoOut,
    PaymentCardOut,
    PaymentCardsOut,
)

from .client import PaysafeApiError, PaysafeProcessorClient
from .remote import remote_failure

logger = logging.getLogger(__name__)

PROVIDER = "paysafe"


def merchant_customer_id(user_id: int, tenant_id: str | None = None) -> str:
    return f"{tenant_id}:{user_id}" if tenant_id else str(user_id)


class PaysafeCustomerVault:
    """
    Saved cards of a user on Paysafe.

    One PaysafeCustomer per user; linked member accounts share the primary
    account's profile, as with the Stripe vault. ``tenant_id`` only shapes the
    merchant customer id of profiles created through this vault.
    """

    def __init__(self, db: Session, client: PaysafeProcessorClient, tenant_id: str | None = None):
        self.db = db
        self._client = client
        self.tenant_id = tenant_id

    # --------------------------------------------------------------- customers
    def find_record(self, user: User) -> PaysafeCustomer | None:
        record = self.db.scalar(select(PaysafeCustomer).where(PaysafeCustomer.user_id == user.id))
        if record is None and user.ref_user_id:
            record = self.db.scalar(select(PaysafeCustomer).where(PaysafeCustomer.user_id == user.ref_user_id))
        return record

    def get_or_create(self, user: User) -> PaysafeCustomer:
        record = self.find_record(user)
        if record is not None:
            return record

        owner_id = user.ref_user_id or user.id
        owner = self.db.get(User, owner_id) or user
        merchant_id = merchant_customer_id(owner.id, self.tenant_id)
        api = self._client.get()
        try:
            remote = api.create_customer(
                {
                    "firstName": owner.first_name or "User",
                    "lastName": owner.last_name or "",
                    "email": owner.email,
                    "merchantCustomerId": merchant_id,
                }
            )
        except (PaysafeApiError, requests.RequestException) as exc:
            raise remote_failure("create Paysafe customer", exc, provider=PROVIDER) from exc
        remote_id = remote.get("id")
        if not remote_id:
            raise RemoteUnavailableError(
                "create Paysafe customer", "Paysafe did not return a customer id", provider=PROVIDER
            )

        record = PaysafeCustomer(user_id=owner.id, remote_customer_id=remote_id, merchant_customer_id=merchant_id)
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent request created the profile first: keep theirs
            self.db.rollback()
            winner = self.db.scalar(select(PaysafeCustomer).where(PaysafeCustomer.user_id == owner.id))
            if winner is None:
                raise
            logger.warning("Paysafe customer %s for user %s left unused after a race", remote_id, owner.id)
            metrics.customer_event("create_race_lost")
            return winner

        metrics.customer_event("created")
        logger.info("Created Paysafe customer %s for user %s", remote_id, owner.id)
        return record

    def get_customer_info(self, user: User) -> CustomerInfoOut:
        record = self.get_or_create(user)
        owner = record.user or user
        return CustomerInfoOut(
            id=record.remote_customer_id,
            email=owner.email,
            name=owner.display_name,
            default_payment_method_id=record.default_payment_handle_token,
            metadata={"merchant_customer_id": record.merchant_customer_id, "processor": PROVIDER},
        )

    # ------------------------------------------------------------------- cards
    def list_cards(self, user: User) -> PaymentCardsOut:
        record = self.get_or_create(user)
        cards = self._cards(record, user)
        default = record.default_payment_handle_token
        if default and all(card.id != default for card in cards):
            logger.info("Clearing stale default payment handle for Paysafe customer %s", record.remote_customer_id)
            record.default_payment_handle_token = None
            self.db.commit()
            default = None
        return PaymentCardsOut(payment_methods=cards, default_payment_method_id=default)

    def add_payment_method(self, user: User, payment_method_id: str, set_as_default: bool = False) -> PaymentCardOut:
        """Save the card behind a single-use token; the first card becomes the default."""
        record = self.get_or_create(user)
        api = self._client.get()
        try:
            handle = api.create_payment_handle(record.remote_customer_id, payment_method_id)
        except (PaysafeApiError, requests.RequestException) as exc:
            raise remote_failure("save Paysafe payment handle", exc, provider=PROVIDER) from exc
        token = handle.get("paymentHandleToken")
        if not isinstance(token, str) or not token:
            logger.error("Paysafe returned no multi-use payment handle token for customer %s", record.remote_customer_id)
            raise RemoteUnavailableError(
                "save Paysafe payment handle", "Paysafe did not return a payment handle token", provider=PROVIDER
            )

        if set_as_default or not record.default_payment_handle_token:
            record.default_payment_handle_token = token
            self.db.commit()
        metrics.customer_event("card_attached")
        logger.info("Saved Paysafe payment handle for customer %s", record.remote_customer_id)
        return self._to_card_out(handle, record.user or user)

    def set_default_payment_method(self, user: User, payment_method_id: str) -> None:
        record = self.get_or_create(user)
        self._owned_card(record, user, payment_method_id)
        record.default_payment_handle_token = payment_method_id
        self.db.commit()

    def delete_payment_method(self, user: User, payment_method_id: str) -> None:
        """Remove a saved handle; removing the default leaves the customer without one."""
        record = self.get_or_create(user)
        self._owned_card(record, user, payment_method_id)
        api = self._client.get()
        try:
            api.delete_payment_handle(record.remote_customer_id, payment_method_id)
        except (PaysafeApiError, requests.RequestException) as exc:
            raise remote_failure("delete Paysafe payment handle", exc, provider=PROVIDER) from exc

        if record.default_payment_handle_token == payment_method_id:
            record.default_payment_handle_token = None
            self.db.commit()
        metrics.customer_event("card_detached")
        logger.info("Deleted Paysafe payment handle from customer %s", record.remote_customer_id)

    def get_default_payment_method(self, user: User) -> PaymentCardOut | None:
        record = self.get_or_create(user)
        default = record.default_payment_handle_token
        if not default:
            return None
        return next((card for card in self._cards(record, user) if card.id == default), None)

    # ----------------------------------------------------------------- helpers
    def _cards(self, record: PaysafeCustomer, user: User) -> list[PaymentCardOut]:
        api = self._client.get()
        try:
            handles = api.list_payment_handles(record.remote_customer_id)
        except (PaysafeApiError, requests.RequestException) as exc:
            raise remote_failure("list Paysafe payment handles", exc, provider=PROVIDER) from exc
        owner = record.user or user
        return [
            self._to_card_out(handle, owner)
            for handle in handles
            if isinstance(handle, dict) and isinstance(handle.get("paymentHandleToken"), str)
        ]

    def _owned_card(self, record: PaysafeCustomer, user: User, payment_method_id: str) -> PaymentCardOut:
        for card in self._cards(record, user):
            if card.id == payment_method_id:
                return card
        logger.warning(
            "Payment handle %s is not saved on Paysafe customer %s", payment_method_id, record.remote_customer_id
        )
        raise PaymentMethodNotFoundError(payment_method_id)

    @staticmethod
    def _to_card_out(handle: dict[str, Any], owner: User) -> PaymentCardOut:
        card = handle.get("card") or {}
        expiry = card.get("cardExpiry") or {}
        return PaymentCardOut(
            id=handle["paymentHandleToken"],
            card=CardDetailsOut(
                brand=card.get("cardType") or "card",
                last4=card.get("lastDigits") or "0000",
                exp_month=int(expiry.get("month") or 12),
                exp_year=int(expiry.get("year") or dt.date.today().year),
            ),
            billing_details=BillingDetailsOut(
                name=f"{owner.first_name or ''} {owner.last_name or ''}".strip() or None,
                email=owner.email,
            ),
            created=int(dt.datetime.now(dt.timezone.utc).timestamp()),
        )
