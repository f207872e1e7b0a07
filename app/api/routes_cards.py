"""Saved cards of the signed-in user, routed by the tenant's processor.

Paysafe tenants save cards as payment handles on a Paysafe customer profile;
every other tenant uses the Stripe vault.
"""
import logging

from fastapi import APIRouter, status

from app.api.dependencies import CardVaultDep, CurrentBusinessDep, CurrentUserDep, CurrentUserIdDep, DbDep
from app.core.config import settings
from app.core.exceptions import UserNotFoundError
from app.models.models import User
from app.models.schemas import (
    AddCardIn,
    CustomerInfoOut,
    MessageOut,
    PaymentCardOut,
    PaymentCardsOut,
    PaysafeConfigOut,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/customer", response_model=CustomerInfoOut)
def get_customer(user: CurrentUserDep, vault: CardVaultDep):
    return vault.get_customer_info(user)


@router.get("/cards", response_model=PaymentCardsOut)
def list_cards(user: CurrentUserDep, vault: CardVaultDep):
    return vault.list_cards(user)


@router.post("/cards", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def add_card(data: AddCardIn, user: CurrentUserDep, vault: CardVaultDep):
    """Save a card: a Stripe payment method id, or a Paysafe single-use token."""
    vault.add_payment_method(user, data.payment_method_id, set_as_default=data.set_as_default)
    return MessageOut(message="Payment method added successfully")


@router.get("/cards/default", response_model=PaymentCardOut | None)
def get_default_card(user: CurrentUserDep, vault: CardVaultDep):
    return vault.get_default_payment_method(user)


@router.post("/cards/{payment_method_id}/default", response_model=MessageOut)
def set_default_card(payment_method_id: str, user: CurrentUserDep, vault: CardVaultDep):
    vault.set_default_payment_method(user, payment_method_id)
    return MessageOut(message="Default payment method updated")


@router.delete("/cards/{payment_method_id}", response_model=MessageOut)
def delete_card(payment_method_id: str, user: CurrentUserDep, vault: CardVaultDep):
    vault.delete_payment_method(user, payment_method_id)
    return MessageOut(message="Payment method deleted successfully")


@router.get("/{user_id}/cards/default", response_model=PaymentCardOut | None)
def get_user_default_card(user_id: int, business: CurrentBusinessDep, db: DbDep, vault: CardVaultDep):
    """Default card of any user, for the business owner."""
    member = db.get(User, user_id)
    if member is None:
        raise UserNotFoundError(user_id)
    logger.info("Owner of %s looked up the default card of user %s", business.tenant_id, user_id)
    return vault.get_default_payment_method(member)


@router.get("/paysafe/config", response_model=PaysafeConfigOut)
def get_paysafe_config(_: CurrentUserIdDep):
    """Public tokenization key and environment for Paysafe.js."""
    return PaysafeConfigOut(
        single_use_token=settings.PAYSAFE_SINGLE_USE_TOKEN,
        environment=settings.PAYSAFE_ENVIRONMENT,
    )
