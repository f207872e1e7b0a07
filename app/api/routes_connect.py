import logging

from fastapi import APIRouter

from app.api.dependencies import ConnectManagerDep, CurrentBusinessDep, CurrentUserDep
from app.models.schemas import ConnectCreateIn, ConnectCreateOut, ConnectOnboarding, ConnectStatus, MessageOut

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=ConnectCreateOut)
def create_connect_account(
    business: CurrentBusinessDep,
    user: CurrentUserDep,
    manager: ConnectManagerDep,
    data: ConnectCreateIn | None = None,
):
    """Open a Connect account for the business and return its onboarding link."""
    data = data or ConnectCreateIn()
    onboarding = manager.create(business, account_kind=data.type, country_code=data.country, email=user.email)
    return ConnectCreateOut(
        success=True,
        message="Stripe Connect account created. Complete onboarding to start receiving payments.",
        data=onboarding,
    )


@router.get("/status", response_model=ConnectStatus)
def connect_status(business: CurrentBusinessDep, manager: ConnectManagerDep):
    return manager.get_status(business)


@router.post("/onboarding-link", response_model=ConnectOnboarding)
def connect_onboarding_link(business: CurrentBusinessDep, manager: ConnectManagerDep):
    return manager.get_onboarding_link(business)


@router.delete("", response_model=MessageOut)
def disconnect_connect_account(business: CurrentBusinessDep, manager: ConnectManagerDep):
    manager.disconnect(business)
    return MessageOut(message="Stripe Connect account disconnected successfully")
