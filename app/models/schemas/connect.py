"""Stripe Connect request/response schemas."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from app.models.payment_models import ConnectState


class ConnectCreateIn(BaseModel):
    type: Literal["express", "standard"] = "express"
    country: str = Field("US", min_length=2, max_length=2, description="ISO 3166-1 alpha-2 country code")


class ConnectOnboarding(BaseModel):
    account_id: str
    onboarding_url: str


class ConnectCreateOut(BaseModel):
    success: bool = True
    message: str
    data: ConnectOnboarding


class ConnectAccountOut(BaseModel):
    id: str
    type: str
    country: str
    email: str | None = None
    charges_enabled: bool
    details_submitted: bool
    payouts_enabled: bool


class ConnectStatus(BaseModel):
    """Connect status as shown on the business settings page."""
    is_complete: bool
    state: ConnectState
    account: ConnectAccountOut | None = None
    stripe_account_id: str | None = None

    @classmethod
    def no_account(cls) -> ConnectStatus:
        return cls(is_complete=False, state=ConnectState.NONE, account=None, stripe_account_id=None)
