"""Common request dependencies for the payments API."""
import logging
from typing import Annotated, TypeAlias

from fastapi import Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import BusinessNotFoundError, UserNotFoundError
from app.core.security import TokenExpiredError, TokenValidationError, decode_token
from app.db.session import get_db
from app.models.models import Business, ProcessorType, User
from app.services.payments import (
    ConnectAccountManager,
    CustomerVaultManager,
    PaymentAdapterResolver,
    PaysafeCustomerVault,
    WebhookProcessor,
    create_connect_manager,
    create_customer_vault,
    create_paysafe_customer_vault,
    create_webhook_processor,
    get_payment_adapter_resolver,
)

logger = logging.getLogger(__name__)

DbDep: TypeAlias = Annotated[Session, Depends(get_db)]


def get_current_user_id(authorization: str = Header(None)) -> int:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = decode_token(token)
        return int(payload["sub"])
    except TokenExpiredError as exc:
        raise HTTPException(status_code=401, detail="Token expired") from exc
    except (TokenValidationError, KeyError, ValueError) as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid token") from exc


def get_tenant_id(x_tenant_id: str | None = Header(None, alias="X-Tenant-ID")) -> str:
    if not x_tenant_id:
        raise HTTPException(status_code=400, detail="Missing X-Tenant-ID header")
    return x_tenant_id


def get_optional_tenant_id(x_tenant_id: str | None = Header(None, alias="X-Tenant-ID")) -> str | None:
    return x_tenant_id or None


CurrentUserIdDep: TypeAlias = Annotated[int, Depends(get_current_user_id)]
TenantDep: TypeAlias = Annotated[str, Depends(get_tenant_id)]
OptionalTenantDep: TypeAlias = Annotated[str | None, Depends(get_optional_tenant_id)]


def get_current_user(current_user_id: CurrentUserIdDep, db: DbDep) -> User:
    user = db.get(User, current_user_id)
    if user is None:
        raise UserNotFoundError(current_user_id)
    return user


def get_current_business(current_user_id: CurrentUserIdDep, tenant_id: TenantDep, db: DbDep) -> Business:
    """Business of the tenant, provided the caller owns it."""
    business = db.scalar(select(Business).where(Business.tenant_id == tenant_id))
    if business is None:
        raise BusinessNotFoundError(tenant_id)
    if business.owner_user_id != current_user_id:
        raise HTTPException(status_code=403, detail="Only the business owner can manage payment settings")
    return business


CurrentUserDep: TypeAlias = Annotated[User, Depends(get_current_user)]
CurrentBusinessDep: TypeAlias = Annotated[Business, Depends(get_current_business)]


def get_connect_manager(db: DbDep) -> ConnectAccountManager:
    return create_connect_manager(db)


def get_customer_vault(db: DbDep) -> CustomerVaultManager:
    return create_customer_vault(db)


def get_webhook_processor(db: DbDep) -> WebhookProcessor:
    return create_webhook_processor(db)


ConnectManagerDep: TypeAlias = Annotated[ConnectAccountManager, Depends(get_connect_manager)]
CustomerVaultDep: TypeAlias = Annotated[CustomerVaultManager, Depends(get_customer_vault)]
WebhookProcessorDep: TypeAlias = Annotated[WebhookProcessor, Depends(get_webhook_processor)]
ResolverDep: TypeAlias = Annotated[PaymentAdapterResolver, Depends(get_payment_adapter_resolver)]


def get_processor_type(current_user_id: CurrentUserIdDep, tenant_id: TenantDep, resolver: ResolverDep) -> ProcessorType:
    """Processor configured for the tenant; the caller is authenticated first."""
    return resolver.processor_type_for(tenant_id)


ProcessorTypeDep: TypeAlias = Annotated[ProcessorType, Depends(get_processor_type)]


def get_card_vault(
    processor_type: ProcessorTypeDep, tenant_id: TenantDep, db: DbDep
) -> CustomerVaultManager | PaysafeCustomerVault:
    if processor_type is ProcessorType.PAYSAFE:
        return create_paysafe_customer_vault(db, tenant_id)
    return create_customer_vault(db)


CardVaultDep: TypeAlias = Annotated[CustomerVaultManager | PaysafeCustomerVault, Depends(get_card_vault)]
