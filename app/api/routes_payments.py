import logging

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from app.api.dependencies import OptionalTenantDep, WebhookProcessorDep
from app.api.rate_limit import RATE_LIMITS, limiter
from app.models.schemas import WebhookAck

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/webhook", response_model=WebhookAck)
@limiter.limit(RATE_LIMITS["webhook_stripe"])
async def stripe_webhook(request: Request, processor: WebhookProcessorDep, tenant_id: OptionalTenantDep):
    """Verify and dispatch a Stripe webhook delivery.

    The raw body is needed for signature verification, so it is read before
    any JSON parsing.
    """
    raw_body = await request.body()
    signature = request.headers.get("stripe-signature") or request.headers.get("signature")
    return await run_in_threadpool(processor.handle, raw_body, signature, tenant_id)
