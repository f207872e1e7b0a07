import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.config import settings

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """Rate limit key: the caller IP.

    Request headers such as X-Tenant-ID are unauthenticated when the limit is
    checked and must not widen the key.
    """
    return get_remote_address(request)


# In-memory storage; limits are per process
limiter = Limiter(key_func=get_client_identifier, storage_uri="memory://")
logger.info("Rate limiter using in-memory storage")

RATE_LIMITS = {
    "webhook_stripe": settings.RATE_LIMIT_WEBHOOK,
}
