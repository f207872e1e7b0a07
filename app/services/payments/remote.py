"""Helpers shared by the processor-backed managers."""
from __future__ import annotations

import logging
from typing import Any

import stripe

from app import metrics
from app.core.exceptions import RemoteUnavailableError

logger = logging.getLogger(__name__)


def field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from a Stripe object, a plain dict, or a test double."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def is_missing(exc: Exception) -> bool:
    """True when Stripe reports the referenced object does not exist."""
    return isinstance(exc, stripe.InvalidRequestError) and getattr(exc, "code", None) == "resource_missing"


def error_message(exc: Exception) -> str:
    if isinstance(exc, stripe.StripeError):
        return exc.user_message or str(exc)
    return str(exc)


def remote_failure(operation: str, exc: Exception, provider: str = "stripe") -> RemoteUnavailableError:
    """Log a failed processor call and build the error the caller should raise."""
    message = error_message(exc)
    logger.error("%s call failed operation=%r: %s", provider, operation, message)
    metrics.remote_error(provider, operation)
    return RemoteUnavailableError(operation, message, provider=provider)
