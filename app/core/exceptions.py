"""Custom exception hierarchy for GymStack payments.

Every error raised by the payments core derives from GymStackException so the
API layer can render it uniformly (see app.core.errors).

Error codes follow pattern: [CATEGORY][NUMBER]
- PAY: Payment routing / processor errors (200-299)
- SYS: System errors (400-499)
"""

from __future__ import annotations

from typing import Any


class GymStackException(Exception):
    """Base exception for all GymStack application errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with user-facing message and metadata.

        Args:
            message: User-facing error message
            code: Unique error code (e.g., "PAY200")
            status_code: HTTP status code (default: 400 Bad Request)
            details: Optional additional context
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


# ============================================================================
# PAYMENT ERRORS (PAY200-299)
# ============================================================================

class PaymentError(GymStackException):
    """Base class for payment-related errors."""
    pass


class NotConfiguredError(PaymentError):
    """Tenant has no business or no usable payment processor."""

    def __init__(self, tenant_id: str | None = None, reason: str | None = None):
        message = reason or (
            "No payment processor is configured for this business. "
            "Please configure a payment processor in Settings."
        )
        super().__init__(
            message=message,
            code="PAY200",
            status_code=400,
            details={"tenant_id": tenant_id, "settings_url": "/admin/settings/payments"},
        )


class AlreadyExistsError(PaymentError):
    """A resource that must be unique already exists."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, code="PAY201", status_code=409, details=details)


class NotFoundError(PaymentError):
    """A payment resource does not exist."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, code="PAY202", status_code=404, details=details)


class BusinessNotFoundError(NotFoundError):
    def __init__(self, identifier: str | int | None = None):
        super().__init__(
            "Business not found",
            details={"business": identifier} if identifier is not None else None,
        )


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int | None = None):
        super().__init__(
            "User not found",
            details={"user_id": user_id} if user_id is not None else None,
        )


class ConnectAccountNotFoundError(NotFoundError):
    def __init__(self, business_id: int | None = None):
        super().__init__(
            "No Stripe Connect account found for this business",
            details={"business_id": business_id} if business_id is not None else None,
        )


class CustomerNotFoundError(NotFoundError):
    def __init__(self, customer_id: str | None = None):
        super().__init__(
            "Customer has been deleted in the payment processor",
            details={"customer_id": customer_id} if customer_id else None,
        )


class PaymentMethodNotFoundError(NotFoundError):
    def __init__(self, payment_method_id: str):
        super().__init__(
            f"Payment method {payment_method_id} not found",
            details={"payment_method_id": payment_method_id},
        )


class OwnershipMismatchError(PaymentError):
    """Payment method does not belong to the resolved customer."""

    def __init__(self, payment_method_id: str):
        super().__init__(
            message="Payment method does not belong to this customer",
            code="PAY203",
            status_code=403,
            details={"payment_method_id": payment_method_id},
        )


class DefaultPaymentMethodError(PaymentError):
    """Attempt to delete the customer's current default payment method."""

    def __init__(self, payment_method_id: str):
        super().__init__(
            message=(
                "Cannot delete the default payment method. "
                "Please set another card as default first."
            ),
            code="PAY204",
            status_code=400,
            details={"payment_method_id": payment_method_id},
        )


class RemoteUnavailableError(PaymentError):
    """Payment processor API call failed."""

    def __init__(self, operation: str, remote_message: str, provider: str = "stripe"):
        super().__init__(
            message=f"Failed to {operation}: {remote_message}",
            code="PAY205",
            status_code=502,
            details={"operation": operation, "provider": provider},
        )
        self.operation = operation
        self.remote_message = remote_message


class InvalidWebhookError(PaymentError):
    """Webhook could not be verified."""

    def __init__(self, reason: str = "Invalid signature"):
        super().__init__(message=reason, code="PAY206", status_code=400)


class WebhookPayloadMissingError(InvalidWebhookError):
    """Webhook arrived without a body or without a signature header."""

    def __init__(self, missing: str):
        super().__init__(reason=f"Missing webhook {missing}")
        self.details = {"missing": missing}


class InvalidPaymentRequestError(PaymentError):
    """Payment intent parameters are inconsistent (amount, fee, currency)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, code="PAY207", status_code=400, details=details)


# ============================================================================
# SYSTEM ERRORS (SYS400-499)
# ============================================================================

class SystemError(GymStackException):
    """Base class for system/infrastructure errors."""
    pass


class ConfigurationError(SystemError):
    """Application configuration is invalid or missing."""

    def __init__(self, parameter: str):
        message = f"Configuration error: {parameter} is not configured properly"
        super().__init__(
            message=message,
            code="SYS401",
            status_code=500,
            details={"parameter": parameter},
        )
