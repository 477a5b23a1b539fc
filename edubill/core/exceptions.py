"""
Billing error taxonomy and the DRF exception handler that renders it.

Services raise these exceptions; API views let them propagate so that
``billing_exception_handler`` turns them into ``{"detail", "code"}``
responses with the matching HTTP status.

    ValidationError            400  bad input, unknown plan, limit violation
    ConflictError              409  duplicate open subscription, already canceled
    NotFoundError              404  unknown plan, subscription or payment
    GatewayError               502  provider failure after retries
      PaymentDeclinedError     402  business decline from the provider
      UnsupportedOperationError 501 provider lacks the capability
"""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler
from rest_framework.views import set_rollback

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Base exception for billing-related errors."""

    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, code: str = "billing_error"):
        self.detail = detail
        self.code = code
        super().__init__(detail)

    def as_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class ValidationError(BillingError):
    """Raised for bad input, unknown or inactive plans and limit violations."""

    def __init__(self, detail: str, code: str = "invalid"):
        super().__init__(detail, code=code)


class LimitExceededError(ValidationError):
    """Raised when current usage does not fit the requested plan."""

    def __init__(self, violations: list[str], detail: str | None = None):
        self.violations = list(violations)
        super().__init__(
            detail or f"Usage limits exceeded: {', '.join(self.violations)}",
            code="limit_exceeded",
        )

    def as_dict(self) -> dict:
        data = super().as_dict()
        data["violations"] = self.violations
        return data


class ConflictError(BillingError):
    """Raised for duplicate open subscriptions and invalid state transitions."""

    http_status = status.HTTP_409_CONFLICT

    def __init__(self, detail: str, code: str = "conflict"):
        super().__init__(detail, code=code)


class NotFoundError(BillingError):
    """Raised when a plan, subscription, payment or gateway does not exist."""

    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, detail: str, code: str = "not_found"):
        super().__init__(detail, code=code)


class GatewayError(BillingError):
    """
    Wraps a payment provider failure.

    Carries the provider's own error code and the normalized error type so
    callers can tell declines from outages without parsing messages.
    """

    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        detail: str,
        code: str = "gateway_error",
        *,
        gateway: str = "",
        error_type: str = "api_error",
    ):
        self.gateway = gateway
        self.error_type = error_type
        super().__init__(detail, code=code)

    def as_dict(self) -> dict:
        data = super().as_dict()
        data["gateway"] = self.gateway
        data["type"] = self.error_type
        return data


class PaymentDeclinedError(GatewayError):
    """Raised when the provider declines a charge. Never retried."""

    http_status = status.HTTP_402_PAYMENT_REQUIRED


class UnsupportedOperationError(GatewayError):
    """Raised when a gateway has no implementation for an operation."""

    http_status = status.HTTP_501_NOT_IMPLEMENTED


class GatewayConfigurationError(Exception):
    """Raised when an enabled gateway is missing required credentials."""

    def __init__(self, gateway: str, missing: list[str]):
        self.gateway = gateway
        self.missing = missing
        super().__init__(
            f"Gateway '{gateway}' is missing required credentials: "
            f"{', '.join(missing)}",
        )


def billing_exception_handler(exc, context):
    """
    DRF exception handler that understands BillingError.

    Anything that is not a BillingError falls through to DRF's default
    handler, so framework errors keep their usual shape.
    """
    if isinstance(exc, BillingError):
        if exc.http_status >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.warning(
                "Billing request failed with %s: %s",
                type(exc).__name__,
                exc.detail,
            )
        # Declined attempts stay recorded as failed payments.
        if not isinstance(exc, PaymentDeclinedError):
            set_rollback()
        return Response(exc.as_dict(), status=exc.http_status)
    return exception_handler(exc, context)
