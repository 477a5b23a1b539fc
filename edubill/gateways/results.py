"""
Tagged results returned by every gateway operation.

Adapters never let a provider exception escape. Each call returns a
GatewayResponse that is either ``success=True`` with ``data`` or
``success=False`` with a GatewayErrorDetail. Callers that prefer
exceptions call ``raise_for_error()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Any
from typing import Generic
from typing import TypeVar

from edubill.core.exceptions import GatewayError
from edubill.core.exceptions import PaymentDeclinedError
from edubill.core.exceptions import UnsupportedOperationError
from edubill.gateways.constants import GatewayErrorCode
from edubill.gateways.constants import GatewayErrorType

T = TypeVar("T")


@dataclass(frozen=True)
class GatewayErrorDetail:
    code: str
    message: str
    type: str
    gateway: str

    @property
    def is_unsupported(self) -> bool:
        return self.code == GatewayErrorCode.UNSUPPORTED_OPERATION

    @property
    def is_decline(self) -> bool:
        return self.type == GatewayErrorType.CARD_ERROR


@dataclass(frozen=True)
class GatewayResponse(Generic[T]):
    success: bool
    gateway: str
    data: T | None = None
    error: GatewayErrorDetail | None = None

    @classmethod
    def ok(cls, gateway: str, data: T | None = None) -> GatewayResponse[T]:
        return cls(success=True, gateway=gateway, data=data)

    @classmethod
    def failure(
        cls,
        gateway: str,
        code: str,
        message: str,
        error_type: str = GatewayErrorType.API_ERROR,
    ) -> GatewayResponse[T]:
        return cls(
            success=False,
            gateway=gateway,
            error=GatewayErrorDetail(
                code=code,
                message=message,
                type=str(error_type),
                gateway=gateway,
            ),
        )

    @classmethod
    def unsupported(cls, gateway: str, operation: str) -> GatewayResponse[T]:
        return cls.failure(
            gateway,
            code=GatewayErrorCode.UNSUPPORTED_OPERATION,
            message=f"{gateway} does not support {operation}",
            error_type=GatewayErrorType.UNSUPPORTED_OPERATION,
        )

    @property
    def is_unsupported(self) -> bool:
        return self.error is not None and self.error.is_unsupported

    def raise_for_error(self) -> T | None:
        """Return ``data`` on success, otherwise raise the matching GatewayError."""
        if self.success:
            return self.data
        error = self.error
        if error.is_unsupported:
            exc_class = UnsupportedOperationError
        elif error.is_decline:
            exc_class = PaymentDeclinedError
        else:
            exc_class = GatewayError
        raise exc_class(
            error.message,
            code=error.code,
            gateway=error.gateway,
            error_type=error.type,
        )


@dataclass(frozen=True)
class CustomerData:
    id: str
    email: str = ""
    name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentIntentData:
    id: str
    amount: int
    currency: str
    status: str
    client_secret: str = ""
    redirect_url: str = ""
    gateway_fee: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RefundData:
    id: str
    payment_id: str
    amount: int
    currency: str
    status: str


@dataclass(frozen=True)
class SubscriptionData:
    id: str
    customer_id: str
    status: str
    price_id: str = ""
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    trial_end: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookEvent:
    """
    A verified provider event mapped onto the internal taxonomy.

    ``data`` holds the normalized references receivers need
    (customer_id, subscription_id, payment_id, amount, currency, status,
    metadata). ``raw`` keeps the provider object for audit logging.
    """

    id: str
    type: str
    gateway: str
    data: dict[str, Any]
    raw_type: str = ""
    created: datetime | None = None
    raw: dict[str, Any] = field(default_factory=dict)
