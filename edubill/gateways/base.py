"""
The PaymentGateway contract shared by every provider adapter.

Adapters implement the abstract operations and return GatewayResponse
values. They never let a provider exception escape: each provider call
goes through ``_call``, which retries transient failures with tenacity and
converts everything else into ``GatewayResponse.failure``.

Operations a provider cannot perform return ``_unsupported(operation)``,
a failure with code ``unsupported_operation``. Callers treat that as
"continue without the remote object", not as an outage.
"""

from __future__ import annotations

import logging
from abc import ABC
from abc import abstractmethod
from collections.abc import Callable
from typing import Any

import httpx
from tenacity import Retrying
from tenacity import retry_if_exception
from tenacity import stop_after_attempt
from tenacity import wait_exponential

from edubill.core.exceptions import GatewayConfigurationError
from edubill.gateways.config import MAX_RETRY_ATTEMPTS
from edubill.gateways.config import GatewayConfig
from edubill.gateways.constants import GatewayErrorCode
from edubill.gateways.constants import GatewayErrorType
from edubill.gateways.constants import WebhookEventType
from edubill.gateways.results import CustomerData
from edubill.gateways.results import GatewayResponse
from edubill.gateways.results import PaymentIntentData
from edubill.gateways.results import RefundData
from edubill.gateways.results import SubscriptionData
from edubill.gateways.results import WebhookEvent
from edubill.gateways.signals import WEBHOOK_SIGNALS

logger = logging.getLogger(__name__)


class TransientGatewayError(Exception):
    """A provider failure worth retrying: timeouts, 5xx and 429 responses."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class GatewayRequestError(Exception):
    """A provider rejection that must not be retried (4xx, declines)."""

    def __init__(
        self,
        message: str,
        code: str = GatewayErrorCode.PROVIDER_ERROR,
        error_type: str = GatewayErrorType.INVALID_REQUEST,
    ):
        self.code = code
        self.message = message
        self.error_type = error_type
        super().__init__(message)


class WebhookVerificationError(Exception):
    """Raised by parse_webhook_event when the signature or payload is bad."""


class PaymentGateway(ABC):
    code: str = ""
    display_name: str = ""
    REQUIRED_CREDENTIALS: tuple[str, ...] = ()

    # Exceptions _call converts into failures. Adapters extend this with
    # their SDK's base error.
    handled_exceptions: tuple[type[Exception], ...] = (
        TransientGatewayError,
        GatewayRequestError,
        httpx.HTTPError,
    )
    retry_wait = wait_exponential(multiplier=0.5, min=0.5, max=4)

    def __init__(self, config: GatewayConfig):
        self.config = config
        if config.enabled:
            missing = config.missing_credentials(self.REQUIRED_CREDENTIALS)
            if missing:
                raise GatewayConfigurationError(self.code, missing)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} enabled={self.is_enabled} priority={self.priority}>"

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    @property
    def is_enabled(self) -> bool:
        return self.config.enabled

    @property
    def priority(self) -> int:
        return self.config.priority

    @property
    def fallback_gateway(self) -> str | None:
        return self.config.fallback_gateway

    def supports_currency(self, currency: str) -> bool:
        return currency.upper() in self.config.supported_currencies

    def supports_country(self, country: str) -> bool:
        return country.upper() in self.config.supported_countries

    def supports(self, currency: str, country: str) -> bool:
        return self.supports_currency(currency) and self.supports_country(country)

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    def initialize(self) -> None:
        """Prepare clients. Called once when the registry builds the gateway."""

    @abstractmethod
    def health_check(self) -> bool: ...

    @abstractmethod
    def create_customer(
        self,
        email: str,
        name: str = "",
        metadata: dict | None = None,
    ) -> GatewayResponse[CustomerData]: ...

    @abstractmethod
    def get_customer(self, customer_id: str) -> GatewayResponse[CustomerData]: ...

    @abstractmethod
    def update_customer(self, customer_id: str, **fields) -> GatewayResponse[CustomerData]: ...

    @abstractmethod
    def delete_customer(self, customer_id: str) -> GatewayResponse[None]: ...

    @abstractmethod
    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_id: str = "",
        payment_method_id: str = "",
        description: str = "",
        metadata: dict | None = None,
    ) -> GatewayResponse[PaymentIntentData]:
        """Create a charge for ``amount`` minor units of ``currency``."""

    @abstractmethod
    def confirm_payment_intent(
        self,
        payment_intent_id: str,
        payment_method_id: str = "",
    ) -> GatewayResponse[PaymentIntentData]: ...

    @abstractmethod
    def get_payment_intent(self, payment_intent_id: str) -> GatewayResponse[PaymentIntentData]: ...

    @abstractmethod
    def cancel_payment_intent(self, payment_intent_id: str) -> GatewayResponse[PaymentIntentData]: ...

    @abstractmethod
    def refund_payment(
        self,
        payment_id: str,
        amount: int | None = None,
        currency: str = "",
        reason: str = "",
    ) -> GatewayResponse[RefundData]: ...

    @abstractmethod
    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_days: int = 0,
        payment_method_id: str = "",
        metadata: dict | None = None,
    ) -> GatewayResponse[SubscriptionData]: ...

    @abstractmethod
    def get_subscription(self, subscription_id: str) -> GatewayResponse[SubscriptionData]: ...

    @abstractmethod
    def update_subscription(
        self,
        subscription_id: str,
        price_id: str | None = None,
        cancel_at_period_end: bool | None = None,
        prorate: bool = True,
        metadata: dict | None = None,
    ) -> GatewayResponse[SubscriptionData]: ...

    @abstractmethod
    def cancel_subscription(
        self,
        subscription_id: str,
        immediately: bool = False,
    ) -> GatewayResponse[SubscriptionData]: ...

    @abstractmethod
    def resume_subscription(self, subscription_id: str) -> GatewayResponse[SubscriptionData]: ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
        secret: str | None = None,
    ) -> bool: ...

    @abstractmethod
    def parse_webhook_event(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse a webhook delivery.

        Raises WebhookVerificationError when the signature does not match
        or the payload cannot be read.
        """

    @abstractmethod
    def format_amount(self, amount: int, currency: str) -> Any:
        """Convert internal minor units to the provider's wire amount."""

    @abstractmethod
    def parse_amount(self, amount: Any, currency: str) -> int:
        """Convert the provider's wire amount back to minor units."""

    # ------------------------------------------------------------------
    # Shared behaviour
    # ------------------------------------------------------------------

    def handle_webhook_event(self, event: WebhookEvent) -> GatewayResponse[None]:
        """
        Dispatch a verified event to its receivers.

        Receiver exceptions are logged and do not fail the delivery, since
        the provider only needs to know the event arrived.
        """
        signal = WEBHOOK_SIGNALS.get(event.type, WEBHOOK_SIGNALS[WebhookEventType.UNKNOWN])
        responses = signal.send_robust(sender=type(self), event=event)
        for receiver_fn, result in responses:
            if isinstance(result, Exception):
                logger.error(
                    "Webhook receiver %s failed for %s event %s",
                    getattr(receiver_fn, "__name__", receiver_fn),
                    self.code,
                    event.id,
                    exc_info=result,
                )
        logger.info("Handled %s webhook %s (%s)", self.code, event.id, event.type)
        return GatewayResponse.ok(self.code)

    def _unsupported(self, operation: str) -> GatewayResponse:
        logger.debug("%s does not support %s", self.code, operation)
        return GatewayResponse.unsupported(self.code, operation)

    def is_transient_error(self, exc: BaseException) -> bool:
        return isinstance(exc, (TransientGatewayError, httpx.TransportError))

    def _call(self, operation: str, fn: Callable[[], GatewayResponse]) -> GatewayResponse:
        """
        Run one provider operation with retries and error normalization.

        Transient errors are retried up to ``max_retries`` times with
        exponential backoff. Anything in ``handled_exceptions`` becomes a
        failed GatewayResponse.
        """
        attempts = min(self.config.max_retries + 1, MAX_RETRY_ATTEMPTS)
        retrying = Retrying(
            stop=stop_after_attempt(attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(self.is_transient_error),
            reraise=True,
        )
        try:
            return retrying(fn)
        except self.handled_exceptions as exc:
            response = self._failure_from_exception(exc)
            logger.warning(
                "%s %s failed: [%s] %s",
                self.code,
                operation,
                response.error.code,
                response.error.message,
            )
            return response

    def _failure_from_exception(self, exc: Exception) -> GatewayResponse:
        if self.is_transient_error(exc):
            return GatewayResponse.failure(
                self.code,
                code=GatewayErrorCode.RETRIES_EXHAUSTED,
                message=str(exc) or "Provider unavailable",
                error_type=GatewayErrorType.API_ERROR,
            )
        if isinstance(exc, GatewayRequestError):
            return GatewayResponse.failure(
                self.code,
                code=exc.code,
                message=exc.message,
                error_type=exc.error_type,
            )
        return GatewayResponse.failure(
            self.code,
            code=GatewayErrorCode.PROVIDER_ERROR,
            message=str(exc),
            error_type=GatewayErrorType.API_ERROR,
        )


class HttpGatewayMixin:
    """
    httpx plumbing for providers without an SDK.

    Responses with status 5xx or 429 raise TransientGatewayError so
    ``_call`` retries them. Other 4xx responses raise GatewayRequestError.
    """

    config: GatewayConfig
    base_url: str = ""

    def _build_client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.config.timeout_seconds)

    def _request(self, method: str, path: str, **kwargs) -> dict:
        with self._build_client() as client:
            response = client.request(method, path, **kwargs)
        status = response.status_code
        if status == httpx.codes.TOO_MANY_REQUESTS or status >= httpx.codes.INTERNAL_SERVER_ERROR:
            raise TransientGatewayError(f"{method} {path} returned {status}", status_code=status)
        if status in (httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN):
            raise GatewayRequestError(
                f"{method} {path} was rejected with {status}",
                code="authentication_failed",
                error_type=GatewayErrorType.AUTHENTICATION,
            )
        if status >= httpx.codes.BAD_REQUEST:
            raise GatewayRequestError(
                self._error_message(response),
                code=f"http_{status}",
                error_type=GatewayErrorType.INVALID_REQUEST,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayRequestError(
                f"{method} {path} returned a non-JSON body",
                code=GatewayErrorCode.PAYLOAD_INVALID,
                error_type=GatewayErrorType.API_ERROR,
            ) from exc

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            return str(body.get("message") or body.get("detail") or body)
        return str(body)
