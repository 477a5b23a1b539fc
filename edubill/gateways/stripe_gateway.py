"""
Stripe adapter.

Uses the stripe SDK with a per-call ``api_key`` so several configurations
can coexist in one process. Stripe amounts are already minor units.
Subscriptions use Stripe's native lifecycle and plan changes pass
``proration_behavior`` through.
"""

from __future__ import annotations

import logging
from datetime import UTC
from datetime import datetime

import stripe

from edubill.gateways.base import PaymentGateway
from edubill.gateways.base import WebhookVerificationError
from edubill.gateways.constants import GatewayCode
from edubill.gateways.constants import GatewayErrorType
from edubill.gateways.constants import PaymentStatus
from edubill.gateways.constants import WebhookEventType
from edubill.gateways.results import CustomerData
from edubill.gateways.results import GatewayResponse
from edubill.gateways.results import PaymentIntentData
from edubill.gateways.results import RefundData
from edubill.gateways.results import SubscriptionData
from edubill.gateways.results import WebhookEvent

logger = logging.getLogger(__name__)

STRIPE_EVENT_TYPES = {
    "invoice.paid": WebhookEventType.INVOICE_PAYMENT_SUCCEEDED,
    "invoice.payment_succeeded": WebhookEventType.INVOICE_PAYMENT_SUCCEEDED,
    "invoice.payment_failed": WebhookEventType.INVOICE_PAYMENT_FAILED,
    "customer.subscription.updated": WebhookEventType.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": WebhookEventType.SUBSCRIPTION_DELETED,
    "payment_intent.succeeded": WebhookEventType.PAYMENT_SUCCEEDED,
    "payment_intent.payment_failed": WebhookEventType.PAYMENT_FAILED,
    "charge.refunded": WebhookEventType.PAYMENT_REFUNDED,
}

PAYMENT_INTENT_STATUSES = {
    "succeeded": PaymentStatus.SUCCEEDED,
    "processing": PaymentStatus.PENDING,
    "requires_payment_method": PaymentStatus.PENDING,
    "requires_confirmation": PaymentStatus.PENDING,
    "requires_capture": PaymentStatus.PENDING,
    "requires_action": PaymentStatus.REQUIRES_ACTION,
    "canceled": PaymentStatus.CANCELED,
}


def _plain(value):
    """Convert SDK objects (and anything nested in them) to plain dicts and lists."""
    if isinstance(value, stripe.StripeObject) and hasattr(type(value), "to_dict"):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _timestamp(value) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


class StripeGateway(PaymentGateway):
    code = GatewayCode.STRIPE
    display_name = "Stripe"
    REQUIRED_CREDENTIALS = ("secret_key",)

    handled_exceptions = (*PaymentGateway.handled_exceptions, stripe.StripeError)

    @property
    def api_key(self) -> str:
        return self.config.credential("secret_key")

    @property
    def webhook_secret(self) -> str:
        return self.config.credential("webhook_secret")

    def initialize(self) -> None:
        logger.info("Stripe gateway ready (priority=%s)", self.priority)

    def health_check(self) -> bool:
        response = self._call(
            "health_check",
            lambda: GatewayResponse.ok(self.code, stripe.Balance.retrieve(api_key=self.api_key)),
        )
        return response.success

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def is_transient_error(self, exc: BaseException) -> bool:
        if isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError)):
            return True
        return super().is_transient_error(exc)

    def _failure_from_exception(self, exc: Exception) -> GatewayResponse:
        if isinstance(exc, stripe.CardError):
            return GatewayResponse.failure(
                self.code,
                code=exc.code or "card_declined",
                message=exc.user_message or str(exc),
                error_type=GatewayErrorType.CARD_ERROR,
            )
        if isinstance(exc, stripe.InvalidRequestError):
            return GatewayResponse.failure(
                self.code,
                code=exc.code or "invalid_request",
                message=exc.user_message or str(exc),
                error_type=GatewayErrorType.INVALID_REQUEST,
            )
        if isinstance(exc, stripe.AuthenticationError):
            return GatewayResponse.failure(
                self.code,
                code=exc.code or "authentication_failed",
                message=str(exc),
                error_type=GatewayErrorType.AUTHENTICATION,
            )
        return super()._failure_from_exception(exc)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def _customer(self, obj) -> CustomerData:
        obj = _plain(obj)
        return CustomerData(
            id=obj["id"],
            email=obj.get("email") or "",
            name=obj.get("name") or "",
            metadata=dict(obj.get("metadata") or {}),
        )

    def create_customer(self, email, name="", metadata=None):
        def create():
            customer = stripe.Customer.create(
                api_key=self.api_key,
                email=email,
                name=name,
                metadata=metadata or {},
            )
            return GatewayResponse.ok(self.code, self._customer(customer))

        return self._call("create_customer", create)

    def get_customer(self, customer_id):
        return self._call(
            "get_customer",
            lambda: GatewayResponse.ok(
                self.code,
                self._customer(stripe.Customer.retrieve(customer_id, api_key=self.api_key)),
            ),
        )

    def update_customer(self, customer_id, **fields):
        return self._call(
            "update_customer",
            lambda: GatewayResponse.ok(
                self.code,
                self._customer(stripe.Customer.modify(customer_id, api_key=self.api_key, **fields)),
            ),
        )

    def delete_customer(self, customer_id):
        def delete():
            stripe.Customer.delete(customer_id, api_key=self.api_key)
            return GatewayResponse.ok(self.code)

        return self._call("delete_customer", delete)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def _payment_intent(self, obj) -> PaymentIntentData:
        obj = _plain(obj)
        return PaymentIntentData(
            id=obj["id"],
            amount=self.parse_amount(obj.get("amount") or 0, obj.get("currency") or ""),
            currency=(obj.get("currency") or "").upper(),
            status=PAYMENT_INTENT_STATUSES.get(obj.get("status"), PaymentStatus.PENDING),
            client_secret=obj.get("client_secret") or "",
            metadata=dict(obj.get("metadata") or {}),
        )

    def create_payment_intent(
        self,
        amount,
        currency,
        customer_id="",
        payment_method_id="",
        description="",
        metadata=None,
    ):
        params = {
            "amount": self.format_amount(amount, currency),
            "currency": currency.lower(),
            "description": description,
            "metadata": metadata or {},
        }
        if customer_id:
            params["customer"] = customer_id
        if payment_method_id:
            params["payment_method"] = payment_method_id
            params["confirm"] = True
            params["automatic_payment_methods"] = {"enabled": True, "allow_redirects": "never"}

        return self._call(
            "create_payment_intent",
            lambda: GatewayResponse.ok(
                self.code,
                self._payment_intent(stripe.PaymentIntent.create(api_key=self.api_key, **params)),
            ),
        )

    def confirm_payment_intent(self, payment_intent_id, payment_method_id=""):
        params = {"payment_method": payment_method_id} if payment_method_id else {}
        return self._call(
            "confirm_payment_intent",
            lambda: GatewayResponse.ok(
                self.code,
                self._payment_intent(
                    stripe.PaymentIntent.confirm(payment_intent_id, api_key=self.api_key, **params),
                ),
            ),
        )

    def get_payment_intent(self, payment_intent_id):
        return self._call(
            "get_payment_intent",
            lambda: GatewayResponse.ok(
                self.code,
                self._payment_intent(
                    stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key),
                ),
            ),
        )

    def cancel_payment_intent(self, payment_intent_id):
        return self._call(
            "cancel_payment_intent",
            lambda: GatewayResponse.ok(
                self.code,
                self._payment_intent(
                    stripe.PaymentIntent.cancel(payment_intent_id, api_key=self.api_key),
                ),
            ),
        )

    def refund_payment(self, payment_id, amount=None, currency="", reason=""):
        params = {"payment_intent": payment_id}
        if amount is not None:
            params["amount"] = self.format_amount(amount, currency)
        if reason:
            params["metadata"] = {"reason": reason}

        def refund():
            obj = _plain(stripe.Refund.create(api_key=self.api_key, **params))
            return GatewayResponse.ok(
                self.code,
                RefundData(
                    id=obj["id"],
                    payment_id=payment_id,
                    amount=self.parse_amount(obj.get("amount") or 0, currency),
                    currency=(obj.get("currency") or currency).upper(),
                    status=obj.get("status") or "",
                ),
            )

        return self._call("refund_payment", refund)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def _subscription(self, obj) -> SubscriptionData:
        obj = _plain(obj)
        items = (obj.get("items") or {}).get("data") or []
        price_id = items[0]["price"]["id"] if items else ""
        return SubscriptionData(
            id=obj["id"],
            customer_id=obj.get("customer") or "",
            status=obj.get("status") or "",
            price_id=price_id,
            current_period_start=_timestamp(obj.get("current_period_start")),
            current_period_end=_timestamp(obj.get("current_period_end")),
            cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
            trial_end=_timestamp(obj.get("trial_end")),
            metadata=dict(obj.get("metadata") or {}),
        )

    def create_subscription(
        self,
        customer_id,
        price_id,
        trial_days=0,
        payment_method_id="",
        metadata=None,
    ):
        params = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "metadata": metadata or {},
        }
        if trial_days:
            params["trial_period_days"] = trial_days
        if payment_method_id:
            params["default_payment_method"] = payment_method_id

        return self._call(
            "create_subscription",
            lambda: GatewayResponse.ok(
                self.code,
                self._subscription(stripe.Subscription.create(api_key=self.api_key, **params)),
            ),
        )

    def get_subscription(self, subscription_id):
        return self._call(
            "get_subscription",
            lambda: GatewayResponse.ok(
                self.code,
                self._subscription(stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)),
            ),
        )

    def update_subscription(
        self,
        subscription_id,
        price_id=None,
        cancel_at_period_end=None,
        prorate=True,
        metadata=None,
    ):
        def update():
            params = {}
            if price_id:
                current = _plain(stripe.Subscription.retrieve(subscription_id, api_key=self.api_key))
                params["items"] = [{"id": current["items"]["data"][0]["id"], "price": price_id}]
                params["proration_behavior"] = "create_prorations" if prorate else "none"
            if cancel_at_period_end is not None:
                params["cancel_at_period_end"] = cancel_at_period_end
            if metadata:
                params["metadata"] = metadata
            updated = stripe.Subscription.modify(subscription_id, api_key=self.api_key, **params)
            return GatewayResponse.ok(self.code, self._subscription(updated))

        return self._call("update_subscription", update)

    def cancel_subscription(self, subscription_id, immediately=False):
        def cancel():
            if immediately:
                obj = stripe.Subscription.cancel(subscription_id, api_key=self.api_key)
            else:
                obj = stripe.Subscription.modify(
                    subscription_id,
                    api_key=self.api_key,
                    cancel_at_period_end=True,
                )
            return GatewayResponse.ok(self.code, self._subscription(obj))

        return self._call("cancel_subscription", cancel)

    def resume_subscription(self, subscription_id):
        return self._call(
            "resume_subscription",
            lambda: GatewayResponse.ok(
                self.code,
                self._subscription(
                    stripe.Subscription.modify(
                        subscription_id,
                        api_key=self.api_key,
                        cancel_at_period_end=False,
                    ),
                ),
            ),
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def _construct_event(self, payload: bytes, signature: str, secret: str | None = None):
        secret = secret or self.webhook_secret
        if not secret:
            # Never verify against an empty key.
            raise WebhookVerificationError("Stripe webhook secret is not configured")
        return stripe.Webhook.construct_event(payload, signature, secret)

    def verify_webhook_signature(self, payload, signature, secret=None):
        try:
            self._construct_event(payload, signature, secret)
        except (stripe.SignatureVerificationError, WebhookVerificationError, ValueError):
            return False
        return True

    def parse_webhook_event(self, payload, signature):
        try:
            event = self._construct_event(payload, signature)
        except stripe.SignatureVerificationError as exc:
            raise WebhookVerificationError("Invalid Stripe signature") from exc
        except ValueError as exc:
            raise WebhookVerificationError("Invalid Stripe payload") from exc

        event = _plain(event)
        raw_type = event["type"]
        event_type = STRIPE_EVENT_TYPES.get(raw_type, WebhookEventType.UNKNOWN)
        obj = event["data"]["object"]
        return WebhookEvent(
            id=event["id"],
            type=event_type,
            gateway=self.code,
            data=self._event_data(event_type, obj),
            raw_type=raw_type,
            created=_timestamp(event.get("created")),
            raw=dict(obj),
        )

    def _event_data(self, event_type: str, obj) -> dict:
        obj = _plain(obj)
        currency = (obj.get("currency") or "").upper()
        data = {
            "customer_id": obj.get("customer") or "",
            "currency": currency,
            "metadata": dict(obj.get("metadata") or {}),
        }
        if event_type in (
            WebhookEventType.INVOICE_PAYMENT_SUCCEEDED,
            WebhookEventType.INVOICE_PAYMENT_FAILED,
        ):
            data["subscription_id"] = obj.get("subscription") or ""
            data["payment_id"] = obj.get("payment_intent") or ""
            paid = event_type == WebhookEventType.INVOICE_PAYMENT_SUCCEEDED
            data["amount"] = obj.get("amount_paid" if paid else "amount_due") or 0
        elif event_type in (
            WebhookEventType.SUBSCRIPTION_UPDATED,
            WebhookEventType.SUBSCRIPTION_DELETED,
        ):
            data["subscription_id"] = obj.get("id") or ""
            data["status"] = obj.get("status") or ""
            data["cancel_at_period_end"] = bool(obj.get("cancel_at_period_end"))
        elif event_type == WebhookEventType.PAYMENT_REFUNDED:
            data["payment_id"] = obj.get("payment_intent") or ""
            data["amount"] = obj.get("amount_refunded") or 0
        else:
            data["payment_id"] = obj.get("id") or ""
            data["amount"] = obj.get("amount") or 0
        return data

    # ------------------------------------------------------------------
    # Amounts
    # ------------------------------------------------------------------

    def format_amount(self, amount, currency):
        return int(amount)

    def parse_amount(self, amount, currency):
        return int(amount)
