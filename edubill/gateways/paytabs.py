"""
PayTabs adapter (hosted payment page API).

PayTabs has no customer or subscription objects. Customers are local
references generated here, and subscription operations report
``unsupported_operation`` so edubill keeps the lifecycle locally and
charges renewals with stored card tokens.

Amounts on the wire are decimal major units (``cart_amount``).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import uuid
from decimal import Decimal

from django.conf import settings

from edubill.gateways.base import GatewayRequestError
from edubill.gateways.base import HttpGatewayMixin
from edubill.gateways.base import PaymentGateway
from edubill.gateways.base import WebhookVerificationError
from edubill.gateways.constants import GatewayCode
from edubill.gateways.constants import GatewayErrorType
from edubill.gateways.constants import PaymentStatus
from edubill.gateways.constants import WebhookEventType
from edubill.gateways.currency import to_major_units
from edubill.gateways.currency import to_minor_units
from edubill.gateways.results import CustomerData
from edubill.gateways.results import GatewayResponse
from edubill.gateways.results import PaymentIntentData
from edubill.gateways.results import RefundData
from edubill.gateways.results import WebhookEvent

logger = logging.getLogger(__name__)

# payment_result.response_status values
APPROVED = "A"
DECLINED = "D"
ERROR = "E"
HOLD = "H"
PENDING = "P"
VOIDED = "V"

RESPONSE_STATUSES = {
    APPROVED: PaymentStatus.SUCCEEDED,
    DECLINED: PaymentStatus.FAILED,
    ERROR: PaymentStatus.FAILED,
    HOLD: PaymentStatus.PENDING,
    PENDING: PaymentStatus.PENDING,
    VOIDED: PaymentStatus.CANCELED,
}


class PayTabsGateway(HttpGatewayMixin, PaymentGateway):
    code = GatewayCode.PAYTABS
    display_name = "PayTabs"
    REQUIRED_CREDENTIALS = ("server_key", "profile_id")

    @property
    def base_url(self) -> str:
        return self.config.credential("base_url", "https://secure.paytabs.sa")

    @property
    def server_key(self) -> str:
        return self.config.credential("server_key")

    @property
    def profile_id(self) -> int | str:
        profile_id = self.config.credential("profile_id")
        return int(profile_id) if profile_id.isdigit() else profile_id

    def initialize(self) -> None:
        logger.info("PayTabs gateway ready (profile=%s)", self.profile_id)

    def health_check(self) -> bool:
        # PayTabs has no health endpoint. Querying an unknown transaction
        # proves connectivity and credentials without creating a charge.
        response = self._call(
            "health_check",
            lambda: GatewayResponse.ok(
                self.code,
                self._post("/payment/query", {"tran_ref": "health_check"}),
            ),
        )
        if response.success:
            return True
        return response.error.type == GatewayErrorType.INVALID_REQUEST

    def _post(self, path: str, body: dict) -> dict:
        return self._request(
            "POST",
            path,
            json={"profile_id": self.profile_id, **body},
            headers={"authorization": self.server_key},
        )

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def create_customer(self, email, name="", metadata=None):
        customer = CustomerData(
            id=f"pt_cus_{uuid.uuid4().hex}",
            email=email,
            name=name,
            metadata=dict(metadata or {}),
        )
        return GatewayResponse.ok(self.code, customer)

    def get_customer(self, customer_id):
        return self._unsupported("get_customer")

    def update_customer(self, customer_id, **fields):
        return self._unsupported("update_customer")

    def delete_customer(self, customer_id):
        return GatewayResponse.ok(self.code)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def _payment_intent(self, body: dict, amount: int, currency: str) -> PaymentIntentData:
        result = body.get("payment_result") or {}
        status = RESPONSE_STATUSES.get(result.get("response_status"), PaymentStatus.PENDING)
        if body.get("redirect_url") and status == PaymentStatus.PENDING:
            status = PaymentStatus.REQUIRES_ACTION
        cart_amount = body.get("cart_amount")
        return PaymentIntentData(
            id=body.get("tran_ref") or "",
            amount=self.parse_amount(cart_amount, currency) if cart_amount is not None else amount,
            currency=(body.get("cart_currency") or currency).upper(),
            status=status,
            redirect_url=body.get("redirect_url") or "",
            metadata={
                "response_code": result.get("response_code", ""),
                "response_message": result.get("response_message", ""),
            },
        )

    def _raise_for_decline(self, body: dict) -> None:
        result = body.get("payment_result") or {}
        if result.get("response_status") in (DECLINED, ERROR):
            raise GatewayRequestError(
                result.get("response_message") or "Payment declined",
                code=str(result.get("response_code") or "card_declined"),
                error_type=GatewayErrorType.CARD_ERROR,
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
        metadata = metadata or {}
        body = {
            "tran_type": "sale",
            "tran_class": "recurring" if payment_method_id else "ecom",
            "cart_id": metadata.get("cart_id") or f"cart_{uuid.uuid4().hex[:16]}",
            "cart_currency": currency.upper(),
            "cart_amount": float(self.format_amount(amount, currency)),
            "cart_description": description or "edubill payment",
            "callback": f"{settings.BILLING_SITE_URL}/billing/webhooks/paytabs",
            "return": f"{settings.BILLING_SITE_URL}/billing/payment/return",
            "hide_shipping": True,
        }
        if payment_method_id:
            body["token"] = payment_method_id
        if customer_id:
            body["customer_details"] = {"customer_ref": customer_id}

        def create():
            response = self._post("/payment/request", body)
            self._raise_for_decline(response)
            return GatewayResponse.ok(self.code, self._payment_intent(response, amount, currency))

        return self._call("create_payment_intent", create)

    def confirm_payment_intent(self, payment_intent_id, payment_method_id=""):
        # Hosted page payments are confirmed by the customer; the query
        # reports the outcome.
        return self.get_payment_intent(payment_intent_id)

    def get_payment_intent(self, payment_intent_id):
        def query():
            response = self._post("/payment/query", {"tran_ref": payment_intent_id})
            currency = response.get("cart_currency") or ""
            return GatewayResponse.ok(self.code, self._payment_intent(response, 0, currency))

        return self._call("get_payment_intent", query)

    def cancel_payment_intent(self, payment_intent_id):
        return self._unsupported("cancel_payment_intent")

    def refund_payment(self, payment_id, amount=None, currency="", reason=""):
        if amount is None:
            original = self.get_payment_intent(payment_id)
            if not original.success:
                return original
            amount = original.data.amount
            currency = currency or original.data.currency

        body = {
            "tran_type": "refund",
            "tran_class": "ecom",
            "tran_ref": payment_id,
            "cart_id": f"refund_{uuid.uuid4().hex[:16]}",
            "cart_currency": currency.upper(),
            "cart_amount": float(self.format_amount(amount, currency)),
            "cart_description": reason or "Refund",
        }

        def refund():
            response = self._post("/payment/request", body)
            self._raise_for_decline(response)
            result = response.get("payment_result") or {}
            return GatewayResponse.ok(
                self.code,
                RefundData(
                    id=response.get("tran_ref") or "",
                    payment_id=payment_id,
                    amount=amount,
                    currency=currency.upper(),
                    status=RESPONSE_STATUSES.get(result.get("response_status"), PaymentStatus.PENDING),
                ),
            )

        return self._call("refund_payment", refund)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def create_subscription(self, customer_id, price_id, trial_days=0, payment_method_id="", metadata=None):
        return self._unsupported("create_subscription")

    def get_subscription(self, subscription_id):
        return self._unsupported("get_subscription")

    def update_subscription(
        self,
        subscription_id,
        price_id=None,
        cancel_at_period_end=None,
        prorate=True,
        metadata=None,
    ):
        return self._unsupported("update_subscription")

    def cancel_subscription(self, subscription_id, immediately=False):
        return self._unsupported("cancel_subscription")

    def resume_subscription(self, subscription_id):
        return self._unsupported("resume_subscription")

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def verify_webhook_signature(self, payload, signature, secret=None):
        """PayTabs signs the raw callback body with HMAC-SHA256 of the server key."""
        if not signature:
            return False
        key = (secret or self.server_key).encode()
        expected = hmac.new(key, payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())

    def parse_webhook_event(self, payload, signature):
        if not self.verify_webhook_signature(payload, signature):
            raise WebhookVerificationError("Invalid PayTabs signature")
        try:
            body = json.loads(payload)
        except ValueError as exc:
            raise WebhookVerificationError("Invalid PayTabs payload") from exc

        result = body.get("payment_result") or {}
        status = result.get("response_status")
        if body.get("tran_type", "").lower() == "refund" and status == APPROVED:
            event_type = WebhookEventType.PAYMENT_REFUNDED
        elif status == APPROVED:
            event_type = WebhookEventType.PAYMENT_SUCCEEDED
        elif status in (DECLINED, ERROR):
            event_type = WebhookEventType.PAYMENT_FAILED
        else:
            event_type = WebhookEventType.UNKNOWN

        currency = (body.get("cart_currency") or "").upper()
        cart_amount = body.get("cart_amount")
        customer = body.get("customer_details") or {}
        return WebhookEvent(
            id=body.get("tran_ref") or uuid.uuid4().hex,
            type=event_type,
            gateway=self.code,
            data={
                "payment_id": body.get("previous_tran_ref") or body.get("tran_ref") or "",
                "customer_id": customer.get("customer_ref") or "",
                "subscription_id": "",
                "amount": self.parse_amount(cart_amount, currency) if cart_amount else 0,
                "currency": currency,
                "status": status or "",
                "metadata": {"cart_id": body.get("cart_id", "")},
            },
            raw_type=f"{body.get('tran_type', '')}:{status or ''}",
            raw=body,
        )

    # ------------------------------------------------------------------
    # Amounts
    # ------------------------------------------------------------------

    def format_amount(self, amount, currency) -> Decimal:
        return to_major_units(amount, currency)

    def parse_amount(self, amount, currency) -> int:
        return to_minor_units(amount, currency)
