"""
PayMob adapter (Accept API).

A charge takes three calls: an auth token, an order, then a payment key.
With a saved card token the payment key is paid directly; otherwise the
caller gets an iframe URL to redirect the customer to.

PayMob amounts are ``amount_cents`` so no conversion is needed. Like
PayTabs there are no remote customer or subscription objects.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import uuid

from edubill.gateways.base import GatewayRequestError
from edubill.gateways.base import HttpGatewayMixin
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
from edubill.gateways.results import WebhookEvent

logger = logging.getLogger(__name__)

# Transaction fields PayMob concatenates, in this order, before signing.
HMAC_FIELDS = (
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order.id",
    "owner",
    "pending",
    "source_data.pan",
    "source_data.sub_type",
    "source_data.type",
    "success",
)

PAYMENT_KEY_EXPIRATION_SECONDS = 3600


def _lookup(obj: dict, dotted: str):
    value = obj
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return ""
        value = value.get(part)
    return value


def _hmac_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def hmac_message(transaction: dict) -> str:
    return "".join(_hmac_value(_lookup(transaction, field)) for field in HMAC_FIELDS)


def transaction_status(transaction: dict) -> str:
    if transaction.get("pending"):
        return PaymentStatus.PENDING
    if transaction.get("is_voided"):
        return PaymentStatus.CANCELED
    if transaction.get("is_refunded"):
        return PaymentStatus.REFUNDED
    return PaymentStatus.SUCCEEDED if transaction.get("success") else PaymentStatus.FAILED


class PayMobGateway(HttpGatewayMixin, PaymentGateway):
    code = GatewayCode.PAYMOB
    display_name = "PayMob"
    REQUIRED_CREDENTIALS = ("api_key", "integration_id", "hmac_secret")

    @property
    def base_url(self) -> str:
        return self.config.credential("base_url", "https://accept.paymob.com/api")

    @property
    def integration_id(self) -> int:
        return int(self.config.credential("integration_id"))

    @property
    def hmac_secret(self) -> str:
        return self.config.credential("hmac_secret")

    def initialize(self) -> None:
        logger.info("PayMob gateway ready (integration=%s)", self.integration_id)

    def health_check(self) -> bool:
        response = self._call(
            "health_check",
            lambda: GatewayResponse.ok(self.code, self._authenticate()),
        )
        return response.success

    def _authenticate(self) -> str:
        body = self._request(
            "POST",
            "/auth/tokens",
            json={"api_key": self.config.credential("api_key")},
        )
        token = body.get("token")
        if not token:
            raise GatewayRequestError(
                "PayMob did not return an auth token",
                code="authentication_failed",
                error_type=GatewayErrorType.AUTHENTICATION,
            )
        return token

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def create_customer(self, email, name="", metadata=None):
        customer = CustomerData(
            id=f"pm_cus_{uuid.uuid4().hex}",
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

    def _payment_intent(self, transaction: dict, currency: str = "") -> PaymentIntentData:
        return PaymentIntentData(
            id=str(transaction.get("id") or ""),
            amount=self.parse_amount(transaction.get("amount_cents") or 0, currency),
            currency=(transaction.get("currency") or currency).upper(),
            status=transaction_status(transaction),
            metadata={"order_id": _lookup(transaction, "order.id") or ""},
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
        amount_cents = self.format_amount(amount, currency)

        def create():
            token = self._authenticate()
            order = self._request(
                "POST",
                "/ecommerce/orders",
                json={
                    "auth_token": token,
                    "delivery_needed": False,
                    "amount_cents": amount_cents,
                    "currency": currency.upper(),
                    "merchant_order_id": metadata.get("cart_id") or uuid.uuid4().hex,
                    "items": [],
                },
            )
            payment_key = self._request(
                "POST",
                "/acceptance/payment_keys",
                json={
                    "auth_token": token,
                    "amount_cents": amount_cents,
                    "expiration": PAYMENT_KEY_EXPIRATION_SECONDS,
                    "order_id": order["id"],
                    "currency": currency.upper(),
                    "integration_id": self.integration_id,
                    "billing_data": self._billing_data(metadata),
                },
            )
            if payment_method_id:
                transaction = self._request(
                    "POST",
                    "/acceptance/payments/pay",
                    json={
                        "source": {"identifier": payment_method_id, "subtype": "TOKEN"},
                        "payment_token": payment_key["token"],
                    },
                )
                if not transaction.get("success") and not transaction.get("pending"):
                    raise GatewayRequestError(
                        _lookup(transaction, "data.message") or "Payment declined",
                        code=str(_lookup(transaction, "data.txn_response_code") or "card_declined"),
                        error_type=GatewayErrorType.CARD_ERROR,
                    )
                return GatewayResponse.ok(self.code, self._payment_intent(transaction, currency))

            iframe_id = self.config.credential("iframe_id")
            redirect_url = (
                f"{self.base_url}/acceptance/iframes/{iframe_id}?payment_token={payment_key['token']}"
                if iframe_id
                else ""
            )
            return GatewayResponse.ok(
                self.code,
                PaymentIntentData(
                    id=str(order["id"]),
                    amount=amount,
                    currency=currency.upper(),
                    status=PaymentStatus.REQUIRES_ACTION,
                    client_secret=payment_key["token"],
                    redirect_url=redirect_url,
                    metadata={"order_id": order["id"]},
                ),
            )

        return self._call("create_payment_intent", create)

    @staticmethod
    def _billing_data(metadata: dict) -> dict:
        # PayMob rejects payment keys without these fields.
        return {
            "email": metadata.get("email") or "NA",
            "first_name": metadata.get("first_name") or "NA",
            "last_name": metadata.get("last_name") or "NA",
            "phone_number": metadata.get("phone_number") or "NA",
            "apartment": "NA",
            "floor": "NA",
            "street": "NA",
            "building": "NA",
            "city": "NA",
            "country": "EG",
            "state": "NA",
        }

    def confirm_payment_intent(self, payment_intent_id, payment_method_id=""):
        return self.get_payment_intent(payment_intent_id)

    def get_payment_intent(self, payment_intent_id):
        def query():
            token = self._authenticate()
            transaction = self._request(
                "GET",
                f"/acceptance/transactions/{payment_intent_id}",
                headers={"Authorization": f"Bearer {token}"},
            )
            return GatewayResponse.ok(self.code, self._payment_intent(transaction))

        return self._call("get_payment_intent", query)

    def cancel_payment_intent(self, payment_intent_id):
        def void():
            token = self._authenticate()
            transaction = self._request(
                "POST",
                "/acceptance/void_refund/void",
                params={"token": token},
                json={"transaction_id": payment_intent_id},
            )
            return GatewayResponse.ok(self.code, self._payment_intent(transaction))

        return self._call("cancel_payment_intent", void)

    def refund_payment(self, payment_id, amount=None, currency="", reason=""):
        if amount is None:
            original = self.get_payment_intent(payment_id)
            if not original.success:
                return original
            amount = original.data.amount
            currency = currency or original.data.currency

        def refund():
            token = self._authenticate()
            transaction = self._request(
                "POST",
                "/acceptance/void_refund/refund",
                json={
                    "auth_token": token,
                    "transaction_id": payment_id,
                    "amount_cents": self.format_amount(amount, currency),
                },
            )
            return GatewayResponse.ok(
                self.code,
                RefundData(
                    id=str(transaction.get("id") or ""),
                    payment_id=payment_id,
                    amount=amount,
                    currency=(currency or transaction.get("currency") or "").upper(),
                    status=PaymentStatus.SUCCEEDED if transaction.get("success") else PaymentStatus.FAILED,
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

    @staticmethod
    def _transaction(payload: bytes) -> dict:
        body = json.loads(payload)
        if not isinstance(body, dict):
            raise ValueError("PayMob callback must be a JSON object")
        return body.get("obj", body)

    def verify_webhook_signature(self, payload, signature, secret=None):
        """
        Check PayMob's HMAC-SHA512 over the ordered transaction fields.

        The signature arrives as the ``hmac`` query parameter or the
        ``signature`` header and is hex encoded.
        """
        if not signature:
            return False
        try:
            transaction = self._transaction(payload)
        except ValueError:
            return False
        key = (secret or self.hmac_secret).encode()
        expected = hmac.new(key, hmac_message(transaction).encode(), hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())

    def parse_webhook_event(self, payload, signature):
        if not self.verify_webhook_signature(payload, signature):
            raise WebhookVerificationError("Invalid PayMob signature")
        transaction = self._transaction(payload)

        if transaction.get("pending"):
            event_type = WebhookEventType.UNKNOWN
        elif transaction.get("is_refunded"):
            event_type = WebhookEventType.PAYMENT_REFUNDED
        elif transaction.get("success"):
            event_type = WebhookEventType.PAYMENT_SUCCEEDED
        else:
            event_type = WebhookEventType.PAYMENT_FAILED

        currency = (transaction.get("currency") or "").upper()
        payment_id = transaction.get("id")
        if event_type == WebhookEventType.PAYMENT_REFUNDED:
            payment_id = transaction.get("parent_transaction") or payment_id
        payment_id = str(payment_id or "")
        return WebhookEvent(
            id=str(transaction.get("id") or uuid.uuid4().hex),
            type=event_type,
            gateway=self.code,
            data={
                "payment_id": payment_id,
                "customer_id": "",
                "subscription_id": "",
                "order_id": str(_lookup(transaction, "order.id") or ""),
                "amount": self.parse_amount(transaction.get("amount_cents") or 0, currency),
                "currency": currency,
                "status": transaction_status(transaction),
                "metadata": {"merchant_order_id": _lookup(transaction, "order.merchant_order_id") or ""},
            },
            raw_type="TRANSACTION",
            raw=transaction,
        )

    # ------------------------------------------------------------------
    # Amounts
    # ------------------------------------------------------------------

    def format_amount(self, amount, currency):
        return int(amount)

    def parse_amount(self, amount, currency):
        return int(amount)
