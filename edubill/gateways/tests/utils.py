"""Helpers for building gateways against canned provider responses."""

import hashlib
import hmac
import json
import time

import httpx
from tenacity import wait_none

from edubill.gateways.config import GatewayConfig
from edubill.gateways.constants import GatewayCode
from edubill.gateways.paymob import hmac_message

TEST_CREDENTIALS = {
    GatewayCode.STRIPE: {"secret_key": "sk_test_dummy", "webhook_secret": "whsec_test"},
    GatewayCode.PAYTABS: {"server_key": "paytabs_test_key", "profile_id": "12345"},
    GatewayCode.PAYMOB: {
        "api_key": "paymob_test_key",
        "integration_id": "67890",
        "hmac_secret": "paymob_test_hmac",
    },
}


def make_config(code: str, **overrides) -> GatewayConfig:
    options = {"enabled": True, "credentials": TEST_CREDENTIALS[code]}
    options.update(overrides)
    return GatewayConfig(code=code, **options)


def make_gateway(gateway_class, **overrides):
    gateway = gateway_class(make_config(gateway_class.code, **overrides))
    gateway.retry_wait = wait_none()
    return gateway


def use_transport(gateway, handler) -> list[httpx.Request]:
    """
    Route the gateway's HTTP calls through ``handler``.

    Returns the list that collects every request made.
    """
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    gateway._build_client = lambda: httpx.Client(  # noqa: SLF001
        base_url=gateway.base_url,
        transport=httpx.MockTransport(record),
    )
    return seen


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_test") -> bytes:
    return json.dumps(
        {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": 1700000000,
            "data": {"object": obj},
        },
    ).encode()


def stripe_signature(payload: bytes, secret: str = "whsec_test", timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs deliveries."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def paytabs_signature(body: bytes, key: str = "paytabs_test_key") -> str:
    return hmac.new(key.encode(), body, hashlib.sha256).hexdigest()


def paymob_signature(transaction: dict, key: str = "paymob_test_hmac") -> str:
    return hmac.new(key.encode(), hmac_message(transaction).encode(), hashlib.sha512).hexdigest()


def paymob_transaction(**overrides) -> dict:
    transaction = {
        "id": 192036465,
        "pending": False,
        "amount_cents": 50000,
        "success": True,
        "is_auth": False,
        "is_capture": False,
        "is_standalone_payment": True,
        "is_voided": False,
        "is_refunded": False,
        "is_3d_secure": True,
        "integration_id": 67890,
        "has_parent_transaction": False,
        "order": {"id": 217503754, "merchant_order_id": "cart_1"},
        "created_at": "2024-06-13T11:33:44.592345",
        "currency": "EGP",
        "source_data": {"pan": "2346", "type": "card", "sub_type": "MasterCard"},
        "error_occured": False,
        "owner": 302852,
    }
    transaction.update(overrides)
    return transaction


def paymob_callback(transaction: dict) -> bytes:
    return json.dumps({"type": "TRANSACTION", "obj": transaction}).encode()
