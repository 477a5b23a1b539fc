"""Helpers for running billing services against stubbed gateways."""

from unittest.mock import Mock

from edubill.gateways.constants import GatewayErrorType
from edubill.gateways.constants import PaymentStatus
from edubill.gateways.results import CustomerData
from edubill.gateways.results import GatewayResponse
from edubill.gateways.results import PaymentIntentData
from edubill.gateways.results import RefundData
from edubill.gateways.results import SubscriptionData

REMOTE_OPERATIONS = (
    "create_customer",
    "create_subscription",
    "update_subscription",
    "cancel_subscription",
    "create_payment_intent",
    "refund_payment",
)


def ok_responses(code: str) -> dict[str, GatewayResponse]:
    remote_subscription = SubscriptionData(
        id=f"{code}_sub_1",
        customer_id=f"{code}_cus_1",
        status="active",
    )
    return {
        "create_customer": GatewayResponse.ok(code, CustomerData(id=f"{code}_cus_1")),
        "create_subscription": GatewayResponse.ok(code, remote_subscription),
        "update_subscription": GatewayResponse.ok(code, remote_subscription),
        "cancel_subscription": GatewayResponse.ok(code, remote_subscription),
        "create_payment_intent": GatewayResponse.ok(
            code,
            PaymentIntentData(
                id=f"{code}_pay_1",
                amount=0,
                currency="USD",
                status=PaymentStatus.SUCCEEDED,
                gateway_fee=30,
            ),
        ),
        "refund_payment": GatewayResponse.ok(
            code,
            RefundData(id=f"{code}_re_1", payment_id=f"{code}_pay_1", amount=0, currency="USD", status="succeeded"),
        ),
    }


def stub_gateway(gateway, **overrides):
    """
    Replace every remote call on ``gateway`` with a Mock.

    Each Mock succeeds unless ``overrides`` names a different response.
    """
    responses = ok_responses(gateway.code)
    responses.update(overrides)
    for name in REMOTE_OPERATIONS:
        setattr(gateway, name, Mock(return_value=responses[name]))
    return gateway


def provider_error(code: str, message: str = "Service unavailable") -> GatewayResponse:
    return GatewayResponse.failure(code, code="provider_error", message=message)


def card_declined(code: str) -> GatewayResponse:
    return GatewayResponse.failure(
        code,
        code="card_declined",
        message="Your card was declined.",
        error_type=GatewayErrorType.CARD_ERROR,
    )
