"""
Tests for the gateway adapters.

These tests cover:
- Retry of transient provider errors, and no retry for rejections
- Normalized failures and raise_for_error
- Unsupported operations on PayTabs and PayMob
- Webhook signature verification for each provider
- Mapping provider events onto the internal taxonomy
- Stripe SDK objects and signed Stripe deliveries
"""

import json
from unittest.mock import Mock
from unittest.mock import patch

import httpx
import pytest
import stripe

from edubill.core.exceptions import GatewayConfigurationError
from edubill.core.exceptions import GatewayError
from edubill.core.exceptions import PaymentDeclinedError
from edubill.core.exceptions import UnsupportedOperationError
from edubill.gateways.base import GatewayRequestError
from edubill.gateways.base import TransientGatewayError
from edubill.gateways.base import WebhookVerificationError
from edubill.gateways.constants import GatewayErrorCode
from edubill.gateways.constants import GatewayErrorType
from edubill.gateways.constants import PaymentStatus
from edubill.gateways.constants import WebhookEventType
from edubill.gateways.paymob import PayMobGateway
from edubill.gateways.paytabs import PayTabsGateway
from edubill.gateways.results import GatewayResponse
from edubill.gateways.signals import WEBHOOK_SIGNALS
from edubill.gateways.stripe_gateway import StripeGateway
from edubill.gateways.tests.utils import make_config
from edubill.gateways.tests.utils import make_gateway
from edubill.gateways.tests.utils import paymob_callback
from edubill.gateways.tests.utils import paymob_signature
from edubill.gateways.tests.utils import paymob_transaction
from edubill.gateways.tests.utils import paytabs_signature
from edubill.gateways.tests.utils import stripe_event
from edubill.gateways.tests.utils import stripe_signature
from edubill.gateways.tests.utils import use_transport


class TestRetryPolicy:
    def test_transient_errors_are_retried(self):
        gateway = make_gateway(PayTabsGateway)
        fn = Mock(
            side_effect=[
                TransientGatewayError("503"),
                TransientGatewayError("503"),
                GatewayResponse.ok("paytabs", "done"),
            ],
        )

        response = gateway._call("query", fn)

        assert response.success
        assert response.data == "done"
        assert fn.call_count == 3

    def test_gives_up_after_three_attempts(self):
        gateway = make_gateway(PayTabsGateway)
        fn = Mock(side_effect=TransientGatewayError("timeout"))

        response = gateway._call("query", fn)

        assert fn.call_count == 3
        assert not response.success
        assert response.error.code == GatewayErrorCode.RETRIES_EXHAUSTED
        assert response.error.type == GatewayErrorType.API_ERROR

    def test_rejections_are_not_retried(self):
        gateway = make_gateway(PayTabsGateway)
        fn = Mock(
            side_effect=GatewayRequestError(
                "declined",
                code="card_declined",
                error_type=GatewayErrorType.CARD_ERROR,
            ),
        )

        response = gateway._call("charge", fn)

        assert fn.call_count == 1
        assert response.error.is_decline

    def test_max_retries_zero_means_single_attempt(self):
        gateway = make_gateway(PayTabsGateway, max_retries=0)
        fn = Mock(side_effect=httpx.ConnectError("refused"))

        response = gateway._call("query", fn)

        assert fn.call_count == 1
        assert not response.success

    def test_http_5xx_is_retried_then_succeeds(self):
        gateway = make_gateway(PayTabsGateway)
        replies = iter(
            [
                httpx.Response(503),
                httpx.Response(
                    200,
                    json={
                        "tran_ref": "TST123",
                        "cart_currency": "SAR",
                        "cart_amount": "49.99",
                        "payment_result": {"response_status": "A"},
                    },
                ),
            ],
        )
        seen = use_transport(gateway, lambda request: next(replies))

        response = gateway.get_payment_intent("TST123")

        assert len(seen) == 2
        assert response.success
        assert response.data.amount == 4999
        assert response.data.status == PaymentStatus.SUCCEEDED

    def test_http_4xx_is_not_retried(self):
        gateway = make_gateway(PayTabsGateway)
        seen = use_transport(
            gateway,
            lambda request: httpx.Response(400, json={"message": "Invalid cart"}),
        )

        response = gateway.get_payment_intent("TST123")

        assert len(seen) == 1
        assert response.error.type == GatewayErrorType.INVALID_REQUEST
        assert response.error.message == "Invalid cart"


class TestGatewayResponse:
    def test_raise_for_error_returns_data(self):
        assert GatewayResponse.ok("stripe", {"id": "x"}).raise_for_error() == {"id": "x"}

    def test_unsupported_raises_unsupported_operation(self):
        response = GatewayResponse.unsupported("paytabs", "create_subscription")
        assert response.is_unsupported
        with pytest.raises(UnsupportedOperationError):
            response.raise_for_error()

    def test_decline_raises_payment_declined(self):
        response = GatewayResponse.failure(
            "stripe",
            code="card_declined",
            message="Your card was declined.",
            error_type=GatewayErrorType.CARD_ERROR,
        )
        with pytest.raises(PaymentDeclinedError) as excinfo:
            response.raise_for_error()
        assert excinfo.value.code == "card_declined"
        assert excinfo.value.gateway == "stripe"

    def test_other_failures_raise_gateway_error(self):
        response = GatewayResponse.failure("paymob", code="provider_error", message="boom")
        with pytest.raises(GatewayError) as excinfo:
            response.raise_for_error()
        assert not isinstance(excinfo.value, PaymentDeclinedError)


class TestConfiguration:
    def test_missing_credentials_raise(self):
        config = make_config("paymob", credentials={"api_key": "k"})
        with pytest.raises(GatewayConfigurationError) as excinfo:
            PayMobGateway(config)
        assert excinfo.value.missing == ["integration_id", "hmac_secret"]

    def test_disabled_gateway_skips_credential_check(self):
        gateway = PayMobGateway(make_config("paymob", enabled=False, credentials={}))
        assert not gateway.is_enabled

    def test_defaults_fill_supported_currencies(self):
        gateway = make_gateway(PayMobGateway)
        assert gateway.supports("egp", "eg")
        assert not gateway.supports("USD", "EG")

    def test_self_fallback_is_cleared(self):
        assert make_config("stripe", fallback_gateway="stripe").fallback_gateway is None


class TestUnsupportedOperations:
    @pytest.mark.parametrize("gateway_class", [PayTabsGateway, PayMobGateway])
    def test_subscription_operations_are_unsupported(self, gateway_class):
        gateway = make_gateway(gateway_class)
        responses = [
            gateway.create_subscription("cus_1", "price_1"),
            gateway.get_subscription("sub_1"),
            gateway.update_subscription("sub_1", price_id="price_2"),
            gateway.cancel_subscription("sub_1"),
            gateway.resume_subscription("sub_1"),
            gateway.get_customer("cus_1"),
        ]
        for response in responses:
            assert not response.success
            assert response.error.code == "unsupported_operation"

    @pytest.mark.parametrize("gateway_class", [PayTabsGateway, PayMobGateway])
    def test_customers_are_local_references(self, gateway_class):
        response = make_gateway(gateway_class).create_customer("billing@example.com", "District")
        assert response.success
        assert response.data.id
        assert response.data.email == "billing@example.com"


class TestStripeGateway:
    def test_create_payment_intent(self):
        gateway = make_gateway(StripeGateway)
        intent = {
            "id": "pi_123",
            "amount": 2999,
            "currency": "usd",
            "status": "succeeded",
            "client_secret": "pi_123_secret",
            "metadata": {},
        }
        with patch("stripe.PaymentIntent.create", return_value=intent) as create:
            response = gateway.create_payment_intent(2999, "USD", "cus_1", "pm_1")

        assert response.success
        assert response.data.status == PaymentStatus.SUCCEEDED
        assert response.data.currency == "USD"
        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 2999
        assert kwargs["currency"] == "usd"
        assert kwargs["confirm"] is True
        assert kwargs["api_key"] == "sk_test_dummy"

    def test_card_error_is_a_decline(self):
        gateway = make_gateway(StripeGateway)
        error = stripe.CardError("Your card was declined.", "card", "card_declined")
        with patch("stripe.PaymentIntent.create", side_effect=error) as create:
            response = gateway.create_payment_intent(2999, "USD", "cus_1", "pm_1")

        assert create.call_count == 1
        assert response.error.type == GatewayErrorType.CARD_ERROR
        assert response.error.code == "card_declined"

    def test_connection_error_is_retried(self):
        gateway = make_gateway(StripeGateway)
        with patch(
            "stripe.Customer.create",
            side_effect=[
                stripe.APIConnectionError("network"),
                {"id": "cus_1", "email": "a@example.com", "name": "", "metadata": {}},
            ],
        ) as create:
            response = gateway.create_customer("a@example.com")

        assert create.call_count == 2
        assert response.data.id == "cus_1"

    def test_plan_change_passes_proration_behavior(self):
        gateway = make_gateway(StripeGateway)
        current = {"id": "sub_1", "items": {"data": [{"id": "si_1", "price": {"id": "price_old"}}]}}
        updated = {
            "id": "sub_1",
            "customer": "cus_1",
            "status": "active",
            "items": {"data": [{"id": "si_1", "price": {"id": "price_new"}}]},
        }
        with (
            patch("stripe.Subscription.retrieve", return_value=current),
            patch("stripe.Subscription.modify", return_value=updated) as modify,
        ):
            response = gateway.update_subscription("sub_1", price_id="price_new", prorate=False)

        assert response.data.price_id == "price_new"
        assert modify.call_args.kwargs["proration_behavior"] == "none"
        assert modify.call_args.kwargs["items"] == [{"id": "si_1", "price": "price_new"}]

    def test_parse_webhook_event_maps_invoice_failure(self):
        gateway = make_gateway(StripeGateway)
        event = {
            "id": "evt_1",
            "type": "invoice.payment_failed",
            "created": 1700000000,
            "data": {
                "object": {
                    "customer": "cus_1",
                    "subscription": "sub_1",
                    "payment_intent": "pi_1",
                    "amount_due": 7999,
                    "currency": "usd",
                },
            },
        }
        with patch("stripe.Webhook.construct_event", return_value=event):
            parsed = gateway.parse_webhook_event(b"{}", "t=1,v1=abc")

        assert parsed.type == WebhookEventType.INVOICE_PAYMENT_FAILED
        assert parsed.data["subscription_id"] == "sub_1"
        assert parsed.data["amount"] == 7999
        assert parsed.data["currency"] == "USD"

    def test_bad_signature_is_rejected(self):
        gateway = make_gateway(StripeGateway)
        error = stripe.SignatureVerificationError("No signatures found", "bad")
        with patch("stripe.Webhook.construct_event", side_effect=error):
            assert not gateway.verify_webhook_signature(b"{}", "bad")
            with pytest.raises(WebhookVerificationError):
                gateway.parse_webhook_event(b"{}", "bad")

    def test_unmapped_event_is_unknown(self):
        gateway = make_gateway(StripeGateway)
        event = {"id": "evt_2", "type": "customer.created", "data": {"object": {"id": "cus_1"}}}
        with patch("stripe.Webhook.construct_event", return_value=event):
            parsed = gateway.parse_webhook_event(b"{}", "sig")
        assert parsed.type == WebhookEventType.UNKNOWN

    def test_sdk_customer_object(self):
        gateway = make_gateway(StripeGateway)
        customer = stripe.Customer.construct_from(
            {
                "id": "cus_1",
                "object": "customer",
                "email": "a@example.com",
                "name": "North",
                "metadata": {"tenant": "t1"},
            },
            "sk_test_dummy",
        )
        with patch("stripe.Customer.create", return_value=customer):
            response = gateway.create_customer("a@example.com", name="North")

        assert response.success
        assert response.data.email == "a@example.com"
        assert response.data.metadata == {"tenant": "t1"}

    def test_sdk_payment_intent_and_refund_objects(self):
        gateway = make_gateway(StripeGateway)
        intent = stripe.PaymentIntent.construct_from(
            {
                "id": "pi_1",
                "object": "payment_intent",
                "amount": 10000,
                "currency": "usd",
                "status": "requires_action",
                "client_secret": "pi_1_secret",
                "metadata": {},
            },
            "sk_test_dummy",
        )
        refund = stripe.Refund.construct_from(
            {"id": "re_1", "object": "refund", "amount": 2500, "currency": "usd", "status": "succeeded"},
            "sk_test_dummy",
        )
        with (
            patch("stripe.PaymentIntent.create", return_value=intent),
            patch("stripe.Refund.create", return_value=refund),
        ):
            payment = gateway.create_payment_intent(10000, "USD", "cus_1", "pm_1")
            refunded = gateway.refund_payment("pi_1", amount=2500, currency="USD")

        assert payment.data.status == PaymentStatus.REQUIRES_ACTION
        assert payment.data.amount == 10000
        assert refunded.data.amount == 2500
        assert refunded.data.currency == "USD"

    def test_sdk_subscription_objects(self):
        gateway = make_gateway(StripeGateway)

        def subscription(price_id):
            return stripe.Subscription.construct_from(
                {
                    "id": "sub_1",
                    "object": "subscription",
                    "customer": "cus_1",
                    "status": "active",
                    "cancel_at_period_end": False,
                    "current_period_start": 1700000000,
                    "current_period_end": 1702592000,
                    "metadata": {},
                    "items": {
                        "object": "list",
                        "data": [
                            {
                                "id": "si_1",
                                "object": "subscription_item",
                                "price": {"id": price_id, "object": "price"},
                            },
                        ],
                    },
                },
                "sk_test_dummy",
            )

        with (
            patch("stripe.Subscription.create", return_value=subscription("price_old")),
            patch("stripe.Subscription.retrieve", return_value=subscription("price_old")),
            patch("stripe.Subscription.modify", return_value=subscription("price_new")) as modify,
        ):
            created = gateway.create_subscription("cus_1", "price_old")
            changed = gateway.update_subscription("sub_1", price_id="price_new")

        assert created.success
        assert created.data.price_id == "price_old"
        assert created.data.current_period_end.year == 2023
        assert changed.data.price_id == "price_new"
        assert modify.call_args.kwargs["items"] == [{"id": "si_1", "price": "price_new"}]

    def test_signed_event_is_parsed(self):
        gateway = make_gateway(StripeGateway)
        payload = stripe_event(
            "customer.subscription.updated",
            {
                "id": "sub_1",
                "object": "subscription",
                "customer": "cus_1",
                "status": "past_due",
                "cancel_at_period_end": True,
                "metadata": {"subscription_id": "local-1"},
            },
        )

        parsed = gateway.parse_webhook_event(payload, stripe_signature(payload))

        assert gateway.verify_webhook_signature(payload, stripe_signature(payload))
        assert parsed.type == WebhookEventType.SUBSCRIPTION_UPDATED
        assert parsed.data["status"] == "past_due"
        assert parsed.data["cancel_at_period_end"] is True
        assert parsed.data["metadata"] == {"subscription_id": "local-1"}
        assert parsed.created.year == 2023
        assert parsed.raw["customer"] == "cus_1"

    def test_signature_with_wrong_secret(self):
        gateway = make_gateway(StripeGateway)
        payload = stripe_event("charge.refunded", {"id": "ch_1", "payment_intent": "pi_1"})
        signature = stripe_signature(payload, secret="whsec_other")

        assert not gateway.verify_webhook_signature(payload, signature)
        with pytest.raises(WebhookVerificationError):
            gateway.parse_webhook_event(payload, signature)

    def test_missing_webhook_secret_rejects_everything(self):
        gateway = make_gateway(StripeGateway, credentials={"secret_key": "sk_test_dummy", "webhook_secret": ""})
        payload = stripe_event("customer.subscription.deleted", {"id": "sub_1", "status": "canceled"})
        signature = stripe_signature(payload, secret="")

        assert not gateway.verify_webhook_signature(payload, signature)
        with pytest.raises(WebhookVerificationError, match="not configured"):
            gateway.parse_webhook_event(payload, signature)



class TestPayTabsGateway:
    def test_payment_request_sends_major_units(self):
        gateway = make_gateway(PayTabsGateway)
        seen = use_transport(
            gateway,
            lambda request: httpx.Response(
                200,
                json={
                    "tran_ref": "TST2",
                    "cart_amount": "49.99",
                    "cart_currency": "SAR",
                    "redirect_url": "https://secure.paytabs.sa/payment/page/abc",
                },
            ),
        )

        response = gateway.create_payment_intent(4999, "SAR", description="Starter")

        body = json.loads(seen[0].content)
        assert body["cart_amount"] == 49.99
        assert body["profile_id"] == 12345
        assert seen[0].headers["authorization"] == "paytabs_test_key"
        assert response.data.status == PaymentStatus.REQUIRES_ACTION
        assert response.data.amount == 4999

    def test_declined_token_payment(self):
        gateway = make_gateway(PayTabsGateway)
        use_transport(
            gateway,
            lambda request: httpx.Response(
                200,
                json={
                    "tran_ref": "TST3",
                    "payment_result": {
                        "response_status": "D",
                        "response_code": "481",
                        "response_message": "Insufficient funds",
                    },
                },
            ),
        )

        response = gateway.create_payment_intent(4999, "SAR", payment_method_id="tok_1")

        assert response.error.is_decline
        assert response.error.message == "Insufficient funds"

    def test_signature_verification(self):
        gateway = make_gateway(PayTabsGateway)
        body = json.dumps({"tran_ref": "TST4", "payment_result": {"response_status": "A"}}).encode()

        assert gateway.verify_webhook_signature(body, paytabs_signature(body))
        assert not gateway.verify_webhook_signature(body, paytabs_signature(body, "wrong"))
        assert not gateway.verify_webhook_signature(body, "")

    def test_parse_webhook_event(self):
        gateway = make_gateway(PayTabsGateway)
        body = json.dumps(
            {
                "tran_ref": "TST5",
                "tran_type": "Sale",
                "cart_id": "cart_1",
                "cart_currency": "SAR",
                "cart_amount": "299.90",
                "customer_details": {"customer_ref": "pt_cus_1"},
                "payment_result": {"response_status": "A"},
            },
        ).encode()

        event = gateway.parse_webhook_event(body, paytabs_signature(body))

        assert event.type == WebhookEventType.PAYMENT_SUCCEEDED
        assert event.data["amount"] == 29990
        assert event.data["customer_id"] == "pt_cus_1"

    def test_refund_webhook(self):
        gateway = make_gateway(PayTabsGateway)
        body = json.dumps(
            {
                "tran_ref": "TST7",
                "previous_tran_ref": "TST5",
                "tran_type": "Refund",
                "cart_currency": "SAR",
                "cart_amount": "10.00",
                "payment_result": {"response_status": "A"},
            },
        ).encode()

        event = gateway.parse_webhook_event(body, paytabs_signature(body))

        assert event.type == WebhookEventType.PAYMENT_REFUNDED
        assert event.data["payment_id"] == "TST5"

    def test_tampered_body_is_rejected(self):
        gateway = make_gateway(PayTabsGateway)
        body = b'{"tran_ref": "TST6"}'
        with pytest.raises(WebhookVerificationError):
            gateway.parse_webhook_event(body + b" ", paytabs_signature(body))


class TestPayMobGateway:
    def test_token_payment_flow(self):
        gateway = make_gateway(PayMobGateway)

        def handler(request):
            path = request.url.path
            if path.endswith("/auth/tokens"):
                return httpx.Response(201, json={"token": "auth_tok"})
            if path.endswith("/ecommerce/orders"):
                return httpx.Response(201, json={"id": 555})
            if path.endswith("/acceptance/payment_keys"):
                return httpx.Response(201, json={"token": "pay_key"})
            return httpx.Response(200, json=paymob_transaction(id=777, amount_cents=50000))

        seen = use_transport(gateway, handler)

        response = gateway.create_payment_intent(50000, "EGP", payment_method_id="card_tok")

        assert [r.url.path for r in seen] == [
            "/api/auth/tokens",
            "/api/ecommerce/orders",
            "/api/acceptance/payment_keys",
            "/api/acceptance/payments/pay",
        ]
        assert json.loads(seen[1].content)["amount_cents"] == 50000
        assert response.data.id == "777"
        assert response.data.status == PaymentStatus.SUCCEEDED

    def test_signature_verification(self):
        gateway = make_gateway(PayMobGateway)
        transaction = paymob_transaction()
        body = paymob_callback(transaction)

        assert gateway.verify_webhook_signature(body, paymob_signature(transaction))
        assert not gateway.verify_webhook_signature(body, paymob_signature(transaction, "other"))

    def test_signature_covers_ordered_fields(self):
        gateway = make_gateway(PayMobGateway)
        transaction = paymob_transaction()
        signature = paymob_signature(transaction)
        tampered = paymob_callback(paymob_transaction(amount_cents=1))

        assert not gateway.verify_webhook_signature(tampered, signature)

    @pytest.mark.parametrize(
        ("overrides", "expected"),
        [
            ({"success": True}, WebhookEventType.PAYMENT_SUCCEEDED),
            ({"success": False}, WebhookEventType.PAYMENT_FAILED),
            ({"success": True, "is_refunded": True}, WebhookEventType.PAYMENT_REFUNDED),
            ({"pending": True}, WebhookEventType.UNKNOWN),
        ],
    )
    def test_event_mapping(self, overrides, expected):
        gateway = make_gateway(PayMobGateway)
        transaction = paymob_transaction(**overrides)

        event = gateway.parse_webhook_event(
            paymob_callback(transaction),
            paymob_signature(transaction),
        )

        assert event.type == expected
        assert event.data["amount"] == 50000


@pytest.mark.django_db
class TestHandleWebhookEvent:
    def test_dispatches_to_receivers_and_survives_failures(self):
        gateway = make_gateway(PayMobGateway)
        transaction = paymob_transaction()
        event = gateway.parse_webhook_event(
            paymob_callback(transaction),
            paymob_signature(transaction),
        )
        calls = []

        def good_receiver(sender, event, **kwargs):
            calls.append(event.id)

        def broken_receiver(sender, event, **kwargs):
            raise RuntimeError("receiver bug")

        signal = WEBHOOK_SIGNALS[WebhookEventType.PAYMENT_SUCCEEDED]
        signal.connect(good_receiver, weak=False)
        signal.connect(broken_receiver, weak=False)
        try:
            response = gateway.handle_webhook_event(event)
        finally:
            signal.disconnect(good_receiver)
            signal.disconnect(broken_receiver)

        assert response.success
        assert calls == [event.id]
