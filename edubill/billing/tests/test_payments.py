from decimal import Decimal

import pytest
from django.core import mail

from edubill.billing.models import Payment
from edubill.billing.payments import PaymentService
from edubill.billing.tests.factories import PaymentFactory
from edubill.billing.tests.factories import SubscriptionFactory
from edubill.billing.tests.utils import card_declined
from edubill.billing.tests.utils import provider_error
from edubill.billing.tests.utils import stub_gateway
from edubill.core.exceptions import ConflictError
from edubill.core.exceptions import GatewayError
from edubill.core.exceptions import PaymentDeclinedError
from edubill.core.exceptions import ValidationError
from edubill.gateways.constants import GatewayCode
from edubill.gateways.constants import PaymentStatus
from edubill.gateways.registry import GatewayRegistry
from edubill.gateways.tests.utils import make_config
from edubill.tenants.tests.factories import TenantFactory


@pytest.fixture
def service(gateways):
    return PaymentService()


@pytest.mark.django_db
class TestProcessPayment:
    def test_successful_charge_is_recorded(self, service, tenant, gateways):
        payment = service.process_payment(tenant, 2999, "usd", "pm_card_visa", description="Starter")

        assert payment.pk is not None
        assert payment.gateway == GatewayCode.STRIPE
        assert payment.gateway_payment_id == "stripe_pay_1"
        assert payment.amount == 2999
        assert payment.currency == "USD"
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.gateway_fee == 30
        assert payment.metadata["tenant_id"] == str(tenant.pk)
        gateways.get("stripe").create_payment_intent.assert_called_once()
        assert len(mail.outbox) == 1
        assert "29.99 USD" in mail.outbox[0].body

    def test_subscription_is_linked(self, service, plans, tenant, gateways):
        subscription = SubscriptionFactory(tenant=tenant, plan=plans["starter"])

        payment = service.process_payment(tenant, 2999, "USD", "pm_card_visa", subscription=subscription)

        assert payment.subscription == subscription
        assert payment.metadata["subscription_id"] == str(subscription.pk)

    def test_zero_amount_rejected(self, service, tenant):
        with pytest.raises(ValidationError) as excinfo:
            service.process_payment(tenant, 0, "USD", "pm_card_visa")

        assert excinfo.value.code == "invalid_amount"

    def test_decline_is_recorded_and_not_retried(self, service, tenant, gateways):
        gateways.get("stripe").create_payment_intent.return_value = card_declined("stripe")

        with pytest.raises(PaymentDeclinedError) as excinfo:
            service.process_payment(tenant, 2999, "USD", "pm_card_declined")

        assert excinfo.value.code == "card_declined"
        payment = Payment.objects.get(tenant=tenant)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_code == "card_declined"
        gateways.get("paytabs").create_payment_intent.assert_not_called()
        assert mail.outbox == []

    def test_provider_error_falls_back(self, service, tenant, gateways):
        gateways.get("stripe").create_payment_intent.return_value = provider_error("stripe")

        payment = service.process_payment(tenant, 2999, "USD", "pm_card_visa")

        assert payment.gateway == GatewayCode.PAYTABS
        assert payment.status == PaymentStatus.SUCCEEDED

    def test_every_gateway_failing_raises(self, service, tenant, gateways):
        gateways.get("stripe").create_payment_intent.return_value = provider_error("stripe")
        gateways.get("paytabs").create_payment_intent.return_value = provider_error("paytabs")

        with pytest.raises(GatewayError):
            service.process_payment(tenant, 2999, "USD", "pm_card_visa")

        payment = Payment.objects.get(tenant=tenant)
        assert payment.status == PaymentStatus.FAILED
        assert payment.gateway == GatewayCode.PAYTABS

    def test_no_gateway_for_the_country(self, service, gateways):
        tenant = TenantFactory(country="ZZ", currency="XYZ")

        with pytest.raises(ValidationError) as excinfo:
            service.process_payment(tenant, 1000, "XYZ", "pm_card_visa")

        assert excinfo.value.code == "no_gateway_available"


@pytest.mark.django_db
class TestCurrencyConversion:
    @pytest.fixture
    def paymob_only(self):
        registry = GatewayRegistry({GatewayCode.PAYMOB: make_config(GatewayCode.PAYMOB)})
        stub_gateway(registry.get(GatewayCode.PAYMOB))
        return registry

    def test_charge_is_converted_to_a_supported_currency(self, paymob_only):
        tenant = TenantFactory(country="EG", currency="USD")

        payment = PaymentService(registry=paymob_only).process_payment(tenant, 10000, "USD", "pm_wallet")

        # 10000 × 30.85 = 308500, fee 0.5% capped at 1000.
        assert payment.gateway == GatewayCode.PAYMOB
        assert payment.currency == "EGP"
        assert payment.amount == 309500
        assert payment.original_amount == 10000
        assert payment.original_currency == "USD"
        assert payment.exchange_rate == Decimal("30.85")
        assert payment.conversion_fee == 1000
        args, _ = paymob_only.get(GatewayCode.PAYMOB).create_payment_intent.call_args
        assert args == (309500, "EGP")

    def test_small_conversion_pays_the_minimum_fee(self, paymob_only):
        tenant = TenantFactory(country="EG", currency="USD")

        payment = PaymentService(registry=paymob_only).process_payment(tenant, 10, "USD", "pm_wallet")

        # 10 × 30.85 = 308.5 → 309, fee 0.5% = 2 → minimum 10.
        assert payment.amount == 319
        assert payment.conversion_fee == 10


@pytest.mark.django_db
class TestRefundPayment:
    def test_partial_then_full_refund(self, service, tenant, gateways):
        payment = PaymentFactory(tenant=tenant, amount=5000)

        service.refund_payment(payment, amount=2000)
        assert payment.refunded_amount == 2000
        assert payment.status == PaymentStatus.SUCCEEDED

        service.refund_payment(payment)
        payment.refresh_from_db()
        assert payment.refunded_amount == 5000
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.metadata["last_refund_id"] == "stripe_re_1"

    def test_refund_over_the_remaining_amount(self, service, tenant, gateways):
        payment = PaymentFactory(tenant=tenant, amount=5000, refunded_amount=4000)

        with pytest.raises(ValidationError):
            service.refund_payment(payment, amount=2000)

    def test_failed_payment_is_not_refundable(self, service, tenant, gateways):
        payment = PaymentFactory(tenant=tenant, status=PaymentStatus.FAILED)

        with pytest.raises(ConflictError):
            service.refund_payment(payment)
        gateways.get("stripe").refund_payment.assert_not_called()
