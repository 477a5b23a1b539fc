from datetime import timedelta

import factory
from django.utils import timezone
from factory.django import DjangoModelFactory

from edubill.billing.constants import BillingCycle
from edubill.billing.constants import SubscriptionStatus
from edubill.billing.models import Payment
from edubill.billing.models import Plan
from edubill.billing.models import Subscription
from edubill.gateways.constants import GatewayCode
from edubill.gateways.constants import PaymentStatus
from edubill.tenants.tests.factories import TenantFactory


class PlanFactory(DjangoModelFactory):
    class Meta:
        model = Plan
        django_get_or_create = ["code"]

    code = factory.Sequence(lambda n: f"plan-{n}")
    name = factory.LazyAttribute(lambda o: o.code.title())
    price = 1000
    currency = "USD"
    max_schools = 1
    max_users = 10
    max_students = 100
    max_api_calls = 1000
    max_storage_gb = 1
    trial_days = 14


class SubscriptionFactory(DjangoModelFactory):
    """
    An ACTIVE monthly subscription whose current period started today.

    Pass ``plan`` as a Plan instance or set ``plan_id`` to a seeded code.
    """

    class Meta:
        model = Subscription

    tenant = factory.SubFactory(TenantFactory)
    plan = factory.SubFactory(PlanFactory)
    status = SubscriptionStatus.ACTIVE
    billing_cycle = BillingCycle.MONTHLY
    current_period_start = factory.LazyFunction(timezone.now)
    current_period_end = factory.LazyAttribute(lambda o: o.current_period_start + timedelta(days=30))


class PaymentFactory(DjangoModelFactory):
    class Meta:
        model = Payment

    tenant = factory.SubFactory(TenantFactory)
    gateway = GatewayCode.STRIPE
    gateway_payment_id = factory.Sequence(lambda n: f"pi_{n:06d}")
    amount = 2999
    currency = "USD"
    status = PaymentStatus.SUCCEEDED
