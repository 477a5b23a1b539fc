import pytest

from edubill.billing.catalog import get_catalog
from edubill.billing.constants import BillingCycle
from edubill.billing.tests.factories import SubscriptionFactory
from edubill.billing.usage import calculate_billing
from edubill.billing.usage import calculate_overage
from edubill.billing.usage import check_usage_limits
from edubill.billing.usage import collect_usage
from edubill.tenants.tests.factories import SchoolFactory
from edubill.tenants.tests.factories import TenantMemberFactory


@pytest.fixture
def busy_tenant(tenant):
    """Four schools of 100 students, two members, 30 GB stored."""
    SchoolFactory.create_batch(4, tenant=tenant)
    TenantMemberFactory.create_batch(2, tenant=tenant)
    TenantMemberFactory(tenant=tenant, is_active=False)
    tenant.storage_used_gb = 30
    tenant.api_calls_current_period = 1200
    tenant.save()
    return tenant


@pytest.mark.django_db
class TestCollectUsage:
    def test_counts_current_records(self, busy_tenant):
        usage = collect_usage(busy_tenant)

        assert usage.schools == 4
        assert usage.users == 2
        assert usage.students == 400
        assert usage.api_calls == 1200
        assert usage.storage_gb == 30
        assert usage.last_updated is not None

    def test_empty_tenant(self, tenant):
        usage = collect_usage(tenant)

        assert (usage.schools, usage.users, usage.students) == (0, 0, 0)


@pytest.mark.django_db
class TestCheckUsageLimits:
    def test_violations_are_reported_per_metric(self, plans, busy_tenant):
        check = check_usage_limits(collect_usage(busy_tenant), get_catalog().get("professional"))

        assert not check.within_limits
        assert check.violations == ["Schools: 4/3", "Storage: 30GB/25GB"]

    def test_starter_reports_every_exceeded_limit(self, plans, busy_tenant):
        check = check_usage_limits(collect_usage(busy_tenant), get_catalog().get("starter"))

        assert check.violations == ["Schools: 4/1", "Storage: 30GB/5GB"]

    def test_unlimited_plan_never_violates(self, plans, busy_tenant):
        check = check_usage_limits(collect_usage(busy_tenant), get_catalog().get("enterprise"))

        assert check.within_limits
        assert check.violations == []

    def test_usage_at_the_limit_is_allowed(self, plans, tenant):
        SchoolFactory.create_batch(3, tenant=tenant)

        check = check_usage_limits(collect_usage(tenant), get_catalog().get("professional"))

        assert check.within_limits


@pytest.mark.django_db
class TestOverage:
    def test_excess_units_are_priced(self, plans, busy_tenant):
        overage = calculate_overage(collect_usage(busy_tenant), get_catalog().get("professional"))

        assert [item.metric for item in overage.line_items] == ["schools", "storage_gb"]
        assert [item.amount for item in overage.line_items] == [1000, 2500]
        assert overage.total == 3500

    def test_custom_rates(self, plans, busy_tenant):
        overage = calculate_overage(
            collect_usage(busy_tenant),
            get_catalog().get("professional"),
            rates={"schools": 5000},
        )

        assert overage.total == 5000

    def test_billing_adds_overage_to_the_cycle_price(self, plans, busy_tenant):
        subscription = SubscriptionFactory(
            tenant=busy_tenant,
            plan=plans["professional"],
            billing_cycle=BillingCycle.QUARTERLY,
        )

        calculation = calculate_billing(busy_tenant, subscription)

        assert calculation.base_amount == 7999 * 3
        assert calculation.overage.total == 3500
        assert calculation.total == 7999 * 3 + 3500
        assert calculation.currency == "USD"
