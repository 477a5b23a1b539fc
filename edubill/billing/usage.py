"""
Usage metrics, plan limit checks and overage pricing.

Usage is a current snapshot recomputed from the tenant's records; no
history is kept. Every plan limit uses -1 for "unlimited".
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime

from django.conf import settings
from django.db.models import Sum
from django.utils import timezone

from edubill.billing.catalog import get_catalog
from edubill.billing.constants import UNLIMITED


@dataclass(frozen=True)
class Metric:
    key: str
    label: str
    unit: str = ""


# Order here is the order violations and line items are reported in.
METRICS = (
    Metric("schools", "Schools"),
    Metric("users", "Users"),
    Metric("students", "Students"),
    Metric("api_calls", "API Calls"),
    Metric("storage_gb", "Storage", unit="GB"),
)


@dataclass(frozen=True)
class UsageMetrics:
    tenant_id: int
    schools: int = 0
    users: int = 0
    students: int = 0
    api_calls: int = 0
    storage_gb: int = 0
    last_updated: datetime | None = None

    def value(self, metric: str) -> int:
        return getattr(self, metric)

    def as_dict(self) -> dict:
        data = {metric.key: self.value(metric.key) for metric in METRICS}
        data["last_updated"] = self.last_updated
        return data


@dataclass(frozen=True)
class LimitCheckResult:
    within_limits: bool
    violations: list[str]
    usage: UsageMetrics
    plan: object


@dataclass(frozen=True)
class OverageLineItem:
    metric: str
    description: str
    usage: int
    limit: int
    excess: int
    unit_rate: int
    amount: int


@dataclass(frozen=True)
class OverageResult:
    line_items: list[OverageLineItem] = field(default_factory=list)
    total: int = 0


@dataclass(frozen=True)
class BillingCalculation:
    base_amount: int
    overage: OverageResult
    total: int
    currency: str
    billing_cycle: str
    period_start: datetime
    period_end: datetime
    usage: UsageMetrics


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


def collect_usage(tenant) -> UsageMetrics:
    """Count the tenant's schools, active members and students right now."""
    schools = tenant.schools.all()
    return UsageMetrics(
        tenant_id=tenant.pk,
        schools=schools.count(),
        users=tenant.members.filter(is_active=True).count(),
        students=schools.aggregate(total=Sum("student_count"))["total"] or 0,
        api_calls=tenant.api_calls_current_period,
        storage_gb=tenant.storage_used_gb,
        last_updated=timezone.now(),
    )


def _format_violation(metric: Metric, used: int, limit: int) -> str:
    return f"{metric.label}: {used}{metric.unit}/{limit}{metric.unit}"


def check_usage_limits(usage: UsageMetrics, plan) -> LimitCheckResult:
    """
    Compare usage against ``plan.limits``.

    Each exceeded limit adds a violation such as ``"Schools: 4/3"`` or
    ``"Storage: 30GB/25GB"``.
    """
    violations = []
    for metric in METRICS:
        limit = plan.limits[metric.key]
        used = usage.value(metric.key)
        if not is_unlimited(limit) and used > limit:
            violations.append(_format_violation(metric, used, limit))
    return LimitCheckResult(
        within_limits=not violations,
        violations=violations,
        usage=usage,
        plan=plan,
    )


def calculate_overage(usage: UsageMetrics, plan, rates: dict[str, int] | None = None) -> OverageResult:
    """Price every unit above a limit at the configured per-unit rate."""
    rates = settings.BILLING_OVERAGE_RATES if rates is None else rates
    items = []
    for metric in METRICS:
        limit = plan.limits[metric.key]
        used = usage.value(metric.key)
        if is_unlimited(limit) or used <= limit:
            continue
        excess = used - limit
        rate = int(rates.get(metric.key, 0))
        items.append(
            OverageLineItem(
                metric=metric.key,
                description=f"{metric.label} overage ({excess} over {limit}{metric.unit})",
                usage=used,
                limit=limit,
                excess=excess,
                unit_rate=rate,
                amount=excess * rate,
            ),
        )
    return OverageResult(line_items=items, total=sum(item.amount for item in items))


def calculate_billing(tenant, subscription, usage: UsageMetrics | None = None) -> BillingCalculation:
    """Base price for the subscription's cycle plus current overage."""
    plan = get_catalog().get(subscription.plan_id)
    usage = usage or collect_usage(tenant)
    base_amount = plan.price_for_cycle(subscription.billing_cycle)
    overage = calculate_overage(usage, plan)
    return BillingCalculation(
        base_amount=base_amount,
        overage=overage,
        total=base_amount + overage.total,
        currency=plan.currency,
        billing_cycle=subscription.billing_cycle,
        period_start=subscription.current_period_start,
        period_end=subscription.current_period_end,
        usage=usage,
    )
