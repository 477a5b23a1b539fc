"""
Billing models.

Key design decisions:
- Plan is a lookup table keyed by its code and seeded by a data migration.
  Its commercial terms are frozen once an open subscription references it.
- At most one non-terminal Subscription exists per (tenant, school). The
  database enforces this with conditional unique constraints; the service
  layer only does an advisory check before inserting.
- All money is stored as integer minor units.

Relationship: Tenant ──1:N── Subscription ──N:1── Plan
              Subscription ──1:N── PlanChange
              Subscription ──1:N── Payment
"""

import uuid

from django.db import models
from django.db.models import Q
from model_utils.models import TimeStampedModel

from edubill.billing.constants import TERMINAL_STATUSES
from edubill.billing.constants import UNLIMITED
from edubill.billing.constants import BillingCycle
from edubill.billing.constants import CancellationReason
from edubill.billing.constants import PlanChangeType
from edubill.billing.constants import PlanInterval
from edubill.billing.constants import SubscriptionStatus
from edubill.core.exceptions import ConflictError
from edubill.gateways.constants import GatewayCode
from edubill.gateways.constants import PaymentStatus

# Fields that cannot change while an open subscription uses the plan.
LOCKED_PLAN_FIELDS = (
    "price",
    "yearly_price",
    "currency",
    "interval",
    "max_schools",
    "max_users",
    "max_students",
    "max_api_calls",
    "max_storage_gb",
)

OPEN_SUBSCRIPTION = ~Q(status__in=TERMINAL_STATUSES)


class Plan(models.Model):
    """
    A purchasable plan.

    Limits use -1 for "unlimited". Prices are monthly, in minor units of
    ``currency``; ``yearly_price`` overrides 12 × price for yearly billing.

    Usage:
        plan = get_catalog().get_active("professional")
        plan.price_for_cycle(BillingCycle.QUARTERLY)
    """

    code = models.CharField(
        max_length=40,
        primary_key=True,
        help_text="Unique plan identifier, also used as PK.",
    )
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    price = models.PositiveIntegerField(help_text="Monthly price in minor units.")
    yearly_price = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Price for a yearly cycle. Blank = 12 × monthly price.",
    )
    currency = models.CharField(max_length=3, default="USD")
    interval = models.CharField(
        max_length=10,
        choices=PlanInterval.choices,
        default=PlanInterval.MONTH,
    )
    features = models.JSONField(default=list, blank=True)

    # Limits (-1 = unlimited)
    max_schools = models.IntegerField(default=UNLIMITED)
    max_users = models.IntegerField(default=UNLIMITED)
    max_students = models.IntegerField(default=UNLIMITED)
    max_api_calls = models.IntegerField(default=UNLIMITED)
    max_storage_gb = models.IntegerField(default=UNLIMITED)

    trial_days = models.PositiveIntegerField(default=14)
    is_active = models.BooleanField(default=True)
    display_order = models.IntegerField(default=0)
    gateway_price_ids = models.JSONField(
        default=dict,
        blank=True,
        help_text='Provider price references, e.g. {"stripe": "price_123"}.',
    )

    class Meta:
        ordering = ["display_order", "code"]

    def __str__(self) -> str:
        return self.name

    def save(self, *args, **kwargs):
        self._guard_locked_fields()
        super().save(*args, **kwargs)

    def _guard_locked_fields(self) -> None:
        if self._state.adding:
            return
        stored = Plan.objects.filter(pk=self.pk).values(*LOCKED_PLAN_FIELDS).first()
        if stored is None:
            return
        changed = [name for name in LOCKED_PLAN_FIELDS if stored[name] != getattr(self, name)]
        if changed and self.subscriptions.filter(OPEN_SUBSCRIPTION).exists():
            raise ConflictError(
                f"Plan '{self.pk}' is in use; cannot change {', '.join(changed)}",
                code="plan_locked",
            )

    @property
    def limits(self) -> dict[str, int]:
        return {
            "schools": self.max_schools,
            "users": self.max_users,
            "students": self.max_students,
            "api_calls": self.max_api_calls,
            "storage_gb": self.max_storage_gb,
        }


class Subscription(TimeStampedModel):
    """
    A tenant's (or one school's) subscription to a plan.

    ``school`` is null for tenant-wide subscriptions. The gateway fields are
    blank when the provider has no remote subscription object; renewals are
    then charged locally against ``payment_method_id``.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.CASCADE,
        related_name="subscriptions",
    )
    school = models.ForeignKey(
        "tenants.School",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="subscriptions",
    )
    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.ACTIVE,
    )
    billing_cycle = models.CharField(
        max_length=10,
        choices=BillingCycle.choices,
        default=BillingCycle.MONTHLY,
    )

    current_period_start = models.DateTimeField()
    current_period_end = models.DateTimeField()
    trial_start = models.DateTimeField(null=True, blank=True)
    trial_end = models.DateTimeField(null=True, blank=True)

    cancel_at_period_end = models.BooleanField(default=False)
    canceled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.CharField(
        max_length=20,
        choices=CancellationReason.choices,
        blank=True,
    )
    suspended_at = models.DateTimeField(null=True, blank=True)

    gateway = models.CharField(max_length=20, choices=GatewayCode.choices, blank=True)
    gateway_customer_id = models.CharField(max_length=255, blank=True)
    gateway_subscription_id = models.CharField(max_length=255, blank=True)
    payment_method_id = models.CharField(max_length=255, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created"]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "school"],
                condition=Q(school__isnull=False) & OPEN_SUBSCRIPTION,
                name="uniq_open_subscription_per_school",
            ),
            models.UniqueConstraint(
                fields=["tenant"],
                condition=Q(school__isnull=True) & OPEN_SUBSCRIPTION,
                name="uniq_open_subscription_per_tenant",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "current_period_end"], name="billing_sub_status_9c1e2a_idx"),
            models.Index(fields=["gateway_subscription_id"], name="billing_sub_gateway_3f7b4d_idx"),
            models.Index(fields=["gateway_customer_id"], name="billing_sub_gateway_8a2c6e_idx"),
        ]

    def __str__(self) -> str:
        owner = self.school.name if self.school_id else self.tenant.name
        return f"{owner} - {self.plan.name} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_trial(self) -> bool:
        return self.status == SubscriptionStatus.TRIAL


class PlanChange(TimeStampedModel):
    """
    Audit log for plan changes.

    Records every upgrade, downgrade and lateral move with the proration
    amount that was computed for it.
    """

    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.CASCADE,
        related_name="plan_changes",
    )
    old_plan = models.ForeignKey(Plan, on_delete=models.PROTECT, related_name="changes_from")
    new_plan = models.ForeignKey(Plan, on_delete=models.PROTECT, related_name="changes_to")
    change_type = models.CharField(max_length=20, choices=PlanChangeType.choices)
    effective_at = models.DateTimeField()
    proration_amount = models.IntegerField(
        default=0,
        help_text="Positive = charge, negative = credit. Minor units.",
    )
    prorated = models.BooleanField(default=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created"]

    def __str__(self) -> str:
        return f"{self.subscription_id}: {self.old_plan_id} → {self.new_plan_id}"


class Payment(TimeStampedModel):
    """
    One charge attempt against a gateway.

    ``amount``/``currency`` are what the gateway charged. When the tenant's
    currency had to be converted, ``original_amount``/``original_currency``
    hold what was requested and ``exchange_rate`` the rate applied.
    """

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.CASCADE,
        related_name="payments",
    )
    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )
    gateway = models.CharField(max_length=20, choices=GatewayCode.choices)
    gateway_payment_id = models.CharField(max_length=255, blank=True)

    amount = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=3)
    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )

    original_amount = models.PositiveBigIntegerField(null=True, blank=True)
    original_currency = models.CharField(max_length=3, blank=True)
    exchange_rate = models.DecimalField(max_digits=18, decimal_places=8, null=True, blank=True)
    gateway_fee = models.PositiveIntegerField(default=0)
    conversion_fee = models.PositiveIntegerField(default=0)

    payment_method_id = models.CharField(max_length=255, blank=True)
    description = models.CharField(max_length=255, blank=True)
    redirect_url = models.URLField(max_length=1000, blank=True)
    refunded_amount = models.PositiveBigIntegerField(default=0)
    failure_code = models.CharField(max_length=100, blank=True)
    failure_message = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created"]
        indexes = [
            models.Index(fields=["gateway", "gateway_payment_id"], name="billing_pay_gateway_5d9e1b_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.amount} {self.currency} via {self.gateway} ({self.status})"
