"""
Billing constants: plan codes, subscription lifecycle states, billing cycles
and the reasons a subscription can end.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class PlanCode(models.TextChoices):
    """Codes of the seeded plans. Plan.code is the primary key."""

    STARTER = "starter", _("Starter")
    PROFESSIONAL = "professional", _("Professional")
    ENTERPRISE = "enterprise", _("Enterprise")


class PlanInterval(models.TextChoices):
    MONTH = "month", _("Month")
    YEAR = "year", _("Year")


class BillingCycle(models.TextChoices):
    MONTHLY = "MONTHLY", _("Monthly")
    QUARTERLY = "QUARTERLY", _("Quarterly")
    YEARLY = "YEARLY", _("Yearly")


# Calendar months covered by one period of each cycle.
CYCLE_MONTHS = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.YEARLY: 12,
}


class SubscriptionStatus(models.TextChoices):
    """
    Subscription lifecycle states.

    Typical flow:
        TRIAL → ACTIVE (trial ends or first renewal)
        ACTIVE → PAST_DUE (payment failed) → SUSPENDED (dunning) → CANCELED
        PAST_DUE / SUSPENDED → ACTIVE (payment succeeds)
        ACTIVE → CANCELED (user cancels immediately or at period end)

    CANCELED and INCOMPLETE_EXPIRED are terminal. A tenant that comes back
    gets a new Subscription row.
    """

    TRIAL = "TRIAL", _("Trial")
    ACTIVE = "ACTIVE", _("Active")
    PAST_DUE = "PAST_DUE", _("Past Due")
    UNPAID = "UNPAID", _("Unpaid")
    SUSPENDED = "SUSPENDED", _("Suspended")
    CANCELED = "CANCELED", _("Canceled")
    INCOMPLETE = "INCOMPLETE", _("Incomplete")
    INCOMPLETE_EXPIRED = "INCOMPLETE_EXPIRED", _("Incomplete Expired")


TERMINAL_STATUSES = (SubscriptionStatus.CANCELED, SubscriptionStatus.INCOMPLETE_EXPIRED)
RENEWABLE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL)
DELINQUENT_STATUSES = (
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.UNPAID,
    SubscriptionStatus.SUSPENDED,
)


class CancellationReason(models.TextChoices):
    USER_REQUESTED = "USER_REQUESTED", _("Requested by customer")
    NON_PAYMENT = "NON_PAYMENT", _("Non-payment")
    GATEWAY_CANCELED = "GATEWAY_CANCELED", _("Canceled at payment gateway")
    ADMIN = "ADMIN", _("Canceled by administrator")


class PlanChangeType(models.TextChoices):
    UPGRADE = "UPGRADE", _("Upgrade")
    DOWNGRADE = "DOWNGRADE", _("Downgrade")
    LATERAL = "LATERAL", _("Lateral")


# Maps provider subscription states onto ours. Used by webhook receivers.
GATEWAY_SUBSCRIPTION_STATUSES = {
    "trialing": SubscriptionStatus.TRIAL,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.UNPAID,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.INCOMPLETE_EXPIRED,
    "paused": SubscriptionStatus.SUSPENDED,
}

# Sentinel for "no limit" on every Plan.max_* field.
UNLIMITED = -1
