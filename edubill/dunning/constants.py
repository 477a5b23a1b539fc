"""
Dunning actions, campaign states and the platform default escalation.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class DunningAction(models.TextChoices):
    EMAIL = "EMAIL", _("Email reminder")
    SMS = "SMS", _("SMS reminder")
    SUSPEND = "SUSPEND", _("Suspend service")
    CANCEL = "CANCEL", _("Cancel subscription")


NOTIFY_ACTIONS = (DunningAction.EMAIL, DunningAction.SMS)


class CampaignStatus(models.TextChoices):
    ACTIVE = "ACTIVE", _("Active")
    COMPLETED = "COMPLETED", _("Completed")
    CANCELLED = "CANCELLED", _("Cancelled")


# Offsets are days after the campaign started, not after the previous step.
DEFAULT_RULES = (
    {"name": "First Reminder", "trigger_days": 1, "action": DunningAction.EMAIL},
    {"name": "Second Reminder", "trigger_days": 3, "action": DunningAction.EMAIL},
    {"name": "Final Notice", "trigger_days": 7, "action": DunningAction.EMAIL},
    {"name": "Service Suspension", "trigger_days": 14, "action": DunningAction.SUSPEND},
    {"name": "Subscription Cancellation", "trigger_days": 30, "action": DunningAction.CANCEL},
)
