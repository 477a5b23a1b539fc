"""
Dunning models.

A DunningRule is one escalation step. A DunningCampaign walks a
subscription through the ordered rules after a failed payment. The rule
sequence is copied into ``steps`` when the campaign starts, so editing
rules never reshuffles a campaign already in flight.

Relationship: Subscription ──1:N── DunningCampaign
              Tenant ──1:N── DunningRule (tenant null = platform default)
"""

from django.db import models
from django.db.models import Q
from model_utils.models import TimeStampedModel

from edubill.dunning.constants import CampaignStatus
from edubill.dunning.constants import DunningAction


class DunningRule(TimeStampedModel):
    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="dunning_rules",
        help_text="Blank for platform-wide default rules.",
    )
    name = models.CharField(max_length=100)
    trigger_days = models.PositiveIntegerField(
        help_text="Days after the campaign started.",
    )
    action = models.CharField(max_length=10, choices=DunningAction.choices)
    template_id = models.CharField(max_length=100, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["trigger_days", "id"]

    def __str__(self) -> str:
        return f"{self.name} (+{self.trigger_days}d {self.action})"

    def as_step(self) -> dict:
        return {
            "name": self.name,
            "trigger_days": self.trigger_days,
            "action": self.action,
            "template_id": self.template_id,
        }


class DunningCampaign(TimeStampedModel):
    """
    Escalation state for one subscription.

    ``current_step`` indexes ``steps``; the campaign is COMPLETED once it
    reaches ``total_steps`` or payment succeeds. At most one ACTIVE
    campaign exists per subscription.
    """

    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.CASCADE,
        related_name="dunning_campaigns",
    )
    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.CASCADE,
        related_name="dunning_campaigns",
    )
    payment = models.ForeignKey(
        "billing.Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="dunning_campaigns",
    )
    status = models.CharField(
        max_length=10,
        choices=CampaignStatus.choices,
        default=CampaignStatus.ACTIVE,
    )
    steps = models.JSONField(default=list)
    current_step = models.PositiveIntegerField(default=0)
    total_steps = models.PositiveIntegerField(default=0)
    started_at = models.DateTimeField()
    next_action_at = models.DateTimeField(null=True, blank=True)
    last_action_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created"]
        constraints = [
            models.UniqueConstraint(
                fields=["subscription"],
                condition=Q(status=CampaignStatus.ACTIVE),
                name="uniq_active_dunning_campaign",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "next_action_at"], name="dunning_dun_status_7e3a91_idx"),
        ]

    def __str__(self) -> str:
        return f"Dunning {self.subscription_id} step {self.current_step}/{self.total_steps} ({self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == CampaignStatus.ACTIVE

    @property
    def current_rule(self) -> dict | None:
        if self.current_step < len(self.steps):
            return self.steps[self.current_step]
        return None
