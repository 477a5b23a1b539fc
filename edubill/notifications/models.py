from django.db import models
from model_utils.models import TimeStampedModel

from edubill.notifications.constants import NotificationChannel
from edubill.notifications.constants import NotificationType


class BillingNotification(TimeStampedModel):
    """
    One notification decision.

    ``sent_at`` is set once the transport accepted the message. ``error``
    holds the delivery failure, if any. SMS rows are recorded for the
    messaging service to pick up and stay unsent here.
    """

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.CASCADE,
        related_name="billing_notifications",
    )
    subscription = models.ForeignKey(
        "billing.Subscription",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )
    channel = models.CharField(
        max_length=10,
        choices=NotificationChannel.choices,
        default=NotificationChannel.EMAIL,
    )
    type = models.CharField(max_length=40, choices=NotificationType.choices)
    recipient = models.CharField(max_length=255, blank=True)
    subject = models.CharField(max_length=255, blank=True)
    message = models.TextField(blank=True)
    payload = models.JSONField(default=dict, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    error = models.TextField(blank=True)

    class Meta:
        ordering = ["-created"]
        indexes = [
            models.Index(fields=["tenant", "type"], name="notificatio_tenant__4b8f2c_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.get_type_display()} to {self.recipient or self.tenant}"

    @property
    def delivered(self) -> bool:
        return self.sent_at is not None
