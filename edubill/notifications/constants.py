from django.db import models
from django.utils.translation import gettext_lazy as _


class NotificationChannel(models.TextChoices):
    EMAIL = "email", _("Email")
    SMS = "sms", _("SMS")


class NotificationType(models.TextChoices):
    BILLING_REMINDER = "BILLING_REMINDER", _("Billing reminder")
    SUBSCRIPTION_SUSPENDED = "SUBSCRIPTION_SUSPENDED", _("Subscription suspended")
    SUBSCRIPTION_CANCELLED = "SUBSCRIPTION_CANCELLED", _("Subscription cancelled")
    PAYMENT_RECEIPT = "PAYMENT_RECEIPT", _("Payment receipt")
