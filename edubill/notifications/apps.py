from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    """
    Billing notifications.

    Records what the dunning engine and payment flows decided to tell a
    tenant, and hands email to Django's mail backend.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "edubill.notifications"
