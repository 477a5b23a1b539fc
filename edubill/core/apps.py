from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Shared error types, API authentication and the scheduled task runner."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "edubill.core"
