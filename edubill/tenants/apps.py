from django.apps import AppConfig


class TenantsConfig(AppConfig):
    """
    Tenants, schools and members.

    These are owned by other subsystems. Billing reads them for ownership,
    usage counts and gateway routing.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "edubill.tenants"
