from django.apps import AppConfig


class BillingConfig(AppConfig):
    """
    Django app configuration for the billing app.

    Plan catalog, subscription lifecycle, payments and gateway webhooks.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "edubill.billing"

    def ready(self):
        """
        Register signal receivers.

        The webhook receivers listen on the gateway signals and the catalog
        drops its snapshot when a Plan is saved or deleted.
        """
        from edubill.billing import catalog  # noqa: F401
        from edubill.billing import webhooks  # noqa: F401
