from django.apps import AppConfig


class GatewaysConfig(AppConfig):
    """
    Payment provider adapters.

    No models. The registry is built lazily from ``settings.PAYMENT_GATEWAYS``
    the first time a gateway is needed.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "edubill.gateways"
