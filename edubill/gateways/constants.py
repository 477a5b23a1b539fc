"""
Gateway identifiers, normalized error types and the internal webhook event
taxonomy shared by every adapter.
"""

from enum import StrEnum

from django.db import models
from django.utils.translation import gettext_lazy as _


class GatewayCode(models.TextChoices):
    STRIPE = "stripe", _("Stripe")
    PAYTABS = "paytabs", _("PayTabs")
    PAYMOB = "paymob", _("PayMob")


class GatewayErrorType(StrEnum):
    """Normalized error types carried by every failed GatewayResponse."""

    CARD_ERROR = "card_error"
    INVALID_REQUEST = "invalid_request_error"
    API_ERROR = "api_error"
    AUTHENTICATION = "authentication_error"
    RATE_LIMIT = "rate_limit_error"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    CONFIGURATION = "configuration_error"


class GatewayErrorCode(StrEnum):
    UNSUPPORTED_OPERATION = "unsupported_operation"
    SIGNATURE_INVALID = "signature_invalid"
    PAYLOAD_INVALID = "payload_invalid"
    RETRIES_EXHAUSTED = "retries_exhausted"
    PROVIDER_ERROR = "provider_error"


class WebhookEventType(StrEnum):
    """
    Internal webhook taxonomy.

    Each adapter maps its provider's event names onto these values in
    parse_webhook_event, so receivers never see provider-specific names.
    """

    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"
    UNKNOWN = "unknown"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", _("Pending")
    REQUIRES_ACTION = "REQUIRES_ACTION", _("Requires action")
    SUCCEEDED = "SUCCEEDED", _("Succeeded")
    FAILED = "FAILED", _("Failed")
    CANCELED = "CANCELED", _("Canceled")
    REFUNDED = "REFUNDED", _("Refunded")


# Defaults used when PAYMENT_GATEWAYS does not list currencies or countries.
DEFAULT_SUPPORTED_CURRENCIES = {
    GatewayCode.STRIPE: (
        "USD", "EUR", "GBP", "CAD", "AUD", "JPY", "CHF", "SEK", "NOK", "DKK",
        "PLN", "CZK", "HUF", "MXN", "BRL", "SGD", "HKD", "NZD", "MYR", "THB",
        "PHP", "INR", "KRW", "IDR",
    ),
    GatewayCode.PAYTABS: ("SAR", "AED", "KWD", "QAR", "BHD", "OMR", "JOD", "EGP", "USD"),
    GatewayCode.PAYMOB: ("EGP",),
}

DEFAULT_SUPPORTED_COUNTRIES = {
    GatewayCode.STRIPE: (
        "US", "CA", "GB", "IE", "AU", "NZ", "FR", "DE", "ES", "IT", "NL", "BE",
        "AT", "CH", "SE", "NO", "DK", "FI", "PL", "CZ", "PT", "GR", "JP", "SG",
        "HK", "MY", "TH", "PH", "ID", "IN", "KR", "MX", "BR", "ZA", "EG", "AE",
        "SA", "JO",
    ),
    GatewayCode.PAYTABS: ("SA", "AE", "KW", "QA", "BH", "OM", "JO", "EG"),
    GatewayCode.PAYMOB: ("EG",),
}

DEFAULT_PAYMENT_METHODS = {
    GatewayCode.STRIPE: ("card", "apple_pay", "google_pay", "link"),
    GatewayCode.PAYTABS: ("card", "mada", "apple_pay", "stcpay"),
    GatewayCode.PAYMOB: ("card", "wallet", "kiosk"),
}
