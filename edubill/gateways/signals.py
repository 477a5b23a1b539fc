"""
One signal per internal webhook event type.

Adapters send these from ``handle_webhook_event`` once an event has been
verified and parsed. Receivers live in ``edubill.billing.webhooks`` and are
called with ``sender=<gateway class>`` and ``event=<WebhookEvent>``.
"""

from django.dispatch import Signal

from edubill.gateways.constants import WebhookEventType

WEBHOOK_SIGNALS: dict[str, Signal] = {event_type.value: Signal() for event_type in WebhookEventType}
