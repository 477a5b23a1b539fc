"""
Gateway webhook processing.

WebhookProcessor verifies and parses a delivery with the matching adapter,
then dispatches it through ``WEBHOOK_SIGNALS``. Nothing is written before
the signature checks out.

The receivers below keep local state in line with the provider:

- payment / invoice succeeded: reactivate and stop dunning
- payment / invoice failed: mark past due and start dunning
- customer.subscription.updated: sync the provider status
- customer.subscription.deleted: cancel locally
- payment.refunded: mark the Payment refunded

To test locally:
    stripe listen --forward-to localhost:8000/billing/webhooks/stripe
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.core.exceptions import ValidationError as DjangoValidationError
from django.dispatch import receiver
from django.utils import timezone

from edubill.billing.constants import GATEWAY_SUBSCRIPTION_STATUSES
from edubill.billing.constants import TERMINAL_STATUSES
from edubill.billing.constants import CancellationReason
from edubill.billing.constants import SubscriptionStatus
from edubill.billing.models import Payment
from edubill.billing.models import Subscription
from edubill.billing.subscriptions import SubscriptionService
from edubill.core.exceptions import ValidationError
from edubill.gateways.base import WebhookVerificationError
from edubill.gateways.constants import PaymentStatus
from edubill.gateways.constants import WebhookEventType
from edubill.gateways.registry import get_registry
from edubill.gateways.results import WebhookEvent
from edubill.gateways.signals import WEBHOOK_SIGNALS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    success: bool
    message: str
    event_id: str = ""
    event_type: str = ""

    def as_dict(self) -> dict:
        return {"success": self.success, "message": self.message}


class WebhookProcessor:
    """
    Verify, parse and dispatch one webhook delivery.

    Usage:
        result = WebhookProcessor().process("stripe", request.body, signature)
    """

    def __init__(self, registry=None):
        self.registry = registry

    def process(
        self,
        gateway_code: str,
        payload: bytes,
        signature: str,
        params: dict | None = None,
    ) -> WebhookResult:
        """
        Raises NotFoundError for an unknown or disabled gateway and
        ValidationError when the signature or payload is invalid.
        """
        registry = self.registry or get_registry()
        gateway = registry.get_enabled(gateway_code)
        signature = signature or (params or {}).get("hmac", "")

        try:
            event = gateway.parse_webhook_event(payload, signature)
        except WebhookVerificationError as exc:
            logger.warning("Rejected %s webhook: %s", gateway_code, exc)
            raise ValidationError(str(exc), code="invalid_signature") from exc

        gateway.handle_webhook_event(event)
        return WebhookResult(
            success=True,
            message=f"Processed {event.type} event",
            event_id=event.id,
            event_type=event.type,
        )


# ----------------------------------------------------------------------
# Lookups
# ----------------------------------------------------------------------


def find_payment(event: WebhookEvent) -> Payment | None:
    payment_id = event.data.get("payment_id")
    if not payment_id:
        return None
    return Payment.objects.filter(gateway=event.gateway, gateway_payment_id=payment_id).first()


def find_subscription(event: WebhookEvent) -> Subscription | None:
    """
    Locate the local subscription an event refers to.

    Tries the provider subscription id, then the provider customer id,
    then ``metadata.subscription_id``, then the payment's subscription.
    """
    data = event.data
    subscriptions = Subscription.objects.select_related("tenant", "plan")

    if data.get("subscription_id"):
        found = subscriptions.filter(gateway_subscription_id=data["subscription_id"]).first()
        if found:
            return found

    if data.get("customer_id"):
        by_customer = subscriptions.filter(gateway_customer_id=data["customer_id"])
        found = by_customer.exclude(status__in=TERMINAL_STATUSES).first() or by_customer.first()
        if found:
            return found

    local_id = (data.get("metadata") or {}).get("subscription_id")
    if local_id:
        try:
            found = subscriptions.filter(pk=local_id).first()
        except DjangoValidationError:
            found = None
        if found:
            return found

    payment = find_payment(event)
    if payment is not None and payment.subscription_id:
        return subscriptions.filter(pk=payment.subscription_id).first()
    return None


def _set_payment_status(payment: Payment | None, status: str) -> None:
    if payment is None or payment.status == status:
        return
    payment.status = status
    payment.save(update_fields=["status", "modified"])
    logger.info("Payment %s marked %s from webhook", payment.pk, status)


# ----------------------------------------------------------------------
# Receivers
# ----------------------------------------------------------------------


@receiver(WEBHOOK_SIGNALS[WebhookEventType.INVOICE_PAYMENT_SUCCEEDED], dispatch_uid="billing_invoice_paid")
@receiver(WEBHOOK_SIGNALS[WebhookEventType.PAYMENT_SUCCEEDED], dispatch_uid="billing_payment_succeeded")
def handle_payment_succeeded(sender, event: WebhookEvent, **kwargs):
    _set_payment_status(find_payment(event), PaymentStatus.SUCCEEDED)
    subscription = find_subscription(event)
    if subscription is None:
        logger.info("%s %s matched no subscription", event.gateway, event.type)
        return
    SubscriptionService().record_payment_success(subscription)


@receiver(WEBHOOK_SIGNALS[WebhookEventType.INVOICE_PAYMENT_FAILED], dispatch_uid="billing_invoice_failed")
@receiver(WEBHOOK_SIGNALS[WebhookEventType.PAYMENT_FAILED], dispatch_uid="billing_payment_failed")
def handle_payment_failed(sender, event: WebhookEvent, **kwargs):
    payment = find_payment(event)
    _set_payment_status(payment, PaymentStatus.FAILED)
    subscription = find_subscription(event)
    if subscription is None:
        logger.info("%s %s matched no subscription", event.gateway, event.type)
        return
    logger.warning(
        "Payment failed for subscription %s (tenant %s)",
        subscription.pk,
        subscription.tenant_id,
    )
    SubscriptionService().record_payment_failure(subscription, payment=payment)


@receiver(WEBHOOK_SIGNALS[WebhookEventType.SUBSCRIPTION_UPDATED], dispatch_uid="billing_subscription_updated")
def handle_subscription_updated(sender, event: WebhookEvent, **kwargs):
    """
    Sync status and the cancel-at-period-end flag from the provider.

    Canceled rows are never reopened; a returning tenant gets a new row.
    """
    subscription = find_subscription(event)
    if subscription is None or subscription.is_terminal:
        return

    update_fields = []
    new_status = GATEWAY_SUBSCRIPTION_STATUSES.get(event.data.get("status", ""))
    if new_status and new_status != subscription.status:
        logger.info(
            "Subscription %s status %s → %s from %s",
            subscription.pk,
            subscription.status,
            new_status,
            event.gateway,
        )
        subscription.status = new_status
        update_fields.append("status")
        if new_status == SubscriptionStatus.CANCELED:
            subscription.canceled_at = timezone.now()
            subscription.cancellation_reason = CancellationReason.GATEWAY_CANCELED
            update_fields += ["canceled_at", "cancellation_reason"]

    flag = event.data.get("cancel_at_period_end")
    if flag is not None and flag != subscription.cancel_at_period_end:
        subscription.cancel_at_period_end = flag
        update_fields.append("cancel_at_period_end")

    if update_fields:
        subscription.save(update_fields=[*update_fields, "modified"])


@receiver(WEBHOOK_SIGNALS[WebhookEventType.SUBSCRIPTION_DELETED], dispatch_uid="billing_subscription_deleted")
def handle_subscription_deleted(sender, event: WebhookEvent, **kwargs):
    subscription = find_subscription(event)
    if subscription is None or subscription.is_terminal:
        return
    now = timezone.now()
    subscription.status = SubscriptionStatus.CANCELED
    subscription.canceled_at = now
    subscription.cancellation_reason = CancellationReason.GATEWAY_CANCELED
    subscription.cancel_at_period_end = False
    subscription.save(
        update_fields=["status", "canceled_at", "cancellation_reason", "cancel_at_period_end", "modified"],
    )
    logger.info("Subscription %s canceled by %s", subscription.pk, event.gateway)


@receiver(WEBHOOK_SIGNALS[WebhookEventType.PAYMENT_REFUNDED], dispatch_uid="billing_payment_refunded")
def handle_payment_refunded(sender, event: WebhookEvent, **kwargs):
    payment = find_payment(event)
    if payment is None:
        return
    refunded = int(event.data.get("amount") or payment.amount)
    payment.refunded_amount = min(max(refunded, payment.refunded_amount), payment.amount)
    if payment.refunded_amount >= payment.amount:
        payment.status = PaymentStatus.REFUNDED
    payment.save(update_fields=["refunded_amount", "status", "modified"])
    logger.info("Payment %s refunded (%s) per %s", payment.pk, payment.refunded_amount, event.gateway)
