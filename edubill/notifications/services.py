"""
Billing notification delivery.

``send_billing_notification`` records a BillingNotification row, then
delivers email through ``django.core.mail.send_mail``. Transport failures
are stored on the row and re-raised as NotificationDeliveryError so the
caller decides whether the failure matters.
"""

from __future__ import annotations

import logging
import smtplib
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone
from django.utils.translation import gettext as _
from django.utils.translation import gettext_lazy

from edubill.notifications.constants import NotificationChannel
from edubill.notifications.constants import NotificationType
from edubill.notifications.models import BillingNotification

if TYPE_CHECKING:
    from edubill.billing.models import Subscription
    from edubill.tenants.models import Tenant

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    """Raised when the transport rejects a billing notification."""

    def __init__(self, notification: BillingNotification, reason: str):
        self.notification = notification
        self.reason = reason
        super().__init__(f"Notification {notification.pk} not delivered: {reason}")


SUBJECTS = {
    NotificationType.BILLING_REMINDER: gettext_lazy("%(step)s: payment overdue for %(tenant)s"),
    NotificationType.SUBSCRIPTION_SUSPENDED: gettext_lazy("Your %(plan)s subscription has been suspended"),
    NotificationType.SUBSCRIPTION_CANCELLED: gettext_lazy("Your %(plan)s subscription has been cancelled"),
    NotificationType.PAYMENT_RECEIPT: gettext_lazy("Payment received for %(tenant)s"),
}

MESSAGES = {
    NotificationType.BILLING_REMINDER: gettext_lazy(
        """Hi %(tenant)s,

We could not collect payment for your %(plan)s subscription. The payment
has now been overdue for %(days_overdue)s day(s).

Please update your payment method to avoid interruption:
%(billing_url)s

Thanks,
The Billing Team
""",
    ),
    NotificationType.SUBSCRIPTION_SUSPENDED: gettext_lazy(
        """Hi %(tenant)s,

Because payment for your %(plan)s subscription is still outstanding, your
service has been suspended. Update your payment method to restore access:
%(billing_url)s

Thanks,
The Billing Team
""",
    ),
    NotificationType.SUBSCRIPTION_CANCELLED: gettext_lazy(
        """Hi %(tenant)s,

Your %(plan)s subscription has been cancelled for non-payment. You can
subscribe again at any time:
%(billing_url)s

Thanks,
The Billing Team
""",
    ),
    NotificationType.PAYMENT_RECEIPT: gettext_lazy(
        """Hi %(tenant)s,

We received your payment of %(amount)s %(currency)s. Thank you.

The Billing Team
""",
    ),
}


def build_context(tenant: Tenant, subscription: Subscription | None, extra: dict | None) -> dict:
    context = {
        "tenant": tenant.name,
        "plan": subscription.plan.name if subscription is not None else "",
        "billing_url": f"{settings.BILLING_SITE_URL}/billing/subscription",
        "days_overdue": 0,
        "step": _("Payment reminder"),
        "amount": "",
        "currency": "",
    }
    context.update(extra or {})
    return context


def send_billing_notification(
    tenant: Tenant,
    notification_type: str,
    *,
    subscription: Subscription | None = None,
    channel: str = NotificationChannel.EMAIL,
    context: dict | None = None,
    recipient: str | None = None,
) -> BillingNotification:
    """
    Record and deliver one billing notification.

    Returns the BillingNotification row. Raises NotificationDeliveryError
    when email delivery fails; the row keeps the error either way.
    """
    context = build_context(tenant, subscription, context)
    notification = BillingNotification.objects.create(
        tenant=tenant,
        subscription=subscription,
        channel=channel,
        type=notification_type,
        recipient=recipient if recipient is not None else tenant.billing_email,
        subject=SUBJECTS[notification_type] % context,
        message=MESSAGES[notification_type] % context,
        payload={k: str(v) for k, v in context.items()},
    )

    if channel != NotificationChannel.EMAIL:
        logger.info(
            "Recorded %s %s notification %s for tenant %s",
            channel,
            notification_type,
            notification.pk,
            tenant.pk,
        )
        return notification

    if not notification.recipient:
        raise _delivery_failed(notification, "Tenant has no billing email")

    try:
        sent = send_mail(
            notification.subject,
            notification.message,
            settings.DEFAULT_FROM_EMAIL,
            [notification.recipient],
        )
    except (smtplib.SMTPException, OSError) as exc:
        logger.exception("Error sending %s email to %s", notification_type, notification.recipient)
        raise _delivery_failed(notification, str(exc)) from exc

    if sent == 0:
        raise _delivery_failed(notification, "Email backend did not accept the message")

    notification.sent_at = timezone.now()
    notification.save(update_fields=["sent_at", "modified"])
    logger.info(
        "Sent %s email to %s for tenant %s",
        notification_type,
        notification.recipient,
        tenant.pk,
    )
    return notification


def _delivery_failed(notification: BillingNotification, reason: str) -> NotificationDeliveryError:
    notification.error = reason
    notification.save(update_fields=["error", "modified"])
    return NotificationDeliveryError(notification, reason)
