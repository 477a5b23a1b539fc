"""
Tests for billing notification delivery.
"""

import smtplib
from unittest.mock import patch

from django.core import mail
from django.test import TestCase

from edubill.notifications.constants import NotificationChannel
from edubill.notifications.constants import NotificationType
from edubill.notifications.models import BillingNotification
from edubill.notifications.services import NotificationDeliveryError
from edubill.notifications.services import send_billing_notification
from edubill.tenants.tests.factories import TenantFactory


class SendBillingNotificationTests(TestCase):
    """Tests for send_billing_notification."""

    def test_email_is_sent_and_recorded(self):
        """Email notifications are delivered and stamped as sent."""
        tenant = TenantFactory(name="North District", billing_email="billing@north.example")

        notification = send_billing_notification(
            tenant,
            NotificationType.BILLING_REMINDER,
            context={"days_overdue": 3, "step": "Second Reminder"},
        )

        self.assertTrue(notification.delivered)
        self.assertEqual(notification.error, "")
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["billing@north.example"])
        self.assertEqual(message.subject, "Second Reminder: payment overdue for North District")
        self.assertIn("overdue for 3 day(s)", message.body)

    def test_missing_recipient_raises_and_records_error(self):
        """A tenant without a billing email gets a recorded, undelivered row."""
        tenant = TenantFactory(billing_email="")

        with self.assertRaises(NotificationDeliveryError) as ctx:
            send_billing_notification(tenant, NotificationType.SUBSCRIPTION_SUSPENDED)

        notification = BillingNotification.objects.get(pk=ctx.exception.notification.pk)
        self.assertIsNone(notification.sent_at)
        self.assertEqual(notification.error, "Tenant has no billing email")
        self.assertEqual(mail.outbox, [])

    def test_transport_failure_is_recorded(self):
        tenant = TenantFactory(billing_email="billing@south.example")

        with (
            patch(
                "edubill.notifications.services.send_mail",
                side_effect=smtplib.SMTPServerDisconnected("connection lost"),
            ),
            self.assertRaises(NotificationDeliveryError),
        ):
            send_billing_notification(tenant, NotificationType.SUBSCRIPTION_CANCELLED)

        notification = BillingNotification.objects.get(tenant=tenant)
        self.assertFalse(notification.delivered)
        self.assertIn("connection lost", notification.error)

    def test_sms_is_recorded_but_not_sent(self):
        """SMS rows are kept for an outside sender; nothing goes out by email."""
        tenant = TenantFactory()

        notification = send_billing_notification(
            tenant,
            NotificationType.BILLING_REMINDER,
            channel=NotificationChannel.SMS,
            recipient="+201000000000",
        )

        self.assertEqual(notification.channel, NotificationChannel.SMS)
        self.assertEqual(notification.recipient, "+201000000000")
        self.assertFalse(notification.delivered)
        self.assertEqual(mail.outbox, [])

    def test_payload_keeps_context_as_strings(self):
        tenant = TenantFactory(billing_email="billing@east.example")

        notification = send_billing_notification(
            tenant,
            NotificationType.PAYMENT_RECEIPT,
            context={"amount": "29.99", "currency": "USD"},
        )

        self.assertEqual(notification.payload["amount"], "29.99")
        self.assertEqual(notification.payload["days_overdue"], "0")
        self.assertIn("29.99 USD", notification.message)
