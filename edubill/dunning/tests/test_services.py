"""
Tests for the dunning engine.
"""

from datetime import UTC
from datetime import datetime
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.core import mail

from edubill.billing.constants import CancellationReason
from edubill.billing.constants import SubscriptionStatus
from edubill.billing.tests.factories import SubscriptionFactory
from edubill.billing.tests.utils import ok_responses
from edubill.billing.tests.utils import provider_error
from edubill.billing.tests.utils import stub_gateway
from edubill.dunning.constants import CampaignStatus
from edubill.dunning.constants import DunningAction
from edubill.dunning.models import DunningCampaign
from edubill.dunning.models import DunningRule
from edubill.dunning.services import DunningService
from edubill.gateways.registry import get_registry
from edubill.notifications.constants import NotificationChannel
from edubill.notifications.models import BillingNotification
from edubill.tenants.tests.factories import TenantFactory

STARTED = datetime(2025, 1, 1, 9, 0, tzinfo=UTC)


def day(n: float) -> datetime:
    return STARTED + timedelta(days=n)


@pytest.fixture
def service():
    return DunningService()


@pytest.fixture
def past_due(plans, tenant):
    return SubscriptionFactory(tenant=tenant, plan=plans["starter"], status=SubscriptionStatus.PAST_DUE)


@pytest.mark.django_db
class TestRules:
    def test_built_in_defaults(self, service, tenant):
        rules = service.get_rules(tenant)

        assert [rule.trigger_days for rule in rules] == [1, 3, 7, 14, 30]
        assert [rule.action for rule in rules][-2:] == [DunningAction.SUSPEND, DunningAction.CANCEL]
        assert all(rule.pk is None for rule in rules)

    def test_platform_rules_replace_the_defaults(self, service, tenant):
        DunningRule.objects.create(name="Only Notice", trigger_days=2, action=DunningAction.EMAIL)

        assert [rule.name for rule in service.get_rules(tenant)] == ["Only Notice"]

    def test_tenant_rules_win(self, service, tenant):
        DunningRule.objects.create(name="Platform", trigger_days=2, action=DunningAction.EMAIL)
        DunningRule.objects.create(tenant=tenant, name="Text", trigger_days=5, action=DunningAction.SMS)
        DunningRule.objects.create(tenant=tenant, name="Nudge", trigger_days=1, action=DunningAction.EMAIL)

        assert [rule.name for rule in service.get_rules(tenant)] == ["Nudge", "Text"]
        assert [rule.name for rule in service.get_rules(TenantFactory())] == ["Platform"]

    def test_inactive_rules_are_ignored(self, service, tenant):
        DunningRule.objects.create(tenant=tenant, name="Off", trigger_days=1, action=DunningAction.EMAIL, is_active=False)

        assert len(service.get_rules(tenant)) == 5

    def test_initialize_is_idempotent(self, service, tenant):
        first = service.initialize_dunning_rules(tenant)
        second = service.initialize_dunning_rules(tenant)

        assert len(first) == 5
        assert {rule.pk for rule in second} == {rule.pk for rule in first}
        assert DunningRule.objects.filter(tenant=tenant).count() == 5


@pytest.mark.django_db
class TestCampaignLifecycle:
    def test_start_schedules_the_first_step(self, service, past_due):
        campaign = service.start_dunning_process(past_due, now=STARTED)

        assert campaign.status == CampaignStatus.ACTIVE
        assert campaign.current_step == 0
        assert campaign.total_steps == 5
        assert campaign.next_action_at == day(1)

    def test_start_while_active_keeps_progress(self, service, past_due):
        campaign = service.start_dunning_process(past_due, now=STARTED)
        service.process_dunning_campaigns(now=day(1))

        again = service.start_dunning_process(past_due, now=day(2))

        assert again.pk == campaign.pk
        assert again.current_step == 1

    def test_rule_edits_do_not_touch_running_campaigns(self, service, past_due):
        campaign = service.start_dunning_process(past_due, now=STARTED)
        DunningRule.objects.create(name="Late addition", trigger_days=2, action=DunningAction.EMAIL)

        campaign.refresh_from_db()
        assert [step["trigger_days"] for step in campaign.steps] == [1, 3, 7, 14, 30]

    def test_stop_completes_and_is_idempotent(self, service, past_due):
        campaign = service.start_dunning_process(past_due, now=STARTED)

        assert service.stop_dunning_process(past_due, now=day(2)) == 1
        assert service.stop_dunning_process(past_due, now=day(3)) == 0

        campaign.refresh_from_db()
        assert campaign.status == CampaignStatus.COMPLETED
        assert campaign.completed_at == day(2)
        assert campaign.next_action_at is None
        assert service.process_dunning_campaigns(now=day(40)).processed == 0

    def test_new_campaign_after_a_stopped_one(self, service, past_due):
        first = service.start_dunning_process(past_due, now=STARTED)
        service.stop_dunning_process(past_due)

        second = service.start_dunning_process(past_due, now=day(10))

        assert second.pk != first.pk
        assert DunningCampaign.objects.filter(subscription=past_due).count() == 2


@pytest.mark.django_db
class TestEscalation:
    def test_full_escalation_offsets_from_the_start(self, service, past_due):
        campaign = service.start_dunning_process(past_due, now=STARTED)

        # A late tick does not shift later steps.
        assert service.process_dunning_campaigns(now=day(1.5)).succeeded == 1
        campaign.refresh_from_db()
        assert campaign.current_step == 1
        assert campaign.next_action_at == day(3)

        assert service.process_dunning_campaigns(now=day(2)).processed == 0

        service.process_dunning_campaigns(now=day(3))
        service.process_dunning_campaigns(now=day(7))
        assert len(mail.outbox) == 3
        assert mail.outbox[2].subject.startswith("Final Notice")

        service.process_dunning_campaigns(now=day(14))
        past_due.refresh_from_db()
        assert past_due.status == SubscriptionStatus.SUSPENDED
        assert past_due.suspended_at == day(14)

        service.process_dunning_campaigns(now=day(30))
        past_due.refresh_from_db()
        campaign.refresh_from_db()
        assert past_due.status == SubscriptionStatus.CANCELED
        assert past_due.cancellation_reason == CancellationReason.NON_PAYMENT
        assert campaign.status == CampaignStatus.COMPLETED
        assert campaign.current_step == 5
        assert len(mail.outbox) == 5

    def test_only_one_step_per_tick(self, service, past_due):
        campaign = service.start_dunning_process(past_due, now=STARTED)

        service.process_dunning_campaigns(now=day(20))

        campaign.refresh_from_db()
        assert campaign.current_step == 1
        # Overdue steps run on the following ticks.
        assert campaign.next_action_at == day(3)

    def test_sms_step_is_recorded_without_email(self, service, past_due):
        DunningRule.objects.create(
            tenant=past_due.tenant,
            name="Text reminder",
            trigger_days=1,
            action=DunningAction.SMS,
        )
        service.start_dunning_process(past_due, now=STARTED)

        service.process_dunning_campaigns(now=day(1))

        assert mail.outbox == []
        notification = BillingNotification.objects.get(subscription=past_due)
        assert notification.channel == NotificationChannel.SMS

    def test_undeliverable_reminder_still_advances(self, service, plans):
        subscription = SubscriptionFactory(
            tenant=TenantFactory(billing_email=""),
            plan=plans["starter"],
            status=SubscriptionStatus.PAST_DUE,
        )
        campaign = service.start_dunning_process(subscription, now=STARTED)

        result = service.process_dunning_campaigns(now=day(1))

        assert result.succeeded == 1
        campaign.refresh_from_db()
        assert campaign.current_step == 1

    def test_canceled_subscription_closes_the_campaign(self, service, past_due):
        campaign = service.start_dunning_process(past_due, now=STARTED)
        past_due.status = SubscriptionStatus.CANCELED
        past_due.save()

        service.process_dunning_campaigns(now=day(1))

        campaign.refresh_from_db()
        assert campaign.status == CampaignStatus.CANCELLED
        assert mail.outbox == []


@pytest.mark.django_db
class TestFailureIsolation:
    def test_failed_cancellation_is_retried_next_tick(self, service, plans):
        stripe = stub_gateway(
            get_registry().get("stripe"),
            cancel_subscription=provider_error("stripe"),
        )
        broken = SubscriptionFactory(
            plan=plans["starter"],
            status=SubscriptionStatus.SUSPENDED,
            gateway="stripe",
            gateway_subscription_id="sub_remote",
        )
        healthy = SubscriptionFactory(plan=plans["starter"], status=SubscriptionStatus.PAST_DUE)
        for subscription in (broken, healthy):
            campaign = service.start_dunning_process(subscription, now=STARTED)
            campaign.current_step = 4
            campaign.next_action_at = day(30)
            campaign.save()

        result = service.process_dunning_campaigns(now=day(30))

        assert (result.processed, result.succeeded, result.failed) == (2, 1, 1)
        broken.refresh_from_db()
        healthy.refresh_from_db()
        assert broken.status == SubscriptionStatus.SUSPENDED
        assert healthy.status == SubscriptionStatus.CANCELED
        broken_campaign = DunningCampaign.objects.get(subscription=broken)
        assert broken_campaign.is_active
        assert broken_campaign.current_step == 4

        stripe.cancel_subscription.return_value = ok_responses("stripe")["cancel_subscription"]
        result = service.process_dunning_campaigns(now=day(31))

        assert result.succeeded == 1
        broken.refresh_from_db()
        assert broken.status == SubscriptionStatus.CANCELED

    def test_unexpected_error_is_counted(self, service, past_due):
        campaign = service.start_dunning_process(past_due, now=STARTED)

        with patch.object(DunningService, "execute_step", side_effect=RuntimeError("boom")):
            result = service.process_dunning_campaigns(now=day(1))

        assert result.failed == 1
        assert result.errors == [f"{campaign.pk}: boom"]


@pytest.mark.django_db
def test_statistics(service, plans, tenant):
    suspended = SubscriptionFactory(tenant=tenant, plan=plans["starter"], status=SubscriptionStatus.SUSPENDED)
    service.start_dunning_process(suspended, now=STARTED)
    SubscriptionFactory(
        tenant=tenant,
        plan=plans["starter"],
        status=SubscriptionStatus.CANCELED,
        cancellation_reason=CancellationReason.NON_PAYMENT,
    )

    assert service.get_dunning_statistics(tenant) == {
        "active_campaigns": 1,
        "completed_campaigns": 0,
        "suspended_subscriptions": 1,
        "cancelled_subscriptions": 1,
    }
