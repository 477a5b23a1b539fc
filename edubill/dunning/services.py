"""
Dunning engine.

A campaign starts when a payment fails and walks the subscription through
the tenant's ordered rules: reminders, then suspension, then cancellation
for non-payment. The periodic tick (``process_dunning_campaigns``) executes
whichever step is due. A successful payment stops the campaign.

Step offsets are measured from ``campaign.started_at``. With the default
rules a campaign started at T acts at T+1d, T+3d, T+7d, T+14d and T+30d.
"""

from __future__ import annotations

import logging
from datetime import datetime
from datetime import timedelta
from typing import TYPE_CHECKING

from django.db import IntegrityError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from edubill.billing.constants import SubscriptionStatus
from edubill.core.batch import BatchResult
from edubill.dunning.constants import DEFAULT_RULES
from edubill.dunning.constants import NOTIFY_ACTIONS
from edubill.dunning.constants import CampaignStatus
from edubill.dunning.constants import DunningAction
from edubill.dunning.models import DunningCampaign
from edubill.dunning.models import DunningRule
from edubill.notifications.constants import NotificationChannel
from edubill.notifications.constants import NotificationType
from edubill.notifications.services import NotificationDeliveryError
from edubill.notifications.services import send_billing_notification

if TYPE_CHECKING:
    from edubill.billing.models import Payment
    from edubill.billing.models import Subscription
    from edubill.tenants.models import Tenant

logger = logging.getLogger(__name__)


class DunningService:
    """
    Starts, advances and stops dunning campaigns.

    Usage:
        service = DunningService()
        service.start_dunning_process(subscription, payment=failed_payment)
        ...
        service.process_dunning_campaigns()  # hourly
    """

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def get_rules(self, tenant: Tenant) -> list[DunningRule]:
        """
        The rules that apply to ``tenant``, ordered by ``trigger_days``.

        Tenant rules win over platform rules (``tenant`` null). With neither
        in the database the built-in defaults are returned unsaved.
        """
        rules = list(DunningRule.objects.filter(tenant=tenant, is_active=True))
        if not rules:
            rules = list(DunningRule.objects.filter(tenant__isnull=True, is_active=True))
        if not rules:
            rules = [DunningRule(tenant=None, **spec) for spec in DEFAULT_RULES]
        return sorted(rules, key=lambda rule: rule.trigger_days)

    def initialize_dunning_rules(self, tenant: Tenant) -> list[DunningRule]:
        """Create the default five rules for ``tenant`` unless it has rules."""
        existing = list(DunningRule.objects.filter(tenant=tenant))
        if existing:
            return existing
        rules = DunningRule.objects.bulk_create(
            [DunningRule(tenant=tenant, **spec) for spec in DEFAULT_RULES],
        )
        logger.info("Initialized %s dunning rules for tenant %s", len(rules), tenant.pk)
        return rules

    # ------------------------------------------------------------------
    # Campaign lifecycle
    # ------------------------------------------------------------------

    def start_dunning_process(
        self,
        subscription: Subscription,
        payment: Payment | None = None,
        now: datetime | None = None,
    ) -> DunningCampaign:
        """
        Start a campaign for ``subscription``, or return the active one.

        Calling this while a campaign is active does not reset its step.
        """
        now = now or timezone.now()
        existing = self._active_campaign(subscription)
        if existing is not None:
            logger.info(
                "Dunning already active for subscription %s (campaign %s)",
                subscription.pk,
                existing.pk,
            )
            return existing

        steps = [rule.as_step() for rule in self.get_rules(subscription.tenant)]
        try:
            with transaction.atomic():
                campaign = DunningCampaign.objects.create(
                    subscription=subscription,
                    tenant=subscription.tenant,
                    payment=payment,
                    steps=steps,
                    total_steps=len(steps),
                    started_at=now,
                    next_action_at=now + timedelta(days=steps[0]["trigger_days"]),
                )
        except IntegrityError:
            # Another worker started one first.
            return self._active_campaign(subscription)

        logger.info(
            "Started dunning campaign %s for subscription %s (%s steps)",
            campaign.pk,
            subscription.pk,
            campaign.total_steps,
        )
        return campaign

    def stop_dunning_process(self, subscription: Subscription, now: datetime | None = None) -> int:
        """
        Complete every active campaign for ``subscription``.

        Remaining steps are not executed. Returns the number of campaigns
        stopped; a second call stops nothing and returns 0.
        """
        now = now or timezone.now()
        stopped = DunningCampaign.objects.filter(
            subscription=subscription,
            status=CampaignStatus.ACTIVE,
        ).update(
            status=CampaignStatus.COMPLETED,
            completed_at=now,
            next_action_at=None,
            modified=now,
        )
        if stopped:
            logger.info("Stopped %s dunning campaign(s) for subscription %s", stopped, subscription.pk)
        return stopped

    def process_dunning_campaigns(self, now: datetime | None = None) -> BatchResult:
        """
        Execute the due step of every active campaign.

        Each campaign runs in its own transaction. A failure is logged and
        rolled back for that campaign only, so its step is retried on the
        next tick while the rest of the batch carries on.
        """
        now = now or timezone.now()
        result = BatchResult()
        due_ids = list(
            DunningCampaign.objects.filter(
                status=CampaignStatus.ACTIVE,
                next_action_at__lte=now,
            )
            .order_by("next_action_at")
            .values_list("pk", flat=True),
        )

        for campaign_id in due_ids:
            try:
                with transaction.atomic():
                    campaign = (
                        DunningCampaign.objects.select_for_update()
                        .select_related("subscription", "subscription__plan", "tenant")
                        .get(pk=campaign_id)
                    )
                    if not campaign.is_active or campaign.next_action_at > now:
                        result.record_skip()
                        continue
                    self.execute_step(campaign, now)
                result.record_success()
            except Exception as exc:
                logger.exception("Dunning step failed for campaign %s", campaign_id)
                result.record_failure(campaign_id, exc)

        if result.processed:
            logger.info(
                "Dunning tick: %s processed, %s succeeded, %s failed, %s skipped",
                result.processed,
                result.succeeded,
                result.failed,
                result.skipped,
            )
        return result

    def execute_step(self, campaign: DunningCampaign, now: datetime) -> DunningCampaign:
        """
        Run the action at ``campaign.current_step`` and advance.

        Notification failures are logged and the step still advances.
        Suspend and cancel failures propagate and leave the step in place.
        """
        subscription = campaign.subscription
        if subscription.is_terminal:
            return self._close(campaign, CampaignStatus.CANCELLED, now)

        rule = campaign.current_rule
        if rule is None:
            return self._close(campaign, CampaignStatus.COMPLETED, now)

        action = rule["action"]
        logger.info(
            "Executing dunning step %s/%s (%s) for subscription %s",
            campaign.current_step + 1,
            campaign.total_steps,
            action,
            subscription.pk,
        )

        if action in NOTIFY_ACTIONS:
            self._notify(
                campaign,
                NotificationType.BILLING_REMINDER,
                now,
                channel=NotificationChannel.SMS if action == DunningAction.SMS else NotificationChannel.EMAIL,
                step_name=rule["name"],
            )
        elif action == DunningAction.SUSPEND:
            self._subscriptions().suspend_subscription(subscription, now)
            self._notify(campaign, NotificationType.SUBSCRIPTION_SUSPENDED, now, step_name=rule["name"])
        elif action == DunningAction.CANCEL:
            self._subscriptions().cancel_for_non_payment(subscription, now)
            self._notify(campaign, NotificationType.SUBSCRIPTION_CANCELLED, now, step_name=rule["name"])
        else:
            logger.warning("Unknown dunning action '%s' in campaign %s", action, campaign.pk)

        return self._advance(campaign, now)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_dunning_statistics(self, tenant: Tenant) -> dict[str, int]:
        from edubill.billing.constants import CancellationReason
        from edubill.billing.models import Subscription

        campaigns = DunningCampaign.objects.filter(tenant=tenant)
        subscriptions = Subscription.objects.filter(tenant=tenant)
        return {
            "active_campaigns": campaigns.filter(status=CampaignStatus.ACTIVE).count(),
            "completed_campaigns": campaigns.filter(status=CampaignStatus.COMPLETED).count(),
            "suspended_subscriptions": subscriptions.filter(status=SubscriptionStatus.SUSPENDED).count(),
            "cancelled_subscriptions": subscriptions.filter(
                Q(status=SubscriptionStatus.CANCELED)
                & Q(cancellation_reason=CancellationReason.NON_PAYMENT),
            ).count(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _subscriptions():
        # billing.subscriptions imports this module.
        from edubill.billing.subscriptions import SubscriptionService

        return SubscriptionService()

    @staticmethod
    def _active_campaign(subscription: Subscription) -> DunningCampaign | None:
        return DunningCampaign.objects.filter(
            subscription=subscription,
            status=CampaignStatus.ACTIVE,
        ).first()

    def _advance(self, campaign: DunningCampaign, now: datetime) -> DunningCampaign:
        campaign.current_step += 1
        campaign.last_action_at = now
        if campaign.current_step >= campaign.total_steps:
            return self._close(campaign, CampaignStatus.COMPLETED, now)
        next_rule = campaign.steps[campaign.current_step]
        campaign.next_action_at = campaign.started_at + timedelta(days=next_rule["trigger_days"])
        campaign.save(update_fields=["current_step", "last_action_at", "next_action_at", "modified"])
        return campaign

    def _close(self, campaign: DunningCampaign, status: str, now: datetime) -> DunningCampaign:
        campaign.status = status
        campaign.completed_at = now
        campaign.next_action_at = None
        campaign.save(
            update_fields=[
                "status",
                "current_step",
                "last_action_at",
                "completed_at",
                "next_action_at",
                "modified",
            ],
        )
        logger.info("Dunning campaign %s %s", campaign.pk, status.lower())
        return campaign

    def _notify(
        self,
        campaign: DunningCampaign,
        notification_type: str,
        now: datetime,
        *,
        channel: str = NotificationChannel.EMAIL,
        step_name: str = "",
    ) -> None:
        context = {
            "days_overdue": max((now - campaign.started_at).days, 0),
            "step": step_name,
        }
        try:
            send_billing_notification(
                campaign.tenant,
                notification_type,
                subscription=campaign.subscription,
                channel=channel,
                context=context,
            )
        except NotificationDeliveryError as exc:
            logger.warning(
                "Dunning notification for campaign %s not delivered: %s",
                campaign.pk,
                exc.reason,
            )
