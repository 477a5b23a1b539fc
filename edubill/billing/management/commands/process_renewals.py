"""
Management command to run the subscription batches by hand.

Runs the same tick Celery Beat triggers hourly. Useful after an outage or
when Beat is not deployed.

Usage:
    python manage.py process_renewals
    python manage.py process_renewals --trials      # also convert ended trials
    python manage.py process_renewals --dry-run     # only show what is due
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from edubill.billing.constants import RENEWABLE_STATUSES
from edubill.billing.constants import TERMINAL_STATUSES
from edubill.billing.constants import SubscriptionStatus
from edubill.billing.models import Subscription
from edubill.core.scheduler import run_scheduled_task

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Renew due subscriptions and finalize period-end cancellations."

    def add_arguments(self, parser):
        parser.add_argument(
            "--trials",
            action="store_true",
            help="Also convert ended trials to active",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many subscriptions are due without changing anything",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            self._show_due()
            return

        tasks = ["process-subscription-renewals"]
        if options["trials"]:
            tasks.append("process-trial-expirations")

        for task_id in tasks:
            result = run_scheduled_task(task_id)
            style = self.style.WARNING if result["failed"] else self.style.SUCCESS
            self.stdout.write(
                style(
                    f"{task_id}: processed {result['processed']}, "
                    f"succeeded {result['succeeded']}, failed {result['failed']}, "
                    f"skipped {result['skipped']}",
                ),
            )
            for error in result["errors"]:
                self.stdout.write(f"  {error}")

    def _show_due(self):
        now = timezone.now()
        horizon = now + timedelta(hours=settings.BILLING_RENEWAL_LOOKAHEAD_HOURS)
        renewals = Subscription.objects.filter(
            status__in=RENEWABLE_STATUSES,
            cancel_at_period_end=False,
            current_period_end__lte=horizon,
        ).count()
        endings = Subscription.objects.filter(
            cancel_at_period_end=True,
            current_period_end__lte=now,
        ).exclude(status__in=TERMINAL_STATUSES).count()
        trials = Subscription.objects.filter(
            status=SubscriptionStatus.TRIAL,
            trial_end__lte=now,
        ).count()
        self.stdout.write(f"Due for renewal: {renewals}")
        self.stdout.write(f"Cancelling at period end: {endings}")
        self.stdout.write(f"Ended trials: {trials}")
