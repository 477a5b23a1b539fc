"""
Management command to run the dunning tick by hand.

Usage:
    python manage.py process_dunning
    python manage.py process_dunning --dry-run     # list due campaigns only
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from edubill.core.scheduler import run_scheduled_task
from edubill.dunning.constants import CampaignStatus
from edubill.dunning.models import DunningCampaign


class Command(BaseCommand):
    help = "Execute the due step of every active dunning campaign."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List due campaigns without executing any step",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            due = DunningCampaign.objects.filter(
                status=CampaignStatus.ACTIVE,
                next_action_at__lte=timezone.now(),
            ).order_by("next_action_at")
            for campaign in due:
                rule = campaign.current_rule or {}
                self.stdout.write(
                    f"  {campaign.subscription_id}: step {campaign.current_step + 1}/"
                    f"{campaign.total_steps} {rule.get('name', '?')} ({rule.get('action', '?')})",
                )
            self.stdout.write(f"{due.count()} campaign(s) due")
            return

        result = run_scheduled_task("process-dunning-campaigns")
        style = self.style.WARNING if result["failed"] else self.style.SUCCESS
        self.stdout.write(
            style(
                f"Processed {result['processed']}: succeeded {result['succeeded']}, "
                f"failed {result['failed']}, skipped {result['skipped']}",
            ),
        )
        for error in result["errors"]:
            self.stdout.write(f"  {error}")
