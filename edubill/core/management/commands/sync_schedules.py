"""
Management command to synchronize scheduled task definitions.

Reads the task registry (edubill.core.tasks.registry) and creates or
updates the matching django-celery-beat CrontabSchedule and PeriodicTask
rows. Beat runs with the DatabaseScheduler, so these rows are the schedule.

Usage:
    # Write the Celery Beat schedule
    python manage.py sync_schedules

    # Show what would be synced
    python manage.py sync_schedules --dry-run

    # List all registered tasks
    python manage.py sync_schedules --list
    python manage.py sync_schedules --list --format=json
"""

import json
import logging

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError
from django.db import transaction
from django_celery_beat.models import CrontabSchedule
from django_celery_beat.models import PeriodicTask

from edubill.core.tasks.registry import SCHEDULED_TASKS

logger = logging.getLogger(__name__)

CRON_FIELD_COUNT = 5


class Command(BaseCommand):
    """Synchronize scheduled task definitions with Celery Beat."""

    help = "Sync scheduled tasks from the registry to Celery Beat"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be done without making changes",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            dest="list_tasks",
            help="List all registered scheduled tasks",
        )
        parser.add_argument(
            "--format",
            type=str,
            choices=["text", "json"],
            default="text",
            help="Output format for --list (default: text)",
        )

    def handle(self, *args, **options):
        if options["list_tasks"]:
            self._list_tasks(options["format"])
            return
        self._sync_celery_beat(dry_run=options["dry_run"])

    def _list_tasks(self, output_format: str):
        if output_format == "json":
            tasks_data = [
                {
                    "id": task.id,
                    "name": task.name,
                    "celery_task": task.celery_task,
                    "schedule_cron": task.schedule_cron,
                    "description": task.description,
                    "enabled": task.enabled,
                }
                for task in SCHEDULED_TASKS
            ]
            self.stdout.write(json.dumps(tasks_data, indent=2))
            return

        self.stdout.write(
            self.style.SUCCESS(f"\nRegistered Scheduled Tasks ({len(SCHEDULED_TASKS)} total)\n"),
        )
        self.stdout.write("=" * 80)
        for task in SCHEDULED_TASKS:
            status = "✓" if task.enabled else "✗"
            self.stdout.write(f"\n{status} {task.name} ({task.id})")
            self.stdout.write(f"  Schedule:    {task.schedule_cron}")
            self.stdout.write(f"  Celery:      {task.celery_task}")
            if task.description:
                self.stdout.write(f"  Description: {task.description}")
        self.stdout.write("\n" + "=" * 80)

    def _sync_celery_beat(self, dry_run: bool):
        self.stdout.write(self.style.SUCCESS(f"\nSyncing {len(SCHEDULED_TASKS)} tasks to Celery Beat..."))
        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN - no changes will be made\n"))

        created_count = 0
        updated_count = 0
        crontab_cache: dict[str, CrontabSchedule] = {}

        with transaction.atomic():
            for task in SCHEDULED_TASKS:
                cron_parts = self._parse_cron(task.schedule_cron)
                self.stdout.write(f"\n  Processing: {task.name}")

                if dry_run:
                    self.stdout.write(f"    Would create/use crontab: {task.schedule_cron}")
                    self.stdout.write(f"    Would create/update PeriodicTask: {task.celery_task}")
                    continue

                if task.schedule_cron not in crontab_cache:
                    crontab_cache[task.schedule_cron], _ = CrontabSchedule.objects.get_or_create(**cron_parts)
                schedule = crontab_cache[task.schedule_cron]

                periodic_task, created = PeriodicTask.objects.get_or_create(
                    name=task.name,
                    defaults={
                        "task": task.celery_task,
                        "crontab": schedule,
                        "enabled": task.enabled,
                        "description": task.description,
                    },
                )
                if created:
                    created_count += 1
                    self.stdout.write(self.style.SUCCESS(f"    Created: {task.name}"))
                    continue

                periodic_task.crontab = schedule
                periodic_task.interval = None
                periodic_task.task = task.celery_task
                periodic_task.enabled = task.enabled
                periodic_task.description = task.description
                periodic_task.save()
                updated_count += 1
                self.stdout.write(f"    Updated: {task.name}")

        self.stdout.write("")
        if dry_run:
            self.stdout.write(self.style.WARNING(f"Would create/update {len(SCHEDULED_TASKS)} periodic tasks"))
        else:
            logger.info("Synced Celery Beat schedule: %s created, %s updated", created_count, updated_count)
            self.stdout.write(self.style.SUCCESS(f"Done! Created: {created_count}, Updated: {updated_count}"))

    def _parse_cron(self, cron_expr: str) -> dict[str, str]:
        """Split a 5-field cron expression into CrontabSchedule fields."""
        parts = cron_expr.split()
        if len(parts) != CRON_FIELD_COUNT:
            raise CommandError(f"Invalid cron expression: {cron_expr}")
        return {
            "minute": parts[0],
            "hour": parts[1],
            "day_of_month": parts[2],
            "month_of_year": parts[3],
            "day_of_week": parts[4],
        }
