"""
Management command to seed the billing plans.

Creates or updates the three plans (Starter, Professional, Enterprise) with
their prices and limits. Limits of -1 mean unlimited.

Plans referenced by an open subscription cannot change price or limits, so
``--force`` reports those plans instead of failing the whole run.

Usage:
    python manage.py seed_plans              # Create missing plans
    python manage.py seed_plans --force      # Also update existing plans
"""

from django.core.management.base import BaseCommand

from edubill.billing.constants import UNLIMITED
from edubill.billing.constants import PlanCode
from edubill.billing.models import Plan
from edubill.core.exceptions import ConflictError
from edubill.gateways.currency import to_major_units

PLAN_CONFIG = {
    PlanCode.STARTER: {
        "name": "Starter",
        "description": "For a single school getting started with online billing.",
        "price": 2999,  # $29.99
        "currency": "USD",
        "features": [
            "1 school",
            "Up to 500 students",
            "Email support",
        ],
        "max_schools": 1,
        "max_users": 50,
        "max_students": 500,
        "max_api_calls": 10_000,
        "max_storage_gb": 5,
        "trial_days": 14,
        "display_order": 1,
    },
    PlanCode.PROFESSIONAL: {
        "name": "Professional",
        "description": "For growing groups of schools that need more capacity.",
        "price": 7999,  # $79.99
        "currency": "USD",
        "features": [
            "Up to 3 schools",
            "Up to 2,000 students",
            "Priority email support",
            "API access",
        ],
        "max_schools": 3,
        "max_users": 200,
        "max_students": 2_000,
        "max_api_calls": 50_000,
        "max_storage_gb": 25,
        "trial_days": 14,
        "display_order": 2,
    },
    PlanCode.ENTERPRISE: {
        "name": "Enterprise",
        "description": "For districts with no practical limits and dedicated support.",
        "price": 19999,  # $199.99
        "currency": "USD",
        "features": [
            "Unlimited schools",
            "Unlimited students",
            "Dedicated account manager",
            "API access",
        ],
        "max_schools": UNLIMITED,
        "max_users": UNLIMITED,
        "max_students": UNLIMITED,
        "max_api_calls": UNLIMITED,
        "max_storage_gb": UNLIMITED,
        "trial_days": 30,
        "display_order": 3,
    },
}


class Command(BaseCommand):
    help = "Seed billing plans"

    def add_arguments(self, parser):
        parser.add_argument(
            "--force",
            action="store_true",
            help="Update existing plans with the latest configuration",
        )

    def handle(self, *args, **options):
        self._seed_plans(force_update=options["force"])
        self._show_summary()

    def _seed_plans(self, force_update: bool):
        """Create or update Plan records."""
        self.stdout.write("\n" + "=" * 60)
        self.stdout.write("Seeding Plans")
        self.stdout.write("=" * 60)

        for plan_code, config in PLAN_CONFIG.items():
            plan, created = Plan.objects.get_or_create(code=plan_code, defaults=config)

            if created:
                self.stdout.write(self.style.SUCCESS(f"  Created: {plan.name}"))
            elif force_update:
                for field, value in config.items():
                    setattr(plan, field, value)
                try:
                    plan.save()
                except ConflictError as exc:
                    self.stdout.write(self.style.WARNING(f"  Skipped: {plan.name} ({exc.detail})"))
                    continue
                self.stdout.write(self.style.SUCCESS(f"  Updated: {plan.name}"))
            else:
                self.stdout.write(f"  Exists: {plan.name} (use --force to update)")

    def _show_summary(self):
        self.stdout.write("\n" + "=" * 60)
        self.stdout.write("Summary")
        self.stdout.write("=" * 60)

        for plan in Plan.objects.all():
            schools = "unlimited" if plan.max_schools == UNLIMITED else plan.max_schools
            price = to_major_units(plan.price, plan.currency)
            state = "" if plan.is_active else " (inactive)"
            self.stdout.write(
                f"  {plan.name}: {price} {plan.currency}/mo, {schools} school(s), "
                f"{plan.trial_days}d trial{state}",
            )

        self.stdout.write(self.style.SUCCESS("\nDone!"))
