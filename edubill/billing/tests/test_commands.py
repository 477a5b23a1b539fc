from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from edubill.billing.constants import SubscriptionStatus
from edubill.billing.models import Plan
from edubill.billing.tasks import process_subscription_renewals
from edubill.billing.tasks import process_trial_expirations
from edubill.billing.tests.factories import SubscriptionFactory


def run(*args) -> str:
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


@pytest.mark.django_db
class TestSeedPlans:
    def test_creates_the_three_plans(self):
        output = run("seed_plans")

        assert list(Plan.objects.values_list("code", flat=True)) == ["starter", "professional", "enterprise"]
        assert "Created: Starter" in output
        assert "Enterprise: 199.99 USD/mo, unlimited school(s), 30d trial" in output

    def test_existing_plans_are_left_alone_without_force(self, plans):
        Plan.objects.filter(code="starter").update(name="Legacy Starter")

        output = run("seed_plans")

        assert "Exists: Legacy Starter" in output
        assert Plan.objects.get(code="starter").name == "Legacy Starter"

    def test_force_updates_unlocked_plans(self, plans):
        Plan.objects.filter(code="starter").update(price=1999)

        output = run("seed_plans", "--force")

        assert "Updated: Starter" in output
        assert Plan.objects.get(code="starter").price == 2999

    def test_force_skips_plans_in_use(self, plans):
        Plan.objects.filter(code="professional").update(price=6999)
        SubscriptionFactory(plan=Plan.objects.get(code="professional"))

        output = run("seed_plans", "--force")

        assert "Skipped: Professional" in output
        assert Plan.objects.get(code="professional").price == 6999


@pytest.fixture
def due(plans):
    now = timezone.now()
    return SubscriptionFactory(
        plan=plans["starter"],
        current_period_start=now - timedelta(days=30),
        current_period_end=now + timedelta(hours=2),
    )


@pytest.fixture
def ended_trial(plans):
    return SubscriptionFactory(
        plan=plans["starter"],
        status=SubscriptionStatus.TRIAL,
        trial_end=timezone.now() - timedelta(hours=1),
    )


@pytest.mark.django_db
class TestProcessRenewalsCommand:
    def test_dry_run_changes_nothing(self, due, ended_trial):
        old_end = due.current_period_end

        output = run("process_renewals", "--dry-run")

        assert "Due for renewal: 1" in output
        assert "Ended trials: 1" in output
        due.refresh_from_db()
        assert due.current_period_end == old_end

    def test_runs_renewals_and_trials(self, due, ended_trial):
        output = run("process_renewals", "--trials")

        assert "process-subscription-renewals: processed 1, succeeded 1" in output
        assert "process-trial-expirations: processed 1, succeeded 1" in output
        ended_trial.refresh_from_db()
        assert ended_trial.status == SubscriptionStatus.ACTIVE


@pytest.mark.django_db
class TestBillingTasks:
    def test_renewal_task_returns_the_batch_counters(self, due):
        result = process_subscription_renewals.delay().get()

        assert result["task"] == "process-subscription-renewals"
        assert result["status"] == "completed"
        assert result["succeeded"] == 1

    def test_trial_task(self, ended_trial):
        result = process_trial_expirations.delay().get()

        assert result["succeeded"] == 1
