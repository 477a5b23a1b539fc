"""
Scheduled Task Registry - single source of truth for the billing ticks.

Each periodic job is defined once here with everything needed to run it:

    - Task identifier and human-readable name
    - Celery task name (what Beat sends to the worker)
    - Cron schedule
    - The service method that performs one tick

Usage:

    from edubill.core.tasks.registry import SCHEDULED_TASKS, get_task_by_id

    for task in SCHEDULED_TASKS:
        print(f"{task.name}: {task.schedule_cron}")

The registry is consumed by:
    - ``manage.py sync_schedules`` (writes django-celery-beat PeriodicTask rows)
    - ``edubill.core.scheduler.run_scheduled_task`` (runs one tick)
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ScheduledTaskDefinition:
    """
    Definition of a scheduled task.

    ``service`` is the dotted path of a class with a no-argument
    constructor; ``method`` is called on an instance with ``now=``.
    """

    # Identity
    id: str  # Unique identifier, e.g., "process-dunning-campaigns"
    name: str  # Human-readable name for display

    # Celery configuration
    celery_task: str  # Registered task name, e.g., "edubill.process_dunning_campaigns"

    # What one tick runs
    service: str
    method: str

    schedule_cron: str  # Cron expression, e.g., "0 * * * *"

    # Metadata
    description: str = ""
    enabled: bool = True


# =============================================================================
# SCHEDULED TASK DEFINITIONS
# =============================================================================

SCHEDULED_TASKS: tuple[ScheduledTaskDefinition, ...] = (
    ScheduledTaskDefinition(
        id="process-subscription-renewals",
        name="Process Subscription Renewals",
        celery_task="edubill.process_subscription_renewals",
        service="edubill.billing.subscriptions.SubscriptionService",
        method="process_renewals",
        schedule_cron="5 * * * *",  # Hourly at :05
        description="Advance due subscriptions one cycle and finalize period-end cancellations",
    ),
    ScheduledTaskDefinition(
        id="process-trial-expirations",
        name="Process Trial Expirations",
        celery_task="edubill.process_trial_expirations",
        service="edubill.billing.subscriptions.SubscriptionService",
        method="process_trial_expirations",
        schedule_cron="15 * * * *",  # Hourly at :15
        description="Convert ended trials to active subscriptions",
    ),
    ScheduledTaskDefinition(
        id="process-dunning-campaigns",
        name="Process Dunning Campaigns",
        celery_task="edubill.process_dunning_campaigns",
        service="edubill.dunning.services.DunningService",
        method="process_dunning_campaigns",
        schedule_cron="0 * * * *",  # Hourly at :00
        description="Execute the due step of every active dunning campaign",
    ),
)


def get_task_by_id(task_id: str) -> ScheduledTaskDefinition | None:
    """
    Get a task definition by its ID.

    Returns None if no task has that ID.
    """
    for task in SCHEDULED_TASKS:
        if task.id == task_id:
            return task
    return None


def get_enabled_tasks() -> list[ScheduledTaskDefinition]:
    """Get all enabled task definitions."""
    return [task for task in SCHEDULED_TASKS if task.enabled]
