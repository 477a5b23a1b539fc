"""
Celery tasks for the subscription batches.

Beat triggers these from the django-celery-beat schedule written by
``manage.py sync_schedules``. Each task runs one tick through
``run_scheduled_task``; per-row failures are counted in the result, only
infrastructure errors reach ``autoretry_for``.

Default schedules:
  process_subscription_renewals   - Hourly at :05
  process_trial_expirations       - Hourly at :15
"""

import logging

from celery import shared_task

from edubill.core.scheduler import RETRYABLE_EXCEPTIONS
from edubill.core.scheduler import run_scheduled_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name="edubill.process_subscription_renewals",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,  # Exponential backoff starting at 60s
    retry_backoff_max=600,  # Max 10 minutes between retries
    acks_late=True,
)
def process_subscription_renewals(self) -> dict:
    """Renew due subscriptions and finalize period-end cancellations."""
    logger.info("Starting subscription renewals (task_id=%s)", self.request.id)
    return run_scheduled_task("process-subscription-renewals")


@shared_task(
    bind=True,
    name="edubill.process_trial_expirations",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def process_trial_expirations(self) -> dict:
    """Convert ended trials to active subscriptions."""
    logger.info("Starting trial expirations (task_id=%s)", self.request.id)
    return run_scheduled_task("process-trial-expirations")
