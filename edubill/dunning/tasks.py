"""
Celery task for the dunning tick.

Default schedule: hourly at :00.
"""

import logging

from celery import shared_task

from edubill.core.scheduler import RETRYABLE_EXCEPTIONS
from edubill.core.scheduler import run_scheduled_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name="edubill.process_dunning_campaigns",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def process_dunning_campaigns(self) -> dict:
    """
    Execute the due step of every active dunning campaign.

    A failed step is rolled back for its campaign only and retried on the
    next tick, so it never triggers a task retry by itself.
    """
    logger.info("Starting dunning tick (task_id=%s)", self.request.id)
    return run_scheduled_task("process-dunning-campaigns")
