"""
Synchronous tick runner for the scheduled billing jobs.

Celery tasks and management commands both call ``run_scheduled_task`` so a
tick behaves the same whichever way it was triggered. Tests call it
directly with a fixed ``now``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from django.db import OperationalError
from django.utils import timezone
from django.utils.module_loading import import_string

from edubill.core.exceptions import NotFoundError
from edubill.core.tasks.registry import get_task_by_id

logger = logging.getLogger(__name__)

# Transient failures worth retrying. Used by autoretry_for on the Celery tasks.
RETRYABLE_EXCEPTIONS = (
    OperationalError,  # Database connection issues
    ConnectionError,  # Network issues
    TimeoutError,
)


def run_scheduled_task(task_id: str, now: datetime | None = None) -> dict:
    """
    Run one tick of the registered task ``task_id``.

    Returns the batch counters plus the task id and timestamp. Raises
    NotFoundError for an unknown id. Exceptions from the tick itself
    propagate so Celery's ``autoretry_for`` can see them.
    """
    task = get_task_by_id(task_id)
    if task is None:
        raise NotFoundError(f"Unknown scheduled task '{task_id}'", code="unknown_task")

    now = now or timezone.now()
    logger.info("Starting scheduled task %s", task.id)

    service = import_string(task.service)()
    result = getattr(service, task.method)(now=now)

    logger.info(
        "Scheduled task %s completed: %s processed, %s failed",
        task.id,
        result.processed,
        result.failed,
    )
    return {
        "task": task.id,
        "status": "completed",
        "timestamp": now.isoformat(),
        **result.as_dict(),
    }
