"""
Celery application configuration for Edubill.

Tasks are defined with the @shared_task decorator so they also run under
CELERY_TASK_ALWAYS_EAGER in tests.

Components:
  - Worker: Processes background tasks (`celery -A config worker`)
  - Beat: Triggers the billing ticks (`celery -A config beat`)

Periodic tasks are stored by django-celery-beat. Their rows are written from
edubill.core.tasks.registry by `python manage.py sync_schedules`.

Usage:
    # Run worker
    celery -A config worker --loglevel=info

    # Run beat scheduler
    celery -A config beat --loglevel=info \\
        --scheduler django_celery_beat.schedulers:DatabaseScheduler
"""

import logging
import os

from celery import Celery

logger = logging.getLogger(__name__)

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.local")

app = Celery("edubill")

# - namespace='CELERY' means all celery-related configuration keys
#   should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()


@app.task(bind=True, ignore_result=True)
def debug_task(self):
    """Debug task for testing Celery connectivity."""
    logger.info("Debug task received: %r", self.request)
