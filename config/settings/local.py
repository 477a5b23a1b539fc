from .base import *  # noqa: F403
from .base import PAYMENT_GATEWAYS
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#debug
DEBUG = True
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="Jc2xq1pOH8sYlqWmTUm6xY1D3mCmbxR5RbQyqRz7oU3zSCAsQ9wqYVvEh0gkGkXN",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "0.0.0.0", "127.0.0.1"]  # noqa: S104

# EMAIL
# ------------------------------------------------------------------------------
# Console backend prints emails to terminal (no mail server needed)
EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

# CELERY
# ------------------------------------------------------------------------------
# Run ticks inline unless a broker is explicitly configured.
CELERY_TASK_ALWAYS_EAGER = env.bool("CELERY_TASK_ALWAYS_EAGER", default=True)

# PAYMENT GATEWAYS
# ------------------------------------------------------------------------------
# Stripe test mode keys are enough to exercise the full flow locally.
PAYMENT_GATEWAYS["stripe"]["credentials"]["secret_key"] = env(
    "STRIPE_TEST_SECRET_KEY",
    default=PAYMENT_GATEWAYS["stripe"]["credentials"]["secret_key"],
)

# Logging
# ------------------------------------------------------------------------------
LOGGING["root"]["level"] = "DEBUG"  # noqa: F405
LOGGING["loggers"]["edubill"] = {  # noqa: F405
    "handlers": ["console"],
    "level": "DEBUG",
    "propagate": False,
}
