"""
With these settings, tests run faster.
"""

import os

# Set test-safe gateway credentials before base settings reads them.
# These look like real test keys but are dummy values for testing.
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy_test_key_for_testing")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_dummy_test_secret")
os.environ.setdefault("PAYTABS_ENABLED", "true")
os.environ.setdefault("PAYTABS_SERVER_KEY", "paytabs_dummy_server_key")
os.environ.setdefault("PAYTABS_PROFILE_ID", "12345")
os.environ.setdefault("PAYMOB_ENABLED", "true")
os.environ.setdefault("PAYMOB_API_KEY", "paymob_dummy_api_key")
os.environ.setdefault("PAYMOB_INTEGRATION_ID", "67890")
os.environ.setdefault("PAYMOB_HMAC_SECRET", "paymob_dummy_hmac_secret")

from .base import *  # noqa: F403
from .base import DATABASES
from .base import REST_FRAMEWORK
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="INgnwuvH37jf6eck2HmmKz8ISsZbDCj8v5YbhI9PXxzOCuBTS7Ns4Y4gZGGFTfDQ",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#test-runner
TEST_RUNNER = "django.test.runner.DiscoverRunner"
DATABASES["default"]["CONN_MAX_AGE"] = 0  # type: ignore[name-defined]
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# PASSWORDS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#password-hashers
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# EMAIL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#email-backend
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# CELERY
# ------------------------------------------------------------------------------
CELERY_TASK_ALWAYS_EAGER = True
CELERY_BROKER_URL = "memory://"

# Disable DRF throttling in tests to prevent rate limit failures during test runs
REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []  # type: ignore[name-defined]
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}  # type: ignore[name-defined]

# BILLING
# ------------------------------------------------------------------------------
# Never reach a live rates provider from the test suite.
BILLING_CURRENCY_CONVERSION["rates_url"] = ""  # noqa: F405
