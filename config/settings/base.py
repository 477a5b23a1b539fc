# ruff: noqa: ERA001, E501
"""Base settings to build other settings files upon."""

from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve(strict=True).parent.parent.parent
# edubill/
APPS_DIR = BASE_DIR / "edubill"
env = environ.Env()

READ_DOT_ENV_FILE = env.bool("DJANGO_READ_DOT_ENV_FILE", default=False)
if READ_DOT_ENV_FILE:
    # OS environment variables take precedence over variables from .env
    env.read_env(str(BASE_DIR / ".env"))

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#debug
DEBUG = env.bool("DJANGO_DEBUG", False)
# https://docs.djangoproject.com/en/dev/ref/settings/#time-zone
TIME_ZONE = "UTC"
# https://docs.djangoproject.com/en/dev/ref/settings/#language-code
LANGUAGE_CODE = "en-us"
# https://docs.djangoproject.com/en/dev/ref/settings/#site-id
SITE_ID = 1
# https://docs.djangoproject.com/en/dev/ref/settings/#use-i18n
USE_I18N = True
# https://docs.djangoproject.com/en/dev/ref/settings/#use-tz
USE_TZ = True

# DATABASES
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#databases
DATABASES = {
    "default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}
DATABASES["default"]["ATOMIC_REQUESTS"] = True
# https://docs.djangoproject.com/en/stable/ref/settings/#std:setting-DEFAULT_AUTO_FIELD
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# URLS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#root-urlconf
ROOT_URLCONF = "config.urls"
# https://docs.djangoproject.com/en/dev/ref/settings/#wsgi-application
WSGI_APPLICATION = "config.wsgi.application"

# APPS
# ------------------------------------------------------------------------------
DJANGO_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.sites",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django.contrib.admin",
]
THIRD_PARTY_APPS = [
    "rest_framework",
    "rest_framework.authtoken",
    "drf_spectacular",
    "django_celery_beat",
]

LOCAL_APPS = [
    "edubill.core",
    "edubill.tenants",
    "edubill.gateways",
    "edubill.billing",
    "edubill.dunning",
    "edubill.notifications",
]
# https://docs.djangoproject.com/en/dev/ref/settings/#installed-apps
INSTALLED_APPS = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

# MIDDLEWARE
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#middleware
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# STATIC
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#static-root
STATIC_ROOT = str(BASE_DIR / "staticfiles")
# https://docs.djangoproject.com/en/dev/ref/settings/#static-url
STATIC_URL = "/static/"

# TEMPLATES
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#templates
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [str(APPS_DIR / "templates")],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.template.context_processors.i18n",
                "django.template.context_processors.tz",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# SECURITY
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#session-cookie-httponly
SESSION_COOKIE_HTTPONLY = True
# https://docs.djangoproject.com/en/dev/ref/settings/#csrf-cookie-httponly
CSRF_COOKIE_HTTPONLY = True
# https://docs.djangoproject.com/en/dev/ref/settings/#x-frame-options
X_FRAME_OPTIONS = "DENY"

# EMAIL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#email-backend
EMAIL_BACKEND = env(
    "DJANGO_EMAIL_BACKEND",
    default="django.core.mail.backends.smtp.EmailBackend",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#email-timeout
EMAIL_TIMEOUT = 5
DEFAULT_FROM_EMAIL = env(
    "DJANGO_DEFAULT_FROM_EMAIL",
    default="Edubill <billing@edubill.local>",
)

# ADMIN
# ------------------------------------------------------------------------------
# Django Admin URL.
ADMIN_URL = env("DJANGO_ADMIN_URL", default="admin/")

# LOGGING
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#logging
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(levelname)s %(asctime)s %(module)s %(process)d %(thread)d %(message)s",
        },
    },
    "handlers": {
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {"level": "INFO", "handlers": ["console"]},
    "loggers": {
        "edubill": {
            "level": env("EDUBILL_LOG_LEVEL", default="INFO"),
            "handlers": ["console"],
            "propagate": False,
        },
    },
}

# CACHES
# ------------------------------------------------------------------------------
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "edubill",
    },
}

# CELERY
# ------------------------------------------------------------------------------
# https://docs.celeryq.dev/en/stable/userguide/configuration.html
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://localhost:6379/0")
CELERY_RESULT_BACKEND = None
CELERY_TASK_IGNORE_RESULT = True
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = env.bool("CELERY_TASK_ALWAYS_EAGER", default=False)
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"

# django-rest-framework
# -------------------------------------------------------------------------------
# django-rest-framework - https://www.django-rest-framework.org/api-guide/settings/
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "edubill.core.api.authentication.BearerAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": ("rest_framework.permissions.IsAuthenticated",),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "EXCEPTION_HANDLER": "edubill.core.exceptions.billing_exception_handler",
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.UserRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "user": "600/min",
    },
}

# By Default swagger ui is available only to admin user(s). You can change permission classes to change that
# See more configuration options at https://drf-spectacular.readthedocs.io/en/latest/settings.html#settings
SPECTACULAR_SETTINGS = {
    "TITLE": "Edubill API",
    "DESCRIPTION": "Subscription billing, payments and dunning",
    "VERSION": "1.0.0",
    "SERVE_PERMISSIONS": ["rest_framework.permissions.IsAdminUser"],
    "SCHEMA_PATH_PREFIX": "/billing/",
}

# PAYMENT GATEWAYS
# ------------------------------------------------------------------------------
# One entry per gateway. Each entry is validated by
# edubill.gateways.config.GatewayConfig when the registry is built.
PAYMENT_GATEWAYS = {
    "stripe": {
        "enabled": env.bool("STRIPE_ENABLED", default=True),
        "priority": env.int("STRIPE_PRIORITY", default=1),
        "fallback_gateway": env("STRIPE_FALLBACK_GATEWAY", default="paytabs"),
        "credentials": {
            "secret_key": env("STRIPE_SECRET_KEY", default=""),
            "webhook_secret": env("STRIPE_WEBHOOK_SECRET", default=""),
        },
    },
    "paytabs": {
        "enabled": env.bool("PAYTABS_ENABLED", default=False),
        "priority": env.int("PAYTABS_PRIORITY", default=2),
        "fallback_gateway": env("PAYTABS_FALLBACK_GATEWAY", default="stripe"),
        "credentials": {
            "server_key": env("PAYTABS_SERVER_KEY", default=""),
            "profile_id": env("PAYTABS_PROFILE_ID", default=""),
            "base_url": env("PAYTABS_BASE_URL", default="https://secure.paytabs.sa"),
        },
    },
    "paymob": {
        "enabled": env.bool("PAYMOB_ENABLED", default=False),
        "priority": env.int("PAYMOB_PRIORITY", default=3),
        "fallback_gateway": env("PAYMOB_FALLBACK_GATEWAY", default="stripe"),
        "credentials": {
            "api_key": env("PAYMOB_API_KEY", default=""),
            "integration_id": env("PAYMOB_INTEGRATION_ID", default=""),
            "hmac_secret": env("PAYMOB_HMAC_SECRET", default=""),
            "base_url": env("PAYMOB_BASE_URL", default="https://accept.paymob.com/api"),
        },
    },
}

# BILLING
# ------------------------------------------------------------------------------
BILLING_SITE_URL = env("BILLING_SITE_URL", default="http://localhost:8000")
BILLING_DEFAULT_TRIAL_DAYS = env.int("BILLING_DEFAULT_TRIAL_DAYS", default=14)
# Subscriptions whose period ends within this window are renewed by the tick.
BILLING_RENEWAL_LOOKAHEAD_HOURS = env.int("BILLING_RENEWAL_LOOKAHEAD_HOURS", default=24)
# Per-unit overage charges, in minor units of the plan currency.
BILLING_OVERAGE_RATES = {
    "schools": 1000,
    "users": 200,
    "students": 25,
    "api_calls": 1,
    "storage_gb": 500,
}
BILLING_CURRENCY_CONVERSION = {
    "fee_percentage": env.float("CURRENCY_CONVERSION_FEE", default=0.5),
    "minimum_fee": env.int("CURRENCY_MIN_FEE", default=10),
    "maximum_fee": env.int("CURRENCY_MAX_FEE", default=1000),
    "cache_seconds": env.int("CURRENCY_CACHE_SECONDS", default=3600),
    "rates_url": env("CURRENCY_API_URL", default=""),
    "api_key": env("CURRENCY_API_KEY", default=""),
    "fallback_rates": {
        "USD/EUR": "0.85",
        "USD/GBP": "0.75",
        "USD/SAR": "3.75",
        "USD/AED": "3.67",
        "USD/EGP": "30.85",
        "EUR/USD": "1.18",
        "GBP/USD": "1.33",
        "SAR/USD": "0.27",
        "AED/USD": "0.27",
        "EGP/USD": "0.032",
    },
}
