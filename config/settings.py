"""Django settings for the Key2Pay gateway service.

Values come from environment variables so the same module serves local
development, CI and production.
"""

import os
from pathlib import Path

import sentry_sdk

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_list(name: str) -> list:
    return [item.strip() for item in os.environ.get(name, "").split(",") if item.strip()]


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-insecure-secret-key")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = env_list("DJANGO_ALLOWED_HOSTS") or ["localhost", "127.0.0.1", "testserver"]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "common",
    "orders",
    "payments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DATABASE_PATH", str(BASE_DIR / "db.sqlite3")),
        "ATOMIC_REQUESTS": False,
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"
STATIC_URL = "static/"

REST_FRAMEWORK = {
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "payments": os.environ.get("PAYMENTS_THROTTLE_RATE", "600/min"),
        "payments_write": os.environ.get("PAYMENTS_WRITE_THROTTLE_RATE", "120/min"),
    },
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Key2Pay Gateway API",
    "DESCRIPTION": "Payment initiation, webhook reconciliation and return-page endpoints.",
    "VERSION": "1.0.0",
}

SITE_NAME = os.environ.get("SITE_NAME", "Key2Pay Store")

# Key2Pay gateway settings shared by every payment method. Per-method
# overrides live in KEY2PAY_GATEWAYS, keyed by gateway id.
KEY2PAY = {
    "API_BASE_URL": os.environ.get("KEY2PAY_API_BASE_URL", "https://api.key2payment.com/"),
    "MERCHANT_ID": os.environ.get("KEY2PAY_MERCHANT_ID", ""),
    "PASSWORD": os.environ.get("KEY2PAY_PASSWORD", ""),
    "DISABLE_URL_FALLBACK": env_bool("KEY2PAY_DISABLE_URL_FALLBACK", True),
    "DEBUG": env_bool("KEY2PAY_DEBUG", False),
    "UNKNOWN_CODE_POLICY": os.environ.get("KEY2PAY_UNKNOWN_CODE_POLICY", "approve"),
    "WEBHOOK_IPS": env_list("KEY2PAY_WEBHOOK_IPS"),
    "SITE_URL": os.environ.get("KEY2PAY_SITE_URL", "http://localhost:8000"),
}

KEY2PAY_GATEWAYS = {
    "key2pay_credit": {"ENABLED": env_bool("KEY2PAY_CREDIT_ENABLED", True)},
    "key2pay_thai_debit": {"ENABLED": env_bool("KEY2PAY_THAI_DEBIT_ENABLED", False)},
    "key2pay_instapay": {"ENABLED": env_bool("KEY2PAY_INSTAPAY_ENABLED", False)},
}

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
    },
    "loggers": {
        "key2pay.payments": {"handlers": ["console"], "level": "DEBUG", "propagate": False},
        "key2pay.orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
}

SENTRY_DSN = os.environ.get("SENTRY_DSN", "")
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=os.environ.get("SENTRY_ENVIRONMENT", "production"),
        traces_sample_rate=float(os.environ.get("SENTRY_TRACES_SAMPLE_RATE", "0")),
        send_default_pii=False,
    )
