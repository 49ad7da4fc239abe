"""
Django settings for the signal correlator project.

Every tunable is read from the environment (after config.env.load_env()
has loaded .env / .env.dev) with a default suitable for local development.
"""

import json
import os
from pathlib import Path

from config.env import load_env

BASE_DIR = Path(__file__).resolve().parent.parent

load_env(BASE_DIR)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.environ.get(name, default).split(",") if item.strip()]


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "django-insecure-dev-only-change-me")

DEBUG = _env_bool("DJANGO_DEBUG", True)

ALLOWED_HOSTS = _env_list("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")


# Application definition

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_object_actions",
    "apps.events",
    "apps.adapters",
    "apps.incidents",
    "apps.orchestration",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

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

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DJANGO_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"


# Logging

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.environ.get("DJANGO_LOG_LEVEL", "INFO").upper(),
            "propagate": False,
        },
    },
}


# Signal ingestion

SIGNALS_SPEC_VERSION = "1.0"
SIGNALS_CLOCK_SKEW_SECONDS = int(os.environ.get("SIGNALS_CLOCK_SKEW_SECONDS", "120"))
SIGNALS_DEFAULT_SCOPE = os.environ.get("SIGNALS_DEFAULT_SCOPE", "prod")
SIGNALS_LEASE_SWEEP_SECONDS = int(os.environ.get("SIGNALS_LEASE_SWEEP_SECONDS", "60"))
SIGNALS_WEBHOOK_ASYNC = _env_bool("SIGNALS_WEBHOOK_ASYNC", False)

# Run-health reporting: "logging" or "statsd"
SIGNALS_METRICS_BACKEND = os.environ.get("SIGNALS_METRICS_BACKEND", "logging")
STATSD_HOST = os.environ.get("STATSD_HOST", "localhost")
STATSD_PORT = int(os.environ.get("STATSD_PORT", "8125"))
STATSD_PREFIX = os.environ.get("STATSD_PREFIX", "signals")


def _default_adapters() -> dict:
    adapters = {}
    if os.environ.get("ALERTMANAGER_URL"):
        adapters["alertmanager"] = {
            "type": "alerting",
            "base_url": os.environ["ALERTMANAGER_URL"],
            "api_token": os.environ.get("ALERTMANAGER_TOKEN", ""),
        }
    models = _env_list("MODEL_HEALTH_MODELS")
    if models:
        adapters["model-health"] = {
            "type": "model_health",
            "models": models,
            "base_url": os.environ.get("MODEL_HEALTH_BASE_URL") or None,
            "api_key": os.environ.get("MODEL_HEALTH_API_KEY") or None,
        }
    if _env_bool("SIGNALS_HOST_ADAPTER", True):
        adapters["host"] = {
            "type": "host",
            "disk_paths": _env_list("SIGNALS_HOST_DISK_PATHS", "/"),
        }
    return adapters


# adapter_id -> {"type": <variant>, "interval_seconds", "timeout_seconds", "scope",
# "enabled", ...variant options}. SIGNAL_ADAPTERS_JSON replaces the env-derived default.
SIGNAL_ADAPTERS = (
    json.loads(os.environ["SIGNAL_ADAPTERS_JSON"])
    if os.environ.get("SIGNAL_ADAPTERS_JSON")
    else _default_adapters()
)


# Celery

CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
CELERY_TASK_ALWAYS_EAGER = _env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
