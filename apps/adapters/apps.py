"""Django app configuration for the adapters app."""

from django.apps import AppConfig


class AdaptersConfig(AppConfig):
    """Configuration for the Signal Adapters app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.adapters"
    verbose_name = "Signal Adapters"
