"""Django app configuration for the events app."""

from django.apps import AppConfig


class EventsConfig(AppConfig):
    """Configuration for the Signal Events app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.events"
    verbose_name = "Signal Events"
