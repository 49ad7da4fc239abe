"""
URL configuration for the events app.
"""

from django.urls import path

from apps.events.views import EventWebhookView

app_name = "events"

urlpatterns = [
    path("webhook/<str:adapter_id>/", EventWebhookView.as_view(), name="webhook"),
]
