"""
URL configuration for the signal correlator project.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("events/", include("apps.events.urls")),
    path("incidents/", include("apps.incidents.urls")),
]
