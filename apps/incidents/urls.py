"""
URL configuration for the incidents app.
"""

from django.urls import path

from apps.incidents.views import IncidentDetailView, IncidentListView

app_name = "incidents"

urlpatterns = [
    path("", IncidentListView.as_view(), name="list"),
    # Incident keys contain ':' and may contain '/'
    path("<path:incident_key>/", IncidentDetailView.as_view(), name="detail"),
]
