"""
Read-only JSON views over incidents.
"""

from django.http import JsonResponse
from django.views import View

from apps.incidents.services import IncidentQueryService

DEFAULT_LIMIT = 100
MAX_LIMIT = 1000


class JSONResponseMixin:
    """Mixin for JSON responses."""

    def json_response(self, data, status: int = 200, safe: bool = True) -> JsonResponse:
        return JsonResponse(data, status=status, safe=safe)

    def error_response(self, message: str, status: int = 400) -> JsonResponse:
        return JsonResponse({"error": message}, status=status)


class IncidentListView(JSONResponseMixin, View):
    """
    List incidents, optionally filtered by status.

    GET /incidents/
    GET /incidents/?status=firing&limit=50
    """

    def get(self, request):
        status = request.GET.get("status")
        try:
            limit = min(int(request.GET.get("limit", DEFAULT_LIMIT)), MAX_LIMIT)
        except ValueError:
            return self.error_response("limit must be an integer")
        if limit < 1:
            return self.error_response("limit must be positive")

        if status:
            try:
                incidents = IncidentQueryService.by_status(status)
            except ValueError as e:
                return self.error_response(str(e))
        else:
            incidents = IncidentQueryService.active()

        items = [incident.to_dict() for incident in incidents[:limit]]
        return self.json_response({"count": len(items), "incidents": items})


class IncidentDetailView(JSONResponseMixin, View):
    """
    Fetch a single incident with its ordered contributing event IDs.

    GET /incidents/<incident_key>/
    """

    def get(self, request, incident_key: str):
        incident = IncidentQueryService.get(incident_key)
        if incident is None:
            return self.error_response(f"Incident not found: {incident_key}", status=404)
        return self.json_response(incident.to_dict())
