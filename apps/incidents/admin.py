"""Admin configuration for incidents models."""

from django.contrib import admin
from django.utils.html import format_html_join

from apps.incidents.models import Incident
from config.admin import badge


@admin.register(Incident)
class IncidentAdmin(admin.ModelAdmin):
    """
    Admin for Incident model.

    Incidents change only through the correlator, so everything is read-only.
    """

    list_display = [
        "incident_key",
        "status_badge",
        "severity_badge",
        "source",
        "event_count",
        "reopen_count",
        "first_seen",
        "last_seen",
    ]
    list_filter = ["status", "severity", "source"]
    search_fields = ["incident_key", "source"]
    date_hierarchy = "last_seen"
    readonly_fields = [
        "incident_key",
        "source",
        "status",
        "severity",
        "last_event_type",
        "first_seen",
        "last_seen",
        "reopen_count",
        "resolved_at",
        "created_at",
        "updated_at",
        "event_list",
    ]
    exclude = ["event_ids"]

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.display(description="Status")
    def status_badge(self, obj):
        colors = {
            "open": "#17a2b8",
            "firing": "#dc3545",
            "resolved": "#28a745",
        }
        return badge(obj.status, colors.get(obj.status, "#6c757d"))

    @admin.display(description="Severity")
    def severity_badge(self, obj):
        colors = {
            "critical": "#dc3545",
            "warning": "#ffc107",
            "info": "#17a2b8",
        }
        return badge(obj.severity, colors.get(obj.severity, "#6c757d"))

    @admin.display(description="Events")
    def event_list(self, obj):
        return format_html_join(
            "\n",
            '<div><a href="/admin/events/storedevent/?event_id={}">{}</a></div>',
            ((event_id, event_id) for event_id in obj.event_ids or []),
        )
