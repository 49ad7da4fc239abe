"""Admin configuration for events models."""

from django.contrib import admin

from apps.events.models import RejectedRecord, StoredEvent
from config.admin import prettify_json


class ReadOnlyAdmin(admin.ModelAdmin):
    """The event store is append-only; the admin never writes to it."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(StoredEvent)
class StoredEventAdmin(ReadOnlyAdmin):
    """Admin for StoredEvent model."""

    list_display = [
        "event_id",
        "event_type",
        "source",
        "incident_key",
        "occurred_at",
        "ingested_at",
    ]
    list_filter = ["event_type", "source", "producer"]
    search_fields = ["event_id", "incident_key", "source"]
    date_hierarchy = "occurred_at"
    readonly_fields = [
        "event_id",
        "source",
        "event_type",
        "incident_key",
        "occurred_at",
        "ingested_at",
        "spec_version",
        "pretty_payload",
        "payload_hash",
        "producer",
        "producer_version",
    ]
    exclude = ["payload"]

    @admin.display(description="Payload")
    def pretty_payload(self, obj):
        return prettify_json(obj.payload)


@admin.register(RejectedRecord)
class RejectedRecordAdmin(ReadOnlyAdmin):
    """Admin for RejectedRecord model."""

    list_display = ["adapter_id", "event_type", "reason_short", "created_at"]
    list_filter = ["adapter_id", "event_type"]
    search_fields = ["adapter_id", "reason"]
    date_hierarchy = "created_at"
    readonly_fields = ["adapter_id", "event_type", "reason", "pretty_raw_payload", "created_at"]
    exclude = ["raw_payload"]

    @admin.display(description="Reason")
    def reason_short(self, obj):
        return obj.reason[:80] + ("..." if len(obj.reason) > 80 else "")

    @admin.display(description="Raw Payload")
    def pretty_raw_payload(self, obj):
        return prettify_json(obj.raw_payload)
