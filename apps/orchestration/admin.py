"""Admin configuration for orchestration models."""

from django.contrib import admin
from django_object_actions import DjangoObjectActions
from django_object_actions import action as object_action

from apps.orchestration.coordinator import RunCoordinator
from apps.orchestration.models import AdapterSlot
from config.admin import badge


@admin.register(AdapterSlot)
class AdapterSlotAdmin(DjangoObjectActions, admin.ModelAdmin):
    """Admin for AdapterSlot model."""

    list_display = [
        "adapter_id",
        "running",
        "outcome_badge",
        "last_error_kind",
        "last_events_emitted",
        "consecutive_failures",
        "total_runs",
        "last_finished_at",
    ]
    list_filter = ["last_outcome", "last_error_kind"]
    search_fields = ["adapter_id", "last_error"]
    readonly_fields = [
        "adapter_id",
        "lease_token",
        "acquired_at",
        "expires_at",
        "last_outcome",
        "last_error",
        "last_error_kind",
        "last_started_at",
        "last_finished_at",
        "last_events_emitted",
        "total_runs",
        "consecutive_failures",
        "updated_at",
    ]
    change_actions = ["release_slot"]

    def has_add_permission(self, request, obj=None):
        return False

    @admin.display(description="Running", boolean=True)
    def running(self, obj):
        return obj.is_leased

    @admin.display(description="Last Outcome")
    def outcome_badge(self, obj):
        colors = {
            "success": "#28a745",
            "partial": "#ffc107",
            "failed": "#dc3545",
        }
        return badge(obj.last_outcome, colors.get(obj.last_outcome, "#6c757d"))

    @object_action(label="Release Slot", description="Drop the current lease for this adapter")
    def release_slot(self, request, obj):
        if RunCoordinator().release(obj.adapter_id):
            self.message_user(request, f"Lease for '{obj.adapter_id}' released.")
        else:
            self.message_user(
                request,
                f"'{obj.adapter_id}' has no active lease.",
                level="warning",
            )
