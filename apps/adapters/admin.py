"""Admin configuration for adapters models."""

from django.contrib import admin

from apps.adapters.models import SourceCursor
from config.admin import prettify_json


@admin.register(SourceCursor)
class SourceCursorAdmin(admin.ModelAdmin):
    """Admin for SourceCursor model."""

    list_display = ["adapter_id", "updated_at"]
    search_fields = ["adapter_id"]
    readonly_fields = ["adapter_id", "pretty_value", "updated_at"]
    exclude = ["value"]

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    @admin.display(description="Cursor")
    def pretty_value(self, obj):
        return prettify_json(obj.value)
