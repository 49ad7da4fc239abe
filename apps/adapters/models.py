"""
Models for adapter state that survives between runs.
"""

from django.db import models


class SourceCursor(models.Model):
    """
    Incremental-sync cursor for one adapter.

    Saved only after the run's events have been appended, so a failed run
    never advances it.
    """

    adapter_id = models.CharField(max_length=100, unique=True)
    value = models.JSONField(default=dict, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["adapter_id"]

    def __str__(self):
        return f"cursor:{self.adapter_id}"

    @classmethod
    def load(cls, adapter_id: str) -> dict:
        cursor = cls.objects.filter(adapter_id=adapter_id).first()
        return dict(cursor.value) if cursor else {}

    @classmethod
    def store(cls, adapter_id: str, value: dict) -> "SourceCursor":
        cursor, _ = cls.objects.update_or_create(
            adapter_id=adapter_id,
            defaults={"value": value},
        )
        return cursor
