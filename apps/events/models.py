"""
Models for the append-only signal event store.
"""

from django.db import models

from apps.events.envelope import SignalEvent


class StoredEvent(models.Model):
    """
    A SignalEvent that has been appended by the ingestion sink.

    Rows are never updated after insert. The auto-incrementing primary key is
    the commit sequence: ordering by it replays events in the order the sink
    committed them.
    """

    # Identity
    event_id = models.CharField(
        max_length=128,
        unique=True,
        help_text="Deterministic event ID (dedup key).",
    )
    source = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Adapter/system that produced the event.",
    )
    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Dotted event type (e.g. 'alert.firing').",
    )
    incident_key = models.CharField(
        max_length=512,
        db_index=True,
        help_text="Adapter-derived correlation key.",
    )

    # Envelope
    occurred_at = models.DateTimeField(
        help_text="When the source system observed the condition.",
    )
    ingested_at = models.DateTimeField(
        help_text="When the sink first appended this event.",
    )
    spec_version = models.CharField(max_length=16)
    payload = models.JSONField(default=dict, blank=True)

    # Provenance
    payload_hash = models.CharField(
        max_length=64,
        help_text="SHA-256 of the canonical payload.",
    )
    producer = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Adapter variant that produced this event.",
    )
    producer_version = models.CharField(max_length=32, blank=True, default="")

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["source", "id"]),
            models.Index(fields=["incident_key", "id"]),
            models.Index(fields=["source", "event_type"]),
            models.Index(fields=["occurred_at"]),
        ]

    def __str__(self):
        return f"{self.event_type} {self.incident_key} ({self.event_id})"

    def to_signal_event(self) -> SignalEvent:
        return SignalEvent(
            id=self.event_id,
            source=self.source,
            type=self.event_type,
            occurred_at=self.occurred_at,
            payload=dict(self.payload or {}),
            incident_key=self.incident_key,
            ingested_at=self.ingested_at,
            spec_version=self.spec_version,
        )


class RejectedRecord(models.Model):
    """
    A raw source record that was dropped during normalization or validation.

    Kept for diagnosis only; rejected records never reach the correlator.
    """

    adapter_id = models.CharField(max_length=100, db_index=True)
    event_type = models.CharField(max_length=100, blank=True, default="")
    reason = models.TextField()
    raw_payload = models.JSONField(
        default=dict,
        blank=True,
        help_text="Original raw record from the source system.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["adapter_id", "-created_at"])]

    def __str__(self):
        return f"[{self.adapter_id}] {self.reason[:80]}"
