"""
Incident model, owned exclusively by the incident correlator.
"""

from typing import Any

from django.db import models


class IncidentStatus(models.TextChoices):
    """Status of an incident (state machine)."""

    OPEN = "open", "Open"
    FIRING = "firing", "Firing"
    RESOLVED = "resolved", "Resolved"


class Incident(models.Model):
    """
    Stateful aggregation of SignalEvents sharing an incident_key.

    Timestamps come from the constituent events' ``occurred_at``; ``event_ids``
    is append-only and kept in correlation (arrival) order.
    """

    # Identification
    incident_key = models.CharField(
        max_length=512,
        unique=True,
        help_text="Correlation key shared by all contributing events.",
    )
    source = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Source of the first event that created this incident.",
    )

    # Status tracking
    status = models.CharField(
        max_length=20,
        choices=IncidentStatus.choices,
        default=IncidentStatus.OPEN,
        db_index=True,
    )
    severity = models.CharField(
        max_length=20,
        blank=True,
        default="",
        db_index=True,
        help_text="Severity of the most recent severity-bearing event.",
    )
    last_event_type = models.CharField(max_length=100, blank=True, default="")

    # Event-time bookkeeping
    first_seen = models.DateTimeField(
        help_text="Earliest occurred_at across contributing events.",
    )
    last_seen = models.DateTimeField(
        help_text="Latest occurred_at (frozen while resolved).",
    )

    # History
    event_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="Contributing event IDs in correlation order.",
    )
    reopen_count = models.PositiveIntegerField(
        default=0,
        help_text="Times this incident was reopened after resolution.",
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-last_seen"]
        indexes = [
            models.Index(fields=["status", "-last_seen"]),
            models.Index(fields=["source", "status"]),
        ]

    def __str__(self):
        return f"[{self.status}] {self.incident_key}"

    @property
    def is_active(self) -> bool:
        return self.status != IncidentStatus.RESOLVED

    @property
    def event_count(self) -> int:
        return len(self.event_ids or [])

    def to_dict(self) -> dict[str, Any]:
        return {
            "incident_key": self.incident_key,
            "source": self.source,
            "status": self.status,
            "severity": self.severity,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "event_ids": list(self.event_ids or []),
            "reopen_count": self.reopen_count,
            "last_event_type": self.last_event_type,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }
