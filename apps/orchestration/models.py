"""
Models for adapter run coordination.

One AdapterSlot row per adapter holds the current lease (if any) and the
outcome of the last finished run for health reporting.
"""

from django.db import models
from django.utils import timezone


class RunOutcome(models.TextChoices):
    """Outcome of a single adapter run."""

    SUCCESS = "success", "Success"
    PARTIAL = "partial", "Partial"
    FAILED = "failed", "Failed"


class AdapterSlot(models.Model):
    """
    Mutual-exclusion slot for one adapter.

    A non-empty ``lease_token`` means a run is in flight until ``expires_at``.
    """

    adapter_id = models.CharField(max_length=100, unique=True)

    # Current lease
    lease_token = models.CharField(max_length=64, blank=True, default="")
    acquired_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    # Last finished run
    last_outcome = models.CharField(
        max_length=20,
        choices=RunOutcome.choices,
        blank=True,
        default="",
    )
    last_error = models.TextField(blank=True, default="")
    last_error_kind = models.CharField(max_length=30, blank=True, default="")
    last_started_at = models.DateTimeField(null=True, blank=True)
    last_finished_at = models.DateTimeField(null=True, blank=True)
    last_events_emitted = models.PositiveIntegerField(default=0)

    # Counters
    total_runs = models.PositiveIntegerField(default=0)
    consecutive_failures = models.PositiveIntegerField(default=0)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["adapter_id"]

    def __str__(self):
        return f"{self.adapter_id} ({'running' if self.is_leased else 'idle'})"

    @property
    def is_leased(self) -> bool:
        return bool(self.lease_token)

    def lease_expired(self, now=None) -> bool:
        if not self.is_leased or self.expires_at is None:
            return False
        return (now or timezone.now()) >= self.expires_at

    def clear_lease(self) -> None:
        self.lease_token = ""
        self.acquired_at = None
        self.expires_at = None
