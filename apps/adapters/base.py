"""Base adapter and data structures for signal sources.

Adapters fetch raw records from an external system and turn them into
SignalEvents. The coordinator and sink have no adapter-specific knowledge:
everything source-specific lives behind this interface.

Public API:
- RawRecord
- ProbeContext
- BaseSourceAdapter
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone

from apps.adapters.exceptions import ProbeTimeout
from apps.events.envelope import SignalEvent
from apps.events.ids import compute_event_id, time_bucket

if TYPE_CHECKING:
    from apps.events.sink import EventSink


@dataclass
class RawRecord:
    """A single unnormalized record as fetched from (or pushed by) a source.

    ``data`` must be JSON-serializable so it can be retained on rejection.
    """

    data: dict[str, Any]
    kind: str = ""


@dataclass
class ProbeContext:
    """
    Per-run context handed to ``probe()``.

    Carries the run deadline and a cancellation flag. Adapters call
    ``check()`` at every suspension point (before each request, per stream
    chunk) so a timed-out or cancelled run stops cooperatively.
    """

    adapter_id: str
    deadline: float
    cursor: dict[str, Any] = field(default_factory=dict)
    next_cursor: dict[str, Any] | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    started_at: datetime = field(default_factory=timezone.now)

    @classmethod
    def for_timeout(
        cls,
        adapter_id: str,
        timeout_seconds: float,
        cursor: dict[str, Any] | None = None,
    ) -> ProbeContext:
        return cls(
            adapter_id=adapter_id,
            deadline=time.monotonic() + timeout_seconds,
            cursor=dict(cursor or {}),
        )

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self.deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def check(self) -> None:
        """Raise ProbeTimeout if the run was cancelled or its deadline passed."""
        if self.cancelled:
            raise ProbeTimeout(f"Run of {self.adapter_id} was cancelled")
        if time.monotonic() >= self.deadline:
            raise ProbeTimeout(f"Run of {self.adapter_id} exceeded its timeout")


class BaseSourceAdapter(ABC):
    """
    Abstract base class for signal source adapters.

    Subclasses must define ``name``, ``event_families`` and implement
    ``probe()``, ``normalize()``, ``identity_fields()`` and
    ``derive_incident_key()``.

    Attributes:
        name: Variant name, used as the ``type`` in SIGNAL_ADAPTERS.
        version: Adapter version recorded as event provenance.
        event_families: Event families this adapter may emit.
        default_interval_seconds: Polling cadence when not configured.
        default_timeout_seconds: Per-run timeout when not configured.
        bucket_seconds: Coarse time bucket folded into event IDs.
    """

    name: str = "base"
    version: str = "1.0"
    event_families: tuple[str, ...] = ()
    default_interval_seconds: int = 300
    default_timeout_seconds: int = 120
    bucket_seconds: int = 300

    def __init__(
        self,
        adapter_id: str,
        scope: str | None = None,
        interval_seconds: int | None = None,
        timeout_seconds: int | None = None,
        enabled: bool = True,
        **options: Any,
    ) -> None:
        self.adapter_id = adapter_id
        self.scope = scope or getattr(settings, "SIGNALS_DEFAULT_SCOPE", "prod")
        self.interval_seconds = int(interval_seconds or self.default_interval_seconds)
        self.timeout_seconds = int(timeout_seconds or self.default_timeout_seconds)
        self.enabled = enabled
        self.options = options

    @property
    def source(self) -> str:
        """The SignalEvent ``source`` for everything this adapter emits."""
        return self.adapter_id

    @abstractmethod
    def probe(self, context: ProbeContext) -> list[RawRecord]:
        """
        Fetch zero or more raw records from the external system.

        Raises:
            TransientProbeError: Timeout, 5xx, connection reset.
            PermanentProbeError: Malformed/unexpected response, misconfiguration.
        """

    @abstractmethod
    def normalize(self, record: RawRecord) -> SignalEvent | None:
        """
        Turn a raw record into a candidate SignalEvent, or None to skip it.

        Must be pure: no I/O and no clock reads beyond what is in the record.
        """

    @abstractmethod
    def identity_fields(self, event: SignalEvent) -> dict[str, Any]:
        """Stable payload subset that identifies the underlying occurrence."""

    @abstractmethod
    def derive_incident_key(self, event: SignalEvent) -> str:
        """Group key for all events describing one underlying condition."""

    def time_bucket_for(self, event: SignalEvent) -> int | None:
        """Coarse time bucket folded into the event ID (None for no bucketing)."""
        return time_bucket(event.occurred_at, self.bucket_seconds)

    def derive_event_id(self, event: SignalEvent) -> str:
        return compute_event_id(
            source=event.source,
            event_type=event.type,
            identity=self.identity_fields(event),
            bucket=self.time_bucket_for(event),
        )

    def finalize(self, candidate: SignalEvent) -> SignalEvent:
        """Attach the derived event ID and incident key to a candidate."""
        return candidate.with_identity(
            event_id=self.derive_event_id(candidate),
            incident_key=self.derive_incident_key(candidate),
        )

    def observe(self, event: SignalEvent) -> list[SignalEvent]:
        """
        React to an event that the sink has just appended.

        Returns follow-up candidates (not yet finalized) to emit through the
        same pipeline. Stateless adapters return nothing.
        """
        return []

    def restore(self, sink: EventSink) -> None:
        """Rebuild in-memory state from previously stored events."""

    def describe(self) -> dict[str, Any]:
        return {
            "adapter_id": self.adapter_id,
            "type": self.name,
            "version": self.version,
            "scope": self.scope,
            "interval_seconds": self.interval_seconds,
            "timeout_seconds": self.timeout_seconds,
            "enabled": self.enabled,
            "event_families": list(self.event_families),
        }

    def _event(
        self,
        event_type: str,
        occurred_at: datetime,
        payload: dict[str, Any],
    ) -> SignalEvent:
        return SignalEvent(
            source=self.source,
            type=event_type,
            occurred_at=occurred_at,
            payload=payload,
        )
