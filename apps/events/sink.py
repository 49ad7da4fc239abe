"""
Idempotent, append-only ingestion sink.

Appending an event whose ID is already stored is a no-op that returns the
stored record. On first append the sink stamps ``ingested_at`` and hands the
event to the incident correlator inside the same transaction, so the
correlator sees events in exactly the order the sink committed them.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from apps.events.envelope import SignalEvent
from apps.events.ids import canonical_json, payload_hash
from apps.events.models import RejectedRecord, StoredEvent
from apps.incidents.correlator import CorrelationResult, IncidentCorrelator

logger = logging.getLogger(__name__)


@dataclass
class AppendResult:
    """Outcome of a single append."""

    event: SignalEvent
    created: bool
    correlation: CorrelationResult | None = None

    @property
    def duplicate(self) -> bool:
        return not self.created


class EventSink:
    """
    Append-only writer in front of the event store and the correlator.

    Usage:
        sink = EventSink()
        result = sink.append(event, producer="alerting")
        if result.duplicate:
            ...
    """

    def __init__(self, correlator: IncidentCorrelator | None = None) -> None:
        self.correlator = correlator or IncidentCorrelator()

    def append(
        self,
        event: SignalEvent,
        producer: str = "",
        producer_version: str = "",
    ) -> AppendResult:
        """
        Append an event, collapsing duplicates by ID.

        Args:
            event: A validated SignalEvent with its id and incident_key derived.
            producer: Adapter variant name for provenance.
            producer_version: Adapter version for provenance.

        Returns:
            AppendResult with the stored event and, for new events, the
            correlator's result.
        """
        digest = payload_hash(event.payload)

        with transaction.atomic():
            existing = StoredEvent.objects.filter(event_id=event.id).first()
            if existing is not None:
                return self._duplicate(existing, digest)

            try:
                with transaction.atomic():
                    record = StoredEvent.objects.create(
                        event_id=event.id,
                        source=event.source,
                        event_type=event.type,
                        incident_key=event.incident_key,
                        occurred_at=event.occurred_at,
                        ingested_at=timezone.now(),
                        spec_version=event.spec_version,
                        payload=event.payload,
                        payload_hash=digest,
                        producer=producer,
                        producer_version=producer_version,
                    )
            except IntegrityError:
                # Lost a race with a concurrent append of the same ID.
                existing = StoredEvent.objects.get(event_id=event.id)
                return self._duplicate(existing, digest)

            stored = record.to_signal_event()
            correlation = self.correlator.apply(stored)

        logger.info(
            "Appended event %s (%s) for %s",
            stored.id,
            stored.type,
            stored.incident_key,
        )
        return AppendResult(event=stored, created=True, correlation=correlation)

    def _duplicate(self, existing: StoredEvent, digest: str) -> AppendResult:
        if existing.payload_hash != digest:
            logger.debug(
                "Duplicate event %s ignored (payload hash %s differs from stored %s)",
                existing.event_id,
                digest,
                existing.payload_hash,
            )
        else:
            logger.debug("Duplicate event %s ignored", existing.event_id)
        return AppendResult(event=existing.to_signal_event(), created=False)

    def get(self, event_id: str) -> SignalEvent | None:
        record = StoredEvent.objects.filter(event_id=event_id).first()
        return record.to_signal_event() if record else None

    def replay(
        self,
        source: str,
        since: datetime | None = None,
        pinned_types: Iterable[str] = (),
        event_types: Iterable[str] | None = None,
    ) -> Iterator[SignalEvent]:
        """
        Yield a source's stored events in commit order.

        Args:
            source: Adapter/source identifier.
            since: Only events that occurred at or after this time.
            pinned_types: Event types always included regardless of ``since``.
            event_types: Only events of these types.
        """
        qs = StoredEvent.objects.filter(source=source)
        if event_types is not None:
            qs = qs.filter(event_type__in=list(event_types))
        if since is not None:
            window = Q(occurred_at__gte=since)
            pinned = list(pinned_types)
            if pinned:
                window |= Q(event_type__in=pinned)
            qs = qs.filter(window)

        for record in qs.order_by("id").iterator():
            yield record.to_signal_event()

    def reject(
        self,
        adapter_id: str,
        reason: str,
        raw: Any,
        event_type: str = "",
    ) -> RejectedRecord:
        """Retain a dropped raw record for diagnosis."""
        logger.warning(
            "Dropped record from %s: %s (raw=%r)",
            adapter_id,
            reason,
            raw,
        )
        if not isinstance(raw, dict):
            raw = {"raw": repr(raw)}
        return RejectedRecord.objects.create(
            adapter_id=adapter_id,
            event_type=event_type,
            reason=reason,
            raw_payload=json.loads(canonical_json(raw)),
        )
