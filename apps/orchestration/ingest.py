"""
Record ingestion for one adapter.

Drives every raw record through normalize → event id → incident key →
validate → sink, then feeds each newly appended event back to the adapter so
it can emit follow-up events (e.g. pool health transitions). A bad record is
rejected and retained; it never aborts the rest of the batch.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from apps.adapters.base import BaseSourceAdapter, ProbeContext, RawRecord
from apps.events.envelope import SignalEvent
from apps.events.exceptions import EventValidationError
from apps.events.sink import EventSink
from apps.events.validation import validate_event
from apps.orchestration.signals import SignalTags, emit_event_rejected

logger = logging.getLogger(__name__)

# Errors normalize() raises for raw records it cannot make sense of.
NORMALIZE_ERRORS = (ValueError, TypeError, KeyError, AttributeError)


@dataclass
class IngestionResult:
    """Counters for one ingestion batch."""

    received: int = 0
    appended: int = 0
    duplicates: int = 0
    skipped: int = 0
    rejected: int = 0
    events: list[SignalEvent] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def events_emitted(self) -> int:
        return self.appended

    @property
    def has_rejections(self) -> bool:
        return self.rejected > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "received": self.received,
            "appended": self.appended,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "rejected": self.rejected,
            "event_ids": [event.id for event in self.events],
            "errors": list(self.errors),
        }


class IngestionService:
    """
    Ingests raw records from one adapter into the event sink.

    Usage:
        service = IngestionService(adapter)
        result = service.ingest(adapter.probe(context), context=context)
    """

    def __init__(self, adapter: BaseSourceAdapter, sink: EventSink | None = None) -> None:
        self.adapter = adapter
        self.sink = sink or EventSink()
        self.tags = SignalTags(
            adapter_id=adapter.adapter_id,
            adapter_type=adapter.name,
            scope=adapter.scope,
        )

    def ingest(
        self,
        records: Iterable[RawRecord],
        context: ProbeContext | None = None,
        result: IngestionResult | None = None,
    ) -> IngestionResult:
        """
        Ingest a batch of raw records.

        Args:
            records: Raw records from probe() or a webhook.
            context: Run context; checked before each record so a timed-out
                run stops between records.
            result: Accumulator to update in place (kept by the caller so
                counts survive a ProbeTimeout).

        Returns:
            IngestionResult with per-outcome counters.
        """
        result = result if result is not None else IngestionResult()
        for record in records:
            if context is not None:
                context.check()
            result.received += 1
            self._ingest_record(record, result)

        logger.info(
            "Ingested %d records from %s: %d appended, %d duplicates, %d skipped, %d rejected",
            result.received,
            self.adapter.adapter_id,
            result.appended,
            result.duplicates,
            result.skipped,
            result.rejected,
        )
        return result

    def _ingest_record(self, record: RawRecord, result: IngestionResult) -> None:
        try:
            candidate = self.adapter.normalize(record)
        except NORMALIZE_ERRORS as e:
            self._reject(record.data, f"normalize failed: {e}", result)
            return

        if candidate is None:
            result.skipped += 1
            return

        self._emit(candidate, record.data, result)

    def _emit(self, candidate: SignalEvent, raw: dict[str, Any], result: IngestionResult) -> None:
        pending = deque([(candidate, raw)])
        while pending:
            candidate, raw = pending.popleft()
            event = self.adapter.finalize(candidate)
            try:
                validate_event(event, families=self.adapter.event_families)
            except EventValidationError as e:
                self._reject(raw, str(e), result, event_type=event.type)
                continue

            appended = self.sink.append(
                event,
                producer=self.adapter.name,
                producer_version=self.adapter.version,
            )
            if appended.duplicate:
                result.duplicates += 1
                continue

            result.appended += 1
            result.events.append(appended.event)
            for follow_up in self.adapter.observe(appended.event):
                pending.append((follow_up, follow_up.to_cloudevent()))

    def _reject(
        self,
        raw: dict[str, Any],
        reason: str,
        result: IngestionResult,
        event_type: str = "",
    ) -> None:
        result.rejected += 1
        result.errors.append(reason)
        self.sink.reject(self.adapter.adapter_id, reason, raw, event_type=event_type)
        emit_event_rejected(self.tags, reason, event_type=event_type)


def ingest_pushed(adapter_id: str, payload: Any, sink: EventSink | None = None) -> IngestionResult:
    """
    Ingest a payload pushed by a source (webhook) through the same pipeline
    as polled records.

    Raises:
        ValueError: Unknown adapter, adapter that does not accept pushes, or
            a payload the adapter does not recognize.
    """
    from apps.adapters import get_adapter

    adapter = get_adapter(adapter_id)
    if not adapter.enabled:
        raise ValueError(f"Adapter {adapter_id} is disabled")

    records_from_webhook = getattr(adapter, "records_from_webhook", None)
    if records_from_webhook is None:
        raise ValueError(f"Adapter {adapter_id} ({adapter.name}) does not accept pushed payloads")

    records = records_from_webhook(payload)
    return IngestionService(adapter, sink).ingest(records)
