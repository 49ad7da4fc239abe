"""
Run coordinator.

Guarantees at most one in-flight run per adapter, enforces the per-run
timeout and reports every run's outcome for health monitoring.

Lifecycle of a run:
    start_run(adapter_id) -> Lease | AlreadyRunning
    restore → load cursor → probe → ingest
    end_run(lease, outcome, cursor) -> AdapterRunRecord  (saves cursor unless failed)

A lease held past its expiry is force-expired by the next start_run (or by
expire_stale_leases) and that run is recorded as ``failed:timeout``. The run
itself stops cooperatively: its ProbeContext deadline equals the lease expiry,
so the next ``context.check()`` raises ProbeTimeout.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from django.db import transaction
from django.utils import timezone

from apps.adapters import get_adapter
from apps.adapters.base import BaseSourceAdapter, ProbeContext
from apps.adapters.exceptions import PermanentProbeError, ProbeTimeout, TransientProbeError
from apps.adapters.models import SourceCursor
from apps.events.sink import EventSink
from apps.orchestration.ingest import IngestionResult, IngestionService
from apps.orchestration.models import AdapterSlot, RunOutcome
from apps.orchestration.signals import (
    SignalTags,
    emit_lease_expired,
    emit_run_completed,
    emit_run_skipped,
    emit_run_started,
)

logger = logging.getLogger(__name__)

TIMEOUT = "timeout"


@dataclass(frozen=True)
class Lease:
    """Mutual-exclusion token for one adapter run."""

    adapter_id: str
    token: str
    acquired_at: datetime
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class AlreadyRunning:
    """Returned by start_run when another run holds the adapter's lease."""

    adapter_id: str
    held_since: datetime | None
    expires_at: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "adapter_id": self.adapter_id,
            "status": "already_running",
            "held_since": self.held_since.isoformat() if self.held_since else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


@dataclass
class AdapterRunRecord:
    """Health report for one finished adapter run."""

    adapter_id: str
    started_at: datetime
    finished_at: datetime | None = None
    outcome: str = RunOutcome.SUCCESS
    events_emitted: int = 0
    last_error: str = ""
    error_kind: str = ""
    ingestion: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> str:
        """Outcome with the failure kind for timeouts (``failed:timeout``)."""
        if self.outcome == RunOutcome.FAILED and self.error_kind == TIMEOUT:
            return f"{RunOutcome.FAILED.value}:{TIMEOUT}"
        return str(self.outcome)

    @property
    def failed(self) -> bool:
        return self.outcome == RunOutcome.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "adapter_id": self.adapter_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "outcome": str(self.outcome),
            "status": self.status,
            "events_emitted": self.events_emitted,
            "last_error": self.last_error,
            "error_kind": self.error_kind,
            "ingestion": dict(self.ingestion),
        }


class RunCoordinator:
    """
    Per-adapter execution guard.

    Usage:
        coordinator = RunCoordinator()
        record = coordinator.run_adapter("alertmanager-prod")
    """

    def __init__(
        self,
        sink: EventSink | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self.sink = sink or EventSink()
        self.clock = clock
        self._contexts: dict[str, ProbeContext] = {}

    # Leases

    def start_run(self, adapter_id: str, timeout_seconds: int = 120) -> Lease | AlreadyRunning:
        """Acquire the adapter's lease, force-expiring a holder past its timeout."""
        now = self.clock()
        with transaction.atomic():
            slot, _ = AdapterSlot.objects.select_for_update().get_or_create(adapter_id=adapter_id)

            if slot.is_leased and not slot.lease_expired(now):
                logger.info(
                    "Skipping run of %s: lease held since %s",
                    adapter_id,
                    slot.acquired_at,
                )
                emit_run_skipped(
                    SignalTags(adapter_id=adapter_id, token=slot.lease_token),
                    held_since=slot.acquired_at.isoformat() if slot.acquired_at else "",
                )
                return AlreadyRunning(
                    adapter_id=adapter_id,
                    held_since=slot.acquired_at,
                    expires_at=slot.expires_at,
                )

            if slot.is_leased:
                self._force_expire(slot, now)

            lease = Lease(
                adapter_id=adapter_id,
                token=uuid.uuid4().hex,
                acquired_at=now,
                expires_at=now + timedelta(seconds=timeout_seconds),
            )
            slot.lease_token = lease.token
            slot.acquired_at = lease.acquired_at
            slot.expires_at = lease.expires_at
            slot.last_started_at = now
            slot.save()

        emit_run_started(SignalTags(adapter_id=adapter_id, token=lease.token))
        return lease

    def end_run(
        self,
        lease: Lease,
        outcome: str,
        events_emitted: int = 0,
        error: str = "",
        error_kind: str = "",
        ingestion: IngestionResult | None = None,
        duration_ms: float = 0.0,
        cursor: dict | None = None,
    ) -> AdapterRunRecord:
        """
        Release the lease and record the run's outcome.

        A lease that expired (or was force-expired) before end_run turns the
        run into ``failed:timeout`` regardless of the reported outcome.
        ``cursor`` is committed with the outcome, and only when the run did
        not fail.
        """
        now = self.clock()
        record = AdapterRunRecord(
            adapter_id=lease.adapter_id,
            started_at=lease.acquired_at,
            finished_at=now,
            outcome=outcome,
            events_emitted=events_emitted,
            last_error=error,
            error_kind=error_kind,
            ingestion=ingestion.to_dict() if ingestion else {},
        )
        tags = SignalTags(adapter_id=lease.adapter_id, token=lease.token)

        with transaction.atomic():
            slot = AdapterSlot.objects.select_for_update().filter(adapter_id=lease.adapter_id).first()

            if slot is None or slot.lease_token != lease.token:
                # Already force-expired and recorded by whoever took the slot.
                record.outcome = RunOutcome.FAILED
                record.error_kind = TIMEOUT
                record.last_error = "lease was force-expired before the run finished"
                logger.warning("Run of %s finished after its lease was taken over", lease.adapter_id)
            else:
                if lease.expired(now) and record.outcome != RunOutcome.FAILED:
                    record.outcome = RunOutcome.FAILED
                    record.error_kind = TIMEOUT
                    record.last_error = f"run exceeded its lease (expired {lease.expires_at.isoformat()})"
                if lease.expired(now):
                    emit_lease_expired(tags, expired_at=lease.expires_at.isoformat())
                if cursor is not None and record.outcome != RunOutcome.FAILED:
                    SourceCursor.store(lease.adapter_id, cursor)
                self._record(slot, record)
                slot.clear_lease()
                slot.save()

        emit_run_completed(
            tags,
            outcome=record.status,
            duration_ms=duration_ms,
            events_emitted=record.events_emitted,
            error_kind=record.error_kind,
            error_message=record.last_error,
        )
        return record

    def _record(self, slot: AdapterSlot, record: AdapterRunRecord) -> None:
        slot.last_outcome = record.outcome
        slot.last_error = record.last_error
        slot.last_error_kind = record.error_kind
        slot.last_finished_at = record.finished_at
        slot.last_events_emitted = record.events_emitted
        slot.total_runs += 1
        if record.outcome == RunOutcome.FAILED:
            slot.consecutive_failures += 1
        else:
            slot.consecutive_failures = 0

    def _force_expire(self, slot: AdapterSlot, now: datetime) -> None:
        logger.warning(
            "Force-expiring lease of %s (acquired %s, expired %s)",
            slot.adapter_id,
            slot.acquired_at,
            slot.expires_at,
        )
        context = self._contexts.get(slot.lease_token)
        if context is not None:
            context.cancel()

        emit_lease_expired(
            SignalTags(adapter_id=slot.adapter_id, token=slot.lease_token),
            expired_at=slot.expires_at.isoformat() if slot.expires_at else "",
        )
        self._record(
            slot,
            AdapterRunRecord(
                adapter_id=slot.adapter_id,
                started_at=slot.acquired_at or now,
                finished_at=now,
                outcome=RunOutcome.FAILED,
                last_error="lease held past its timeout",
                error_kind=TIMEOUT,
            ),
        )
        slot.clear_lease()

    def expire_stale_leases(self) -> list[str]:
        """Force-expire every lease past its expiry. Returns the adapter IDs."""
        now = self.clock()
        expired = []
        with transaction.atomic():
            slots = AdapterSlot.objects.select_for_update().exclude(lease_token="").filter(
                expires_at__lte=now
            )
            for slot in slots:
                self._force_expire(slot, now)
                slot.save()
                expired.append(slot.adapter_id)
        return expired

    def release(self, adapter_id: str) -> bool:
        """Operator action: drop a lease without recording an outcome."""
        with transaction.atomic():
            slot = AdapterSlot.objects.select_for_update().filter(adapter_id=adapter_id).first()
            if slot is None or not slot.is_leased:
                return False
            context = self._contexts.get(slot.lease_token)
            if context is not None:
                context.cancel()
            slot.clear_lease()
            slot.save()
        logger.warning("Lease of %s released by operator", adapter_id)
        return True

    # Runs

    def run_adapter(self, adapter_id: str) -> AdapterRunRecord | AlreadyRunning:
        """
        Run one adapter end to end.

        Never raises: every failure is downgraded to a ``failed`` record.
        """
        started_at = self.clock()
        try:
            adapter = get_adapter(adapter_id)
            if not adapter.enabled:
                raise ValueError(f"Adapter {adapter_id} is disabled")
        except (ValueError, TypeError) as e:
            logger.error("Cannot run adapter %s: %s", adapter_id, e)
            return AdapterRunRecord(
                adapter_id=adapter_id,
                started_at=started_at,
                finished_at=self.clock(),
                outcome=RunOutcome.FAILED,
                last_error=str(e),
                error_kind=PermanentProbeError.kind,
            )
        return self.run(adapter)

    def run(self, adapter: BaseSourceAdapter) -> AdapterRunRecord | AlreadyRunning:
        """Run an already-built adapter under the coordinator's lease."""
        adapter_id = adapter.adapter_id
        try:
            lease = self.start_run(adapter_id, timeout_seconds=adapter.timeout_seconds)
        except Exception as e:
            logger.exception("Could not acquire lease for %s", adapter_id)
            now = self.clock()
            return AdapterRunRecord(
                adapter_id=adapter_id,
                started_at=now,
                finished_at=now,
                outcome=RunOutcome.FAILED,
                last_error=str(e),
                error_kind="internal",
            )
        if isinstance(lease, AlreadyRunning):
            return lease

        start = time.perf_counter()
        result = IngestionResult()
        outcome, error, error_kind = RunOutcome.SUCCESS, "", ""

        context = ProbeContext(
            adapter_id=adapter_id,
            deadline=time.monotonic() + max(0.0, (lease.expires_at - self.clock()).total_seconds()),
            started_at=lease.acquired_at,
        )
        self._contexts[lease.token] = context
        try:
            context.cursor = SourceCursor.load(adapter_id)
            adapter.restore(self.sink)
            records = adapter.probe(context)
            IngestionService(adapter, self.sink).ingest(records, context=context, result=result)

            if result.has_rejections:
                outcome = RunOutcome.PARTIAL
                error = f"{result.rejected} record(s) rejected: {result.errors[-1]}"
                error_kind = "validation"
        except ProbeTimeout as e:
            outcome, error, error_kind = RunOutcome.FAILED, str(e), TIMEOUT
            logger.warning("Run of %s timed out: %s", adapter_id, e)
        except TransientProbeError as e:
            outcome, error, error_kind = RunOutcome.FAILED, str(e), e.kind
            logger.warning("Transient failure in %s: %s", adapter_id, e)
        except PermanentProbeError as e:
            outcome, error, error_kind = RunOutcome.FAILED, str(e), e.kind
            logger.error("Permanent failure in %s: %s", adapter_id, e)
        except Exception as e:
            outcome, error, error_kind = RunOutcome.FAILED, f"{type(e).__name__}: {e}", "internal"
            logger.exception("Unexpected error while running %s", adapter_id)
        finally:
            self._contexts.pop(lease.token, None)

        duration_ms = (time.perf_counter() - start) * 1000
        try:
            return self.end_run(
                lease,
                outcome,
                events_emitted=result.events_emitted,
                error=error,
                error_kind=error_kind,
                ingestion=result,
                duration_ms=duration_ms,
                cursor=context.next_cursor,
            )
        except Exception as e:
            logger.exception("Could not record outcome of %s", adapter_id)
            return AdapterRunRecord(
                adapter_id=adapter_id,
                started_at=lease.acquired_at,
                finished_at=self.clock(),
                outcome=RunOutcome.FAILED,
                events_emitted=result.events_emitted,
                last_error=str(e),
                error_kind="internal",
                ingestion=result.to_dict(),
            )
