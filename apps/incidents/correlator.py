"""
Incident correlator.

Folds each newly appended SignalEvent into the Incident sharing its
incident_key. Status transitions and ``event_ids`` follow arrival order;
``first_seen``/``last_seen`` follow ``occurred_at``.

Transitions:
- no incident:  PROBLEM → FIRING, INFO → OPEN, RESOLVE → RESOLVED
- OPEN:         PROBLEM → FIRING, RESOLVE → RESOLVED
- FIRING:       RESOLVE → RESOLVED
- RESOLVED:     PROBLEM → FIRING (reopen, first_seen kept)

Writes to one key are serialized by a row lock on the incident; different
keys proceed in parallel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.events.envelope import SignalEvent
from apps.events.registry import SignalKind, classify, severity_of
from apps.incidents.models import Incident, IncidentStatus

logger = logging.getLogger(__name__)


@dataclass
class CorrelationResult:
    """Result of folding one event into an incident."""

    incident: Incident
    created: bool
    previous_status: str | None = None

    @property
    def transitioned(self) -> bool:
        return self.previous_status != self.incident.status

    @property
    def reopened(self) -> bool:
        return (
            self.previous_status == IncidentStatus.RESOLVED
            and self.incident.status == IncidentStatus.FIRING
        )


INITIAL_STATUS = {
    SignalKind.PROBLEM: IncidentStatus.FIRING,
    SignalKind.INFO: IncidentStatus.OPEN,
    SignalKind.RESOLVE: IncidentStatus.RESOLVED,
}


class IncidentCorrelator:
    """
    Stateful folding of event streams into Incident records.

    Usage:
        correlator = IncidentCorrelator()
        result = correlator.apply(event)
    """

    def apply(self, event: SignalEvent) -> CorrelationResult:
        """
        Fold a single appended event into its incident.

        Args:
            event: A stored SignalEvent (id and incident_key set).

        Returns:
            CorrelationResult describing the incident after the update.
        """
        kind = classify(event)

        with transaction.atomic():
            incident = (
                Incident.objects.select_for_update()
                .filter(incident_key=event.incident_key)
                .first()
            )
            if incident is None:
                try:
                    with transaction.atomic():
                        incident = self._create(event, kind)
                    return CorrelationResult(incident=incident, created=True)
                except IntegrityError:
                    # Another writer created the incident first; fold into it.
                    incident = Incident.objects.select_for_update().get(
                        incident_key=event.incident_key
                    )

            previous_status = incident.status
            self._fold(incident, event, kind)
            incident.save()

        if previous_status != incident.status:
            logger.info(
                "Incident %s: %s -> %s (event %s)",
                incident.incident_key,
                previous_status,
                incident.status,
                event.id,
            )

        return CorrelationResult(
            incident=incident,
            created=False,
            previous_status=previous_status,
        )

    def _create(self, event: SignalEvent, kind: SignalKind) -> Incident:
        status = INITIAL_STATUS[kind]
        incident = Incident.objects.create(
            incident_key=event.incident_key,
            source=event.source,
            status=status,
            severity=severity_of(event) or "",
            last_event_type=event.type,
            first_seen=event.occurred_at,
            last_seen=event.occurred_at,
            event_ids=[event.id],
            resolved_at=timezone.now() if status == IncidentStatus.RESOLVED else None,
        )
        logger.info("Created incident %s [%s]", incident.incident_key, incident.status)
        return incident

    def _fold(self, incident: Incident, event: SignalEvent, kind: SignalKind) -> None:
        if incident.source != event.source:
            logger.warning(
                "Incident key %s receives events from %s and %s",
                incident.incident_key,
                incident.source,
                event.source,
            )

        incident.event_ids = [*(incident.event_ids or []), event.id]
        incident.last_event_type = event.type
        incident.first_seen = min(incident.first_seen, event.occurred_at)

        if kind == SignalKind.RESOLVE:
            if incident.status != IncidentStatus.RESOLVED:
                incident.last_seen = max(incident.last_seen, event.occurred_at)
                incident.status = IncidentStatus.RESOLVED
                incident.resolved_at = timezone.now()
        elif kind == SignalKind.PROBLEM:
            if incident.status == IncidentStatus.RESOLVED:
                incident.reopen_count += 1
                incident.resolved_at = None
            incident.status = IncidentStatus.FIRING
            incident.last_seen = max(incident.last_seen, event.occurred_at)
        elif incident.status != IncidentStatus.RESOLVED:
            incident.last_seen = max(incident.last_seen, event.occurred_at)

        severity = severity_of(event)
        if severity:
            incident.severity = severity
