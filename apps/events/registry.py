"""
Event type registry.

Each registered type names its payload schema and how the incident correlator
should treat it:

- PROBLEM: an active negative condition (opens/refreshes/reopens FIRING)
- INFO: informational; creates an OPEN incident, never reopens one
- RESOLVE: terminal for the current episode
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel

from apps.events.envelope import SignalEvent
from apps.events.schemas import (
    AlertPayload,
    HostPayload,
    PoolHealthChangedPayload,
    ProbePayload,
)


class SignalKind(str, Enum):
    """How an event type drives the incident state machine."""

    PROBLEM = "problem"
    INFO = "info"
    RESOLVE = "resolve"


@dataclass(frozen=True)
class EventTypeSpec:
    """Registration record for a single event type."""

    type: str
    schema: type[BaseModel]
    kind: SignalKind = SignalKind.INFO
    severity_bearing: bool = False
    kind_resolver: Callable[[dict[str, Any]], SignalKind] | None = None

    @property
    def family(self) -> str:
        return self.type.split(".", 1)[0]

    def classify(self, payload: dict[str, Any]) -> SignalKind:
        if self.kind_resolver is not None:
            return self.kind_resolver(payload)
        return self.kind


def _pool_transition_kind(payload: dict[str, Any]) -> SignalKind:
    if payload.get("transition") == "released":
        return SignalKind.RESOLVE
    return SignalKind.PROBLEM


def _probe_ok_kind(payload: dict[str, Any]) -> SignalKind:
    # A good probe ends the episode unless the pair is held in quarantine,
    # where only the pool release does.
    if payload.get("quarantined"):
        return SignalKind.INFO
    return SignalKind.RESOLVE


# Registry of known event types
EVENT_TYPES: dict[str, EventTypeSpec] = {}


def register_event_type(spec: EventTypeSpec) -> EventTypeSpec:
    """Register (or replace) an event type."""
    EVENT_TYPES[spec.type] = spec
    return spec


def get_event_type(event_type: str) -> EventTypeSpec | None:
    return EVENT_TYPES.get(event_type)


def registered_families() -> set[str]:
    return {spec.family for spec in EVENT_TYPES.values()}


def classify(event: SignalEvent) -> SignalKind:
    """Return the correlation kind for an event (INFO for unknown types)."""
    spec = get_event_type(event.type)
    if spec is None:
        return SignalKind.INFO
    return spec.classify(event.payload)


def severity_of(event: SignalEvent) -> str | None:
    """Severity carried by an event, or None if its type is not severity-bearing."""
    spec = get_event_type(event.type)
    if spec is None or not spec.severity_bearing:
        return None
    severity = event.payload.get("severity")
    return str(severity) if severity else None


for _spec in (
    EventTypeSpec("alert.firing", AlertPayload, SignalKind.PROBLEM, severity_bearing=True),
    EventTypeSpec("alert.resolved", AlertPayload, SignalKind.RESOLVE),
    EventTypeSpec("probe.ok", ProbePayload, kind_resolver=_probe_ok_kind),
    EventTypeSpec("probe.degraded", ProbePayload, SignalKind.PROBLEM, severity_bearing=True),
    EventTypeSpec("probe.rate_limited", ProbePayload, SignalKind.PROBLEM, severity_bearing=True),
    EventTypeSpec(
        "pool.health_changed",
        PoolHealthChangedPayload,
        severity_bearing=True,
        kind_resolver=_pool_transition_kind,
    ),
    EventTypeSpec("host.ok", HostPayload, SignalKind.RESOLVE, severity_bearing=True),
    EventTypeSpec("host.warning", HostPayload, SignalKind.PROBLEM, severity_bearing=True),
    EventTypeSpec("host.critical", HostPayload, SignalKind.PROBLEM, severity_bearing=True),
):
    register_event_type(_spec)
