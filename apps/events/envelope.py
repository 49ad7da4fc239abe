"""Canonical event envelope that all source adapters produce.

The persisted and transmitted form is a CloudEvents-compatible mapping:
``id``, ``source``, ``type``, ``time``, ``specversion``, ``data`` plus the
domain extension attribute ``incident_key``.

Public API:
- SignalEvent
- SPEC_VERSION
- parse_timestamp
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone as dt_tz
from typing import Any

from django.utils import timezone
from django.utils.dateparse import parse_datetime

SPEC_VERSION = "1.0"
SUPPORTED_SPEC_VERSIONS = frozenset({SPEC_VERSION})


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an RFC3339 string (or pass through a datetime) into an aware datetime.

    Naive values are assumed to be UTC. Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parse_datetime(str(value))
            if parsed is None:
                parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None

    if timezone.is_naive(parsed):
        parsed = parsed.replace(tzinfo=dt_tz.utc)
    return parsed


@dataclass(frozen=True)
class SignalEvent:
    """A normalized, immutable unit of observed condition."""

    source: str
    type: str
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    incident_key: str = ""
    ingested_at: datetime | None = None
    spec_version: str = SPEC_VERSION

    @property
    def family(self) -> str:
        """Event family, i.e. the dotted type prefix (``alert`` for ``alert.firing``)."""
        return self.type.split(".", 1)[0]

    def with_identity(self, event_id: str, incident_key: str) -> SignalEvent:
        """Return a copy carrying the derived event ID and incident key."""
        return replace(self, id=event_id, incident_key=incident_key)

    def with_ingested_at(self, ingested_at: datetime) -> SignalEvent:
        return replace(self, ingested_at=ingested_at)

    def to_cloudevent(self) -> dict[str, Any]:
        """Serialize to the CloudEvents-compatible wire shape."""
        return {
            "specversion": self.spec_version,
            "id": self.id,
            "source": self.source,
            "type": self.type,
            "time": self.occurred_at.isoformat(),
            "datacontenttype": "application/json",
            "data": dict(self.payload),
            "incident_key": self.incident_key,
        }

    @classmethod
    def from_cloudevent(cls, data: dict[str, Any]) -> SignalEvent:
        """Build a SignalEvent from its wire shape.

        Raises:
            ValueError: If ``time`` is missing or cannot be parsed.
        """
        occurred_at = parse_timestamp(data.get("time"))
        if occurred_at is None:
            raise ValueError(f"Invalid or missing event time: {data.get('time')!r}")

        return cls(
            id=data.get("id", ""),
            source=data.get("source", ""),
            type=data.get("type", ""),
            occurred_at=occurred_at,
            payload=dict(data.get("data") or {}),
            incident_key=data.get("incident_key", ""),
            spec_version=data.get("specversion", SPEC_VERSION),
        )
