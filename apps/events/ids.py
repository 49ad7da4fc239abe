"""Deterministic event ID derivation.

IDs are a pure function of ``source``, ``type``, a stable identity subset
chosen by the adapter, and a coarse time bucket. Nothing here reads the clock,
so the same input yields the same ID across calls and process restarts.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any

EVENT_ID_LENGTH = 32


def canonical_json(value: Any) -> str:
    """Serialize a value to canonical JSON (sorted keys, no whitespace)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def payload_hash(payload: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON payload, stored as provenance."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def time_bucket(moment: datetime, bucket_seconds: int) -> int:
    """Floor a timestamp to the start of its bucket, as epoch seconds.

    A bucket of 0 (or less) disables bucketing and keeps whole-second precision.
    """
    epoch = int(moment.timestamp())
    if bucket_seconds <= 0:
        return epoch
    return epoch - (epoch % bucket_seconds)


def compute_event_id(
    source: str,
    event_type: str,
    identity: dict[str, Any],
    bucket: int | None = None,
) -> str:
    """Combine the identifying parts of an event into a stable hex ID."""
    material = canonical_json(
        {
            "source": source,
            "type": event_type,
            "identity": {k: "" if v is None else str(v) for k, v in identity.items()},
            "bucket": bucket,
        }
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:EVENT_ID_LENGTH]
