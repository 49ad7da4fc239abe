"""Per-type payload schemas.

Payloads are opaque to the sink but must pass the schema registered for their
event type before they are appended. Extra keys are allowed so adapters can
carry diagnostic context without a schema change.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["critical", "warning", "info"]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow")

    scope: str = Field(min_length=1)


class AlertPayload(_Payload):
    """Payload for ``alert.firing`` / ``alert.resolved``."""

    alert_name: str = Field(min_length=1)
    fingerprint: str = Field(min_length=1)
    severity: Severity = "warning"
    description: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    starts_at: datetime
    ends_at: datetime | None = None
    generator_url: str = ""


class ProbePayload(_Payload):
    """Payload for ``probe.ok`` / ``probe.degraded`` / ``probe.rate_limited``."""

    model_id: str = Field(min_length=1)
    capability: Literal["tool_use", "streaming"]
    outcome: Literal["ok", "error", "rate_limited"]
    severity: Severity = "info"
    latency_ms: float | None = Field(default=None, ge=0)
    error: str = ""
    quarantined: bool = False


class PoolHealthChangedPayload(_Payload):
    """Payload for ``pool.health_changed`` (quarantine promotion/demotion)."""

    model_id: str = Field(min_length=1)
    capability: Literal["tool_use", "streaming"]
    transition: Literal["quarantined", "released"]
    reason: str = ""
    severity: Severity = "warning"
    error_rate: float = Field(default=0.0, ge=0, le=1)
    rate_limit_rate: float = Field(default=0.0, ge=0, le=1)
    samples: int = Field(default=0, ge=0)
    good_probes: int = Field(default=0, ge=0)


class HostPayload(_Payload):
    """Payload for ``host.ok`` / ``host.warning`` / ``host.critical``."""

    hostname: str = Field(min_length=1)
    resource: str = Field(min_length=1)
    metric: Literal["cpu", "memory", "disk"]
    value: float = Field(ge=0, le=100)
    warning_threshold: float
    critical_threshold: float
    severity: Severity = "info"
