"""
Monitoring signals for adapter runs.

Emits structured signals at every run boundary:
- adapter.run.started
- adapter.run.completed (with outcome)
- adapter.run.skipped (lease already held)
- adapter.lease.expired (force-expired after timeout)
- adapter.event.rejected
- adapter.run.duration (timing)

Tags on every signal:
- adapter_id
- adapter_type
- scope
- lease token
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings

logger = logging.getLogger(__name__)


@dataclass
class SignalTags:
    """Tags attached to every monitoring signal."""

    adapter_id: str
    adapter_type: str = "unknown"
    scope: str = ""
    token: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        base = {
            "adapter_id": self.adapter_id,
            "adapter_type": self.adapter_type,
            "scope": self.scope,
            "token": self.token,
        }
        base.update(self.extra)
        return base


# Signals that indicate a run did not go as planned.
WARNING_SIGNALS = {"adapter.run.skipped", "adapter.lease.expired", "adapter.event.rejected"}


class MonitoringBackend(ABC):
    """Destination for run-health signals (logs, StatsD, ...)."""

    @abstractmethod
    def emit(
        self,
        signal_name: str,
        tags: SignalTags,
        value: float | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Emit one signal; ``value`` is set for timings."""


class LoggingBackend(MonitoringBackend):
    """Default backend: one structured log record per signal."""

    def emit(self, signal_name, tags, value=None, extra=None) -> None:
        data = {"signal": signal_name, "value": value, **tags.to_dict(), **(extra or {})}
        level = logging.WARNING if signal_name in WARNING_SIGNALS else logging.INFO
        logger.log(level, f"[SIGNAL] {signal_name} {tags.adapter_id}", extra={"signal_data": data})


class StatsdBackend(MonitoringBackend):
    """
    StatsD backend.

    Metric names: ``<prefix>.<signal>.<adapter_type>.<adapter_id>[.<outcome>]``.
    Durations are sent as timers, ``events_emitted`` on completion as a gauge,
    everything else as a counter.
    """

    def __init__(self, host: str = "localhost", port: int = 8125, prefix: str = "signals"):
        self.host = host
        self.port = port
        self.prefix = prefix
        self._client = None

    @property
    def client(self):
        if self._client is None:
            import statsd

            self._client = statsd.StatsClient(self.host, self.port, prefix=self.prefix)
        return self._client

    def emit(self, signal_name, tags, value=None, extra=None) -> None:
        extra = extra or {}
        metric = f"{signal_name}.{tags.adapter_type}.{tags.adapter_id}"

        if value is not None:
            self.client.timing(metric, value)
            return

        outcome = extra.get("outcome")
        self.client.incr(f"{metric}.{outcome}" if outcome else metric)
        if "events_emitted" in extra:
            self.client.gauge(f"{metric}.events_emitted", extra["events_emitted"])


def get_monitoring_backend() -> MonitoringBackend:
    """Build the backend named by SIGNALS_METRICS_BACKEND."""
    if getattr(settings, "SIGNALS_METRICS_BACKEND", "logging") == "statsd":
        return StatsdBackend(
            host=getattr(settings, "STATSD_HOST", "localhost"),
            port=getattr(settings, "STATSD_PORT", 8125),
            prefix=getattr(settings, "STATSD_PREFIX", "signals"),
        )
    return LoggingBackend()


# Process-wide backend, built on first use
_backend: MonitoringBackend | None = None


def _get_backend() -> MonitoringBackend:
    global _backend
    if _backend is None:
        _backend = get_monitoring_backend()
    return _backend


def emit_run_started(tags: SignalTags) -> None:
    """Emit signal when an adapter run acquires its lease."""
    _get_backend().emit("adapter.run.started", tags)


def emit_run_completed(
    tags: SignalTags,
    outcome: str,
    duration_ms: float,
    events_emitted: int,
    error_kind: str = "",
    error_message: str = "",
) -> None:
    """Emit signal when an adapter run finishes (any outcome)."""
    _get_backend().emit(
        "adapter.run.completed",
        tags,
        extra={
            "outcome": outcome,
            "events_emitted": events_emitted,
            "error_kind": error_kind,
            "error_message": error_message,
            "duration_ms": duration_ms,
        },
    )
    _get_backend().emit("adapter.run.duration", tags, value=duration_ms)


def emit_run_skipped(tags: SignalTags, held_since: str = "") -> None:
    """Emit signal when a run is skipped because another run holds the lease."""
    _get_backend().emit("adapter.run.skipped", tags, extra={"held_since": held_since})


def emit_lease_expired(tags: SignalTags, expired_at: str = "") -> None:
    """Emit signal when a lease held past its timeout is force-expired."""
    _get_backend().emit("adapter.lease.expired", tags, extra={"expired_at": expired_at})


def emit_event_rejected(tags: SignalTags, reason: str, event_type: str = "") -> None:
    _get_backend().emit(
        "adapter.event.rejected",
        tags,
        extra={"reason": reason, "event_type": event_type},
    )
