"""
Host resource adapter.

Samples CPU, memory and disk usage on the local host with psutil and emits
``host.ok`` / ``host.warning`` / ``host.critical`` per resource.
"""

from __future__ import annotations

import socket
from typing import Any

import psutil
from django.utils import timezone

from apps.adapters.base import BaseSourceAdapter, ProbeContext, RawRecord
from apps.adapters.exceptions import TransientProbeError
from apps.events.envelope import SignalEvent, parse_timestamp

# metric -> (warning, critical)
DEFAULT_THRESHOLDS = {
    "cpu": (70.0, 90.0),
    "memory": (70.0, 90.0),
    "disk": (80.0, 95.0),
}


class HostResourceAdapter(BaseSourceAdapter):
    """
    Check host resource usage against warning/critical thresholds.

    Options:
        hostname: Host label for incident keys (default: socket.gethostname()).
        disk_paths: Mount points to check (default: ["/"]).
        cpu_interval: Seconds psutil samples CPU over (default 1.0).
        thresholds: Per-metric {"warning": x, "critical": y} overrides.
    """

    name = "host"
    event_families = ("host",)

    def __init__(
        self,
        adapter_id: str,
        hostname: str = "",
        disk_paths: list[str] | None = None,
        cpu_interval: float = 1.0,
        thresholds: dict[str, dict[str, float]] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(adapter_id, **kwargs)
        self.hostname = hostname or socket.gethostname()
        self.disk_paths = disk_paths or ["/"]
        self.cpu_interval = float(cpu_interval)
        self.thresholds = dict(DEFAULT_THRESHOLDS)
        for metric, override in (thresholds or {}).items():
            warning, critical = self.thresholds.get(metric, (70.0, 90.0))
            self.thresholds[metric] = (
                float(override.get("warning", warning)),
                float(override.get("critical", critical)),
            )

    def probe(self, context: ProbeContext) -> list[RawRecord]:
        records = []
        try:
            context.check()
            cpu = psutil.cpu_percent(interval=min(self.cpu_interval, context.remaining()))
            records.append(self._record("cpu", "cpu", cpu))

            context.check()
            memory = psutil.virtual_memory().percent
            records.append(self._record("memory", "memory", memory))
        except psutil.Error as e:
            raise TransientProbeError(f"psutil failed on {self.hostname}: {e}") from e

        for path in self.disk_paths:
            context.check()
            try:
                usage = psutil.disk_usage(path).percent
            except OSError as e:
                records.append(self._record(f"disk:{path}", "disk", None, error=str(e)))
                continue
            records.append(self._record(f"disk:{path}", "disk", usage))
        return records

    def _record(
        self,
        resource: str,
        metric: str,
        value: float | None,
        error: str = "",
    ) -> RawRecord:
        return RawRecord(
            data={
                "hostname": self.hostname,
                "resource": resource,
                "metric": metric,
                "value": value,
                "error": error,
                "sampled_at": timezone.now().isoformat(),
            },
            kind="sample",
        )

    def _status(self, metric: str, value: float) -> str:
        warning, critical = self.thresholds[metric]
        if value >= critical:
            return "critical"
        elif value >= warning:
            return "warning"
        return "ok"

    def normalize(self, record: RawRecord) -> SignalEvent | None:
        data = record.data
        metric = data.get("metric")
        if metric not in self.thresholds:
            raise ValueError(f"Unknown host metric: {metric!r}")
        if data.get("value") is None:
            raise ValueError(f"No reading for {data.get('resource')}: {data.get('error', '')}")

        occurred_at = parse_timestamp(data.get("sampled_at"))
        if occurred_at is None:
            raise ValueError(f"Sample has no valid sampled_at: {data.get('sampled_at')!r}")

        value = float(data["value"])
        status = self._status(metric, value)
        warning, critical = self.thresholds[metric]
        return self._event(
            event_type=f"host.{status}",
            occurred_at=occurred_at,
            payload={
                "scope": self.scope,
                "hostname": data.get("hostname"),
                "resource": data.get("resource"),
                "metric": metric,
                "value": round(value, 1),
                "warning_threshold": warning,
                "critical_threshold": critical,
                "severity": "info" if status == "ok" else status,
            },
        )

    def identity_fields(self, event: SignalEvent) -> dict[str, Any]:
        return {
            "hostname": event.payload.get("hostname"),
            "resource": event.payload.get("resource"),
        }

    def derive_incident_key(self, event: SignalEvent) -> str:
        return (
            f"{self.scope}:host:"
            f"{event.payload.get('hostname')}:{event.payload.get('resource')}"
        )
