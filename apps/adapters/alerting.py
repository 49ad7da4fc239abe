"""
Prometheus Alertmanager adapter.

Polls the Alertmanager v2 API for the active alert set and also accepts
Alertmanager webhook payloads pushed to the events webhook endpoint.
See: https://prometheus.io/docs/alerting/latest/configuration/#webhook_config

Emits ``alert.firing`` / ``alert.resolved``. The active set from the last
poll is kept in the source cursor so alerts that disappear from the API are
emitted as ``alert.resolved``.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from apps.adapters.base import BaseSourceAdapter, ProbeContext, RawRecord
from apps.adapters.exceptions import PermanentProbeError
from apps.adapters.http import fetch_json
from apps.events.envelope import SignalEvent, parse_timestamp

logger = logging.getLogger(__name__)

SEVERITIES = ("critical", "warning", "info")


def generate_fingerprint(labels: dict[str, str], name: str) -> str:
    """Generate a stable fingerprint from alert name and labels."""
    sorted_labels = sorted((labels or {}).items())
    fingerprint_str = f"{name}:{sorted_labels}"
    return hashlib.sha256(fingerprint_str.encode()).hexdigest()[:16]


def normalize_severity(value: Any) -> str:
    severity = str(value or "").lower()
    return severity if severity in SEVERITIES else "warning"


class AlertingAdapter(BaseSourceAdapter):
    """
    Adapter for Prometheus Alertmanager.

    Options:
        base_url: Alertmanager base URL (e.g. http://alertmanager:9093).
        api_token: Optional bearer token.
        include_silenced: Emit silenced/inhibited alerts too (default False).
        request_timeout_seconds: Per-request HTTP timeout (default 10).
    """

    name = "alerting"
    event_families = ("alert",)

    def __init__(
        self,
        adapter_id: str,
        base_url: str = "",
        api_token: str = "",
        include_silenced: bool = False,
        request_timeout_seconds: float = 10.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(adapter_id, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.include_silenced = include_silenced
        self.request_timeout_seconds = float(request_timeout_seconds)

    # Probe

    def probe(self, context: ProbeContext) -> list[RawRecord]:
        if not self.base_url:
            raise PermanentProbeError(f"Adapter {self.adapter_id} has no base_url configured")

        context.check()
        headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}
        data = fetch_json(
            f"{self.base_url}/api/v2/alerts",
            headers=headers,
            timeout=min(self.request_timeout_seconds, context.remaining()),
        )
        if not isinstance(data, list):
            raise PermanentProbeError(
                f"Expected a list of alerts from {self.base_url}, got {type(data).__name__}"
            )

        records = []
        active: dict[str, dict[str, Any]] = {}
        for alert in data:
            if not isinstance(alert, dict):
                records.append(RawRecord(data={"raw": repr(alert)}, kind="poll"))
                continue

            labels = alert.get("labels") or {}
            fingerprint = alert.get("fingerprint") or generate_fingerprint(
                labels, labels.get("alertname", "Unknown Alert")
            )
            snapshot = {
                "status": "firing",
                "fingerprint": fingerprint,
                "labels": labels,
                "annotations": alert.get("annotations") or {},
                "startsAt": alert.get("startsAt"),
                "generatorURL": alert.get("generatorURL", ""),
            }
            active[fingerprint] = snapshot

            state = (alert.get("status") or {}).get("state", "active")
            if state == "suppressed" and not self.include_silenced:
                logger.debug("Skipping suppressed alert %s", fingerprint)
                continue
            records.append(RawRecord(data=snapshot, kind="poll"))

        # Alerts that left the active set since the last poll have resolved.
        previous = context.cursor.get("active") or {}
        ended_at = context.started_at.isoformat()
        resolved = 0
        for fingerprint, snapshot in previous.items():
            if fingerprint not in active:
                resolved += 1
                records.append(
                    RawRecord(
                        data={**snapshot, "status": "resolved", "endsAt": ended_at},
                        kind="poll",
                    )
                )

        context.next_cursor = {"active": active, "polled_at": ended_at}
        logger.info(
            "Polled %d active alerts from %s (%d resolved since last poll)",
            len(active),
            self.base_url,
            resolved,
        )
        return records

    # Push

    def validate_webhook(self, payload: dict[str, Any]) -> bool:
        """Check if this looks like an Alertmanager webhook payload."""
        required_keys = {"alerts", "status"}
        has_required = required_keys.issubset(payload.keys())

        am_keys = {"groupKey", "receiver", "groupLabels", "commonLabels"}
        has_am_keys = bool(am_keys & set(payload.keys()))

        return has_required and has_am_keys

    def records_from_webhook(self, payload: dict[str, Any]) -> list[RawRecord]:
        """
        Split an Alertmanager webhook payload into raw records.

        Raises:
            ValueError: If the payload is not an Alertmanager webhook.
        """
        if not isinstance(payload, dict) or not self.validate_webhook(payload):
            raise ValueError("Invalid Alertmanager payload")
        records = []
        for alert in payload.get("alerts", []):
            data = alert if isinstance(alert, dict) else {"raw": repr(alert)}
            records.append(RawRecord(data=data, kind="webhook"))
        return records

    # Normalization

    def normalize(self, record: RawRecord) -> SignalEvent | None:
        data = record.data
        labels = data.get("labels") or {}
        annotations = data.get("annotations") or {}

        name = labels.get("alertname", "Unknown Alert")
        fingerprint = data.get("fingerprint") or generate_fingerprint(labels, name)

        status = str(data.get("status") or "firing").lower()
        if status not in ("firing", "resolved"):
            status = "firing"

        starts_at = parse_timestamp(data.get("startsAt"))
        if starts_at is None:
            raise ValueError(f"Alert {fingerprint} has no valid startsAt")

        ends_at = None
        if status == "resolved":
            ends_at = parse_timestamp(data.get("endsAt")) or starts_at

        description = annotations.get("description", "") or annotations.get("summary", "")

        payload = {
            "scope": self.scope,
            "alert_name": name,
            "fingerprint": fingerprint,
            "severity": normalize_severity(labels.get("severity")),
            "description": description,
            "labels": labels,
            "annotations": annotations,
            "starts_at": starts_at.isoformat(),
            "ends_at": ends_at.isoformat() if ends_at else None,
            "generator_url": data.get("generatorURL", ""),
        }
        return self._event(
            event_type=f"alert.{status}",
            occurred_at=ends_at or starts_at,
            payload=payload,
        )

    def identity_fields(self, event: SignalEvent) -> dict[str, Any]:
        # startsAt distinguishes episodes; repeat notifications share it.
        return {
            "fingerprint": event.payload.get("fingerprint"),
            "starts_at": event.payload.get("starts_at"),
        }

    def time_bucket_for(self, event: SignalEvent) -> int | None:
        return None

    def derive_incident_key(self, event: SignalEvent) -> str:
        return f"{self.scope}:{event.payload.get('alert_name')}:{event.payload.get('fingerprint')}"
