"""Shared test fixtures for orchestration app."""

import json
from datetime import datetime, timedelta, timezone as dt_tz
from unittest.mock import MagicMock, patch

import pytest

from apps.orchestration.coordinator import RunCoordinator

T0 = datetime(2024, 1, 8, 10, 0, tzinfo=dt_tz.utc)


class FakeClock:
    """Settable wall clock for driving lease expiry."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeAlertmanager:
    """Serves a settable alert list through a patched urlopen."""

    def __init__(self, mock_urlopen):
        self.alerts = []
        self.mock_urlopen = mock_urlopen
        mock_urlopen.side_effect = self._respond

    def _respond(self, request, timeout=None):
        mock_resp = MagicMock()
        mock_resp.read.return_value = json.dumps(self.alerts).encode("utf-8")
        mock_resp.getcode.return_value = 200
        mock_resp.__enter__ = MagicMock(return_value=mock_resp)
        mock_resp.__exit__ = MagicMock(return_value=False)
        return mock_resp

    def fire(self, fingerprint="abc123", name="HighLatency", starts_at=T0, severity="critical"):
        self.alerts.append(
            {
                "fingerprint": fingerprint,
                "labels": {"alertname": name, "severity": severity},
                "annotations": {"summary": f"{name} is firing"},
                "startsAt": starts_at.isoformat(),
                "endsAt": (starts_at + timedelta(hours=1)).isoformat(),
                "generatorURL": "http://prometheus/graph",
                "status": {"state": "active", "silencedBy": [], "inhibitedBy": []},
            }
        )

    def clear(self):
        self.alerts = []


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coordinator(db, clock):
    return RunCoordinator(clock=clock)


@pytest.fixture
def signal_adapters(settings):
    """Configure one alerting adapter, one disabled adapter and one misconfigured adapter."""
    settings.SIGNAL_ADAPTERS = {
        "alertmanager": {
            "type": "alerting",
            "base_url": "http://alertmanager:9093",
            "timeout_seconds": 120,
        },
        "paused": {"type": "alerting", "base_url": "http://am:9093", "enabled": False},
        "broken": {"type": "alerting"},
    }
    return settings.SIGNAL_ADAPTERS


@pytest.fixture
def alertmanager():
    with patch("apps.adapters.http.urllib.request.urlopen") as mock_urlopen:
        yield FakeAlertmanager(mock_urlopen)
