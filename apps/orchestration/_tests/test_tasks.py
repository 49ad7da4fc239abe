"""Tests for the Celery tasks and beat schedule."""

import pytest

from apps.orchestration.models import AdapterSlot
from apps.orchestration.tasks import expire_stale_leases, ingest_webhook, run_adapter
from config.celery import build_beat_schedule


@pytest.mark.django_db
def test_run_adapter_task_returns_record(signal_adapters, alertmanager):
    alertmanager.fire()

    result = run_adapter("alertmanager")

    assert result["adapter_id"] == "alertmanager"
    assert result["status"] == "success"
    assert result["events_emitted"] == 1
    assert len(result["ingestion"]["event_ids"]) == 1


@pytest.mark.django_db
def test_run_adapter_task_never_raises(signal_adapters):
    result = run_adapter("missing")

    assert result["status"] == "failed"
    assert result["error_kind"] == "permanent"


@pytest.mark.django_db
def test_expire_stale_leases_task():
    AdapterSlot.objects.create(
        adapter_id="alertmanager",
        lease_token="stale",
        acquired_at="2024-01-08T10:00:00Z",
        expires_at="2024-01-08T10:02:00Z",
    )

    assert expire_stale_leases() == {"expired": ["alertmanager"]}
    slot = AdapterSlot.objects.get(adapter_id="alertmanager")
    assert not slot.is_leased
    assert slot.last_error_kind == "timeout"


@pytest.mark.django_db
def test_ingest_webhook_task(signal_adapters):
    payload = {
        "receiver": "signals",
        "status": "firing",
        "groupKey": "g",
        "alerts": [
            {
                "status": "firing",
                "labels": {"alertname": "HighLatency"},
                "startsAt": "2024-01-08T10:00:00Z",
                "fingerprint": "abc123",
            }
        ],
    }

    result = ingest_webhook("alertmanager", payload)

    assert result["status"] == "success"
    assert result["appended"] == 1


@pytest.mark.django_db
def test_ingest_webhook_task_rejects_bad_payload(signal_adapters):
    result = ingest_webhook("alertmanager", {"nope": True})

    assert result["status"] == "error"


def test_build_beat_schedule():
    schedule = build_beat_schedule(
        {
            "alertmanager": {"type": "alerting", "interval_seconds": 60},
            "host": {"type": "host"},
            "paused": {"type": "alerting", "enabled": False},
        },
        sweep_seconds=30,
    )

    assert set(schedule) == {
        "expire-stale-leases",
        "run-adapter-alertmanager",
        "run-adapter-host",
    }
    assert schedule["expire-stale-leases"]["schedule"] == 30.0
    assert schedule["run-adapter-alertmanager"]["schedule"] == 60.0
    assert schedule["run-adapter-host"]["schedule"] == 300.0
    assert schedule["run-adapter-host"]["args"] == ("host",)
