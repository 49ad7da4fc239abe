"""Tests for run monitoring signals."""

from unittest.mock import MagicMock, patch

import pytest

from apps.orchestration import signals
from apps.orchestration.signals import (
    LoggingBackend,
    SignalTags,
    StatsdBackend,
    emit_run_completed,
    get_monitoring_backend,
)


@pytest.fixture
def backend():
    mock_backend = MagicMock()
    with patch.object(signals, "_backend", mock_backend):
        yield mock_backend


def test_signal_tags_to_dict():
    tags = SignalTags(
        adapter_id="alertmanager",
        adapter_type="alerting",
        scope="prod",
        token="abc",
        extra={"custom": "value"},
    )
    data = tags.to_dict()
    assert data["adapter_id"] == "alertmanager"
    assert data["adapter_type"] == "alerting"
    assert data["custom"] == "value"


def test_logging_backend_emits_structured_record(caplog):
    tags = SignalTags(adapter_id="alertmanager", adapter_type="alerting")

    with caplog.at_level("INFO", logger="apps.orchestration.signals"):
        LoggingBackend().emit("adapter.run.started", tags, extra={"k": "v"})

    record = caplog.records[-1]
    assert "[SIGNAL] adapter.run.started" in record.getMessage()
    assert record.signal_data["adapter_id"] == "alertmanager"
    assert record.signal_data["k"] == "v"


def test_emit_run_completed_emits_outcome_and_duration(backend):
    tags = SignalTags(adapter_id="alertmanager")

    emit_run_completed(tags, outcome="failed:timeout", duration_ms=12.5, events_emitted=0)

    names = [c.args[0] for c in backend.emit.call_args_list]
    assert names == ["adapter.run.completed", "adapter.run.duration"]
    assert backend.emit.call_args_list[0].kwargs["extra"]["outcome"] == "failed:timeout"
    assert backend.emit.call_args_list[1].kwargs["value"] == 12.5


@patch("statsd.StatsClient")
def test_statsd_backend_metric_names(mock_client_cls):
    client = mock_client_cls.return_value
    backend = StatsdBackend(prefix="signals")
    tags = SignalTags(adapter_id="alertmanager", adapter_type="alerting")

    backend.emit("adapter.run.completed", tags, extra={"outcome": "success"})
    backend.emit("adapter.run.duration", tags, value=42.0)

    mock_client_cls.assert_called_once_with("localhost", 8125, prefix="signals")
    client.incr.assert_called_once_with("adapter.run.completed.alerting.alertmanager.success")
    client.timing.assert_called_once_with("adapter.run.duration.alerting.alertmanager", 42.0)


def test_get_monitoring_backend(settings):
    settings.SIGNALS_METRICS_BACKEND = "logging"
    assert isinstance(get_monitoring_backend(), LoggingBackend)

    settings.SIGNALS_METRICS_BACKEND = "statsd"
    settings.STATSD_HOST = "statsd.internal"
    backend = get_monitoring_backend()
    assert isinstance(backend, StatsdBackend)
    assert backend.host == "statsd.internal"


@pytest.mark.django_db
def test_coordinator_emits_lifecycle_signals(backend, coordinator, clock):
    lease = coordinator.start_run("alertmanager")
    coordinator.start_run("alertmanager")
    clock.advance(500)
    coordinator.start_run("alertmanager")
    coordinator.end_run(lease, "success")

    names = [c.args[0] for c in backend.emit.call_args_list]
    assert names == [
        "adapter.run.started",
        "adapter.run.skipped",
        "adapter.lease.expired",
        "adapter.run.started",
        "adapter.run.completed",
        "adapter.run.duration",
    ]
