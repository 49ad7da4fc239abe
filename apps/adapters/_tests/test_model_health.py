import time
from datetime import datetime, timedelta, timezone as dt_tz
from unittest.mock import MagicMock

import httpx
from django.test import SimpleTestCase, TestCase
from openai import APIConnectionError, AuthenticationError, RateLimitError

from apps.adapters.base import ProbeContext, RawRecord
from apps.adapters.exceptions import PermanentProbeError, ProbeTimeout, TransientProbeError
from apps.adapters.model_health import ModelHealthAdapter
from apps.events.models import StoredEvent
from apps.events.sink import EventSink
from apps.incidents.models import Incident, IncidentStatus
from apps.incidents.services import IncidentQueryService
from apps.orchestration.ingest import IngestionService

T0 = datetime(2024, 1, 8, 10, 0, tzinfo=dt_tz.utc)
REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat/completions")


class FakeStream:
    def __init__(self, contents):
        self.chunks = [
            MagicMock(choices=[MagicMock(delta=MagicMock(content=content))])
            for content in contents
        ]
        self.closed = False

    def __iter__(self):
        return iter(self.chunks)

    def close(self):
        self.closed = True


def tool_response(with_call=True):
    message = MagicMock()
    message.tool_calls = [MagicMock()] if with_call else None
    return MagicMock(choices=[MagicMock(message=message)])


def make_client(*responses):
    client = MagicMock()
    client.with_options.return_value = client
    client.chat.completions.create.side_effect = list(responses)
    return client


def make_context(timeout=60):
    return ProbeContext(adapter_id="model-health", deadline=time.monotonic() + timeout)


def probe_record(model_id, capability, outcome, probed_at):
    return RawRecord(
        data={
            "model_id": model_id,
            "capability": capability,
            "outcome": outcome,
            "latency_ms": 120.0,
            "error": "" if outcome == "ok" else "boom",
            "probed_at": probed_at.isoformat(),
        },
        kind="probe",
    )


class ModelHealthProbeTests(SimpleTestCase):
    def setUp(self):
        self.adapter = ModelHealthAdapter("model-health", models=["gpt-4o"])

    def test_healthy_model(self):
        stream = FakeStream(["po", "ng"])
        self.adapter._client = make_client(tool_response(), stream)

        records = self.adapter.probe(make_context())

        self.assertEqual([r.data["capability"] for r in records], ["tool_use", "streaming"])
        self.assertEqual([r.data["outcome"] for r in records], ["ok", "ok"])
        self.assertTrue(stream.closed)

        create = self.adapter._client.chat.completions.create
        self.assertEqual(create.call_args_list[0].kwargs["tool_choice"], "required")
        self.assertTrue(create.call_args_list[1].kwargs["stream"])

    def test_capability_failures(self):
        self.adapter._client = make_client(tool_response(with_call=False), FakeStream([None]))

        records = self.adapter.probe(make_context())

        self.assertEqual([r.data["outcome"] for r in records], ["error", "error"])
        self.assertEqual(records[0].data["error_kind"], "capability")
        self.assertIn("no tool call", records[0].data["error"])

    def test_rate_limited(self):
        rate_limited = RateLimitError(
            "Too many requests",
            response=httpx.Response(429, request=REQUEST),
            body=None,
        )
        self.adapter._client = make_client(rate_limited, FakeStream(["pong"]))

        records = self.adapter.probe(make_context())

        self.assertEqual(records[0].data["outcome"], "rate_limited")
        self.assertEqual(records[1].data["outcome"], "ok")

    def test_unreachable_endpoint_is_transient(self):
        error = APIConnectionError(request=REQUEST)
        self.adapter._client = make_client(error, error)

        with self.assertRaises(TransientProbeError):
            self.adapter.probe(make_context())

    def test_rejected_credentials_are_permanent(self):
        error = AuthenticationError(
            "Invalid API key",
            response=httpx.Response(401, request=REQUEST),
            body=None,
        )
        self.adapter._client = make_client(error)

        with self.assertRaises(PermanentProbeError):
            self.adapter.probe(make_context())

    def test_no_models_configured(self):
        with self.assertRaises(PermanentProbeError):
            ModelHealthAdapter("model-health").probe(make_context())

    def test_deadline_stops_probe(self):
        self.adapter._client = make_client()

        with self.assertRaises(ProbeTimeout):
            self.adapter.probe(make_context(timeout=-1))
        self.adapter._client.chat.completions.create.assert_not_called()


class ModelHealthNormalizeTests(SimpleTestCase):
    def setUp(self):
        self.adapter = ModelHealthAdapter("model-health", models=["gpt-4o"])

    def test_outcome_maps_to_event_type(self):
        expected = {
            "ok": ("probe.ok", "info"),
            "error": ("probe.degraded", "warning"),
            "rate_limited": ("probe.rate_limited", "warning"),
        }
        for outcome, (event_type, severity) in expected.items():
            with self.subTest(outcome=outcome):
                event = self.adapter.normalize(probe_record("gpt-4o", "tool_use", outcome, T0))
                self.assertEqual(event.type, event_type)
                self.assertEqual(event.payload["severity"], severity)
                self.assertEqual(event.occurred_at, T0)

    def test_unknown_outcome(self):
        with self.assertRaises(ValueError):
            self.adapter.normalize(probe_record("gpt-4o", "tool_use", "meh", T0))

    def test_payload_carries_quarantine_state(self):
        self.adapter.policy.apply("gpt-4o", "tool_use", "quarantined")

        tool_use = self.adapter.normalize(probe_record("gpt-4o", "tool_use", "ok", T0))
        streaming = self.adapter.normalize(probe_record("gpt-4o", "streaming", "ok", T0))

        self.assertTrue(tool_use.payload["quarantined"])
        self.assertFalse(streaming.payload["quarantined"])

    def test_incident_key(self):
        event = self.adapter.finalize(
            self.adapter.normalize(probe_record("gpt-4o", "streaming", "ok", T0))
        )
        self.assertEqual(event.incident_key, "prod:model_health:gpt-4o:streaming")

    def test_probes_in_same_bucket_share_id(self):
        first = self.adapter.finalize(
            self.adapter.normalize(probe_record("gpt-4o", "tool_use", "ok", T0))
        )
        second = self.adapter.finalize(
            self.adapter.normalize(
                probe_record("gpt-4o", "tool_use", "ok", T0 + timedelta(seconds=60))
            )
        )
        later = self.adapter.finalize(
            self.adapter.normalize(
                probe_record("gpt-4o", "tool_use", "ok", T0 + timedelta(seconds=300))
            )
        )
        self.assertEqual(first.id, second.id)
        self.assertNotEqual(first.id, later.id)


class ModelHealthQuarantineTests(TestCase):
    """Probe outcomes flowing through ingestion drive pool transitions."""

    def setUp(self):
        self.adapter = ModelHealthAdapter("model-health", models=["gpt-4o", "gpt-4o-mini"])
        self.service = IngestionService(self.adapter, EventSink())

    def ingest(self, *records):
        return self.service.ingest(records)

    def at(self, step):
        # Probes are five minutes apart so each lands in its own ID bucket.
        return T0 + timedelta(seconds=300 * step)

    def quarantine_tool_use(self):
        for step in range(3):
            self.ingest(probe_record("gpt-4o", "tool_use", "error", self.at(step)))

    def test_degraded_probes_quarantine_pair(self):
        self.quarantine_tool_use()

        pool_events = StoredEvent.objects.filter(event_type="pool.health_changed")
        self.assertEqual(pool_events.count(), 1)
        pool = pool_events.get()
        self.assertEqual(pool.payload["transition"], "quarantined")
        self.assertEqual(pool.payload["routable_models"], ["gpt-4o-mini"])
        self.assertEqual(pool.occurred_at, self.at(2))
        self.assertTrue(self.adapter.policy.is_quarantined("gpt-4o", "tool_use"))
        self.assertEqual(self.adapter.routable_models(), ["gpt-4o-mini"])

        incident = Incident.objects.get(incident_key="prod:model_health:gpt-4o:tool_use")
        self.assertEqual(incident.status, IncidentStatus.FIRING)
        self.assertEqual(incident.event_count, 4)

    def test_duplicate_probe_does_not_count_twice(self):
        self.ingest(probe_record("gpt-4o", "tool_use", "error", self.at(0)))
        result = self.ingest(probe_record("gpt-4o", "tool_use", "error", self.at(0)))

        self.assertEqual(result.duplicates, 1)
        self.assertEqual(self.adapter.policy.rates("gpt-4o", "tool_use")[2], 1)

    def test_release_after_consecutive_good_probes(self):
        self.quarantine_tool_use()

        for step in (3, 4):
            self.ingest(
                probe_record("gpt-4o", "tool_use", "ok", self.at(step)),
                probe_record("gpt-4o", "streaming", "ok", self.at(step)),
            )
        self.assertTrue(self.adapter.policy.is_quarantined("gpt-4o", "tool_use"))

        result = self.ingest(
            probe_record("gpt-4o", "tool_use", "ok", self.at(5)),
            probe_record("gpt-4o", "streaming", "ok", self.at(5)),
        )

        self.assertEqual(result.appended, 3)
        self.assertFalse(self.adapter.policy.is_quarantined("gpt-4o"))
        released = StoredEvent.objects.filter(event_type="pool.health_changed").last()
        self.assertEqual(released.payload["transition"], "released")
        self.assertEqual(released.payload["routable_models"], ["gpt-4o", "gpt-4o-mini"])

        incident = Incident.objects.get(incident_key="prod:model_health:gpt-4o:tool_use")
        self.assertEqual(incident.status, IncidentStatus.RESOLVED)

    def test_ok_resolves_incident_without_quarantine(self):
        self.ingest(probe_record("gpt-4o", "tool_use", "error", self.at(0)))
        key = "prod:model_health:gpt-4o:tool_use"
        self.assertEqual(Incident.objects.get(incident_key=key).status, IncidentStatus.FIRING)

        self.ingest(probe_record("gpt-4o", "tool_use", "ok", self.at(1)))

        self.assertEqual(Incident.objects.get(incident_key=key).status, IncidentStatus.RESOLVED)
        self.assertFalse(IncidentQueryService.active().filter(incident_key=key).exists())

    def test_ok_while_quarantined_keeps_incident_firing(self):
        self.quarantine_tool_use()

        self.ingest(
            probe_record("gpt-4o", "tool_use", "ok", self.at(3)),
            probe_record("gpt-4o", "streaming", "ok", self.at(3)),
        )

        incident = Incident.objects.get(incident_key="prod:model_health:gpt-4o:tool_use")
        self.assertEqual(incident.status, IncidentStatus.FIRING)

    def test_release_streak_survives_restore_between_runs(self):
        # Five good probes take longer than the 900s window to accumulate.
        options = {"models": ["gpt-4o"], "release_after": 5}
        self.adapter = ModelHealthAdapter("model-health", **options)
        self.service = IngestionService(self.adapter, EventSink())
        self.quarantine_tool_use()

        for step in range(3, 8):
            self.assertTrue(self.adapter.policy.is_quarantined("gpt-4o", "tool_use"))
            self.adapter.restore(EventSink())
            self.ingest(
                probe_record("gpt-4o", "tool_use", "ok", self.at(step)),
                probe_record("gpt-4o", "streaming", "ok", self.at(step)),
            )

        self.assertFalse(self.adapter.policy.is_quarantined("gpt-4o"))
        released = StoredEvent.objects.filter(event_type="pool.health_changed").last()
        self.assertEqual(released.payload["transition"], "released")
        self.assertEqual(released.payload["good_probes"], 5)

    def test_restore_mid_recovery_keeps_streak(self):
        self.quarantine_tool_use()
        for step in (3, 4):
            self.ingest(
                probe_record("gpt-4o", "tool_use", "ok", self.at(step)),
                probe_record("gpt-4o", "streaming", "ok", self.at(step)),
            )

        fresh = ModelHealthAdapter("model-health", models=["gpt-4o", "gpt-4o-mini"])
        fresh.restore(EventSink())

        self.assertTrue(fresh.policy.is_quarantined("gpt-4o", "tool_use"))
        self.assertEqual(fresh.policy.streaks[("gpt-4o", "tool_use")], 2)
        self.assertEqual(fresh.policy.streaks[("gpt-4o", "streaming")], 2)

    def test_restore_rebuilds_quarantine(self):
        self.quarantine_tool_use()

        fresh = ModelHealthAdapter("model-health", models=["gpt-4o", "gpt-4o-mini"])
        self.assertFalse(fresh.policy.is_quarantined("gpt-4o"))

        fresh.restore(EventSink())

        self.assertTrue(fresh.policy.is_quarantined("gpt-4o", "tool_use"))
        self.assertEqual(fresh.routable_models(), ["gpt-4o-mini"])

    def test_restore_after_release(self):
        self.quarantine_tool_use()
        for step in (3, 4, 5):
            self.ingest(
                probe_record("gpt-4o", "tool_use", "ok", self.at(step)),
                probe_record("gpt-4o", "streaming", "ok", self.at(step)),
            )

        fresh = ModelHealthAdapter("model-health", models=["gpt-4o"])
        fresh.restore(EventSink())

        self.assertFalse(fresh.policy.is_quarantined("gpt-4o"))
