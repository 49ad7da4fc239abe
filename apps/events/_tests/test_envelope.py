"""Tests for the SignalEvent envelope and its wire shape."""

from datetime import datetime, timezone as dt_tz

from django.test import SimpleTestCase

from apps.events.envelope import SPEC_VERSION, SignalEvent, parse_timestamp


class ParseTimestampTests(SimpleTestCase):
    def test_rfc3339_with_z(self):
        parsed = parse_timestamp("2024-01-08T10:30:00.000Z")
        self.assertEqual(parsed, datetime(2024, 1, 8, 10, 30, tzinfo=dt_tz.utc))

    def test_naive_is_assumed_utc(self):
        parsed = parse_timestamp("2024-01-08T10:30:00")
        self.assertEqual(parsed.tzinfo, dt_tz.utc)

    def test_datetime_passthrough(self):
        moment = datetime(2024, 1, 8, tzinfo=dt_tz.utc)
        self.assertEqual(parse_timestamp(moment), moment)

    def test_garbage_returns_none(self):
        self.assertIsNone(parse_timestamp("not-a-date"))
        self.assertIsNone(parse_timestamp(""))
        self.assertIsNone(parse_timestamp(None))


class SignalEventTests(SimpleTestCase):
    def setUp(self):
        self.event = SignalEvent(
            source="alertmanager",
            type="alert.firing",
            occurred_at=datetime(2024, 1, 8, 10, 0, tzinfo=dt_tz.utc),
            payload={"alert_name": "HighLatency", "fingerprint": "abc123"},
            id="e1",
            incident_key="prod:HighLatency:abc123",
        )

    def test_family(self):
        self.assertEqual(self.event.family, "alert")

    def test_with_identity_returns_copy(self):
        updated = self.event.with_identity("e2", "k2")
        self.assertEqual(updated.id, "e2")
        self.assertEqual(updated.incident_key, "k2")
        self.assertEqual(self.event.id, "e1")

    def test_cloudevent_shape(self):
        wire = self.event.to_cloudevent()
        self.assertEqual(
            set(wire),
            {"specversion", "id", "source", "type", "time", "datacontenttype", "data", "incident_key"},
        )
        self.assertEqual(wire["specversion"], SPEC_VERSION)
        self.assertEqual(wire["time"], "2024-01-08T10:00:00+00:00")
        self.assertEqual(wire["incident_key"], "prod:HighLatency:abc123")

    def test_from_cloudevent_restores_event(self):
        self.assertEqual(SignalEvent.from_cloudevent(self.event.to_cloudevent()), self.event)

    def test_from_cloudevent_requires_time(self):
        with self.assertRaises(ValueError):
            SignalEvent.from_cloudevent({"id": "x", "source": "s", "type": "alert.firing"})
