"""
Model health probe adapter.

Probes each configured model on an OpenAI-compatible endpoint for two
capabilities (tool use and streaming), emits ``probe.ok`` /
``probe.degraded`` / ``probe.rate_limited`` per check, and maintains a
quarantine policy whose promotions and demotions are emitted as
``pool.health_changed`` events.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Any

from django.utils import timezone
from openai import (
    APIConnectionError,
    APIStatusError,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
)

from apps.adapters.base import BaseSourceAdapter, ProbeContext, RawRecord
from apps.adapters.exceptions import PermanentProbeError, TransientProbeError
from apps.adapters.quarantine import (
    DEFAULT_CAPABILITIES,
    QUARANTINED,
    PoolDecision,
    QuarantinePolicy,
)
from apps.events.envelope import SignalEvent, parse_timestamp

logger = logging.getLogger(__name__)

POOL_EVENT_TYPE = "pool.health_changed"

# Probe outcome -> (event type, severity)
OUTCOME_EVENTS = {
    "ok": ("probe.ok", "info"),
    "error": ("probe.degraded", "warning"),
    "rate_limited": ("probe.rate_limited", "warning"),
}

TOOL_CHECK_TOOL = {
    "type": "function",
    "function": {
        "name": "get_current_time",
        "description": "Return the current time in a timezone.",
        "parameters": {
            "type": "object",
            "properties": {"timezone": {"type": "string"}},
            "required": ["timezone"],
        },
    },
}


class CapabilityCheckFailed(Exception):
    """The model answered but did not exercise the capability under test."""


class ModelHealthAdapter(BaseSourceAdapter):
    """
    Adapter that health-checks LLM routing candidates.

    Options:
        models: Model IDs to probe.
        base_url: OpenAI-compatible API base URL (None for api.openai.com).
        api_key: API key (falls back to OPENAI_API_KEY).
        request_timeout_seconds: Per-request timeout (default 30).
        window_seconds, min_samples, error_rate_threshold,
        rate_limit_threshold, release_after: QuarantinePolicy knobs.
    """

    name = "model_health"
    event_families = ("probe", "pool")

    def __init__(
        self,
        adapter_id: str,
        models: list[str] | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        request_timeout_seconds: float = 30.0,
        window_seconds: int = 900,
        min_samples: int = 3,
        error_rate_threshold: float = 0.5,
        rate_limit_threshold: float = 0.5,
        release_after: int = 3,
        **kwargs: Any,
    ) -> None:
        super().__init__(adapter_id, **kwargs)
        self.models = list(models or [])
        self.base_url = base_url or None
        self.api_key = api_key or None
        self.request_timeout_seconds = float(request_timeout_seconds)
        self.capabilities = DEFAULT_CAPABILITIES
        self.policy_options = {
            "window_seconds": window_seconds,
            "min_samples": min_samples,
            "error_rate_threshold": error_rate_threshold,
            "rate_limit_threshold": rate_limit_threshold,
            "release_after": release_after,
        }
        self.policy = self._build_policy()
        self._client = None

    def _build_policy(self) -> QuarantinePolicy:
        return QuarantinePolicy(capabilities=self.capabilities, **self.policy_options)

    @property
    def client(self):
        """Lazy-initialize the OpenAI client."""
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                max_retries=0,
            )
        return self._client

    # Probe

    def probe(self, context: ProbeContext) -> list[RawRecord]:
        if not self.models:
            raise PermanentProbeError(f"Adapter {self.adapter_id} has no models configured")

        records = []
        for model_id in self.models:
            for capability in self.capabilities:
                context.check()
                records.append(self._probe_capability(context, model_id, capability))

        if all(r.data.get("error_kind") == "connection" for r in records):
            raise TransientProbeError(
                f"Could not reach {self.base_url or 'OpenAI API'}: "
                f"{records[0].data.get('error', '')}"
            )
        return records

    def _probe_capability(self, context: ProbeContext, model_id: str, capability: str) -> RawRecord:
        outcome = "ok"
        error = ""
        error_kind = ""
        start = time.perf_counter()
        try:
            if capability == "tool_use":
                self._check_tool_use(context, model_id)
            else:
                self._check_streaming(context, model_id)
        except RateLimitError as e:
            outcome, error, error_kind = "rate_limited", str(e), "rate_limited"
        except (AuthenticationError, PermissionDeniedError) as e:
            raise PermanentProbeError(f"Credentials rejected for {model_id}: {e}") from e
        except APIConnectionError as e:
            outcome, error, error_kind = "error", str(e), "connection"
        except APIStatusError as e:
            outcome, error, error_kind = "error", f"HTTP {e.status_code}: {e}", "status"
        except CapabilityCheckFailed as e:
            outcome, error, error_kind = "error", str(e), "capability"

        latency_ms = round((time.perf_counter() - start) * 1000, 1)
        if outcome != "ok":
            logger.warning("Probe %s/%s %s: %s", model_id, capability, outcome, error)

        return RawRecord(
            data={
                "model_id": model_id,
                "capability": capability,
                "outcome": outcome,
                "latency_ms": latency_ms,
                "error": error,
                "error_kind": error_kind,
                "probed_at": timezone.now().isoformat(),
            },
            kind="probe",
        )

    def _request_timeout(self, context: ProbeContext) -> float:
        return max(0.001, min(self.request_timeout_seconds, context.remaining()))

    def _check_tool_use(self, context: ProbeContext, model_id: str) -> None:
        response = self.client.with_options(
            timeout=self._request_timeout(context)
        ).chat.completions.create(
            model=model_id,
            messages=[{"role": "user", "content": "What time is it in UTC? Use the tool."}],
            tools=[TOOL_CHECK_TOOL],
            tool_choice="required",
            max_tokens=64,
        )
        choices = response.choices or []
        if not choices or not choices[0].message.tool_calls:
            raise CapabilityCheckFailed("response contained no tool call")

    def _check_streaming(self, context: ProbeContext, model_id: str) -> None:
        stream = self.client.with_options(
            timeout=self._request_timeout(context)
        ).chat.completions.create(
            model=model_id,
            messages=[{"role": "user", "content": "Reply with the word: pong"}],
            stream=True,
            max_tokens=16,
        )
        chunks = 0
        try:
            for chunk in stream:
                context.check()
                if chunk.choices and chunk.choices[0].delta.content:
                    chunks += 1
        finally:
            stream.close()
        if not chunks:
            raise CapabilityCheckFailed("stream produced no content")

    # Normalization

    def normalize(self, record: RawRecord) -> SignalEvent | None:
        data = record.data
        outcome = data.get("outcome")
        if outcome not in OUTCOME_EVENTS:
            raise ValueError(f"Unknown probe outcome: {outcome!r}")

        occurred_at = parse_timestamp(data.get("probed_at"))
        if occurred_at is None:
            raise ValueError(f"Probe record has no valid probed_at: {data.get('probed_at')!r}")

        event_type, severity = OUTCOME_EVENTS[outcome]
        model_id = data.get("model_id")
        capability = data.get("capability")
        return self._event(
            event_type=event_type,
            occurred_at=occurred_at,
            payload={
                "scope": self.scope,
                "model_id": model_id,
                "capability": capability,
                "outcome": outcome,
                "severity": severity,
                "latency_ms": data.get("latency_ms"),
                "error": data.get("error", ""),
                "quarantined": self.policy.is_quarantined(model_id, capability),
            },
        )

    def identity_fields(self, event: SignalEvent) -> dict[str, Any]:
        identity = {
            "model_id": event.payload.get("model_id"),
            "capability": event.payload.get("capability"),
        }
        if event.type == POOL_EVENT_TYPE:
            identity["transition"] = event.payload.get("transition")
            identity["trigger_event_id"] = event.payload.get("trigger_event_id")
        return identity

    def time_bucket_for(self, event: SignalEvent) -> int | None:
        # Pool transitions are identified by the probe that triggered them.
        if event.type == POOL_EVENT_TYPE:
            return None
        return super().time_bucket_for(event)

    def derive_incident_key(self, event: SignalEvent) -> str:
        return (
            f"{self.scope}:model_health:"
            f"{event.payload.get('model_id')}:{event.payload.get('capability')}"
        )

    # Quarantine

    def observe(self, event: SignalEvent) -> list[SignalEvent]:
        payload = event.payload
        if event.type == POOL_EVENT_TYPE:
            self.policy.apply(payload["model_id"], payload["capability"], payload["transition"])
            logger.info(
                "Model %s/%s %s (%s)",
                payload["model_id"],
                payload["capability"],
                payload["transition"],
                payload.get("reason", ""),
            )
            return []

        if event.family != "probe":
            return []

        decisions = self.policy.observe(
            payload["model_id"],
            payload["capability"],
            payload["outcome"],
            event.occurred_at,
        )
        return [self._pool_event(decision, event) for decision in decisions]

    def _pool_event(self, decision: PoolDecision, trigger: SignalEvent) -> SignalEvent:
        return self._event(
            event_type=POOL_EVENT_TYPE,
            occurred_at=trigger.occurred_at,
            payload={
                "scope": self.scope,
                "model_id": decision.model_id,
                "capability": decision.capability,
                "transition": decision.transition,
                "reason": decision.reason,
                "severity": "warning" if decision.transition == QUARANTINED else "info",
                "error_rate": decision.error_rate,
                "rate_limit_rate": decision.rate_limit_rate,
                "samples": decision.samples,
                "good_probes": decision.good_probes,
                "trigger_event_id": trigger.id,
                "routable_models": self.policy.routable(self.models, assume=decision),
            },
        )

    def restore(self, sink) -> None:
        """
        Rebuild quarantine state from this adapter's stored events.

        Probes are replayed from the start of the trailing window, or from the
        oldest still-active quarantine when that is earlier, so release
        streaks longer than the window survive a restore.
        """
        self.policy = self._build_policy()
        since = timezone.now() - timedelta(seconds=self.policy.window_seconds)
        active = self._active_quarantines(sink)
        if active:
            since = min(since, min(active.values()))

        replayed = 0
        for event in sink.replay(self.source, since=since, pinned_types=[POOL_EVENT_TYPE]):
            payload = event.payload
            if event.type == POOL_EVENT_TYPE:
                self.policy.apply(payload["model_id"], payload["capability"], payload["transition"])
            elif event.family == "probe":
                self.policy.record(
                    payload["model_id"],
                    payload["capability"],
                    payload["outcome"],
                    event.occurred_at,
                )
            replayed += 1
        logger.debug("Restored quarantine state for %s from %d events", self.source, replayed)

    def _active_quarantines(self, sink) -> dict[tuple[str, str], datetime]:
        """Pairs quarantined and not yet released, with their quarantine time."""
        active = {}
        for event in sink.replay(self.source, event_types=[POOL_EVENT_TYPE]):
            pair = (event.payload["model_id"], event.payload["capability"])
            if event.payload["transition"] == QUARANTINED:
                active[pair] = event.occurred_at
            else:
                active.pop(pair, None)
        return active

    def routable_models(self) -> list[str]:
        return self.policy.routable(self.models)
