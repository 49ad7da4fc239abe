"""
Quarantine policy for model routing candidates.

A (model, capability) pair is quarantined once its rolling error rate or 429
rate over a trailing window crosses a threshold. It is released only after
``release_after`` consecutive good probes on *every* capability of that model,
counted from the moment it was quarantined.

The policy only proposes transitions. The quarantined set changes through
``apply()``, which the model-health adapter calls when the corresponding
``pool.health_changed`` event has been appended, so every promotion and
demotion is visible in the event stream.
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timedelta

QUARANTINED = "quarantined"
RELEASED = "released"

OK = "ok"
ERROR = "error"
RATE_LIMITED = "rate_limited"

DEFAULT_CAPABILITIES = ("tool_use", "streaming")

Pair = tuple[str, str]


@dataclass(frozen=True)
class PoolDecision:
    """A proposed change to the routable pool."""

    model_id: str
    capability: str
    transition: str
    reason: str
    error_rate: float = 0.0
    rate_limit_rate: float = 0.0
    samples: int = 0
    good_probes: int = 0


class QuarantinePolicy:
    """
    Hysteresis policy over probe outcomes.

    Args:
        window_seconds: Trailing window (event time) for error/429 rates.
        min_samples: Minimum samples in the window before rates are judged.
        error_rate_threshold: Error fraction that triggers quarantine.
        rate_limit_threshold: 429 fraction that triggers quarantine.
        release_after: Consecutive good probes required per capability.
        capabilities: Capabilities that must all be healthy for release.
    """

    def __init__(
        self,
        window_seconds: int = 900,
        min_samples: int = 3,
        error_rate_threshold: float = 0.5,
        rate_limit_threshold: float = 0.5,
        release_after: int = 3,
        capabilities: tuple[str, ...] = DEFAULT_CAPABILITIES,
    ) -> None:
        if release_after < 1:
            raise ValueError("release_after must be at least 1")
        self.window_seconds = int(window_seconds)
        self.min_samples = int(min_samples)
        self.error_rate_threshold = float(error_rate_threshold)
        self.rate_limit_threshold = float(rate_limit_threshold)
        self.release_after = int(release_after)
        self.capabilities = tuple(capabilities)

        self.samples: dict[Pair, deque[tuple[datetime, str]]] = defaultdict(deque)
        self.streaks: dict[Pair, int] = defaultdict(int)
        self.quarantined: set[Pair] = set()

    # Bookkeeping

    def record(self, model_id: str, capability: str, outcome: str, occurred_at: datetime) -> None:
        """Add one probe outcome to the window and the good-probe streak."""
        pair = (model_id, capability)
        window = self.samples[pair]
        window.append((occurred_at, outcome))
        self._prune(pair, occurred_at)

        if outcome == OK:
            self.streaks[pair] += 1
        else:
            self.streaks[pair] = 0

    def _prune(self, pair: Pair, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.window_seconds)
        window = self.samples[pair]
        # Samples may arrive out of order; keep anything inside the window.
        kept = [sample for sample in window if sample[0] >= cutoff]
        if len(kept) != len(window):
            self.samples[pair] = deque(kept)

    def rates(self, model_id: str, capability: str) -> tuple[float, float, int]:
        """Return (error_rate, rate_limit_rate, sample_count) for a pair."""
        window = self.samples.get((model_id, capability)) or ()
        total = len(window)
        if not total:
            return 0.0, 0.0, 0
        errors = sum(1 for _, outcome in window if outcome == ERROR)
        limited = sum(1 for _, outcome in window if outcome == RATE_LIMITED)
        return errors / total, limited / total, total

    def is_quarantined(self, model_id: str, capability: str | None = None) -> bool:
        if capability is not None:
            return (model_id, capability) in self.quarantined
        return any((model_id, cap) in self.quarantined for cap in self.capabilities)

    def routable(self, models: list[str], assume: PoolDecision | None = None) -> list[str]:
        """Models with no quarantined capability, optionally as if ``assume`` applied."""
        quarantined = set(self.quarantined)
        if assume is not None:
            pair = (assume.model_id, assume.capability)
            if assume.transition == QUARANTINED:
                quarantined.add(pair)
            else:
                quarantined.discard(pair)
        return [
            model
            for model in models
            if not any((model, cap) in quarantined for cap in self.capabilities)
        ]

    # Decisions

    def observe(
        self,
        model_id: str,
        capability: str,
        outcome: str,
        occurred_at: datetime,
    ) -> list[PoolDecision]:
        """Record an outcome and return any transitions it triggers."""
        self.record(model_id, capability, outcome, occurred_at)
        return self.evaluate(model_id, capability)

    def evaluate(self, model_id: str, capability: str) -> list[PoolDecision]:
        pair = (model_id, capability)
        decisions = []

        # Quarantine is only considered right after a failed probe.
        if pair not in self.quarantined and self.streaks[pair] == 0:
            error_rate, limit_rate, total = self.rates(model_id, capability)
            if total >= self.min_samples:
                reason = ""
                if error_rate >= self.error_rate_threshold:
                    reason = f"error rate {error_rate:.0%} over {total} probes"
                elif limit_rate >= self.rate_limit_threshold:
                    reason = f"429 rate {limit_rate:.0%} over {total} probes"
                if reason:
                    decisions.append(
                        PoolDecision(
                            model_id=model_id,
                            capability=capability,
                            transition=QUARANTINED,
                            reason=reason,
                            error_rate=round(error_rate, 4),
                            rate_limit_rate=round(limit_rate, 4),
                            samples=total,
                            good_probes=self.streaks[pair],
                        )
                    )

        if not self.is_quarantined(model_id):
            return decisions

        good = min(self.streaks[(model_id, cap)] for cap in self.capabilities)
        if good < self.release_after:
            return decisions

        for cap in self.capabilities:
            if (model_id, cap) not in self.quarantined:
                continue
            error_rate, limit_rate, total = self.rates(model_id, cap)
            decisions.append(
                PoolDecision(
                    model_id=model_id,
                    capability=cap,
                    transition=RELEASED,
                    reason=(
                        f"{good} consecutive good probes on "
                        f"{', '.join(self.capabilities)}"
                    ),
                    error_rate=round(error_rate, 4),
                    rate_limit_rate=round(limit_rate, 4),
                    samples=total,
                    good_probes=good,
                )
            )
        return decisions

    def apply(self, model_id: str, capability: str, transition: str) -> None:
        """Apply a transition that has been committed to the event stream."""
        pair = (model_id, capability)
        if transition == QUARANTINED:
            self.quarantined.add(pair)
            # Recovery is counted from the moment of quarantine.
            for cap in self.capabilities:
                self.streaks[(model_id, cap)] = 0
        elif transition == RELEASED:
            self.quarantined.discard(pair)
            self.samples.pop(pair, None)
        else:
            raise ValueError(f"Unknown pool transition: {transition}")
