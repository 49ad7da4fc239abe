"""Probe error taxonomy for source adapters.

- TransientProbeError: network/backend hiccup, retried on the next scheduled tick
- PermanentProbeError: misconfiguration or incompatible upstream schema
- ProbeTimeout: the run deadline passed (or the run was cancelled)
"""


class ProbeError(Exception):
    """Base class for failures raised by ``probe()``."""

    retryable: bool = False
    kind: str = "error"


class TransientProbeError(ProbeError):
    """Timeout, 5xx, connection reset and similar recoverable failures."""

    retryable = True
    kind = "transient"


class PermanentProbeError(ProbeError):
    """Malformed/unexpected response or adapter misconfiguration."""

    retryable = False
    kind = "permanent"


class ProbeTimeout(TransientProbeError):
    """Raised cooperatively at a suspension point once the run deadline passes."""

    kind = "timeout"


class RateLimitedError(TransientProbeError):
    """The upstream rejected the probe with a rate limit."""

    kind = "rate_limited"

    def __init__(self, message: str, retry_after_seconds: float | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
