"""HTTP helpers shared by polling adapters.

Maps transport failures onto the probe error taxonomy:
- 429                       -> RateLimitedError
- 5xx, timeouts, resets     -> TransientProbeError
- other 4xx, malformed JSON -> PermanentProbeError
"""

import json
import logging
import urllib.error
import urllib.request
from typing import Any

from apps.adapters.exceptions import (
    PermanentProbeError,
    RateLimitedError,
    TransientProbeError,
)

logger = logging.getLogger(__name__)

USER_AGENT = "SignalCorrelator/1.0"


def _retry_after(error: urllib.error.HTTPError) -> float | None:
    value = error.headers.get("Retry-After") if error.headers else None
    try:
        return float(value) if value else None
    except ValueError:
        return None


def fetch_json(url: str, headers: dict[str, str] | None = None, timeout: float = 10.0) -> Any:
    """
    GET a URL and decode its JSON body.

    Args:
        url: Absolute URL.
        headers: Extra request headers.
        timeout: Socket timeout in seconds.

    Returns:
        Decoded JSON value.

    Raises:
        RateLimitedError, TransientProbeError, PermanentProbeError
    """
    request_headers = {
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }
    request_headers.update(headers or {})
    request = urllib.request.Request(url, headers=request_headers, method="GET")

    try:
        with urllib.request.urlopen(request, timeout=max(timeout, 0.001)) as response:
            body = response.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        if e.code == 429:
            raise RateLimitedError(
                f"Rate limited by {url}", retry_after_seconds=_retry_after(e)
            ) from e
        if e.code >= 500:
            raise TransientProbeError(f"HTTP {e.code} from {url}") from e
        raise PermanentProbeError(f"HTTP {e.code} from {url}") from e
    except urllib.error.URLError as e:
        raise TransientProbeError(f"Connection error for {url}: {e.reason}") from e
    except (TimeoutError, ConnectionError) as e:
        raise TransientProbeError(f"Connection error for {url}: {e}") from e

    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise PermanentProbeError(f"Malformed JSON from {url}: {e}") from e
