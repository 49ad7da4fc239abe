"""
Envelope and payload validation for SignalEvents.

Checks, in order:
1. Required envelope fields are present
2. The envelope version is supported
3. The type is registered (and belongs to an allowed family, when given)
4. occurred_at is not in the future beyond the clock-skew tolerance
5. The payload passes the type-specific schema
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from django.conf import settings
from django.utils import timezone
from pydantic import ValidationError as PydanticValidationError

from apps.events.envelope import SUPPORTED_SPEC_VERSIONS, SignalEvent
from apps.events.exceptions import EventValidationError
from apps.events.registry import get_event_type

REQUIRED_FIELDS = ("id", "source", "type", "incident_key", "spec_version")


def _skew_tolerance() -> timedelta:
    return timedelta(seconds=int(getattr(settings, "SIGNALS_CLOCK_SKEW_SECONDS", 120)))


def validate_event(
    event: SignalEvent,
    families: Iterable[str] | None = None,
    now: datetime | None = None,
) -> None:
    """
    Validate a finalized SignalEvent.

    Args:
        event: Event with derived id and incident_key.
        families: Event families the emitting adapter declared, or None to allow any.
        now: Reference time for the future-timestamp check (defaults to now).

    Raises:
        EventValidationError: On the first failed check.
    """
    for name in REQUIRED_FIELDS:
        if not getattr(event, name):
            raise EventValidationError("required field is missing", field=name)

    if not isinstance(event.occurred_at, datetime):
        raise EventValidationError("must be a datetime", field="occurred_at")
    if timezone.is_naive(event.occurred_at):
        raise EventValidationError("must be timezone-aware", field="occurred_at")

    if event.spec_version not in SUPPORTED_SPEC_VERSIONS:
        raise EventValidationError(
            f"unsupported envelope version {event.spec_version!r}", field="spec_version"
        )

    spec = get_event_type(event.type)
    if spec is None:
        raise EventValidationError(f"unregistered event type {event.type!r}", field="type")

    if families is not None and spec.family not in set(families):
        raise EventValidationError(
            f"family {spec.family!r} is not declared by source {event.source!r}", field="type"
        )

    reference = now or timezone.now()
    if event.occurred_at > reference + _skew_tolerance():
        raise EventValidationError(
            f"timestamp {event.occurred_at.isoformat()} is in the future", field="occurred_at"
        )

    try:
        spec.schema.model_validate(event.payload)
    except PydanticValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        raise EventValidationError(errors, field="payload") from e
