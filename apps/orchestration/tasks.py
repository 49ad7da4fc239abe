"""Celery tasks that the scheduler invokes.

- run_adapter: one coordinated run of a configured adapter (beat schedules
  one entry per enabled adapter at its declared interval)
- expire_stale_leases: force-expire leases whose holder died mid-run
- ingest_webhook: asynchronous push ingestion

Tasks return JSON-serializable dicts. A failed run is a normal return value
(retried on the next tick), never a task exception.
"""

from __future__ import annotations

import logging
from typing import Any

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def run_adapter(adapter_id: str) -> dict[str, Any]:
    """Run one adapter under the coordinator's lease."""
    from apps.orchestration.coordinator import RunCoordinator

    record = RunCoordinator().run_adapter(adapter_id)
    return record.to_dict()


@shared_task
def expire_stale_leases() -> dict[str, Any]:
    from apps.orchestration.coordinator import RunCoordinator

    expired = RunCoordinator().expire_stale_leases()
    if expired:
        logger.warning("Force-expired stale leases: %s", ", ".join(expired))
    return {"expired": expired}


@shared_task
def ingest_webhook(adapter_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Ingest a pushed payload outside the request cycle."""
    from apps.orchestration.ingest import ingest_pushed

    try:
        result = ingest_pushed(adapter_id, payload)
    except ValueError as e:
        logger.warning("Rejected pushed payload for %s: %s", adapter_id, e)
        return {"status": "error", "message": str(e)}
    return {"status": "partial" if result.has_rejections else "success", **result.to_dict()}
