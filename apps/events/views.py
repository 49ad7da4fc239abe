"""
Webhook views for sources that push events instead of being polled.
"""

import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.orchestration.ingest import ingest_pushed

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class EventWebhookView(View):
    """
    Push endpoint for a configured adapter.

    POST /events/webhook/<adapter_id>/

    The payload goes through the adapter's normalize → id → key → validate →
    sink path, exactly like polled records.
    """

    def post(self, request, adapter_id: str):
        """Handle an incoming webhook payload."""
        try:
            payload = json.loads(request.body)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON payload: {e}")
            return JsonResponse(
                {"status": "error", "message": "Invalid JSON payload"},
                status=400,
            )

        if getattr(settings, "SIGNALS_WEBHOOK_ASYNC", False) and not getattr(
            settings, "CELERY_TASK_ALWAYS_EAGER", False
        ):
            try:
                from apps.orchestration.tasks import ingest_webhook

                async_res = ingest_webhook.delay(adapter_id, payload)
                return JsonResponse({"status": "queued", "task_id": async_res.id}, status=202)
            except Exception as enqueue_err:
                # Broker unreachable: fall back to synchronous processing.
                logger.warning(
                    "Webhook enqueue failed; falling back to sync processing: %s",
                    enqueue_err,
                )

        try:
            result = ingest_pushed(adapter_id, payload)
        except ValueError as e:
            return JsonResponse({"status": "error", "message": str(e)}, status=400)

        logger.info(
            f"Webhook for {adapter_id} processed: {result.received} records "
            f"({result.appended} new, {result.duplicates} duplicates, {result.rejected} rejected)"
        )
        return JsonResponse(
            {
                "status": "partial" if result.has_rejections else "success",
                **result.to_dict(),
            }
        )

    def get(self, request, adapter_id: str):
        """Health check endpoint."""
        return JsonResponse(
            {
                "status": "ok",
                "message": "Event webhook endpoint is ready",
                "adapter_id": adapter_id,
            }
        )
