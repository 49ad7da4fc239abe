"""Celery application bootstrap for this Django project.

Celery beat is the external scheduler: it invokes ``run_adapter`` for every
enabled adapter on that adapter's declared interval.

Run workers and the scheduler with something like:
- celery -A config worker -l info
- celery -A config beat -l info

Broker/result backend are configured via Django settings (see config/settings.py).
"""

from __future__ import annotations

import os

from celery import Celery

from config.env import load_env

load_env()

# Ensure Django settings are loaded when Celery starts.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("signal-correlator")

# Load Celery config from Django settings using CELERY_* namespace.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Autodiscover tasks.py in Django apps.
app.autodiscover_tasks()


def build_beat_schedule(adapters: dict, sweep_seconds: int = 60) -> dict:
    """One beat entry per enabled adapter, plus the stale-lease sweep."""
    schedule = {
        "expire-stale-leases": {
            "task": "apps.orchestration.tasks.expire_stale_leases",
            "schedule": float(sweep_seconds),
        }
    }
    for adapter_id, config in adapters.items():
        if not config.get("enabled", True):
            continue
        schedule[f"run-adapter-{adapter_id}"] = {
            "task": "apps.orchestration.tasks.run_adapter",
            "schedule": float(config.get("interval_seconds", 300)),
            "args": (adapter_id,),
        }
    return schedule


@app.on_after_finalize.connect
def setup_periodic_tasks(sender, **kwargs):
    from django.conf import settings

    sender.conf.beat_schedule = build_beat_schedule(
        getattr(settings, "SIGNAL_ADAPTERS", {}),
        sweep_seconds=getattr(settings, "SIGNALS_LEASE_SWEEP_SECONDS", 60),
    )
