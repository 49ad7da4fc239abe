"""
Management command to run adapters once, outside the scheduler.

Usage:
    # Run one adapter
    python manage.py run_adapter alertmanager

    # Run every enabled adapter
    python manage.py run_adapter --all

    # Output as JSON
    python manage.py run_adapter host --json
"""

import json

from django.core.management.base import BaseCommand, CommandError

from apps.adapters import get_enabled_adapters
from apps.orchestration.coordinator import AlreadyRunning, RunCoordinator


class Command(BaseCommand):
    help = "Run one adapter (or all enabled adapters) under the run coordinator"

    def add_arguments(self, parser):
        parser.add_argument(
            "adapter_ids",
            nargs="*",
            help="Adapter IDs from SIGNAL_ADAPTERS",
        )
        parser.add_argument(
            "--all",
            action="store_true",
            help="Run every enabled adapter",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output results as JSON",
        )

    def handle(self, *args, **options):
        adapter_ids = list(options["adapter_ids"])
        if options["all"]:
            adapter_ids = [adapter.adapter_id for adapter in get_enabled_adapters()]
        if not adapter_ids:
            raise CommandError("Provide at least one adapter ID or use --all")

        coordinator = RunCoordinator()
        results = [coordinator.run_adapter(adapter_id) for adapter_id in adapter_ids]

        if options["json"]:
            self.stdout.write(json.dumps([r.to_dict() for r in results], indent=2, default=str))
        else:
            for result in results:
                self._display_result(result)

        if any(not isinstance(r, AlreadyRunning) and r.failed for r in results):
            raise CommandError("One or more adapter runs failed")

    def _display_result(self, result):
        if isinstance(result, AlreadyRunning):
            self.stdout.write(
                self.style.WARNING(
                    f"{result.adapter_id}: skipped (already running since {result.held_since})"
                )
            )
            return

        line = f"{result.adapter_id}: {result.status} ({result.events_emitted} events emitted)"
        if result.failed:
            self.stdout.write(self.style.ERROR(line))
        elif result.last_error:
            self.stdout.write(self.style.WARNING(line))
        else:
            self.stdout.write(self.style.SUCCESS(line))

        if result.last_error:
            self.stdout.write(f"  {result.error_kind}: {result.last_error}")
