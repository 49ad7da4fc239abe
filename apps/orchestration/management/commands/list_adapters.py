"""
Management command to list configured adapters and their run health.

Usage:
    python manage.py list_adapters
    python manage.py list_adapters --json
"""

import json

from django.core.management.base import BaseCommand, CommandError

from apps.adapters import list_adapters
from apps.orchestration.models import AdapterSlot


class Command(BaseCommand):
    help = "List configured signal adapters with their last run outcome"

    def add_arguments(self, parser):
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output as JSON",
        )

    def handle(self, *args, **options):
        try:
            adapters = list_adapters()
        except ValueError as e:
            raise CommandError(str(e))

        slots = {slot.adapter_id: slot for slot in AdapterSlot.objects.all()}
        rows = []
        for adapter in adapters:
            row = adapter.describe()
            slot = slots.get(adapter.adapter_id)
            row["running"] = bool(slot and slot.is_leased)
            row["last_outcome"] = slot.last_outcome if slot else ""
            row["last_error"] = slot.last_error if slot else ""
            row["last_finished_at"] = slot.last_finished_at if slot else None
            row["consecutive_failures"] = slot.consecutive_failures if slot else 0
            rows.append(row)

        if options["json"]:
            self.stdout.write(json.dumps(rows, indent=2, default=str))
            return

        if not rows:
            self.stdout.write(self.style.WARNING("No adapters configured (see SIGNAL_ADAPTERS)."))
            return

        for row in rows:
            state = "enabled" if row["enabled"] else "disabled"
            self.stdout.write(
                self.style.SUCCESS(f"{row['adapter_id']}")
                + f" [{row['type']} v{row['version']}, {state}, every {row['interval_seconds']}s]"
            )
            outcome = row["last_outcome"] or "never run"
            if row["running"]:
                outcome = f"{outcome}, running now"
            self.stdout.write(f"  last outcome: {outcome}")
            if row["last_error"]:
                self.stdout.write(f"  last error: {row['last_error']}")
