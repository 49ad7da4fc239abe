"""
Management command to show incidents.

Usage:
    # Active (open/firing) incidents
    python manage.py show_incidents

    # Filter by status
    python manage.py show_incidents --status resolved

    # One incident with its contributing events
    python manage.py show_incidents --key "prod:HighLatency:abc123"
"""

import json

from django.core.management.base import BaseCommand, CommandError

from apps.incidents.services import IncidentQueryService


class Command(BaseCommand):
    help = "Show incidents by status or by incident key"

    def add_arguments(self, parser):
        parser.add_argument(
            "--status",
            type=str,
            help="Filter by status (open, firing, resolved)",
        )
        parser.add_argument(
            "--key",
            type=str,
            help="Show a single incident by incident_key",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=50,
            help="Maximum number of incidents (default: 50)",
        )
        parser.add_argument(
            "--json",
            action="store_true",
            help="Output as JSON",
        )

    def handle(self, *args, **options):
        if options["key"]:
            incident = IncidentQueryService.get(options["key"])
            if incident is None:
                raise CommandError(f"Incident not found: {options['key']}")
            incidents = [incident]
        elif options["status"]:
            try:
                incidents = list(IncidentQueryService.by_status(options["status"])[: options["limit"]])
            except ValueError as e:
                raise CommandError(str(e))
        else:
            incidents = list(IncidentQueryService.active()[: options["limit"]])

        if options["json"]:
            self.stdout.write(json.dumps([i.to_dict() for i in incidents], indent=2))
            return

        if not incidents:
            self.stdout.write("No incidents found.")
            return

        for incident in incidents:
            style = self.style.ERROR if incident.status == "firing" else self.style.SUCCESS
            self.stdout.write(style(f"[{incident.status.upper()}] {incident.incident_key}"))
            self.stdout.write(
                f"  severity={incident.severity or '-'} events={incident.event_count} "
                f"reopened={incident.reopen_count}"
            )
            self.stdout.write(f"  first_seen={incident.first_seen.isoformat()}")
            self.stdout.write(f"  last_seen={incident.last_seen.isoformat()}")
            if options["key"]:
                for event_id in incident.event_ids:
                    self.stdout.write(f"    - {event_id}")
