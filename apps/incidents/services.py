"""
Read-only incident query surface for downstream consumers.
"""

from django.db.models import QuerySet

from apps.incidents.models import Incident, IncidentStatus


class IncidentQueryService:
    """
    Service for querying incidents.

    Incidents are mutated only by the correlator; nothing here writes.
    """

    @staticmethod
    def get(incident_key: str) -> Incident | None:
        """Look up an incident by its incident_key."""
        return Incident.objects.filter(incident_key=incident_key).first()

    @staticmethod
    def by_status(status: str) -> QuerySet[Incident]:
        """
        Get incidents with the given status.

        Raises:
            ValueError: If status is not a known IncidentStatus.
        """
        if status not in IncidentStatus.values:
            raise ValueError(
                f"Unknown status: {status}. Available: {', '.join(IncidentStatus.values)}"
            )
        return Incident.objects.filter(status=status)

    @staticmethod
    def active() -> QuerySet[Incident]:
        """Get all OPEN or FIRING incidents."""
        return Incident.objects.exclude(status=IncidentStatus.RESOLVED)

    @staticmethod
    def for_source(source: str) -> QuerySet[Incident]:
        return Incident.objects.filter(source=source)
