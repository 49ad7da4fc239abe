"""
Run orchestration app.

Drives adapter runs for the scheduler and for operators:
- RunCoordinator: per-adapter leases, timeouts and run outcomes
- IngestionService: normalize → id → key → validate → sink for one adapter
- Celery tasks invoked by beat on each adapter's interval
- Monitoring signals at every run boundary
"""
