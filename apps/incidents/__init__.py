"""
Incidents app.

Folds SignalEvents into long-lived Incident records keyed by incident_key.

Lifecycle: OPEN → FIRING → RESOLVED, with RESOLVED → FIRING on reopen.
Incidents are never deleted; resolution is a status transition.
"""
