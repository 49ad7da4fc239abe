"""
Signal events app.

Owns the canonical SignalEvent envelope, deterministic event ID derivation,
per-type payload validation and the idempotent, append-only ingestion sink.

Key concepts:
- SignalEvent is immutable once appended (CloudEvents-compatible wire shape)
- Event IDs are a pure function of source, type, identity fields and a time bucket
- Appending an already-known ID is a no-op that returns the stored record
"""
