"""
Result handling: document schema, storage keys, ingest, sinks and the
pending-submission cache.

Storage is write-once per key. First attempts are keyed by
(week, student); reattempts by (week, student, completed_at).
"""

from srp.results.schemas import (
    ALREADY_EXISTS,
    DeviceInfo,
    ResultDocument,
    StatusProbe,
    SubmitOutcome,
)

__all__ = [
    "ALREADY_EXISTS",
    "DeviceInfo",
    "ResultDocument",
    "StatusProbe",
    "SubmitOutcome",
]
