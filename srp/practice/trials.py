"""
Trial records: the append-only log a session produces.

One record per submitted answer, plus one synthetic ``meta`` record per
metacognitive estimate. The ordered list of records is the dataset the
analysis side consumes, so records are immutable once created.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Phase(str, Enum):
    """Where in a topic run a trial was recorded."""

    FIRST_PASS = "first_pass"
    MASTERY = "mastery"
    META = "meta"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    moment = (moment or utc_now()).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class TrialRecord:
    """A single logged trial."""

    trial_index: int
    item_id: str | None
    topic: str
    week: int
    phase: Phase
    attempt_number: int
    question_type: str | None
    reaction_time_ms: int
    raw_answer: str
    normalized_answer: str
    correct: bool | None
    timestamp: str
    estimate: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        data = asdict(self)
        data["phase"] = self.phase.value
        if self.phase is not Phase.META:
            data.pop("estimate")
        return data


def meta_record(
    trial_index: int,
    topic: str,
    week: int,
    estimate: int,
    reaction_time_ms: int = 0,
    recorded_at: datetime | None = None,
) -> TrialRecord:
    """Build the ungraded record holding a predicted correct-count."""
    return TrialRecord(
        trial_index=trial_index,
        item_id=None,
        topic=topic,
        week=week,
        phase=Phase.META,
        attempt_number=0,
        question_type=None,
        reaction_time_ms=max(0, int(reaction_time_ms)),
        raw_answer=str(estimate),
        normalized_answer=str(estimate),
        correct=None,
        timestamp=iso_timestamp(recorded_at),
        estimate=estimate,
    )
