"""
Result document and sink response models.

The result document is what a finished session uploads: the full ordered
trial log plus enough context (student, week, timing, device) to key and
analyse it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ALREADY_EXISTS = "already_exists"
STUDENT_NUMBER_PATTERN = r"^[0-9]{8}$"


class DeviceInfo(BaseModel):
    """Screen size and user agent of the device the session ran on."""

    w: int = 0
    h: int = 0
    ua: str = ""


class ResultDocument(BaseModel):
    """Uploaded session results."""

    model_config = ConfigDict(extra="allow")

    student_number: str = Field(..., pattern=STUDENT_NUMBER_PATTERN)
    week: int
    topics_run: list[str] = Field(default_factory=list)
    started_at: str
    completed_at: str
    device: DeviceInfo = Field(default_factory=DeviceInfo)
    trials: list[dict[str, Any]] = Field(default_factory=list)
    reattempt: bool = False
    session_id: str | None = None
    skipped_topics: list[str] = Field(default_factory=list)
    stored_at: str | None = Field(None, description="Set by the store when written")


class SubmitOutcome(BaseModel):
    """Sink response to a submission."""

    accepted: bool
    reason: str | None = None
    key: str | None = None

    @classmethod
    def already_exists(cls, key: str) -> SubmitOutcome:
        return cls(accepted=False, reason=ALREADY_EXISTS, key=key)


class StatusProbe(BaseModel):
    """Whether a first attempt is already stored for (student, week)."""

    exists: bool
    completed_at: str | None = None
    known: bool = Field(True, description="False when the store could not be asked")
