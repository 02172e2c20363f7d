"""
Result ingest: validation, storage keys and write-once semantics.

This is the storage-side half of submission. It accepts a result
document, checks it, and writes it under its natural key:

    results/{week}/{student}.json                      first attempt
    reattempts/{week}/{student}/{completed_at}.json    flagged reattempt

A second first-attempt write for the same (week, student) is rejected
with reason "already_exists" and the stored copy is left untouched.
Reattempt keys include the completion time, so retrying the same
reattempt upload is idempotent too.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError as SchemaError

from srp.practice.errors import SubmissionError
from srp.practice.trials import iso_timestamp, utc_now
from srp.results.schemas import (
    STUDENT_NUMBER_PATTERN,
    ResultDocument,
    StatusProbe,
    SubmitOutcome,
)
from srp.results.store import ObjectStore


_STUDENT_NUMBER = re.compile(STUDENT_NUMBER_PATTERN)


def first_attempt_key(week: int, student_number: str) -> str:
    return f"results/{week}/{student_number}.json"


def reattempt_key(week: int, student_number: str, completed_at: str) -> str:
    stamp = completed_at.replace(":", "-")
    return f"reattempts/{week}/{student_number}/{stamp}.json"


def storage_key(document: ResultDocument) -> str:
    if document.reattempt:
        return reattempt_key(document.week, document.student_number, document.completed_at)
    return first_attempt_key(document.week, document.student_number)


class ResultIngestor:
    """Validates result documents and writes them to an object store."""

    def __init__(
        self,
        store: ObjectStore,
        valid_weeks: Iterable[int] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.valid_weeks = set(valid_weeks) if valid_weeks is not None else None
        self.clock = clock

    def validate(self, payload: ResultDocument | Mapping[str, Any]) -> ResultDocument:
        """
        Check a document before storing it.

        Raises:
            SubmissionError: If the document is malformed
        """
        try:
            document = (
                payload if isinstance(payload, ResultDocument)
                else ResultDocument.model_validate(payload)
            )
        except SchemaError as e:
            raise SubmissionError(f"Invalid result document: {e.error_count()} error(s)") from e

        if self.valid_weeks is not None and document.week not in self.valid_weeks:
            raise SubmissionError(f"Invalid week: {document.week}")
        if not document.trials:
            raise SubmissionError("No trials")
        return document

    def ingest(self, payload: ResultDocument | Mapping[str, Any]) -> SubmitOutcome:
        """
        Validate and store a document, never overwriting an existing key.

        Raises:
            SubmissionError: If the document is malformed
        """
        document = self.validate(payload)
        key = storage_key(document)
        stored = document.model_copy(update={"stored_at": iso_timestamp(self.clock())})
        body = json.dumps(stored.model_dump(mode="json"), ensure_ascii=False)

        if not self.store.put(key, body, if_absent=True):
            logger.info("Rejected duplicate submission for {}", key)
            return SubmitOutcome.already_exists(key)

        logger.info("Stored {} ({} trials)", key, len(document.trials))
        return SubmitOutcome(accepted=True, key=key)

    def status(self, student_number: str, week: int) -> StatusProbe:
        """
        Report whether a first attempt is stored for (student, week).

        Raises:
            SubmissionError: If the student number is malformed
        """
        if not _STUDENT_NUMBER.match(student_number or ""):
            raise SubmissionError("Invalid student_number")

        body = self.store.get(first_attempt_key(week, student_number))
        if body is None:
            return StatusProbe(exists=False)
        try:
            completed_at = json.loads(body).get("completed_at")
        except (json.JSONDecodeError, AttributeError):
            logger.warning("Stored result for {} week {} is not readable JSON", student_number, week)
            completed_at = None
        return StatusProbe(exists=True, completed_at=completed_at)
