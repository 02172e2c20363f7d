"""
Pending result cache.

A finished session is written here before upload and removed once the
sink confirms it (accepted, or already stored). Anything left over can be
resubmitted later with ``srp submit``.
Documents are stored as JSON files in the configured pending directory.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from loguru import logger
from pydantic import ValidationError as SchemaError

from srp.practice.errors import SubmissionError
from srp.results.schemas import ALREADY_EXISTS, ResultDocument, SubmitOutcome
from srp.results.sink import ResultSink


@dataclass
class FlushResult:
    """Outcome of resubmitting one pending document."""

    path: Path
    document: ResultDocument
    outcome: SubmitOutcome | None = None
    error: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.outcome is not None and (
            self.outcome.accepted or self.outcome.reason == ALREADY_EXISTS
        )


class PendingResults:
    """
    Manages unconfirmed result documents.

    Files are named {week}_{student}_{completed_at}.json, with a
    _reattempt suffix for reattempts.
    """

    def __init__(self, pending_dir: Path):
        self.pending_dir = Path(pending_dir)
        self.pending_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, document: ResultDocument) -> Path:
        stamp = document.completed_at.replace(":", "-")
        suffix = "_reattempt" if document.reattempt else ""
        return self.pending_dir / f"{document.week}_{document.student_number}_{stamp}{suffix}.json"

    def save(self, document: ResultDocument) -> Path:
        """Save a document to disk."""
        filepath = self._path_for(document)
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(document.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        return filepath

    def load(self, filepath: Path) -> ResultDocument | None:
        """Load a pending document; None if it is missing or unreadable."""
        if not filepath.exists():
            return None
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
            return ResultDocument.model_validate(data)
        except (json.JSONDecodeError, SchemaError) as e:
            logger.warning("Unreadable pending file {}: {}", filepath.name, e)
            return None

    def list_pending(self) -> list[tuple[Path, ResultDocument]]:
        """All readable pending documents, oldest file name first."""
        pending = []
        for filepath in sorted(self.pending_dir.glob("*.json")):
            document = self.load(filepath)
            if document is not None:
                pending.append((filepath, document))
        return pending

    def remove(self, filepath: Path) -> bool:
        if filepath.exists():
            filepath.unlink()
            return True
        return False

    async def deliver(self, document: ResultDocument, sink: ResultSink) -> SubmitOutcome:
        """
        Save, submit, and drop the local copy once the sink confirms.

        Raises:
            SubmissionError: The sink failed; the local copy is kept
        """
        filepath = self.save(document)
        try:
            outcome = await sink.submit(document)
        except SubmissionError:
            logger.warning("Submission failed; kept {} for retry", filepath.name)
            raise
        if outcome.accepted or outcome.reason == ALREADY_EXISTS:
            self.remove(filepath)
        return outcome

    async def flush(self, sink: ResultSink) -> list[FlushResult]:
        """Resubmit every pending document once."""
        results = []
        for filepath, document in self.list_pending():
            result = FlushResult(path=filepath, document=document)
            try:
                result.outcome = await sink.submit(document)
            except SubmissionError as e:
                result.error = str(e)
                logger.warning("Resubmission of {} failed: {}", filepath.name, e)
            if result.confirmed:
                self.remove(filepath)
            results.append(result)
        return results
