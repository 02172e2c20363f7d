"""
Result sinks: where a finished session's document goes.

Contract:
    await sink.submit(document) -> SubmitOutcome
        accepted=True                         stored
        accepted=False, reason=already_exists  a first attempt is already stored
        raises SubmissionError                 unreachable or refused

    await sink.exists(student, week) -> StatusProbe
        informational only; never raises

Sinks do not retry. Resubmission is an explicit operator action and is
always safe because storage is write-once per key.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from config import Settings
from srp.practice.errors import SubmissionError
from srp.results.ingest import ResultIngestor
from srp.results.schemas import ALREADY_EXISTS, ResultDocument, StatusProbe, SubmitOutcome
from srp.results.store import SqlObjectStore


class ResultSink(Protocol):
    """Receives finished session documents."""

    async def submit(self, document: ResultDocument) -> SubmitOutcome:
        ...

    async def exists(self, student_id: str, week: int) -> StatusProbe:
        ...


class LocalResultSink:
    """In-process sink writing straight through a ResultIngestor."""

    def __init__(self, ingestor: ResultIngestor):
        self.ingestor = ingestor

    async def submit(self, document: ResultDocument) -> SubmitOutcome:
        try:
            return self.ingestor.ingest(document)
        except SQLAlchemyError as e:
            raise SubmissionError(f"Result store write failed: {e}") from e

    async def exists(self, student_id: str, week: int) -> StatusProbe:
        try:
            return self.ingestor.status(student_id, week)
        except (SubmissionError, SQLAlchemyError) as e:
            logger.warning("Status probe failed: {}", e)
            return StatusProbe(exists=False, known=False)


class HttpResultSink:
    """HTTP client for the ingest service (see srp.api.main)."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        """
        Initialize the sink.

        Args:
            base_url: Base URL of the ingest service
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "HttpResultSink":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def submit(self, document: ResultDocument) -> SubmitOutcome:
        """
        Upload a result document once.

        Raises:
            SubmissionError: On transport failure or an unexpected status
        """
        try:
            response = await self.client.post(
                f"{self.base_url}/api/ingest",
                json=document.model_dump(mode="json"),
            )
        except httpx.RequestError as e:
            logger.error(f"Upload failed: {e}")
            raise SubmissionError(f"Upload failed: {e}") from e

        if response.status_code not in (200, 201, 409):
            logger.error(f"Upload failed: {response.status_code}")
            raise SubmissionError(f"Upload failed: {response.status_code} {response.text}")

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Upload response is not JSON: {response.status_code}")
            raise SubmissionError(f"Upload failed: unreadable response ({response.status_code})") from e
        if not isinstance(data, dict):
            raise SubmissionError(f"Upload failed: unreadable response ({response.status_code})")

        if response.status_code == 409:
            return SubmitOutcome(accepted=False, reason=data.get("reason", ALREADY_EXISTS),
                                 key=data.get("key"))
        return SubmitOutcome(accepted=True, key=data.get("key"))

    async def exists(self, student_id: str, week: int) -> StatusProbe:
        """Ask the service whether a first attempt is stored. Never raises."""
        try:
            response = await self.client.get(f"{self.base_url}/api/status/{week}/{student_id}")
            response.raise_for_status()
            return StatusProbe.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Status probe failed: {e}")
            return StatusProbe(exists=False, known=False)


def build_sink(settings: Settings) -> ResultSink:
    """HTTP sink when a results URL is configured, local SQL store otherwise."""
    if settings.results_url:
        return HttpResultSink(settings.results_url, timeout=settings.request_timeout_seconds)
    store = SqlObjectStore(settings.results_database_url)
    return LocalResultSink(ResultIngestor(store, valid_weeks=settings.valid_weeks()))
