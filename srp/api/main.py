"""
FastAPI ingest service for practice results.

Provides:
- POST /api/ingest                              store a finished session (write-once)
- GET  /api/status/{week}/{student_number}      has a first attempt been stored?
- GET  /health                                  store connectivity
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from srp import __version__
from srp.practice.errors import SubmissionError
from srp.results.ingest import ResultIngestor
from srp.results.schemas import StatusProbe
from srp.results.store import SqlObjectStore

settings = get_settings()


@lru_cache(maxsize=1)
def get_ingestor() -> ResultIngestor:
    """Ingestor over the configured SQL store (FastAPI dependency)."""
    store = SqlObjectStore(settings.results_database_url)
    return ResultIngestor(store, valid_weeks=settings.valid_weeks())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting chem-srp ingest service...")
    yield
    logger.info("Shutting down chem-srp ingest service...")


app = FastAPI(
    title="chem-srp results",
    description="Write-once storage for self-paced practice results.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.get("/health", tags=["Health"])
def health_check(ingestor: ResultIngestor = Depends(get_ingestor)) -> dict[str, Any]:
    """Health check with a store round-trip."""
    try:
        ingestor.store.head("health")
        store_status, error = "ok", None
    except SQLAlchemyError as e:
        store_status, error = "error", str(e)

    result: dict[str, Any] = {
        "status": "healthy" if store_status == "ok" else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {"store": store_status},
    }
    if error:
        result["errors"] = {"store": error}
    return result


@app.post("/api/ingest", tags=["Results"], status_code=201)
def ingest(
    payload: dict[str, Any] = Body(...),
    ingestor: ResultIngestor = Depends(get_ingestor),
) -> JSONResponse:
    """Store a finished session. Duplicate first attempts get 409."""
    try:
        outcome = ingestor.ingest(payload)
    except SubmissionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except SQLAlchemyError as e:
        logger.error("Result store write failed: {}", e)
        raise HTTPException(status_code=500, detail="Result store write failed") from e

    if not outcome.accepted:
        return JSONResponse(
            status_code=409,
            content={"ok": False, "reason": outcome.reason, "key": outcome.key},
        )
    return JSONResponse(status_code=201, content={"ok": True, "key": outcome.key})


@app.get("/api/status/{week}/{student_number}", tags=["Results"], response_model=StatusProbe)
def status(
    week: int,
    student_number: str,
    ingestor: ResultIngestor = Depends(get_ingestor),
) -> StatusProbe:
    """Whether a first attempt is stored for this student and week."""
    try:
        return ingestor.status(student_number, week)
    except SubmissionError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
