from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from srp.db.models import Base

_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


@lru_cache(maxsize=None)
def get_engine(database_url: str) -> Engine:
    """Get (or create) the engine for a database URL."""
    url = make_url(database_url)
    kwargs: dict = {"pool_pre_ping": True}

    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in _MEMORY_URLS:
            # one shared connection, otherwise every connection sees an empty database
            kwargs["poolclass"] = StaticPool
        elif url.database:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(database_url, **kwargs)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)
    logger.info("Result store tables initialized ({})", engine.url.render_as_string(hide_password=True))


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()
