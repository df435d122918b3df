"""SQLAlchemy engine factory.

Single shared engine with connection pooling.  Fact rows are only ever
read, so connections handed out by `readonly_connection` set the
transaction to READ ONLY first.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            echo=False,
        )
        logger.info("DB engine created  dialect=%s", _engine.dialect.name)
    return _engine


@contextmanager
def readonly_connection() -> Generator[Connection, None, None]:
    """Yield a connection in a READ ONLY transaction (Postgres only).

    The connection is returned to the pool on exit.
    """
    engine = get_engine()
    conn = engine.connect()
    try:
        if engine.dialect.name == "postgresql":
            conn.execute(text("SET TRANSACTION READ ONLY"))
        yield conn
    finally:
        conn.close()
