"""SQLAlchemy engine over DuckDB.

Single shared engine.  An in-memory database lives inside one DuckDB
connection, so that case uses a ``StaticPool``: every scope sees the same
imported tables.  File-backed databases use the default pool.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import StaticPool

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        if settings.is_in_memory:
            _engine = create_engine(
                "duckdb:///:memory:",
                poolclass=StaticPool,
                echo=False,
            )
        else:
            _engine = create_engine(settings.database_url, echo=False)
        logger.info("DB engine created  path=%s", settings.duckdb_path or ":memory:")
    return _engine


def reset_engine() -> None:
    """Dispose the shared engine; the next ``get_engine`` opens a fresh database."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


@contextmanager
def scoped_connection() -> Generator[Connection, None, None]:
    """Yield a connection that is committed on success and always closed.

    Every successful and every failing statement path releases the
    connection on exit.
    """
    engine = get_engine()
    conn = engine.connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
