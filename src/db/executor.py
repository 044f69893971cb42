"""
SQL executor.

Every widget, filter and assistant statement runs through ``execute_query``,
which:
  1. Opens a scoped connection (released on every exit path)
  2. Sends the statement verbatim to the driver, so literal text such as
     ``'10:30'`` is never mistaken for a bind parameter
  3. Converts Decimal/date/datetime to JSON-safe Python types
  4. Re-raises driver failures as ``QueryExecutionError`` carrying the SQL
     and the engine's message verbatim
"""
from __future__ import annotations

import asyncio
import datetime
import decimal
from typing import Any

import duckdb
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from src.core.errors import QueryExecutionError
from src.core.logging import get_logger
from src.core.utils import timer
from src.db.connection import scoped_connection

logger = get_logger(__name__)


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    return val


def _engine_message(exc: Exception) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


def execute_query(sql: str) -> list[dict[str, Any]]:
    """Execute *sql* and return rows as serialisable dicts.

    Statements that return no result set (DDL) yield an empty list.

    Raises
    ------
    QueryExecutionError
        If the engine rejects the statement.
    """
    logger.info("Executing SQL (%d chars)", len(sql))

    try:
        with timer() as t, scoped_connection() as conn:
            result = conn.exec_driver_sql(sql)
            if not result.returns_rows:
                return []
            columns = list(result.keys())
            rows = [
                {col: _serialise_value(val) for col, val in zip(columns, row)}
                for row in result.fetchall()
            ]
    except (SQLAlchemyError, duckdb.Error) as exc:
        message = _engine_message(exc)
        logger.warning("Query failed: %s", message)
        raise QueryExecutionError(sql, message) from exc

    logger.info("Returned %d rows in %d ms", len(rows), t["elapsed_ms"])
    return rows


async def execute_query_async(sql: str) -> list[dict[str, Any]]:
    """Run ``execute_query`` on a worker thread."""
    return await asyncio.to_thread(execute_query, sql)
