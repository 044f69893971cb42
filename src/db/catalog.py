"""
Catalog introspection against the embedded DuckDB database.

Lists the imported tables, describes their columns, pulls sample rows for
the assistant prompt and creates the generated ``DimDate`` calendar table.
"""
from __future__ import annotations

from typing import Any

from src.core.config import get_settings
from src.core.errors import ValidationError
from src.core.logging import get_logger
from src.dashboard.coercion import quote_ident, quote_literal
from src.db.executor import execute_query
from src.modeling.schema import ColumnInfo, TableSchema

logger = get_logger(__name__)

DATE_TABLE_NAME = "DimDate"


def list_tables() -> list[str]:
    """Return the user tables of the working schema, sorted by name."""
    schema = get_settings().working_schema
    rows = execute_query(
        "SELECT table_name FROM information_schema.tables "
        f"WHERE table_schema = {quote_literal(schema)} ORDER BY table_name"
    )
    return [str(r["table_name"]) for r in rows]


def describe_table(table: str) -> TableSchema:
    rows = execute_query(f"DESCRIBE {quote_ident(table)}")
    columns = tuple(
        ColumnInfo(name=str(r["column_name"]), type=str(r.get("column_type") or ""))
        for r in rows
    )
    return TableSchema(name=table, columns=columns)


def load_schemas() -> list[TableSchema]:
    """Describe every table in the working schema."""
    schemas = [describe_table(t) for t in list_tables()]
    logger.info("Loaded %d table schemas", len(schemas))
    return schemas


def sample_rows(table: str, limit: int = 3) -> list[dict[str, Any]]:
    return execute_query(f"SELECT * FROM {quote_ident(table)} LIMIT {int(limit)}")


def create_date_table(start_year: int, end_year: int) -> str:
    """Create the ``DimDate`` calendar table covering whole years.

    No-op when the table already exists.  Returns the table name.
    """
    if start_year > end_year:
        raise ValidationError(f"start_year {start_year} is after end_year {end_year}")
    sql = (
        f"CREATE TABLE IF NOT EXISTS {quote_ident(DATE_TABLE_NAME)} AS "
        "WITH dates AS ("
        f"SELECT unnest(generate_series(TIMESTAMP '{int(start_year):04d}-01-01', "
        f"TIMESTAMP '{int(end_year):04d}-12-31', INTERVAL 1 DAY)) AS d"
        ") "
        "SELECT CAST(d AS DATE) AS \"Date\", year(d) AS \"Year\", month(d) AS \"Month\", "
        "monthname(d) AS \"MonthName\", day(d) AS \"Day\", quarter(d) AS \"Quarter\", "
        "week(d) AS \"WeekNumber\", dayofweek(d) AS \"DayOfWeek\" "
        "FROM dates"
    )
    execute_query(sql)
    logger.info("Date table %s ready  years=%d-%d", DATE_TABLE_NAME, start_year, end_year)
    return DATE_TABLE_NAME


def drop_table(table: str) -> None:
    execute_query(f"DROP TABLE IF EXISTS {quote_ident(table)}")
    logger.info("Dropped table %s", table)
