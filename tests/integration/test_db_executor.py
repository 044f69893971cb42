"""
Integration tests -- SQL executor and catalog against an in-memory DuckDB.

Skipped automatically when DuckDB or its SQLAlchemy dialect is not
importable.
"""
from __future__ import annotations

import asyncio

import pytest

# ── Guard: skip all tests if DuckDB is unavailable ───────
try:
    import duckdb  # noqa: F401
    import duckdb_engine  # noqa: F401

    DB_AVAILABLE = True
except ImportError:
    DB_AVAILABLE = False

pytestmark = pytest.mark.skipif(not DB_AVAILABLE, reason="DuckDB / duckdb-engine not installed")

from src.core.errors import QueryExecutionError, ValidationError
from src.db.catalog import (
    DATE_TABLE_NAME,
    create_date_table,
    describe_table,
    drop_table,
    list_tables,
    load_schemas,
    sample_rows,
)
from src.db.executor import execute_query, execute_query_async


# ── Basic connectivity ───────────────────────────────────

def test_simple_select(fresh_db):
    rows = execute_query("SELECT 1 AS n")
    assert rows == [{"n": 1}]


def test_multiple_rows(fresh_db):
    rows = execute_query("SELECT * FROM range(3) t(n)")
    assert [r["n"] for r in rows] == [0, 1, 2]


def test_colon_literal_not_a_bind_parameter(fresh_db):
    rows = execute_query("SELECT '10:30' AS t")
    assert rows == [{"t": "10:30"}]


def test_in_memory_tables_shared_across_scopes(sales_db):
    assert execute_query('SELECT COUNT(*) AS n FROM "Orders"') == [{"n": 5}]


# ── Errors ───────────────────────────────────────────────

def test_engine_error_wrapped(fresh_db):
    with pytest.raises(QueryExecutionError) as exc_info:
        execute_query("SELECT * FROM no_such_table")
    assert exc_info.value.sql == "SELECT * FROM no_such_table"
    assert "no_such_table" in exc_info.value.message


def test_connection_usable_after_error(fresh_db):
    with pytest.raises(QueryExecutionError):
        execute_query("SELEC 1")
    assert execute_query("SELECT 2 AS n") == [{"n": 2}]


# ── Serialisation ────────────────────────────────────────

def test_decimal_serialised_to_float(fresh_db):
    rows = execute_query("SELECT CAST(12.50 AS DECIMAL(10,2)) AS d")
    assert rows[0]["d"] == 12.5
    assert isinstance(rows[0]["d"], float)


def test_date_serialised_to_iso(fresh_db):
    rows = execute_query("SELECT DATE '2024-03-07' AS d, TIMESTAMP '2024-03-07 10:00:00' AS ts")
    assert rows[0]["d"] == "2024-03-07"
    assert rows[0]["ts"] == "2024-03-07T10:00:00"


def test_async_execution(fresh_db):
    rows = asyncio.run(execute_query_async("SELECT 42 AS answer"))
    assert rows == [{"answer": 42}]


# ── Catalog ──────────────────────────────────────────────

def test_list_and_describe_tables(sales_db):
    assert list_tables() == ["Customers", "Orders"]
    orders = describe_table("Orders")
    assert orders.column_names() == ["id", "customer_id", "amount", "order_date"]
    assert orders.column("order_date").type == "DATE"
    assert len(load_schemas()) == 2


def test_sample_rows(sales_db):
    rows = sample_rows("Orders")
    assert len(rows) == 3
    assert rows[0]["amount"] == "$1,234.56"


def test_date_table_lifecycle(fresh_db):
    assert create_date_table(2024, 2024) == DATE_TABLE_NAME
    create_date_table(2024, 2024)  # idempotent
    rows = execute_query(f'SELECT COUNT(*) AS n, MIN("Year") AS y FROM "{DATE_TABLE_NAME}"')
    assert rows == [{"n": 366, "y": 2024}]
    cols = describe_table(DATE_TABLE_NAME).column_names()
    assert cols == ["Date", "Year", "Month", "MonthName", "Day", "Quarter", "WeekNumber", "DayOfWeek"]
    drop_table(DATE_TABLE_NAME)
    assert DATE_TABLE_NAME not in list_tables()


def test_date_table_bad_range(fresh_db):
    with pytest.raises(ValidationError):
        create_date_table(2025, 2024)


# ── Seed pipeline ────────────────────────────────────────

def test_seed_creates_dirty_currency_tables(fresh_db):
    from pipelines.seed.seed_data import seed

    counts = seed(num_customers=10, num_orders=50)
    assert counts == {"Customers": 10, "Orders": 50}
    assert execute_query('SELECT COUNT(*) AS n FROM "Orders"') == [{"n": 50}]
    sales = execute_query('SELECT sales FROM "Orders" LIMIT 1')[0]["sales"]
    assert sales.startswith("$")
