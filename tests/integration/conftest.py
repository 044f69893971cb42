"""
Shared fixtures for DuckDB-backed integration tests.

Each test gets a fresh in-memory database holding the sample ``Orders`` /
``Customers`` tables.  Amounts are stored as currency text on purpose.
"""
from __future__ import annotations

import pytest

SETUP_SQL = [
    'CREATE TABLE "Customers" (id INTEGER, name VARCHAR)',
    "INSERT INTO \"Customers\" VALUES (1, 'Alice'), (2, 'Bob')",
    'CREATE TABLE "Orders" (id INTEGER, customer_id INTEGER, amount VARCHAR, order_date DATE)',
    "INSERT INTO \"Orders\" VALUES "
    "(1, 1, '$1,234.56', DATE '2024-01-05'), "
    "(2, 1, '$100.00', DATE '2024-01-20'), "
    "(3, 2, '$50.00', DATE '2024-02-10'), "
    "(4, 2, '$10.00', DATE '2024-03-01'), "
    "(5, 1, '$5.00', DATE '2024-03-31')",
]


@pytest.fixture
def fresh_db():
    from src.db.connection import reset_engine

    reset_engine()
    yield
    reset_engine()


@pytest.fixture
def sales_db(fresh_db):
    from src.db.executor import execute_query

    for sql in SETUP_SQL:
        execute_query(sql)
    yield
