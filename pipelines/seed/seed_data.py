"""
Seed data generator -- creates a small sales dataset in the DuckDB database.

Generates:
  - ~300 customers
  - ~3 000 orders, with sales stored as dirty currency text ("$32,370.00")
    the way spreadsheet imports usually arrive

Tables land in the working schema as ``Customers`` and ``Orders``, joined by
``Orders.customer_id = Customers.id`` (see ``model/relationships.yml``).
Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import random
from datetime import date, timedelta

from faker import Faker
from sqlalchemy import text

from src.core.logging import get_logger
from src.db.connection import scoped_connection

logger = get_logger(__name__)

# ── Tunables ─────────────────────────────────────────────
NUM_CUSTOMERS = 300
NUM_ORDERS = 3_000

COUNTRIES = ["US", "UK", "Germany", "Canada", "Australia", "France", "Brazil", "Japan"]
SEGMENTS = ["Consumer", "Corporate", "Home Office"]
CATEGORIES = ["Furniture", "Office Supplies", "Technology"]
STATUSES = ["completed", "cancelled", "pending"]
STATUS_WEIGHTS = [0.75, 0.10, 0.15]

DATE_START = date(2023, 1, 1)
DATE_END = date(2024, 12, 31)
DATE_RANGE_DAYS = (DATE_END - DATE_START).days

_DDL = [
    'CREATE OR REPLACE TABLE "Customers" ('
    "id INTEGER, name VARCHAR, country VARCHAR, segment VARCHAR)",
    'CREATE OR REPLACE TABLE "Orders" ('
    "order_id INTEGER, customer_id INTEGER, order_date DATE, category VARCHAR, "
    "status VARCHAR, quantity INTEGER, sales VARCHAR)",
]


def format_currency(amount: float) -> str:
    """``32370.0`` -> ``"$32,370.00"``."""
    return f"${amount:,.2f}"


# ── Generators ───────────────────────────────────────────

def gen_customers(fake: Faker, rng: random.Random, count: int = NUM_CUSTOMERS) -> list[dict]:
    return [
        {
            "id": cid,
            "name": fake.name(),
            "country": rng.choice(COUNTRIES),
            "segment": rng.choice(SEGMENTS),
        }
        for cid in range(1, count + 1)
    ]


def gen_orders(customers: list[dict], rng: random.Random, count: int = NUM_ORDERS) -> list[dict]:
    customer_ids = [c["id"] for c in customers]
    rows = []
    for oid in range(1, count + 1):
        quantity = rng.randint(1, 12)
        rows.append({
            "order_id": oid,
            "customer_id": rng.choice(customer_ids),
            "order_date": DATE_START + timedelta(days=rng.randint(0, DATE_RANGE_DAYS)),
            "category": rng.choice(CATEGORIES),
            "status": rng.choices(STATUSES, weights=STATUS_WEIGHTS, k=1)[0],
            "quantity": quantity,
            "sales": format_currency(round(quantity * rng.uniform(5.0, 900.0), 2)),
        })
    return rows


# ── Bulk insert helper ───────────────────────────────────

def _bulk_insert(conn, table: str, rows: list[dict], batch_size: int = 1000) -> None:
    if not rows:
        return
    cols = list(rows[0].keys())
    col_list = ", ".join(cols)
    param_list = ", ".join(f":{c}" for c in cols)
    sql = text(f'INSERT INTO "{table}" ({col_list}) VALUES ({param_list})')
    for i in range(0, len(rows), batch_size):
        conn.execute(sql, rows[i : i + batch_size])
    logger.info("Seeded %s: %d rows", table, len(rows))


# ── Main ─────────────────────────────────────────────────

def seed(num_customers: int = NUM_CUSTOMERS, num_orders: int = NUM_ORDERS, seed_value: int = 42) -> dict[str, int]:
    """(Re)create and fill ``Customers`` and ``Orders``; returns row counts."""
    fake = Faker()
    Faker.seed(seed_value)
    rng = random.Random(seed_value)

    customers = gen_customers(fake, rng, num_customers)
    orders = gen_orders(customers, rng, num_orders)

    with scoped_connection() as conn:
        for ddl in _DDL:
            conn.exec_driver_sql(ddl)
        _bulk_insert(conn, "Customers", customers)
        _bulk_insert(conn, "Orders", orders)
    return {"Customers": len(customers), "Orders": len(orders)}


def main():
    counts = seed()
    logger.info("Done -- seeded %d customers and %d orders.", counts["Customers"], counts["Orders"])


if __name__ == "__main__":
    main()
