"""
GET /catalog/tables, POST /catalog/date-table -- catalog endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from src.api.errors import to_http_error
from src.db.catalog import create_date_table, load_schemas

router = APIRouter()


class ColumnItem(BaseModel):
    name: str
    type: str


class TableItem(BaseModel):
    name: str
    columns: list[ColumnItem]


class DateTableRequest(BaseModel):
    start_year: int = Field(..., ge=1900, le=2200)
    end_year: int = Field(..., ge=1900, le=2200)


@router.get("/tables", response_model=list[TableItem])
def list_catalog_tables() -> list[TableItem]:
    """Every table of the working schema with its column types."""
    try:
        schemas = load_schemas()
    except Exception as exc:
        raise to_http_error(exc, "Catalog.tables")
    return [
        TableItem(name=s.name, columns=[ColumnItem(name=c.name, type=c.type) for c in s.columns])
        for s in schemas
    ]


@router.post("/date-table")
def create_date_table_endpoint(req: DateTableRequest) -> dict:
    """Create the generated calendar table (no-op when it exists)."""
    try:
        name = create_date_table(req.start_year, req.end_year)
    except Exception as exc:
        raise to_http_error(exc, "Catalog.date_table")
    return {"table": name}
