"""
/filters -- cross-widget filter state and the pending selection draft.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from src.api.errors import to_http_error
from src.dashboard.filters import FilterPanel, get_filter_store, load_filter_options
from src.db.catalog import load_schemas

router = APIRouter()
_panel = FilterPanel()


class SelectRequest(BaseModel):
    widget_id: str = Field(..., min_length=1)
    table_name: str = Field(..., min_length=1)
    column: str = Field(..., min_length=1)
    value: Any = None
    options: list[Any] = Field(default_factory=list, description="Categories shown by the clicked chart")


def _state() -> dict:
    store = get_filter_store()
    return {
        "version": store.version,
        "filters": [f.to_dict() for f in store.active().values()],
    }


@router.get("")
def list_filters() -> dict:
    return _state()


@router.get("/options")
def filter_options(table: str, column: str) -> dict:
    """Distinct values of ``table.column`` under the other active filters."""
    try:
        values = load_filter_options(table, column, get_filter_store().active(), schemas=load_schemas())
    except Exception as exc:
        raise to_http_error(exc, "Filters.options")
    return {"table": table, "column": column, "values": values}


@router.post("/select")
def select_value(req: SelectRequest) -> dict:
    """Toggle *value* in the pending draft; nothing is applied yet."""
    draft = _panel.select_value(req.widget_id, req.table_name, req.column, req.value, req.options)
    return {"draft": draft.to_dict(), "pending": _panel.has_pending_changes()}


@router.post("/apply")
def apply_selection() -> dict:
    changed = _panel.apply_selection()
    return {"changed": changed, **_state()}


@router.delete("")
def clear_filters(table: str | None = None, column: str | None = None) -> dict:
    """Clear one filter (``table`` + ``column``) or, without both, all of them."""
    store = get_filter_store()
    if table and column:
        store.clear_filter(table, column)
    else:
        store.clear_all()
    _panel.discard()
    return _state()
