"""
POST /widgets/compile, /widgets/render, /widgets/figure, /widgets/kpi --
widget pipeline endpoints.
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from src.api.errors import to_http_error
from src.dashboard.compiler import compile_widget_query
from src.dashboard.figure_adapter import FigureTheme, normalize_chart_config, to_figure
from src.dashboard.filters import get_filter_store
from src.dashboard.kpi import KpiRecomputer
from src.dashboard.service import render_widget
from src.dashboard.spec import WidgetDataSource
from src.db.catalog import load_schemas
from src.modeling.relationships import get_relationship_graph

router = APIRouter()
_kpi = KpiRecomputer()


class WidgetRequest(BaseModel):
    source: WidgetDataSource
    theme_name: str | None = Field("default", description="default | pastel | dark | vibrant | nature")
    dark: bool = False
    use_filters: bool = Field(True, description="Apply the active cross-widget filters")


class CompileResponse(BaseModel):
    sql: str
    kind: str
    x_alias: str | None
    y_aliases: list[str]
    series_alias: str | None
    temporal_x: bool


class FigureRequest(BaseModel):
    config: Any = None
    rows: list[dict] | None = None
    dark: bool = False


class KpiRequest(BaseModel):
    widget_id: str = Field(..., min_length=1)
    source: WidgetDataSource
    base_kpi: dict | None = None


@router.post("/compile", response_model=CompileResponse)
def compile_endpoint(req: WidgetRequest) -> CompileResponse:
    """Dry-run: widget configuration -> SQL (nothing is executed)."""
    try:
        compiled = compile_widget_query(req.source, get_relationship_graph().confirmed(), load_schemas())
    except Exception as exc:
        raise to_http_error(exc, "Widgets.compile")
    return CompileResponse(
        sql=compiled.sql,
        kind=compiled.kind,
        x_alias=compiled.x_alias,
        y_aliases=list(compiled.y_aliases),
        series_alias=compiled.series_alias,
        temporal_x=compiled.temporal_x,
    )


@router.post("/render")
def render_endpoint(req: WidgetRequest) -> dict:
    """Full pipeline; configuration and engine problems come back in ``errors``."""
    try:
        schemas = load_schemas()
    except Exception as exc:
        raise to_http_error(exc, "Widgets.render")
    result = render_widget(
        req.source,
        get_relationship_graph().confirmed(),
        schemas,
        filters=get_filter_store().active() if req.use_filters else None,
        theme=FigureTheme(dark=req.dark),
        theme_name=req.theme_name,
    )
    return result.to_dict()


@router.post("/figure")
def figure_endpoint(req: FigureRequest) -> dict:
    """Normalize an arbitrary chart spec and return the renderer-ready figure."""
    config = normalize_chart_config(req.config, req.rows)
    return to_figure(config, FigureTheme(dark=req.dark)).to_dict()


@router.post("/kpi")
async def kpi_endpoint(req: KpiRequest) -> dict:
    """Recompute a KPI under the active filters; ``kpi`` is null when none apply."""
    try:
        schemas = load_schemas()
    except Exception as exc:
        raise to_http_error(exc, "Widgets.kpi")
    kpi = await _kpi.recompute(
        req.widget_id,
        req.source,
        get_filter_store().active(),
        get_relationship_graph().confirmed(),
        schemas=schemas,
        base_kpi=req.base_kpi,
    )
    return {"widget_id": req.widget_id, "kpi": kpi}
