"""
Widget service -- orchestrates compile -> execute -> build -> filter -> figure.

``render_widget`` never raises for configuration or engine problems: they are
collected into ``WidgetResult.errors`` so the calling widget can show them.
``generate_chart_config`` is the strict variant used by the configurator
preview: it raises the typed errors instead.
"""
from __future__ import annotations

import time
from typing import Any, Iterable, Mapping

from src.core.errors import DashboardError, MissingRelationshipError, ValidationError
from src.core.logging import get_logger
from src.dashboard.chart_builder import (
    build_chart_config,
    build_kpi_spec,
    finalize_chart_config,
    parse_series_alias_map,
)
from src.dashboard.compiler import CompiledQuery, compile_widget_query
from src.dashboard.figure_adapter import EMPTY_FILTER_KEY, Figure, FigureTheme, to_figure
from src.dashboard.filters import apply_filters_to_config
from src.dashboard.spec import WidgetDataSource
from src.db.executor import execute_query
from src.modeling.relationships import Relationship
from src.modeling.schema import TableSchema

logger = get_logger(__name__)

NO_DATA_MESSAGE = "No data"


class WidgetResult:
    def __init__(
        self,
        sql: str = "",
        rows: list[dict[str, Any]] | None = None,
        chart_config: dict[str, Any] | None = None,
        figure: Figure | None = None,
        errors: list[str] | None = None,
        latency_ms: int = 0,
        empty_filtered: bool = False,
    ):
        self.sql = sql
        self.rows = rows or []
        self.chart_config = chart_config
        self.figure = figure
        self.errors = errors or []
        self.latency_ms = latency_ms
        self.empty_filtered = empty_filtered

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "sql": self.sql,
            "rows": self.rows,
            "chart_config": self.chart_config,
            "figure": self.figure.to_dict() if self.figure else None,
            "errors": self.errors,
            "latency_ms": self.latency_ms,
            "empty_filtered": self.empty_filtered,
            "success": self.success,
        }


def _kpi_config(source: WidgetDataSource, rows: list[dict[str, Any]]) -> dict[str, Any]:
    ef = source.extra_fields
    label = (ef.kpi_legend or "").strip() or source.y_fields[0]
    window = None
    if ef.kpi_time_column:
        window = {
            "value": ef.kpi_window_value,
            "unit": ef.kpi_window_unit,
            "column": ef.kpi_time_column,
        }
    return build_kpi_spec(rows[0] if rows else None, label, ef.kpi_thresholds, window)


def _chart_config(
    source: WidgetDataSource,
    compiled: CompiledQuery,
    rows: list[dict[str, Any]],
    theme_name: str | None,
) -> dict[str, Any]:
    if compiled.kind == "kpi":
        return _kpi_config(source, rows)

    ef = source.extra_fields
    custom_labels = {
        "title": (ef.chart_internal_title or "").strip() or None,
        "x": (ef.x_axis_label or "").strip() or None,
        "y": (ef.y_axis_label or "").strip() or None,
    }
    config = build_chart_config(
        rows,
        compiled.kind,
        compiled.x_alias or "",
        compiled.y_aliases,
        {
            "series_by": compiled.series_alias,
            "time_field": compiled.x_alias if compiled.temporal_x and compiled.kind != "scatter" else None,
            "time_granularity": source.time_granularity,
            "custom_labels": {k: v for k, v in custom_labels.items() if v},
        },
    )
    return finalize_chart_config(
        config,
        theme_name=theme_name,
        alias_map=parse_series_alias_map(ef.series_alias_map),
        show_legend=ef.show_legend,
    )


def generate_chart_config(
    source: WidgetDataSource,
    relationships: Iterable[Relationship],
    schemas: list[TableSchema] | None = None,
    theme_name: str | None = "default",
) -> tuple[CompiledQuery, list[dict[str, Any]], dict[str, Any]]:
    """Compile, execute and build; raises on any failure.

    Raises
    ------
    ValidationError
        Incomplete configuration, or the query returned no rows.
    MissingRelationshipError
        A referenced table is not joined to the base table.
    QueryExecutionError
        The engine rejected the statement.
    """
    compiled = compile_widget_query(source, relationships, schemas)
    rows = execute_query(compiled.sql)
    if not rows:
        raise ValidationError(NO_DATA_MESSAGE)
    return compiled, rows, _chart_config(source, compiled, rows, theme_name)


def render_widget(
    source: WidgetDataSource | Mapping[str, Any],
    relationships: Iterable[Relationship],
    schemas: list[TableSchema] | None = None,
    filters: Any = None,
    theme: FigureTheme | None = None,
    theme_name: str | None = "default",
) -> WidgetResult:
    """End-to-end: widget data source -> chart spec + figure.

    Parameters
    ----------
    source : WidgetDataSource or dict
        Widget configuration (camelCase wire form accepted).
    relationships : iterable of Relationship
        Current relationship set.
    schemas : list[TableSchema], optional
        Catalog snapshot for temporal detection.
    filters : optional
        Active filters (``FilterStore.active()`` or a list of dicts).
    theme : FigureTheme, optional
        Explicit rendering context for the figure.
    """
    t0 = time.perf_counter()
    if not isinstance(source, WidgetDataSource):
        source = WidgetDataSource.model_validate(source)
    logger.info("Widget.render | base=%s | type=%s", source.base_table, source.kind)

    errors: list[str] = []
    sql = ""
    rows: list[dict[str, Any]] = []
    config: dict[str, Any] | None = None

    try:
        compiled = compile_widget_query(source, relationships, schemas)
        sql = compiled.sql
        rows = execute_query(sql)
        if not rows:
            errors.append(NO_DATA_MESSAGE)
        else:
            config = _chart_config(source, compiled, rows, theme_name)
    except MissingRelationshipError as exc:
        errors.append(str(exc))
    except ValidationError as exc:
        errors.append(str(exc))
    except DashboardError as exc:
        logger.warning("Widget query failed: %s", exc)
        errors.append(str(exc))

    empty_filtered = False
    if config is not None and source.kind != "kpi" and filters:
        config = apply_filters_to_config(config, source, filters)
        empty_filtered = bool(config and config.get(EMPTY_FILTER_KEY))

    figure = to_figure(config, theme)
    latency = int((time.perf_counter() - t0) * 1000)
    return WidgetResult(
        sql=sql,
        rows=rows,
        chart_config=config,
        figure=figure,
        errors=errors,
        latency_ms=latency,
        empty_filtered=empty_filtered,
    )
