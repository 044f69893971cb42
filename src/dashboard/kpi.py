"""
Live KPI recomputation under active filters.

A KPI aggregates the full filtered row set, so it is re-queried through the
compiler's KPI path rather than filtered from a rendered preview.

Relevant filters:
  - with a link axis (``kpiFilterXAxis``): every filter whose column matches
    the link column (case-insensitive); their values are merged into one
    ``IN`` constraint on the base table's link column
  - without one: every filter on the base table, one constraint each

Each request takes a per-widget version stamp; a response whose stamp has
been superseded by a newer request is discarded.
"""
from __future__ import annotations

import threading
from typing import Any, Iterable, Mapping

from src.core.errors import DashboardError
from src.core.logging import get_logger
from src.core.utils import unique
from src.dashboard.chart_builder import delta_pct
from src.dashboard.coercion import normalize_label, to_number, to_text
from src.dashboard.compiler import compile_widget_query
from src.dashboard.filters import ActiveFilter, valid_filters
from src.dashboard.spec import WidgetDataSource
from src.db.executor import execute_query_async
from src.modeling.relationships import Relationship, split_field
from src.modeling.schema import TableSchema

logger = get_logger(__name__)


def kpi_filter_constraints(
    source: WidgetDataSource,
    filters: Iterable[ActiveFilter] | Mapping[str, Any] | None,
) -> dict[str, list[Any]] | None:
    """Field -> values constraints for a KPI widget, or None when nothing applies.

    Only base-table value and time columns are supported.
    """
    base = source.base_table
    if source.kind != "kpi" or not base or not source.y_fields:
        return None
    y = split_field(source.y_fields[0], base)
    if y.table != base:
        return None

    link = split_field(source.extra_fields.kpi_filter_x_axis, base)
    link_norm = normalize_label(link.column)
    active = valid_filters(filters)

    if link_norm:
        relevant = [f for f in active if normalize_label(f.column) == link_norm]
        if not relevant:
            return None
        merged = unique(to_text(v) for f in relevant for v in f.values)
        return {f"{base}.{link.column}": merged}

    relevant = [f for f in active if f.table_name == base]
    if not relevant:
        return None
    return {f"{base}.{f.column}": list(f.values) for f in relevant}


class KpiRecomputer:
    """Re-runs constrained KPI queries; last request per widget wins."""

    def __init__(self):
        self._lock = threading.Lock()
        self._versions: dict[str, int] = {}

    def next_version(self, widget_id: str) -> int:
        with self._lock:
            version = self._versions.get(widget_id, 0) + 1
            self._versions[widget_id] = version
            return version

    def is_current(self, widget_id: str, version: int) -> bool:
        with self._lock:
            return self._versions.get(widget_id) == version

    async def recompute(
        self,
        widget_id: str,
        source: WidgetDataSource,
        filters: Iterable[ActiveFilter] | Mapping[str, Any] | None,
        relationships: Iterable[Relationship],
        schemas: list[TableSchema] | None = None,
        base_kpi: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Return the runtime KPI (``value``, ``previous``, ``deltaPct``).

        None when no filter applies, the query fails, or a newer request for
        the same widget has been issued meanwhile.
        """
        version = self.next_version(widget_id)
        where = kpi_filter_constraints(source, filters)
        if where is None:
            return None

        try:
            compiled = compile_widget_query(source, relationships, schemas, where=where)
            rows = await execute_query_async(compiled.sql)
        except DashboardError as exc:
            logger.warning("KPI recompute failed  widget=%s: %s", widget_id, exc)
            return None

        if not self.is_current(widget_id, version):
            logger.info("Discarding stale KPI result  widget=%s  version=%d", widget_id, version)
            return None
        if not rows:
            return None

        row = rows[0]
        current = to_number(row.get("current_value"))
        previous = None if row.get("previous_value") is None else to_number(row.get("previous_value"))
        return {
            **(base_kpi or {}),
            "value": current,
            "previous": previous,
            "deltaPct": delta_pct(current, previous),
        }
