"""
Cross-Widget Filter Engine.

State
  ``FilterStore``  process-wide map of active filters keyed ``table::column``,
                   plus a version counter bumped on every real change.
  ``FilterPanel``  one private, uncommitted selection draft.  Clicks toggle
                   values in the draft; nothing reaches the store until
                   ``apply_selection``.

Widget-side consumption
  ``matching_filter_values``  which active values restrict a widget's X axis
  ``apply_filters_to_config`` the filtered chart spec (or an explicit
                              ``__emptyFiltered`` state)

Malformed filter entries are ignored rather than raised.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from src.core.logging import get_logger
from src.core.utils import unique
from src.dashboard.coercion import normalize_label, to_text
from src.dashboard.compiler import compile_distinct_values_query
from src.dashboard.figure_adapter import EMPTY_FILTER_KEY
from src.dashboard.spec import WidgetDataSource
from src.db.executor import execute_query
from src.modeling.relationships import FieldRef, split_field
from src.modeling.schema import TableSchema

logger = get_logger(__name__)


def filter_key(table: str, column: str) -> str:
    return f"{table}::{column}"


@dataclass(frozen=True)
class ActiveFilter:
    table_name: str
    column: str
    values: tuple[Any, ...]

    @property
    def key(self) -> str:
        return filter_key(self.table_name, self.column)

    def to_dict(self) -> dict[str, Any]:
        return {"tableName": self.table_name, "column": self.column, "values": list(self.values)}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ActiveFilter | None":
        """Lenient parse; None for malformed entries."""
        if not isinstance(raw, Mapping):
            return None
        table = raw.get("tableName", raw.get("table_name"))
        column = raw.get("column")
        values = raw.get("values")
        if not table or not column or not isinstance(values, (list, tuple)):
            return None
        return cls(table_name=str(table), column=str(column), values=tuple(values))


# ── Selection helpers ───────────────────────────────────


def merge_unique_values(*lists: Iterable[Any]) -> list[Any]:
    return unique(v for values in lists for v in values)


def _typed_key(value: Any) -> str:
    return f"{type(value).__name__}:{value}"


def has_same_selection(left: Iterable[Any], right: Iterable[Any]) -> bool:
    a = sorted(_typed_key(v) for v in left)
    b = sorted(_typed_key(v) for v in right)
    return a == b


# ── Store ───────────────────────────────────────────────


class FilterStore:
    """Lock-protected active-filter map.  Readers always get copies."""

    def __init__(self):
        self._lock = threading.Lock()
        self._filters: dict[str, ActiveFilter] = {}
        self._version = 0

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def active(self) -> dict[str, ActiveFilter]:
        with self._lock:
            return dict(self._filters)

    def get(self, table: str, column: str) -> ActiveFilter | None:
        with self._lock:
            return self._filters.get(filter_key(table, column))

    def set_filter(self, table: str, column: str, values: Iterable[Any]) -> bool:
        """Replace the filter for ``table::column``; returns True when state changed."""
        new = ActiveFilter(table_name=table, column=column, values=tuple(values))
        with self._lock:
            existing = self._filters.get(new.key)
            if existing is not None and has_same_selection(existing.values, new.values):
                return False
            self._filters[new.key] = new
            self._version += 1
        logger.info("Filter set  %s = %s", new.key, list(new.values))
        return True

    def clear_filter(self, table: str, column: str) -> bool:
        key = filter_key(table, column)
        with self._lock:
            if key not in self._filters:
                return False
            del self._filters[key]
            self._version += 1
        logger.info("Filter cleared  %s", key)
        return True

    def clear_all(self) -> None:
        with self._lock:
            if not self._filters:
                return
            self._filters = {}
            self._version += 1
        logger.info("All filters cleared")

    def replace_all(self, filters: Iterable[ActiveFilter]) -> None:
        with self._lock:
            self._filters = {f.key: f for f in filters}
            self._version += 1


_store = FilterStore()


def get_filter_store() -> FilterStore:
    """Return the process-wide filter store."""
    return _store


# ── Draft selection ─────────────────────────────────────


@dataclass
class FilterDraft:
    widget_id: str
    table_name: str
    column: str
    selected: list[Any] = field(default_factory=list)
    options: list[Any] = field(default_factory=list)
    dirty: bool = False

    @property
    def key(self) -> str:
        return filter_key(self.table_name, self.column)

    def to_dict(self) -> dict[str, Any]:
        return {
            "widgetId": self.widget_id,
            "tableName": self.table_name,
            "column": self.column,
            "selected": list(self.selected),
            "options": list(self.options),
            "dirty": self.dirty,
        }


class FilterPanel:
    """Holds the single pending selection draft for a dashboard."""

    def __init__(self, store: FilterStore | None = None):
        self.store = store or get_filter_store()
        self.draft: FilterDraft | None = None

    def select_value(
        self,
        widget_id: str,
        table: str,
        column: str,
        value: Any = None,
        chart_options: Iterable[Any] = (),
    ) -> FilterDraft:
        """Open (or continue) the draft for ``table::column`` and toggle *value*.

        A draft for the same key builds on its own pending selection; any
        other key starts from that key's applied values.  *value* of None
        only opens the draft.
        """
        applied = list(self._applied(table, column))
        same = self.draft is not None and self.draft.table_name == table and self.draft.column == column
        base = list(self.draft.selected) if same else applied

        if value is None:
            selected = base
        elif any(to_text(v) == to_text(value) for v in base):
            selected = [v for v in base if to_text(v) != to_text(value)]
        else:
            selected = base + [value]

        seed = [] if value is None else [value]
        self.draft = FilterDraft(
            widget_id=widget_id,
            table_name=table,
            column=column,
            selected=selected,
            options=merge_unique_values(chart_options, selected, applied, seed),
            dirty=value is not None or same,
        )
        return self.draft

    def add_options(self, options: Iterable[Any]) -> None:
        if self.draft is not None:
            self.draft.options = merge_unique_values(options, self.draft.options, self.draft.selected)

    def has_pending_changes(self) -> bool:
        if self.draft is None:
            return False
        applied = self._applied(self.draft.table_name, self.draft.column)
        return not has_same_selection(self.draft.selected, applied)

    def apply_selection(self) -> bool:
        """Commit the draft; an empty selection clears the filter.

        Returns True when the active state changed.
        """
        draft = self.draft
        if draft is None:
            return False
        if not draft.selected:
            changed = self.store.clear_filter(draft.table_name, draft.column)
        else:
            changed = self.store.set_filter(draft.table_name, draft.column, draft.selected)
        draft.dirty = False
        return changed

    def discard(self) -> None:
        self.draft = None

    def _applied(self, table: str, column: str) -> tuple[Any, ...]:
        current = self.store.get(table, column)
        return current.values if current else ()


# ── Widget-side consumption ─────────────────────────────


def parse_filter_source(table: str | None, x_axis: str | None) -> FieldRef | None:
    """The ``(table, column)`` a widget's X axis filters on."""
    if not table or not x_axis:
        return None
    return split_field(x_axis, table)


def chart_options(config: Mapping[str, Any] | None, chart_type: str) -> list[Any]:
    """Distinct categories currently displayed by a chart spec."""
    if not isinstance(config, Mapping):
        return []
    options: list[Any] = []
    series = config.get("series")
    x_axis = config.get("xAxis")
    if chart_type == "pie" and isinstance(series, list) and series and isinstance(series[0], Mapping):
        data = series[0].get("data")
        if isinstance(data, list):
            options = [d.get("name") for d in data if isinstance(d, Mapping) and d.get("name") is not None]
    elif isinstance(x_axis, Mapping) and isinstance(x_axis.get("data"), list):
        options = [v for v in x_axis["data"] if v is not None]
    return unique(options)


def valid_filters(filters: Iterable[Any] | Mapping[str, Any] | None) -> list[ActiveFilter]:
    if not filters:
        return []
    items = filters.values() if isinstance(filters, Mapping) else filters
    out = []
    for f in items:
        parsed = f if isinstance(f, ActiveFilter) else ActiveFilter.from_dict(f)
        if parsed is not None and parsed.values:
            out.append(parsed)
    return out


def matching_filter_values(
    filters: Iterable[Any] | Mapping[str, Any] | None,
    source: WidgetDataSource,
    config: Mapping[str, Any] | None,
) -> set[str] | None:
    """Normalized values of every filter that targets this widget's X axis.

    A filter matches on the same table and column, on the same column name
    alone, or when any of its values is among the displayed categories.
    None when no filter applies.
    """
    target = parse_filter_source(source.table_name or source.base_table, source.x_axis)
    if config is None or target is None:
        return None
    active = valid_filters(filters)
    if not active:
        return None

    column_norm = normalize_label(target.column)
    displayed = {normalize_label(v) for v in chart_options(config, source.kind)}

    values: set[str] = set()
    for f in active:
        same_axis = f.table_name == target.table and normalize_label(f.column) == column_norm
        similar_axis = normalize_label(f.column) == column_norm
        overlaps = bool(displayed) and any(normalize_label(v) in displayed for v in f.values)
        if not (same_axis or similar_axis or overlaps):
            continue
        values.update(normalize_label(v) for v in f.values)
    return values or None


def apply_filters_to_config(
    config: dict[str, Any] | None,
    source: WidgetDataSource,
    filters: Iterable[Any] | Mapping[str, Any] | None,
) -> dict[str, Any] | None:
    """Restrict a chart spec to the categories allowed by active filters."""
    allowed = matching_filter_values(filters, source, config)
    if config is None or not allowed:
        return config

    if source.kind == "pie":
        series = config.get("series")
        if not isinstance(series, list) or not series or not isinstance(series[0], Mapping):
            return config
        data = series[0].get("data")
        if not isinstance(data, list):
            return config
        kept = [d for d in data if isinstance(d, Mapping) and normalize_label(d.get("name")) in allowed]
        if len(kept) == len(data):
            return config
        if not kept:
            return {**config, EMPTY_FILTER_KEY: True, "series": [{**series[0], "data": []}, *series[1:]]}
        return {**config, "series": [{**series[0], "data": kept}, *series[1:]]}

    x_axis = config.get("xAxis")
    series = config.get("series")
    if not isinstance(x_axis, Mapping) or not isinstance(x_axis.get("data"), list) or not isinstance(series, list):
        return config

    x_data = x_axis["data"]
    indices = [i for i, v in enumerate(x_data) if normalize_label(v) in allowed]
    if len(indices) == len(x_data):
        return config
    if not indices:
        return {
            **config,
            EMPTY_FILTER_KEY: True,
            "xAxis": {**x_axis, "data": []},
            "series": [{**s, "data": []} if isinstance(s, Mapping) else s for s in series],
        }

    def pick(data: list[Any]) -> list[Any]:
        return [data[i] for i in indices if i < len(data)]

    return {
        **config,
        "xAxis": {**x_axis, "data": pick(x_data)},
        "series": [
            {**s, "data": pick(s["data"])} if isinstance(s, Mapping) and isinstance(s.get("data"), list) else s
            for s in series
        ],
    }


# ── Option loading ──────────────────────────────────────


def load_filter_options(
    table: str,
    column: str,
    filters: Iterable[Any] | Mapping[str, Any] | None = None,
    limit: int | None = None,
    schemas: list[TableSchema] | None = None,
) -> list[Any]:
    """Distinct non-null values of ``table.column`` under sibling filters.

    Pass *schemas* so date/time sibling filters holding chart labels such as
    ``"2024/03"`` compile to label matches instead of raw DATE literals.
    """
    siblings = {
        f.column: list(f.values)
        for f in valid_filters(filters)
        if f.table_name == table and f.column != column
    }
    sql = compile_distinct_values_query(table, column, siblings, limit, schemas)
    rows = execute_query(sql)
    return [r["value"] for r in rows if r.get("value") is not None]
