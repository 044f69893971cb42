"""
Query Compiler -- turns a WidgetDataSource into one analytical SQL statement.

The compiler is a pure function of the data source, the relationship set and
(optionally) the table schemas.  It never touches the database.

Statement shapes by chart type:
  - kpi       current / previous trailing-window aggregates (or a single
              aggregate when no time column is configured)
  - scatter   numerically coerced X and Y values, row level
  - others    bucketed X (+ seriesBy) with one column per Y field, either
              grouped by X with the chosen aggregate or row level for NONE

Numeric aggregation targets always go through ``strip_numeric_sql`` so that
currency-formatted text never fails a ``SUM``; count aggregations use the
raw column so text columns keep exact counts.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from src.core.config import get_settings
from src.core.errors import ValidationError
from src.core.logging import get_logger
from src.dashboard.coercion import (
    as_timestamp_sql,
    is_temporal_type,
    quote_ident,
    quote_literal,
    strip_numeric_sql,
)
from src.dashboard.spec import AGGREGATIONS, CHART_TYPES, WINDOW_UNITS, WidgetDataSource
from src.modeling.relationships import JoinPath, Relationship, resolve_join_path, split_field
from src.modeling.schema import TableSchema, column_type

logger = get_logger(__name__)

KPI_CURRENT = "current_value"
KPI_PREVIOUS = "previous_value"


@dataclass(frozen=True)
class CompiledQuery:
    """A compiled widget statement plus the result-column names it produces."""

    sql: str
    kind: str
    x_alias: str | None = None
    y_aliases: list[str] = field(default_factory=list)
    series_alias: str | None = None
    temporal_x: bool = False


# ── Shared helpers ──────────────────────────────────────


def aggregate_sql(aggregation: str, raw_ref: str) -> str:
    """Aggregate expression over a column reference.

    Count-family aggregations read the raw column; everything else reads the
    numerically coerced column.  ``NONE`` becomes ``SUM`` in aggregate
    contexts.
    """
    agg = aggregation.upper()
    if agg == "COUNT_ROWS":
        return "COUNT(*)"
    if agg == "COUNT":
        return f"COUNT({raw_ref})"
    if agg == "COUNT_DISTINCT":
        return f"COUNT(DISTINCT {raw_ref})"
    num = strip_numeric_sql(raw_ref)
    if agg == "NONE":
        return f"SUM({num})"
    return f"{agg}({num})"


def _is_temporal(field_name: str | None, base: str, schemas: list[TableSchema] | None) -> bool:
    if not field_name:
        return False
    f = split_field(field_name, base)
    return is_temporal_type(column_type(schemas, f.table, f.column))


def _bucket_sql(raw_ref: str, granularity: str) -> str:
    ts = as_timestamp_sql(raw_ref)
    if granularity in ("month", "year"):
        return f"DATE_TRUNC('{granularity}', {ts})"
    return ts


def _constraint_sql(ref: str, values: Iterable[Any], temporal: bool = False) -> str:
    """``ref IN (...)``; an empty value list matches nothing.

    Temporal columns match on their ``YYYY`` / ``YYYY/MM`` / ``YYYY/MM/DD``
    renderings, which are the labels charts display for them.
    """
    vals = [v for v in values if v is not None]
    if not vals:
        return "1=0"
    if temporal:
        literals = ", ".join(quote_literal(str(v)) for v in vals)
        ts = as_timestamp_sql(ref)
        checks = [f"strftime({ts}, '{fmt}') IN ({literals})" for fmt in ("%Y", "%Y/%m", "%Y/%m/%d")]
        return "(" + " OR ".join(checks) + ")"
    literals = ", ".join(quote_literal(v) for v in vals)
    return f"{ref} IN ({literals})"


def _where_clauses(
    path: JoinPath,
    where: Mapping[str, Iterable[Any]] | None,
    schemas: list[TableSchema] | None,
) -> list[str]:
    clauses: list[str] = []
    for field_name, values in (where or {}).items():
        temporal = _is_temporal(field_name, path.base, schemas)
        clauses.append(_constraint_sql(path.ref(field_name), values, temporal))
    return clauses


def _unique_alias(name: str, taken: set[str]) -> str:
    alias = name
    n = 2
    while alias in taken:
        alias = f"{name} ({n})"
        n += 1
    taken.add(alias)
    return alias


# ── Validation ──────────────────────────────────────────


def validate_source(source: WidgetDataSource) -> None:
    """Reject incomplete or unsupported configurations before any SQL is built."""
    kind = source.kind
    if not source.base_table:
        raise ValidationError("Select a table for the widget")
    if kind not in CHART_TYPES:
        raise ValidationError(f"Unsupported chart type '{source.chart_type}'")
    if source.aggregation not in AGGREGATIONS:
        raise ValidationError(f"Unsupported aggregation '{source.aggregation}'")
    if kind == "kpi":
        if not source.y_fields:
            raise ValidationError("Select a value field for the KPI")
        return
    if not (source.x_axis or "").strip():
        raise ValidationError("Select an X axis field")
    if not source.y_fields:
        raise ValidationError("Select at least one Y axis field")
    if source.series_by and len(source.y_fields) > 1 and kind in ("bar", "line"):
        raise ValidationError("Series breakdown supports a single Y field; remove extra Y fields")


def used_tables(source: WidgetDataSource, where: Mapping[str, Any] | None = None) -> list[str]:
    """Tables referenced by the widget's fields, in first-seen order."""
    base = source.base_table
    ef = source.extra_fields
    fields = [source.x_axis, *source.y_fields, source.series_by]
    if source.kind == "kpi":
        fields += [ef.kpi_time_column, ef.kpi_filter_x_axis]
    fields += list((where or {}).keys())

    out: list[str] = []
    for f in fields:
        if not f or not str(f).strip():
            continue
        table = split_field(f, base).table
        if table not in out:
            out.append(table)
    return out


# ── KPI ─────────────────────────────────────────────────


def _kpi_window(source: WidgetDataSource) -> tuple[int, str]:
    settings = get_settings()
    ef = source.extra_fields
    value = ef.kpi_window_value or settings.kpi_default_window_value
    unit = (ef.kpi_window_unit or settings.kpi_default_window_unit).strip().lower().rstrip("s")
    if unit not in WINDOW_UNITS:
        raise ValidationError(f"Unsupported KPI window unit '{ef.kpi_window_unit}'")
    return max(1, int(value)), unit


def _kpi_sql(
    source: WidgetDataSource,
    path: JoinPath,
    extra_where: list[str],
) -> str:
    agg = source.aggregation
    y_ref = path.ref(source.y_fields[0])
    time_field = (source.extra_fields.kpi_time_column or "").strip()

    if not time_field:
        where = f" WHERE {' AND '.join(extra_where)}" if extra_where else ""
        return (
            f"SELECT COALESCE({aggregate_sql(agg, y_ref)}, 0) AS {KPI_CURRENT}, "
            f"NULL AS {KPI_PREVIOUS} FROM {path.from_sql}{where}"
        )

    if agg == "COUNT_ROWS":
        value_expr = "1"
    elif agg in ("COUNT", "COUNT_DISTINCT"):
        value_expr = y_ref
    else:
        value_expr = strip_numeric_sql(y_ref)

    if agg == "COUNT_ROWS":
        agg_on_base = "COUNT(*)"
    elif agg == "COUNT":
        agg_on_base = "COUNT(v)"
    elif agg == "COUNT_DISTINCT":
        agg_on_base = "COUNT(DISTINCT v)"
    elif agg == "NONE":
        agg_on_base = "SUM(v)"
    else:
        agg_on_base = f"{agg}(v)"

    n, unit = _kpi_window(source)
    current_iv = f"INTERVAL '{n} {unit}'"
    previous_iv = f"INTERVAL '{n * 2} {unit}'"
    ts = as_timestamp_sql(path.ref(time_field))
    conditions = [f"{ts} IS NOT NULL", *extra_where]

    return (
        f"WITH base AS (SELECT {ts} AS t, {value_expr} AS v FROM {path.from_sql} "
        f"WHERE {' AND '.join(conditions)}), "
        "dates AS (SELECT MAX(t) AS max_t FROM base), "
        "ranges AS (SELECT CAST(max_t AS TIMESTAMP) AS max_t, "
        f"CAST(max_t AS TIMESTAMP) - {current_iv} AS start_curr, "
        f"CAST(max_t AS TIMESTAMP) - {previous_iv} AS start_prev, "
        f"CAST(max_t AS TIMESTAMP) - {current_iv} AS end_prev FROM dates) "
        f"SELECT COALESCE((SELECT {agg_on_base} FROM base, ranges "
        f"WHERE t > start_curr AND t <= ranges.max_t), 0) AS {KPI_CURRENT}, "
        f"COALESCE((SELECT {agg_on_base} FROM base, ranges "
        f"WHERE t > start_prev AND t <= end_prev), 0) AS {KPI_PREVIOUS}"
    )


# ── Public API ──────────────────────────────────────────


def compile_widget_query(
    source: WidgetDataSource,
    relationships: Iterable[Relationship],
    schemas: list[TableSchema] | None = None,
    where: Mapping[str, Iterable[Any]] | None = None,
) -> CompiledQuery:
    """Compile *source* into a single SQL statement.

    Parameters
    ----------
    source : WidgetDataSource
        The widget configuration.
    relationships : iterable of Relationship
        Current relationship set; only confirmed edges are used as joins.
    schemas : list[TableSchema], optional
        Catalog snapshot used for temporal detection of the X / filter columns.
    where : mapping, optional
        Field reference -> allowed values, compiled to ``IN`` constraints.

    Raises
    ------
    ValidationError
        Missing base table / X / Y, or an unsupported option.
    MissingRelationshipError
        A referenced table has no confirmed edge to the base table.
    """
    validate_source(source)
    base = source.base_table
    kind = source.kind
    path = resolve_join_path(base, used_tables(source, where), relationships)
    extra_where = _where_clauses(path, where, schemas)
    where_sql = f" WHERE {' AND '.join(extra_where)}" if extra_where else ""

    if kind == "kpi":
        compiled = CompiledQuery(
            sql=_kpi_sql(source, path, extra_where),
            kind=kind,
            y_aliases=[KPI_CURRENT, KPI_PREVIOUS],
        )
        logger.info("Compiled KPI query  base=%s  sql=%s", base, compiled.sql)
        return compiled

    x_field = (source.x_axis or "").strip()
    x_ref = path.ref(x_field)
    taken: set[str] = set()
    x_alias = _unique_alias(x_field, taken)

    if kind == "scatter":
        cols = [f"{strip_numeric_sql(x_ref)} AS {quote_ident(x_alias)}"]
        y_aliases = []
        for y in source.y_fields:
            alias = _unique_alias(y, taken)
            y_aliases.append(alias)
            cols.append(f"{strip_numeric_sql(path.ref(y))} AS {quote_ident(alias)}")
        sql = f"SELECT {', '.join(cols)} FROM {path.from_sql}{where_sql}"
        logger.info("Compiled scatter query  base=%s  sql=%s", base, sql)
        return CompiledQuery(sql=sql, kind=kind, x_alias=x_alias, y_aliases=y_aliases)

    temporal_x = _is_temporal(x_field, base, schemas)
    x_expr = _bucket_sql(x_ref, source.time_granularity) if temporal_x else x_ref

    cols = [f"{x_expr} AS {quote_ident(x_alias)}"]
    group_by = [x_expr]
    series_alias = None
    if source.series_by:
        series_ref = path.ref(source.series_by)
        series_alias = _unique_alias(source.series_by, taken)
        cols.append(f"{series_ref} AS {quote_ident(series_alias)}")
        group_by.append(series_ref)

    agg = source.aggregation
    y_aliases = []
    for y in source.y_fields:
        alias = _unique_alias(y, taken)
        y_aliases.append(alias)
        y_ref = path.ref(y)
        expr = strip_numeric_sql(y_ref) if agg == "NONE" else aggregate_sql(agg, y_ref)
        cols.append(f"{expr} AS {quote_ident(alias)}")

    sql = f"SELECT {', '.join(cols)} FROM {path.from_sql}{where_sql}"
    if agg != "NONE":
        sql += f" GROUP BY {', '.join(group_by)} ORDER BY {x_expr}"

    logger.info("Compiled %s query  base=%s  sql=%s", kind, base, sql)
    return CompiledQuery(
        sql=sql,
        kind=kind,
        x_alias=x_alias,
        y_aliases=y_aliases,
        series_alias=series_alias,
        temporal_x=temporal_x,
    )


def compile_distinct_values_query(
    table: str,
    column: str,
    other_filters: Mapping[str, Iterable[Any]] | None = None,
    limit: int | None = None,
    schemas: list[TableSchema] | None = None,
) -> str:
    """Filter-panel option loader: distinct values of ``table.column``.

    *other_filters* maps sibling columns of the same table to their active
    values; each narrows the option list.  Date/time siblings (per *schemas*)
    match on their chart-label renderings.
    """
    limit = limit or get_settings().filter_option_limit
    clauses = [
        _constraint_sql(quote_ident(col), values, is_temporal_type(column_type(schemas, table, col)))
        for col, values in (other_filters or {}).items()
        if col != column
    ]
    where_sql = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return (
        f"SELECT {quote_ident(column)} AS value FROM {quote_ident(table)}{where_sql} "
        f"GROUP BY 1 ORDER BY 1 LIMIT {int(limit)}"
    )
