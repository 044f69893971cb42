"""
WidgetDataSource -- the declarative widget configuration the compiler reads.

Accepts the camelCase wire names (``tableName``, ``xAxis``, ``extraFields``
...) as well as the snake_case attribute names.  ``to_chart_config`` turns the
loose data source into one of the tagged per-chart-type configs.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from src.core.errors import ValidationError

CHART_TYPES = ("bar", "line", "pie", "scatter", "kpi", "radar")
AGGREGATIONS = ("SUM", "COUNT", "COUNT_DISTINCT", "COUNT_ROWS", "AVG", "MIN", "MAX", "NONE")
COUNT_AGGREGATIONS = ("COUNT", "COUNT_DISTINCT", "COUNT_ROWS")
WINDOW_UNITS = ("day", "month", "year")


class ExtraFields(BaseModel):
    """Per-widget options stored under ``extraFields``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    base_table: str | None = Field(None, alias="baseTable")
    aggregation: str | None = Field(None, description="SUM | COUNT | COUNT_DISTINCT | COUNT_ROWS | AVG | MIN | MAX | NONE")
    series_by: str | None = Field(None, alias="seriesBy")
    time_granularity: str | None = Field(None, alias="timeGranularity", description="day | month | year")
    kpi_time_column: str | None = Field(None, alias="kpiTimeColumn")
    kpi_window_value: int | None = Field(None, alias="kpiWindowValue")
    kpi_window_unit: str | None = Field(None, alias="kpiWindowUnit")
    kpi_filter_x_axis: str | None = Field(None, alias="kpiFilterXAxis")
    kpi_thresholds: Any = Field(None, alias="kpiThresholds")
    kpi_legend: str | None = Field(None, alias="kpiLegend")
    chart_internal_title: str | None = Field(None, alias="chartInternalTitle")
    x_axis_label: str | None = Field(None, alias="xAxisLabel")
    y_axis_label: str | None = Field(None, alias="yAxisLabel")
    series_alias_map: str | dict[str, str] | None = Field(None, alias="seriesAliasMap")
    show_legend: bool | None = Field(None, alias="showLegend")


class WidgetDataSource(BaseModel):
    """One widget's data binding: base table, axis fields and options."""

    model_config = ConfigDict(populate_by_name=True)

    table_name: str = Field("", alias="tableName")
    x_axis: str | None = Field(None, alias="xAxis")
    y_axis: str | list[str] | None = Field(None, alias="yAxis")
    chart_type: str = Field("bar", alias="chartType")
    extra_fields: ExtraFields = Field(default_factory=ExtraFields, alias="extraFields")

    # ── Derived views ───────────────────────────────────

    @property
    def base_table(self) -> str:
        return (self.extra_fields.base_table or self.table_name or "").strip()

    @property
    def kind(self) -> str:
        return (self.chart_type or "").strip().lower()

    @property
    def y_fields(self) -> list[str]:
        if self.y_axis is None:
            return []
        raw = [self.y_axis] if isinstance(self.y_axis, str) else list(self.y_axis)
        return [str(y).strip() for y in raw if y is not None and str(y).strip()]

    @property
    def aggregation(self) -> str:
        agg = (self.extra_fields.aggregation or "").strip().upper()
        return agg or "SUM"

    @property
    def series_by(self) -> str | None:
        value = (self.extra_fields.series_by or "").strip()
        return value or None

    @property
    def time_granularity(self) -> str:
        value = (self.extra_fields.time_granularity or "day").strip().lower()
        return value if value in WINDOW_UNITS else "day"

    def to_chart_config(self) -> "ChartConfig":
        """Return the tagged config for this widget's chart type."""
        kind = self.kind
        base = self.base_table
        ef = self.extra_fields
        if kind == "kpi":
            ys = self.y_fields
            return KpiConfig(
                base_table=base,
                y_field=ys[0] if ys else "",
                aggregation=self.aggregation,
                time_column=(ef.kpi_time_column or "").strip() or None,
                window_value=ef.kpi_window_value,
                window_unit=ef.kpi_window_unit,
                filter_x_axis=(ef.kpi_filter_x_axis or "").strip() or None,
                thresholds=ef.kpi_thresholds,
                legend=ef.kpi_legend,
            )
        common = dict(
            base_table=base,
            x_field=(self.x_axis or "").strip(),
            y_fields=self.y_fields,
        )
        if kind == "scatter":
            return ScatterConfig(**common)
        if kind not in _AXIS_CONFIGS:
            raise ValidationError(f"Unsupported chart type '{self.chart_type}'")
        return _AXIS_CONFIGS[kind](
            **common,
            aggregation=self.aggregation,
            series_by=self.series_by,
            time_granularity=self.time_granularity,
        )


# ── Tagged chart configs ────────────────────────────────


class _AxisConfig(BaseModel):
    base_table: str
    x_field: str
    y_fields: list[str]
    aggregation: str = "SUM"
    series_by: str | None = None
    time_granularity: str = "day"


class BarConfig(_AxisConfig):
    chart_type: Literal["bar"] = "bar"


class LineConfig(_AxisConfig):
    chart_type: Literal["line"] = "line"


class PieConfig(_AxisConfig):
    chart_type: Literal["pie"] = "pie"


class RadarConfig(_AxisConfig):
    chart_type: Literal["radar"] = "radar"


class ScatterConfig(BaseModel):
    chart_type: Literal["scatter"] = "scatter"
    base_table: str
    x_field: str
    y_fields: list[str]


class KpiConfig(BaseModel):
    chart_type: Literal["kpi"] = "kpi"
    base_table: str
    y_field: str
    aggregation: str = "SUM"
    time_column: str | None = None
    window_value: int | None = None
    window_unit: str | None = None
    filter_x_axis: str | None = None
    thresholds: Any = None
    legend: str | None = None


ChartConfig = Annotated[
    Union[BarConfig, LineConfig, PieConfig, RadarConfig, ScatterConfig, KpiConfig],
    Field(discriminator="chart_type"),
]

_AXIS_CONFIGS: dict[str, type[_AxisConfig]] = {
    "bar": BarConfig,
    "line": LineConfig,
    "pie": PieConfig,
    "radar": RadarConfig,
}
