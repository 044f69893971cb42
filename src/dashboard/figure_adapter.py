"""
Chart Figure Adapter -- turns loosely typed chart specs into strict figures.

Two stages, neither of which ever raises:

  1. ``normalize_chart_config``  repairs free-form chart JSON (LLM or user
     edited): Chart.js ``{data:{labels,datasets}}`` shapes, single series
     objects, ``{name,value}`` / ``{x,y}`` object points, scalar pie data.
     When nothing renderable is left, a bar chart is derived from the
     fallback rows, if any.
  2. ``to_figure``  maps a chart spec onto a renderer-ready ``Figure`` with
     a selection lookup that returns the clicked category label.

Unusable shapes degrade to a placeholder figure; the degradation is logged
at WARNING and never surfaced as an error.

``parse_chart_config`` is the typed boundary: chart spec in, one of the
``AxisChart | PieChart | RadarChart | ScatterChart | KpiChart`` variants out.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from pydantic import BaseModel

from src.core.config import get_settings
from src.core.logging import get_logger
from src.dashboard.chart_builder import THEMES, numeric_columns
from src.dashboard.coercion import to_number, to_numeric_or_none, to_text

logger = get_logger(__name__)

PLACEHOLDER_LABEL = "No data"
EMPTY_FILTER_KEY = "__emptyFiltered"
GENERATED_TITLE = "Generated chart"


# ── Row-level fallback ──────────────────────────────────


def build_chart_from_rows(rows: list[dict[str, Any]] | None, title: str = GENERATED_TITLE) -> dict[str, Any] | None:
    """Derive a bar chart from tabular rows of unknown shape.

    First column = category; first numeric-valued column = measure (top N
    rows).  With no numeric column, count the category values instead and
    keep the N most frequent.
    """
    if not rows or not isinstance(rows[0], dict) or not rows[0]:
        return None
    top_n = get_settings().fallback_top_n
    keys = list(rows[0].keys())
    x_key = keys[0]
    measures = numeric_columns(rows)

    if measures:
        y_key = measures[0]
        trimmed = rows[:top_n]
        return {
            "title": {"text": title},
            "xAxis": {"data": [to_text(r.get(x_key)) for r in trimmed], "name": x_key},
            "yAxis": {"name": y_key},
            "series": [{
                "type": "bar",
                "name": y_key,
                "data": [to_number(r.get(y_key)) for r in trimmed],
            }],
        }

    counts: dict[str, int] = {}
    for r in rows:
        value = r.get(x_key) if isinstance(r, dict) else None
        key = "No value" if value is None else to_text(value)
        counts[key] = counts.get(key, 0) + 1
    top = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:top_n]
    return {
        "title": {"text": f"{title} (count)"},
        "xAxis": {"data": [k for k, _ in top], "name": x_key},
        "yAxis": {"name": "Count"},
        "series": [{"type": "bar", "name": "Count", "data": [v for _, v in top]}],
    }


def _row_fallback(rows: list[dict[str, Any]] | None, reason: str) -> dict[str, Any] | None:
    if rows:
        logger.warning("Chart config unusable (%s); deriving chart from %d rows", reason, len(rows))
        return build_chart_from_rows(rows)
    logger.warning("Chart config unusable (%s); no fallback rows", reason)
    return None


def has_renderable_series(config: dict[str, Any] | None) -> bool:
    if not isinstance(config, dict):
        return False
    series = config.get("series")
    if not isinstance(series, list) or not series:
        return False
    return any(isinstance(s, dict) and isinstance(s.get("data"), list) and s["data"] for s in series)


# ── Stage 1: normalization ──────────────────────────────


def _from_chartjs(config: dict[str, Any]) -> dict[str, Any]:
    data = config["data"]
    labels = [to_text(label) for label in data["labels"]]
    base_type = to_text(config.get("type") or "bar").lower()
    title = config.get("title") or {"text": GENERATED_TITLE}
    return {
        "title": title,
        "xAxis": {"data": labels},
        "yAxis": {"name": "Values"},
        "series": [
            {
                "type": base_type,
                "name": to_text((ds or {}).get("label") if isinstance(ds, dict) else None) or f"Series {idx + 1}",
                "data": ds.get("data") if isinstance(ds, dict) and isinstance(ds.get("data"), list) else [],
            }
            for idx, ds in enumerate(data["datasets"])
        ],
    }


def _is_chartjs(config: dict[str, Any]) -> bool:
    data = config.get("data")
    return (
        isinstance(data, dict)
        and isinstance(data.get("datasets"), list)
        and isinstance(data.get("labels"), list)
    )


def normalize_chart_config(
    raw: Any,
    rows_fallback: list[dict[str, Any]] | None = None,
) -> dict[str, Any] | None:
    """Repair an arbitrary chart spec; ``None`` when nothing usable remains."""
    if not isinstance(raw, dict):
        return _row_fallback(rows_fallback, "not an object")
    if isinstance(raw.get("kpi"), dict):
        return copy.deepcopy(raw)

    config = copy.deepcopy(raw)
    if _is_chartjs(config):
        config = _from_chartjs(config)

    if isinstance(config.get("series"), dict):
        config["series"] = [config["series"]]

    if not isinstance(config.get("series"), list):
        return _row_fallback(rows_fallback, "no series")

    inferred: list[str] = []
    normalized_series = []
    x_axis = config.get("xAxis") if isinstance(config.get("xAxis"), dict) else None
    for idx, serie in enumerate(config["series"]):
        serie = serie if isinstance(serie, dict) else {}
        safe_type = to_text(serie.get("type") or config.get("type") or "bar").lower()
        data = serie.get("data") if isinstance(serie.get("data"), list) else []

        # radar rows carry a value list per series; leave them intact
        if data and isinstance(data[0], dict) and safe_type != "radar":
            first = data[0]
            if "value" in first or "name" in first:
                inferred = [
                    to_text(p.get("name")) if isinstance(p, dict) and p.get("name") is not None else f"Item {i + 1}"
                    for i, p in enumerate(data)
                ]
                data = [to_numeric_or_none(p.get("value") if isinstance(p, dict) else None) or 0 for p in data]
            elif "y" in first or "x" in first:
                inferred = [
                    to_text(p.get("x")) if isinstance(p, dict) and p.get("x") is not None else f"Item {i + 1}"
                    for i, p in enumerate(data)
                ]
                data = [to_numeric_or_none(p.get("y") if isinstance(p, dict) else None) or 0 for p in data]

        normalized = {
            **serie,
            "type": safe_type,
            "name": to_text(serie.get("name")) or f"Series {idx + 1}",
            "data": data,
        }

        if safe_type == "pie" and data and not isinstance(data[0], dict):
            axis_labels = (
                [to_text(v) for v in x_axis["data"]]
                if x_axis and isinstance(x_axis.get("data"), list) else inferred
            )
            normalized["data"] = [
                {
                    "name": (axis_labels[i] if i < len(axis_labels) and axis_labels[i] else f"Item {i + 1}"),
                    "value": to_numeric_or_none(v) or 0,
                }
                for i, v in enumerate(data)
            ]

        normalized_series.append(normalized)
    config["series"] = normalized_series

    if (not x_axis or not isinstance(x_axis.get("data"), list)) and inferred:
        config["xAxis"] = {**(x_axis or {}), "data": inferred}

    if not has_renderable_series(config):
        return _row_fallback(rows_fallback, "no data points")
    return config


# ── Stage 2: figures ────────────────────────────────────


@dataclass(frozen=True)
class FigureTheme:
    """Explicit rendering context for figure building."""

    dark: bool = False
    palette: tuple[str, ...] = tuple(THEMES["default"]["color"])


@dataclass
class Figure:
    """Renderer-ready chart.

    ``series`` is a list of ``{name, data}`` dicts for axis/radar/scatter
    figures and a flat list of numbers for pie figures.
    """

    type: str
    series: list[Any]
    categories: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    title: str = ""
    x_title: str = ""
    y_title: str = ""
    colors: list[str] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)
    fallback: bool = False

    def get_label_from_selection(self, series_index: int, point_index: int) -> str | float | None:
        """Category label of the clicked point, or None."""
        if self.fallback or point_index < 0 or series_index < 0:
            return None
        if self.type in ("pie", "radar"):
            return self.labels[point_index] if point_index < len(self.labels) else None
        if self.type == "scatter":
            if series_index >= len(self.series):
                return None
            points = self.series[series_index].get("data") or []
            if point_index >= len(points) or not isinstance(points[point_index], dict):
                return None
            return points[point_index].get("x")
        return self.categories[point_index] if point_index < len(self.categories) else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "series": self.series,
            "categories": self.categories,
            "labels": self.labels,
            "title": self.title,
            "x_title": self.x_title,
            "y_title": self.y_title,
            "colors": self.colors,
            "options": self.options,
            "fallback": self.fallback,
        }


def _title_text(config: dict[str, Any]) -> str:
    title = config.get("title")
    if isinstance(title, dict):
        return to_text(title.get("text"))
    return to_text(title)


def _axis_name(config: dict[str, Any], key: str) -> str:
    axis = config.get(key)
    return to_text(axis.get("name")) if isinstance(axis, dict) else ""


def _base_options(config: dict[str, Any], chart_type: str, theme: FigureTheme) -> dict[str, Any]:
    style = config.get("style") if isinstance(config.get("style"), dict) else {}
    legend = config.get("legend") if isinstance(config.get("legend"), dict) else {}
    show_labels = style.get("showDataLabels")
    return {
        "foreColor": "#cbd5e1" if theme.dark else "#475569",
        "dataLabels": show_labels if isinstance(show_labels, bool) else chart_type in ("pie", "radar"),
        "grid": style.get("showGrid") is not False,
        "curve": "straight" if chart_type != "line" or style.get("smoothLines") is False else "smooth",
        "legend": legend.get("show") is not False,
        "sharedTooltip": chart_type in ("bar", "line"),
        "tooltipTheme": "dark" if theme.dark else "light",
    }


def _palette(config: dict[str, Any], theme: FigureTheme) -> list[str]:
    colors = config.get("color")
    if isinstance(colors, list) and colors:
        return [to_text(c) for c in colors]
    return list(theme.palette)


def _series_list(config: dict[str, Any]) -> list[dict[str, Any]]:
    series = config.get("series")
    return [s for s in series if isinstance(s, dict)] if isinstance(series, list) else []


def placeholder_figure(title: str = PLACEHOLDER_LABEL, theme: FigureTheme | None = None) -> Figure:
    theme = theme or FigureTheme()
    return Figure(
        type="bar",
        series=[{"name": "Value", "data": [0]}],
        categories=[PLACEHOLDER_LABEL],
        title=title,
        colors=list(theme.palette),
        options=_base_options({}, "bar", theme),
        fallback=True,
    )


def _pie_figure(config: dict[str, Any], theme: FigureTheme) -> Figure:
    series = _series_list(config)
    first_data = series[0].get("data") if series and isinstance(series[0].get("data"), list) else []
    placeholder = False
    if first_data and isinstance(first_data[0], dict):
        labels = [to_text(p.get("name")) if isinstance(p, dict) else "" for p in first_data]
        values = [to_number(p.get("value")) if isinstance(p, dict) else 0.0 for p in first_data]
    elif len(series) > 1:
        labels = [to_text(s.get("name")) or f"Series {i + 1}" for i, s in enumerate(series)]
        values = [
            sum(to_number(v) for v in s["data"]) if isinstance(s.get("data"), list) else 0.0
            for s in series
        ]
    else:
        logger.warning("Pie config without slices; rendering placeholder slice")
        labels = [PLACEHOLDER_LABEL]
        values = [0.0]
        placeholder = True
    return Figure(
        type="pie",
        series=values,
        labels=labels,
        title=_title_text(config),
        colors=_palette(config, theme),
        options=_base_options(config, "pie", theme),
        fallback=placeholder,
    )


def _radar_figure(config: dict[str, Any], theme: FigureTheme) -> Figure:
    radar = config.get("radar") if isinstance(config.get("radar"), dict) else {}
    indicators = radar.get("indicator") if isinstance(radar.get("indicator"), list) else []
    labels = [to_text(i.get("name")) if isinstance(i, dict) else to_text(i) for i in indicators]
    series = _series_list(config)
    radar_rows = series[0].get("data") if series and isinstance(series[0].get("data"), list) else []
    out = [
        {
            "name": to_text(row.get("name")) or f"Series {idx + 1}",
            "data": [to_number(v) for v in row["value"]] if isinstance(row.get("value"), list) else [],
        }
        for idx, row in enumerate(r for r in radar_rows if isinstance(r, dict))
    ]
    return Figure(
        type="radar",
        series=out,
        categories=labels,
        labels=labels,
        title=_title_text(config),
        colors=_palette(config, theme),
        options=_base_options(config, "radar", theme),
    )


def _scatter_figure(config: dict[str, Any], theme: FigureTheme) -> Figure:
    x_axis = config.get("xAxis") if isinstance(config.get("xAxis"), dict) else {}
    x_data = x_axis.get("data") if isinstance(x_axis.get("data"), list) else []
    out = []
    for idx, serie in enumerate(_series_list(config)):
        raw = serie.get("data") if isinstance(serie.get("data"), list) else []
        points = []
        for i, item in enumerate(raw):
            if isinstance(item, (list, tuple)):
                points.append({
                    "x": to_number(item[0] if len(item) > 0 else None),
                    "y": to_number(item[1] if len(item) > 1 else None),
                })
            else:
                x_value = x_data[i] if i < len(x_data) else i + 1
                points.append({"x": to_text(x_value), "y": to_number(item)})
        out.append({"name": to_text(serie.get("name")) or f"Series {idx + 1}", "data": points})
    return Figure(
        type="scatter",
        series=out,
        title=_title_text(config),
        x_title=_axis_name(config, "xAxis"),
        y_title=_axis_name(config, "yAxis"),
        colors=_palette(config, theme),
        options=_base_options(config, "scatter", theme),
    )


def _axis_figure(config: dict[str, Any], chart_type: str, theme: FigureTheme) -> Figure:
    x_axis = config.get("xAxis") if isinstance(config.get("xAxis"), dict) else {}
    categories = [to_text(v) for v in x_axis["data"]] if isinstance(x_axis.get("data"), list) else []
    out = [
        {
            "name": to_text(s.get("name")) or f"Series {idx + 1}",
            "data": [to_number(v) for v in s["data"]] if isinstance(s.get("data"), list) else [],
        }
        for idx, s in enumerate(_series_list(config))
    ]
    return Figure(
        type=chart_type,
        series=out,
        categories=categories,
        title=_title_text(config),
        x_title=_axis_name(config, "xAxis"),
        y_title=_axis_name(config, "yAxis"),
        colors=_palette(config, theme),
        options=_base_options(config, chart_type, theme),
    )


def _figure_type(config: dict[str, Any]) -> str:
    chart = config.get("chart") if isinstance(config.get("chart"), dict) else {}
    hint = to_text(chart.get("type")).lower()
    series = _series_list(config)
    first = to_text(series[0].get("type")).lower() if series else ""
    return first or hint or "bar"


def to_figure(config: dict[str, Any] | None, theme: FigureTheme | None = None) -> Figure:
    """Map a chart spec onto a ``Figure``; never raises."""
    theme = theme or FigureTheme()
    if not isinstance(config, dict) or not config:
        return placeholder_figure("No configuration", theme)
    if config.get("kpi"):
        return placeholder_figure("KPI", theme)
    if config.get(EMPTY_FILTER_KEY):
        return placeholder_figure("No data for current filter", theme)

    try:
        chart = config.get("chart") if isinstance(config.get("chart"), dict) else {}
        raw_series = config.get("series")
        if (
            to_text(chart.get("type")).lower() == "pie"
            and isinstance(raw_series, list) and raw_series
            and isinstance(raw_series[0], (int, float))
        ):
            labels_src = config.get("labels")
            labels = (
                [to_text(v) for v in labels_src] if isinstance(labels_src, list)
                else [f"Series {i + 1}" for i in range(len(raw_series))]
            )
            return Figure(
                type="pie",
                series=[to_number(v) for v in raw_series],
                labels=labels,
                title=_title_text(config),
                colors=_palette(config, theme),
                options=_base_options(config, "pie", theme),
            )

        if not has_renderable_series(config):
            logger.warning("Chart config has no data points; rendering placeholder")
            return placeholder_figure(_title_text(config) or PLACEHOLDER_LABEL, theme)

        kind = _figure_type(config)
        if kind == "pie":
            return _pie_figure(config, theme)
        if kind == "radar":
            return _radar_figure(config, theme)
        if kind == "scatter":
            return _scatter_figure(config, theme)
        if kind == "line":
            return _axis_figure(config, "line", theme)
        return _axis_figure(config, "bar", theme)
    except (TypeError, ValueError, KeyError, IndexError, AttributeError) as exc:
        logger.warning("Figure build failed (%s); rendering placeholder", exc)
        return placeholder_figure(_title_text(config) or PLACEHOLDER_LABEL, theme)


# ── Typed variants ──────────────────────────────────────


class SeriesData(BaseModel):
    name: str
    data: list[float]


class PieSlice(BaseModel):
    name: str
    value: float


class ScatterPoint(BaseModel):
    x: float | str
    y: float


class ScatterSeries(BaseModel):
    name: str
    points: list[ScatterPoint]


class AxisChart(BaseModel):
    type: Literal["bar", "line"]
    title: str = ""
    categories: list[str]
    series: list[SeriesData]
    x_title: str = ""
    y_title: str = ""


class PieChart(BaseModel):
    type: Literal["pie"] = "pie"
    title: str = ""
    slices: list[PieSlice]


class RadarChart(BaseModel):
    type: Literal["radar"] = "radar"
    title: str = ""
    indicators: list[str]
    series: list[SeriesData]


class ScatterChart(BaseModel):
    type: Literal["scatter"] = "scatter"
    title: str = ""
    series: list[ScatterSeries]


class KpiChart(BaseModel):
    type: Literal["kpi"] = "kpi"
    label: str = ""
    value: float = 0.0
    previous: float | None = None
    delta_pct: float | None = None
    thresholds: Any = None
    window: Any = None


ChartVariant = Union[AxisChart, PieChart, RadarChart, ScatterChart, KpiChart]


def parse_chart_config(config: Any) -> ChartVariant | None:
    """Typed view of a chart spec; None for placeholders and unusable input."""
    if not isinstance(config, dict):
        return None
    kpi = config.get("kpi")
    if isinstance(kpi, dict):
        previous = kpi.get("previous")
        delta = kpi.get("deltaPct")
        return KpiChart(
            label=to_text(kpi.get("label")),
            value=to_number(kpi.get("value")),
            previous=None if previous is None else to_number(previous),
            delta_pct=None if delta is None else to_number(delta),
            thresholds=kpi.get("thresholds"),
            window=kpi.get("window"),
        )

    fig = to_figure(config)
    if fig.fallback:
        return None
    if fig.type == "pie":
        return PieChart(
            title=fig.title,
            slices=[PieSlice(name=n, value=v) for n, v in zip(fig.labels, fig.series)],
        )
    if fig.type == "radar":
        return RadarChart(
            title=fig.title,
            indicators=fig.labels,
            series=[SeriesData(**s) for s in fig.series],
        )
    if fig.type == "scatter":
        return ScatterChart(
            title=fig.title,
            series=[
                ScatterSeries(name=s["name"], points=[ScatterPoint(**p) for p in s["data"]])
                for s in fig.series
            ],
        )
    return AxisChart(
        type=fig.type,
        title=fig.title,
        categories=fig.categories,
        series=[SeriesData(**s) for s in fig.series],
        x_title=fig.x_title,
        y_title=fig.y_title,
    )
