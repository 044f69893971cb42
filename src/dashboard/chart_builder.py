"""
Chart Config Builder -- shapes compiled-query rows into a chart spec.

The chart spec is a loosely typed dict shared with LLM output:

  axis     {title, xAxis:{type,data,name}, yAxis:{type,name}, legend:{data}, series:[{name,type,data}]}
  pie      {title, series:[{name, type:'pie', data:[{name,value}]}]}
  radar    {title, radar:{indicator:[{name}]}, series:[{name,type:'radar',data:[{name,value:[...]}]}]}
  scatter  {title, xAxis:{type:'value'}, yAxis:{type:'value'}, series:[{name,type,data:[[x,y]...]}]}
  kpi      {kpi:{label,value,previous,deltaPct,thresholds,window}}

Everything here is a pure transform; no SQL, no I/O.
"""
from __future__ import annotations

import copy
import re
from typing import Any

from src.core.errors import ValidationError
from src.core.logging import get_logger
from src.core.utils import unique
from src.dashboard.coercion import format_date, to_number, to_numeric_or_none, to_text

logger = get_logger(__name__)

DEFAULT_Y_NAME = "Values"

# ── Theme presets ───────────────────────────────────────

_TEXT_STYLE = {
    "fontFamily": "'Manrope', 'Space Grotesk', 'Segoe UI', sans-serif",
    "color": "#1f2937",
}

THEMES: dict[str, dict[str, Any]] = {
    "default": {
        "color": ["#06b6d4", "#3b82f6", "#22c55e", "#f59e0b", "#ef4444", "#8b5cf6", "#14b8a6", "#f97316"],
        "textStyle": _TEXT_STYLE,
    },
    "pastel": {
        "color": ["#7dd3fc", "#93c5fd", "#86efac", "#fcd34d", "#fca5a5", "#c4b5fd", "#99f6e4", "#fdba74"],
        "textStyle": _TEXT_STYLE,
    },
    "dark": {
        "color": ["#67e8f9", "#60a5fa", "#4ade80", "#fbbf24", "#fb7185", "#a78bfa", "#2dd4bf", "#fb923c"],
        "textStyle": {**_TEXT_STYLE, "color": "#e2e8f0"},
    },
    "vibrant": {
        "color": ["#00bcd4", "#1d4ed8", "#16a34a", "#f97316", "#dc2626", "#9333ea", "#0ea5e9", "#84cc16"],
        "textStyle": _TEXT_STYLE,
    },
    "nature": {
        "color": ["#15803d", "#16a34a", "#22c55e", "#84cc16", "#65a30d", "#4d7c0f", "#166534", "#14532d"],
        "textStyle": _TEXT_STYLE,
    },
}


def apply_theme(
    config: dict[str, Any],
    theme_name: str | None = "default",
    custom_colors: list[str] | None = None,
) -> dict[str, Any]:
    """Fill ``color`` / ``textStyle`` from a preset without overriding explicit values.

    ``custom`` uses *custom_colors* on top of the default preset.
    """
    theme = THEMES.get(theme_name or "default", THEMES["default"])
    out = dict(config)
    out.setdefault("color", list(theme["color"]))
    out.setdefault("textStyle", dict(theme["textStyle"]))
    if theme_name == "custom" and custom_colors:
        out["color"] = list(custom_colors)
    return out


# ── Series aliases ──────────────────────────────────────

_ALIAS_LINE_RE = re.compile(r"^\s*([^=:]+?)\s*[=:]\s*(.+?)\s*$")


def parse_series_alias_map(text: str | dict[str, str] | None) -> dict[str, str]:
    """Parse ``from=to`` / ``from:to`` lines (or pass a dict through)."""
    if not text:
        return {}
    if isinstance(text, dict):
        return {str(k).strip(): str(v).strip() for k, v in text.items() if str(k).strip() and str(v).strip()}
    out: dict[str, str] = {}
    for line in str(text).splitlines():
        m = _ALIAS_LINE_RE.match(line)
        if m:
            out[m.group(1)] = m.group(2)
    return out


def apply_series_aliases(config: dict[str, Any], alias_map: dict[str, str]) -> dict[str, Any]:
    """Rename series and legend entries according to *alias_map*."""
    if not alias_map:
        return config
    out = dict(config)
    series = out.get("series")
    if isinstance(series, list):
        renamed = []
        for s in series:
            if isinstance(s, dict):
                alias = alias_map.get(to_text(s.get("name")).strip())
                renamed.append({**s, "name": alias} if alias else s)
            else:
                renamed.append(s)
        out["series"] = renamed
    legend = out.get("legend")
    if isinstance(legend, dict) and isinstance(legend.get("data"), list):
        out["legend"] = {
            **legend,
            "data": [alias_map.get(to_text(item).strip(), item) for item in legend["data"]],
        }
    return out


# ── KPI ─────────────────────────────────────────────────


def delta_pct(current: float | None, previous: float | None) -> float | None:
    """Period-over-period change in percent; None when *previous* is 0 or missing."""
    if current is None or previous is None or previous == 0:
        return None
    return (current - previous) / abs(previous) * 100


def build_kpi_spec(
    row: dict[str, Any] | None,
    label: str,
    thresholds: Any = None,
    window: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Turn a ``current_value`` / ``previous_value`` row into a KPI spec."""
    row = row or {}
    current = to_number(row.get("current_value"))
    raw_previous = row.get("previous_value")
    previous = None if raw_previous is None else to_number(raw_previous)
    return {
        "kpi": {
            "label": label,
            "value": current,
            "previous": previous,
            "deltaPct": delta_pct(current, previous),
            "thresholds": thresholds,
            "window": window,
        }
    }


# ── Chart spec ──────────────────────────────────────────


def build_chart_config(
    rows: list[dict[str, Any]],
    chart_type: str,
    x_field: str,
    y_fields: str | list[str],
    options: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Shape *rows* into the chart spec for *chart_type*.

    Parameters
    ----------
    rows : list[dict]
        Result rows keyed by the compiled column aliases.
    chart_type : str
        bar | line | pie | radar | scatter
    x_field, y_fields : str
        Column names to read from each row.
    options : dict, optional
        ``series_by``, ``time_field``, ``time_granularity`` and
        ``custom_labels`` ({title, x, y, legend}).

    Returns
    -------
    dict
        The chart spec (see module docstring).
    """
    options = options or {}
    ys = [y_fields] if isinstance(y_fields, str) else list(y_fields)
    labels = options.get("custom_labels") or {}
    granularity = options.get("time_granularity") or "day"
    series_by = options.get("series_by")
    temporal_x = bool(options.get("time_field")) and options.get("time_field") == x_field

    if series_by and len(ys) > 1 and chart_type in ("bar", "line"):
        raise ValidationError("Series breakdown supports a single Y field")

    def x_label(row: dict[str, Any]) -> str:
        value = row.get(x_field)
        return format_date(value, granularity) if temporal_x else to_text(value)

    x_values = [x_label(r) for r in rows]
    title = labels.get("title") or f"{chart_type.upper()} - {x_field}"

    if chart_type == "pie":
        if len(ys) > 1:
            slices = [
                {"name": f, "value": sum(to_number(r.get(f)) for r in rows)}
                for f in ys
            ]
            name = labels.get("legend") or DEFAULT_Y_NAME
        else:
            slices = [
                {"name": x, "value": to_number(r.get(ys[0]))}
                for x, r in zip(x_values, rows)
            ]
            name = labels.get("legend") or ys[0]
        return {
            "title": {"text": title},
            "series": [{"name": name, "type": "pie", "data": slices}],
        }

    if chart_type == "radar":
        indicators = unique(x_values)
        first_rows: dict[str, dict[str, Any]] = {}
        for x, r in zip(x_values, rows):
            first_rows.setdefault(x, r)
        return {
            "title": {"text": title},
            "radar": {"indicator": [{"name": x} for x in indicators]},
            "series": [{
                "name": "Radar",
                "type": "radar",
                "data": [
                    {"name": f, "value": [to_number(first_rows[x].get(f)) for x in indicators]}
                    for f in ys
                ],
            }],
        }

    if chart_type == "scatter":
        return {
            "title": {"text": title},
            "xAxis": {"type": "value", "name": labels.get("x") or x_field},
            "yAxis": {"type": "value", "name": labels.get("y") or DEFAULT_Y_NAME},
            "series": [
                {
                    "name": f,
                    "type": "scatter",
                    "data": [[to_number(r.get(x_field)), to_number(r.get(f))] for r in rows],
                }
                for f in ys
            ],
        }

    if series_by:
        categories = unique(x_values)
        series_names = [s for s in unique(to_text(r.get(series_by)) for r in rows) if s]
        lookup: dict[tuple[str, str], dict[str, Any]] = {}
        for x, r in zip(x_values, rows):
            lookup.setdefault((x, to_text(r.get(series_by))), r)
        series = [
            {
                "name": s,
                "type": chart_type,
                "smooth": chart_type == "line",
                "data": [
                    to_number(lookup[(x, s)].get(ys[0])) if (x, s) in lookup else 0
                    for x in categories
                ],
            }
            for s in series_names
        ]
    else:
        categories = x_values
        series = [
            {
                "name": labels.get("legend") if len(ys) == 1 and labels.get("legend") else f,
                "type": chart_type,
                "smooth": chart_type == "line",
                "data": [to_number(r.get(f)) for r in rows],
            }
            for f in ys
        ]

    return {
        "title": {"text": title},
        "xAxis": {"type": "category", "data": categories, "name": labels.get("x") or x_field},
        "yAxis": {"type": "value", "name": labels.get("y") or DEFAULT_Y_NAME},
        "legend": {"data": [s["name"] for s in series]},
        "series": series,
    }


def finalize_chart_config(
    config: dict[str, Any],
    theme_name: str | None = "default",
    custom_colors: list[str] | None = None,
    alias_map: dict[str, str] | None = None,
    show_legend: bool | None = None,
) -> dict[str, Any]:
    """Apply theme, series aliases and legend visibility to a built chart spec."""
    out = apply_theme(copy.deepcopy(config), theme_name, custom_colors)
    out = apply_series_aliases(out, alias_map or {})
    if show_legend is not None:
        legend = out.get("legend") if isinstance(out.get("legend"), dict) else {}
        out["legend"] = {**legend, "show": show_legend}
    return out


def numeric_columns(rows: list[dict[str, Any]], skip: str | None = None) -> list[str]:
    """Columns where at least one row holds a numerically parseable value."""
    if not rows:
        return []
    return [
        key for key in rows[0].keys()
        if key != skip and any(to_numeric_or_none(r.get(key)) is not None for r in rows)
    ]
