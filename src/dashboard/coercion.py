"""
Value coercion helpers shared by every SQL-emitting and chart-building path.

Two halves:
  - Python-side coercion of result values (numbers, text, dates)
  - SQL fragments that perform the same coercion inside the engine
    without ever failing the statement (TRY_CAST based)

Identifier quoting and literal escaping live here as well so that every
statement built from user configuration goes through a single pair of helpers.
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

# ── Python-side coercion ────────────────────────────────

_NUMERIC_NOISE_RE = re.compile(r"[$,%\s]")

GRANULARITIES = ("day", "month", "year")


def to_numeric_or_none(value: Any) -> float | None:
    """Parse *value* as a float, tolerating ``$``, ``,``, ``%`` and whitespace.

    Returns None for null, empty or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, Decimal):
        try:
            number = float(value)
        except (InvalidOperation, ValueError):
            return None
        return number if math.isfinite(number) else None
    raw = _NUMERIC_NOISE_RE.sub("", str(value))
    if not raw:
        return None
    try:
        number = float(raw)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def to_number(value: Any) -> float:
    """Like ``to_numeric_or_none`` but never returns None (falls back to 0)."""
    number = to_numeric_or_none(value)
    return 0.0 if number is None else number


def to_text(value: Any) -> str:
    return "" if value is None else str(value)


def normalize_label(value: Any) -> str:
    """Case/whitespace-insensitive comparison key for category labels."""
    return to_text(value).strip().lower()


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = to_text(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def format_date(value: Any, granularity: str = "day") -> str:
    """Render a temporal value as ``YYYY``, ``YYYY/MM`` or ``YYYY/MM/DD``.

    Values that cannot be read as a date are returned as raw text.
    """
    if value is None:
        return ""
    parsed = _parse_datetime(value)
    if parsed is None:
        return to_text(value)
    if granularity == "year":
        return f"{parsed.year:04d}"
    if granularity == "month":
        return f"{parsed.year:04d}/{parsed.month:02d}"
    return f"{parsed.year:04d}/{parsed.month:02d}/{parsed.day:02d}"


# ── Column type heuristics ──────────────────────────────


def is_temporal_type(type_label: str | None) -> bool:
    upper = (type_label or "").upper()
    return "DATE" in upper or "TIME" in upper


def is_text_type(type_label: str | None) -> bool:
    upper = (type_label or "").upper()
    return any(tok in upper for tok in ("CHAR", "TEXT", "STRING", "VARCHAR"))


# ── SQL quoting ─────────────────────────────────────────


def quote_ident(name: str) -> str:
    """Double-quote an identifier, doubling any embedded quotes."""
    return '"' + to_text(name).replace('"', '""') + '"'


def quote_literal(value: Any) -> str:
    """Render a filter value as a SQL literal (finite numbers stay bare)."""
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return str(value)
    return "'" + to_text(value).replace("'", "''") + "'"


# ── SQL coercion fragments ──────────────────────────────


def strip_numeric_sql(ref: str) -> str:
    """SQL that strips ``$``, ``,`` and spaces then casts to DOUBLE (NULL on failure)."""
    return (
        f"TRY_CAST(REPLACE(REPLACE(REPLACE(CAST({ref} AS VARCHAR), '$', ''), ',', ''), ' ', '') "
        f"AS DOUBLE)"
    )


def as_timestamp_sql(ref: str) -> str:
    """SQL that reads ISO text, epoch seconds or epoch millis as a TIMESTAMP.

    The first successful interpretation wins; NULL when none applies.
    Every attempt reads the value through VARCHAR so that no source type
    hits an unimplemented direct cast.
    """
    text = f"CAST({ref} AS VARCHAR)"
    return (
        "COALESCE("
        f"TRY_CAST({text} AS TIMESTAMP), "
        f"TRY_CAST(TO_TIMESTAMP(TRY_CAST({text} AS DOUBLE)) AS TIMESTAMP), "
        f"TRY_CAST(TO_TIMESTAMP(TRY_CAST({text} AS DOUBLE) / 1000.0) AS TIMESTAMP)"
        ")"
    )
