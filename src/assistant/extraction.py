"""
Extraction of SQL statements and chart JSON from free-form LLM text.

SQL is looked for, in order:
  1. ``[SQL] ... [/SQL]`` tags
  2. a ```` ```sql ```` fence
  3. a bare fence whose body starts with a SQL verb
  4. the whole text, when it starts with SELECT / WITH and is short

Chart JSON comes from ``[CHART] ... [/CHART]`` tags or a ```` ```json ````
fence that looks like a chart (has series / xAxis / title / kpi).
Absence of either is normal and yields None.
"""
from __future__ import annotations

import json
import re
from typing import Any

_SQL_TAG_RE = re.compile(r"\[SQL\]([\s\S]*?)\[/SQL\]", re.IGNORECASE)
_SQL_FENCE_RE = re.compile(r"```sql\s*\n([\s\S]*?)\n```", re.IGNORECASE)
_GENERIC_FENCE_RE = re.compile(r"```\s*\n([\s\S]*?)\n```")
_SQL_VERB_RE = re.compile(r"^\s*(SELECT|INSERT|UPDATE|DELETE|WITH|CREATE|DROP|ALTER)", re.IGNORECASE)
_BARE_QUERY_RE = re.compile(r"^\s*(SELECT|WITH)\s", re.IGNORECASE)
_BARE_QUERY_MAX_LINES = 15

_CHART_TAG_RE = re.compile(r"\[CHART\]([\s\S]*?)\[/CHART\]", re.IGNORECASE)
_JSON_FENCE_RE = re.compile(r"```json\s*\n([\s\S]*?)\n```", re.IGNORECASE)
_CHART_KEYS = ("series", "xAxis", "title", "kpi")


def extract_sql(text: str | None) -> str | None:
    if not text:
        return None
    m = _SQL_TAG_RE.search(text)
    if m:
        return m.group(1).strip()

    m = _SQL_FENCE_RE.search(text)
    if m:
        return m.group(1).strip()

    m = _GENERIC_FENCE_RE.search(text)
    if m:
        block = m.group(1).strip()
        if _SQL_VERB_RE.match(block):
            return block

    stripped = text.strip()
    if _BARE_QUERY_RE.match(stripped) and len(stripped.split("\n")) < _BARE_QUERY_MAX_LINES:
        return stripped
    return None


def extract_chart(text: str | None) -> Any | None:
    if not text:
        return None
    m = _CHART_TAG_RE.search(text)
    if m:
        try:
            return json.loads(m.group(1).strip())
        except json.JSONDecodeError:
            return None

    m = _JSON_FENCE_RE.search(text)
    if m:
        try:
            parsed = json.loads(m.group(1).strip())
        except json.JSONDecodeError:
            return None
        if isinstance(parsed, dict) and any(parsed.get(k) for k in _CHART_KEYS):
            return parsed
    return None


# ── Display text ────────────────────────────────────────

_CLEAN_PATTERNS = [
    (re.compile(r"\[SQL\][\s\S]*?\[/SQL\]", re.IGNORECASE), ""),
    (re.compile(r"\[CHART\][\s\S]*?\[/CHART\]", re.IGNORECASE), ""),
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"\*\*"), ""),
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"\n{3,}"), "\n\n"),
]


def clean_display(text: str | None) -> str:
    """Strip tags, fences and markdown emphasis from an LLM answer."""
    out = text or ""
    for pattern, repl in _CLEAN_PATTERNS:
        out = pattern.sub(repl, out)
    return out.strip()


def compact_text(text: str | None, max_lines: int = 5, max_chars: int = 520) -> str:
    lines = [line.strip() for line in (text or "").split("\n")]
    joined = "\n".join([line for line in lines if line][:max_lines])
    if len(joined) > max_chars:
        return joined[: max_chars - 1] + "..."
    return joined
