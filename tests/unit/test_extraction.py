"""
Unit tests -- SQL / chart extraction from free-form LLM answers.
"""
from src.assistant.extraction import clean_display, compact_text, extract_chart, extract_sql


# ── SQL ─────────────────────────────────────────────────

def test_sql_tags_preferred():
    text = "Here you go\n[SQL]\nSELECT 1\n[/SQL]\n```sql\nSELECT 2\n```"
    assert extract_sql(text) == "SELECT 1"


def test_sql_fence():
    assert extract_sql("Try:\n```sql\nSELECT region FROM Orders\n```") == "SELECT region FROM Orders"


def test_generic_fence_with_sql_verb():
    assert extract_sql("```\nWITH x AS (SELECT 1) SELECT * FROM x\n```").startswith("WITH x")


def test_generic_fence_without_sql_is_ignored():
    assert extract_sql("```\nprint('hi')\n```") is None


def test_bare_short_select():
    assert extract_sql("  select * from Orders ") == "select * from Orders"


def test_bare_long_text_not_treated_as_sql():
    text = "SELECT\n" + "\n".join(f"col{i}," for i in range(20)) + "\nFROM t"
    assert extract_sql(text) is None


def test_no_sql():
    assert extract_sql("Sales grew 10% last month.") is None
    assert extract_sql(None) is None


# ── Chart ───────────────────────────────────────────────

def test_chart_tags():
    text = '[CHART]{"title": {"text": "Sales"}, "series": []}[/CHART]'
    assert extract_chart(text)["title"]["text"] == "Sales"


def test_chart_tags_invalid_json():
    assert extract_chart("[CHART]{not json}[/CHART]") is None


def test_json_fence_chart_like():
    text = '```json\n{"xAxis": {"data": ["a"]}, "series": [{"data": [1]}]}\n```'
    assert extract_chart(text)["xAxis"]["data"] == ["a"]


def test_json_fence_not_chart_like():
    assert extract_chart('```json\n{"foo": 1}\n```') is None


def test_no_chart():
    assert extract_chart("just words") is None


# ── Display ─────────────────────────────────────────────

def test_clean_display_strips_blocks_and_markdown():
    text = "## Result\n**Sales** rose.\n[SQL]SELECT 1[/SQL]\n[CHART]{}[/CHART]\n```sql\nSELECT 2\n```\n\n\n\nDone"
    cleaned = clean_display(text)
    assert "SELECT" not in cleaned
    assert "**" not in cleaned
    assert cleaned.startswith("Result")
    assert "\n\n\n" not in cleaned


def test_compact_text_limits_lines_and_chars():
    text = "\n".join(f"line {i}" for i in range(10))
    assert compact_text(text).count("\n") == 4
    long = "x" * 600
    out = compact_text(long, max_chars=100)
    assert len(out) == 102
    assert out.endswith("...")
