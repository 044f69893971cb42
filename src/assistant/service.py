"""
Assistant service -- question -> LLM -> SQL / chart -> executed result.

Flow:
  1. Build the system prompt from table schemas and three sample rows each
  2. Ask the LLM; extract SQL and chart JSON from its free-form answer
  3. Execute the SQL; on engine errors ask the LLM for a corrected statement,
     at most ``assistant_max_retries`` times
  4. Normalize the chart (deriving one from the rows in chart mode)
  5. In summary mode, ask the LLM to summarize the result rows

The LLM is a text-in / text-out collaborator (``call_llm``).
"""
from __future__ import annotations

import json
import time
from typing import Any

from src.assistant.extraction import clean_display, compact_text, extract_chart, extract_sql
from src.assistant.llm_client import call_llm
from src.core.config import get_settings
from src.core.errors import QueryExecutionError, ValidationError
from src.core.logging import get_logger
from src.dashboard.chart_builder import apply_theme
from src.dashboard.figure_adapter import build_chart_from_rows, normalize_chart_config
from src.db.catalog import load_schemas, sample_rows
from src.db.executor import execute_query
from src.modeling.schema import TableSchema

logger = get_logger(__name__)

MODES = ("auto", "chart", "summary")
_SUMMARY_ROW_LIMIT = 40

_MODE_INSTRUCTIONS = {
    "chart": "\n".join([
        "Requested mode: CHART.",
        "Prefer visual, brief output.",
        "If you need data, return SQL inside [SQL]...[/SQL].",
        "Return the chart configuration inside [CHART]...[/CHART] as valid JSON.",
        "Avoid long explanations.",
    ]),
    "summary": "\n".join([
        "Requested mode: SUMMARY IN WORDS.",
        "Do not return [CHART] or SQL fences in the visible answer.",
        "If you use SQL internally, keep it only in [SQL]...[/SQL].",
        "Summarize in clear, actionable language.",
    ]),
    "auto": "\n".join([
        "Requested mode: AUTO.",
        "Answer with text, SQL and/or a chart as appropriate.",
    ]),
}

_RULES = """STRICT RULES:
1. Answer briefly and directly (at most 2-3 sentences of explanation).
2. When SQL is needed, put the query INSIDE [SQL]...[/SQL]. Do not use triple backticks.
3. LOOK at the sample rows to learn each column's real format. If a numeric column holds values such as '$32,370.00' or '1,234', use REPLACE to clean them before CAST. Example: CAST(REPLACE(REPLACE(Sales, '$', ''), ',', '') AS DOUBLE)
4. When a chart is requested, return JSON inside [CHART]...[/CHART].
   - Use "title", "xAxis" and "series" where applicable.
   - Bars and lines: series with type "bar" or "line".
   - Pie: series type "pie" with data as {name, value}.
   - Scatter: type "scatter".
5. Do not produce markdown tables or invented examples; the system runs your SQL and shows the real results.
6. If a query fails you will receive the error and must produce a corrected query.
7. Do not add LIMIT clauses; the user wants to see all available data."""


class AssistantResult:
    def __init__(
        self,
        question: str,
        mode: str,
        display_text: str = "",
        sql: str | None = None,
        rows: list[dict[str, Any]] | None = None,
        chart_config: dict[str, Any] | None = None,
        summary: str = "",
        errors: list[str] | None = None,
        retries: int = 0,
        latency_ms: int = 0,
    ):
        self.question = question
        self.mode = mode
        self.display_text = display_text
        self.sql = sql
        self.rows = rows or []
        self.chart_config = chart_config
        self.summary = summary
        self.errors = errors or []
        self.retries = retries
        self.latency_ms = latency_ms

    @property
    def success(self) -> bool:
        return not self.errors


def build_prompt(
    question: str,
    schemas: list[TableSchema],
    samples: dict[str, list[dict[str, Any]]],
    mode: str = "auto",
) -> tuple[str, str]:
    """Return ``(system_prompt, user_prompt)`` for a question."""
    schema_json = json.dumps([s.to_dict() for s in schemas], indent=1)
    sample_text = "\n\n".join(
        f'Table "{name}" - first {len(rows)} rows:\n{json.dumps(rows, indent=1, default=str)}'
        for name, rows in samples.items()
    ) or "(no sample data)"
    system = (
        "You are an expert data assistant for an analytics dashboard. You work with DuckDB.\n\n"
        f"USER TABLE SCHEMAS:\n{schema_json}\n\n"
        f"SAMPLE DATA (first rows of each table):\n{sample_text}\n\n"
        f"ADDITIONAL CONTEXT:\n{_MODE_INSTRUCTIONS.get(mode, _MODE_INSTRUCTIONS['auto'])}\n\n"
        f"{_RULES}"
    )
    return system, question


def build_retry_prompt(sql: str, error: str) -> str:
    return (
        "The SQL query you generated failed with this error:\n"
        f"ERROR: {error}\n\n"
        f"The failing SQL was:\n{sql}\n\n"
        "Please produce a corrected SQL query that fixes that error. Remember that numeric "
        "columns may hold formats such as '$32,370.00' which must be cleaned before CAST. "
        "Reply ONLY with the corrected SQL inside [SQL]...[/SQL]."
    )


def _collect_samples(schemas: list[TableSchema]) -> dict[str, list[dict[str, Any]]]:
    samples: dict[str, list[dict[str, Any]]] = {}
    for s in schemas:
        try:
            samples[s.name] = sample_rows(s.name, 3)
        except QueryExecutionError:
            logger.warning("Could not sample table %s -- skipping", s.name)
    return samples


def _summarize_rows(rows: list[dict[str, Any]], question: str, provider: str | None) -> str:
    prompt = "\n\n".join([
        "Summarize the following results in clear business language.",
        f"User goal: {question}",
        "Give at most 5 short points and a conclusion.",
        "Do not include SQL, JSON or technical markdown.",
        f"Result JSON:\n{json.dumps(rows[:_SUMMARY_ROW_LIMIT], default=str)}",
    ])
    return compact_text(clean_display(call_llm(prompt, provider)), 5, 560)


def ask_assistant(
    question: str,
    mode: str = "auto",
    provider: str | None = None,
    schemas: list[TableSchema] | None = None,
) -> AssistantResult:
    """End-to-end: natural-language question -> SQL rows and/or chart.

    Parameters
    ----------
    question : str
        The user's request.
    mode : str
        auto | chart | summary
    provider : str, optional
        LLM provider override (mock, openai, anthropic).
    schemas : list[TableSchema], optional
        Catalog snapshot; loaded from the database when omitted.
    """
    t0 = time.perf_counter()
    if mode not in MODES:
        raise ValidationError(f"Unsupported assistant mode '{mode}'")
    logger.info("Assistant.ask | question=%s | mode=%s", question[:80], mode)

    max_retries = get_settings().assistant_max_retries
    if schemas is None:
        schemas = load_schemas()
    system, user_prompt = build_prompt(question, schemas, _collect_samples(schemas), mode)

    response = call_llm(user_prompt, provider, system=system)
    sql = extract_sql(response)
    chart = None if mode == "summary" else normalize_chart_config(extract_chart(response))
    display = compact_text(clean_display(response))

    errors: list[str] = []
    rows: list[dict[str, Any]] = []
    executed = False
    retries = 0
    summary = ""

    while sql:
        try:
            rows = execute_query(sql)
            executed = True
            break
        except QueryExecutionError as exc:
            retries += 1
            if retries > max_retries:
                errors.append(f"Could not execute the query after {max_retries} retries: {exc.message}")
                break
            logger.info("Assistant SQL failed (retry %d/%d): %s", retries, max_retries, exc.message)
            fixed = extract_sql(call_llm(
                build_retry_prompt(sql, exc.message),
                provider,
                system="Return only the corrected SQL inside [SQL]...[/SQL].",
            ))
            if not fixed:
                errors.append("Could not correct the query automatically; try rephrasing the request.")
                break
            sql = fixed

    if executed and rows and mode == "summary":
        summary = _summarize_rows(rows, question, provider)

    if mode == "chart" and chart is None and executed and rows:
        chart = build_chart_from_rows(rows)
    if chart is not None:
        chart = normalize_chart_config(chart, rows or None)

    if chart is not None and mode != "summary":
        chart = apply_theme(chart)
    elif mode == "chart":
        errors.append("Could not build a chart for this request; name a metric and a dimension.")

    latency = int((time.perf_counter() - t0) * 1000)
    return AssistantResult(
        question=question,
        mode=mode,
        display_text=display,
        sql=sql,
        rows=rows,
        chart_config=chart if mode != "summary" else None,
        summary=summary,
        errors=errors,
        retries=retries,
        latency_ms=latency,
    )
