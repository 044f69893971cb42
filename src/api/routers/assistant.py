"""POST /assistant/ask -- natural-language question -> SQL rows and/or chart."""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from src.api.errors import to_http_error
from src.assistant.service import ask_assistant
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class AskRequest(BaseModel):
    question: str = Field(..., min_length=3, max_length=2000, description="Natural-language request")
    mode: str = Field("auto", description="auto | chart | summary")
    provider: str | None = Field(None, description="mock | openai | anthropic")


class AskResponse(BaseModel):
    question: str
    mode: str
    display_text: str
    sql: str | None
    rows: list[dict]
    chart: dict | None
    summary: str
    errors: list[str]
    retries: int
    success: bool
    latency_ms: int


@router.post("/ask", response_model=AskResponse)
def ask_endpoint(req: AskRequest) -> AskResponse:
    try:
        result = ask_assistant(req.question, mode=req.mode, provider=req.provider)
    except Exception as exc:
        raise to_http_error(exc, "Assistant.ask")

    return AskResponse(
        question=result.question,
        mode=result.mode,
        display_text=result.display_text,
        sql=result.sql,
        rows=result.rows,
        chart=result.chart_config,
        summary=result.summary,
        errors=result.errors,
        retries=result.retries,
        success=result.success,
        latency_ms=result.latency_ms,
    )
