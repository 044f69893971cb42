"""
LLM client abstraction -- provider-agnostic text-in / text-out wrapper.

Supported providers:
  mock      -- echo the prompt plus a tagged row-count query over the
               first table named in the system prompt (for tests / offline dev)
  openai    -- OpenAI ChatCompletion (gpt-4o-mini default)
  anthropic -- Anthropic Messages (claude-3-haiku default)

The system prompt carries the schema and sample rows; the user prompt
carries the question (or the retry request).
"""
from __future__ import annotations

import re
from typing import Any

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)


_OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
_ANTHROPIC_DEFAULT_MODEL = "claude-3-haiku-20240307"
_MAX_TOKENS = 4096
_DEFAULT_SYSTEM = "You are a data assistant for an analytics dashboard backed by DuckDB."


_MOCK_TABLE_RE = re.compile(r'Table "([^"]+)"')


def _call_mock(prompt: str, system: str) -> str:
    logger.info("LLM mock mode -- returning echo")
    m = _MOCK_TABLE_RE.search(system)
    if m:
        sql = f'SELECT COUNT(*) AS row_count FROM "{m.group(1)}"'
    else:
        sql = "SELECT 1 AS value"
    # echoed tags would shadow the real one
    echo = prompt[:200].replace("[", "(").replace("]", ")")
    return f"[MOCK] {echo}\n[SQL]{sql}[/SQL]"


def _call_openai(prompt: str, system: str) -> str:
    """Call OpenAI ChatCompletion API."""
    settings = get_settings()
    api_key = settings.openai_api_key
    if not api_key:
        raise RuntimeError(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc

    client = openai.OpenAI(api_key=api_key)
    response = client.chat.completions.create(
        model=_OPENAI_DEFAULT_MODEL,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        temperature=0.3,
        max_tokens=_MAX_TOKENS,
    )
    text = response.choices[0].message.content or ""
    logger.info("OpenAI response (%d chars)", len(text))
    return text


def _call_anthropic(prompt: str, system: str) -> str:
    """Call Anthropic Messages API."""
    settings = get_settings()
    api_key = settings.anthropic_api_key
    if not api_key:
        raise RuntimeError(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise RuntimeError(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    client = anthropic.Anthropic(api_key=api_key)
    response = client.messages.create(
        model=_ANTHROPIC_DEFAULT_MODEL,
        max_tokens=_MAX_TOKENS,
        system=system,
        messages=[{"role": "user", "content": prompt}],
    )
    text = response.content[0].text if response.content else ""
    logger.info("Anthropic response (%d chars)", len(text))
    return text


_PROVIDERS: dict[str, Any] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
}


def call_llm(prompt: str, provider: str | None = None, system: str | None = None) -> str:
    """Send *prompt* to the configured (or overridden) LLM provider.

    Parameters
    ----------
    prompt : str
        The user prompt.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic.
    system : str, optional
        System prompt (schema, sample rows, response rules).
    """
    if provider is None:
        provider = get_settings().llm_provider.lower()

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    logger.info("Calling LLM provider=%s  prompt_len=%d", provider, len(prompt))
    return fn(prompt, system or _DEFAULT_SYSTEM)
