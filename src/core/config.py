"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(_PROJECT_ROOT / ".env")


class Settings(BaseSettings):
    # ── DuckDB ───────────────────────────────────────────
    duckdb_path: str = ":memory:"
    working_schema: str = "main"

    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    assistant_max_retries: int = 2

    # ── Widgets ──────────────────────────────────────────
    kpi_default_window_value: int = 30
    kpi_default_window_unit: str = "day"  # day | month | year
    filter_option_limit: int = 1200
    fallback_top_n: int = 24

    # ── Relationship detection ───────────────────────────
    identifier_suffixes: list[str] = ["id"]
    identifier_infixes: list[str] = ["id_"]
    relationships_path: str = str(_PROJECT_ROOT / "model" / "relationships.yml")

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        return f"duckdb:///{self.duckdb_path}"

    @property
    def is_in_memory(self) -> bool:
        return self.duckdb_path in ("", ":memory:")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
