"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

import re
from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


class Settings(BaseSettings):
    # ── Postgres ─────────────────────────────────────────
    postgres_user: str = "dashboard"
    postgres_password: str = "dashboard_pw"
    postgres_db: str = "sales"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    database_url_override: str = ""

    # ── Fact table ───────────────────────────────────────
    fact_table: str = "sales_fact_rows"
    fetch_page_size: int = 1000
    fetch_max_rows: int = 100_000
    fact_include_sales_rep: bool = False

    # ── LLM ──────────────────────────────────────────────
    llm_provider: str = "mock"  # mock | openai | anthropic
    llm_model: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    llm_timeout_seconds: float = 15.0

    # ── Engine ───────────────────────────────────────────
    margin_policy: str = "ratio_of_sums"  # ratio_of_sums | row_ratio_sum

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def fact_table_identifier(self) -> str:
        """The fact table name, checked to be a bare SQL identifier."""
        if not _IDENTIFIER_RE.match(self.fact_table):
            raise ValueError(f"Invalid fact_table identifier: {self.fact_table!r}")
        return self.fact_table

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
