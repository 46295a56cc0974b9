"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class ModelRate(BaseModel):
    """USD per one million tokens."""

    prompt: float = Field(ge=0.0)
    completion: float = Field(ge=0.0)


def default_model_rates() -> dict[str, ModelRate]:
    return {
        "gpt-5": ModelRate(prompt=1.25, completion=10.00),
        "gpt-5-mini": ModelRate(prompt=0.25, completion=2.00),
        "gpt-5-nano": ModelRate(prompt=0.05, completion=0.40),
        "gpt-4.1-mini": ModelRate(prompt=0.40, completion=1.60),
        "gpt-4o-mini": ModelRate(prompt=0.15, completion=0.60),
    }


def default_cache_ttl_days() -> dict[str, int]:
    return {
        "biography": 90,
        "shows": 90,
        "venues": 30,
        "operating_status": 7,
        "adjudication": 30,
    }


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "enrichment-orchestrator"
    app_env: str = "dev"
    database_url: str = ""
    openai_api_key: str = ""
    llm_model: str = "gpt-5-mini"
    adjudication_model: str = "gpt-5-nano"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=120.0, ge=0.5)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    retry_max_delay_ms: int = Field(default=30000, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    sweep_concurrency: int = Field(default=10, ge=1, le=50)
    max_restaurants: int = Field(default=10, ge=1)
    cache_ttl_days: dict[str, int] = Field(default_factory=default_cache_ttl_days)
    model_rates: dict[str, ModelRate] = Field(default_factory=default_model_rates)
    budget_ceilings_usd: dict[str, float] = Field(default_factory=dict)
    audit_source: str = "llm_enricher"

    model_config = SettingsConfigDict(
        env_prefix="ENRICHMENT_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
