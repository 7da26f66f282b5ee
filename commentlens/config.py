"""Configuration management using Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    gemini_api_key: str
    gemini_model: str = "gemini-2.0-flash-exp"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    max_retries: int = 3
    request_timeout_seconds: float = 45.0

    temperature: float = 0.3
    top_k: int = 20
    top_p: float = 0.8
    max_output_tokens: int = 4096

    overload_backoff_factor: float = 3.0
    overload_backoff_jitter: float = 2.0
    standard_backoff_factor: float = 2.0
    standard_backoff_jitter: float = 1.0

    local_analyzer: Literal["keyword", "vader", "transformers"] = "keyword"
    sentiment_model: str = "distilbert-base-uncased-finetuned-sst-2-english"
    toxicity_model: Optional[str] = None
    model_download_retries: int = 2

    cache_max_entries: int = 128
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=(".env",), extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    settings = Settings()
    return settings
