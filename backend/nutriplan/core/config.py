"""
Configuration module for the NutriPlan API.
Loads settings from environment variables.
"""
from typing import List, Optional

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "info"

    # Database (use relative path or set via environment variable)
    database_url: str = "sqlite:///./nutriplan.db"

    # LLM Configuration
    llm_provider: str = "ollama"
    llm_base_url: Optional[str] = "http://localhost:11434"
    # Tried in order; the next model is used once retries on the current one are exhausted
    llm_models: List[str] = ["llama3:latest", "mistral:latest"]
    llm_max_retries: int = 3
    llm_backoff_base_seconds: float = 0.5
    llm_timeout_seconds: float = 120.0

    # Suggestion cache (redis is optional, in-process cache is always on)
    redis_url: Optional[str] = None
    suggestion_cache_ttl_seconds: int = 600

    # Meal targeting policies
    # "dinner" for day-only mentions; "highest_calories" or a slot name for vague requests
    day_only_default_meal: str = "dinner"
    vague_target_policy: str = "highest_calories"

    # Chat
    history_window: int = 10
    stream_chunk_size: int = 250

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
