"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Response cache configuration settings.

    All settings can be overridden via environment variables prefixed
    with RESPONSE_CACHE_ (e.g. RESPONSE_CACHE_SIMILARITY_THRESHOLD=0.9).
    """

    model_config = SettingsConfigDict(
        env_prefix="RESPONSE_CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    redis_url: str = "redis://localhost:6379/0"
    database_url: str | None = None  # When set, records live in SQL instead of Redis
    collection_prefix: str = "embeddings"
    cache_ttl_seconds: int | None = None  # Collection-wide expiry, reset on every write

    # Decision
    similarity_threshold: float = 0.8
    search_k: int = 5
    embedding_dimension: int | None = None  # None = learn from the embedding provider

    # Vector index (HNSW)
    index_initial_capacity: int = 1000
    index_growth_increment: int = 1000
    hnsw_m: int = 16
    hnsw_ef_construction: int = 200
    hnsw_ef_search: int = 50

    # Providers
    embedding_provider: Literal["local", "openai"] = "local"
    embedding_model: str = "all-MiniLM-L6-v2"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_embedding_model: str = "text-embedding-ada-002"
    chat_model: str = "gpt-3.5-turbo"
    prompt_prefix: str | None = None
    provider_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # Observability
    metrics_prefix: str = "response_cache"

    @field_validator("similarity_threshold")
    @classmethod
    def validate_similarity_threshold(cls, v: float) -> float:
        """Threshold must lie in (0, 1]."""
        if not 0.0 < v <= 1.0:
            raise ValueError(f"similarity_threshold must be in (0, 1], got {v}")
        return v

    @field_validator(
        "search_k",
        "embedding_dimension",
        "cache_ttl_seconds",
        "index_initial_capacity",
        "index_growth_increment",
        "hnsw_m",
        "hnsw_ef_construction",
        "hnsw_ef_search",
    )
    @classmethod
    def validate_positive(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError(f"must be a positive integer, got {v}")
        return v

    @field_validator("provider_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"provider_timeout_seconds must be positive, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @model_validator(mode="after")
    def strip_openai_base_url(self) -> "Settings":
        """Normalize the OpenAI base URL so paths can be appended."""
        object.__setattr__(self, "openai_base_url", self.openai_base_url.rstrip("/"))
        return self

    @property
    def uses_sql_store(self) -> bool:
        """Check if records are persisted through SQLAlchemy."""
        return bool(self.database_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
