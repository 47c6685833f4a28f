"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RAGSEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Storage
    data_dir: Path = Path("data")
    store_backend: Literal["file", "sql"] = "file"
    database_url: str = "sqlite+aiosqlite:///data/rag_search.db"

    # Embedding provider
    embedding_provider: Literal["http", "local"] = "http"
    embedding_base_url: str = "https://api.openai.com/v1"
    embedding_api_key: str | None = None
    embedding_model: str = "text-embedding-3-small"
    local_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimensions: int | None = None
    embedding_timeout_seconds: float = 30.0
    query_timeout_seconds: float = 5.0
    embedding_concurrency: int = 5
    embedding_max_attempts: int = 3
    embedding_backoff_base_seconds: float = 0.5
    embedding_backoff_max_seconds: float = 8.0
    max_input_chars: int = 8000

    # Snapshot refresh
    refresh_interval_minutes: float = 5.0

    # Retrieval
    default_max_results: int = 10
    max_results_limit: int = 50
    keyword_weight: float = 0.6
    vector_weight: float = 0.4
    agreement_bonus: float = 0.1
    semantic_boost: float = 1.2

    # Query embedding cache
    query_cache_max_size: int = 1000
    query_cache_ttl_seconds: int = 3600

    debug: bool = False

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Ensure directories exist
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def index_dir(self) -> Path:
        """Directory holding the file-backed object store."""
        return self.data_dir / "search-index"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
