"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str | None = None

    # Model provider
    openai_api_key: SecretStr | None = None
    openai_base_url: str | None = None
    chat_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 768

    # Extraction
    pages_per_group: int = 5
    extraction_concurrency: int = 20
    render_scale: float = 1.5
    source_fetch_timeout_seconds: float = 60.0

    # Embedding
    embedding_batch_size: int = 100

    # Pipeline admission and retry budgets
    ingestion_concurrency: int = 5
    pipeline_max_attempts: int = 3
    pipeline_retry_delay_seconds: float = 5.0
    model_call_max_attempts: int = 10

    # Uploads
    max_upload_bytes: int = 50 * 1024 * 1024
    storage_dir: str = "./data/uploads"

    # Chat
    chat_max_steps: int = 5
    semantic_top_k: int = 3
    conversation_title_length: int = 80


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
