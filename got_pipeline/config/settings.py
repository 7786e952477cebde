"""Application settings using Pydantic."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Task Scheduler
    scheduler_max_workers: int = 3
    scheduler_poll_interval: float = 0.5
    task_timeout_seconds: float = 30.0
    result_ttl_seconds: float = 30.0

    # Retries (scheduler level only)
    max_retries: int = 3
    retry_delay_seconds: float = 2.0

    # Model call chunking
    chunk_threshold_tokens: int = 6000
    chunk_size_tokens: int = 4000
    encoding_name: str = "cl100k_base"

    # Graph algorithms
    prune_confidence_floor: float = 0.2
    merge_similarity_threshold: float = 90.0
    high_impact_threshold: float = 0.7
    confidence_blend_weight: float = 0.5

    # Stage behaviour
    default_hypotheses_per_dimension: int = 4
    strict_stage_order: bool = False

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
