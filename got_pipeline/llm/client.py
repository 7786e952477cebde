"""Ollama LLM client configuration."""

from functools import lru_cache
from typing import Optional

from langchain_ollama import OllamaLLM
from pydantic_settings import BaseSettings, SettingsConfigDict

# Room for the system message, capability hints and an embedded JSON schema
SYSTEM_PROMPT_TOKENS = 1024


class LLMSettings(BaseSettings):
    """LLM configuration settings (`LLM_*` environment variables)."""

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    ollama_base_url: str = "http://localhost:11434"
    model_name: str = "llama3.1:8b"
    temperature: float = 0.2
    # Matches the scheduler's default task timeout
    request_timeout: int = 30
    # None sizes the window from the chunking threshold
    num_ctx: Optional[int] = None
    num_predict: int = 2048


@lru_cache
def get_llm_settings() -> LLMSettings:
    """Get cached LLM settings."""
    return LLMSettings()


def context_window(settings: LLMSettings, prompt_tokens: int) -> int:
    """Context size for the largest prompt sent unchunked.

    An explicit `num_ctx` wins. Otherwise the window holds one prompt of
    `prompt_tokens`, the system message and the generation budget.
    """
    if settings.num_ctx:
        return settings.num_ctx
    return prompt_tokens + SYSTEM_PROMPT_TOKENS + settings.num_predict


def create_llm_client(
    settings: Optional[LLMSettings] = None, prompt_tokens: int = 6000
) -> OllamaLLM:
    """Create configured Ollama LLM client.

    Args:
        settings: Optional custom settings. Uses defaults if not provided.
        prompt_tokens: Chunking threshold of the calling service; prompts
            longer than this are split before they reach the model.

    Returns:
        Configured OllamaLLM instance.
    """
    settings = settings or get_llm_settings()

    return OllamaLLM(
        model=settings.model_name,
        base_url=settings.ollama_base_url,
        temperature=settings.temperature,
        timeout=settings.request_timeout,
        num_ctx=context_window(settings, prompt_tokens),
        num_predict=settings.num_predict,
    )
