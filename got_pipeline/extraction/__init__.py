"""Text signal extraction and prompt chunking."""

from .chunker import ChunkingConfig, PromptChunk, count_tokens, estimate_tokens, split_prompt
from .signals import DEFAULT_CONFIDENCE_VECTOR, DIMENSION_CATEGORIES, TextSignalExtractor

__all__ = [
    "ChunkingConfig",
    "PromptChunk",
    "count_tokens",
    "estimate_tokens",
    "split_prompt",
    "DEFAULT_CONFIDENCE_VECTOR",
    "DIMENSION_CATEGORIES",
    "TextSignalExtractor",
]
