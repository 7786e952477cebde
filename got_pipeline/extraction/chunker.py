"""Boundary-aware prompt chunking for model calls."""

import math
import re
from dataclasses import dataclass

import structlog
import tiktoken

logger = structlog.get_logger(__name__)


@dataclass
class ChunkingConfig:
    """Configuration for prompt chunking."""

    threshold_tokens: int = 6000  # prompts at or below this are sent whole
    chunk_tokens: int = 4000
    encoding_name: str = "cl100k_base"  # GPT-4 encoding, reasonable default


@dataclass
class PromptChunk:
    """One independently processed slice of a prompt."""

    index: int
    text: str
    token_count: int
    char_offset_start: int
    char_offset_end: int


def estimate_tokens(text: str) -> int:
    """Cheap token estimate used for stage accounting (4 characters per token)."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def count_tokens(text: str, encoding_name: str = "cl100k_base") -> int:
    """Count tokens in text.

    Args:
        text: Text to count.
        encoding_name: Tiktoken encoding name.

    Returns:
        Token count.
    """
    try:
        encoding = tiktoken.get_encoding(encoding_name)
        return len(encoding.encode(text))
    except Exception:
        # Fallback estimate
        return len(text) // 4


def needs_chunking(text: str, config: ChunkingConfig | None = None) -> bool:
    config = config or ChunkingConfig()
    return count_tokens(text, config.encoding_name) > config.threshold_tokens


def split_prompt(text: str, config: ChunkingConfig | None = None) -> list[PromptChunk]:
    """Split a prompt into chunks of at most `chunk_tokens` tokens.

    Cuts prefer paragraph breaks, then sentence ends, then clause boundaries.
    A prompt under the threshold comes back as a single chunk.

    Args:
        text: Prompt text.
        config: Chunking configuration.

    Returns:
        Ordered list of chunks covering the whole prompt.
    """
    config = config or ChunkingConfig()
    if not text:
        return []

    total_tokens = count_tokens(text, config.encoding_name)
    if total_tokens <= config.threshold_tokens:
        return [PromptChunk(0, text, total_tokens, 0, len(text))]

    split_points = _find_split_points(text)
    chunks: list[PromptChunk] = []
    start = 0

    while start < len(text):
        end = _find_chunk_end(text, start, split_points, config)
        chunk_text = text[start:end].strip()
        if chunk_text:
            chunks.append(PromptChunk(
                index=len(chunks),
                text=chunk_text,
                token_count=count_tokens(chunk_text, config.encoding_name),
                char_offset_start=start,
                char_offset_end=end,
            ))
        start = end

    logger.info(
        "prompt_chunked",
        total_tokens=total_tokens,
        num_chunks=len(chunks),
        chunk_tokens=config.chunk_tokens,
    )
    return chunks


def _find_split_points(text: str) -> list[tuple[int, int]]:
    """Find potential split points in text with priority scores.

    Returns list of (position, priority) tuples.
    Higher priority = better split point.

    Priority levels:
    - 100: Paragraph boundary (double newline)
    - 50: Sentence boundary
    - 20: Clause boundary (comma, semicolon)
    """
    split_points: list[tuple[int, int]] = []

    for match in re.finditer(r"\n\n", text):
        split_points.append((match.end(), 100))

    for match in re.finditer(r"[.!?]\s+(?=[A-Z])", text):
        split_points.append((match.end(), 50))

    for match in re.finditer(r"[,;]\s+", text):
        split_points.append((match.end(), 20))

    split_points.sort(key=lambda x: x[0])
    return split_points


def _find_chunk_end(
    text: str,
    start: int,
    split_points: list[tuple[int, int]],
    config: ChunkingConfig,
) -> int:
    """Find the end of the chunk starting at `start`.

    Takes the best split point between 60% and 100% of the character budget,
    otherwise the latest split point inside the budget, otherwise a hard cut.
    """
    max_chars = _tokens_to_chars(config.chunk_tokens)
    max_end = min(start + max_chars, len(text))

    if max_end == len(text) and count_tokens(text[start:], config.encoding_name) <= config.chunk_tokens:
        return len(text)

    min_acceptable = start + int(max_chars * 0.6)
    candidates = [
        (pos, priority)
        for pos, priority in split_points
        if min_acceptable <= pos <= max_end
    ]
    if candidates:
        candidates.sort(key=lambda x: (-x[1], -x[0]))
        return candidates[0][0]

    fallback = [pos for pos, _ in split_points if start < pos <= max_end]
    if fallback:
        return max(fallback)

    return max_end


def _tokens_to_chars(tokens: int) -> int:
    """Estimate character count from token count.

    Uses rough estimate of 4 characters per token.
    """
    return tokens * 4
