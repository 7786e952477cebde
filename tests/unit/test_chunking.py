"""Unit tests for prompt chunking."""

from got_pipeline.extraction.chunker import (
    ChunkingConfig,
    _find_split_points,
    count_tokens,
    estimate_tokens,
    needs_chunking,
    split_prompt,
)


def long_prompt(paragraphs: int = 6, sentences: int = 5) -> str:
    return "\n\n".join(
        " ".join(
            f"Sentence {p}-{s} describes one finding about barrier function."
            for s in range(sentences)
        )
        for p in range(paragraphs)
    )


class TestChunkingConfig:
    """Tests for ChunkingConfig."""

    def test_default_config(self):
        config = ChunkingConfig()
        assert config.threshold_tokens == 6000
        assert config.chunk_tokens == 4000

    def test_custom_config(self):
        config = ChunkingConfig(threshold_tokens=100, chunk_tokens=50)
        assert config.threshold_tokens == 100
        assert config.chunk_tokens == 50


class TestFindSplitPoints:
    """Tests for split point detection."""

    def test_paragraph_boundaries(self):
        text = "First paragraph.\n\nSecond paragraph."
        points = _find_split_points(text)

        paragraph_points = [p for p in points if p[1] == 100]
        assert paragraph_points == [(text.index("Second"), 100)]

    def test_sentence_boundaries(self):
        text = "First sentence. Second sentence. Third sentence."
        points = _find_split_points(text)

        sentence_points = [p for p in points if p[1] == 50]
        assert len(sentence_points) == 2

    def test_clause_boundaries(self):
        text = "Alpha, beta; gamma"
        assert [p[1] for p in _find_split_points(text)] == [20, 20]

    def test_sorted_by_position(self):
        points = _find_split_points(long_prompt(2, 3))
        positions = [pos for pos, _ in points]
        assert positions == sorted(positions)


class TestCountTokens:
    """Tests for token counting."""

    def test_count_tokens_basic(self):
        count = count_tokens("Hello world")
        assert count > 0
        assert count < 10

    def test_count_tokens_empty(self):
        assert count_tokens("") == 0

    def test_estimate_tokens(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestSplitPrompt:
    """Tests for split_prompt."""

    def test_empty_prompt(self):
        assert split_prompt("") == []

    def test_short_prompt_single_chunk(self):
        chunks = split_prompt("A short research question.")

        assert len(chunks) == 1
        assert chunks[0].text == "A short research question."
        assert chunks[0].char_offset_start == 0

    def test_long_prompt_split_on_boundaries(self):
        text = long_prompt()
        config = ChunkingConfig(threshold_tokens=50, chunk_tokens=40)

        assert needs_chunking(text, config)
        chunks = split_prompt(text, config)

        assert len(chunks) > 1
        assert [chunk.index for chunk in chunks] == list(range(len(chunks)))
        assert " ".join(chunk.text for chunk in chunks).split() == text.split()
        for previous, current in zip(chunks, chunks[1:]):
            assert previous.char_offset_end == current.char_offset_start

    def test_threshold_not_exceeded_stays_whole(self):
        text = long_prompt(1, 2)
        config = ChunkingConfig(threshold_tokens=10_000, chunk_tokens=5)

        assert not needs_chunking(text, config)
        assert len(split_prompt(text, config)) == 1
