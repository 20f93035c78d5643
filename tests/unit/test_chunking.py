"""Unit tests for audio_insight.chunking."""

from __future__ import annotations

import pytest

from audio_insight.chunking import split_into_chunks


class TestSplitIntoChunks:
    def test_short_text_is_single_chunk(self) -> None:
        assert split_into_chunks("One sentence. Two.", 4000) == ["One sentence. Two."]

    def test_blank_text(self) -> None:
        assert split_into_chunks("   ") == []

    def test_respects_sentence_boundaries(self) -> None:
        text = "Alpha beta. Gamma delta! Epsilon zeta? Eta theta."
        chunks = split_into_chunks(text, 25)
        assert chunks == ["Alpha beta. Gamma delta!", "Epsilon zeta? Eta theta."]

    def test_keeps_terminal_punctuation(self) -> None:
        chunks = split_into_chunks("First one here. Second one here.", 20)
        assert chunks == ["First one here.", "Second one here."]

    def test_full_width_punctuation(self) -> None:
        text = "今日は晴れです。 明日は雨です！ 本当ですか？"
        chunks = split_into_chunks(text, 10)
        assert chunks[0] == "今日は晴れです。"
        assert all(len(chunk) <= 10 for chunk in chunks)

    @pytest.mark.parametrize("max_size", [50, 200, 4000])
    def test_every_chunk_within_bound(self, max_size: int) -> None:
        text = " ".join(f"Sentence number {i} talks about item {i}." for i in range(500))
        chunks = split_into_chunks(text, max_size)
        assert all(0 < len(chunk) <= max_size for chunk in chunks)

    def test_overlong_sentence_is_hard_split(self) -> None:
        text = "x" * 95 + ". tail."
        chunks = split_into_chunks(text, 40)
        assert all(len(chunk) <= 40 for chunk in chunks)
        assert "".join(chunks).replace(" ", "").startswith("x" * 95)

    def test_long_transcript_first_chunk(self) -> None:
        text = "word " * 3000
        chunks = split_into_chunks(text, 4000)
        assert len(chunks[0]) <= 4000
        assert len(chunks) >= 4

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            split_into_chunks("text", 0)
