"""Sentence-respecting text chunking for long transcripts."""

from __future__ import annotations

import re

_SENTENCE_END = re.compile(r"(?<=[.!?。！？])\s+")


def split_into_chunks(text: str, max_chunk_size: int = 4000) -> list[str]:
    """Split ``text`` into chunks of at most ``max_chunk_size`` characters.

    Sentences (ending in ``.``, ``!`` or ``?``, ASCII or full-width) are kept
    whole where possible and keep their terminal punctuation. A single
    sentence longer than the limit is hard-split.

    Args:
        text: Text to split.
        max_chunk_size: Upper bound on each chunk's length.

    Returns:
        Non-empty chunks in original order; an empty list for blank text.
    """
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive")

    stripped = text.strip()
    if not stripped:
        return []
    if len(stripped) <= max_chunk_size:
        return [stripped]

    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_END.split(stripped):
        sentence = sentence.strip()
        if not sentence:
            continue

        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= max_chunk_size:
            current = candidate
            continue

        if current:
            chunks.append(current)
            current = ""
        while len(sentence) > max_chunk_size:
            chunks.append(sentence[:max_chunk_size])
            sentence = sentence[max_chunk_size:].lstrip()
        current = sentence

    if current:
        chunks.append(current)
    return chunks
