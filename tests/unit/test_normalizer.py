"""Unit tests for audio_insight.normalizer."""

from __future__ import annotations

from audio_insight.models import ParseQuality
from audio_insight.normalizer import (
    normalize_keywords,
    normalize_questions,
    strip_code_fences,
)


class TestStripCodeFences:
    def test_json_fence(self) -> None:
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self) -> None:
        assert strip_code_fences("```\nbody\n```") == "body"


# ---------------------------------------------------------------------------
# Keywords
# ---------------------------------------------------------------------------


class TestNormalizeKeywords:
    def test_strict_json(self) -> None:
        raw = (
            '{"keywords": [{"word": "budget", "importance": 9, '
            '"category": "topic", "context": "main theme"}]}'
        )
        outcome = normalize_keywords(raw)
        assert outcome.quality is ParseQuality.STRICT
        assert outcome.value is not None
        item = outcome.value.items[0]
        assert (item.word, item.importance_score, item.category, item.context_note) == (
            "budget",
            9,
            "topic",
            "main theme",
        )
        assert outcome.value.total_found == 1

    def test_fenced_json_is_strict(self) -> None:
        raw = '```json\n{"keywords": [{"word": "a"}, {"word": "b"}]}\n```'
        outcome = normalize_keywords(raw)
        assert outcome.quality is ParseQuality.STRICT
        assert outcome.value is not None
        assert [item.word for item in outcome.value.items] == ["a", "b"]
        assert outcome.value.items[0].importance_score == 5
        assert outcome.value.items[0].category == "other"

    def test_json_embedded_in_prose(self) -> None:
        raw = 'Here you go:\n{"keywords": [{"word": "memo", "importance": 4}]}\nThanks!'
        outcome = normalize_keywords(raw)
        assert outcome.quality is ParseQuality.STRICT
        assert outcome.value is not None
        assert outcome.value.items[0].word == "memo"

    def test_importance_is_clamped(self) -> None:
        raw = '{"keywords": [{"word": "x", "importance": 42}, {"word": "y", "importance": -3}]}'
        outcome = normalize_keywords(raw)
        assert outcome.value is not None
        assert [item.importance_score for item in outcome.value.items] == [10, 1]

    def test_strict_result_truncated_to_limit(self) -> None:
        words = ", ".join(f'{{"word": "w{i}"}}' for i in range(12))
        outcome = normalize_keywords(f'{{"keywords": [{words}]}}', max_keywords=5)
        assert outcome.value is not None
        assert len(outcome.value.items) == 5

    def test_fallback_scores_descend_with_floor(self) -> None:
        raw = " ".join(f"word{i}" for i in range(12)) + " word0 word1"
        outcome = normalize_keywords(raw, max_keywords=12)
        assert outcome.quality is ParseQuality.FALLBACK
        assert outcome.value is not None
        assert outcome.value.parse_quality is ParseQuality.FALLBACK
        scores = [item.importance_score for item in outcome.value.items]
        assert scores == [10, 9, 8, 7, 6, 5, 4, 3, 2, 1, 1, 1]
        assert len({item.word for item in outcome.value.items}) == 12
        assert all(item.category == "other" for item in outcome.value.items)

    def test_fallback_handles_hangul(self) -> None:
        outcome = normalize_keywords("예산 회의 일정", max_keywords=5)
        assert outcome.value is not None
        assert [item.word for item in outcome.value.items] == ["예산", "회의", "일정"]

    def test_nothing_usable_fails(self) -> None:
        outcome = normalize_keywords("... !!! ???")
        assert outcome.quality is ParseQuality.FAILED
        assert outcome.value is None
        assert outcome.error is not None
        assert "PARSE_ERROR" in outcome.error
        assert not outcome.ok


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


class TestNormalizeQuestions:
    def test_strict_json(self) -> None:
        raw = (
            '{"questions": [{"question": "What comes next?", "type": "Extended", '
            '"difficulty": "medium", "context": "follow-up"}]}'
        )
        outcome = normalize_questions(raw)
        assert outcome.quality is ParseQuality.STRICT
        assert outcome.value is not None
        item = outcome.value.items[0]
        assert item.question == "What comes next?"
        assert item.type == "Extended"
        assert item.difficulty == "medium"
        assert outcome.value.total_generated == 1

    def test_fallback_extracts_question_sentences(self) -> None:
        raw = "Sure. 1. What is the budget? 2. Who approves it？ Not a question."
        outcome = normalize_questions(raw, max_questions=8)
        assert outcome.quality is ParseQuality.FALLBACK
        assert outcome.value is not None
        questions = [item.question for item in outcome.value.items]
        assert questions == ["What is the budget?", "Who approves it？"]
        assert [item.type for item in outcome.value.items] == ["factual", "analytical"]
        assert [item.difficulty for item in outcome.value.items] == ["easy", "medium"]

    def test_fallback_cycles_types(self) -> None:
        raw = "\n".join(f"Question {i}?" for i in range(6))
        outcome = normalize_questions(raw, max_questions=6)
        assert outcome.value is not None
        types = [item.type for item in outcome.value.items]
        assert types == [
            "factual",
            "analytical",
            "follow-up",
            "opinion",
            "factual",
            "analytical",
        ]

    def test_fallback_respects_limit(self) -> None:
        raw = " ".join(f"Why {i}?" for i in range(10))
        outcome = normalize_questions(raw, max_questions=3)
        assert outcome.value is not None
        assert len(outcome.value.items) == 3

    def test_no_question_mark_fails(self) -> None:
        outcome = normalize_questions("No questions in this reply.")
        assert outcome.quality is ParseQuality.FAILED
        assert outcome.error is not None
        assert "PARSE_ERROR" in outcome.error
