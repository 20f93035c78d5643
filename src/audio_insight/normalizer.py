"""Shape free-form text-generation replies into keyword and question lists.

Replies are expected to be JSON, but providers routinely wrap it in code
fences, surround it with prose, or ignore the format entirely. Parsing
degrades in three steps:

1. strict JSON (after stripping code fences), then the first ``{...}`` block;
2. a heuristic scan of the raw text (``fallback``);
3. ``failed`` with a ``PARSE_ERROR`` message when even the heuristic finds
   nothing.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

from audio_insight.models import (
    KeywordItem,
    KeywordsResult,
    ParseQuality,
    QuestionItem,
    QuestionsResult,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*\n?|```")
_JSON_BLOCK_RE = re.compile(r"\{.*\}", re.DOTALL)
_WORD_RE = re.compile(r"\w+")
_QUESTION_RE = re.compile(r"[^.!?？\n]*[?？]")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")

FALLBACK_QUESTION_TYPES = ("factual", "analytical", "follow-up", "opinion")
FALLBACK_DIFFICULTIES = ("easy", "medium", "hard")
_FALLBACK_CONTEXT = "Extracted from text response"


@dataclass(frozen=True, slots=True)
class Normalized(Generic[T]):
    """Tagged normalizer outcome.

    ``value`` is set for ``strict`` and ``fallback``; ``error`` for ``failed``.
    """

    quality: ParseQuality
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.quality is not ParseQuality.FAILED


def strip_code_fences(raw: str) -> str:
    return _CODE_FENCE_RE.sub("", raw).strip()


def _load_object(raw: str) -> dict[str, Any] | None:
    """Strict JSON first, then the outermost ``{...}`` block."""
    cleaned = strip_code_fences(raw)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    match = _JSON_BLOCK_RE.search(cleaned)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
        if isinstance(parsed, dict):
            return parsed
    return None


def _clamp_importance(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 5
    return min(max(score, 1), 10)


# ---------------------------------------------------------------------------
# Keywords
# ---------------------------------------------------------------------------


def _keywords_from_object(data: dict[str, Any], limit: int) -> list[KeywordItem] | None:
    raw_items = data.get("keywords")
    if not isinstance(raw_items, list):
        return None
    items: list[KeywordItem] = []
    for raw in raw_items:
        if isinstance(raw, str) and raw.strip():
            items.append(KeywordItem(word=raw.strip()))
        elif isinstance(raw, dict) and str(raw.get("word", "")).strip():
            items.append(
                KeywordItem(
                    word=str(raw["word"]).strip(),
                    importance_score=_clamp_importance(
                        raw.get("importance", raw.get("importance_score", 5))
                    ),
                    category=str(raw.get("category") or "other"),
                    context_note=str(raw.get("context") or raw.get("context_note") or ""),
                )
            )
    return items[:limit]


def _keywords_heuristic(raw: str, limit: int) -> list[KeywordItem]:
    seen: set[str] = set()
    items: list[KeywordItem] = []
    for word in _WORD_RE.findall(raw):
        if word in seen:
            continue
        seen.add(word)
        items.append(
            KeywordItem(
                word=word,
                importance_score=max(1, 10 - len(items)),
                category="other",
                context_note=_FALLBACK_CONTEXT,
            )
        )
        if len(items) >= limit:
            break
    return items


def normalize_keywords(raw: str, max_keywords: int = 10) -> Normalized[KeywordsResult]:
    """Parse a keyword-extraction reply.

    Args:
        raw: The provider's reply text.
        max_keywords: Upper bound on returned items.

    Returns:
        A ``Normalized`` whose value is a ``KeywordsResult`` tagged with the
        parse quality it was obtained with.
    """
    data = _load_object(raw)
    if data is not None:
        items = _keywords_from_object(data, max_keywords)
        if items is not None:
            return Normalized(
                ParseQuality.STRICT,
                KeywordsResult(items=items, total_found=len(items)),
            )

    items = _keywords_heuristic(raw, max_keywords)
    if not items:
        logger.warning("keywords_parse_failed", reply_length=len(raw))
        return Normalized(
            ParseQuality.FAILED,
            error="PARSE_ERROR: failed to parse keywords from the response",
        )
    logger.info("keywords_parse_fallback", items=len(items))
    return Normalized(
        ParseQuality.FALLBACK,
        KeywordsResult(
            items=items, total_found=len(items), parse_quality=ParseQuality.FALLBACK
        ),
    )


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


def _questions_from_object(
    data: dict[str, Any], limit: int
) -> list[QuestionItem] | None:
    raw_items = data.get("questions")
    if not isinstance(raw_items, list):
        return None
    items: list[QuestionItem] = []
    for raw in raw_items:
        if isinstance(raw, str) and raw.strip():
            items.append(QuestionItem(question=raw.strip()))
        elif isinstance(raw, dict) and str(raw.get("question", "")).strip():
            items.append(
                QuestionItem(
                    question=str(raw["question"]).strip(),
                    type=str(raw.get("type") or ""),
                    difficulty=str(raw.get("difficulty") or ""),
                    context_note=str(raw.get("context") or raw.get("context_note") or ""),
                )
            )
    return items[:limit]


def _questions_heuristic(raw: str, limit: int) -> list[QuestionItem]:
    items: list[QuestionItem] = []
    for match in _QUESTION_RE.findall(strip_code_fences(raw)):
        question = _LIST_MARKER_RE.sub("", match).strip()
        if len(question) <= 1:
            continue
        index = len(items)
        items.append(
            QuestionItem(
                question=question,
                type=FALLBACK_QUESTION_TYPES[index % len(FALLBACK_QUESTION_TYPES)],
                difficulty=FALLBACK_DIFFICULTIES[index % len(FALLBACK_DIFFICULTIES)],
                context_note=_FALLBACK_CONTEXT,
            )
        )
        if len(items) >= limit:
            break
    return items


def normalize_questions(
    raw: str, max_questions: int = 8
) -> Normalized[QuestionsResult]:
    """Parse a question-generation reply; see ``normalize_keywords``."""
    data = _load_object(raw)
    if data is not None:
        items = _questions_from_object(data, max_questions)
        if items is not None:
            return Normalized(
                ParseQuality.STRICT,
                QuestionsResult(items=items, total_generated=len(items)),
            )

    items = _questions_heuristic(raw, max_questions)
    if not items:
        logger.warning("questions_parse_failed", reply_length=len(raw))
        return Normalized(
            ParseQuality.FAILED,
            error="PARSE_ERROR: failed to parse questions from the response",
        )
    logger.info("questions_parse_fallback", items=len(items))
    return Normalized(
        ParseQuality.FALLBACK,
        QuestionsResult(
            items=items,
            total_generated=len(items),
            parse_quality=ParseQuality.FALLBACK,
        ),
    )
