"""Language-specific prompt templates for the three analysis kinds.

Templates live beside this module as YAML files and are rendered with
``str.format``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any

from audio_insight.generation import GenerationRequest

if TYPE_CHECKING:
    from audio_insight.models import AnalysisOptions

_PROMPTS_DIR = Path(__file__).parent


@lru_cache(maxsize=None)
def load_prompt(name: str) -> dict[str, Any]:
    """Load one prompt definition (``summarize``, ``keywords``, ``questions``).

    Raises:
        FileNotFoundError: If no such template exists.
    """
    import yaml

    path = _PROMPTS_DIR / f"{name}.yaml"
    with path.open(encoding="utf-8") as f:
        result: dict[str, Any] = yaml.safe_load(f)
    return result


def summary_request(text: str, options: AnalysisOptions) -> GenerationRequest:
    definition = load_prompt("summarize")
    style = options.summary_style
    template: str = definition["templates"][options.language][style]
    return GenerationRequest(
        prompt=template.format(text=text),
        temperature=definition["temperature"],
        max_tokens=definition["max_tokens"][style],
    )


def keywords_request(text: str, options: AnalysisOptions) -> GenerationRequest:
    definition = load_prompt("keywords")
    template: str = definition["templates"][options.language]
    return GenerationRequest(
        prompt=template.format(text=text, max_keywords=options.max_keywords),
        temperature=definition["temperature"],
        max_tokens=definition["max_tokens"],
    )


def questions_request(text: str, options: AnalysisOptions) -> GenerationRequest:
    definition = load_prompt("questions")
    template: str = definition["templates"][options.language]
    return GenerationRequest(
        prompt=template.format(text=text, max_questions=options.max_questions),
        temperature=definition["temperature"],
        max_tokens=definition["max_tokens"],
    )
