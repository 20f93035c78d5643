"""Text-generation clients used by the analysis orchestrator.

``RelayTextGenerator`` talks to the credential-forwarding relay's
``/analyze`` endpoint; ``LiteLLMTextGenerator`` calls a provider directly
through litellm. Both translate every failure into ``AnalysisError`` (or
its ``RateLimitError`` subclass) and never retry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, Field

from audio_insight.exceptions import (
    AnalysisError,
    ErrorKind,
    RateLimitError,
    extract_error_message,
)

if TYPE_CHECKING:
    from audio_insight.config import AnalysisSettings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_RATE_LIMIT_MESSAGE = "API rate limit reached. Please wait about 30 seconds and try again."


class GenerationRequest(BaseModel):
    """One prompt plus its sampling parameters."""

    prompt: str
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4000, gt=0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    model: str | None = None


class GenerationResult(BaseModel):
    text: str
    usage: dict[str, Any] = Field(default_factory=dict)
    model: str = ""


class TextGenerator(Protocol):
    async def generate(self, request: GenerationRequest) -> GenerationResult: ...


def _looks_rate_limited(message: str) -> bool:
    return "rate limit" in message.lower()


class RelayTextGenerator:
    """POSTs ``{prompt, options}`` to the relay and reads ``{response, usage, model}``."""

    def __init__(
        self, client: httpx.AsyncClient, settings: AnalysisSettings, base_url: str
    ) -> None:
        self._client = client
        self._settings = settings
        self._url = base_url.rstrip("/") + settings.endpoint

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        body = {
            "prompt": request.prompt,
            "options": {
                "model": request.model or self._settings.model,
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
                "top_p": request.top_p if request.top_p is not None else self._settings.top_p,
            },
        }
        logger.debug(
            "generation_request",
            backend="relay",
            model=body["options"]["model"],
            prompt_length=len(request.prompt),
            max_tokens=request.max_tokens,
        )
        try:
            response = await self._client.post(
                self._url, json=body, timeout=self._settings.timeout_seconds
            )
        except httpx.TimeoutException as exc:
            raise AnalysisError(
                "Text generation request timed out", ErrorKind.TIMEOUT
            ) from exc
        except httpx.TransportError as exc:
            raise AnalysisError(
                "Network error occurred during AI analysis", ErrorKind.NETWORK_ERROR
            ) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            message = extract_error_message(payload, f"HTTP {response.status_code}")
            if response.status_code == 429 or _looks_rate_limited(message):
                raise RateLimitError(_RATE_LIMIT_MESSAGE, status_code=response.status_code)
            raise AnalysisError(
                message, ErrorKind.PROVIDER_ERROR, status_code=response.status_code
            )

        text = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise AnalysisError(
                "Invalid response format from AI API",
                ErrorKind.PROVIDER_ERROR,
                status_code=response.status_code,
            )

        return GenerationResult(
            text=text.strip(),
            usage=payload.get("usage") or {},
            model=str(payload.get("model") or body["options"]["model"]),
        )


class LiteLLMTextGenerator:
    """Calls the provider directly via ``litellm.acompletion``."""

    def __init__(self, settings: AnalysisSettings) -> None:
        self._settings = settings

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        import litellm

        model = request.model or self._settings.litellm_model
        logger.debug(
            "generation_request",
            backend="litellm",
            model=model,
            prompt_length=len(request.prompt),
            max_tokens=request.max_tokens,
        )
        try:
            response = await litellm.acompletion(
                model=model,
                messages=[{"role": "user", "content": request.prompt}],
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                top_p=request.top_p if request.top_p is not None else self._settings.top_p,
                timeout=self._settings.timeout_seconds,
            )
        except litellm.RateLimitError as exc:
            raise RateLimitError(_RATE_LIMIT_MESSAGE) from exc
        except litellm.Timeout as exc:
            raise AnalysisError(
                "Text generation request timed out", ErrorKind.TIMEOUT
            ) from exc
        except litellm.APIConnectionError as exc:
            raise AnalysisError(
                "Network error occurred during AI analysis", ErrorKind.NETWORK_ERROR
            ) from exc
        except Exception as exc:
            if _looks_rate_limited(str(exc)):
                raise RateLimitError(_RATE_LIMIT_MESSAGE) from exc
            raise AnalysisError(
                f"Text generation failed: {exc}",
                ErrorKind.PROVIDER_ERROR,
                status_code=getattr(exc, "status_code", None),
            ) from exc

        content = response.choices[0].message.content
        if not content or not content.strip():
            raise AnalysisError("Invalid response format from AI API", ErrorKind.PROVIDER_ERROR)

        usage = getattr(response, "usage", None)
        return GenerationResult(
            text=content.strip(),
            usage=dict(usage) if usage else {},
            model=str(getattr(response, "model", None) or model),
        )


def build_generator(
    settings: AnalysisSettings, client: httpx.AsyncClient, base_url: str
) -> TextGenerator:
    """Instantiate the generation backend named in configuration."""
    if settings.backend == "litellm":
        return LiteLLMTextGenerator(settings)
    return RelayTextGenerator(client, settings, base_url)
