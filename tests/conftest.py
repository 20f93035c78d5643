"""Shared pytest fixtures for the audio-insight test suite."""

from __future__ import annotations

import asyncio
import io
import wave
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from audio_insight.config import (
    AnalysisSettings,
    CacheSettings,
    TranscriptionSettings,
    TransportSettings,
)
from audio_insight.generation import GenerationRequest, GenerationResult
from audio_insight.models import UploadCandidate

RELAY = "http://relay.test/api"


# ---------------------------------------------------------------------------
# Settings fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def transport_settings() -> TransportSettings:
    return TransportSettings(relay_base_url=RELAY, chunk_size=1024)


@pytest.fixture()
def transcription_settings() -> TranscriptionSettings:
    """Transcription defaults with no smoothing delay."""
    return TranscriptionSettings(settle_delay_seconds=0.0)


@pytest.fixture()
def analysis_settings() -> AnalysisSettings:
    return AnalysisSettings()


@pytest.fixture()
def cache_settings() -> CacheSettings:
    return CacheSettings()


# ---------------------------------------------------------------------------
# Audio helpers
# ---------------------------------------------------------------------------


def make_wav_bytes(seconds: float, rate: int = 8000) -> bytes:
    """Build a silent mono 16-bit WAV file of the given length."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(b"\x00\x00" * int(seconds * rate))
    return buffer.getvalue()


@pytest.fixture()
def mp3_candidate() -> UploadCandidate:
    return UploadCandidate.from_bytes(
        b"\xff\xfb" * 2048,
        media_type="audio/mpeg",
        display_name="clip.mp3",
        duration_seconds=120.0,
    )


# ---------------------------------------------------------------------------
# HTTP fakes
# ---------------------------------------------------------------------------


Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture()
def mock_client() -> Callable[[Handler], httpx.AsyncClient]:
    """Factory: an ``httpx.AsyncClient`` served by a ``MockTransport`` handler."""

    def factory(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


# ---------------------------------------------------------------------------
# Text-generation fake
# ---------------------------------------------------------------------------


def request_kind(request: GenerationRequest) -> str:
    """Tell which analysis a prompt belongs to from its JSON example."""
    if '"keywords"' in request.prompt:
        return "keywords"
    if '"questions"' in request.prompt:
        return "questions"
    return "summary"


class FakeGenerator:
    """``TextGenerator`` returning canned replies per analysis kind.

    A reply may be a string, an exception instance (raised), or an
    ``asyncio.Event`` the call waits on before answering ``"late reply"``.
    """

    def __init__(self, replies: dict[str, Any] | None = None) -> None:
        self.replies: dict[str, Any] = {
            "summary": "A short summary.",
            "keywords": '{"keywords": [{"word": "audio", "importance": 9, '
            '"category": "topic", "context": "main subject"}]}',
            "questions": '{"questions": [{"question": "Why?", "type": "Extended", '
            '"difficulty": "medium", "context": "curiosity"}]}',
        }
        self.replies.update(replies or {})
        self.requests: list[GenerationRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.requests.append(request)
        reply = self.replies[request_kind(request)]
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, asyncio.Event):
            await reply.wait()
            reply = "late reply"
        return GenerationResult(text=reply, model="fake")


@pytest.fixture()
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def make_generator() -> type[FakeGenerator]:
    return FakeGenerator


@pytest.fixture()
def wav_bytes() -> Callable[..., bytes]:
    return make_wav_bytes
