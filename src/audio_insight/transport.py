"""Upload transports that move audio bytes to the transcription backend.

Two interchangeable strategies share one contract,
``upload(candidate, options, on_progress) -> TransportHandle``:

* ``DirectUploadTransport`` sends one multipart request to the relay.
* ``StagedUploadTransport`` asks the relay for a short-lived storage
  location, PUTs the bytes there, then asks the relay to transcribe the
  stored object. The relay owns cleanup of the stored object once the
  processing call has been made; the client never deletes it.

Both enforce a hard wall-clock timeout and turn connection failures into
``UploadError``. Non-2xx answers from the final, provider-bearing call are
returned in the handle rather than raised so the orchestrator can classify
them.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

import httpx
import structlog

from audio_insight.exceptions import (
    ErrorKind,
    UploadError,
    classify_http_status,
    extract_error_message,
)
from audio_insight.progress import PhasedProgress, ProgressCallback

if TYPE_CHECKING:
    from audio_insight.config import TransportSettings
    from audio_insight.models import TranscriptionOptions, UploadCandidate

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


@dataclass(slots=True)
class TransportHandle:
    """The final HTTP response of an upload, decoded as far as possible."""

    status_code: int
    payload: Any
    strategy: str
    raw_text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


async def _stream_body(
    body: bytes,
    chunk_size: int,
    on_fraction: Callable[[float], None],
) -> AsyncIterator[bytes]:
    """Yield ``body`` in chunks, reporting the fraction handed to the wire."""
    total = len(body)
    if total == 0:
        on_fraction(1.0)
        return
    sent = 0
    while sent < total:
        chunk = body[sent : sent + chunk_size]
        yield chunk
        sent += len(chunk)
        on_fraction(sent / total)


class UploadTransport(ABC):
    """Base class: timeout and error translation around ``_upload``."""

    strategy: ClassVar[str]

    def __init__(self, client: httpx.AsyncClient, settings: TransportSettings) -> None:
        self._client = client
        self._settings = settings

    @property
    def max_bytes(self) -> int:
        return self._settings.max_bytes

    def _url(self, endpoint: str) -> str:
        return self._settings.relay_base_url.rstrip("/") + endpoint

    async def upload(
        self,
        candidate: UploadCandidate,
        options: TranscriptionOptions,
        on_progress: ProgressCallback | None = None,
    ) -> TransportHandle:
        """Upload ``candidate`` and return the backend's transcription response.

        Args:
            candidate: The validated file.
            options: Transcription options, already merged with defaults.
            on_progress: Called with a 0-100 percentage as bytes move.

        Raises:
            UploadError: On timeout (``TIMEOUT``), connection failure
                (``NETWORK_ERROR``) or a failed intermediate step.
        """
        report = on_progress or (lambda _percent: None)
        timeout = self._settings.timeout_seconds
        logger.info(
            "upload_start",
            strategy=self.strategy,
            file_name=candidate.display_name,
            size_bytes=candidate.size_bytes,
        )
        try:
            async with asyncio.timeout(timeout):
                handle = await self._upload(candidate, options, report)
        except TimeoutError as exc:
            raise UploadError(
                f"Request timeout after {timeout / 60:g} minutes. The audio file "
                "might be too long or the server is busy.",
                ErrorKind.TIMEOUT,
            ) from exc
        except httpx.TimeoutException as exc:
            raise UploadError(
                f"Request timed out: {exc}", ErrorKind.TIMEOUT
            ) from exc
        except httpx.TransportError as exc:
            raise UploadError(
                "Network error occurred during upload. "
                "Please check your internet connection.",
                ErrorKind.NETWORK_ERROR,
            ) from exc

        logger.info(
            "upload_complete", strategy=self.strategy, status_code=handle.status_code
        )
        return handle

    @abstractmethod
    async def _upload(
        self,
        candidate: UploadCandidate,
        options: TranscriptionOptions,
        report: ProgressCallback,
    ) -> TransportHandle:
        """Perform the strategy-specific requests."""


class DirectUploadTransport(UploadTransport):
    """Single multipart POST to the relay's transcription endpoint."""

    strategy = "direct"

    async def _upload(
        self,
        candidate: UploadCandidate,
        options: TranscriptionOptions,
        report: ProgressCallback,
    ) -> TransportHandle:
        encoded = self._client.build_request(
            "POST",
            self._url(self._settings.direct_endpoint),
            data=options.to_provider_fields(),
            files={
                "file": (
                    candidate.display_name,
                    candidate.content,
                    candidate.media_type,
                )
            },
        )
        body = encoded.read()
        report(0.0)

        request = self._client.build_request(
            "POST",
            encoded.url,
            headers=dict(encoded.headers),
            content=_stream_body(
                body,
                self._settings.chunk_size,
                lambda fraction: report(fraction * 100.0),
            ),
        )
        response = await self._client.send(request)
        return TransportHandle(
            status_code=response.status_code,
            payload=_decode(response),
            strategy=self.strategy,
            raw_text=response.text,
        )


class StagedUploadTransport(UploadTransport):
    """Token request, direct-to-storage PUT, then relay-side transcription."""

    strategy = "staged"

    def __init__(self, client: httpx.AsyncClient, settings: TransportSettings) -> None:
        super().__init__(client, settings)
        self._phases = PhasedProgress()

    async def _upload(
        self,
        candidate: UploadCandidate,
        options: TranscriptionOptions,
        report: ProgressCallback,
    ) -> TransportHandle:
        def phase(index: int, fraction: float) -> None:
            report(self._phases.unified_percent(index, fraction))

        # (a) short-lived write location
        phase(0, 0.0)
        location = await self._request_location(candidate)
        phase(0, 1.0)

        # (b) bytes straight to storage
        put_response = await self._client.put(
            location["uploadUrl"],
            headers={
                "Authorization": f"Bearer {location['token']}",
                "Content-Type": candidate.media_type,
                "Content-Length": str(candidate.size_bytes),
            },
            content=_stream_body(
                candidate.content,
                self._settings.chunk_size,
                lambda fraction: phase(1, fraction),
            ),
        )
        if not put_response.is_success:
            raise UploadError(
                extract_error_message(
                    _decode(put_response),
                    f"Storage upload failed with HTTP {put_response.status_code}",
                ),
                classify_http_status(put_response.status_code),
                status_code=put_response.status_code,
            )
        phase(1, 1.0)

        # (c) relay transcribes the stored object and schedules its cleanup
        phase(2, 0.0)
        response = await self._client.post(
            self._url(self._settings.processing_endpoint),
            json={"blobUrl": location["url"], "options": options.to_provider_fields()},
        )
        phase(2, 1.0)
        return TransportHandle(
            status_code=response.status_code,
            payload=_decode(response),
            strategy=self.strategy,
            raw_text=response.text,
        )

    async def _request_location(self, candidate: UploadCandidate) -> dict[str, str]:
        response = await self._client.post(
            self._url(self._settings.token_endpoint),
            json={
                "filename": candidate.display_name,
                "contentType": candidate.media_type,
            },
        )
        payload = _decode(response)
        if not response.is_success:
            raise UploadError(
                extract_error_message(payload, "Failed to obtain an upload location"),
                classify_http_status(response.status_code),
                status_code=response.status_code,
            )
        if not isinstance(payload, dict) or not all(
            payload.get(field) for field in ("url", "uploadUrl", "token")
        ):
            raise UploadError(
                "Upload location response is missing url, uploadUrl or token",
                ErrorKind.PARSE_ERROR,
                status_code=response.status_code,
            )
        return {field: str(payload[field]) for field in ("url", "uploadUrl", "token")}


_STRATEGIES: dict[str, type[UploadTransport]] = {
    DirectUploadTransport.strategy: DirectUploadTransport,
    StagedUploadTransport.strategy: StagedUploadTransport,
}


def build_transport(
    settings: TransportSettings, client: httpx.AsyncClient
) -> UploadTransport:
    """Instantiate the transport strategy named in configuration."""
    try:
        transport_cls = _STRATEGIES[settings.strategy]
    except KeyError as exc:
        raise ValueError(f"Unknown transport strategy: {settings.strategy!r}") from exc
    return transport_cls(client, settings)
