"""Configuration with 4-layer resolution: defaults -> YAML -> env -> CLI.

Uses pydantic-settings with YamlConfigSettingsSource for layered configuration.
Supports ``.env`` file loading, ``AUDIO_INSIGHT_`` prefixed env vars, and
nested delimiter ``__`` for overriding sub-model fields
(e.g. ``AUDIO_INSIGHT_TRANSPORT__STRATEGY=staged``).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_MB = 1024 * 1024

DEFAULT_ACCEPTED_TYPES: tuple[str, ...] = (
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/m4a",
    "audio/mp4",
    "audio/webm",
    "audio/ogg",
)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class TransportSettings(BaseModel):
    """Upload transport configuration."""

    strategy: Literal["direct", "staged"] = "direct"
    relay_base_url: str = "http://localhost:3000/api"
    direct_endpoint: str = "/transcribe"
    token_endpoint: str = "/blob-upload-token"
    processing_endpoint: str = "/transcribe-from-blob"
    direct_max_bytes: int = Field(
        default=15 * _MB,
        gt=0,
        description="Relay body-size limit for the single multipart request.",
    )
    staged_max_bytes: int = Field(
        default=500 * _MB,
        gt=0,
        description="Ceiling for the token + direct-to-storage path.",
    )
    accepted_types: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ACCEPTED_TYPES)
    )
    timeout_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Hard wall-clock limit for one upload, in seconds.",
    )
    chunk_size: int = Field(
        default=64 * 1024,
        gt=0,
        description="Bytes per streamed body chunk (progress granularity).",
    )

    @property
    def max_bytes(self) -> int:
        """Size ceiling of the active strategy."""
        if self.strategy == "staged":
            return self.staged_max_bytes
        return self.direct_max_bytes


class TranscriptionSettings(BaseModel):
    """Speech-to-text defaults applied when the caller leaves them out."""

    model: str = "whisper-large-v3"
    language: str | None = None
    temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    response_format: Literal["plain", "segmented"] = "segmented"
    settle_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Short pause before reporting 100% (perceived progress).",
    )
    fallback_duration_seconds: float = Field(default=60.0, gt=0.0)


class AnalysisSettings(BaseModel):
    """Text-generation (analysis) configuration."""

    backend: Literal["relay", "litellm"] = "relay"
    endpoint: str = "/analyze"
    model: str = "llama-3.1-8b-instant"
    litellm_model: str = "groq/llama-3.1-8b-instant"
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    timeout_seconds: float = Field(default=120.0, gt=0.0)
    chunk_threshold: int = Field(
        default=8000,
        gt=0,
        description="Texts longer than this are chunked before analysis.",
    )
    chunk_size: int = Field(default=4000, gt=0)


class CacheSettings(BaseModel):
    """In-memory analysis cache configuration."""

    ttl_seconds: int = Field(default=3600, gt=0)
    max_entries: int = Field(default=50, gt=0)
    key_prefix_length: int = Field(
        default=100,
        gt=0,
        description="Characters of normalized text that participate in the key.",
    )


class LoggingSettings(BaseModel):
    """Logging / observability configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Main Settings (4-layer resolution)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Top-level application settings.

    Resolution order (last wins):
        1. Field defaults (defined above)
        2. YAML config file (``config.yaml`` or ``--config`` path)
        3. Environment variables (prefixed ``AUDIO_INSIGHT_``)
        4. CLI overrides (applied programmatically after loading)
    """

    model_config = SettingsConfigDict(
        env_prefix="AUDIO_INSIGHT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    transport: TransportSettings = Field(default_factory=TransportSettings)
    transcription: TranscriptionSettings = Field(
        default_factory=TranscriptionSettings
    )
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Resolution order (first = highest priority):
            init_settings (CLI) > env_settings > dotenv (.env) > yaml > defaults
        """
        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", "config.yaml"
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Load settings with optional config path and CLI overrides.

        Args:
            config_path: Optional path to a YAML config file.
            **overrides: Key-value CLI overrides applied at highest priority.

        Returns:
            Fully-resolved Settings instance.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        cls._config_path_override = config_path
        try:
            settings = cls(**overrides)
        finally:
            cls._config_path_override = None
        logger.debug(
            "settings_loaded",
            config_path=str(config_path) if config_path else None,
            strategy=settings.transport.strategy,
            analysis_backend=settings.analysis.backend,
        )
        return settings


def format_validation_error(exc: ValidationError) -> str:
    """Format a Pydantic ValidationError into a user-friendly message.

    Args:
        exc: The validation error to format.

    Returns:
        A multi-line string with each error on its own line.
    """
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None:
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)
