"""audio-insight: audio transcription and transcript analysis pipeline."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("audio-insight")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]
