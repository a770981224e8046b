"""llamart/errors.py

Error taxonomy for the generation pipeline.

Every error carries a stable ``code`` so callers can render a user-facing
message without parsing exception text.
"""

from __future__ import annotations

# Standard Library
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error categories surfaced to callers."""

    MODEL_LOAD_FAILED = "model_load_failed"
    GENERATION_FAILED = "generation_failed"
    KNOWLEDGE_LOAD_FAILED = "knowledge_load_failed"
    SELECTION_FAILED = "selection_failed"
    IMAGE_UNREADABLE = "image_unreadable"


class LlamartError(Exception):
    """Base class for all llamart errors."""

    code: ErrorCode = ErrorCode.GENERATION_FAILED

    def __init__(self, message: str, *, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code

    def describe(self) -> str:
        """Return a one-line ``code: message`` rendering for display."""
        return f"{self.code}: {self}"


class LoadError(LlamartError):
    """Model or tokenizer could not be loaded (bad path, format, memory)."""

    code = ErrorCode.MODEL_LOAD_FAILED


class GenerationError(LlamartError):
    """Backend failed while streaming tokens."""

    code = ErrorCode.GENERATION_FAILED


class KnowledgeLoadError(LlamartError):
    """Knowledge source missing or unreadable. Non-fatal."""

    code = ErrorCode.KNOWLEDGE_LOAD_FAILED


class SelectionError(LlamartError):
    """No file chosen, or the chosen file cannot be read."""

    code = ErrorCode.SELECTION_FAILED


class ImageError(LlamartError):
    """Source bitmap has no decodable pixel buffer."""

    code = ErrorCode.IMAGE_UNREADABLE
