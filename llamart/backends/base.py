"""llamart/backends/base.py

Backend contract shared by the text-only and multimodal inference engines.

A backend owns its loaded model weights; the generation session owns the
backend handle and reuses it across requests.
"""

from __future__ import annotations

# Standard Library
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import StrEnum

# Local Modules
from llamart.imaging import PlanarRGBImage

logger = logging.getLogger(__name__)

TokenCallback = Callable[[str], None]

# Case-insensitive marker identifying the text-only model family.
TEXT_MODEL_MARKER: str = "llama"

TEXT_END_OF_SEQUENCE: str = "<|eot_id|>"
MULTIMODAL_END_OF_SEQUENCE: str = "</s>"


class BackendKind(StrEnum):
    """Generation backend families."""

    TEXT = "text"
    MULTIMODAL = "multimodal"

    @property
    def end_of_sequence(self) -> str:
        """The token this backend family emits when a response is complete."""
        return TEXT_END_OF_SEQUENCE if self is BackendKind.TEXT else MULTIMODAL_END_OF_SEQUENCE


def select_backend_kind(model_path: str) -> BackendKind:
    """Route a model path to its backend family.

    Args:
        model_path: Model reference as supplied by the user.

    Returns:
        ``BackendKind.TEXT`` when the path contains the text-model marker
        (any case), otherwise ``BackendKind.MULTIMODAL``.
    """
    kind = BackendKind.TEXT if TEXT_MODEL_MARKER in model_path.lower() else BackendKind.MULTIMODAL
    logger.debug("Model path %r routed to %s backend", model_path, kind)
    return kind


class Backend(ABC):
    """An inference engine that can be loaded once and stream tokens.

    Implementations invoke ``on_token`` synchronously, in generation order,
    from whatever thread runs ``generate``. The first callback is an echo
    of the prompt. ``stop`` must be idempotent and safe to call from another
    thread while ``generate`` is running.
    """

    kind: BackendKind

    def __init__(self, model_path: str, tokenizer_path: str) -> None:
        self.model_path = model_path
        self.tokenizer_path = tokenizer_path

    @property
    def end_of_sequence(self) -> str:
        return self.kind.end_of_sequence

    @abstractmethod
    def load(self) -> None:
        """Load the model.

        Raises:
            LoadError: If the model or tokenizer cannot be loaded.
        """

    @abstractmethod
    def is_loaded(self) -> bool:
        """Return True once ``load`` has succeeded."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        image: PlanarRGBImage | None,
        max_tokens: int,
        on_token: TokenCallback,
    ) -> None:
        """Stream tokens for ``prompt`` until done or stopped.

        Raises:
            GenerationError: If the engine fails mid-stream.
        """

    @abstractmethod
    def stop(self) -> None:
        """Ask a running ``generate`` call to return early."""


BackendFactory = Callable[[BackendKind, str, str], Backend]
