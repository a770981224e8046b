"""llamart/backends/ollama.py

Backends served by a local Ollama instance.

The model reference is used directly as the Ollama model tag (for example
``llama3.1:8b`` or ``llava:7b``); Ollama bundles the tokenizer, so the
tokenizer reference is only recorded. Prompts are sent raw because they
are already framed with the model's special tokens.
"""

from __future__ import annotations

# Standard Library
import logging
import threading
from collections.abc import Callable
from typing import Any

# Third-Party Libraries
from ollama import Client, ResponseError

# Local Modules
from llamart.backends.base import Backend, BackendFactory, BackendKind, TokenCallback
from llamart.errors import GenerationError, LoadError
from llamart.imaging import PlanarRGBImage

logger = logging.getLogger(__name__)


class OllamaBackend(Backend):
    """Streams raw-prompt completions from Ollama's generate endpoint."""

    def __init__(
        self,
        model_path: str,
        tokenizer_path: str,
        host: str = "http://localhost:11434",
        client: Client | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            model_path: Ollama model tag.
            tokenizer_path: Recorded only; Ollama ships its own tokenizer.
            host: Ollama API endpoint.
            client: Pre-built client, mainly for tests.
        """
        super().__init__(model_path, tokenizer_path)
        self.host = host
        self.client = client or Client(host=host)
        self._loaded = False
        self._stop_requested = threading.Event()

    def load(self) -> None:
        """Check the model exists and warm it into memory."""
        if not self.model_path:
            raise LoadError("Model loading failed: no model selected")
        try:
            self.client.show(self.model_path)
            # An empty prompt makes Ollama load the weights without generating.
            self.client.generate(model=self.model_path, prompt="")
        except (ResponseError, OSError) as exc:
            raise LoadError(f"Model loading failed: {exc}") from exc

        self._loaded = True
        logger.info("Ollama model ready: %s (host=%s)", self.model_path, self.host)

    def is_loaded(self) -> bool:
        return self._loaded

    def stop(self) -> None:
        self._stop_requested.set()

    def _images(self, image: PlanarRGBImage | None) -> list[bytes]:
        return []

    def generate(
        self,
        prompt: str,
        image: PlanarRGBImage | None,
        max_tokens: int,
        on_token: TokenCallback,
    ) -> None:
        if not self._loaded:
            raise GenerationError("Text generation failed: model is not loaded")

        self._stop_requested.clear()
        request: dict[str, Any] = {
            "model": self.model_path,
            "prompt": prompt,
            "raw": True,
            "stream": True,
            "options": {"num_predict": max_tokens},
        }
        images = self._images(image)
        if images:
            request["images"] = images

        # Mirror the native runners: the first callback echoes the prompt.
        on_token(prompt)

        stopped = False
        try:
            stream = self.client.generate(**request)
            for chunk in stream:
                if self._stop_requested.is_set():
                    stopped = True
                    break
                token = chunk["response"]
                if token:
                    on_token(token)
        except (ResponseError, OSError) as exc:
            raise GenerationError(f"Text generation failed: {exc}") from exc

        if stopped:
            close: Callable[[], None] | None = getattr(stream, "close", None)
            if close is not None:
                close()
            logger.debug("Ollama stream for %s stopped early", self.model_path)
            return

        on_token(self.end_of_sequence)


class OllamaTextBackend(OllamaBackend):
    """Text-only Llama-family model."""

    kind = BackendKind.TEXT


class OllamaMultimodalBackend(OllamaBackend):
    """Vision-language model that takes one image per request."""

    kind = BackendKind.MULTIMODAL

    def _images(self, image: PlanarRGBImage | None) -> list[bytes]:
        if image is None:
            return []
        return [image.to_png()]


def ollama_backend_factory(host: str) -> BackendFactory:
    """Build a factory creating Ollama backends bound to ``host``."""

    def _factory(kind: BackendKind, model_path: str, tokenizer_path: str) -> Backend:
        backend_cls = OllamaTextBackend if kind is BackendKind.TEXT else OllamaMultimodalBackend
        return backend_cls(model_path, tokenizer_path, host=host)

    return _factory
