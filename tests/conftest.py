"""tests/conftest.py

Pytest configuration and shared fixtures for the llamart test suite.
"""

from __future__ import annotations

# Standard Library
import threading
from collections.abc import Callable, Sequence
from unittest.mock import Mock

# Third-Party Libraries
import pytest

# Local Modules
from llamart.backends.base import Backend, BackendKind, TokenCallback
from llamart.config import LlamartSettings
from llamart.errors import GenerationError, LoadError
from llamart.imaging import PlanarRGBImage
from llamart.knowledge import KnowledgeBase, KnowledgeEntry
from llamart.memory import ConversationMemory
from llamart.session import GenerationSession, SessionEvent


class ScriptedBackend(Backend):
    """Backend that replays a fixed token script.

    Mirrors the native runners: the first callback echoes the prompt, and
    ``stop`` is honoured between tokens.
    """

    def __init__(
        self,
        kind: BackendKind,
        model_path: str = "",
        tokenizer_path: str = "",
        tokens: Sequence[str] = (),
        load_error: Exception | None = None,
        generate_error: Exception | None = None,
        on_token_sent: Callable[[int, str], None] | None = None,
        on_load: Callable[[], None] | None = None,
        stop_error: Exception | None = None,
    ) -> None:
        super().__init__(model_path, tokenizer_path)
        self.kind = kind
        self.tokens = list(tokens)
        self.load_error = load_error
        self.generate_error = generate_error
        self.on_token_sent = on_token_sent
        self.on_load = on_load
        self.stop_error = stop_error
        self.load_calls = 0
        self.generate_calls: list[tuple[str, PlanarRGBImage | None, int]] = []
        self.stop_calls = 0
        self.emitted: list[str] = []
        self._loaded = False
        self._stopped = threading.Event()

    def load(self) -> None:
        self.load_calls += 1
        if self.on_load is not None:
            self.on_load()
        if self.load_error is not None:
            raise self.load_error
        self._loaded = True

    def is_loaded(self) -> bool:
        return self._loaded

    def stop(self) -> None:
        self.stop_calls += 1
        self._stopped.set()
        if self.stop_error is not None:
            raise self.stop_error

    def generate(
        self,
        prompt: str,
        image: PlanarRGBImage | None,
        max_tokens: int,
        on_token: TokenCallback,
    ) -> None:
        self.generate_calls.append((prompt, image, max_tokens))
        self._stopped.clear()
        on_token(prompt)
        for index, token in enumerate(self.tokens):
            if self._stopped.is_set():
                break
            self.emitted.append(token)
            on_token(token)
            if self.on_token_sent is not None:
                self.on_token_sent(index, token)
        if self.generate_error is not None:
            raise self.generate_error


class SessionHarness:
    """Bundles a session with the events it emitted and the backends it built."""

    def __init__(self, session: GenerationSession, events: list[SessionEvent], backends: list[ScriptedBackend]):
        self.session = session
        self.events = events
        self.backends = backends

    @property
    def backend(self) -> ScriptedBackend:
        return self.backends[-1]

    def run(self, text: str, image=None, timeout: float = 5.0) -> bool:
        started = self.session.start(text, image)
        if started:
            assert self.session.wait(timeout), "generation did not finish"
        return started


@pytest.fixture
def sample_entries() -> list[KnowledgeEntry]:
    """Create sample knowledge entries."""
    return [
        KnowledgeEntry("Water Lilies", "Monet series"),
        KnowledgeEntry("Olympia", ""),
        KnowledgeEntry("The Wedding", "Henri Rousseau, naive portrait"),
    ]


@pytest.fixture
def knowledge(sample_entries: list[KnowledgeEntry]) -> KnowledgeBase:
    return KnowledgeBase(sample_entries)


@pytest.fixture
def settings() -> LlamartSettings:
    """Settings isolated from any local .env file."""
    return LlamartSettings(
        _env_file=None,
        model_path="/models/Llama-3-8B.pte",
        tokenizer_path="/models/tokenizer.model",
    )


@pytest.fixture
def make_session(
    settings: LlamartSettings, knowledge: KnowledgeBase
) -> Callable[..., SessionHarness]:
    """Factory building a session wired to scripted backends.

    Keyword arguments are forwarded to every ScriptedBackend the session
    creates; ``settings`` and ``memory`` override the defaults.
    """

    def _make(
        settings_override: LlamartSettings | None = None,
        memory: ConversationMemory | None = None,
        **backend_kwargs,
    ) -> SessionHarness:
        events: list[SessionEvent] = []
        backends: list[ScriptedBackend] = []

        def factory(kind: BackendKind, model_path: str, tokenizer_path: str) -> Backend:
            backend = ScriptedBackend(kind, model_path, tokenizer_path, **backend_kwargs)
            backends.append(backend)
            return backend

        session = GenerationSession(
            settings_override or settings,
            knowledge,
            memory if memory is not None else ConversationMemory(),
            backend_factory=factory,
            sink=events.append,
        )
        return SessionHarness(session, events, backends)

    return _make


@pytest.fixture
def load_failure() -> LoadError:
    return LoadError("Model loading failed: file not found")


@pytest.fixture
def generation_failure() -> GenerationError:
    return GenerationError("Text generation failed: runner aborted")


@pytest.fixture
def mock_ollama_client() -> Mock:
    """Create a mock Ollama client for testing.

    Returns:
        Mock Ollama client streaming three chunks.
    """
    mock_client = Mock()
    mock_client.show.return_value = {"modelfile": "FROM llama3.1"}
    mock_client.generate.return_value = iter(
        [
            {"response": "The ", "done": False},
            {"response": "Water Lilies", "done": False},
            {"response": "", "done": True},
        ]
    )
    return mock_client
