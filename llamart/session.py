"""llamart/session.py

Generation session: the state machine between a user turn and a backend.

A session assembles the retrieval-augmented prompt, lazily loads the backend
handle for the configured model, runs generation on a background thread and
forwards buffered text deltas to an output sink. Cancellation is cooperative:
``stop()`` raises a flag that is checked at every token boundary.

States::

    IDLE -> LOADING -> STREAMING -> COMPLETED | CANCELLED | FAILED -> IDLE
"""

from __future__ import annotations

# Standard Library
import logging
import queue
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import StrEnum

# Third-Party Libraries
from PIL import Image

# Local Modules
from llamart.backends.base import Backend, BackendFactory, BackendKind, select_backend_kind
from llamart.backends.ollama import ollama_backend_factory
from llamart.config import LlamartSettings
from llamart.errors import GenerationError, LlamartError, LoadError
from llamart.imaging import PlanarRGBImage, prepare_image
from llamart.knowledge import KnowledgeBase
from llamart.memory import ConversationMemory
from llamart.prompt import build_prompt, multimodal_prompt, retrieval_query

logger = logging.getLogger(__name__)

RawImage = Image.Image | bytes | PlanarRGBImage


class SessionState(StrEnum):
    """Lifecycle states of a generation session."""

    IDLE = "idle"
    LOADING = "loading"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class TerminalStatus(StrEnum):
    """How a generation resolved."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Events delivered to the output sink
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenDelta:
    """A batch of generated text, in generation order."""

    text: str
    token_count: int


@dataclass(frozen=True)
class ModelLoaded:
    """The backend finished its lazy load."""

    kind: BackendKind
    seconds: float

    def describe(self) -> str:
        return f"Model loaded in {self.seconds:.2f} s"


@dataclass(frozen=True)
class SessionFinished:
    """Terminal event; always the last event of a generation."""

    status: TerminalStatus
    text: str = ""
    error: LlamartError | None = None

    def describe(self) -> str:
        if self.error is not None:
            return self.error.describe()
        return str(self.status)


SessionEvent = TokenDelta | ModelLoaded | SessionFinished
OutputSink = Callable[[SessionEvent], None]


@dataclass(frozen=True)
class GenerationRequest:
    """Everything one backend call needs. Built per call, never retained."""

    prompt: str
    image: PlanarRGBImage | None


def _discard(event: SessionEvent) -> None:
    pass


class GenerationSession:
    """Runs one generation at a time against a lazily loaded backend.

    The session owns the backend handle and reuses it across requests until
    a different model or tokenizer is selected. Conversation memory is only
    written here, once per resolved generation.
    """

    def __init__(
        self,
        settings: LlamartSettings,
        knowledge: KnowledgeBase,
        memory: ConversationMemory,
        backend_factory: BackendFactory | None = None,
        sink: OutputSink | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            settings: Runtime configuration (model selection, limits).
            knowledge: Read-only knowledge base used for retrieval.
            memory: Conversation memory updated after each generation.
            backend_factory: Creates a backend for a kind and model/tokenizer
                pair. Defaults to Ollama backends on ``settings.ollama_host``.
            sink: Default receiver for session events.
        """
        self.settings = settings
        self.knowledge = knowledge
        self.memory = memory
        self._backend_factory = backend_factory or ollama_backend_factory(settings.ollama_host)
        self._sink: OutputSink = sink or _discard

        self._lock = threading.Lock()
        self._state = SessionState.IDLE
        self._model_path = settings.model_path
        self._tokenizer_path = settings.tokenizer_path
        self._backend_kind = select_backend_kind(self._model_path)
        self._backend: Backend | None = None
        self._pending_selection: tuple[str, str] | None = None
        self._worker: threading.Thread | None = None
        self._last_result: SessionFinished | None = None

        # Per-generation state, reset by start().
        self._cancel_requested = threading.Event()
        self._stop_called = threading.Event()
        self._buffer_lock = threading.Lock()
        self._token_buffer: list[str] = []
        self._accumulated: list[str] = []
        self._suppress_delivery = False
        self._delivery_error: Exception | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def backend_kind(self) -> BackendKind:
        return self._backend_kind

    @property
    def model_path(self) -> str:
        return self._model_path

    @property
    def tokenizer_path(self) -> str:
        return self._tokenizer_path

    @property
    def backend(self) -> Backend | None:
        """The current backend handle, if one has been created."""
        return self._backend

    @property
    def is_active(self) -> bool:
        return self._state is not SessionState.IDLE

    @property
    def last_result(self) -> SessionFinished | None:
        return self._last_result

    # ------------------------------------------------------------------
    # Model selection
    # ------------------------------------------------------------------

    def select_model(self, model_path: str | None = None, tokenizer_path: str | None = None) -> None:
        """Change the model and/or tokenizer reference.

        Any existing backend handle is discarded so the next start reloads.
        While a generation is running the change is deferred until the
        session returns to IDLE; the running call keeps its handle.

        Args:
            model_path: New model reference, or None to keep the current one.
            tokenizer_path: New tokenizer reference, or None to keep the current one.
        """
        with self._lock:
            selection = (
                self._model_path if model_path is None else model_path,
                self._tokenizer_path if tokenizer_path is None else tokenizer_path,
            )
            if self._state is not SessionState.IDLE:
                self._pending_selection = selection
                logger.info("Model selection deferred until the running generation ends")
                return
            self._apply_selection(selection)

    def _apply_selection(self, selection: tuple[str, str]) -> None:
        self._model_path, self._tokenizer_path = selection
        self._backend_kind = select_backend_kind(self._model_path)
        if self._backend is not None:
            logger.info("Discarding %s backend handle after model change", self._backend.kind)
        self._backend = None
        logger.info(
            "Model selected: %s (tokenizer=%s, backend=%s)",
            self._model_path,
            self._tokenizer_path,
            self._backend_kind,
        )

    def _get_backend(self) -> Backend:
        with self._lock:
            if self._backend is None:
                self._backend = self._backend_factory(
                    self._backend_kind, self._model_path, self._tokenizer_path
                )
                logger.debug("Created %s backend for %s", self._backend_kind, self._model_path)
            return self._backend

    # ------------------------------------------------------------------
    # Caller-facing API
    # ------------------------------------------------------------------

    def start(self, user_text: str, image: RawImage | None = None, sink: OutputSink | None = None) -> bool:
        """Begin generating a reply to ``user_text`` on a background thread.

        Args:
            user_text: The user's turn. Surrounding whitespace is trimmed.
            image: Optional bitmap for the multimodal backend.
            sink: Receiver for this generation's events; defaults to the
                session sink.

        Returns:
            True if generation started; False if the text was empty or a
            generation is already running.
        """
        text = user_text.strip()
        if not text:
            logger.warning("Ignoring start request with empty text")
            return False

        with self._lock:
            if self._state is not SessionState.IDLE:
                logger.warning("Ignoring start request: generation already %s", self._state)
                return False
            self._state = SessionState.LOADING
            self._reset_generation()
            kind = self._backend_kind

        self._worker = threading.Thread(
            target=self._run,
            args=(text, image, kind, sink or self._sink),
            name="llamart-generation",
            daemon=True,
        )
        self._worker.start()
        return True

    def stop(self) -> None:
        """Request cancellation of the running generation.

        Safe from any thread and any state; repeated calls have no further
        effect. The backend may still deliver a few tokens before it halts.
        """
        if self._state is SessionState.IDLE:
            return
        self._stop_called.set()
        self._cancel_requested.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the background generation finishes.

        Returns:
            True if no generation is running when the call returns.
        """
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
            return not worker.is_alive()
        return True

    def stream(self, user_text: str, image: RawImage | None = None) -> Iterator[SessionEvent]:
        """Start a generation and iterate over its events in order.

        The iterator ends after the terminal ``SessionFinished`` event. It
        yields nothing if the generation could not be started.
        """
        events: queue.Queue[SessionEvent] = queue.Queue()
        if not self.start(user_text, image, sink=events.put):
            return

        while True:
            event = events.get()
            yield event
            if isinstance(event, SessionFinished):
                break

    # ------------------------------------------------------------------
    # Background execution
    # ------------------------------------------------------------------

    def _reset_generation(self) -> None:
        self._cancel_requested.clear()
        self._stop_called.clear()
        with self._buffer_lock:
            self._token_buffer = []
            self._accumulated = []
        self._suppress_delivery = False
        self._delivery_error = None

    def _set_state(self, state: SessionState) -> None:
        logger.debug("Session state %s -> %s", self._state, state)
        self._state = state

    def _prepare_request(self, user_text: str, image: RawImage | None, kind: BackendKind) -> GenerationRequest:
        transcript = self.memory.transcript()
        retrieved = self.knowledge.retrieve(retrieval_query(user_text, transcript))
        prompt = build_prompt(user_text, retrieved, transcript)
        logger.debug("Prompt assembled: %d documents, %d chars", len(retrieved), len(prompt))

        planar: PlanarRGBImage | None = None
        if kind is BackendKind.MULTIMODAL:
            prompt = multimodal_prompt(prompt)
            if isinstance(image, PlanarRGBImage):
                planar = image
            elif image is not None:
                planar = prepare_image(image, self.settings.image_width)
        elif image is not None:
            logger.warning("Text-only model selected; ignoring attached image")

        return GenerationRequest(prompt=prompt, image=planar)

    def _load(self, backend: Backend, sink: OutputSink) -> None:
        started = time.perf_counter()
        try:
            backend.load()
        except LoadError:
            raise
        except Exception as exc:
            raise LoadError(f"Model loading failed: {exc}") from exc

        elapsed = time.perf_counter() - started
        logger.info("%s model loaded in %.2f s", backend.kind, elapsed)
        self._emit(sink, ModelLoaded(kind=backend.kind, seconds=elapsed))

    def _run(self, user_text: str, image: RawImage | None, kind: BackendKind, sink: OutputSink) -> None:
        status = TerminalStatus.FAILED
        error: LlamartError | None = None
        generated = False
        try:
            request = self._prepare_request(user_text, image, kind)
            backend = self._get_backend()

            if self._cancel_requested.is_set():
                status = TerminalStatus.CANCELLED
                return

            if not backend.is_loaded():
                self._load(backend, sink)

            if self._cancel_requested.is_set():
                status = TerminalStatus.CANCELLED
                return

            self._set_state(SessionState.STREAMING)
            self._generate(backend, request, sink)
            generated = True
            status = TerminalStatus.CANCELLED if self._stop_called.is_set() else TerminalStatus.COMPLETED
        except LlamartError as exc:
            logger.error("Generation failed (%s): %s", exc.code, exc, exc_info=True)
            error = exc
        except Exception as exc:
            logger.error("Unexpected generation failure: %s", exc, exc_info=True)
            error = GenerationError(f"Text generation failed: {exc}")
        finally:
            self._finish(user_text, status, error, generated, sink)

    def _generate(self, backend: Backend, request: GenerationRequest, sink: OutputSink) -> None:
        def on_token(token: str) -> None:
            self._on_token(token, request.prompt, backend, sink)

        try:
            backend.generate(request.prompt, request.image, self.settings.max_tokens, on_token)
        except GenerationError:
            raise
        except Exception as exc:
            raise GenerationError(f"Text generation failed: {exc}") from exc

        if self._delivery_error is not None:
            raise GenerationError(
                f"Output delivery failed: {self._delivery_error}"
            ) from self._delivery_error

    def _on_token(self, token: str, echo: str, backend: Backend, sink: OutputSink) -> None:
        # Runs on the backend's thread; nothing may propagate back into it.
        try:
            if token == echo:
                return
            if token == backend.end_of_sequence:
                if backend.kind is BackendKind.MULTIMODAL:
                    self._cancel_requested.set()
                    self._halt(backend)
                else:
                    # The text runner keeps generating after <|eot_id|>; stop
                    # forwarding and let it run out on its own.
                    self._suppress_delivery = True
                return
            if self._cancel_requested.is_set():
                self._halt(backend)
                return
            if self._suppress_delivery:
                return

            if backend.kind is BackendKind.TEXT:
                token = token.lstrip("\r\n")
            with self._buffer_lock:
                self._token_buffer.append(token)
                self._accumulated.append(token)
                ready = len(self._token_buffer) > self.settings.flush_threshold
            if ready:
                self._flush(sink)
        except Exception as exc:
            logger.error("Token delivery failed; halting generation", exc_info=True)
            self._delivery_error = exc
            self._cancel_requested.set()
            self._halt(backend)

    def _halt(self, backend: Backend) -> None:
        try:
            backend.stop()
        except Exception:
            logger.error("Backend stop failed", exc_info=True)

    def _flush(self, sink: OutputSink) -> None:
        with self._buffer_lock:
            tokens, self._token_buffer = self._token_buffer, []
        if tokens:
            sink(TokenDelta(text="".join(tokens), token_count=len(tokens)))

    def _finish(
        self,
        user_text: str,
        status: TerminalStatus,
        error: LlamartError | None,
        generated: bool,
        sink: OutputSink,
    ) -> None:
        if self._delivery_error is None:
            try:
                self._flush(sink)
            except Exception:
                logger.error("Final flush failed", exc_info=True)

        with self._buffer_lock:
            text = "".join(self._accumulated)

        if generated and status is not TerminalStatus.FAILED:
            turn = self.memory.append(user_text, text)
            logger.info("Generation %s; stored memory turn %d", status, turn.sequence)

        self._set_state(SessionState(status.value))
        result = SessionFinished(status=status, text=text, error=error)
        self._last_result = result

        with self._lock:
            if self._pending_selection is not None:
                self._apply_selection(self._pending_selection)
                self._pending_selection = None
            self._set_state(SessionState.IDLE)

        self._emit(sink, result)

    def _emit(self, sink: OutputSink, event: SessionEvent) -> None:
        try:
            sink(event)
        except Exception:
            logger.error("Output sink rejected %s", type(event).__name__, exc_info=True)
