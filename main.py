#!/usr/bin/env python3
"""main.py

Entry point for llamart - on-device art assistant for the Musée de l'Orangerie.
Provides an interactive CLI interface using the Rich library.
"""

from __future__ import annotations

# Standard Library
import logging
import queue
import sys
from typing import NoReturn

# Third-Party Libraries
from dotenv import load_dotenv
from PIL import Image
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.text import Text
from rich.theme import Theme

# Local Modules
from llamart.config import LlamartSettings
from llamart.errors import SelectionError
from llamart.imaging import open_image
from llamart.knowledge import KnowledgeBase
from llamart.memory import ConversationMemory
from llamart.session import (
    GenerationSession,
    ModelLoaded,
    SessionEvent,
    SessionFinished,
    TerminalStatus,
    TokenDelta,
)

# Load environment variables from .env file
load_dotenv()

# Initialize Rich console with custom theme
custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "user": "bold blue",
        "assistant": "green",
    }
)
console = Console(theme=custom_theme)


def display_banner() -> None:
    """Display the llamart welcome banner."""
    banner = """
    +-----------------------------------------------------------+
    |                                                           |
    |                    L L A M 4 R T                          |
    |                                                           |
    |     On-device art assistant - Musée de l'Orangerie        |
    |                                                           |
    +-----------------------------------------------------------+
    """
    console.print(banner, style="bold cyan")
    console.print()


def display_help() -> None:
    """Display available commands and usage information."""
    help_text = """
**Available Commands:**

- `/help` - Show this help message
- `/model <path>` - Select the model (paths containing "llama" use the text-only backend)
- `/tokenizer <path>` - Select the tokenizer
- `/image <path>` - Attach an image to the next message (multimodal models only)
- `/memory` - Show the conversation memory
- `/stats` - Show session statistics
- `/quit` or `/exit` - Exit llamart
- Any other text - Ask about a painting

**Tips:**

- Press Ctrl-C while an answer is streaming to stop it
- Paintings named anywhere in the conversation are looked up in the knowledge base
    """
    console.print(Panel(Markdown(help_text), title="Help", border_style="cyan"))


def display_stats(session: GenerationSession) -> None:
    """Display current model and memory statistics.

    Args:
        session: The GenerationSession instance.
    """
    backend = session.backend
    loaded = backend is not None and backend.is_loaded()
    stats_text = f"""
**Session Statistics:**

- Model: `{session.model_path or "not selected"}`
- Tokenizer: `{session.tokenizer_path or "not selected"}`
- Backend: `{session.backend_kind}` ({"loaded" if loaded else "not loaded"})
- Knowledge entries: {len(session.knowledge)}
- Memory turns: {len(session.memory)}
    """
    console.print(Panel(Markdown(stats_text), title="Statistics", border_style="cyan"))


def display_memory(session: GenerationSession) -> None:
    """Print the conversation transcript."""
    transcript = session.memory.transcript()
    if not transcript:
        console.print("No conversation yet.\n", style="info")
        return
    console.print(Panel(Text(transcript), title="Memory", border_style="cyan"))


def run_turn(session: GenerationSession, text: str, image: Image.Image | None) -> None:
    """Stream one answer to the console.

    Ctrl-C while streaming requests cancellation; the partial answer is kept.

    Args:
        session: The GenerationSession instance.
        text: The user's message.
        image: Optional attached image.
    """
    events: queue.Queue[SessionEvent] = queue.Queue()
    if not session.start(text, image, sink=events.put):
        console.print("A generation is already running.\n", style="warning")
        return

    console.print("[assistant]Llam4rt:[/assistant] ", end="")
    while True:
        try:
            try:
                event = events.get(timeout=0.1)
            except queue.Empty:
                continue

            if isinstance(event, TokenDelta):
                console.print(event.text, end="", style="assistant", markup=False, highlight=False)
            elif isinstance(event, ModelLoaded):
                console.print(f"\n{event.describe()}\n", style="info")
            elif isinstance(event, SessionFinished):
                console.print()
                if event.status is TerminalStatus.CANCELLED:
                    console.print("(stopped)", style="warning")
                elif event.status is TerminalStatus.FAILED:
                    console.print(f"❌ {event.describe()}", style="error")
                console.print()
                break
        except KeyboardInterrupt:
            # Keep draining until the worker reports its terminal event.
            session.stop()


def main() -> NoReturn:
    """Main entry point for the llamart CLI."""
    settings = LlamartSettings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    display_banner()

    knowledge = KnowledgeBase.from_file(settings.knowledge_path)
    if knowledge.load_error is not None:
        console.print(f"⚠️  {knowledge.load_error.describe()}", style="warning")
    console.print(f"📚 Knowledge base: {len(knowledge)} entries", style="info")

    session = GenerationSession(settings, knowledge, ConversationMemory())
    console.print(f"🤖 Model: {session.model_path or 'not selected'}", style="info")
    console.print(f"📍 Ollama host: {settings.ollama_host}\n", style="info")
    console.print(
        "Type [bold]/help[/bold] for commands, or start chatting!\n", style="info"
    )

    selected_image: Image.Image | None = None

    # Main chat loop
    while True:
        try:
            user_input = Prompt.ask("[bold blue]You[/bold blue]").strip()

            if not user_input:
                continue

            command, _, argument = user_input.partition(" ")
            command = command.lower()
            argument = argument.strip()

            if command in ["/quit", "/exit"]:
                console.print("\n👋 Goodbye!\n", style="success")
                sys.exit(0)

            elif command == "/help":
                display_help()
                continue

            elif command == "/stats":
                display_stats(session)
                continue

            elif command == "/memory":
                display_memory(session)
                continue

            elif command == "/model":
                if not argument:
                    console.print("Failed to select a file: no model given\n", style="error")
                    continue
                session.select_model(model_path=argument)
                console.print(f"🤖 Model: {argument} ({session.backend_kind})\n", style="success")
                continue

            elif command == "/tokenizer":
                if not argument:
                    console.print("Failed to select a file: no tokenizer given\n", style="error")
                    continue
                session.select_model(tokenizer_path=argument)
                console.print(f"🔤 Tokenizer: {argument}\n", style="success")
                continue

            elif command == "/image":
                try:
                    selected_image = open_image(argument)
                except SelectionError as exc:
                    console.print(f"❌ {exc.describe()}\n", style="error")
                    continue
                console.print(
                    f"🖼️  Image attached ({selected_image.width}x{selected_image.height})\n",
                    style="success",
                )
                continue

            if not session.model_path:
                console.print("Select Model... (use /model <path>)\n", style="warning")
                continue

            console.print()
            run_turn(session, user_input, selected_image)
            selected_image = None

        except KeyboardInterrupt:
            console.print("\n\n👋 Interrupted. Goodbye!\n", style="warning")
            sys.exit(0)


if __name__ == "__main__":
    main()
