"""llamart/prompt.py

Prompt assembly for the Llama-3 chat grammar.

The special tokens below are consumed verbatim by the backends' tokenizers;
any change to them breaks turn boundaries downstream.
"""

from __future__ import annotations

# Standard Library
from collections.abc import Sequence

# Local Modules
from llamart.knowledge import KnowledgeEntry, render_documents

BEGIN_OF_TEXT: str = "<|begin_of_text|>"
END_OF_TEXT: str = "<|end_of_text|>"
START_HEADER: str = "<|start_header_id|>"
END_HEADER: str = "<|end_header_id|>"
END_OF_TURN: str = "<|eot_id|>"

# Appended to the assembled prompt for the multimodal backend's grammar.
MULTIMODAL_SUFFIX: str = " ASSISTANT"

PERSONA: str = (
    "You are a helpful AI art assistant, called Llam4rt, the user will ask you "
    "questions about paintings. You have been tasked with helping us to answer "
    "the user input.\n"
    "You have been specifically trained on the Musée de l'Orangerie in Paris."
)

MUSEUM_OVERVIEW: str = (
    "Musée de l'Orangerie:\n"
    "The Musée de l'Orangerie (English: Orangery Museum) is an art gallery of "
    "Impressionist and Post-Impressionist paintings located in the west corner of "
    "the Tuileries Garden next to the Place de la Concorde in Paris. The museum is "
    "most famous as the permanent home of eight large Water Lilies murals by Claude "
    "Monet, and also contains works by Paul Cézanne, Henri Matisse, Amedeo "
    "Modigliani, Pablo Picasso, Pierre-Auguste Renoir, Henri Rousseau, Alfred "
    "Sisley, Chaïm Soutine, Maurice Utrillo, and others.[1]"
)


def retrieval_query(user_text: str, transcript: str) -> str:
    """Text searched for knowledge titles: the current turn plus prior conversation."""
    return user_text + transcript


def build_system_message(
    retrieved: Sequence[KnowledgeEntry],
    transcript: str,
    persona: str = PERSONA,
) -> str:
    """Compose the system message with its documents and history blocks.

    Args:
        retrieved: Knowledge entries matched for this turn.
        transcript: Rendered conversation memory ("" when empty).
        persona: Role description opening the CONTEXT section.

    Returns:
        The system message text (no special tokens).
    """
    return (
        "CONTEXT\n"
        f"{persona}\n"
        "\n"
        "DOCUMENTS\n"
        "You have access to the following documents which are meant to provide "
        "context as you answer the query:\n"
        "<documents>\n"
        f"{MUSEUM_OVERVIEW}\n"
        "\n"
        "User Oriented Information for Paintings:\n"
        f"{render_documents(retrieved)}\n"
        "</documents>\n"
        "\n"
        "HISTORY\n"
        "You have access to the conversation history, which is meant to provide "
        "even more context as you answer the query:\n"
        "<history>\n"
        f"{transcript}\n"
        "</history>"
    )


def build_prompt(
    user_text: str,
    retrieved: Sequence[KnowledgeEntry],
    transcript: str,
    persona: str = PERSONA,
) -> str:
    """Assemble the backend-ready prompt.

    Pure function: identical inputs always yield the identical string.

    Args:
        user_text: The user's current turn.
        retrieved: Knowledge entries matched for this turn.
        transcript: Rendered conversation memory.
        persona: Role description for the system message.

    Returns:
        Prompt framed as system, user and an open assistant header.
    """
    system_message = build_system_message(retrieved, transcript, persona)
    return (
        f"{BEGIN_OF_TEXT}{START_HEADER}system{END_HEADER}\n"
        f"{system_message}{END_OF_TURN}{START_HEADER}user{END_HEADER}\n"
        f"{user_text}{END_OF_TURN}{START_HEADER}assistant{END_HEADER}"
    )


def multimodal_prompt(prompt: str) -> str:
    """Reuse an assembled prompt for the multimodal backend."""
    return f"{prompt}{MULTIMODAL_SUFFIX}"
