"""tests/test_prompt.py

Unit tests for prompt assembly (llamart/prompt.py).
Tests the special-token framing, documents/history blocks and multimodal suffix.
"""

from __future__ import annotations

# Local Modules
from llamart.knowledge import KnowledgeEntry
from llamart.prompt import (
    BEGIN_OF_TEXT,
    END_HEADER,
    END_OF_TEXT,
    END_OF_TURN,
    START_HEADER,
    build_prompt,
    build_system_message,
    multimodal_prompt,
    retrieval_query,
)

ENTRY = KnowledgeEntry("Water Lilies", "Monet series")


def _between(text: str, start: str, end: str) -> str:
    return text.split(start, 1)[1].split(end, 1)[0]


class TestBuildPrompt:
    """Test suite for build_prompt."""

    def test_framing_order(self) -> None:
        """The prompt opens with the system header and ends on an open assistant header."""
        prompt = build_prompt("What is Water Lilies?", [ENTRY], "")

        assert prompt.startswith(f"{BEGIN_OF_TEXT}{START_HEADER}system{END_HEADER}\n")
        assert prompt.endswith(
            f"{END_OF_TURN}{START_HEADER}user{END_HEADER}\n"
            f"What is Water Lilies?{END_OF_TURN}{START_HEADER}assistant{END_HEADER}"
        )

    def test_marker_counts(self) -> None:
        """Each special token appears the expected number of times, in order."""
        prompt = build_prompt("What is Water Lilies?", [ENTRY], "")

        assert prompt.count(BEGIN_OF_TEXT) == 1
        assert prompt.count(START_HEADER) == 3
        assert prompt.count(END_HEADER) == 3
        assert prompt.count(END_OF_TURN) == 2
        assert END_OF_TEXT not in prompt
        positions = [prompt.index(f"{START_HEADER}{role}{END_HEADER}") for role in ("system", "user", "assistant")]
        assert positions == sorted(positions)

    def test_single_documents_block_with_entry(self) -> None:
        """Retrieved entries land in exactly one documents block."""
        prompt = build_prompt("What is Water Lilies?", [ENTRY], "")

        assert prompt.count("<documents>") == 1
        assert prompt.count("</documents>") == 1
        documents = _between(prompt, "<documents>", "</documents>")
        assert "Title: Water Lilies\nDescription: Monet series" in documents

    def test_empty_history_block(self) -> None:
        """An empty transcript yields an empty history block."""
        prompt = build_prompt("What is Water Lilies?", [ENTRY], "")

        assert prompt.count("<history>") == 1
        assert _between(prompt, "<history>", "</history>").strip() == ""

    def test_history_block_contains_transcript(self) -> None:
        """The transcript is embedded verbatim in the history block."""
        transcript = "User: hi\nAssistant: hello\n"
        prompt = build_prompt("next", [], transcript)
        assert transcript in _between(prompt, "<history>", "</history>")

    def test_persona_is_present(self) -> None:
        """The system message introduces the Llam4rt persona."""
        prompt = build_prompt("hi", [], "")
        assert "Llam4rt" in prompt
        assert "Musée de l'Orangerie" in prompt

    def test_custom_persona(self) -> None:
        """The persona text can be replaced."""
        message = build_system_message([], "", persona="You are a test persona.")
        assert message.startswith("CONTEXT\nYou are a test persona.\n")

    def test_deterministic(self) -> None:
        """Identical inputs give identical prompts."""
        assert build_prompt("q", [ENTRY], "t") == build_prompt("q", [ENTRY], "t")


class TestHelpers:
    """Test suite for retrieval_query and multimodal_prompt."""

    def test_retrieval_query_concatenates_transcript(self) -> None:
        """Retrieval searches the user text followed by the transcript."""
        assert retrieval_query("Tell me more", "User: Water Lilies?\n") == "Tell me moreUser: Water Lilies?\n"

    def test_multimodal_prompt_suffix(self) -> None:
        """The multimodal prompt is the assembled prompt plus the ASSISTANT marker."""
        prompt = build_prompt("Describe this", [], "")
        assert multimodal_prompt(prompt) == prompt + " ASSISTANT"
