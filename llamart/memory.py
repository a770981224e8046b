"""llamart/memory.py

Append-only conversation memory.

Stores (prompt, response) turns with stable sequence numbers and renders
them as the transcript embedded in the next prompt's history block.
"""

from __future__ import annotations

# Standard Library
import logging
import threading
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemoryTurn:
    """One completed (user prompt, assistant response) exchange."""

    sequence: int
    prompt: str
    response: str

    def render(self) -> str:
        return f"User: {self.prompt}\nAssistant: {self.response}\n"


class ConversationMemory:
    """Append-only, ordered store of conversation turns.

    Turns are never removed or edited. Sequence numbers start at 0 and are
    assigned at insertion, so they are strictly increasing in insertion
    order. There is no size bound and no clear operation; bounding is left
    to the caller.
    """

    def __init__(self) -> None:
        """Initialize an empty memory."""
        self._turns: list[MemoryTurn] = []
        self._next_sequence: int = 0
        self._lock = threading.Lock()

    def append(self, prompt: str, response: str) -> MemoryTurn:
        """Store a turn under the next sequence number.

        Args:
            prompt: The user's text for the turn.
            response: The assistant text the user actually saw.

        Returns:
            The stored MemoryTurn.
        """
        with self._lock:
            turn = MemoryTurn(sequence=self._next_sequence, prompt=prompt, response=response)
            self._turns.append(turn)
            self._next_sequence += 1

        logger.debug("Memory turn %d stored (%d chars)", turn.sequence, len(response))
        return turn

    def turns(self) -> list[MemoryTurn]:
        """Return a snapshot of stored turns in sequence order."""
        with self._lock:
            return sorted(self._turns, key=lambda turn: turn.sequence)

    def transcript(self) -> str:
        """Render all turns as ``User: ...\\nAssistant: ...\\n`` blocks.

        Turns are separated by a blank line. Empty memory renders as "".
        """
        return "\n".join(turn.render() for turn in self.turns())

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)
