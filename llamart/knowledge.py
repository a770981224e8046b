"""llamart/knowledge.py

Static knowledge base used for retrieval-augmented prompts.

Entries are (title, description) records loaded once from a line-oriented,
comma-delimited source. Retrieval is literal, case-sensitive substring
containment of an entry title in the query; nothing is scored or ranked.
"""

from __future__ import annotations

# Standard Library
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

# Local Modules
from llamart.errors import KnowledgeLoadError

logger = logging.getLogger(__name__)

DELIMITER: str = ","


@dataclass(frozen=True)
class KnowledgeEntry:
    """A single knowledge record."""

    title: str
    description: str

    def render(self) -> str:
        """Render the entry the way it appears inside the prompt's documents block."""
        return f"Title: {self.title}\nDescription: {self.description}"


def parse_knowledge_lines(lines: Iterable[str], delimiter: str = DELIMITER) -> list[KnowledgeEntry]:
    """Parse knowledge records from raw source lines.

    Each line is split at the *first* delimiter, so delimiters inside the
    description survive verbatim. Both fields are whitespace-trimmed.

    Args:
        lines: Raw source lines (trailing newlines allowed).
        delimiter: Field separator.

    Returns:
        Entries in source order. Blank lines, lines without a delimiter and
        lines with an empty title are skipped.
    """
    entries: list[KnowledgeEntry] = []
    for line_no, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        title, sep, description = line.partition(delimiter)
        if not sep:
            logger.debug("Skipping knowledge line %d: no delimiter", line_no)
            continue
        title = title.strip()
        if not title:
            logger.debug("Skipping knowledge line %d: empty title", line_no)
            continue
        entries.append(KnowledgeEntry(title=title, description=description.strip()))
    return entries


class KnowledgeBase:
    """Read-only, ordered collection of knowledge entries.

    The collection never changes after construction, so concurrent reads
    need no locking.
    """

    def __init__(
        self,
        entries: Iterable[KnowledgeEntry] = (),
        load_error: KnowledgeLoadError | None = None,
    ) -> None:
        self._entries: tuple[KnowledgeEntry, ...] = tuple(e for e in entries if e.title)
        self.load_error = load_error

    @classmethod
    def from_lines(cls, lines: Iterable[str], delimiter: str = DELIMITER) -> KnowledgeBase:
        return cls(parse_knowledge_lines(lines, delimiter))

    @classmethod
    def from_file(cls, path: str | Path, delimiter: str = DELIMITER) -> KnowledgeBase:
        """Load a knowledge base from a text file.

        A missing or unreadable source does not raise: the returned knowledge
        base is empty and carries the failure on ``load_error`` so the caller
        can report it.

        Args:
            path: Location of the knowledge source.
            delimiter: Field separator.

        Returns:
            The loaded (possibly empty) KnowledgeBase.
        """
        source = Path(path)
        try:
            text = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            error = KnowledgeLoadError(f"Error reading knowledge source {source}: {exc}")
            logger.warning("Knowledge base unavailable, retrieval disabled: %s", error)
            return cls(load_error=error)

        kb = cls.from_lines(text.splitlines(), delimiter)
        logger.info("Knowledge base loaded: %d entries from %s", len(kb), source)
        return kb

    @property
    def entries(self) -> tuple[KnowledgeEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def retrieve(self, query: str) -> list[KnowledgeEntry]:
        """Return every entry whose title occurs literally in ``query``, in load order."""
        if not query:
            return []
        return [entry for entry in self._entries if entry.title in query]


def render_documents(entries: Iterable[KnowledgeEntry]) -> str:
    """Join rendered entries with a blank line between each."""
    return "\n\n".join(entry.render() for entry in entries)
