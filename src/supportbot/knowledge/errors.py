"""Knowledge store error taxonomy."""

from __future__ import annotations


class KnowledgeError(Exception):
    """Base class for knowledge store failures."""


class FormatError(KnowledgeError):
    """Backing file parsed, but its shape is not a knowledge base document."""


class PersistenceError(KnowledgeError):
    """Reading or writing the backing file kept failing after retries."""


class NotFoundError(KnowledgeError):
    """No entry with the requested id."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Entry with ID {entry_id} not found")
        self.entry_id = entry_id


class ValidationError(KnowledgeError, ValueError):
    """Entry fields rejected before they reach disk."""
