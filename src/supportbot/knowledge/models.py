"""Knowledge base data model and its JSON file shape."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from supportbot.knowledge.errors import FormatError

SCHEMA_VERSION = "1.0"


def utc_timestamp() -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2026-10-16T10:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_entry_id() -> str:
    return uuid.uuid4().hex


def entry_needs_backfill(item: dict) -> bool:
    """True when from_dict would invent a field the stored entry lacks."""
    return not (item.get("id") and item.get("createdAt") and item.get("updatedAt")) or (
        "tags" not in item
    )


@dataclass
class KnowledgeEntry:
    """One title/body/tags record."""

    id: str
    key: str
    value: str
    tags: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> KnowledgeEntry:
        if not isinstance(data, dict):
            raise FormatError(f"Invalid knowledge entry: expected object, got {type(data).__name__}")
        key = data.get("key")
        value = data.get("value")
        if not isinstance(key, str) or not isinstance(value, str):
            raise FormatError(f"Invalid knowledge entry {data.get('id')!r}: key and value must be strings")

        tags = data.get("tags") or []
        if not isinstance(tags, list):
            raise FormatError(f"Invalid knowledge entry {data.get('id')!r}: tags must be an array")

        # Legacy entries may predate ids and timestamps
        created_at = data.get("createdAt") or utc_timestamp()
        return cls(
            id=str(data.get("id") or new_entry_id()),
            key=key,
            value=value,
            tags=[str(t) for t in tags],
            created_at=created_at,
            updated_at=data.get("updatedAt") or created_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "tags": list(self.tags),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class KnowledgeBaseDocument:
    """The persisted aggregate, read and written as a whole."""

    entries: list[KnowledgeEntry] = field(default_factory=list)
    last_updated: str = ""
    version: str = SCHEMA_VERSION
    # Set on the returned document only, after a corrupt file was quarantined
    recovered: bool = False

    @classmethod
    def empty(cls, *, recovered: bool = False) -> KnowledgeBaseDocument:
        return cls(entries=[], last_updated=utc_timestamp(), recovered=recovered)

    @classmethod
    def from_legacy(cls, items: list) -> KnowledgeBaseDocument:
        """Wrap a bare entry array (pre-1.0 file format)."""
        return cls(
            entries=[KnowledgeEntry.from_dict(item) for item in items],
            last_updated=utc_timestamp(),
        )

    @classmethod
    def from_dict(cls, data: Any) -> KnowledgeBaseDocument:
        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            raise FormatError("Invalid knowledge base format: entries must be an array")
        return cls(
            entries=[KnowledgeEntry.from_dict(item) for item in data["entries"]],
            last_updated=data.get("lastUpdated") or "",
            version=data.get("version") or SCHEMA_VERSION,
        )

    def to_dict(self) -> dict:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "lastUpdated": self.last_updated,
            "version": self.version,
        }

    def index_of(self, entry_id: str) -> int | None:
        for i, entry in enumerate(self.entries):
            if entry.id == entry_id:
                return i
        return None


@dataclass
class ScoredEntry:
    """Search hit: an entry plus its relevance score (0 for unranked listings)."""

    entry: KnowledgeEntry
    score: int = 0

    def to_dict(self) -> dict:
        return {**self.entry.to_dict(), "relevanceScore": self.score}
