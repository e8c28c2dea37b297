"""Knowledge store — durable JSON file of knowledge entries with CRUD and search.

The backing file is read and rewritten as a whole on every mutation. Writes go
to a temporary file that is atomically renamed over the target, so readers
never observe a half-written document. An in-process lock serializes
load-modify-save sequences; separate processes writing the same file still race
(last writer wins).
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)
from tenacity.retry import retry_base

from supportbot.knowledge.errors import (
    FormatError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from supportbot.knowledge.models import (
    SCHEMA_VERSION,
    KnowledgeBaseDocument,
    KnowledgeEntry,
    ScoredEntry,
    entry_needs_backfill,
    new_entry_id,
    utc_timestamp,
)
from supportbot.knowledge.ranking import normalize_query, score

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_DELAY = 0.1  # seconds, multiplied by the attempt number
MAX_SNAPSHOTS = 5


def _file_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


def _is_transient_read_error(exc: BaseException) -> bool:
    # A missing file is handled by creating it, not by retrying
    if isinstance(exc, FileNotFoundError):
        return False
    # ValueError covers JSONDecodeError and UnicodeDecodeError
    return isinstance(exc, (OSError, ValueError))


class KnowledgeStore:
    """Exclusive owner of the knowledge base file."""

    def __init__(
        self,
        path: Path,
        backup_dir: Path | None = None,
        *,
        max_snapshots: int = MAX_SNAPSHOTS,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        self.path = Path(path)
        self.backup_dir = Path(backup_dir) if backup_dir else self.path.parent / "backups"
        self.max_snapshots = max_snapshots
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self._lock = threading.RLock()

    def _retrying(self, retry: retry_base) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            retry=retry,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    # ── Load ──────────────────────────────────────────────────

    def load(self) -> KnowledgeBaseDocument:
        """Read the backing file, creating, migrating or recovering it as needed."""
        with self._lock:
            return self._load()

    def _load(self) -> KnowledgeBaseDocument:
        try:
            for attempt in self._retrying(retry_if_exception(_is_transient_read_error)):
                with attempt:
                    data = json.loads(self.path.read_bytes())
        except FileNotFoundError:
            logger.info("Knowledge base not found, creating %s", self.path)
            document = KnowledgeBaseDocument.empty()
            self._save(document)
            return document
        except ValueError as e:
            logger.error("Knowledge base unparseable after %d attempts: %s", self.max_attempts, e)
            self._quarantine()
            document = KnowledgeBaseDocument.empty(recovered=True)
            self._save(document)
            logger.warning("Knowledge base reset to an empty document after corruption")
            return document
        except OSError as e:
            raise PersistenceError(
                f"Failed to load knowledge base after {self.max_attempts} attempts: {e}"
            ) from e

        return self._parse(data)

    def _parse(self, data: object) -> KnowledgeBaseDocument:
        if isinstance(data, list):
            document = KnowledgeBaseDocument.from_legacy(data)
            logger.info("Migrating legacy knowledge base (%d entries)", len(document.entries))
            self._save(document)
            return document

        document = KnowledgeBaseDocument.from_dict(data)
        # Ids and timestamps filled in on load must be persisted to stay stable
        if any(entry_needs_backfill(item) for item in data["entries"]):
            logger.info("Backfilling missing entry fields in %s", self.path)
            self._save(document)
        return document

    def _quarantine(self) -> None:
        """Copy an unparseable file aside for later inspection."""
        target = self.path.parent / f"corrupted-backup-{_file_stamp()}.json"
        try:
            shutil.copyfile(self.path, target)
            logger.warning("Corrupted knowledge base copied to %s", target)
        except OSError as e:
            logger.warning("Could not back up corrupted knowledge base: %s", e)

    # ── Save ──────────────────────────────────────────────────

    def save(self, document: KnowledgeBaseDocument) -> None:
        """Persist the whole document atomically."""
        with self._lock:
            self._save(document)

    def _save(self, document: KnowledgeBaseDocument) -> None:
        if not isinstance(document.entries, list):
            raise FormatError("Invalid knowledge base format: entries must be an array")

        document.last_updated = utc_timestamp()
        document.version = document.version or SCHEMA_VERSION
        payload = json.dumps(document.to_dict(), ensure_ascii=False, indent=2)
        tmp_path = self.path.with_name(self.path.name + ".tmp")

        self._snapshot()

        try:
            for attempt in self._retrying(retry_if_exception_type(OSError)):
                with attempt:
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                    tmp_path.write_text(payload, encoding="utf-8")
                    os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Knowledge base save failed after %d attempts: %s", self.max_attempts, e)
            raise PersistenceError(
                f"Failed to save knowledge base after {self.max_attempts} attempts: {e}"
            ) from e

    def _snapshot(self) -> None:
        """Copy the current file into backup_dir, keep the newest max_snapshots."""
        if not self.path.exists():
            return
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(self.path, self.backup_dir / f"safety-backup-{_file_stamp()}.json")
            old = sorted(self.backup_dir.glob("safety-backup-*.json"))
            for f in old[: max(0, len(old) - self.max_snapshots)]:
                f.unlink()
        except OSError as e:
            logger.warning("Could not create safety backup: %s", e)

    # ── Entry CRUD ────────────────────────────────────────────

    def get_all(self) -> list[KnowledgeEntry]:
        return self.load().entries

    def get_by_id(self, entry_id: str) -> KnowledgeEntry | None:
        for entry in self.get_all():
            if entry.id == entry_id:
                return entry
        return None

    def create(self, key: str, value: str, tags: list[str] | None = None) -> KnowledgeEntry:
        key = _clean_text("key", key)
        value = _clean_text("value", value)
        tags = _clean_tags(tags)

        with self._lock:
            document = self._load()
            now = utc_timestamp()
            entry = KnowledgeEntry(
                id=new_entry_id(),
                key=key,
                value=value,
                tags=tags,
                created_at=now,
                updated_at=now,
            )
            document.entries.append(entry)
            self._save(document)

        logger.info("Created knowledge entry: %s (%s)", entry.key, entry.id)
        return entry

    def update(
        self,
        entry_id: str,
        *,
        key: str | None = None,
        value: str | None = None,
        tags: list[str] | None = None,
    ) -> KnowledgeEntry:
        """Merge the given fields into an entry. Omitted fields are left alone."""
        if key is not None:
            key = _clean_text("key", key)
        if value is not None:
            value = _clean_text("value", value)
        if tags is not None:
            tags = _clean_tags(tags)

        with self._lock:
            document = self._load()
            index = document.index_of(entry_id)
            if index is None:
                raise NotFoundError(entry_id)

            entry = document.entries[index]
            if key is not None:
                entry.key = key
            if value is not None:
                entry.value = value
            if tags is not None:
                entry.tags = tags
            entry.updated_at = utc_timestamp()
            self._save(document)

        logger.info("Updated knowledge entry: %s", entry_id)
        return entry

    def delete(self, entry_id: str) -> KnowledgeEntry:
        with self._lock:
            document = self._load()
            index = document.index_of(entry_id)
            if index is None:
                raise NotFoundError(entry_id)
            removed = document.entries.pop(index)
            self._save(document)

        logger.info("Deleted knowledge entry: %s", entry_id)
        return removed

    # ── Search & context ──────────────────────────────────────

    def search(self, query: str, limit: int = 10) -> list[ScoredEntry]:
        """Rank entries against query. A blank query lists entries in stored order."""
        entries = self.get_all()
        if not query or not query.strip():
            return [ScoredEntry(entry) for entry in entries[:limit]]

        normalized = normalize_query(query)
        hits: list[ScoredEntry] = []
        for entry in entries:
            entry_score = score(entry, normalized)
            if entry_score > 0:
                hits.append(ScoredEntry(entry, entry_score))

        # list.sort is stable, ties keep stored order
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    def relevant_context(self, message: str, max_entries: int = 3) -> str:
        """Prompt context block built from the best matching entries."""
        hits = self.search(message, max_entries)
        return "\n\n".join(f"{hit.entry.key}: {hit.entry.value}" for hit in hits)

    def stats(self) -> dict:
        document = self.load()
        entries = document.entries
        count = len(entries)
        return {
            "total_entries": count,
            "last_updated": document.last_updated,
            "average_key_length": sum(len(e.key) for e in entries) / count if count else 0,
            "average_value_length": sum(len(e.value) for e in entries) / count if count else 0,
        }


def _clean_text(field_name: str, text: object) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError(f"{field_name} is required and must be a non-empty string")
    return text.strip()


def _clean_tags(tags: object) -> list[str]:
    if tags is None:
        return []
    if not isinstance(tags, (list, tuple)) or not all(isinstance(t, str) for t in tags):
        raise ValidationError("tags must be a list of strings")
    return list(tags)
