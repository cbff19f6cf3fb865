"""
Record Store - keyed access to article records.

The pipeline only needs ``get_document`` / ``update_document``; the
per-entry methods back EntryTableDiagramCache. No transaction semantics
are assumed by callers.
"""

import asyncio
import copy
import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from config.constants import DIAGRAM_CACHE_FIELD
from config.logging_config import get_logger

logger = get_logger(__name__)


UPDATABLE_FIELDS = ("title", "content", DIAGRAM_CACHE_FIELD)


@dataclass
class DocumentRecord:
    """An article as stored: markdown content plus its diagram cache map."""
    id: str
    title: str = ""
    content: str = ""
    diagram_images: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "diagram_images": dict(self.diagram_images),
        }


class RecordStore(Protocol):
    """Keyed record accessor used by the pipeline and DiagramCache."""

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        """Return the record, or None when it does not exist."""
        ...

    async def update_document(self, document_id: str, fields: Dict[str, Any]) -> None:
        """Overwrite the given fields of an existing record."""
        ...


class CacheEntryStore(Protocol):
    """Normalized (document_id, cache_key) -> url rows."""

    async def get_cache_entry(self, document_id: str, cache_key: str) -> Optional[str]:
        ...

    async def upsert_cache_entry(self, document_id: str, cache_key: str, url: str) -> None:
        ...

    async def list_cache_entries(self, document_id: str) -> Dict[str, str]:
        ...

    async def delete_cache_entries(self, document_id: str) -> int:
        ...


def _check_fields(fields: Dict[str, Any]):
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown document fields: {sorted(unknown)}")


class InMemoryRecordStore:
    """
    Dict-backed record store for the CLI and tests.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self):
        self._documents: Dict[str, DocumentRecord] = {}
        self._entries: Dict[str, Dict[str, str]] = {}

    def put(self, record: DocumentRecord) -> DocumentRecord:
        self._documents[record.id] = copy.deepcopy(record)
        return record

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        record = self._documents.get(document_id)
        return copy.deepcopy(record) if record else None

    async def update_document(self, document_id: str, fields: Dict[str, Any]) -> None:
        _check_fields(fields)
        record = self._documents.get(document_id)
        if record is None:
            raise KeyError(document_id)
        for name, value in copy.deepcopy(fields).items():
            setattr(record, name, value)

    async def get_cache_entry(self, document_id: str, cache_key: str) -> Optional[str]:
        return self._entries.get(document_id, {}).get(cache_key)

    async def upsert_cache_entry(self, document_id: str, cache_key: str, url: str) -> None:
        self._entries.setdefault(document_id, {})[cache_key] = url

    async def list_cache_entries(self, document_id: str) -> Dict[str, str]:
        return dict(self._entries.get(document_id, {}))

    async def delete_cache_entries(self, document_id: str) -> int:
        return len(self._entries.pop(document_id, {}))


class SQLiteRecordStore:
    """
    SQLite repository for articles and normalized diagram cache rows.

    Blocking sqlite calls run in a worker thread so the event loop stays
    free while diagrams resolve concurrently.
    """

    def __init__(self, db_path: str | Path = "data/articles.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        logger.info(f"SQLiteRecordStore initialized: {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            raise e
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS articles (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    content TEXT NOT NULL DEFAULT '',
                    diagram_images TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS diagram_cache_entries (
                    document_id TEXT NOT NULL,
                    cache_key TEXT NOT NULL,
                    url TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (document_id, cache_key)
                )
            """)

    # ------------------------------------------------------------------
    # Sync implementations
    # ------------------------------------------------------------------

    def save_document_sync(self, record: DocumentRecord) -> None:
        """Insert or replace a whole record."""
        now = datetime.utcnow().isoformat()
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO articles (id, title, content, diagram_images, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    content = excluded.content,
                    diagram_images = excluded.diagram_images,
                    updated_at = excluded.updated_at
            """, (
                record.id, record.title, record.content,
                json.dumps(record.diagram_images), now, now,
            ))

    def get_document_sync(self, document_id: str) -> Optional[DocumentRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT id, title, content, diagram_images FROM articles WHERE id = ?",
                (document_id,)
            ).fetchone()

        if row is None:
            return None

        try:
            diagram_images = json.loads(row["diagram_images"] or "{}")
        except json.JSONDecodeError:
            logger.warning(f"Corrupt diagram_images field on article {document_id}")
            diagram_images = {}

        return DocumentRecord(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            diagram_images=diagram_images if isinstance(diagram_images, dict) else {},
        )

    def update_document_sync(self, document_id: str, fields: Dict[str, Any]) -> None:
        _check_fields(fields)
        if not fields:
            return

        assignments = []
        values = []
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            values.append(json.dumps(value) if name == DIAGRAM_CACHE_FIELD else value)
        assignments.append("updated_at = ?")
        values.append(datetime.utcnow().isoformat())
        values.append(document_id)

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE articles SET {', '.join(assignments)} WHERE id = ?",
                values
            )
            if cursor.rowcount == 0:
                raise KeyError(document_id)

    def upsert_cache_entry_sync(self, document_id: str, cache_key: str, url: str) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT INTO diagram_cache_entries (document_id, cache_key, url, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(document_id, cache_key) DO UPDATE SET
                    url = excluded.url,
                    updated_at = excluded.updated_at
            """, (document_id, cache_key, url, datetime.utcnow().isoformat()))

    def get_cache_entry_sync(self, document_id: str, cache_key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT url FROM diagram_cache_entries WHERE document_id = ? AND cache_key = ?",
                (document_id, cache_key)
            ).fetchone()
        return row["url"] if row else None

    def list_cache_entries_sync(self, document_id: str) -> Dict[str, str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT cache_key, url FROM diagram_cache_entries WHERE document_id = ?",
                (document_id,)
            ).fetchall()
        return {row["cache_key"]: row["url"] for row in rows}

    def delete_cache_entries_sync(self, document_id: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM diagram_cache_entries WHERE document_id = ?",
                (document_id,)
            )
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Async interface
    # ------------------------------------------------------------------

    async def save_document(self, record: DocumentRecord) -> None:
        await asyncio.to_thread(self.save_document_sync, record)

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        return await asyncio.to_thread(self.get_document_sync, document_id)

    async def update_document(self, document_id: str, fields: Dict[str, Any]) -> None:
        await asyncio.to_thread(self.update_document_sync, document_id, fields)

    async def get_cache_entry(self, document_id: str, cache_key: str) -> Optional[str]:
        return await asyncio.to_thread(self.get_cache_entry_sync, document_id, cache_key)

    async def upsert_cache_entry(self, document_id: str, cache_key: str, url: str) -> None:
        await asyncio.to_thread(self.upsert_cache_entry_sync, document_id, cache_key, url)

    async def list_cache_entries(self, document_id: str) -> Dict[str, str]:
        return await asyncio.to_thread(self.list_cache_entries_sync, document_id)

    async def delete_cache_entries(self, document_id: str) -> int:
        return await asyncio.to_thread(self.delete_cache_entries_sync, document_id)
