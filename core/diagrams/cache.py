#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Diagram Cache - content-addressed key → URL mapping, scoped per document.

Two backends:
- DiagramCache: the map lives on the article record itself
  (``diagram_images`` JSON field). The record store has no atomic merge,
  so writes for one document are serialized with an in-process lock
  around read → merge → write.
- EntryTableDiagramCache: one row per (document_id, cache_key) with an
  upsert, so concurrent writes for different keys never conflict.

Entries are never expired; a changed diagram gets a new key.
"""

import asyncio
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from config.logging_config import get_logger
from core.storage.record_store import CacheEntryStore, RecordStore

from .errors import CacheReadError, CacheWriteError

logger = get_logger(__name__)


@dataclass
class CacheStats:
    """Diagram cache statistics"""
    hits: int = 0
    misses: int = 0
    writes: int = 0
    read_failures: int = 0
    write_failures: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": f"{self.hit_rate:.1%}",
            "writes": self.writes,
            "read_failures": self.read_failures,
            "write_failures": self.write_failures,
        }


class DiagramCacheBackend(ABC):
    """Per-document diagram cache interface"""

    def __init__(self):
        self._stats = CacheStats()

    @abstractmethod
    async def lookup(self, document_id: str, key: str) -> Optional[str]:
        """Cached URL, or None on missing document/field/key or read failure"""
        pass

    @abstractmethod
    async def store(self, document_id: str, key: str, url: str) -> bool:
        """Persist key → url without disturbing other keys; False on failure"""
        pass

    @abstractmethod
    async def get_all(self, document_id: str) -> Dict[str, str]:
        """Whole key → url map for a document"""
        pass

    @abstractmethod
    async def clear(self, document_id: str) -> int:
        """Drop every entry for a document, return count cleared"""
        pass

    def stats(self) -> CacheStats:
        return self._stats

    def _record_lookup(self, document_id: str, key: str, url: Optional[str]) -> Optional[str]:
        if url:
            self._stats.hits += 1
            logger.info(f"Diagram cache hit: {document_id}/{key}")
            return url
        self._stats.misses += 1
        logger.debug(f"Diagram cache miss: {document_id}/{key}")
        return None


class DiagramCache(DiagramCacheBackend):
    """
    Cache embedded in the article record's ``diagram_images`` field.

    Usage:
        cache = DiagramCache(record_store)
        await cache.store("42", "mermaid-1a2b3c4d", "https://cdn/x.webp")   # True
        await cache.lookup("42", "mermaid-1a2b3c4d")   # "https://cdn/x.webp"
    """

    def __init__(self, record_store: RecordStore):
        super().__init__()
        self.record_store = record_store
        # entries vanish once no store/clear holds or awaits the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, document_id: str) -> asyncio.Lock:
        lock = self._locks.get(document_id)
        if lock is None:
            lock = self._locks[document_id] = asyncio.Lock()
        return lock

    async def _read_map(self, document_id: str) -> Optional[Dict[str, str]]:
        """Current map, None when the document does not exist."""
        try:
            record = await self.record_store.get_document(document_id)
        except Exception as e:
            raise CacheReadError(f"Failed to read diagram cache for {document_id}: {e}") from e
        if record is None:
            return None
        cached = record.diagram_images
        return dict(cached) if isinstance(cached, dict) else {}

    async def lookup(self, document_id: str, key: str) -> Optional[str]:
        try:
            cached = await self._read_map(document_id)
        except CacheReadError as e:
            self._stats.read_failures += 1
            logger.warning(f"{e}; treating as miss")
            cached = None

        url = cached.get(key) if cached else None
        return self._record_lookup(document_id, key, url if isinstance(url, str) else None)

    async def store(self, document_id: str, key: str, url: str) -> bool:
        async with self._lock_for(document_id):
            try:
                await self._merge_and_write(document_id, {key: url})
            except (CacheReadError, CacheWriteError) as e:
                self._stats.write_failures += 1
                logger.warning(f"Diagram cache store failed for {document_id}/{key}: {e}")
                return False

        self._stats.writes += 1
        logger.info(f"Diagram cached: {document_id}/{key}")
        return True

    async def _merge_and_write(self, document_id: str, entries: Dict[str, str]):
        current = await self._read_map(document_id)
        if current is None:
            raise CacheWriteError(f"Document {document_id} not found")

        current.update(entries)
        try:
            await self.record_store.update_document(document_id, {"diagram_images": current})
        except Exception as e:
            raise CacheWriteError(str(e)) from e

    async def get_all(self, document_id: str) -> Dict[str, str]:
        try:
            return await self._read_map(document_id) or {}
        except CacheReadError as e:
            logger.warning(str(e))
            return {}

    async def clear(self, document_id: str) -> int:
        async with self._lock_for(document_id):
            current = await self._read_map(document_id)
            if not current:
                return 0
            try:
                await self.record_store.update_document(document_id, {"diagram_images": {}})
            except Exception as e:
                raise CacheWriteError(str(e)) from e
            return len(current)


class EntryTableDiagramCache(DiagramCacheBackend):
    """Cache stored as normalized (document_id, cache_key) rows."""

    def __init__(self, entry_store: CacheEntryStore):
        super().__init__()
        self.entry_store = entry_store

    async def lookup(self, document_id: str, key: str) -> Optional[str]:
        try:
            url = await self.entry_store.get_cache_entry(document_id, key)
        except Exception as e:
            self._stats.read_failures += 1
            logger.warning(f"Diagram cache read failed for {document_id}/{key}: {e}; treating as miss")
            url = None
        return self._record_lookup(document_id, key, url)

    async def store(self, document_id: str, key: str, url: str) -> bool:
        try:
            await self.entry_store.upsert_cache_entry(document_id, key, url)
        except Exception as e:
            self._stats.write_failures += 1
            logger.warning(f"Diagram cache store failed for {document_id}/{key}: {e}")
            return False
        self._stats.writes += 1
        logger.info(f"Diagram cached: {document_id}/{key}")
        return True

    async def get_all(self, document_id: str) -> Dict[str, str]:
        try:
            return await self.entry_store.list_cache_entries(document_id)
        except Exception as e:
            logger.warning(f"Diagram cache read failed for {document_id}: {e}")
            return {}

    async def clear(self, document_id: str) -> int:
        try:
            return await self.entry_store.delete_cache_entries(document_id)
        except Exception as e:
            raise CacheWriteError(str(e)) from e


def build_diagram_cache(settings, record_store) -> DiagramCacheBackend:
    """Pick the cache backend named in settings."""
    if settings.cache_backend == "entries":
        return EntryTableDiagramCache(record_store)
    return DiagramCache(record_store)
