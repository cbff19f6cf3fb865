"""
Tests for core/diagrams/cache.py - per-document diagram cache
"""
import asyncio
import gc

import pytest

from core.diagrams.cache import DiagramCache, EntryTableDiagramCache, build_diagram_cache
from core.storage.record_store import DocumentRecord, InMemoryRecordStore
from config.settings import Settings


class BrokenEntryStore:
    async def get_cache_entry(self, document_id, cache_key):
        raise ConnectionError("down")

    async def upsert_cache_entry(self, document_id, cache_key, url):
        raise ConnectionError("down")

    async def list_cache_entries(self, document_id):
        raise ConnectionError("down")

    async def delete_cache_entries(self, document_id):
        raise ConnectionError("down")


class TestDiagramCache:
    """Test the record-embedded cache"""

    @pytest.mark.asyncio
    async def test_store_then_lookup(self, record_store):
        """A stored URL is returned by lookup"""
        cache = DiagramCache(record_store)
        assert await cache.store("doc-1", "mermaid-aaaa0000", "https://cdn.test/a.webp") is True
        assert await cache.lookup("doc-1", "mermaid-aaaa0000") == "https://cdn.test/a.webp"

    @pytest.mark.asyncio
    async def test_lookup_miss(self, record_store):
        """Unknown key and unknown document are both plain misses"""
        cache = DiagramCache(record_store)
        assert await cache.lookup("doc-1", "mermaid-missing0") is None
        assert await cache.lookup("no-such-doc", "mermaid-missing0") is None
        assert cache.stats().misses == 2

    @pytest.mark.asyncio
    async def test_store_preserves_other_keys(self, record_store):
        """Storing one key never removes another"""
        record_store.put(DocumentRecord(id="doc-2", diagram_images={"mermaid-old00000": "https://old"}))
        cache = DiagramCache(record_store)

        await cache.store("doc-2", "mermaid-new00000", "https://new")

        assert await cache.get_all("doc-2") == {
            "mermaid-old00000": "https://old",
            "mermaid-new00000": "https://new",
        }

    @pytest.mark.asyncio
    async def test_concurrent_stores_all_kept(self, record_store):
        """Concurrent stores for one document do not lose updates"""
        cache = DiagramCache(record_store)
        keys = [f"mermaid-{i:08x}" for i in range(20)]

        results = await asyncio.gather(*(cache.store("doc-1", key, f"https://cdn.test/{key}") for key in keys))

        assert all(results)
        assert set((await cache.get_all("doc-1")).keys()) == set(keys)

    @pytest.mark.asyncio
    async def test_store_missing_document(self, record_store):
        """Storing for a document that does not exist fails softly"""
        cache = DiagramCache(record_store)
        assert await cache.store("ghost", "mermaid-aaaa0000", "https://x") is False
        assert cache.stats().write_failures == 1

    @pytest.mark.asyncio
    async def test_failing_store_is_soft(self, failing_record_store):
        """A broken record store gives misses and False, never exceptions"""
        cache = DiagramCache(failing_record_store)
        assert await cache.lookup("doc-1", "mermaid-aaaa0000") is None
        assert await cache.store("doc-1", "mermaid-aaaa0000", "https://x") is False
        assert await cache.get_all("doc-1") == {}
        assert cache.stats().read_failures == 1

    @pytest.mark.asyncio
    async def test_malformed_field_treated_as_empty(self, record_store):
        """A non-dict cache field reads as empty and is replaced on write"""
        record_store.put(DocumentRecord(id="doc-3", diagram_images="garbage"))
        cache = DiagramCache(record_store)

        assert await cache.lookup("doc-3", "mermaid-aaaa0000") is None
        assert await cache.store("doc-3", "mermaid-aaaa0000", "https://x") is True
        assert await cache.get_all("doc-3") == {"mermaid-aaaa0000": "https://x"}

    @pytest.mark.asyncio
    async def test_clear(self, record_store):
        """clear drops every entry and reports the count"""
        cache = DiagramCache(record_store)
        await cache.store("doc-1", "mermaid-aaaa0000", "https://x")
        await cache.store("doc-1", "mermaid-bbbb0000", "https://y")

        assert await cache.clear("doc-1") == 2
        assert await cache.get_all("doc-1") == {}

    @pytest.mark.asyncio
    async def test_document_locks_released(self, record_store):
        """Per-document locks do not accumulate once writes finish"""
        cache = DiagramCache(record_store)
        await asyncio.gather(*(
            cache.store(doc_id, "mermaid-aaaa0000", "https://x")
            for doc_id in ["doc-1"] * 5 + [f"ghost-{i}" for i in range(50)]
        ))
        await cache.clear("doc-1")
        gc.collect()

        assert len(cache._locks) == 0
        assert await cache.get_all("doc-1") == {}

    @pytest.mark.asyncio
    async def test_hit_rate(self, record_store):
        """Stats track hits and misses"""
        cache = DiagramCache(record_store)
        await cache.store("doc-1", "mermaid-aaaa0000", "https://x")
        await cache.lookup("doc-1", "mermaid-aaaa0000")
        await cache.lookup("doc-1", "mermaid-bbbb0000")

        stats = cache.stats()
        assert stats.hits == 1
        assert stats.hit_rate == 0.5
        assert stats.to_dict()["hit_rate"] == "50.0%"


class TestEntryTableDiagramCache:
    """Test the normalized-row cache"""

    @pytest.mark.asyncio
    async def test_round_trip_and_isolation(self):
        """Entries are scoped per document"""
        cache = EntryTableDiagramCache(InMemoryRecordStore())
        await cache.store("doc-1", "mermaid-aaaa0000", "https://a")
        await cache.store("doc-2", "mermaid-aaaa0000", "https://b")

        assert await cache.lookup("doc-1", "mermaid-aaaa0000") == "https://a"
        assert await cache.lookup("doc-2", "mermaid-aaaa0000") == "https://b"
        assert await cache.get_all("doc-1") == {"mermaid-aaaa0000": "https://a"}

    @pytest.mark.asyncio
    async def test_broken_store_is_soft(self):
        """Read and write failures degrade to miss / False"""
        cache = EntryTableDiagramCache(BrokenEntryStore())
        assert await cache.lookup("doc-1", "k") is None
        assert await cache.store("doc-1", "k", "u") is False
        assert await cache.get_all("doc-1") == {}


class TestBuildDiagramCache:
    """Test backend selection"""

    def test_default_backend(self, record_store):
        """The record-embedded cache is the default"""
        assert isinstance(build_diagram_cache(Settings(), record_store), DiagramCache)

    def test_entries_backend(self, record_store):
        """cache_backend=entries selects the row cache"""
        cache = build_diagram_cache(Settings(cache_backend="entries"), record_store)
        assert isinstance(cache, EntryTableDiagramCache)
