#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Integration tests for core/pipeline.py - diagram resolution and publishing.

Collaborators are in-memory fakes; the walker, cache, renderer chain and
assemblers are real.
"""

import io
from unittest.mock import AsyncMock

import pytest
from docx import Document
from pptx import Presentation

from core.diagrams.cache import DiagramCache
from core.diagrams.converter import WEB_PROFILE
from core.diagrams.errors import (
    DocumentNotFoundError, InvalidRequestError, RecordStoreUnavailableError,
)
from core.diagrams.hasher import compute_diagram_key
from core.export.formats import OutputFormat
from core.markdown.blocks import DiagramPlaceholder, ImageBlock
from core.pipeline import DiagramState
from core.storage.record_store import DocumentRecord


DIAGRAM = "graph TD\nA-->B"
ONE_DIAGRAM = f"# Title\n\n```mermaid\n{DIAGRAM}\n```\n\nAfter.\n"


def placeholders(blocks):
    return [b for b in blocks if isinstance(b, DiagramPlaceholder)]


def images(blocks):
    return [b for b in blocks if isinstance(b, ImageBlock)]


class TestResolveBlocks:
    """Test the per-diagram state machine."""

    @pytest.mark.asyncio
    async def test_fresh_render_is_cached(self, pipeline, record_store, image_store, ok_strategy):
        """One diagram renders, uploads, is cached and replaced in place."""
        blocks = pipeline.parse(ONE_DIAGRAM)
        outcomes = await pipeline.resolve_blocks("doc-1", blocks)

        key = compute_diagram_key(DIAGRAM)
        assert len(outcomes) == 1
        assert outcomes[0].state == DiagramState.RESOLVED
        assert outcomes[0].cache_stored is True
        assert placeholders(blocks) == []
        assert [b.diagram_key for b in images(blocks)] == [key]
        assert blocks[1].url == outcomes[0].url

        record = await record_store.get_document("doc-1")
        assert record.diagram_images == {key: outcomes[0].url}
        assert image_store.upload_calls == [f"articles/doc-1/diagrams/{key}.png"]
        assert ok_strategy.calls == [DIAGRAM]

    @pytest.mark.asyncio
    async def test_second_run_hits_cache(self, pipeline, image_store, ok_strategy):
        """A repeat run renders and uploads nothing and yields the same blocks."""
        first = pipeline.parse(ONE_DIAGRAM)
        await pipeline.resolve_blocks("doc-1", first)
        renders, uploads = len(ok_strategy.calls), len(image_store.upload_calls)

        second = pipeline.parse(ONE_DIAGRAM)
        outcomes = await pipeline.resolve_blocks("doc-1", second)

        assert len(ok_strategy.calls) == renders
        assert len(image_store.upload_calls) == uploads
        assert outcomes[0].from_cache is True
        assert second == first

    @pytest.mark.asyncio
    async def test_upload_failure_degrades(
        self, pipeline_factory, record_store, renderer, failing_image_store
    ):
        """Upload failure leaves the placeholder and writes no cache entry."""
        pipeline = pipeline_factory(record_store, renderer, failing_image_store)
        blocks = pipeline.parse(ONE_DIAGRAM)
        outcomes = await pipeline.resolve_blocks("doc-1", blocks)

        assert outcomes[0].state == DiagramState.DEGRADED_AS_SOURCE
        assert outcomes[0].error_kind == "upload"
        assert len(placeholders(blocks)) == 1
        assert (await record_store.get_document("doc-1")).diagram_images == {}

    @pytest.mark.asyncio
    async def test_render_failure_degrades_and_retries(
        self, pipeline_factory, record_store, failing_renderer, failing_strategy, image_store
    ):
        """A failed render is not cached, so the next run tries again."""
        pipeline = pipeline_factory(record_store, failing_renderer, image_store)

        for _ in range(2):
            blocks = pipeline.parse(ONE_DIAGRAM)
            outcomes = await pipeline.resolve_blocks("doc-1", blocks)
            assert outcomes[0].error_kind == "transient"

        assert len(failing_strategy.calls) == 2
        assert image_store.upload_calls == []

    @pytest.mark.asyncio
    async def test_invalid_diagram_reports_rule(self, pipeline, ok_strategy):
        """Validation failures carry the violated rule and skip rendering."""
        blocks = pipeline.parse("```mermaid\nnot a diagram\n```")
        outcomes = await pipeline.resolve_blocks("doc-1", blocks)

        assert outcomes[0].error_kind == "validation"
        assert outcomes[0].violated_rule == "unknown_diagram_type"
        assert ok_strategy.calls == []

    @pytest.mark.asyncio
    async def test_duplicates_share_one_resolution(self, pipeline, ok_strategy, image_store):
        """Identical sources render once and every occurrence is replaced."""
        markdown = f"```mermaid\n{DIAGRAM}\n```\n\ntext\n\n```mermaid\n{DIAGRAM}\n```"
        blocks = pipeline.parse(markdown)
        outcomes = await pipeline.resolve_blocks("doc-1", blocks)

        assert len(outcomes) == 1
        assert outcomes[0].ordinals == [0, 1]
        assert len(ok_strategy.calls) == 1
        assert len(image_store.upload_calls) == 1
        assert len(images(blocks)) == 2

    @pytest.mark.asyncio
    async def test_mixed_outcomes_keep_order(self, pipeline, record_store):
        """A bad diagram degrades without affecting its neighbours or order."""
        markdown = (
            f"```mermaid\n{DIAGRAM}\n```\n\n"
            "```mermaid\nbogus\n```\n\n"
            "```mermaid\nsequenceDiagram\nA->>B: hi\n```"
        )
        blocks = pipeline.parse(markdown)
        await pipeline.resolve_blocks("doc-1", blocks)

        assert [type(b).__name__ for b in blocks] == ["ImageBlock", "DiagramPlaceholder", "ImageBlock"]
        assert len((await record_store.get_document("doc-1")).diagram_images) == 2

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_resolves(
        self, pipeline_factory, renderer, image_store, failing_record_store
    ):
        """A broken cache never blocks resolution."""
        pipeline = pipeline_factory(failing_record_store, renderer, image_store)
        blocks = pipeline.parse(ONE_DIAGRAM)
        outcomes = await pipeline.resolve_blocks("doc-1", blocks)

        assert outcomes[0].resolved
        assert outcomes[0].cache_stored is False
        assert len(images(blocks)) == 1

    @pytest.mark.asyncio
    async def test_web_profile_reencodes(self, pipeline_factory, record_store, renderer, image_store):
        """The web profile uploads WEBP under a .webp key."""
        pipeline = pipeline_factory(record_store, renderer, image_store, upload_profile=WEB_PROFILE)
        await pipeline.resolve_blocks("doc-1", pipeline.parse(ONE_DIAGRAM))

        key = image_store.upload_calls[0]
        assert key.endswith(".webp")
        assert image_store.content_types[key] == "image/webp"

    @pytest.mark.asyncio
    async def test_no_diagrams(self, pipeline, ok_strategy):
        """Documents without diagrams resolve trivially."""
        assert await pipeline.resolve_blocks("doc-1", pipeline.parse("# Just text")) == []
        assert ok_strategy.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_collaborator_error_degrades(
        self, pipeline_factory, record_store, renderer, image_store
    ):
        """A cache backend that raises degrades that diagram instead of failing the run."""
        cache = AsyncMock()
        cache.lookup.side_effect = RuntimeError("cache backend bug")
        pipeline = pipeline_factory(record_store, renderer, image_store, cache=cache)

        blocks = pipeline.parse(ONE_DIAGRAM)
        outcomes = await pipeline.resolve_blocks("doc-1", blocks)

        assert outcomes[0].state == DiagramState.DEGRADED_AS_SOURCE
        assert outcomes[0].error_kind == "unexpected"
        assert len(placeholders(blocks)) == 1


class TestProcessDiagrams:
    """Test the stored-document resolution pass."""

    @pytest.mark.asyncio
    async def test_persists_rewritten_content(self, pipeline, record_store):
        """Resolved fences are replaced in the stored markdown."""
        record_store.put(DocumentRecord(id="doc-1", title="T", content=ONE_DIAGRAM))
        report = await pipeline.process_diagrams("doc-1")

        stored = (await record_store.get_document("doc-1")).content
        assert report.resolved == 1
        assert "```mermaid" not in stored
        assert "![Flowchart Diagram](https://cdn.test/" in stored
        assert report.to_dict()["total"] == 1

    @pytest.mark.asyncio
    async def test_degraded_content_unchanged(self, pipeline_factory, record_store, failing_renderer, image_store):
        """Nothing is written back when no diagram resolves."""
        record_store.put(DocumentRecord(id="doc-1", content=ONE_DIAGRAM))
        pipeline = pipeline_factory(record_store, failing_renderer, image_store)

        report = await pipeline.process_diagrams("doc-1")

        assert report.degraded == 1
        assert (await record_store.get_document("doc-1")).content == ONE_DIAGRAM

    @pytest.mark.asyncio
    async def test_missing_document(self, pipeline):
        """Unknown ids raise DocumentNotFoundError."""
        with pytest.raises(DocumentNotFoundError):
            await pipeline.process_diagrams("ghost")


class TestProcessDocument:
    """Test artifact assembly end to end."""

    @pytest.mark.asyncio
    async def test_docx_embeds_diagram(self, pipeline, record_store):
        """The stored article becomes a DOCX with the rendered diagram."""
        record_store.put(DocumentRecord(id="doc-1", title="My Article", content=ONE_DIAGRAM))
        output = await pipeline.process_document("doc-1", "docx")

        doc = Document(io.BytesIO(output.content))
        assert output.filename == "my-article.docx"
        assert output.output_format == OutputFormat.DOCX
        assert len(doc.inline_shapes) == 1
        assert doc.paragraphs[0].text == "My Article"

    @pytest.mark.asyncio
    async def test_pptx_from_supplied_markdown(self, pipeline, sample_markdown):
        """Carousel export publishes the given markdown under the document scope."""
        output = await pipeline.process_document(
            "doc-1", OutputFormat.PPTX, markdown=sample_markdown, theme="modern", title="Deck",
        )
        prs = Presentation(io.BytesIO(output.content))

        assert output.filename == "deck.pptx"
        assert len(prs.slides) == 4  # title + 3 content slides
        assert output.report.resolved == 1

    @pytest.mark.asyncio
    async def test_pptx_default_filename(self, pipeline):
        """Without a title the deck gets the default name."""
        output = await pipeline.process_document("doc-1", "pptx", markdown="## A\nx")
        assert output.filename == "carousel-presentation.pptx"

    @pytest.mark.asyncio
    async def test_markdown_output(self, pipeline, record_store):
        """Markdown output carries image references instead of fences."""
        record_store.put(DocumentRecord(id="doc-1", content=ONE_DIAGRAM))
        output = await pipeline.process_document("doc-1", "md")

        text = output.content.decode("utf-8")
        assert "![Flowchart Diagram](https://cdn.test/" in text
        assert output.filename == "article.md"
        assert (await record_store.get_document("doc-1")).content == ONE_DIAGRAM

    @pytest.mark.parametrize("fmt", ["docx", "pptx", "md"])
    @pytest.mark.asyncio
    async def test_failing_renders_still_publish(
        self, fmt, pipeline_factory, record_store, failing_renderer, image_store, sample_markdown
    ):
        """Every format is produced when every render fails."""
        pipeline = pipeline_factory(record_store, failing_renderer, image_store)
        output = await pipeline.process_document("doc-1", fmt, markdown=sample_markdown)

        assert output.content
        assert output.report.degraded == 1
        if fmt == "md":
            assert "```mermaid" in output.content.decode("utf-8")
        else:
            assert output.content[:2] == b"PK"

    @pytest.mark.asyncio
    async def test_persist_content(self, pipeline, record_store):
        """persist_content writes the rewritten markdown back."""
        record_store.put(DocumentRecord(id="doc-1", content=ONE_DIAGRAM))
        await pipeline.process_document("doc-1", "docx", persist_content=True)
        assert "```mermaid" not in (await record_store.get_document("doc-1")).content

    @pytest.mark.asyncio
    async def test_missing_document(self, pipeline):
        """Publishing stored content for an unknown id is a not-found error."""
        with pytest.raises(DocumentNotFoundError):
            await pipeline.process_document("ghost", "docx")

    @pytest.mark.asyncio
    async def test_record_store_down(self, pipeline_factory, failing_record_store, renderer, image_store):
        """A failing initial lookup is surfaced as unavailable."""
        pipeline = pipeline_factory(failing_record_store, renderer, image_store)
        with pytest.raises(RecordStoreUnavailableError):
            await pipeline.process_document("doc-1", "docx")

    @pytest.mark.asyncio
    async def test_invalid_requests(self, pipeline):
        """Empty ids and unknown formats are rejected before any work."""
        with pytest.raises(InvalidRequestError):
            await pipeline.process_document("", "docx")
        with pytest.raises(InvalidRequestError):
            await pipeline.process_document("doc-1", "pdf")

    @pytest.mark.asyncio
    async def test_separate_documents_separate_caches(self, pipeline, record_store, ok_strategy):
        """Cache entries are scoped per document."""
        record_store.put(DocumentRecord(id="doc-2"))
        await pipeline.process_document("doc-1", "md", markdown=ONE_DIAGRAM)
        await pipeline.process_document("doc-2", "md", markdown=ONE_DIAGRAM)

        assert len(ok_strategy.calls) == 2
        cache = DiagramCache(record_store)
        assert (await cache.get_all("doc-1")).keys() == (await cache.get_all("doc-2")).keys()
        assert (await cache.get_all("doc-1")) != (await cache.get_all("doc-2"))
