#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Publishing Pipeline - resolve diagrams, then assemble one artifact.

Per diagram (independent, run concurrently under a semaphore):

    Pending ──lookup──→ CacheHit ────────────────────────────────→ Resolved
       │
       └─→ CacheMiss → Rendering ─fail─→ DegradedAsSource
                          │ ok
                          ↓
                       Uploading ─fail─→ DegradedAsSource
                          │ ok
                          ↓
                       CacheStoring (failure only logged) ──────→ Resolved

Resolution mutates the parsed block list in place, so document order is
never reconstructed. A degraded diagram has no cache entry and is retried
on the next run.
"""

import asyncio
import time
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from config.constants import (
    DIAGRAM_CACHE_NAMESPACE, DIAGRAM_FENCE_LANGUAGE, RENDER_CONCURRENCY,
    SLIDE_BOUNDARY_LEVEL, DEFAULT_THEME, DECK_FOOTER_TEXT,
    DEFAULT_DECK_FILENAME, DEFAULT_DOCUMENT_FILENAME,
)
from config.logging_config import get_logger

from .diagrams.cache import DiagramCacheBackend, build_diagram_cache
from .diagrams.converter import (
    ConversionProfile, WEB_PROFILE, convert_image, extension_for_mime, get_profile,
)
from .diagrams.errors import (
    ImageConversionError, UploadError, InvalidRequestError,
    RecordStoreUnavailableError, DocumentNotFoundError,
)
from .diagrams.hasher import compute_diagram_key, diagram_label
from .diagrams.renderer import DiagramRenderer, RenderResult, build_renderer
from .export.docx_assembler import DocxAssembler
from .export.formats import OutputFormat, parse_format, slugify_filename
from .export.pptx_assembler import DeckTheme, PptxAssembler
from .markdown.blocks import Block, DiagramPlaceholder, ImageBlock
from .markdown.rewriter import replace_diagrams_with_images
from .markdown.walker import MarkdownBlockWalker
from .storage.image_store import ImageStore, build_image_store, diagram_upload_key
from .storage.record_store import DocumentRecord, RecordStore, SQLiteRecordStore

logger = get_logger(__name__)


class DiagramState(Enum):
    """Lifecycle of one diagram placeholder during a pipeline run."""
    PENDING = "pending"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    RENDERING = "rendering"
    RENDER_OK = "render_ok"
    UPLOADING = "uploading"
    CACHE_STORING = "cache_storing"
    RESOLVED = "resolved"
    DEGRADED_AS_SOURCE = "degraded_as_source"


@dataclass
class DiagramOutcome:
    """Terminal state of one distinct diagram (keyed by content)."""
    cache_key: str
    state: DiagramState = DiagramState.PENDING
    url: Optional[str] = None
    from_cache: bool = False
    cache_stored: bool = False
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    violated_rule: Optional[str] = None
    ordinals: List[int] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def resolved(self) -> bool:
        return self.state == DiagramState.RESOLVED

    def to_dict(self) -> Dict:
        return {
            "cache_key": self.cache_key,
            "state": self.state.value,
            "url": self.url,
            "from_cache": self.from_cache,
            "cache_stored": self.cache_stored,
            "error_kind": self.error_kind,
            "error_message": self.error_message,
            "violated_rule": self.violated_rule,
            "ordinals": list(self.ordinals),
        }


@dataclass
class ResolutionReport:
    """Counts for one resolution pass over a document."""
    document_id: str
    outcomes: List[DiagramOutcome] = field(default_factory=list)
    content: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def resolved(self) -> int:
        return sum(1 for o in self.outcomes if o.resolved)

    @property
    def cached(self) -> int:
        return sum(1 for o in self.outcomes if o.from_cache)

    @property
    def degraded(self) -> int:
        return sum(1 for o in self.outcomes if o.state == DiagramState.DEGRADED_AS_SOURCE)

    @property
    def url_by_key(self) -> Dict[str, str]:
        return {o.cache_key: o.url for o in self.outcomes if o.resolved and o.url}

    def to_dict(self) -> Dict:
        return {
            "document_id": self.document_id,
            "total": self.total,
            "resolved": self.resolved,
            "cached": self.cached,
            "degraded": self.degraded,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class PipelineOutput:
    """Assembled artifact plus what happened to each diagram."""
    content: bytes
    content_type: str
    filename: str
    output_format: OutputFormat
    report: ResolutionReport


class PublishingPipeline:
    """
    Orchestrates walker → diagram resolution → assembler.

    Usage:
        pipeline = PublishingPipeline(record_store, cache, renderer, image_store)
        output = await pipeline.process_document("42", OutputFormat.DOCX)
        Path(output.filename).write_bytes(output.content)
    """

    def __init__(
        self,
        record_store: RecordStore,
        cache: DiagramCacheBackend,
        renderer: DiagramRenderer,
        image_store: ImageStore,
        upload_profile: Optional[ConversionProfile] = WEB_PROFILE,
        max_concurrency: int = RENDER_CONCURRENCY,
        boundary_level: int = SLIDE_BOUNDARY_LEVEL,
        default_theme: str = DEFAULT_THEME,
        include_title_slide: bool = True,
        footer_text: str = DECK_FOOTER_TEXT,
        diagram_language: str = DIAGRAM_FENCE_LANGUAGE,
        namespace: str = DIAGRAM_CACHE_NAMESPACE,
    ):
        """
        Args:
            upload_profile: Re-encoding applied before upload; None uploads
                rendered bytes as-is
            max_concurrency: Diagrams resolved in parallel per document
        """
        self.record_store = record_store
        self.cache = cache
        self.renderer = renderer
        self.image_store = image_store
        self.upload_profile = upload_profile
        self.max_concurrency = max(1, max_concurrency)
        self.boundary_level = boundary_level
        self.default_theme = default_theme
        self.include_title_slide = include_title_slide
        self.footer_text = footer_text
        self.diagram_language = diagram_language
        self.namespace = namespace

    # ------------------------------------------------------------------
    # Diagram resolution
    # ------------------------------------------------------------------

    def parse(self, markdown_text: str) -> List[Block]:
        return MarkdownBlockWalker(self.diagram_language).parse(markdown_text)

    async def resolve_blocks(self, document_id: str, blocks: List[Block]) -> List[DiagramOutcome]:
        """
        Resolve every DiagramPlaceholder in ``blocks`` in place.

        Resolved placeholders are replaced by ImageBlocks at the same
        index; degraded ones stay as placeholders. Identical sources share
        one resolution.
        """
        positions: Dict[str, List[int]] = {}
        sources: Dict[str, str] = {}
        outcomes: Dict[str, DiagramOutcome] = {}

        for index, block in enumerate(blocks):
            if isinstance(block, DiagramPlaceholder) and not block.is_resolved:
                key = compute_diagram_key(block.source_code, self.namespace)
                positions.setdefault(key, []).append(index)
                sources.setdefault(key, block.source_code)
                outcomes.setdefault(key, DiagramOutcome(cache_key=key)).ordinals.append(
                    block.ordinal_index
                )

        if not sources:
            return []

        logger.info(
            f"Resolving {len(sources)} distinct diagrams for document {document_id} "
            f"(concurrency {self.max_concurrency})"
        )
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def resolve_single(key: str) -> DiagramOutcome:
            async with semaphore:
                start_time = time.time()
                outcome = outcomes[key]
                await self._resolve_diagram(document_id, sources[key], outcome)
                outcome.duration_ms = (time.time() - start_time) * 1000
                return outcome

        results = await asyncio.gather(
            *(resolve_single(key) for key in sources), return_exceptions=True
        )

        for key, result in zip(sources, results):
            if isinstance(result, Exception):
                # Collaborator bug; degrade this diagram only
                logger.error(f"Diagram {key} raised unexpectedly: {result}")
                outcome = outcomes[key]
                outcome.state = DiagramState.DEGRADED_AS_SOURCE
                outcome.error_kind = "unexpected"
                outcome.error_message = str(result)

        for key, outcome in outcomes.items():
            if not outcome.resolved:
                continue
            alt_text = diagram_label(sources[key])
            for index in positions[key]:
                blocks[index] = ImageBlock(url=outcome.url, alt_text=alt_text, diagram_key=key)

        ordered = list(outcomes.values())
        resolved = sum(1 for o in ordered if o.resolved)
        logger.info(
            f"Diagram resolution complete for {document_id}: {resolved}/{len(ordered)} resolved, "
            f"{sum(1 for o in ordered if o.from_cache)} from cache"
        )
        return ordered

    async def _resolve_diagram(self, document_id: str, source_code: str, outcome: DiagramOutcome):
        key = outcome.cache_key

        cached_url = await self.cache.lookup(document_id, key)
        if cached_url:
            outcome.state = DiagramState.RESOLVED
            outcome.url = cached_url
            outcome.from_cache = True
            return

        outcome.state = DiagramState.RENDERING
        result = await self.renderer.render(source_code)
        if not result.success:
            self._degrade(outcome, result.error_kind.value if result.error_kind else "render",
                          result.error_message)
            if result.violated_rule is not None:
                outcome.violated_rule = result.violated_rule.value
            return

        outcome.state = DiagramState.UPLOADING
        try:
            url = await self._upload(document_id, key, result)
        except UploadError as e:
            logger.error(f"Upload failed for diagram {document_id}/{key}; showing source: {e}")
            self._degrade(outcome, "upload", str(e))
            return

        outcome.state = DiagramState.CACHE_STORING
        outcome.cache_stored = await self.cache.store(document_id, key, url)
        if not outcome.cache_stored:
            logger.warning(f"Diagram {key} resolved but not cached; next run will re-render")

        outcome.state = DiagramState.RESOLVED
        outcome.url = url

    def _degrade(self, outcome: DiagramOutcome, kind: str, message: Optional[str]):
        outcome.state = DiagramState.DEGRADED_AS_SOURCE
        outcome.error_kind = kind
        outcome.error_message = message

    async def _upload(self, document_id: str, key: str, result: RenderResult) -> str:
        data, mime_type = result.image_bytes, result.mime_type or "image/png"

        if self.upload_profile is not None:
            try:
                data, mime_type = await asyncio.to_thread(
                    convert_image, data, mime_type, self.upload_profile
                )
            except ImageConversionError as e:
                logger.warning(f"Conversion failed for {key}, uploading rendered bytes: {e}")
                data, mime_type = result.image_bytes, result.mime_type or "image/png"

        upload_key = diagram_upload_key(document_id, key, extension_for_mime(mime_type))
        return await self.image_store.upload(data, mime_type, upload_key)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def _load_document(self, document_id: str, required: bool = True) -> Optional[DocumentRecord]:
        try:
            record = await self.record_store.get_document(document_id)
        except Exception as e:
            raise RecordStoreUnavailableError(
                f"Record store unavailable while loading {document_id}: {e}"
            ) from e
        if record is None and required:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return record

    async def process_diagrams(self, document_id: str, persist_content: bool = True) -> ResolutionReport:
        """
        Resolve a stored document's diagrams and optionally write the
        rewritten markdown (fences replaced by image references) back.
        """
        if not document_id:
            raise InvalidRequestError("Document id is required")

        record = await self._load_document(document_id)
        blocks = self.parse(record.content)
        report = ResolutionReport(
            document_id=document_id,
            outcomes=await self.resolve_blocks(document_id, blocks),
        )
        report.content = replace_diagrams_with_images(
            record.content, report.url_by_key, self.diagram_language, self.namespace
        )

        if persist_content and report.content != record.content:
            try:
                await self.record_store.update_document(document_id, {"content": report.content})
            except Exception as e:
                logger.warning(f"Could not persist rewritten content for {document_id}: {e}")

        return report

    async def process_document(
        self,
        document_id: str,
        target_format,
        markdown: Optional[str] = None,
        theme: Optional[str] = None,
        title: Optional[str] = None,
        persist_content: bool = False,
    ) -> PipelineOutput:
        """
        Parse, resolve diagrams, and assemble one artifact.

        Args:
            document_id: Cache scope; also the record to read when markdown
                is not supplied
            target_format: OutputFormat or its name ("docx", "pptx", "md")
            markdown: Content to publish instead of the stored record content
            theme: Deck theme name (pptx only)
            title: Artifact title; defaults to the record title when the
                stored content is published
            persist_content: Write the rewritten markdown back to the record

        Raises:
            InvalidRequestError: Missing document id or unknown format
            RecordStoreUnavailableError: The initiating lookup failed
            DocumentNotFoundError: No markdown given and no stored record
        """
        if not document_id:
            raise InvalidRequestError("Document id is required")
        output_format = parse_format(target_format)

        record = await self._load_document(document_id, required=markdown is None)
        content = markdown if markdown is not None else record.content
        if title is None and markdown is None:
            title = record.title or None

        blocks = self.parse(content)
        report = ResolutionReport(
            document_id=document_id,
            outcomes=await self.resolve_blocks(document_id, blocks),
        )

        if output_format == OutputFormat.MARKDOWN or persist_content:
            report.content = replace_diagrams_with_images(
                content, report.url_by_key, self.diagram_language, self.namespace
            )

        if persist_content and record is not None and report.content != record.content:
            try:
                await self.record_store.update_document(document_id, {"content": report.content})
            except Exception as e:
                logger.warning(f"Could not persist rewritten content for {document_id}: {e}")

        data = await self._assemble(output_format, blocks, report, theme, title)
        default_name = DEFAULT_DECK_FILENAME if output_format == OutputFormat.PPTX else DEFAULT_DOCUMENT_FILENAME
        filename = f"{slugify_filename(title, default_name)}.{output_format.extension}"

        logger.info(
            f"Document {document_id} published as {output_format.value}: "
            f"{len(data)} bytes, {report.degraded} degraded diagrams"
        )
        return PipelineOutput(
            content=data,
            content_type=output_format.content_type,
            filename=filename,
            output_format=output_format,
            report=report,
        )

    async def _assemble(
        self,
        output_format: OutputFormat,
        blocks: List[Block],
        report: ResolutionReport,
        theme: Optional[str],
        title: Optional[str],
    ) -> bytes:
        if output_format == OutputFormat.MARKDOWN:
            return report.content.encode("utf-8")

        if output_format == OutputFormat.DOCX:
            assembler = DocxAssembler(image_fetcher=self.image_store.fetch)
            return await assembler.assemble(blocks, title=title or "")

        assembler = PptxAssembler(
            image_fetcher=self.image_store.fetch,
            boundary_level=self.boundary_level,
            footer_text=self.footer_text,
        )
        return await assembler.assemble(
            blocks,
            theme=DeckTheme.from_name(theme or self.default_theme),
            title=title,
            include_title_slide=self.include_title_slide,
        )


def build_pipeline(settings, record_store: Optional[RecordStore] = None, transport=None) -> PublishingPipeline:
    """Wire a pipeline from settings; SQLite record store unless one is given."""
    if record_store is None:
        record_store = SQLiteRecordStore(settings.database_path)
    profile_name = settings.upload_profile
    return PublishingPipeline(
        record_store=record_store,
        cache=build_diagram_cache(settings, record_store),
        renderer=build_renderer(settings, transport=transport),
        image_store=build_image_store(settings),
        upload_profile=None if profile_name == "none" else get_profile(profile_name),
        max_concurrency=settings.render_concurrency,
        boundary_level=settings.slide_boundary_level,
        default_theme=settings.default_theme,
        include_title_slide=settings.include_title_slide,
        footer_text=settings.deck_footer_text,
    )
