#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
DOCX Assembler - emit a Word document from the markdown block stream.

Uses python-docx. Supports:
- Headings (level 1 largest) via built-in Heading styles
- Paragraphs with bold / italic / inline code / hyperlink runs
- Bulleted and numbered lists, nested by level
- Tables with shaded bold header, equal column widths, borders on every cell
- Code blocks as one shaded monospace paragraph with explicit line breaks
- Images and resolved diagrams embedded at a fixed width

Image bytes are fetched up front (concurrently); the document itself is
built synchronously. A block that fails to render is logged and skipped.
"""

import io
from typing import Dict, List, Optional

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.opc.constants import RELATIONSHIP_TYPE as RT
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Inches, Pt, RGBColor

from config.constants import (
    DOCX_IMAGE_WIDTH_INCHES, DOCX_CODE_FONT, DOCX_CODE_FONT_SIZE,
    DOCX_CODE_SHADING, DOCX_TABLE_HEADER_SHADING, DOCX_TABLE_BORDER_COLOR,
    DOCX_LINK_COLOR,
)
from config.logging_config import get_logger
from core.diagrams.hasher import diagram_label
from core.markdown.blocks import (
    Block, Heading, Paragraph, ListBlock, TableBlock, CodeBlock,
    ImageBlock, DiagramPlaceholder, InlineRun,
)
from core.markdown.inline import tokenize_inline
from core.storage.image_store import fetch_image_bytes

from .images import ImageFetcher, image_urls_in, prefetch_images

logger = get_logger(__name__)

# Usable width of a default Letter page with 1in margins
BODY_WIDTH_INCHES = 6.5


class DocxAssembler:
    """
    Assemble blocks into DOCX bytes.

    Usage:
        assembler = DocxAssembler(image_fetcher=image_store.fetch)
        data = await assembler.assemble(blocks, title="My Article")
    """

    def __init__(
        self,
        image_fetcher: Optional[ImageFetcher] = None,
        image_width_inches: float = DOCX_IMAGE_WIDTH_INCHES,
    ):
        self.image_fetcher = image_fetcher or fetch_image_bytes
        self.image_width_inches = image_width_inches
        self.doc = None
        self._images: Dict[str, Optional[bytes]] = {}

    async def assemble(self, blocks: List[Block], title: str = "") -> bytes:
        """Fetch images, then build the document. Never raises for well-formed blocks."""
        images = await prefetch_images(image_urls_in(blocks), self.image_fetcher)
        return self.build(blocks, title, images)

    def build(self, blocks: List[Block], title: str, images: Dict[str, Optional[bytes]]) -> bytes:
        """Build synchronously from already-fetched image bytes."""
        self.doc = Document()
        self._images = images
        self._setup_styles()

        if title:
            self.doc.core_properties.title = title
            self.doc.add_heading(title, level=0)

        for block in blocks:
            try:
                self._render_block(block)
            except Exception as e:
                logger.warning(f"Failed to render {block.block_type.value} block: {e}")

        buffer = io.BytesIO()
        self.doc.save(buffer)
        logger.info(f"DOCX assembled: {len(blocks)} blocks, {len(buffer.getvalue())} bytes")
        return buffer.getvalue()

    def _setup_styles(self):
        normal_style = self.doc.styles["Normal"]
        normal_style.font.size = Pt(11)
        normal_style.paragraph_format.space_after = Pt(6)
        normal_style.paragraph_format.line_spacing = 1.15

    def _render_block(self, block: Block):
        if isinstance(block, Heading):
            self._add_heading(block)
        elif isinstance(block, Paragraph):
            self._add_paragraph(block)
        elif isinstance(block, ListBlock):
            self._add_list(block)
        elif isinstance(block, TableBlock):
            self._add_table(block)
        elif isinstance(block, CodeBlock):
            self._add_code_block(block.lines)
        elif isinstance(block, ImageBlock):
            self._add_image(block.url, block.alt_text)
        elif isinstance(block, DiagramPlaceholder):
            if block.is_resolved:
                self._add_image(block.resolved_image_url, diagram_label(block.source_code))
            else:
                self._add_code_block(block.as_code_block().lines)
        else:
            logger.warning(f"Unknown block type: {type(block).__name__}")

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def _add_heading(self, block: Heading):
        self.doc.add_heading(block.text, level=max(1, min(block.level, 9)))

    def _add_paragraph(self, block: Paragraph):
        para = self.doc.add_paragraph()
        self._add_runs(para, block.runs)

    def _add_runs(self, para, runs: List[InlineRun], bold: Optional[bool] = None, size: Optional[Pt] = None):
        for inline in runs:
            if inline.link:
                self._add_hyperlink(para, inline)
                continue
            run = para.add_run(inline.text)
            run.bold = True if bold else (inline.bold or None)
            run.italic = inline.italic or None
            if inline.code:
                run.font.name = DOCX_CODE_FONT
            if size:
                run.font.size = size

    def _add_hyperlink(self, para, inline: InlineRun):
        """External hyperlink run; python-docx has no public API for this."""
        r_id = para.part.relate_to(inline.link, RT.HYPERLINK, is_external=True)

        hyperlink = OxmlElement('w:hyperlink')
        hyperlink.set(qn('r:id'), r_id)

        new_run = OxmlElement('w:r')
        rPr = OxmlElement('w:rPr')
        # CT_RPr child order: b, i, color, u
        if inline.bold:
            rPr.append(OxmlElement('w:b'))
        if inline.italic:
            rPr.append(OxmlElement('w:i'))
        color = OxmlElement('w:color')
        color.set(qn('w:val'), DOCX_LINK_COLOR)
        rPr.append(color)
        underline = OxmlElement('w:u')
        underline.set(qn('w:val'), 'single')
        rPr.append(underline)
        new_run.append(rPr)

        text = OxmlElement('w:t')
        text.set(qn('xml:space'), 'preserve')
        text.text = inline.text
        new_run.append(text)

        hyperlink.append(new_run)
        para._p.append(hyperlink)

    def _list_style(self, ordered: bool, level: int) -> str:
        base = 'List Number' if ordered else 'List Bullet'
        if level <= 0:
            return base
        style = f"{base} {min(level + 1, 3)}"
        return style if style in [s.name for s in self.doc.styles] else base

    def _add_list(self, block: ListBlock):
        for item in block.items:
            para = self.doc.add_paragraph(style=self._list_style(block.ordered, item.level))
            self._add_runs(para, item.runs)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _add_table(self, block: TableBlock):
        num_cols = block.column_count
        if num_cols == 0:
            # Degenerate input still yields a table
            self.doc.add_table(rows=0, cols=1)
            return

        table = self.doc.add_table(rows=len(block.rows), cols=num_cols)
        table.style = 'Table Grid'
        table.autofit = False
        col_width = Inches(BODY_WIDTH_INCHES / num_cols)

        for row_idx, row_data in enumerate(block.rows):
            is_header = block.has_header_row and row_idx == 0
            padded = row_data + [""] * (num_cols - len(row_data))
            for col_idx, cell_text in enumerate(padded):
                cell = table.rows[row_idx].cells[col_idx]
                cell.width = col_width
                para = cell.paragraphs[0]
                self._add_runs(para, tokenize_inline(cell_text), bold=is_header, size=Pt(10))
                self._set_cell_borders(cell)
                if is_header:
                    self._set_cell_shading(cell, DOCX_TABLE_HEADER_SHADING)

        # Space after table
        self.doc.add_paragraph()

    def _set_cell_shading(self, cell, fill: str):
        shading = OxmlElement('w:shd')
        shading.set(qn('w:val'), 'clear')
        shading.set(qn('w:color'), 'auto')
        shading.set(qn('w:fill'), fill)
        cell._tc.get_or_add_tcPr().append(shading)

    def _set_cell_borders(self, cell):
        tcPr = cell._tc.get_or_add_tcPr()
        borders = OxmlElement('w:tcBorders')
        for edge in ('top', 'left', 'bottom', 'right'):
            element = OxmlElement(f'w:{edge}')
            element.set(qn('w:val'), 'single')
            element.set(qn('w:sz'), '4')  # eighths of a point
            element.set(qn('w:space'), '0')
            element.set(qn('w:color'), DOCX_TABLE_BORDER_COLOR)
            borders.append(element)
        # tcBorders precedes shd in CT_TcPr
        existing_shading = tcPr.find(qn('w:shd'))
        if existing_shading is not None:
            existing_shading.addprevious(borders)
        else:
            tcPr.append(borders)

    # ------------------------------------------------------------------
    # Code and images
    # ------------------------------------------------------------------

    def _add_code_block(self, lines: List[str]):
        """One shaded paragraph; lines joined with explicit breaks."""
        para = self.doc.add_paragraph()
        # shd goes in first; later pPr setters insert after it in schema order
        shading = OxmlElement('w:shd')
        shading.set(qn('w:val'), 'clear')
        shading.set(qn('w:color'), 'auto')
        shading.set(qn('w:fill'), DOCX_CODE_SHADING)
        para._p.get_or_add_pPr().append(shading)
        para.alignment = WD_ALIGN_PARAGRAPH.LEFT
        para.paragraph_format.space_before = Pt(6)
        para.paragraph_format.space_after = Pt(6)

        for index, line in enumerate(lines):
            run = para.add_run(line)
            run.font.name = DOCX_CODE_FONT
            run.font.size = Pt(DOCX_CODE_FONT_SIZE)
            if index < len(lines) - 1:
                run.add_break()

    def _add_image(self, url: str, alt_text: str = ""):
        data = self._images.get(url)
        if not data:
            logger.warning(f"Image not available, skipped: {alt_text or url}")
            return

        para = self.doc.add_paragraph()
        para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = para.add_run()
        run.add_picture(io.BytesIO(data), width=Inches(self.image_width_inches))

        if alt_text:
            caption = self.doc.add_paragraph()
            caption.alignment = WD_ALIGN_PARAGRAPH.CENTER
            caption_run = caption.add_run(alt_text)
            caption_run.italic = True
            caption_run.font.size = Pt(9)
            caption_run.font.color.rgb = RGBColor(128, 128, 128)
