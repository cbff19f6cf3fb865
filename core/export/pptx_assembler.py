#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PPTX Assembler - segment the block stream into slides and emit a deck.

Uses python-pptx. Layout (16:9, 10in x 5.625in):

    ┌──────────────────────────────────────────────┐
    │ Heading (32pt)                                │
    │ text bands (y from 1.5in)  │ diagram (45% w)  │
    │  sub-heading / paragraph   │                  │
    │  bullets / table / code    │                  │
    │                                          N    │
    └──────────────────────────────────────────────┘

Without a diagram the text spans 90% of the width. When a diagram is
pending and the text estimate passes 4.5in, remaining text blocks for the
slide are dropped. Only the first diagram of a slide is embedded.
"""

import io
import re
from enum import Enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.oxml.ns import qn
from pptx.oxml.xmlchemy import OxmlElement
from pptx.util import Emu, Inches, Pt

from config.constants import (
    SLIDE_WIDTH_INCHES, SLIDE_HEIGHT_INCHES, SLIDE_FONT, SLIDE_CODE_FONT,
    SLIDE_BODY_TOP, SLIDE_CONTENT_BUDGET, SLIDE_TEXT_WIDTH_RATIO,
    SLIDE_TEXT_WIDTH_RATIO_WITH_DIAGRAM, SLIDE_BOUNDARY_LEVEL, DECK_FOOTER_TEXT,
)
from config.logging_config import get_logger
from core.diagrams.converter import image_size
from core.diagrams.errors import ImageConversionError
from core.markdown.blocks import (
    Block, Heading, Paragraph, ListBlock, TableBlock, CodeBlock,
    ImageBlock, DiagramPlaceholder, SlideGroup,
)
from core.markdown.inline import strip_markdown
from core.storage.image_store import fetch_image_bytes

from .images import ImageFetcher, block_image_url, prefetch_images

logger = get_logger(__name__)


# ============================================================================
# Themes
# ============================================================================

@dataclass(frozen=True)
class ThemePalette:
    """Hex colours (no #) applied uniformly to a deck."""
    background: str
    text: str
    subtitle: str
    code_background: str
    table_header: str
    table_border: str


class DeckTheme(Enum):
    """Built-in deck themes."""
    CLASSIC = "classic"
    ACADEMIC = "academic"
    MODERN = "modern"
    ELEGANT = "elegant"
    PROFESSIONAL = "professional"

    @property
    def palette(self) -> ThemePalette:
        return THEME_PALETTES[self]

    @classmethod
    def from_name(cls, name: Optional[str]) -> "DeckTheme":
        if not name:
            return cls.CLASSIC
        try:
            return cls(name.lower())
        except ValueError:
            logger.warning(f"Unknown theme '{name}', using classic")
            return cls.CLASSIC


THEME_PALETTES: Dict[DeckTheme, ThemePalette] = {
    DeckTheme.CLASSIC: ThemePalette("FFFFFF", "1F2937", "6B7280", "F3F4F6", "F3F4F6", "D1D5DB"),
    DeckTheme.ACADEMIC: ThemePalette("F5F7FA", "1F2937", "6B7280", "FFFFFF", "FFFFFF", "D1D5DB"),
    DeckTheme.MODERN: ThemePalette("E0F2FE", "1F2937", "6B7280", "FFFFFF", "FFFFFF", "BFDBFE"),
    DeckTheme.ELEGANT: ThemePalette("F0F9FF", "1F2937", "3B82F6", "FFFFFF", "DBEAFE", "93C5FD"),
    DeckTheme.PROFESSIONAL: ThemePalette("0F172A", "FFFFFF", "CBD5E1", "1E293B", "334155", "475569"),
}


def to_rgb(value: str) -> RGBColor:
    return RGBColor.from_string(value.lstrip("#").upper())


# ============================================================================
# Segmentation
# ============================================================================

_SLIDE_PREFIX = re.compile(r'^Slide\s+\d+\s*[:.\-–—]\s*(?P<rest>.+)$', re.IGNORECASE)


def strip_slide_prefix(heading: str) -> str:
    """
    Drop a leading "Slide N:" label when a real title follows it.

    Examples:
        >>> strip_slide_prefix("Slide 3: Results")
        'Results'
        >>> strip_slide_prefix("Slide 1")
        'Slide 1'
    """
    match = _SLIDE_PREFIX.match(heading.strip())
    if match and match.group('rest').strip():
        return match.group('rest').strip()
    return heading.strip()


def segment_slides(blocks: List[Block], boundary_level: int = SLIDE_BOUNDARY_LEVEL) -> List[SlideGroup]:
    """
    Group blocks into slides at headings of ``boundary_level``.

    With no boundary heading anywhere, the whole stream is one group.
    Blocks before the first boundary form their own leading group.
    """
    has_boundary = any(
        isinstance(block, Heading) and block.level == boundary_level for block in blocks
    )
    if not has_boundary:
        if not blocks:
            return []
        return [_finalize_group(SlideGroup(heading="Slide 1", body_blocks=list(blocks)))]

    groups: List[SlideGroup] = []
    preamble: List[Block] = []
    current: Optional[SlideGroup] = None

    for block in blocks:
        if isinstance(block, Heading) and block.level == boundary_level:
            if current is not None:
                groups.append(current)
            elif preamble:
                groups.append(_preamble_group(preamble))
            title = strip_slide_prefix(block.text) or f"Slide {len(groups) + 1}"
            current = SlideGroup(heading=title)
        elif current is None:
            preamble.append(block)
        else:
            current.body_blocks.append(block)

    if current is not None:
        groups.append(current)

    return [_finalize_group(group) for group in groups]


def _preamble_group(blocks: List[Block]) -> SlideGroup:
    if isinstance(blocks[0], Heading):
        return SlideGroup(heading=blocks[0].text, body_blocks=list(blocks[1:]))
    return SlideGroup(heading="Slide 1", body_blocks=list(blocks))


def _finalize_group(group: SlideGroup) -> SlideGroup:
    group.diagram_urls = [
        url for url in (block_image_url(block) for block in group.body_blocks) if url
    ]
    return group


def _text_blocks(group: SlideGroup) -> List[Block]:
    """Body blocks drawn as text bands; images and diagrams are placed separately."""
    return [
        block for block in group.body_blocks
        if not isinstance(block, (ImageBlock, DiagramPlaceholder))
    ]


# ============================================================================
# Assembler
# ============================================================================

class PptxAssembler:
    """
    Assemble blocks into PPTX bytes.

    Usage:
        assembler = PptxAssembler(image_fetcher=image_store.fetch)
        data = await assembler.assemble(blocks, DeckTheme.MODERN, title="Deck")
    """

    def __init__(
        self,
        image_fetcher: Optional[ImageFetcher] = None,
        boundary_level: int = SLIDE_BOUNDARY_LEVEL,
        footer_text: str = DECK_FOOTER_TEXT,
    ):
        self.image_fetcher = image_fetcher or fetch_image_bytes
        self.boundary_level = boundary_level
        self.footer_text = footer_text
        self.prs = None
        self.palette: ThemePalette = DeckTheme.CLASSIC.palette
        self._images: Dict[str, Optional[bytes]] = {}

    async def assemble(
        self,
        blocks: List[Block],
        theme: DeckTheme = DeckTheme.CLASSIC,
        title: Optional[str] = None,
        per_slide_diagram_urls: Optional[Dict[int, List[str]]] = None,
        include_title_slide: bool = True,
    ) -> bytes:
        """
        Build a deck. Never raises for well-formed blocks.

        Args:
            blocks: Resolved block stream
            theme: Palette selector
            title: Deck title; adds a title slide when include_title_slide is set
            per_slide_diagram_urls: Content-slide index → diagram URLs,
                overriding the images found in that slide's blocks
        """
        groups = segment_slides(blocks, self.boundary_level)
        if per_slide_diagram_urls:
            for index, urls in per_slide_diagram_urls.items():
                if 0 <= index < len(groups):
                    groups[index].diagram_urls = list(urls)

        first_diagrams = [group.diagram_urls[0] for group in groups if group.diagram_urls]
        images = await prefetch_images(list(dict.fromkeys(first_diagrams)), self.image_fetcher)
        return self.build(groups, theme, title if include_title_slide else None, images)

    def build(
        self,
        groups: List[SlideGroup],
        theme: DeckTheme,
        title: Optional[str],
        images: Dict[str, Optional[bytes]],
    ) -> bytes:
        """Build synchronously from slide groups and prefetched image bytes."""
        self.prs = Presentation()
        self.prs.slide_width = Inches(SLIDE_WIDTH_INCHES)
        self.prs.slide_height = Inches(SLIDE_HEIGHT_INCHES)
        self.prs.core_properties.title = title or "Carousel Presentation"
        self.prs.core_properties.author = "ArticleFlow"
        self.palette = theme.palette
        self._images = images

        if title:
            self._add_title_slide(title)

        for index, group in enumerate(groups):
            try:
                self._add_content_slide(group, index + 1)
            except Exception as e:
                logger.warning(f"Failed to build slide {index + 1} ({group.heading}): {e}")

        buffer = io.BytesIO()
        self.prs.save(buffer)
        logger.info(
            f"PPTX assembled: {len(groups)} content slides, theme={theme.value}, "
            f"{len(buffer.getvalue())} bytes"
        )
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Slides
    # ------------------------------------------------------------------

    def _new_slide(self):
        slide = self.prs.slides.add_slide(self.prs.slide_layouts[6])  # Blank
        fill = slide.background.fill
        fill.solid()
        fill.fore_color.rgb = to_rgb(self.palette.background)
        return slide

    def _add_title_slide(self, title: str):
        slide = self._new_slide()
        self._add_text(
            slide, title,
            x=0.5, y=SLIDE_HEIGHT_INCHES * 0.40, w=SLIDE_WIDTH_INCHES * 0.9, h=1.5,
            size=44, color=self.palette.text, bold=True, align=PP_ALIGN.CENTER,
        )
        if self.footer_text:
            self._add_text(
                slide, self.footer_text,
                x=0.5, y=SLIDE_HEIGHT_INCHES * 0.90, w=SLIDE_WIDTH_INCHES * 0.9, h=0.3,
                size=12, color=self.palette.subtitle, align=PP_ALIGN.CENTER,
            )

    def _add_content_slide(self, group: SlideGroup, number: int):
        slide = self._new_slide()

        self._add_text(
            slide, str(number),
            x=SLIDE_WIDTH_INCHES * 0.92, y=SLIDE_HEIGHT_INCHES * 0.92,
            w=SLIDE_WIDTH_INCHES * 0.06, h=0.4,
            size=18, color=self.palette.subtitle, bold=True, align=PP_ALIGN.CENTER,
        )
        self._add_text(
            slide, group.heading,
            x=0.5, y=0.5, w=SLIDE_WIDTH_INCHES * 0.9, h=0.8,
            size=32, color=self.palette.text, bold=True,
        )

        text_blocks = _text_blocks(group)
        has_diagram = bool(group.diagram_urls)
        self._add_body(slide, text_blocks, has_diagram)

        if has_diagram:
            self._add_diagram(slide, group.diagram_urls[0], has_text=bool(text_blocks))

    def _add_body(self, slide, blocks: List[Block], has_diagram: bool):
        ratio = SLIDE_TEXT_WIDTH_RATIO_WITH_DIAGRAM if has_diagram else SLIDE_TEXT_WIDTH_RATIO
        width = SLIDE_WIDTH_INCHES * ratio
        y = SLIDE_BODY_TOP

        for block in blocks:
            try:
                y = self._add_band(slide, block, y, width, has_diagram)
            except Exception as e:
                logger.warning(f"Failed to add {block.block_type.value} band: {e}")

            if y > SLIDE_CONTENT_BUDGET and has_diagram:
                break

    def _add_band(self, slide, block: Block, y: float, width: float, has_diagram: bool) -> float:
        """Draw one block at height y; return the next y."""
        palette = self.palette

        if isinstance(block, Heading):
            self._add_text(slide, block.text, x=0.5, y=y, w=width, h=0.5,
                           size=24, color=palette.text, bold=True)
            return y + 0.6

        if isinstance(block, Paragraph):
            text = block.text
            height = max(0.4, min(len(text) / 100, 1.2))
            self._add_text(slide, text, x=0.5, y=y, w=width, h=height, size=18, color=palette.text)
            return y + height + 0.2

        if isinstance(block, ListBlock):
            height = min(len(block.items) * 0.4, 3.0)
            self._add_bullets(slide, block, x=0.5, y=y, w=width, h=height)
            return y + height + 0.2

        if isinstance(block, TableBlock):
            self._add_table(slide, block, y=y, table_width=4.5 if has_diagram else 9.0)
            return y + 2.5

        if isinstance(block, CodeBlock):
            height = min(max(len(block.lines), 1) * 0.3, 2.5)
            shape = self._add_text(
                slide, "\n".join(block.lines), x=0.5, y=y, w=width, h=height,
                size=12, color=palette.text, font=SLIDE_CODE_FONT,
            )
            shape.fill.solid()
            shape.fill.fore_color.rgb = to_rgb(palette.code_background)
            return y + height + 0.2

        return y

    # ------------------------------------------------------------------
    # Shapes
    # ------------------------------------------------------------------

    def _add_text(
        self, slide, text: str, x: float, y: float, w: float, h: float,
        size: int, color: str, bold: bool = False, font: str = SLIDE_FONT,
        align=None,
    ):
        shape = slide.shapes.add_textbox(Inches(x), Inches(y), Inches(w), Inches(h))
        frame = shape.text_frame
        frame.word_wrap = True
        frame.vertical_anchor = MSO_ANCHOR.TOP

        for index, line in enumerate(text.split("\n")):
            para = frame.paragraphs[0] if index == 0 else frame.add_paragraph()
            if align is not None:
                para.alignment = align
            run = para.add_run()
            run.text = line
            self._style_run(run, size, color, bold, font)
        return shape

    def _style_run(self, run, size: int, color: str, bold: bool = False, font: str = SLIDE_FONT):
        run.font.size = Pt(size)
        run.font.bold = bold
        run.font.name = font
        run.font.color.rgb = to_rgb(color)

    def _add_bullets(self, slide, block: ListBlock, x: float, y: float, w: float, h: float):
        shape = slide.shapes.add_textbox(Inches(x), Inches(y), Inches(w), Inches(h))
        frame = shape.text_frame
        frame.word_wrap = True
        frame.vertical_anchor = MSO_ANCHOR.TOP

        for index, item in enumerate(block.items):
            para = frame.paragraphs[0] if index == 0 else frame.add_paragraph()
            self._set_bullet(para, block.ordered, item.level)
            run = para.add_run()
            run.text = item.text
            self._style_run(run, 16, self.palette.text)

    def _set_bullet(self, para, ordered: bool, level: int):
        """Real bullet formatting; python-pptx exposes none, so edit a:pPr."""
        pPr = para._p.get_or_add_pPr()
        indent = Inches(0.3)
        pPr.set('marL', str(int(indent * (level + 1))))
        pPr.set('indent', str(-int(indent)))

        if ordered:
            bullet = OxmlElement('a:buAutoNum')
            bullet.set('type', 'arabicPeriod')
        else:
            bullet_font = OxmlElement('a:buFont')
            bullet_font.set('typeface', 'Arial')
            pPr.append(bullet_font)
            bullet = OxmlElement('a:buChar')
            bullet.set('char', '•' if level == 0 else '–')
        pPr.append(bullet)

    def _add_table(self, slide, block: TableBlock, y: float, table_width: float):
        num_cols = block.column_count
        if num_cols == 0 or not block.rows:
            return

        num_rows = len(block.rows)
        shape = slide.shapes.add_table(
            num_rows, num_cols,
            Inches(0.5), Inches(y), Inches(table_width), Inches(0.4 * num_rows),
        )
        table = shape.table
        table.first_row = block.has_header_row
        table.horz_banding = False

        col_width = Emu(int(Inches(table_width) / num_cols))
        for column in table.columns:
            column.width = col_width

        for row_idx, row_data in enumerate(block.rows):
            is_header = block.has_header_row and row_idx == 0
            padded = row_data + [""] * (num_cols - len(row_data))
            for col_idx, cell_text in enumerate(padded):
                cell = table.cell(row_idx, col_idx)
                cell.text = strip_markdown(cell_text)
                for para in cell.text_frame.paragraphs:
                    for run in para.runs:
                        self._style_run(run, 14 if is_header else 12, self.palette.text, bold=is_header)
                cell.fill.solid()
                cell.fill.fore_color.rgb = to_rgb(
                    self.palette.table_header if is_header else self.palette.background
                )
                self._set_cell_borders(cell, self.palette.table_border)

    def _set_cell_borders(self, cell, color: str, width_pt: float = 1.0):
        tcPr = cell._tc.get_or_add_tcPr()
        # lnL/lnR/lnT/lnB precede the cell fill in CT_TableCellProperties
        for position, tag in enumerate(('a:lnL', 'a:lnR', 'a:lnT', 'a:lnB')):
            line = OxmlElement(tag)
            line.set('w', str(int(Pt(width_pt))))
            line.set('cap', 'flat')
            line.set('cmpd', 'sng')
            line.set('algn', 'ctr')

            solid = OxmlElement('a:solidFill')
            rgb = OxmlElement('a:srgbClr')
            rgb.set('val', color)
            solid.append(rgb)
            line.append(solid)

            dash = OxmlElement('a:prstDash')
            dash.set('val', 'solid')
            line.append(dash)

            for existing in tcPr.findall(qn(tag)):
                tcPr.remove(existing)
            tcPr.insert(position, line)

    def _add_diagram(self, slide, url: str, has_text: bool):
        data = self._images.get(url)
        if not data:
            logger.warning(f"Diagram not available, slide continues without it: {url}")
            return

        if has_text:
            box = (SLIDE_WIDTH_INCHES * 0.50, 1.8, SLIDE_WIDTH_INCHES * 0.45, 3.5)
        else:
            box = (SLIDE_WIDTH_INCHES * 0.15, 1.8, SLIDE_WIDTH_INCHES * 0.70, 3.8)

        try:
            x, y, w, h = fit_contain(image_size(data), box)
        except ImageConversionError as e:
            logger.warning(f"Cannot size diagram {url}: {e}")
            return

        slide.shapes.add_picture(io.BytesIO(data), Inches(x), Inches(y), Inches(w), Inches(h))


def fit_contain(
    pixel_size: Tuple[int, int],
    box: Tuple[float, float, float, float],
) -> Tuple[float, float, float, float]:
    """
    Scale an image into a box keeping aspect ratio, centred.

    Examples:
        >>> fit_contain((200, 100), (0.0, 0.0, 4.0, 4.0))
        (0.0, 1.0, 4.0, 2.0)
    """
    px_w, px_h = pixel_size
    bx, by, bw, bh = box
    if px_w <= 0 or px_h <= 0:
        return box
    scale = min(bw / px_w, bh / px_h)
    w, h = px_w * scale, px_h * scale
    return (bx + (bw - w) / 2, by + (bh - h) / 2, w, h)
