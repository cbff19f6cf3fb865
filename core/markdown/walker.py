"""
Markdown Block Walker

Single-pass, line-oriented scanner that turns a markdown document into an
ordered list of typed blocks. Open-block state is tracked explicitly with
WalkerState; fence state overrides every other line classification.

Line priority:
    1. inside a fence: code content until the closing fence
    2. opening fence (diagram language -> DiagramPlaceholder, else CodeBlock)
    3. table row (| ... |), separator rows consumed
    4. standalone image
    5. ATX heading
    6. blank line
    7. thematic break
    8. list item
    9. paragraph text
"""

import re
from enum import Enum
from typing import List, Optional

from config.constants import DIAGRAM_FENCE_LANGUAGE
from config.logging_config import get_logger

from .blocks import (
    Block, Heading, Paragraph, ListItem, ListBlock, TableBlock,
    CodeBlock, ImageBlock, DiagramPlaceholder,
)
from .inline import tokenize_inline, strip_markdown

logger = get_logger(__name__)


FENCE_OPEN = re.compile(r'^(`{3,}|~{3,})\s*([^\s`]*)')
_HEADING = re.compile(r'^(#{1,6})\s+(.*?)(?:\s+#+)?\s*$')
_IMAGE_LINE = re.compile(r'^!\[(?P<alt>[^\]]*)\]\((?P<url>[^)\s]+)(?:\s+"[^"]*")?\)$')
_LIST_ITEM = re.compile(r'^(?P<indent>\s*)(?P<marker>[-*+]|\d+[.)])\s+(?P<text>.*)$')
_THEMATIC_BREAK = re.compile(r'^(?:(?:-\s*){3,}|(?:\*\s*){3,}|(?:_\s*){3,})$')
_SEPARATOR_ROW = re.compile(r'^\|[\s:|-]*\|$')
_BLOCKQUOTE = re.compile(r'^>\s?')


class WalkerState(Enum):
    """Which block is currently open."""
    NONE = "none"
    IN_PARAGRAPH = "in_paragraph"
    IN_LIST = "in_list"
    IN_TABLE = "in_table"
    IN_CODE_FENCE = "in_code_fence"


def is_table_row(stripped: str) -> bool:
    return len(stripped) >= 2 and stripped.startswith('|') and stripped.endswith('|')


def is_separator_row(stripped: str) -> bool:
    return bool(_SEPARATOR_ROW.match(stripped)) and '-' in stripped


def closes_fence(stripped: str, marker: str) -> bool:
    """A closing fence repeats the opening character at least as many times."""
    return (
        stripped.startswith(marker)
        and not stripped.lstrip(marker[0]).strip()
    )


def split_table_row(stripped: str) -> List[str]:
    """Split `| a | b |` into ['a', 'b']; `\\|` stays inside a cell."""
    inner = stripped[1:-1]
    cells = re.split(r'(?<!\\)\|', inner)
    return [cell.strip().replace('\\|', '|') for cell in cells]


class MarkdownBlockWalker:
    """
    Parse markdown into blocks.

    Usage:
        >>> walker = MarkdownBlockWalker()
        >>> blocks = walker.parse("# Title\\n\\nHello **world**")
        >>> [b.block_type.value for b in blocks]
        ['heading', 'paragraph']
    """

    def __init__(self, diagram_language: str = DIAGRAM_FENCE_LANGUAGE):
        self.diagram_language = diagram_language.lower()
        self._reset()

    def _reset(self):
        self.state = WalkerState.NONE
        self._blocks: List[Block] = []
        self._paragraph_lines: List[str] = []
        self._list: Optional[ListBlock] = None
        self._table: Optional[TableBlock] = None
        self._table_rows_seen = 0
        self._fence_marker = ""
        self._fence_language = ""
        self._fence_lines: List[str] = []
        self._diagram_count = 0

    def parse(self, markdown_text: str) -> List[Block]:
        """Walk the document once and return its blocks in order."""
        self._reset()
        for line in (markdown_text or "").splitlines():
            self._feed(line)
        self._finish()
        blocks = self._blocks
        logger.debug(
            f"Parsed {len(blocks)} blocks ({self._diagram_count} diagrams)"
        )
        return blocks

    # ------------------------------------------------------------------
    # Line classification
    # ------------------------------------------------------------------

    def _feed(self, line: str):
        stripped = line.strip()

        if self.state == WalkerState.IN_CODE_FENCE:
            if self._closes_fence(stripped):
                self._close_fence()
            else:
                self._fence_lines.append(line)
            return

        fence = FENCE_OPEN.match(stripped)
        if fence:
            self._flush()
            self._fence_marker = fence.group(1)
            self._fence_language = fence.group(2).lower()
            self._fence_lines = []
            self.state = WalkerState.IN_CODE_FENCE
            return

        if is_table_row(stripped):
            self._add_table_row(stripped)
            return

        image = _IMAGE_LINE.match(stripped)
        if image:
            self._flush()
            self._blocks.append(ImageBlock(url=image.group('url'), alt_text=image.group('alt')))
            return

        heading = _HEADING.match(stripped)
        if heading:
            self._flush()
            self._blocks.append(Heading(
                level=len(heading.group(1)),
                text=strip_markdown(heading.group(2)),
            ))
            return

        if not stripped:
            self._flush()
            return

        if _THEMATIC_BREAK.match(stripped):
            self._flush()
            return

        item = _LIST_ITEM.match(line)
        if item:
            self._add_list_item(item)
            return

        if self.state == WalkerState.IN_LIST and line[:1].isspace() and self._list.items:
            # Indented continuation of the previous item
            last = self._list.items[-1]
            last.runs.extend(tokenize_inline(" " + stripped))
            return

        if self.state != WalkerState.IN_PARAGRAPH:
            self._flush()
            self.state = WalkerState.IN_PARAGRAPH
        self._paragraph_lines.append(_BLOCKQUOTE.sub('', stripped))

    def _closes_fence(self, stripped: str) -> bool:
        return closes_fence(stripped, self._fence_marker)

    # ------------------------------------------------------------------
    # Accumulators
    # ------------------------------------------------------------------

    def _add_table_row(self, stripped: str):
        if self.state != WalkerState.IN_TABLE:
            self._flush()
            self._table = TableBlock()
            self._table_rows_seen = 0
            self.state = WalkerState.IN_TABLE

        if is_separator_row(stripped):
            if self._table_rows_seen == 1 and len(self._table.rows) == 1:
                self._table.has_header_row = True
            self._table_rows_seen += 1
            return

        self._table.rows.append(split_table_row(stripped))
        self._table_rows_seen += 1

    def _add_list_item(self, match):
        marker = match.group('marker')
        ordered = marker[0].isdigit()
        level = len(match.group('indent').expandtabs(4)) // 2

        starts_new = (
            self.state != WalkerState.IN_LIST
            or (level == 0 and self._list.ordered != ordered)
        )
        if starts_new:
            self._flush()
            self._list = ListBlock(ordered=ordered)
            self.state = WalkerState.IN_LIST

        self._list.items.append(ListItem(
            runs=tokenize_inline(match.group('text').strip()),
            level=level,
        ))

    def _close_fence(self):
        if self._fence_language == self.diagram_language:
            self._blocks.append(DiagramPlaceholder(
                source_code="\n".join(self._fence_lines),
                ordinal_index=self._diagram_count,
            ))
            self._diagram_count += 1
        else:
            self._blocks.append(CodeBlock(
                language=self._fence_language,
                lines=list(self._fence_lines),
            ))
        self._fence_lines = []
        self.state = WalkerState.NONE

    def _flush(self):
        """Close whatever block is open (fences excluded)."""
        if self.state == WalkerState.IN_PARAGRAPH and self._paragraph_lines:
            text = " ".join(self._paragraph_lines)
            self._blocks.append(Paragraph(runs=tokenize_inline(text)))
        elif self.state == WalkerState.IN_LIST and self._list is not None:
            self._blocks.append(self._list)
        elif self.state == WalkerState.IN_TABLE and self._table is not None:
            self._blocks.append(self._table)

        self._paragraph_lines = []
        self._list = None
        self._table = None
        self.state = WalkerState.NONE

    def _finish(self):
        if self.state == WalkerState.IN_CODE_FENCE:
            # Unterminated fence runs to end of input, always as plain code
            logger.debug(f"Unterminated '{self._fence_language}' fence treated as code")
            self._blocks.append(CodeBlock(
                language=self._fence_language,
                lines=list(self._fence_lines),
            ))
            self._fence_lines = []
            self.state = WalkerState.NONE
            return
        self._flush()


def parse_markdown(markdown_text: str) -> List[Block]:
    """Convenience wrapper around MarkdownBlockWalker.parse."""
    return MarkdownBlockWalker().parse(markdown_text)


def extract_diagrams(markdown_text: str) -> List[DiagramPlaceholder]:
    """All diagram placeholders of a document, in document order."""
    return [
        block for block in parse_markdown(markdown_text)
        if isinstance(block, DiagramPlaceholder)
    ]
