"""
Markdown Block Model

Typed, ordered blocks produced by the block walker and consumed by every
assembler. A DiagramPlaceholder stays distinct from ImageBlock until the
pipeline resolves it.

    raw markdown
         ↓
    MarkdownBlockWalker (walker.py)
         ↓
    List[Block]  (this module)
         ↓
    DocxAssembler / PptxAssembler
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import List, Optional, Union


class BlockType(Enum):
    """Kinds of block-level elements."""
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    TABLE = "table"
    CODE = "code"
    IMAGE = "image"
    DIAGRAM = "diagram"


@dataclass
class InlineRun:
    """A span of text sharing one style."""
    text: str
    bold: bool = False
    italic: bool = False
    code: bool = False
    link: Optional[str] = None  # target URL when the run is a link

    def same_style(self, other: "InlineRun") -> bool:
        return (
            self.bold == other.bold
            and self.italic == other.italic
            and self.code == other.code
            and self.link == other.link
        )


def runs_to_text(runs: List[InlineRun]) -> str:
    """Concatenate run text, dropping all styling."""
    return "".join(run.text for run in runs)


@dataclass
class Block:
    """Base class for all block-level nodes."""
    # block_type is set by subclasses in __post_init__, not passed as parameter
    block_type: BlockType = field(init=False, default=BlockType.PARAGRAPH)


@dataclass
class Heading(Block):
    """ATX heading, marker stripped. Level 1 is the largest."""
    level: int
    text: str

    def __post_init__(self):
        self.block_type = BlockType.HEADING


@dataclass
class Paragraph(Block):
    """Paragraph of styled runs."""
    runs: List[InlineRun] = field(default_factory=list)

    def __post_init__(self):
        self.block_type = BlockType.PARAGRAPH

    @property
    def text(self) -> str:
        return runs_to_text(self.runs)


@dataclass
class ListItem:
    """One list entry; level counts nesting depth from 0."""
    runs: List[InlineRun] = field(default_factory=list)
    level: int = 0

    @property
    def text(self) -> str:
        return runs_to_text(self.runs)


@dataclass
class ListBlock(Block):
    """Bulleted or numbered list."""
    ordered: bool = False
    items: List[ListItem] = field(default_factory=list)

    def __post_init__(self):
        self.block_type = BlockType.LIST


@dataclass
class TableBlock(Block):
    """Pipe table. Separator rows never appear in `rows`."""
    rows: List[List[str]] = field(default_factory=list)
    has_header_row: bool = False

    def __post_init__(self):
        self.block_type = BlockType.TABLE

    @property
    def header_row(self) -> Optional[List[str]]:
        if self.has_header_row and self.rows:
            return self.rows[0]
        return None

    @property
    def data_rows(self) -> List[List[str]]:
        return self.rows[1:] if self.has_header_row else list(self.rows)

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.rows), default=0)


@dataclass
class CodeBlock(Block):
    """Fenced code. Lines are kept verbatim."""
    language: str = ""
    lines: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.block_type = BlockType.CODE


@dataclass
class ImageBlock(Block):
    """Image reference; diagram_key is set when it replaced a diagram."""
    url: str
    alt_text: str = ""
    diagram_key: Optional[str] = None

    def __post_init__(self):
        self.block_type = BlockType.IMAGE


@dataclass
class DiagramPlaceholder(Block):
    """
    Diagram source awaiting resolution.

    Identity for caching comes from source_code only; ordinal_index is the
    position among diagrams in the document and is informational.
    """
    source_code: str
    ordinal_index: int = 0
    resolved_image_url: Optional[str] = None

    def __post_init__(self):
        self.block_type = BlockType.DIAGRAM

    @property
    def is_resolved(self) -> bool:
        return self.resolved_image_url is not None

    def as_code_block(self) -> CodeBlock:
        """Degraded form: the original source shown as code."""
        return CodeBlock(language="mermaid", lines=self.source_code.split("\n"))


AnyBlock = Union[
    Heading, Paragraph, ListBlock, TableBlock, CodeBlock, ImageBlock, DiagramPlaceholder
]


@dataclass
class SlideGroup:
    """Contiguous blocks between slide-boundary headings."""
    heading: str
    body_blocks: List[Block] = field(default_factory=list)
    diagram_urls: List[str] = field(default_factory=list)
