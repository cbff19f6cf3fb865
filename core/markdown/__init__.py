"""
Markdown Module

Exports:
- MarkdownBlockWalker, parse_markdown, extract_diagrams (block parsing)
- Block model classes (blocks.py)
- tokenize_inline, strip_markdown (inline runs)
- replace_diagrams_with_images (markdown rewrite)
"""

from .blocks import (
    BlockType,
    InlineRun,
    Block,
    Heading,
    Paragraph,
    ListItem,
    ListBlock,
    TableBlock,
    CodeBlock,
    ImageBlock,
    DiagramPlaceholder,
    SlideGroup,
    runs_to_text,
)
from .inline import tokenize_inline, strip_markdown
from .walker import MarkdownBlockWalker, WalkerState, parse_markdown, extract_diagrams
from .rewriter import replace_diagrams_with_images

__all__ = [
    'BlockType',
    'InlineRun',
    'Block',
    'Heading',
    'Paragraph',
    'ListItem',
    'ListBlock',
    'TableBlock',
    'CodeBlock',
    'ImageBlock',
    'DiagramPlaceholder',
    'SlideGroup',
    'runs_to_text',
    'tokenize_inline',
    'strip_markdown',
    'MarkdownBlockWalker',
    'WalkerState',
    'parse_markdown',
    'extract_diagrams',
    'replace_diagrams_with_images',
]
