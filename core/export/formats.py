"""
Output formats and download filenames.
"""

import re
from enum import Enum
from typing import Optional

from config.constants import CONTENT_TYPE_DOCX, CONTENT_TYPE_PPTX, CONTENT_TYPE_MARKDOWN
from core.diagrams.errors import InvalidRequestError


class OutputFormat(Enum):
    """Artifact targets the pipeline can assemble."""
    DOCX = "docx"
    PPTX = "pptx"
    MARKDOWN = "md"

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self]

    @property
    def extension(self) -> str:
        return self.value


CONTENT_TYPES = {
    OutputFormat.DOCX: CONTENT_TYPE_DOCX,
    OutputFormat.PPTX: CONTENT_TYPE_PPTX,
    OutputFormat.MARKDOWN: CONTENT_TYPE_MARKDOWN,
}

_FORMAT_ALIASES = {
    "docx": OutputFormat.DOCX,
    "word": OutputFormat.DOCX,
    "pptx": OutputFormat.PPTX,
    "slides": OutputFormat.PPTX,
    "md": OutputFormat.MARKDOWN,
    "markdown": OutputFormat.MARKDOWN,
}


def parse_format(value) -> OutputFormat:
    """
    Accept an OutputFormat or a name/alias.

    Raises:
        InvalidRequestError: Missing or unknown format
    """
    if isinstance(value, OutputFormat):
        return value
    if not value:
        raise InvalidRequestError("Target format is required")
    fmt = _FORMAT_ALIASES.get(str(value).strip().lower())
    if fmt is None:
        raise InvalidRequestError(f"Unsupported format: {value}")
    return fmt


def slugify_filename(title: Optional[str], default: str) -> str:
    """
    Lowercase slug for a download filename (extension not included).

    Examples:
        >>> slugify_filename("My Great Deck!", "carousel-presentation")
        'my-great-deck-'
        >>> slugify_filename("", "article")
        'article'
    """
    if not title or not title.strip():
        return default
    slug = re.sub(r'[^a-z0-9]', '-', title.strip().lower())
    return slug if slug.strip('-') else default
