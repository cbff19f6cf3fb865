"""
Export Module - assemble resolved block streams into artifacts

Module structure:
- images: concurrent prefetch of image bytes for embedding
- docx_assembler: paginated document target (python-docx)
- pptx_assembler: slide deck target (python-pptx), slide segmentation, themes
- formats: output format enum, content types, download filenames
"""

from .images import ImageFetcher, block_image_url, image_urls_in, prefetch_images
from .docx_assembler import DocxAssembler
from .pptx_assembler import (
    PptxAssembler,
    DeckTheme,
    ThemePalette,
    THEME_PALETTES,
    segment_slides,
    strip_slide_prefix,
    fit_contain,
)
from .formats import OutputFormat, parse_format, slugify_filename

__all__ = [
    'ImageFetcher',
    'block_image_url',
    'image_urls_in',
    'prefetch_images',
    'DocxAssembler',
    'PptxAssembler',
    'DeckTheme',
    'ThemePalette',
    'THEME_PALETTES',
    'segment_slides',
    'strip_slide_prefix',
    'fit_contain',
    'OutputFormat',
    'parse_format',
    'slugify_filename',
]
