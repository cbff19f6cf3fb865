"""
Diagrams Module - key, validate, render, convert and cache Mermaid diagrams

Exports:
- compute_diagram_key, diagram_label (content hasher)
- PublishingError and subclasses (error taxonomy)
- MermaidValidator, ValidationResult, ValidationRule
- DiagramRenderer, RenderResult, RenderErrorKind, render strategies
- ConversionProfile, convert_image, to_embeddable_png
- DiagramCache, EntryTableDiagramCache, CacheStats
"""

from .hasher import compute_diagram_key, diagram_label
from .errors import (
    PublishingError,
    DiagramValidationError,
    RenderError,
    RenderTransientError,
    UploadError,
    FetchForEmbedError,
    CacheReadError,
    CacheWriteError,
    ImageConversionError,
    InvalidRequestError,
    RecordStoreUnavailableError,
    DocumentNotFoundError,
)
from .validator import MermaidValidator, ValidationResult, ValidationRule, DocumentValidation
from .converter import (
    ConversionProfile,
    ImageFormat,
    PRINT_PROFILE,
    WEB_PROFILE,
    convert_image,
    ensure_svg_dimensions,
    to_embeddable_png,
)
from .renderer import (
    DiagramRenderer,
    RenderResult,
    RenderErrorKind,
    RenderStrategy,
    MermaidInkStrategy,
    KrokiStrategy,
    LocalMermaidCliStrategy,
    build_renderer,
)
from .cache import (
    CacheStats,
    DiagramCacheBackend,
    DiagramCache,
    EntryTableDiagramCache,
    build_diagram_cache,
)

__all__ = [
    'compute_diagram_key',
    'diagram_label',
    'PublishingError',
    'DiagramValidationError',
    'RenderError',
    'RenderTransientError',
    'UploadError',
    'FetchForEmbedError',
    'CacheReadError',
    'CacheWriteError',
    'ImageConversionError',
    'InvalidRequestError',
    'RecordStoreUnavailableError',
    'DocumentNotFoundError',
    'MermaidValidator',
    'ValidationResult',
    'ValidationRule',
    'DocumentValidation',
    'ConversionProfile',
    'ImageFormat',
    'PRINT_PROFILE',
    'WEB_PROFILE',
    'convert_image',
    'ensure_svg_dimensions',
    'to_embeddable_png',
    'DiagramRenderer',
    'RenderResult',
    'RenderErrorKind',
    'RenderStrategy',
    'MermaidInkStrategy',
    'KrokiStrategy',
    'LocalMermaidCliStrategy',
    'build_renderer',
    'CacheStats',
    'DiagramCacheBackend',
    'DiagramCache',
    'EntryTableDiagramCache',
    'build_diagram_cache',
]
