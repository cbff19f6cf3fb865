"""
Publishing error hierarchy.

Only InvalidRequestError, RecordStoreUnavailableError and
DocumentNotFoundError ever escape the pipeline; everything else is caught
where it happens and degrades that single element: render strategies
raise RenderError/RenderTransientError and ValidationResult raises
DiagramValidationError, and DiagramRenderer turns them into tagged results.
"""

from typing import Optional


class PublishingError(Exception):
    """Base exception for diagram and export errors"""
    pass


class DiagramValidationError(PublishingError):
    """Diagram source failed a validation rule"""

    def __init__(self, message: str, rule: Optional[object] = None):
        super().__init__(message)
        self.rule = rule


class RenderError(PublishingError):
    """Render strategy could not produce an image"""
    pass


class RenderTransientError(RenderError):
    """Network, timeout or 5xx from the render service"""
    pass


class UploadError(PublishingError):
    """Image store rejected or failed an upload"""
    pass


class FetchForEmbedError(PublishingError):
    """Image bytes could not be fetched back for embedding"""
    pass


class CacheReadError(PublishingError):
    """Record store read failed during cache lookup"""
    pass


class CacheWriteError(PublishingError):
    """Record store write failed while storing a cache entry"""
    pass


class ImageConversionError(PublishingError):
    """Image bytes could not be decoded or re-encoded"""
    pass


class InvalidRequestError(PublishingError):
    """Request is structurally invalid (missing id, unknown format)"""
    pass


class RecordStoreUnavailableError(PublishingError):
    """Record store could not serve the initiating lookup"""
    pass


class DocumentNotFoundError(PublishingError):
    """No record exists for the requested document id"""
    pass
