"""
Lazily-created service singletons for the routers.

Tests swap these out with ``app.dependency_overrides``.
"""

from typing import Optional

from config.logging_config import get_logger
from config.settings import get_settings
from core.diagrams.validator import MermaidValidator
from core.pipeline import PublishingPipeline, build_pipeline

logger = get_logger(__name__)

_pipeline: Optional[PublishingPipeline] = None
_validator: Optional[MermaidValidator] = None


def get_pipeline() -> PublishingPipeline:
    """Get or create the publishing pipeline"""
    global _pipeline
    if _pipeline is None:
        settings = get_settings()
        settings.ensure_directories()
        _pipeline = build_pipeline(settings)
        logger.info(f"Publishing pipeline ready: {settings.summary()}")
    return _pipeline


def get_validator() -> MermaidValidator:
    """Get or create the diagram validator"""
    global _validator
    if _validator is None:
        _validator = MermaidValidator(get_settings().forbidden_diagram_keywords)
    return _validator
