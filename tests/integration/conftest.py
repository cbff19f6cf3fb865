#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Pytest fixtures for integration tests.

Provides:
- renderer / failing_renderer: DiagramRenderer over fake strategies
- pipeline: PublishingPipeline wired to in-memory collaborators
- pipeline_factory: build a pipeline with custom collaborators
"""

import pytest

from core.diagrams.cache import DiagramCache
from core.diagrams.renderer import DiagramRenderer
from core.diagrams.validator import MermaidValidator
from core.pipeline import PublishingPipeline


@pytest.fixture
def renderer(ok_strategy) -> DiagramRenderer:
    return DiagramRenderer(MermaidValidator(), [ok_strategy], timeout=2.0)


@pytest.fixture
def failing_renderer(failing_strategy) -> DiagramRenderer:
    return DiagramRenderer(MermaidValidator(), [failing_strategy], timeout=2.0)


@pytest.fixture
def pipeline_factory():
    """Build a pipeline; uploads are stored as rendered (no re-encoding)."""
    def build(record_store, renderer, image_store, cache=None, **kwargs) -> PublishingPipeline:
        kwargs.setdefault("upload_profile", None)
        return PublishingPipeline(
            record_store=record_store,
            cache=cache or DiagramCache(record_store),
            renderer=renderer,
            image_store=image_store,
            **kwargs,
        )
    return build


@pytest.fixture
def pipeline(pipeline_factory, record_store, renderer, image_store) -> PublishingPipeline:
    return pipeline_factory(record_store, renderer, image_store)
