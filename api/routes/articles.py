"""
Article API Router

Diagram processing and artifact download for stored articles.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel

from core.pipeline import PublishingPipeline

from ..deps import get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/articles", tags=["Articles"])


# ==================== MODELS ====================

class DiagramOutcomeResponse(BaseModel):
    """Terminal state of one diagram"""
    cache_key: str
    state: str
    url: Optional[str] = None
    from_cache: bool = False
    cache_stored: bool = False
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    violated_rule: Optional[str] = None
    ordinals: List[int] = []


class ProcessDiagramsResponse(BaseModel):
    """Diagram resolution summary"""
    document_id: str
    total: int
    resolved: int
    cached: int
    degraded: int
    outcomes: List[DiagramOutcomeResponse]


def attachment(content: bytes, content_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Length": str(len(content)),
        },
    )


# ==================== ENDPOINTS ====================

@router.post(
    "/{document_id}/process-diagrams",
    response_model=ProcessDiagramsResponse,
    summary="Render, upload and cache every diagram in an article",
)
async def process_diagrams(
    document_id: str,
    pipeline: PublishingPipeline = Depends(get_pipeline),
):
    """
    Resolve the article's Mermaid diagrams and store the rewritten markdown
    (diagram fences replaced by image references) back on the article.
    Diagrams that cannot be rendered stay as source and are retried next time.
    """
    report = await pipeline.process_diagrams(document_id, persist_content=True)
    logger.info(
        f"process-diagrams {document_id}: {report.resolved}/{report.total} resolved, "
        f"{report.cached} cached"
    )
    return report.to_dict()


@router.get(
    "/{document_id}/download",
    summary="Download the article as markdown, DOCX or PPTX",
)
async def download_article(
    document_id: str,
    format: str = Query(default="docx", description="md | docx | pptx"),
    theme: Optional[str] = Query(default=None, description="Deck theme (pptx only)"),
    pipeline: PublishingPipeline = Depends(get_pipeline),
):
    output = await pipeline.process_document(document_id, format, theme=theme)
    return attachment(output.content, output.content_type, output.filename)
