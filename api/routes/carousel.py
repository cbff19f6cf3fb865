"""
Carousel API Router

Export ad-hoc carousel markdown as a PPTX deck. Diagrams are cached and
uploaded under the owning article.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.diagrams.errors import InvalidRequestError
from core.export.formats import OutputFormat
from core.pipeline import PublishingPipeline

from ..deps import get_pipeline
from .articles import attachment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/carousel", tags=["Carousel"])


class CarouselExportRequest(BaseModel):
    """Request model for deck export"""
    content: Optional[str] = Field(default=None, description="Carousel markdown")
    theme: Optional[str] = Field(default=None, description="classic | academic | modern | elegant | professional")
    title: Optional[str] = Field(default=None, description="Deck title; also names the file")
    article_id: Optional[str] = Field(default=None, description="Article that owns the diagrams")


@router.post("/export/pptx", summary="Export carousel markdown as PPTX")
async def export_pptx(
    request: CarouselExportRequest,
    pipeline: PublishingPipeline = Depends(get_pipeline),
):
    if not request.content:
        raise InvalidRequestError("Content is required")
    if not request.article_id:
        raise InvalidRequestError("Article ID is required")

    output = await pipeline.process_document(
        request.article_id,
        OutputFormat.PPTX,
        markdown=request.content,
        theme=request.theme,
        title=request.title,
    )
    logger.info(f"Carousel PPTX generated for article {request.article_id}: {len(output.content)} bytes")
    return attachment(output.content, output.content_type, output.filename)
