"""
Diagram API Router

Pre-flight validation of Mermaid diagrams embedded in markdown.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from core.diagrams.validator import MermaidValidator

from ..deps import get_validator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/diagrams", tags=["Diagrams"])


class ValidateRequest(BaseModel):
    """Markdown to scan for diagram fences"""
    content: str = Field(..., description="Markdown containing ```mermaid fences")


class DiagramValidationResponse(BaseModel):
    index: int
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    violated_rules: List[str]


class ValidateResponse(BaseModel):
    all_valid: bool
    total: int
    diagrams: List[DiagramValidationResponse]


@router.post("/validate", response_model=ValidateResponse, summary="Validate diagrams in markdown")
async def validate_diagrams(
    request: ValidateRequest,
    validator: MermaidValidator = Depends(get_validator),
):
    document = validator.validate_all_diagrams(request.content)
    diagrams = []
    for item in document.results:
        result = item.result.to_dict()
        diagrams.append({
            "index": item.index,
            "is_valid": result["is_valid"],
            "errors": result["errors"],
            "warnings": result["warnings"],
            "violated_rules": result["violated_rules"],
        })

    if not document.all_valid:
        logger.info(f"Diagram validation: {sum(1 for d in diagrams if not d['is_valid'])} invalid")
    return {"all_valid": document.all_valid, "total": len(diagrams), "diagrams": diagrams}
