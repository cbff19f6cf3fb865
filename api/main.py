#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI Web Server - REST API for ArticleFlow Publisher.

Usage:
    # Start server
    uvicorn api.main:app --host 0.0.0.0 --port 8000

    # Or run directly
    python -m api.main

Key Endpoints:
    POST /api/articles/{document_id}/process-diagrams - Render and cache diagrams
    GET  /api/articles/{document_id}/download?format=md|docx|pptx - Download artifact
    POST /api/carousel/export/pptx - Export carousel markdown as a deck
    POST /api/diagrams/validate - Validate diagram fences
    GET  /health - Health check

Error mapping:
    InvalidRequestError → 400, DocumentNotFoundError → 404,
    RecordStoreUnavailableError → 503
"""

import time
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

from config.logging_config import get_logger
from config.settings import get_settings
from core.diagrams.errors import (
    InvalidRequestError,
    DocumentNotFoundError,
    RecordStoreUnavailableError,
)

from api.routes.articles import router as articles_router
from api.routes.carousel import router as carousel_router
from api.routes.diagrams import router as diagrams_router

logger = get_logger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="ArticleFlow Publisher API",
    description="Diagram caching and DOCX/PPTX publishing for generated articles",
    version=VERSION,
)

ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


# =============================================================================
# Error handlers
# =============================================================================

@app.exception_handler(InvalidRequestError)
def invalid_request_handler(request: Request, exc: InvalidRequestError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(DocumentNotFoundError)
def document_not_found_handler(request: Request, exc: DocumentNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(RecordStoreUnavailableError)
def record_store_unavailable_handler(request: Request, exc: RecordStoreUnavailableError):
    logger.error(f"Record store unavailable: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


app.include_router(articles_router)
app.include_router(carousel_router)
app.include_router(diagrams_router)


@app.get("/health")
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "version": VERSION,
        "timestamp": time.time(),
        "config": get_settings().summary(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
