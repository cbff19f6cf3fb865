"""
Integration tests for API endpoints (api/main.py)
"""
import io

import pytest
from docx import Document
from fastapi.testclient import TestClient
from pptx import Presentation

from api.deps import get_pipeline
from api.main import app
from core.storage.record_store import DocumentRecord


ARTICLE = "# Heading\n\nBody text.\n\n```mermaid\ngraph TD\nA-->B\n```\n"
CAROUSEL = "## Slide 1: Intro\nHello\n\n## Slide 2: Flow\n```mermaid\ngraph TD\nA-->B\n```\n"


@pytest.fixture
def client(pipeline):
    """Test client whose routes use the in-memory pipeline."""
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def broken_client(pipeline_factory, failing_record_store, renderer, image_store):
    """Test client whose record store is down."""
    pipeline = pipeline_factory(failing_record_store, renderer, image_store)
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestAPIBasics:
    """Test basic API functionality."""

    def test_health_check(self, client):
        """Health endpoint reports status and configuration."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "render_primary" in data["config"]


class TestArticleEndpoints:
    """Test /api/articles endpoints."""

    def test_process_diagrams(self, client, record_store):
        """Diagrams are resolved and the report is returned."""
        record_store.put(DocumentRecord(id="doc-1", title="T", content=ARTICLE))

        response = client.post("/api/articles/doc-1/process-diagrams")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["resolved"] == 1
        assert data["outcomes"][0]["state"] == "resolved"

    def test_process_diagrams_not_found(self, client):
        """Unknown articles return 404."""
        response = client.post("/api/articles/ghost/process-diagrams")
        assert response.status_code == 404
        assert "ghost" in response.json()["detail"]

    def test_download_docx(self, client, record_store):
        """DOCX download is an attachment named after the title."""
        record_store.put(DocumentRecord(id="doc-1", title="Quarterly Review", content=ARTICLE))

        response = client.get("/api/articles/doc-1/download", params={"format": "docx"})

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="quarterly-review.docx"'
        assert "wordprocessingml" in response.headers["content-type"]
        doc = Document(io.BytesIO(response.content))
        assert len(doc.inline_shapes) == 1

    def test_download_markdown(self, client, record_store):
        """Markdown download carries image references."""
        record_store.put(DocumentRecord(id="doc-1", content=ARTICLE))

        response = client.get("/api/articles/doc-1/download", params={"format": "md"})

        assert response.status_code == 200
        assert "![Flowchart Diagram](" in response.text

    def test_download_unknown_format(self, client):
        """Unsupported formats return 400."""
        response = client.get("/api/articles/doc-1/download", params={"format": "pdf"})
        assert response.status_code == 400

    def test_record_store_unavailable(self, broken_client):
        """A failing record store returns 503."""
        response = broken_client.get("/api/articles/doc-1/download")
        assert response.status_code == 503


class TestCarouselEndpoints:
    """Test /api/carousel endpoints."""

    def test_export_pptx(self, client):
        """Carousel markdown becomes a deck with a title slide."""
        response = client.post("/api/carousel/export/pptx", json={
            "content": CAROUSEL,
            "theme": "modern",
            "title": "Launch Plan",
            "article_id": "doc-1",
        })

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="launch-plan.pptx"'
        prs = Presentation(io.BytesIO(response.content))
        assert len(prs.slides) == 3

    def test_export_without_article_record(self, client):
        """Supplied content does not need a stored article."""
        response = client.post("/api/carousel/export/pptx", json={
            "content": "## A\nx",
            "article_id": "not-stored",
        })
        assert response.status_code == 200
        assert 'filename="carousel-presentation.pptx"' in response.headers["content-disposition"]

    @pytest.mark.parametrize("payload,detail", [
        ({"article_id": "doc-1"}, "Content is required"),
        ({"content": "## A\nx"}, "Article ID is required"),
    ])
    def test_export_missing_fields(self, client, payload, detail):
        """Missing content or article id returns 400."""
        response = client.post("/api/carousel/export/pptx", json=payload)
        assert response.status_code == 400
        assert response.json()["detail"] == detail


class TestDiagramEndpoints:
    """Test /api/diagrams endpoints."""

    def test_validate(self, client):
        """Each fence is reported with its rule violations."""
        content = "```mermaid\ngraph TD\nA-->B\n```\n\n```mermaid\nbogus\n```"
        response = client.post("/api/diagrams/validate", json={"content": content})

        assert response.status_code == 200
        data = response.json()
        assert data["all_valid"] is False
        assert data["total"] == 2
        assert data["diagrams"][1]["violated_rules"] == ["unknown_diagram_type"]
