"""
Pytest configuration and shared fixtures for ArticleFlow Publisher tests.
"""
import io
import sys
import pytest
from pathlib import Path
from typing import Dict, List, Optional

from PIL import Image

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.diagrams.errors import FetchForEmbedError, UploadError
from core.diagrams.renderer import RenderErrorKind, RenderResult
from core.storage.record_store import DocumentRecord, InMemoryRecordStore


# ============================================================================
# Fakes
# ============================================================================

def make_png(width: int = 40, height: int = 20, color: str = "steelblue") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeStrategy:
    """Render strategy returning canned results and counting calls."""

    def __init__(self, name: str = "fake", image_bytes: Optional[bytes] = None, fail_with=None):
        self.name = name
        self.image_bytes = image_bytes
        self.fail_with = fail_with
        self.calls: List[str] = []

    async def attempt(self, source_code: str) -> RenderResult:
        self.calls.append(source_code)
        if self.fail_with is not None:
            return RenderResult.failure(self.fail_with, f"{self.name} failed", strategy=self.name)
        return RenderResult.ok(self.image_bytes, "image/png", self.name)


class FakeImageStore:
    """Dict-backed image store; optionally fails every upload."""

    base_url = "https://cdn.test"

    def __init__(self, fail_uploads: bool = False):
        self.fail_uploads = fail_uploads
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.upload_calls: List[str] = []
        self.fetch_calls: List[str] = []

    async def upload(self, data: bytes, content_type: str, key: str) -> str:
        self.upload_calls.append(key)
        if self.fail_uploads:
            raise UploadError(f"bucket unavailable for {key}")
        self.objects[key] = data
        self.content_types[key] = content_type
        return f"{self.base_url}/{key}"

    async def fetch(self, url: str) -> bytes:
        self.fetch_calls.append(url)
        key = url[len(self.base_url) + 1:] if url.startswith(self.base_url + "/") else url
        if key not in self.objects:
            raise FetchForEmbedError(f"not found: {url}")
        return self.objects[key]


class FailingRecordStore:
    """Record store whose every call raises."""

    async def get_document(self, document_id: str):
        raise ConnectionError("database is down")

    async def update_document(self, document_id: str, fields):
        raise ConnectionError("database is down")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def png_bytes() -> bytes:
    """Small valid PNG."""
    return make_png()


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    """In-memory store holding one empty article with id 'doc-1'."""
    store = InMemoryRecordStore()
    store.put(DocumentRecord(id="doc-1", title="Test Article", content=""))
    return store


@pytest.fixture
def image_store() -> FakeImageStore:
    return FakeImageStore()


@pytest.fixture
def ok_strategy(png_bytes) -> FakeStrategy:
    return FakeStrategy(name="primary", image_bytes=png_bytes)


@pytest.fixture
def failing_strategy() -> FakeStrategy:
    return FakeStrategy(name="primary", fail_with=RenderErrorKind.TRANSIENT)


@pytest.fixture
def sample_markdown() -> str:
    """Article with every block kind and one diagram."""
    return (
        "# System Overview\n"
        "\n"
        "Intro with **bold**, *italic* and `code`.\n"
        "\n"
        "## Architecture\n"
        "\n"
        "- First point\n"
        "- Second point\n"
        "\n"
        "```mermaid\n"
        "graph TD\n"
        "A-->B\n"
        "```\n"
        "\n"
        "## Data\n"
        "\n"
        "| Name | Value |\n"
        "|------|-------|\n"
        "| a    | 1     |\n"
        "| b    | 2     |\n"
        "\n"
        "```python\n"
        "print('hi')\n"
        "```\n"
    )


@pytest.fixture
def strategy_factory():
    """FakeStrategy class, for tests that build their own chains."""
    return FakeStrategy


@pytest.fixture
def failing_image_store() -> FakeImageStore:
    return FakeImageStore(fail_uploads=True)


@pytest.fixture
def failing_record_store() -> FailingRecordStore:
    return FailingRecordStore()


@pytest.fixture
def png_factory():
    """make_png, for tests needing specific dimensions."""
    return make_png
