"""
Image Store adapters: upload rendered bytes, fetch them back for embedding.

Upload keys are deterministic per (document, cache key), so re-uploading
identical bytes overwrites the same object and never breaks an existing
reference.
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import unquote, urlparse

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError

from config.constants import FETCH_TIMEOUT_SECONDS, FETCH_USER_AGENT
from config.logging_config import get_logger
from core.diagrams.errors import FetchForEmbedError, UploadError

logger = get_logger(__name__)


class ImageStore(Protocol):
    """Durable, publicly fetchable image storage."""

    async def upload(self, data: bytes, content_type: str, key: str) -> str:
        """Store bytes under key and return the public URL. Raises UploadError."""
        ...

    async def fetch(self, url: str) -> bytes:
        """Return the bytes behind a URL. Raises FetchForEmbedError."""
        ...


def diagram_upload_key(document_id: str, cache_key: str, extension: str) -> str:
    """
    Object key for a rendered diagram.

    Examples:
        >>> diagram_upload_key("42", "mermaid-1a2b3c4d", "webp")
        'articles/42/diagrams/mermaid-1a2b3c4d.webp'
    """
    return f"articles/{document_id}/diagrams/{cache_key}.{extension}"


async def fetch_image_bytes(
    url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: float = FETCH_TIMEOUT_SECONDS,
    file_root: Optional[Path] = None,
) -> bytes:
    """
    Download image bytes from an http(s) URL, or a file:// URL under file_root.

    file:// URLs are rejected unless file_root is given, and then only paths
    inside it are read.

    Raises:
        FetchForEmbedError: On a malformed URL, transport error, non-2xx status or empty body
    """
    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise FetchForEmbedError(f"Malformed image URL {url!r}: {e}") from e

    if parsed.scheme == "file":
        if file_root is None:
            raise FetchForEmbedError(f"Unsupported image URL: {url}")
        root = Path(file_root).resolve()
        path = Path(unquote(parsed.path)).resolve()
        if root not in path.parents:
            raise FetchForEmbedError(f"File URL outside image storage: {url}")
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise FetchForEmbedError(f"Cannot read {url}: {e}") from e
        if not data:
            raise FetchForEmbedError(f"Empty file: {url}")
        return data

    if parsed.scheme not in ("http", "https"):
        raise FetchForEmbedError(f"Unsupported image URL: {url}")

    try:
        async with httpx.AsyncClient(
            transport=transport,
            timeout=timeout,
            headers={"User-Agent": FETCH_USER_AGENT},
            follow_redirects=True,
        ) as client:
            response = await client.get(url)
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
        raise FetchForEmbedError(f"Failed to fetch {url}: {e}") from e

    if not response.is_success:
        raise FetchForEmbedError(f"Failed to fetch {url}: HTTP {response.status_code}")
    if not response.content:
        raise FetchForEmbedError(f"Empty response from {url}")
    return response.content


class LocalImageStore:
    """
    Filesystem image store.

    Files land under ``root_dir/<key>``. URLs are ``public_base_url/<key>``
    when a base URL is configured (e.g. a static mount), else file:// URIs.
    """

    def __init__(
        self,
        root_dir: str | Path,
        public_base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.root_dir = Path(root_dir).resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.transport = transport

    def _path_for(self, key: str) -> Path:
        path = (self.root_dir / key).resolve()
        if self.root_dir not in path.parents:
            raise UploadError(f"Key escapes storage root: {key}")
        return path

    def url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return self._path_for(key).as_uri()

    def _write(self, path: Path, data: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def upload(self, data: bytes, content_type: str, key: str) -> str:
        if not data:
            raise UploadError(f"Refusing to store empty image for {key}")
        path = self._path_for(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise UploadError(f"Failed to write {key}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes ({content_type}) at {path}")
        return self.url_for(key)

    async def fetch(self, url: str) -> bytes:
        if self.public_base_url and url.startswith(self.public_base_url + "/"):
            key = url[len(self.public_base_url) + 1:]
            try:
                return await asyncio.to_thread(self._path_for(key).read_bytes)
            except (OSError, UploadError) as e:
                raise FetchForEmbedError(f"Cannot read {url}: {e}") from e
        return await fetch_image_bytes(url, transport=self.transport, file_root=self.root_dir)


class S3ImageStore:
    """
    S3-compatible object storage (AWS S3, Cloudflare R2, MinIO).

    ``public_url`` is the externally visible prefix of the bucket, e.g. an
    R2 public bucket domain.
    """

    def __init__(
        self,
        bucket: str,
        public_url: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        region: str = "auto",
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._public_url = public_url.rstrip("/") if public_url else None
        self._s3_client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )
        self.transport = transport

    def url_for(self, key: str) -> str:
        if self._public_url:
            return f"{self._public_url}/{key}"
        if self._endpoint_url:
            return f"{self._endpoint_url.rstrip('/')}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.amazonaws.com/{key}"

    async def upload(self, data: bytes, content_type: str, key: str) -> str:
        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000, immutable",
            )
        except (ClientError, BotoCoreError) as e:
            raise UploadError(f"S3 upload failed for {key}: {e}") from e
        return self.url_for(key)

    async def fetch(self, url: str) -> bytes:
        return await fetch_image_bytes(url, transport=self.transport)


def build_image_store(settings) -> ImageStore:
    """Create the image store selected by settings."""
    if settings.image_store_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET not set in .env")
        return S3ImageStore(
            bucket=settings.s3_bucket,
            public_url=settings.s3_public_url,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
        )
    return LocalImageStore(settings.storage_dir, settings.public_base_url)
