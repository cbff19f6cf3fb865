"""
Image prefetch shared by the assemblers.

OOXML containers embed PNG/JPEG reliably; everything else (SVG, WEBP) is
converted before embedding.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

from config.logging_config import get_logger
from core.diagrams.converter import to_embeddable_png
from core.diagrams.errors import FetchForEmbedError, ImageConversionError
from core.markdown.blocks import Block, ImageBlock, DiagramPlaceholder

logger = get_logger(__name__)

ImageFetcher = Callable[[str], Awaitable[bytes]]


def block_image_url(block: Block) -> Optional[str]:
    """URL an image-bearing block points at, if any."""
    if isinstance(block, ImageBlock):
        return block.url
    if isinstance(block, DiagramPlaceholder) and block.is_resolved:
        return block.resolved_image_url
    return None


def image_urls_in(blocks: List[Block]) -> List[str]:
    """Distinct image URLs, in document order."""
    urls: List[str] = []
    for block in blocks:
        url = block_image_url(block)
        if url and url not in urls:
            urls.append(url)
    return urls


async def prefetch_images(urls: List[str], fetcher: ImageFetcher) -> Dict[str, Optional[bytes]]:
    """
    Fetch and normalize every URL to embeddable bytes.

    A failed URL maps to None; one failure never affects the others.
    """
    async def load(url: str) -> Optional[bytes]:
        try:
            data = await fetcher(url)
            return await asyncio.to_thread(to_embeddable_png, data)
        except (FetchForEmbedError, ImageConversionError) as e:
            logger.warning(f"Skipping image {url}: {e}")
            return None
        except Exception as e:
            logger.warning(f"Skipping image {url}: unexpected {type(e).__name__}: {e}")
            return None

    results = await asyncio.gather(*(load(url) for url in urls))
    return dict(zip(urls, results))
