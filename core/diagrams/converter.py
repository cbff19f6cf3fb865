"""
Image format conversion for rendered diagrams.

Pure transforms: bytes in, bytes out. SVG goes through CairoSVG, raster
formats through Pillow. The caller picks a ConversionProfile by target
use (print-quality embed vs. web preview).
"""

import io
import re
from enum import Enum
from dataclasses import dataclass
from typing import Tuple

from PIL import Image

from config.constants import (
    SVG_DEFAULT_WIDTH, SVG_DEFAULT_HEIGHT,
    PRINT_SCALE, WEB_SCALE, WEB_QUALITY,
)
from config.logging_config import get_logger

from .errors import ImageConversionError

logger = get_logger(__name__)


class ImageFormat(Enum):
    """Output encodings."""
    PNG = "png"
    WEBP = "webp"
    JPEG = "jpeg"
    SVG = "svg"

    @property
    def mime_type(self) -> str:
        return MIME_BY_FORMAT[self]

    @property
    def extension(self) -> str:
        return "jpg" if self == ImageFormat.JPEG else self.value


MIME_BY_FORMAT = {
    ImageFormat.PNG: "image/png",
    ImageFormat.WEBP: "image/webp",
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.SVG: "image/svg+xml",
}

SVG_MIME_TYPES = ("image/svg+xml", "text/svg", "application/svg+xml")


@dataclass(frozen=True)
class ConversionProfile:
    """Target encoding, resolution multiplier and compression quality."""
    format: ImageFormat = ImageFormat.PNG
    scale: float = 1.0
    quality: int = 95


PRINT_PROFILE = ConversionProfile(format=ImageFormat.PNG, scale=PRINT_SCALE, quality=100)
WEB_PROFILE = ConversionProfile(format=ImageFormat.WEBP, scale=WEB_SCALE, quality=WEB_QUALITY)

PROFILES = {
    "print": PRINT_PROFILE,
    "web": WEB_PROFILE,
}


def get_profile(name: str) -> ConversionProfile:
    try:
        return PROFILES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown conversion profile: {name}")


def extension_for_mime(mime_type: str) -> str:
    """File extension used for upload keys."""
    for image_format, mime in MIME_BY_FORMAT.items():
        if mime == mime_type:
            return image_format.extension
    if mime_type in SVG_MIME_TYPES:
        return "svg"
    return "bin"


def looks_like_svg(data: bytes) -> bool:
    head = data[:512].lstrip().lower()
    return head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in data[:2048].lower())


_SVG_TAG = re.compile(r'<svg\b[^>]*>', re.IGNORECASE | re.DOTALL)
_VIEWBOX = re.compile(r'viewBox\s*=\s*["\']([^"\']+)["\']', re.IGNORECASE)


def ensure_svg_dimensions(svg_text: str) -> str:
    """
    Give the root <svg> explicit width/height.

    Mermaid emits SVGs sized only by viewBox (width="100%"), which
    rasterizers cannot size. Dimensions come from the viewBox, falling back
    to 800x600.
    """
    tag_match = _SVG_TAG.search(svg_text)
    if not tag_match:
        return svg_text

    tag = tag_match.group(0)
    has_width = re.search(r'\swidth\s*=\s*["\']\d+(\.\d+)?(px)?["\']', tag)
    has_height = re.search(r'\sheight\s*=\s*["\']\d+(\.\d+)?(px)?["\']', tag)
    if has_width and has_height:
        return svg_text

    width, height = SVG_DEFAULT_WIDTH, SVG_DEFAULT_HEIGHT
    viewbox = _VIEWBOX.search(tag)
    if viewbox:
        parts = re.split(r'[\s,]+', viewbox.group(1).strip())
        if len(parts) == 4:
            try:
                width = int(round(float(parts[2])))
                height = int(round(float(parts[3])))
            except ValueError:
                pass

    new_tag = re.sub(r'\s(width|height)\s*=\s*["\'][^"\']*["\']', '', tag)
    new_tag = new_tag[:-1].rstrip('/').rstrip() + f' width="{width}" height="{height}"'
    new_tag += '/>' if tag.endswith('/>') else '>'
    return svg_text[:tag_match.start()] + new_tag + svg_text[tag_match.end():]


def _rasterize_svg(data: bytes, scale: float) -> Image.Image:
    try:
        import cairosvg
    except (ImportError, OSError) as exc:
        raise ImageConversionError(
            "cairosvg (and the cairo system library) is required to convert SVG diagrams"
        ) from exc

    svg_text = ensure_svg_dimensions(data.decode("utf-8", errors="replace"))
    try:
        png_bytes = cairosvg.svg2png(bytestring=svg_text.encode("utf-8"), scale=scale)
    except Exception as exc:
        raise ImageConversionError(f"Failed to rasterize SVG: {exc}") from exc
    return Image.open(io.BytesIO(png_bytes))


def _open_raster(data: bytes, scale: float) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except Exception as exc:
        raise ImageConversionError(f"Unrecognized image data: {exc}") from exc

    if scale != 1.0:
        size = (max(1, int(image.width * scale)), max(1, int(image.height * scale)))
        image = image.resize(size, Image.LANCZOS)
    return image


def _encode(image: Image.Image, profile: ConversionProfile) -> bytes:
    buffer = io.BytesIO()
    if profile.format == ImageFormat.JPEG:
        if image.mode in ("RGBA", "LA", "P"):
            background = Image.new("RGB", image.size, (255, 255, 255))
            rgba = image.convert("RGBA")
            background.paste(rgba, mask=rgba.split()[-1])
            image = background
        image.save(buffer, format="JPEG", quality=profile.quality)
    elif profile.format == ImageFormat.WEBP:
        image.save(buffer, format="WEBP", quality=profile.quality)
    else:
        image.save(buffer, format="PNG", optimize=True)
    return buffer.getvalue()


def convert_image(data: bytes, mime_type: str, profile: ConversionProfile) -> Tuple[bytes, str]:
    """
    Re-encode image bytes according to a profile.

    Args:
        data: Source image bytes (SVG or any Pillow-readable raster)
        mime_type: Declared type of ``data``
        profile: Target format, scale and quality

    Returns:
        (converted bytes, mime type)

    Raises:
        ImageConversionError: If the input cannot be decoded or encoded
    """
    if not data:
        raise ImageConversionError("No image data to convert")

    is_svg = mime_type in SVG_MIME_TYPES or looks_like_svg(data)

    if profile.format == ImageFormat.SVG:
        if not is_svg:
            raise ImageConversionError("Raster input cannot be converted to SVG")
        return data, ImageFormat.SVG.mime_type

    if is_svg:
        image = _rasterize_svg(data, profile.scale)
    else:
        # Raster sources are already at render resolution
        image = _open_raster(data, 1.0)

    converted = _encode(image, profile)
    logger.debug(
        f"Converted {mime_type} ({len(data)} bytes) -> "
        f"{profile.format.value} ({len(converted)} bytes)"
    )
    return converted, profile.format.mime_type


def to_embeddable_png(data: bytes) -> bytes:
    """
    Normalize fetched image bytes to PNG for OOXML embedding.

    PNG and JPEG pass through untouched; SVG and WEBP are converted.
    """
    if looks_like_svg(data):
        converted, _ = convert_image(data, "image/svg+xml", ConversionProfile(scale=PRINT_SCALE))
        return converted

    image = _open_raster(data, 1.0)
    if image.format in ("PNG", "JPEG"):
        return data
    return _encode(image, ConversionProfile(format=ImageFormat.PNG))


def image_size(data: bytes) -> Tuple[int, int]:
    """Pixel size of raster bytes."""
    return _open_raster(data, 1.0).size
