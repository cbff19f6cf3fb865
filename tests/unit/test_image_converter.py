"""
Unit tests for core/diagrams/converter.py - image re-encoding
"""
import io

import pytest
from PIL import Image

from core.diagrams.converter import (
    ConversionProfile, ImageFormat, PRINT_PROFILE, WEB_PROFILE,
    convert_image, ensure_svg_dimensions, extension_for_mime, get_profile,
    image_size, looks_like_svg, to_embeddable_png,
)
from core.diagrams.errors import ImageConversionError


SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="100%" viewBox="0 0 120 60">'
    '<rect x="0" y="0" width="120" height="60" fill="#336699"/></svg>'
)


def cairo_available() -> bool:
    try:
        import cairosvg  # noqa: F401
    except (ImportError, OSError):
        return False
    return True


requires_cairo = pytest.mark.skipif(not cairo_available(), reason="cairosvg/libcairo not installed")


def image_format(data: bytes) -> str:
    return Image.open(io.BytesIO(data)).format


class TestProfiles:
    """Test presets."""

    def test_presets(self):
        """PRINT is PNG at 2x, WEB is WEBP at 1.5x quality 90."""
        assert PRINT_PROFILE.format == ImageFormat.PNG
        assert PRINT_PROFILE.scale == 2.0
        assert WEB_PROFILE.format == ImageFormat.WEBP
        assert WEB_PROFILE.scale == 1.5
        assert WEB_PROFILE.quality == 90

    def test_get_profile(self):
        """Profiles are looked up by name."""
        assert get_profile("WEB") is WEB_PROFILE
        with pytest.raises(ValueError):
            get_profile("poster")

    def test_extension_for_mime(self):
        """Upload extensions follow the mime type."""
        assert extension_for_mime("image/webp") == "webp"
        assert extension_for_mime("image/jpeg") == "jpg"
        assert extension_for_mime("image/svg+xml") == "svg"


class TestSvgDimensions:
    """Test SVG sizing."""

    def test_dimensions_from_viewbox(self):
        """Width/height are taken from the viewBox."""
        fixed = ensure_svg_dimensions(SVG)
        assert 'width="120"' in fixed
        assert 'height="60"' in fixed
        assert 'width="100%"' not in fixed

    def test_default_dimensions(self):
        """Without a viewBox the default 800x600 applies."""
        fixed = ensure_svg_dimensions('<svg xmlns="http://www.w3.org/2000/svg"></svg>')
        assert 'width="800" height="600"' in fixed

    def test_explicit_dimensions_untouched(self):
        """An SVG that is already sized is returned as-is."""
        svg = '<svg width="10" height="20"></svg>'
        assert ensure_svg_dimensions(svg) == svg

    def test_looks_like_svg(self):
        """SVG sniffing handles an XML prolog."""
        assert looks_like_svg(SVG.encode())
        assert looks_like_svg(b'<?xml version="1.0"?>\n' + SVG.encode())
        assert not looks_like_svg(b"\x89PNG\r\n")


class TestConvertImage:
    """Test raster and vector conversion."""

    def test_png_to_webp(self, png_bytes):
        """Raster input is re-encoded to the profile format."""
        data, mime = convert_image(png_bytes, "image/png", WEB_PROFILE)
        assert mime == "image/webp"
        assert image_format(data) == "WEBP"

    def test_raster_is_not_rescaled(self, png_factory):
        """Raster sources keep their pixel size."""
        data, _ = convert_image(png_factory(30, 10), "image/png", PRINT_PROFILE)
        assert image_size(data) == (30, 10)

    def test_png_to_jpeg_flattens_alpha(self):
        """RGBA input becomes RGB for JPEG."""
        buffer = io.BytesIO()
        Image.new("RGBA", (8, 8), (255, 0, 0, 128)).save(buffer, format="PNG")
        data, mime = convert_image(buffer.getvalue(), "image/png", ConversionProfile(format=ImageFormat.JPEG))
        assert mime == "image/jpeg"
        assert Image.open(io.BytesIO(data)).mode == "RGB"

    def test_garbage_raises(self):
        """Undecodable input raises ImageConversionError."""
        with pytest.raises(ImageConversionError):
            convert_image(b"not an image", "image/png", WEB_PROFILE)

    def test_empty_raises(self):
        """Empty input raises ImageConversionError."""
        with pytest.raises(ImageConversionError):
            convert_image(b"", "image/png", WEB_PROFILE)

    def test_raster_to_svg_rejected(self, png_bytes):
        """Raster cannot become vector."""
        with pytest.raises(ImageConversionError):
            convert_image(png_bytes, "image/png", ConversionProfile(format=ImageFormat.SVG))

    @requires_cairo
    def test_svg_rasterized_at_scale(self):
        """SVG is rasterized at viewBox size times the profile scale."""
        data, mime = convert_image(SVG.encode(), "image/svg+xml", PRINT_PROFILE)
        assert mime == "image/png"
        assert image_size(data) == (240, 120)


class TestToEmbeddablePng:
    """Test normalization for OOXML embedding."""

    def test_png_passthrough(self, png_bytes):
        """PNG bytes are returned untouched."""
        assert to_embeddable_png(png_bytes) == png_bytes

    def test_webp_converted(self, png_bytes):
        """WEBP becomes PNG."""
        webp, _ = convert_image(png_bytes, "image/png", WEB_PROFILE)
        assert image_format(to_embeddable_png(webp)) == "PNG"

    @requires_cairo
    def test_svg_converted(self):
        """SVG becomes PNG."""
        assert image_format(to_embeddable_png(SVG.encode())) == "PNG"
