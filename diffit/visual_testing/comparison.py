"""
Screenshot Comparison

Pillow implementations of the decoder, comparator and encoder collaborators.
The comparator works band-wise with ImageChops rather than per-pixel Python
loops, so full-page screenshots stay fast.
"""

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageChops, ImageOps, UnidentifiedImageError

from diffit.core.exceptions import DecodeError

logger = logging.getLogger(__name__)

# Highlight colour for differing pixels in the visual diff
DIFF_COLOR = (255, 0, 0, 255)
# Opacity of the greyed-out base image under the highlights
BASE_ALPHA = 0.1


@dataclass
class ComparatorResult:
    """Result of comparing two decoded images"""

    equal: bool
    differing_pixel_count: int
    visual_diff: Image.Image | None


class PillowImageDecoder:
    """Decodes PNG/JPEG/etc. bytes with Pillow"""

    def decode(self, data: bytes) -> Image.Image:
        if not data:
            raise DecodeError("Image data is empty")
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (
            UnidentifiedImageError,
            OSError,
            ValueError,
            SyntaxError,
            EOFError,
            Image.DecompressionBombError,
        ) as e:
            # Pillow reports broken PNG chunks as SyntaxError
            raise DecodeError(f"Unsupported or corrupt image: {e}") from e
        return image


class PngImageEncoder:
    """Encodes images as PNG, favouring speed over size"""

    def __init__(self, compress_level: int = 1):
        self.compress_level = compress_level

    def encode(self, image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG", compress_level=self.compress_level)
        return buffer.getvalue()


class ScreenshotComparator:
    """
    Compares screenshots pixel by pixel.

    A pixel differs when its largest per-channel difference (RGBA) exceeds
    ``threshold * 255``. Images of different sizes are laid on a shared
    transparent canvas, so any area covered by only one image counts as
    different.
    """

    def compare(
        self,
        image_a: Image.Image,
        image_b: Image.Image,
        threshold: float = 0.1,
        diff_image: bool = True,
    ) -> ComparatorResult:
        """
        Compare two images.

        Args:
            image_a: Base image
            image_b: Comparison image
            threshold: Per-pixel fractional tolerance in [0, 1]
            diff_image: Whether to render a visual diff when images differ

        Returns:
            ComparatorResult with equality, differing pixel count and visual diff
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0 and 1, got {threshold}")

        base = image_a.convert("RGBA")
        current = image_b.convert("RGBA")

        if base.size != current.size:
            logger.warning(f"Image size mismatch: base={base.size}, current={current.size}")
            base, current = self._align(base, current)

        mask = self._difference_mask(base, current, threshold)
        differing = mask.histogram()[255]

        if differing == 0:
            return ComparatorResult(equal=True, differing_pixel_count=0, visual_diff=None)

        visual_diff = self._render_diff(base, mask) if diff_image else None
        return ComparatorResult(equal=False, differing_pixel_count=differing, visual_diff=visual_diff)

    def _align(self, base: Image.Image, current: Image.Image) -> tuple[Image.Image, Image.Image]:
        """Pad both images onto a canvas covering their union"""
        size = (max(base.width, current.width), max(base.height, current.height))
        padded = []
        for image in (base, current):
            canvas = Image.new("RGBA", size, (0, 0, 0, 0))
            canvas.paste(image, (0, 0))
            padded.append(canvas)
        return padded[0], padded[1]

    def _difference_mask(
        self, base: Image.Image, current: Image.Image, threshold: float
    ) -> Image.Image:
        """Return an L-mode mask with 255 where pixels differ beyond tolerance"""
        r, g, b, a = ImageChops.difference(base, current).split()
        largest = ImageChops.lighter(ImageChops.lighter(r, g), ImageChops.lighter(b, a))
        cutoff = int(threshold * 255)
        return largest.point(lambda value: 255 if value > cutoff else 0)

    def _render_diff(self, base: Image.Image, mask: Image.Image) -> Image.Image:
        """Faded greyscale base with differing pixels painted red"""
        faded = ImageOps.grayscale(base).convert("RGBA")
        faded = Image.blend(Image.new("RGBA", base.size, (255, 255, 255, 255)), faded, BASE_ALPHA)
        highlight = Image.new("RGBA", base.size, DIFF_COLOR)
        return Image.composite(highlight, faded, mask)
