"""
Resampling of the source image to the preview width.

Every source goes through the same decode, resize and sharpen pass, even
when it already fits, so all candidates start from a comparable raster.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageFilter, ImageOps

from .errors import DecodeError, ResampleError
from .models import Dimensions, PixelBuffer, ResizeSpec, SourceImage
from .probe import open_source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResampleEngine:
    """
    Resize filter and unsharp-mask settings.

    Defaults mirror a high-quality Lanczos downscale followed by a light
    unsharp mask (amount 160%, radius 0.6px, threshold 1).
    """
    resample_filter: Image.Resampling = Image.Resampling.LANCZOS
    unsharp_radius: float = 0.6
    unsharp_percent: int = 160
    unsharp_threshold: int = 1

    def resize(self, image: Image.Image, size: Tuple[int, int]) -> Image.Image:
        """Resize an RGBA image and sharpen its colour bands."""
        # Pillow premultiplies alpha internally when resizing RGBA
        resized = image.resize(size, self.resample_filter)
        alpha = resized.getchannel("A")
        sharpened = resized.convert("RGB").filter(
            ImageFilter.UnsharpMask(
                radius=self.unsharp_radius,
                percent=self.unsharp_percent,
                threshold=self.unsharp_threshold,
            )
        )
        sharpened.putalpha(alpha)
        return sharpened


def target_size(dimensions: Dimensions, spec: ResizeSpec) -> Tuple[int, int]:
    """
    Compute output size for a source of the given dimensions.

    Raises:
        ResampleError: If max_width is not positive or the computed height
            rounds to zero.
    """
    if spec.max_width <= 0:
        raise ResampleError(f"max_width must be positive, got {spec.max_width}")

    if dimensions.width <= spec.max_width:
        return dimensions.width, dimensions.height

    width = spec.max_width
    height = int(round(width / dimensions.aspect_ratio))
    if height <= 0:
        raise ResampleError(
            f"Resizing {dimensions.width}x{dimensions.height} to width {width} "
            f"gives an empty image"
        )
    return width, height


class Resampler:
    """
    Produces the single resampled PixelBuffer every encoder branch shares.

    Example:
        resampler = Resampler()
        buffer = resampler.resample(source, ResizeSpec(max_width=1000))
    """

    def __init__(self, engine: Optional[ResampleEngine] = None):
        self.engine = engine or ResampleEngine()

    def decode(self, image: SourceImage) -> Image.Image:
        """
        Fully decode the source into an upright RGBA image.

        Raises:
            ResampleError: If the bytes cannot be decoded.
        """
        try:
            with open_source(image) as img:
                img.load()
                upright = ImageOps.exif_transpose(img)
                return upright.convert("RGBA")
        except DecodeError as e:
            raise ResampleError(str(e)) from e
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
            raise ResampleError(f"Failed to decode {image.content_type} source: {e}") from e

    def resample(self, image: SourceImage, spec: ResizeSpec) -> PixelBuffer:
        """
        Resize the source to fit spec.max_width, preserving aspect ratio.

        The target size comes from the decoded, EXIF-upright raster, so a
        header that disagrees with the pixel data cannot distort the output.

        Args:
            image: Source image bytes
            spec: Resize constraint

        Raises:
            ResampleError: On decode failure or invalid geometry
        """
        decoded = self.decode(image)
        size = target_size(Dimensions(*decoded.size), spec)

        try:
            resized = self.engine.resize(decoded, size)
        except (OSError, ValueError, MemoryError) as e:
            raise ResampleError(f"Failed to resize to {size[0]}x{size[1]}: {e}") from e

        logger.debug(
            "Resampled %dx%d -> %dx%d",
            decoded.width, decoded.height, size[0], size[1]
        )
        return PixelBuffer.from_image(resized)


def resample(
    image: SourceImage,
    spec: ResizeSpec,
    engine: Optional[ResampleEngine] = None
) -> PixelBuffer:
    """Resample with a one-off Resampler."""
    return Resampler(engine).resample(image, spec)
