"""
Dimension probing for source images.

Pillow's Image.open only parses the header, so probing never decodes the
raster. The full decode happens once, in the resampler.
"""

import io
import logging

from PIL import Image, UnidentifiedImageError

from .errors import DecodeError
from .models import Dimensions, SourceImage

logger = logging.getLogger(__name__)

EXIF_ORIENTATION_TAG = 0x0112

# Orientations 5-8 rotate by 90 degrees, so the displayed size is transposed
TRANSPOSING_ORIENTATIONS = {5, 6, 7, 8}


def open_source(image: SourceImage) -> Image.Image:
    """
    Open the source bytes lazily (header only).

    Raises:
        DecodeError: If the buffer is empty, not declared as an image, or
            not identifiable by Pillow.
    """
    if not image.data:
        raise DecodeError("Source image is empty")
    if not image.content_type.startswith("image/"):
        raise DecodeError(f"Invalid file type: {image.content_type!r}")

    try:
        return Image.open(io.BytesIO(image.data))
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Cannot decode {image.content_type} source: {e}") from e


def probe_dimensions(image: SourceImage) -> Dimensions:
    """Report the displayed pixel size of the source image."""
    with open_source(image) as img:
        width, height = img.size
        orientation = 1
        # Only read EXIF already parsed from the header; PNG getexif() would load pixels
        if "exif" in img.info:
            try:
                orientation = img.getexif().get(EXIF_ORIENTATION_TAG, 1)
            except (OSError, SyntaxError, ValueError) as e:
                logger.debug("Ignoring unreadable EXIF block: %s", e)

    if width <= 0 or height <= 0:
        raise DecodeError(f"Source image has invalid dimensions ({width}x{height})")

    if orientation in TRANSPOSING_ORIENTATIONS:
        width, height = height, width

    logger.debug("Probed %s source: %dx%d", image.content_type, width, height)
    return Dimensions(width=width, height=height)
