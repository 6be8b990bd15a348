"""
Synthetic test images shared by the test modules.
"""

import io
import struct
import zlib

import numpy as np
from PIL import Image

from imgpreview.models import SourceImage

MIME_BY_FORMAT = {
    'PNG': 'image/png',
    'JPEG': 'image/jpeg',
    'WEBP': 'image/webp',
}

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def make_array(size=(200, 100), noise=50, seed=0):
    """Gradient with some random variation, shaped (height, width, 3)."""
    width, height = size
    rng = np.random.default_rng(seed)
    img_array = np.zeros((height, width, 3), dtype=np.uint8)

    # Add gradient
    img_array[:, :, 0] = (255 * np.arange(height) / height).astype(np.uint8)[:, None]
    img_array[:, :, 1] = (255 * np.arange(width) / width).astype(np.uint8)[None, :]

    if noise:
        variation = rng.integers(0, noise, (height, width, 3))
        img_array = np.clip(img_array.astype(int) + variation, 0, 255).astype(np.uint8)
    return img_array


def encode_image(img, fmt='PNG', **save_kwargs):
    buffer = io.BytesIO()
    img.save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()


def make_source(size=(200, 100), fmt='PNG', noise=50, **save_kwargs):
    """Opaque test image encoded as a SourceImage."""
    img = Image.fromarray(make_array(size, noise))
    return SourceImage(encode_image(img, fmt, **save_kwargs), MIME_BY_FORMAT[fmt])


def make_transparent_source(size=(200, 100)):
    """PNG whose left half is fully transparent."""
    width, height = size
    rgba = np.zeros((height, width, 4), dtype=np.uint8)
    rgba[:, :, :3] = make_array(size)
    rgba[:, width // 2:, 3] = 255
    img = Image.fromarray(rgba)
    return SourceImage(encode_image(img, 'PNG'), 'image/png')


def png_chunk(kind, payload):
    return (
        struct.pack(">I", len(payload)) + kind + payload
        + struct.pack(">I", zlib.crc32(kind + payload) & 0xffffffff)
    )


def make_oversized_png(width=20000, height=20000):
    """Header-only PNG declaring a raster far beyond Pillow's pixel limit."""
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return PNG_SIGNATURE + png_chunk(b"IHDR", ihdr) + png_chunk(b"IEND", b"")


def make_png_with_trailing_exif(size=(40, 20), orientation=6):
    """
    PNG whose eXIf chunk follows the pixel data.

    Pillow only sees such EXIF after a full load, so the header size and
    the upright decoded size disagree.
    """
    data = encode_image(Image.new('RGB', size, 'red'), 'PNG')
    exif = Image.Exif()
    exif[0x0112] = orientation
    # Drop the 'Exif\0\0' prefix; PNG stores the bare TIFF structure
    exif_chunk = png_chunk(b"eXIf", exif.tobytes()[6:])
    iend = data[-12:]
    return SourceImage(data[:-12] + exif_chunk + iend, 'image/png')
