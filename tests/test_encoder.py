"""
Tests for the Format Encoder and its backends.
"""

import io
import unittest

from PIL import Image

from imgpreview.encoder import EncoderBackend, FormatEncoder, OpenCVBackend, PillowBackend
from imgpreview.errors import EncodeError
from imgpreview.models import PixelBuffer, ResizeSpec, TargetFormat
from imgpreview.resampler import Resampler

from helpers import make_source, make_transparent_source


class ExplodingBackend(PillowBackend):
    """Backend whose codec crashes for one format."""

    def __init__(self, broken):
        self.broken = broken

    def encode_bytes(self, buffer, target, quality):
        if target is self.broken:
            raise MemoryError("simulated out-of-memory")
        return super().encode_bytes(buffer, target, quality)


class NoWebPBackend(PillowBackend):
    """Backend built without WebP support."""

    def supports(self, target):
        return target is not TargetFormat.WEBP and super().supports(target)


class TestFormatEncoder(unittest.TestCase):
    """Test encoding through the default Pillow backend."""

    def setUp(self):
        self.encoder = FormatEncoder()
        self.buffer = Resampler().resample(make_source(size=(160, 120)), ResizeSpec(1000))

    def test_formats_decode(self):
        """Each candidate is a valid image of the requested format and size."""
        for target in TargetFormat:
            candidate = self.encoder.encode(self.buffer, target, 0.99, "image/png")
            self.assertEqual(candidate.byte_size, len(candidate.data))
            with Image.open(io.BytesIO(candidate.data)) as img:
                self.assertEqual(Image.MIME[img.format], target.mime_type)
                self.assertEqual(img.size, (160, 120))

    def test_original_format_flag(self):
        """Only the format matching the declared source type is flagged."""
        flags = {
            target: self.encoder.encode(self.buffer, target, 0.99, "image/png").is_original_format
            for target in TargetFormat
        }
        self.assertEqual(
            flags,
            {TargetFormat.JPEG: False, TargetFormat.WEBP: False, TargetFormat.PNG: True}
        )

    def test_jpg_alias(self):
        """'image/jpg' counts as JPEG."""
        candidate = self.encoder.encode(self.buffer, TargetFormat.JPEG, 0.99, "image/jpg")
        self.assertTrue(candidate.is_original_format)

    def test_deterministic(self):
        """Same buffer, format and quality give identical bytes."""
        for target in TargetFormat:
            first = self.encoder.encode(self.buffer, target, 0.9)
            second = self.encoder.encode(self.buffer, target, 0.9)
            self.assertEqual(first.data, second.data)

    def test_quality_is_tunable(self):
        """Lower quality gives smaller lossy output."""
        high = self.encoder.encode(self.buffer, TargetFormat.JPEG, 0.99)
        low = self.encoder.encode(self.buffer, TargetFormat.JPEG, 0.3)
        self.assertLess(low.byte_size, high.byte_size)
        self.assertEqual(low.quality, 0.3)

    def test_png_is_lossless(self):
        """PNG round-trips the RGBA pixels exactly at any quality."""
        for quality in (0.0, 0.5, 1.0):
            candidate = self.encoder.encode(self.buffer, TargetFormat.PNG, quality)
            with Image.open(io.BytesIO(candidate.data)) as img:
                self.assertEqual(img.convert('RGBA').tobytes(), self.buffer.data)

    def test_webp_keeps_alpha(self):
        """WebP output carries the alpha channel; JPEG drops it."""
        buffer = Resampler().resample(make_transparent_source(), ResizeSpec(1000))
        webp = self.encoder.encode(buffer, TargetFormat.WEBP, 0.99)
        jpeg = self.encoder.encode(buffer, TargetFormat.JPEG, 0.99)
        with Image.open(io.BytesIO(webp.data)) as img:
            self.assertEqual(img.mode, 'RGBA')
        with Image.open(io.BytesIO(jpeg.data)) as img:
            self.assertEqual(img.mode, 'RGB')

    def test_quality_out_of_range(self):
        with self.assertRaises(EncodeError):
            self.encoder.encode(self.buffer, TargetFormat.JPEG, 1.5)
        with self.assertRaises(EncodeError):
            self.encoder.encode(self.buffer, TargetFormat.JPEG, -0.1)

    def test_zero_area_buffer(self):
        """Empty buffers are rejected with the format named."""
        with self.assertRaises(EncodeError) as ctx:
            self.encoder.encode(PixelBuffer(0, 0, b""), TargetFormat.PNG, 0.99)
        self.assertEqual(ctx.exception.format, "PNG")

    def test_codec_failure_wrapped(self):
        """Codec exceptions surface as EncodeError naming the format."""
        encoder = FormatEncoder(ExplodingBackend(TargetFormat.WEBP))
        with self.assertRaises(EncodeError) as ctx:
            encoder.encode(self.buffer, TargetFormat.WEBP, 0.99)
        self.assertIn("WebP", str(ctx.exception))
        self.assertIn("MemoryError", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, MemoryError)

        # Other formats are unaffected
        candidate = encoder.encode(self.buffer, TargetFormat.JPEG, 0.99)
        self.assertGreater(candidate.byte_size, 0)

    def test_unsupported_format(self):
        """A format missing from the environment fails with EncodeError."""
        encoder = FormatEncoder(NoWebPBackend())
        self.assertFalse(encoder.available_formats()[TargetFormat.WEBP])
        with self.assertRaises(EncodeError) as ctx:
            encoder.encode(self.buffer, TargetFormat.WEBP, 0.99)
        self.assertIn("not supported", str(ctx.exception))


class TestEncoderBackend(unittest.TestCase):
    """Test the backend interface contract."""

    def test_incomplete_backend_rejected(self):
        """A backend without supports() cannot be instantiated."""
        class EncodeOnly(EncoderBackend):
            def encode_bytes(self, buffer, target, quality):
                return b"data"

        with self.assertRaises(TypeError):
            EncodeOnly()

    def test_interface_not_instantiable(self):
        with self.assertRaises(TypeError):
            EncoderBackend()

    def test_custom_backend(self):
        """A complete third-party backend plugs into FormatEncoder."""
        class PngOnly(EncoderBackend):
            name = "png-only"

            def supports(self, target):
                return target is TargetFormat.PNG

            def encode_bytes(self, buffer, target, quality):
                out = io.BytesIO()
                buffer.to_image().save(out, format='PNG')
                return out.getvalue()

        encoder = FormatEncoder(PngOnly())
        buffer = Resampler().resample(make_source(size=(64, 48)), ResizeSpec(1000))
        candidate = encoder.encode(buffer, TargetFormat.PNG, 0.99)
        self.assertGreater(candidate.byte_size, 0)
        with self.assertRaises(EncodeError) as ctx:
            encoder.encode(buffer, TargetFormat.JPEG, 0.99)
        self.assertIn("png-only", str(ctx.exception))


class TestOpenCVBackend(unittest.TestCase):
    """Test the OpenCV backend behind the same interface."""

    def setUp(self):
        self.encoder = FormatEncoder(OpenCVBackend())
        self.buffer = Resampler().resample(make_source(size=(160, 120)), ResizeSpec(1000))

    def test_formats_decode(self):
        """Supported formats decode back to the same size."""
        for target in TargetFormat:
            if not self.encoder.backend.supports(target):
                continue
            candidate = self.encoder.encode(self.buffer, target, 0.99)
            with Image.open(io.BytesIO(candidate.data)) as img:
                self.assertEqual(Image.MIME[img.format], target.mime_type)
                self.assertEqual(img.size, (160, 120))

    def test_png_channel_order(self):
        """Channels are written in RGB order despite OpenCV's BGR layout."""
        candidate = self.encoder.encode(self.buffer, TargetFormat.PNG, 0.99)
        with Image.open(io.BytesIO(candidate.data)) as img:
            self.assertEqual(img.convert('RGBA').tobytes(), self.buffer.data)


if __name__ == '__main__':
    unittest.main()
