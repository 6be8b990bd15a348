"""
Format Encoder

Encodes a resampled PixelBuffer into one target format at a given quality.
The codec itself is a pluggable backend:

- PillowBackend: Pillow's JPEG/WebP/PNG plugins (default)
- OpenCVBackend: cv2.imencode

Any backend failure surfaces as EncodeError naming the format, so one
format failing never affects the others.
"""

import io
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import cv2
from PIL import Image, features

from .errors import EncodeError
from .models import EncodedCandidate, PixelBuffer, TargetFormat

logger = logging.getLogger(__name__)

# Near-lossless by default; callers can trade quality for size
DEFAULT_QUALITY = 0.99

# Declared content types that name the same format as a TargetFormat
CONTENT_TYPE_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
    "image/x-png": "image/png",
}


def _percent(quality: float) -> int:
    return max(1, min(100, int(round(quality * 100))))


def normalize_content_type(content_type: Optional[str]) -> Optional[str]:
    if content_type is None:
        return None
    content_type = content_type.split(";")[0].strip().lower()
    return CONTENT_TYPE_ALIASES.get(content_type, content_type)


class EncoderBackend(ABC):
    """Interface for codecs: given pixels, format and quality, produce bytes."""

    name = "base"

    @abstractmethod
    def supports(self, target: TargetFormat) -> bool:
        """Whether this backend can write target in the current environment."""

    @abstractmethod
    def encode_bytes(self, buffer: PixelBuffer, target: TargetFormat, quality: float) -> bytes:
        """Encode buffer; quality is already validated to lie in [0, 1]."""


class PillowBackend(EncoderBackend):
    """Encode with Pillow's built-in plugins."""

    name = "pillow"

    # Format-specific settings
    FORMAT_CONFIG = {
        TargetFormat.JPEG: {
            'pil_format': 'JPEG',
            'feature': 'jpg',
            'keeps_alpha': False,
            'save_kwargs': lambda q: {'quality': _percent(q), 'optimize': True, 'progressive': True},
        },
        TargetFormat.WEBP: {
            'pil_format': 'WEBP',
            'feature': 'webp',
            'keeps_alpha': True,
            'save_kwargs': lambda q: {'quality': _percent(q), 'method': 6},
        },
        TargetFormat.PNG: {
            # Lossless; quality only picks the zlib effort
            'pil_format': 'PNG',
            'feature': 'zlib',
            'keeps_alpha': True,
            'save_kwargs': lambda q: {'compress_level': int(round(q * 9))},
        },
    }

    def supports(self, target: TargetFormat) -> bool:
        config = self.FORMAT_CONFIG.get(target)
        return config is not None and bool(features.check(config['feature']))

    def encode_bytes(self, buffer: PixelBuffer, target: TargetFormat, quality: float) -> bytes:
        config = self.FORMAT_CONFIG[target]
        img = buffer.to_image()

        # JPEG has no alpha channel
        if not config['keeps_alpha']:
            img = img.convert('RGB')

        out = io.BytesIO()
        img.save(out, format=config['pil_format'], **config['save_kwargs'](quality))
        return out.getvalue()


class OpenCVBackend(EncoderBackend):
    """Encode with OpenCV's imencode."""

    name = "opencv"

    FORMAT_CONFIG = {
        TargetFormat.JPEG: {
            'extension': '.jpg',
            'conversion': cv2.COLOR_RGBA2BGR,
            'params': lambda q: [cv2.IMWRITE_JPEG_QUALITY, _percent(q)],
        },
        TargetFormat.WEBP: {
            'extension': '.webp',
            'conversion': cv2.COLOR_RGBA2BGRA,
            'params': lambda q: [cv2.IMWRITE_WEBP_QUALITY, _percent(q)],
        },
        TargetFormat.PNG: {
            'extension': '.png',
            'conversion': cv2.COLOR_RGBA2BGRA,
            'params': lambda q: [cv2.IMWRITE_PNG_COMPRESSION, int(round(q * 9))],
        },
    }

    def supports(self, target: TargetFormat) -> bool:
        config = self.FORMAT_CONFIG.get(target)
        return config is not None and bool(cv2.haveImageWriter(config['extension']))

    def encode_bytes(self, buffer: PixelBuffer, target: TargetFormat, quality: float) -> bytes:
        config = self.FORMAT_CONFIG[target]
        pixels = cv2.cvtColor(buffer.as_array(), config['conversion'])
        ok, encoded = cv2.imencode(config['extension'], pixels, config['params'](quality))
        if not ok:
            raise EncodeError(target.label, "cv2.imencode returned no data")
        return encoded.tobytes()


class FormatEncoder:
    """
    Encode pixel buffers into EncodedCandidates.

    Example:
        encoder = FormatEncoder()
        candidate = encoder.encode(buffer, TargetFormat.WEBP, 0.99, "image/jpeg")
        print(candidate.byte_size, candidate.is_original_format)
    """

    def __init__(self, backend: Optional[EncoderBackend] = None):
        self.backend = backend or PillowBackend()

    def available_formats(self) -> Dict[TargetFormat, bool]:
        """Which target formats the backend can write in this environment."""
        return {target: self.backend.supports(target) for target in TargetFormat}

    def encode(
        self,
        buffer: PixelBuffer,
        target: TargetFormat,
        quality: float = DEFAULT_QUALITY,
        source_type: Optional[str] = None
    ) -> EncodedCandidate:
        """
        Encode buffer as target.

        Args:
            buffer: Resampled pixels (not modified)
            target: Output format
            quality: Encoder quality in [0, 1]
            source_type: Declared content type of the source, used to flag
                candidates that keep the original format

        Raises:
            EncodeError: For any failure of this one format
        """
        if not 0.0 <= quality <= 1.0:
            raise EncodeError(target.label, f"quality {quality} is outside [0, 1]")
        if buffer.width <= 0 or buffer.height <= 0:
            raise EncodeError(
                target.label, f"invalid buffer dimensions {buffer.width}x{buffer.height}"
            )
        if not self.backend.supports(target):
            raise EncodeError(
                target.label,
                f"{target.mime_type} encoding is not supported by the {self.backend.name} backend "
                f"in this environment"
            )

        try:
            data = self.backend.encode_bytes(buffer, target, quality)
        except EncodeError:
            raise
        except Exception as e:
            raise EncodeError(target.label, f"{type(e).__name__}: {e}") from e

        if not data:
            raise EncodeError(target.label, "encoder produced no data")

        logger.debug(
            "Encoded %dx%d as %s (q=%.2f): %d bytes",
            buffer.width, buffer.height, target.label, quality, len(data)
        )
        return EncodedCandidate(
            format=target,
            data=data,
            byte_size=len(data),
            is_original_format=normalize_content_type(source_type) == target.mime_type,
            quality=quality,
        )
