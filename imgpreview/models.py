"""
Data model shared by the preview pipeline components.
"""

import io
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

UNKNOWN_CONTENT_TYPE = "application/octet-stream"


class TargetFormat(Enum):
    """Output formats, in the order results are reported."""
    JPEG = "image/jpeg"
    WEBP = "image/webp"
    PNG = "image/png"

    @property
    def mime_type(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return _FORMAT_LABELS[self]

    @property
    def extension(self) -> str:
        return _FORMAT_EXTENSIONS[self]


_FORMAT_LABELS = {
    TargetFormat.JPEG: "JPEG",
    TargetFormat.WEBP: "WebP",
    TargetFormat.PNG: "PNG",
}

_FORMAT_EXTENSIONS = {
    TargetFormat.JPEG: ".jpg",
    TargetFormat.WEBP: ".webp",
    TargetFormat.PNG: ".png",
}


@dataclass(frozen=True)
class SourceImage:
    """Encoded source bytes plus the content type declared by the caller."""
    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SourceImage":
        """
        Load an image file from disk.

        The content type is taken from the decoded header rather than the
        file extension. Unrecognised files get 'application/octet-stream'
        and will be rejected by the prober.
        """
        data = Path(path).read_bytes()
        try:
            with Image.open(io.BytesIO(data)) as img:
                content_type = Image.MIME.get(img.format, UNKNOWN_CONTENT_TYPE)
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError):
            content_type = UNKNOWN_CONTENT_TYPE
        return cls(data=data, content_type=content_type)


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class ResizeSpec:
    """Maximum output width for one pipeline invocation."""
    max_width: int


@dataclass(frozen=True)
class PixelBuffer:
    """
    Decoded raster as interleaved RGBA bytes.

    Backed by immutable bytes, so one buffer can be handed to several
    encoder threads at once.
    """
    width: int
    height: int
    data: bytes = field(repr=False)

    def __post_init__(self):
        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise ValueError(
                f"RGBA buffer of {self.width}x{self.height} needs {expected} bytes, "
                f"got {len(self.data)}"
            )

    @property
    def dimensions(self) -> Dimensions:
        return Dimensions(self.width, self.height)

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        width, height = image.size
        return cls(width=width, height=height, data=image.tobytes())

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), self.data)

    def as_array(self) -> np.ndarray:
        """Read-only (height, width, 4) uint8 view of the pixels."""
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 4)


@dataclass(frozen=True)
class EncodedCandidate:
    """One encoded output produced by the Format Encoder."""
    format: TargetFormat
    data: bytes = field(repr=False)
    byte_size: int
    is_original_format: bool
    quality: float


@dataclass(frozen=True)
class PreviewResult:
    """A candidate that both encoded and scored successfully."""
    candidate: EncodedCandidate
    reduction_percent: float
    quality_score: float
    original_size: int

    @property
    def format(self) -> TargetFormat:
        return self.candidate.format

    @property
    def byte_size(self) -> int:
        return self.candidate.byte_size

    @property
    def label(self) -> str:
        """Display label, e.g. 'JPEG resized' when the source was a JPEG."""
        if self.candidate.is_original_format:
            return f"{self.candidate.format.label} resized"
        return self.candidate.format.label

    @property
    def compression_ratio(self) -> float:
        if self.byte_size == 0:
            return 0.0
        return self.original_size / self.byte_size

    @property
    def rating(self) -> str:
        from .quality import get_quality_rating
        return get_quality_rating(self.quality_score)


@dataclass(frozen=True)
class BranchFailure:
    """
    Why one format did not make it into the result.

    stage is 'encode' or 'score'. Score failures keep the encoded candidate
    so callers that can live without a score may still offer it.
    """
    format: TargetFormat
    stage: str
    error_kind: str
    message: str
    candidate: Optional[EncodedCandidate] = None


@dataclass
class PipelineResult:
    """Ordered successful previews plus per-branch diagnostics."""
    previews: List[PreviewResult]
    failures: List[BranchFailure]
    original_size: int
    dimensions: Dimensions
    resampled: PixelBuffer

    def __iter__(self) -> Iterator[PreviewResult]:
        return iter(self.previews)

    def __len__(self) -> int:
        return len(self.previews)

    def __getitem__(self, index: int) -> PreviewResult:
        return self.previews[index]

    @property
    def no_candidates(self) -> bool:
        """True when every branch failed: nothing could be generated."""
        return not self.previews

    @property
    def formats(self) -> List[TargetFormat]:
        return [p.format for p in self.previews]

    def preview_for(self, target: TargetFormat) -> Optional[PreviewResult]:
        for preview in self.previews:
            if preview.format is target:
                return preview
        return None

    def failure_for(self, target: TargetFormat) -> Optional[BranchFailure]:
        for failure in self.failures:
            if failure.format is target:
                return failure
        return None
