"""
Image Preview Package

Resamples one source image, encodes it as JPEG, WebP and PNG in parallel,
and scores every candidate with windowed SSIM.
"""

from .encoder import DEFAULT_QUALITY, EncoderBackend, FormatEncoder, OpenCVBackend, PillowBackend
from .errors import DecodeError, EncodeError, PreviewError, ResampleError, ScoreError
from .models import (
    BranchFailure,
    Dimensions,
    EncodedCandidate,
    PipelineResult,
    PixelBuffer,
    PreviewResult,
    ResizeSpec,
    SourceImage,
    TargetFormat,
)
from .pipeline import PipelineStage, PreviewPipeline, generate_previews
from .probe import probe_dimensions
from .quality import QualityScorer, decode_candidate, get_quality_rating
from .resampler import ResampleEngine, Resampler, resample
from .utils import format_reduction, format_size

__version__ = "1.0.0"
__all__ = [
    "generate_previews",
    "PreviewPipeline",
    "PipelineStage",
    "probe_dimensions",
    "Resampler",
    "ResampleEngine",
    "resample",
    "FormatEncoder",
    "EncoderBackend",
    "PillowBackend",
    "OpenCVBackend",
    "DEFAULT_QUALITY",
    "QualityScorer",
    "decode_candidate",
    "get_quality_rating",
    "SourceImage",
    "Dimensions",
    "ResizeSpec",
    "PixelBuffer",
    "TargetFormat",
    "EncodedCandidate",
    "PreviewResult",
    "BranchFailure",
    "PipelineResult",
    "PreviewError",
    "DecodeError",
    "ResampleError",
    "EncodeError",
    "ScoreError",
    "format_size",
    "format_reduction",
]
