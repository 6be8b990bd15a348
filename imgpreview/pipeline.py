"""
Preview Pipeline

Turns one source image into a set of encoded previews:

1. Probe the source dimensions
2. Resample once to fit max_width (shared, read-only buffer)
3. Encode into every target format in parallel
4. Score each successful encoding against the reference in parallel
5. Report successes in fixed format order, failures as diagnostics

Probe and resample errors abort the invocation. Encode and score errors
only drop their own branch.
"""

import logging
from collections.abc import Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .encoder import DEFAULT_QUALITY, FormatEncoder
from .models import (
    BranchFailure,
    EncodedCandidate,
    PipelineResult,
    PixelBuffer,
    PreviewResult,
    ResizeSpec,
    SourceImage,
    TargetFormat,
)
from .probe import probe_dimensions
from .quality import QualityScorer
from .resampler import Resampler
from .utils import format_reduction, format_size

logger = logging.getLogger(__name__)

ConfigLike = Union[ResizeSpec, Mapping[str, float], int, float]


class PipelineStage(Enum):
    IDLE = "idle"
    PROBING = "probing"
    RESAMPLING = "resampling"
    ENCODING = "encoding"
    SCORING = "scoring"
    DONE = "done"


def _coerce_width(value) -> int:
    """Whole-number width; bools and fractional floats are rejected."""
    if isinstance(value, bool):
        raise TypeError("max_width must be a number, not bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"max_width must be a whole number, got {value}")
        return int(value)
    raise TypeError(f"Unsupported max_width type: {type(value).__name__}")


def resize_spec_from_config(config: ConfigLike) -> ResizeSpec:
    """Accept a ResizeSpec, a bare width, or a {'max_width': ...} mapping."""
    if isinstance(config, ResizeSpec):
        return config
    if isinstance(config, Mapping):
        value = config.get('max_width', config.get('maxWidth'))
        if value is None:
            raise ValueError("config must provide 'max_width'")
        return ResizeSpec(max_width=_coerce_width(value))
    if isinstance(config, (int, float)):
        return ResizeSpec(max_width=_coerce_width(config))
    raise TypeError(f"Unsupported config type: {type(config).__name__}")


def reduction_percent(original_size: int, candidate_size: int) -> float:
    """Size saved relative to the original; negative when the candidate is larger."""
    if original_size == 0:
        return 0.0
    return (original_size - candidate_size) / original_size * 100


class PreviewPipeline:
    """
    Generate format previews of one image with quality scores.

    Example:
        pipeline = PreviewPipeline()
        result = pipeline.generate_previews(source, {'max_width': 1000})
        for preview in result:
            print(preview.label, preview.byte_size, preview.quality_score)
    """

    SCORE_REFERENCES = ('resampled', 'original')

    def __init__(
        self,
        quality: float = DEFAULT_QUALITY,
        formats: Optional[Iterable[TargetFormat]] = None,
        encoder: Optional[FormatEncoder] = None,
        resampler: Optional[Resampler] = None,
        scorer: Optional[QualityScorer] = None,
        max_workers: Optional[int] = None,
        score_against: str = 'resampled',
        verbose: bool = False
    ):
        """
        Initialize pipeline.

        Args:
            quality: Encoder quality in [0, 1] used for every format
            formats: Subset of target formats (reported in enumeration order)
            encoder: Format encoder, defaults to the Pillow backend
            resampler: Resampler owning the resize engine
            scorer: SSIM scorer
            max_workers: Thread count for the fan-outs (default: one per format)
            score_against: 'resampled' compares with the buffer that was
                encoded; 'original' compares with a fresh decode of the source
            verbose: Print a result table after each run
        """
        if not 0.0 <= quality <= 1.0:
            raise ValueError(f"quality must be in [0, 1], got {quality}")
        if score_against not in self.SCORE_REFERENCES:
            raise ValueError(f"score_against must be one of {self.SCORE_REFERENCES}")

        requested = set(formats) if formats is not None else set(TargetFormat)
        self.formats: List[TargetFormat] = [t for t in TargetFormat if t in requested]
        if not self.formats:
            raise ValueError("At least one target format is required")

        self.quality = quality
        self.encoder = encoder or FormatEncoder()
        self.resampler = resampler or Resampler()
        self.scorer = scorer or QualityScorer()
        self.max_workers = max_workers or len(self.formats)
        self.score_against = score_against
        self.verbose = verbose

    def _log(self, message: str) -> None:
        """Print message if verbose mode enabled."""
        if self.verbose:
            print(message)

    @staticmethod
    def _enter(stage: PipelineStage) -> None:
        logger.debug("Pipeline stage: %s", stage.value)

    @staticmethod
    def _failure(
        target: TargetFormat,
        stage: PipelineStage,
        error: BaseException,
        candidate: Optional[EncodedCandidate] = None
    ) -> BranchFailure:
        logger.warning("%s branch failed while %s: %s", target.label, stage.value, error)
        return BranchFailure(
            format=target,
            stage='encode' if stage is PipelineStage.ENCODING else 'score',
            error_kind=type(error).__name__,
            message=str(error),
            candidate=candidate,
        )

    def _encode_all(
        self,
        pool: ThreadPoolExecutor,
        buffer: PixelBuffer,
        source_type: str
    ) -> Tuple[Dict[TargetFormat, EncodedCandidate], List[BranchFailure]]:
        futures: Dict[TargetFormat, Future] = {
            target: pool.submit(self.encoder.encode, buffer, target, self.quality, source_type)
            for target in self.formats
        }
        wait(futures.values())

        candidates: Dict[TargetFormat, EncodedCandidate] = {}
        failures: List[BranchFailure] = []
        for target in self.formats:
            error = futures[target].exception()
            if error is None:
                candidates[target] = futures[target].result()
            elif isinstance(error, Exception):
                failures.append(self._failure(target, PipelineStage.ENCODING, error))
            else:
                raise error
        return candidates, failures

    def _score_all(
        self,
        pool: ThreadPoolExecutor,
        reference: PixelBuffer,
        candidates: Dict[TargetFormat, EncodedCandidate]
    ) -> Tuple[Dict[TargetFormat, float], List[BranchFailure]]:
        futures: Dict[TargetFormat, Future] = {
            target: pool.submit(self.scorer.score_candidate, reference, candidate)
            for target, candidate in candidates.items()
        }
        wait(futures.values())

        scores: Dict[TargetFormat, float] = {}
        failures: List[BranchFailure] = []
        for target in self.formats:
            if target not in futures:
                continue
            error = futures[target].exception()
            if error is None:
                scores[target] = futures[target].result()
            elif isinstance(error, Exception):
                failures.append(
                    self._failure(target, PipelineStage.SCORING, error, candidates[target])
                )
            else:
                raise error
        return scores, failures

    def generate_previews(self, image: SourceImage, config: ConfigLike) -> PipelineResult:
        """
        Run the full pipeline on one source image.

        Args:
            image: Source bytes and declared content type
            config: ResizeSpec, or a mapping with 'max_width'

        Returns:
            PipelineResult with successful previews in format order and
            the failure reason of every dropped branch

        Raises:
            DecodeError: If the source cannot be probed
            ResampleError: If the source cannot be resampled
        """
        spec = resize_spec_from_config(config)
        self._enter(PipelineStage.IDLE)
        original_size = image.size

        self._enter(PipelineStage.PROBING)
        dimensions = probe_dimensions(image)

        self._enter(PipelineStage.RESAMPLING)
        buffer = self.resampler.resample(image, spec)

        if self.score_against == 'original':
            reference = PixelBuffer.from_image(self.resampler.decode(image))
        else:
            reference = buffer

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            self._enter(PipelineStage.ENCODING)
            candidates, failures = self._encode_all(pool, buffer, image.content_type)

            self._enter(PipelineStage.SCORING)
            scores, score_failures = self._score_all(pool, reference, candidates)

        failures.extend(score_failures)
        failures.sort(key=lambda f: self.formats.index(f.format))

        previews = [
            PreviewResult(
                candidate=candidates[target],
                reduction_percent=reduction_percent(original_size, candidates[target].byte_size),
                quality_score=scores[target],
                original_size=original_size,
            )
            for target in self.formats
            if target in scores
        ]

        self._enter(PipelineStage.DONE)
        result = PipelineResult(
            previews=previews,
            failures=failures,
            original_size=original_size,
            dimensions=dimensions,
            resampled=buffer,
        )

        if result.no_candidates:
            logger.warning("No candidates produced for %s source", image.content_type)
        else:
            logger.info(
                "Generated %d/%d previews at %dx%d",
                len(previews), len(self.formats), buffer.width, buffer.height
            )
        self._report(image, result)
        return result

    def _report(self, image: SourceImage, result: PipelineResult) -> None:
        """Print a summary table in verbose mode."""
        self._log(f"\n{'='*60}")
        self._log(f"PREVIEWS: {image.content_type} ({format_size(result.original_size)})")
        self._log(f"{'='*60}")
        self._log(f"Source size:    {result.dimensions.width}x{result.dimensions.height}")
        self._log(f"Resampled size: {result.resampled.width}x{result.resampled.height}")
        self._log(f"{'-'*60}")

        for preview in result:
            self._log(
                f"  {preview.label:<14} {format_size(preview.byte_size):>10} "
                f"{format_reduction(preview.reduction_percent):>14}  SSIM={preview.quality_score:.4f}"
            )
        for failure in result.failures:
            self._log(f"  {failure.format.label:<14} FAILED ({failure.stage}): {failure.message}")

        if result.no_candidates:
            self._log("  Nothing could be generated")
        self._log(f"{'='*60}\n")


def generate_previews(image: SourceImage, config: ConfigLike, **kwargs) -> PipelineResult:
    """
    Generate previews with a one-off PreviewPipeline.

    Keyword arguments are passed to PreviewPipeline.
    """
    return PreviewPipeline(**kwargs).generate_previews(image, config)
