"""
Quality scoring for encoded candidates.

Windowed SSIM (Wang et al. 2004): a Gaussian window slides over the luma
of both images, SSIM is computed per window, and the mean over all windows
is the score.
"""

import io
import logging
import math

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import ScoreError
from .models import EncodedCandidate, PixelBuffer

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])

# Images are block-averaged until their short side is about this long
DOWNSAMPLE_TARGET = 256


def get_quality_rating(ssim: float) -> str:
    """Human-readable quality rating for an SSIM score."""
    if ssim > 0.95:
        return "Excellent - Nearly indistinguishable from original"
    elif ssim > 0.90:
        return "Good - Minor differences, acceptable for most uses"
    elif ssim > 0.80:
        return "Fair - Noticeable compression but still usable"
    else:
        return "Poor - Significant quality loss"


def decode_candidate(candidate: EncodedCandidate) -> PixelBuffer:
    """
    Decode an encoded candidate back into RGBA pixels.

    Raises:
        ScoreError: If the bytes cannot be decoded or decode to an empty image.
    """
    label = candidate.format.label
    try:
        with Image.open(io.BytesIO(candidate.data)) as img:
            img.load()
            buffer = PixelBuffer.from_image(img)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise ScoreError(f"Cannot decode {label} candidate: {e}", label) from e

    if buffer.width == 0 or buffer.height == 0:
        raise ScoreError(f"{label} candidate has invalid dimensions (0x0)", label)
    return buffer


def gaussian_kernel(size: int, sigma: float) -> np.ndarray:
    """Normalized 1-D Gaussian kernel."""
    x = np.arange(size, dtype=np.float64) - (size - 1) / 2.0
    kernel = np.exp(-(x ** 2) / (2 * sigma ** 2))
    return kernel / kernel.sum()


def filter_valid(image: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    """Separable 2-D filter keeping only fully covered windows."""
    n = len(kernel)
    h, w = image.shape
    rows = sum(kernel[i] * image[i:h - n + 1 + i, :] for i in range(n))
    return sum(kernel[i] * rows[:, i:w - n + 1 + i] for i in range(n))


class QualityScorer:
    """
    Structural similarity between a reference and a candidate buffer.

    Example:
        scorer = QualityScorer()
        score = scorer.score(resampled, decode_candidate(candidate))
    """

    def __init__(
        self,
        window_size: int = 11,
        sigma: float = 1.5,
        k1: float = 0.01,
        k2: float = 0.03,
        downsample: bool = True
    ):
        """
        Args:
            window_size: Gaussian window size in pixels
            sigma: Gaussian window standard deviation
            k1: Luminance stabilizing constant
            k2: Contrast stabilizing constant
            downsample: Block-average large images before comparing
        """
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self.window_size = window_size
        self.sigma = sigma
        self.k1 = k1
        self.k2 = k2
        self.downsample = downsample

    @staticmethod
    def to_luma(buffer: PixelBuffer) -> np.ndarray:
        """Luma plane as float64; alpha is ignored."""
        rgb = buffer.as_array()[:, :, :3].astype(np.float64)
        return rgb @ LUMA_WEIGHTS

    @staticmethod
    def block_average(plane: np.ndarray, factor: int) -> np.ndarray:
        """Downsample by averaging factor x factor blocks (edges cropped)."""
        h, w = plane.shape
        h, w = h - h % factor, w - w % factor
        blocks = plane[:h, :w].reshape(h // factor, factor, w // factor, factor)
        return blocks.mean(axis=(1, 3))

    def match_reference(self, reference: PixelBuffer, candidate: PixelBuffer) -> PixelBuffer:
        """Resize the reference to the candidate's dimensions if they differ."""
        if (reference.width, reference.height) == (candidate.width, candidate.height):
            return reference
        if reference.width == 0 or reference.height == 0:
            raise ScoreError("Reference image has zero area")
        try:
            resized = reference.to_image().resize(
                (candidate.width, candidate.height), Image.Resampling.LANCZOS
            )
        except (OSError, ValueError) as e:
            raise ScoreError(
                f"Cannot match reference {reference.width}x{reference.height} "
                f"to candidate {candidate.width}x{candidate.height}: {e}"
            ) from e
        return PixelBuffer.from_image(resized)

    def calculate_ssim(self, original: np.ndarray, compressed: np.ndarray) -> float:
        """
        Mean SSIM of two equally sized luma planes, values in [0, 255].

        Returns the unclamped mean over all windows.
        """
        if original.shape != compressed.shape:
            raise ScoreError("Images must have the same dimensions")

        img1 = original.astype(np.float64)
        img2 = compressed.astype(np.float64)

        if self.downsample:
            factor = max(1, int(round(min(img1.shape) / DOWNSAMPLE_TARGET)))
            if factor > 1:
                img1 = self.block_average(img1, factor)
                img2 = self.block_average(img2, factor)

        size = min(self.window_size, *img1.shape)
        kernel = gaussian_kernel(size, self.sigma)

        # Constants for stability
        C1 = (self.k1 * 255) ** 2
        C2 = (self.k2 * 255) ** 2

        mu1 = filter_valid(img1, kernel)
        mu2 = filter_valid(img2, kernel)
        mu1_sq = mu1 * mu1
        mu2_sq = mu2 * mu2
        mu1_mu2 = mu1 * mu2

        sigma1_sq = filter_valid(img1 * img1, kernel) - mu1_sq
        sigma2_sq = filter_valid(img2 * img2, kernel) - mu2_sq
        sigma12 = filter_valid(img1 * img2, kernel) - mu1_mu2

        numerator = (2 * mu1_mu2 + C1) * (2 * sigma12 + C2)
        denominator = (mu1_sq + mu2_sq + C1) * (sigma1_sq + sigma2_sq + C2)

        return float(np.mean(numerator / denominator))

    def score(self, reference: PixelBuffer, candidate: PixelBuffer) -> float:
        """
        Score candidate against reference, clamped to [0, 1].

        Raises:
            ScoreError: On zero-area buffers or irreconcilable dimensions.
        """
        if candidate.width == 0 or candidate.height == 0:
            raise ScoreError("Candidate image has zero area")
        if reference.width == 0 or reference.height == 0:
            raise ScoreError("Reference image has zero area")

        reference = self.match_reference(reference, candidate)
        ssim = self.calculate_ssim(self.to_luma(reference), self.to_luma(candidate))

        if math.isnan(ssim):
            raise ScoreError("SSIM computation produced NaN")

        clamped = min(1.0, max(0.0, ssim))
        if clamped != ssim:
            logger.debug("Clamped SSIM %.6f to %.1f", ssim, clamped)
        return clamped

    def score_candidate(self, reference: PixelBuffer, candidate: EncodedCandidate) -> float:
        """Decode an encoded candidate and score it against reference."""
        try:
            return self.score(reference, decode_candidate(candidate))
        except ScoreError as e:
            if e.format is None:
                e.format = candidate.format.label
            raise
