"""
Error kinds raised by the preview pipeline.

DecodeError and ResampleError are fatal to a pipeline invocation.
EncodeError and ScoreError are branch-local: the orchestrator records them
per format and keeps going.
"""

from typing import Optional


class PreviewError(Exception):
    """Base class for all preview pipeline errors."""


class DecodeError(PreviewError):
    """Raised when the source bytes are not a decodable image."""


class ResampleError(PreviewError):
    """Raised on decode failure during resize or invalid target geometry."""


class EncodeError(PreviewError):
    """Raised when one target format could not be encoded."""

    def __init__(self, format_label: str, cause: object):
        self.format = format_label
        self.cause = cause
        super().__init__(f"Failed to convert to {format_label}: {cause}")


class ScoreError(PreviewError):
    """Raised when a quality score cannot be computed."""

    def __init__(self, message: str, format_label: Optional[str] = None):
        self.format = format_label
        super().__init__(message)
