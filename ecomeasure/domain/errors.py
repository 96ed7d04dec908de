"""
Domain errors raised by the analysis engine.

Every error is recoverable: callers decide whether to retry, surface the
message, or skip the item when running a batch.
"""
from typing import Optional


class AnalysisError(Exception):
    """Base class for all analysis failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidImageData(AnalysisError):
    """Buffer size mismatch, zero-dimension image, or undecodable upload."""
    pass


class EmptyAnalysisRegion(AnalysisError):
    """The mask or classification left zero pixels to analyze."""
    pass


class InputCardinalityMismatch(AnalysisError):
    """Number of images does not match the number of sample heights."""

    def __init__(self, image_count: int, height_count: int):
        super().__init__(
            f"Number of images ({image_count}) must match number of heights ({height_count})"
        )
        self.image_count = image_count
        self.height_count = height_count


class UnsupportedMethodForAnalyzer(AnalysisError):
    """The requested classification method is not wired for this analyzer."""

    def __init__(self, method: str, analyzer: str):
        super().__init__(f"Method '{method}' is not supported by the {analyzer} analyzer")
        self.method = method
        self.analyzer = analyzer


class InvalidAnalysisParameters(AnalysisError):
    """A numeric parameter (threshold, zenith angle, concurrency) is out of range."""
    pass


class ItemProcessingFailed(AnalysisError):
    """
    Per-item failure recorded by the batch coordinator.

    Wraps the original exception so the batch can continue with the
    remaining items.
    """

    def __init__(self, item_id: str, cause: Exception):
        error_type = type(cause).__name__
        detail = getattr(cause, "message", None) or str(cause) or error_type
        super().__init__(f"Item '{item_id}' failed: {detail}")
        self.item_id = item_id
        self.error_type = error_type
        self.detail = detail
        self.cause: Optional[Exception] = cause
