"""
Domain service: Pixel classification strategies.

Each classification method is a strategy object selected once per analysis
request. Point classifiers decide membership from a pixel's own colour;
neighbourhood classifiers (edge detection) need the whole frame and report
which pixels they were able to consider.

Methods:
- Brightness/greenness (canopy default, "GLAMA")
- Colour ratio (Canopeo-style)
- Custom brightness threshold
- Green colour threshold (horizontal vegetation default)
- Sobel edge detection
- HSV heuristic cluster (fixed rule, not a trained model)
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import logging

import numpy as np

from ecomeasure.domain.errors import InvalidAnalysisParameters
from ecomeasure.domain.models import AggregateCounts, ClassificationMethod
from ecomeasure.utils.color_space import (
    brightness,
    greenness,
    grayscale,
    interior_mask,
    rgb_to_hsv,
    safe_ratio,
    sobel_magnitude,
    split_channels,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameClassification:
    """Per-pixel outcome of classifying a full frame."""
    positive: np.ndarray
    """Boolean (H, W) mask of positive pixels (only meaningful where considered)"""

    considered: np.ndarray
    """Boolean (H, W) mask of pixels the method was able to evaluate"""

    @property
    def counts(self) -> AggregateCounts:
        total = int(np.count_nonzero(self.considered))
        positive = int(np.count_nonzero(self.positive & self.considered))
        return AggregateCounts(total=total, positive=positive, negative=total - positive)


class PixelClassifier(ABC):
    """Base strategy: binary membership for every pixel of a frame."""

    method: ClassificationMethod

    @abstractmethod
    def classify_frame(self, rgb: np.ndarray) -> FrameClassification:
        """
        Classify every pixel of an (H, W, 3) frame.

        Args:
            rgb: Frame as an (H, W, 3) uint8 array

        Returns:
            FrameClassification with positive and considered masks
        """

    @property
    def needs_neighborhood(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class PointClassifier(PixelClassifier):
    """Strategy whose decision depends only on the pixel itself."""

    @abstractmethod
    def classify(self, rgb: np.ndarray) -> np.ndarray:
        """
        Classify pixels independently.

        Args:
            rgb: Array of shape (..., 3) with R, G, B values

        Returns:
            Boolean array of shape (...)
        """

    def classify_pixel(self, r: int, g: int, b: int) -> bool:
        """Classify a single pixel."""
        return bool(self.classify(np.array([r, g, b], dtype=np.uint8)))

    def classify_frame(self, rgb: np.ndarray) -> FrameClassification:
        positive = self.classify(rgb)
        considered = np.ones(positive.shape, dtype=bool)
        return FrameClassification(positive=positive, considered=considered)


# ============================================================
# Canopy methods
# ============================================================

class BrightnessGreennessClassifier(PointClassifier):
    """
    Canopy iff the pixel is dark or strongly green.

    Dark canopy silhouettes and saturated foliage both count as canopy.
    """

    method = ClassificationMethod.BRIGHTNESS_GREENNESS
    BRIGHTNESS_THRESHOLD = 80
    GREENNESS_THRESHOLD = 0.4

    def classify(self, rgb: np.ndarray) -> np.ndarray:
        return (brightness(rgb) < self.BRIGHTNESS_THRESHOLD) | (
            greenness(rgb) > self.GREENNESS_THRESHOLD
        )


class ColorRatioClassifier(PointClassifier):
    """
    Canopeo-style ratio test: R/G and B/G below 0.95 with excess green > 20.

    Rejects near-gray and bright-sky pixels even when slightly greenish.
    """

    method = ClassificationMethod.COLOR_RATIO
    RATIO_THRESHOLD = 0.95
    EXCESS_GREEN_THRESHOLD = 20

    def classify(self, rgb: np.ndarray) -> np.ndarray:
        r, g, b = split_channels(rgb)
        red_green = safe_ratio(r, g)
        blue_green = safe_ratio(b, g)
        excess_green = 2 * g - r - b
        return (
            (red_green < self.RATIO_THRESHOLD)
            & (blue_green < self.RATIO_THRESHOLD)
            & (excess_green > self.EXCESS_GREEN_THRESHOLD)
        )


class CustomBrightnessClassifier(PointClassifier):
    """Canopy iff brightness is below a caller-supplied threshold."""

    method = ClassificationMethod.CUSTOM_BRIGHTNESS
    DEFAULT_THRESHOLD = 128.0

    def __init__(self, threshold: Optional[float] = None):
        self.threshold = self.DEFAULT_THRESHOLD if threshold is None else float(threshold)
        if not 0 <= self.threshold <= 255:
            raise InvalidAnalysisParameters(
                f"Brightness threshold must be in [0, 255], got {self.threshold}"
            )

    def classify(self, rgb: np.ndarray) -> np.ndarray:
        return brightness(rgb) < self.threshold

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(threshold={self.threshold})"


# ============================================================
# Horizontal vegetation methods
# ============================================================

class ColorThresholdClassifier(PointClassifier):
    """
    Green vegetation by green share of the channel sum plus channel margins.

    The green share of a black pixel is defined as 0.
    """

    method = ClassificationMethod.COLOR_THRESHOLD
    DEFAULT_THRESHOLD = 0.3
    RED_MARGIN = 30
    BLUE_MARGIN = 20

    def __init__(self, threshold: Optional[float] = None):
        self.threshold = self.DEFAULT_THRESHOLD if threshold is None else float(threshold)
        if not 0 <= self.threshold <= 1:
            raise InvalidAnalysisParameters(
                f"Green ratio threshold must be in [0, 1], got {self.threshold}"
            )

    def classify(self, rgb: np.ndarray) -> np.ndarray:
        r, g, b = split_channels(rgb)
        green_ratio = safe_ratio(g, r + g + b)
        return (
            (green_ratio > self.threshold)
            & (g > r)
            & (g > b)
            & (g - r > self.RED_MARGIN)
            & (g - b > self.BLUE_MARGIN)
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(threshold={self.threshold})"


class EdgeDetectionClassifier(PixelClassifier):
    """
    Vegetation edges: Sobel magnitude > 50 on a pixel with green > 100.

    Only interior pixels are considered; the 1-pixel border has no full
    3x3 neighbourhood.
    """

    method = ClassificationMethod.EDGE_DETECTION
    MAGNITUDE_THRESHOLD = 50
    GREEN_THRESHOLD = 100

    @property
    def needs_neighborhood(self) -> bool:
        return True

    def classify_frame(self, rgb: np.ndarray) -> FrameClassification:
        height, width = rgb.shape[:2]
        considered = interior_mask(height, width)

        magnitude = sobel_magnitude(grayscale(rgb))
        _, g, _ = split_channels(rgb)
        positive = (
            (magnitude > self.MAGNITUDE_THRESHOLD)
            & (g > self.GREEN_THRESHOLD)
            & considered
        )
        return FrameClassification(positive=positive, considered=considered)


class HeuristicClusterClassifier(PointClassifier):
    """
    Fixed HSV heuristic: green hue, saturated, not dark.

    This is a hand-tuned rule; no model is trained or loaded.
    """

    method = ClassificationMethod.HEURISTIC_CLUSTER
    HUE_MIN = 60
    HUE_MAX = 180
    SATURATION_THRESHOLD = 0.3
    VALUE_THRESHOLD = 50

    def classify(self, rgb: np.ndarray) -> np.ndarray:
        hue, saturation, value = rgb_to_hsv(rgb)
        return (
            (hue >= self.HUE_MIN)
            & (hue <= self.HUE_MAX)
            & (saturation > self.SATURATION_THRESHOLD)
            & (value > self.VALUE_THRESHOLD)
        )


# ============================================================
# Strategy selection
# ============================================================

_CLASSIFIERS: dict[ClassificationMethod, type[PixelClassifier]] = {
    ClassificationMethod.BRIGHTNESS_GREENNESS: BrightnessGreennessClassifier,
    ClassificationMethod.COLOR_RATIO: ColorRatioClassifier,
    ClassificationMethod.CUSTOM_BRIGHTNESS: CustomBrightnessClassifier,
    ClassificationMethod.COLOR_THRESHOLD: ColorThresholdClassifier,
    ClassificationMethod.EDGE_DETECTION: EdgeDetectionClassifier,
    ClassificationMethod.HEURISTIC_CLUSTER: HeuristicClusterClassifier,
}

THRESHOLD_METHODS = {
    ClassificationMethod.CUSTOM_BRIGHTNESS,
    ClassificationMethod.COLOR_THRESHOLD,
}

_unregistered = set(ClassificationMethod) - set(_CLASSIFIERS)
if _unregistered:
    raise RuntimeError(f"No classifier registered for: {sorted(m.value for m in _unregistered)}")


def build_classifier(
    method: ClassificationMethod,
    threshold: Optional[float] = None,
) -> PixelClassifier:
    """
    Instantiate the strategy for a classification method.

    Args:
        method: Classification method
        threshold: Threshold for the parameterised methods; ignored otherwise

    Returns:
        PixelClassifier instance

    Raises:
        InvalidAnalysisParameters: If the threshold is out of range
    """
    method = ClassificationMethod(method)
    classifier_cls = _CLASSIFIERS[method]

    if method in THRESHOLD_METHODS:
        classifier = classifier_cls(threshold=threshold)
    else:
        if threshold is not None:
            logger.debug(f"Ignoring threshold={threshold} for method {method.value}")
        classifier = classifier_cls()

    logger.debug(f"Built classifier {classifier!r}")
    return classifier
