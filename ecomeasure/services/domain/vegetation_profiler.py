"""
Domain service: Horizontal vegetation profiling (digital Robel pole).

Photos taken at several heights are classified independently; the
per-height coverage is aggregated into a vertical density profile with a
height-diversity index.
"""
from collections import defaultdict
import logging
import math
import time

from ecomeasure.domain.errors import (
    EmptyAnalysisRegion,
    InputCardinalityMismatch,
    InvalidAnalysisParameters,
    InvalidImageData,
)
from ecomeasure.domain.models import (
    AnalysisRequest,
    HeightMeasurement,
    HeightProfile,
    PixelBuffer,
    VegetationProfileMeasurement,
)
from ecomeasure.services.domain.pixel_classifier import PixelClassifier, build_classifier
from ecomeasure.utils.diversity import shannon_index
from ecomeasure.utils.progress import ProgressReporter

logger = logging.getLogger(__name__)


REFERENCE_HEIGHT_CM = 250.0
MIN_HEIGHT_FACTOR = 0.1
SPARSE_COVER_LIMIT = 30.0
MODERATE_COVER_LIMIT = 70.0


def density_index(vegetation_cover: float, height_cm: float) -> float:
    """
    Coverage weighted inversely by sample height.

    Dense vegetation at low heights indicates a dense understory.

    Args:
        vegetation_cover: Coverage percentage at this height
        height_cm: Sample height in centimetres

    Returns:
        vegetation_cover * max(0.1, 250 - height) / 250
    """
    height_factor = max(MIN_HEIGHT_FACTOR, REFERENCE_HEIGHT_CM - height_cm) / REFERENCE_HEIGHT_CM
    return vegetation_cover * height_factor


def vegetation_profile_label(average_cover: float) -> str:
    """Coarse profile label: sparse (< 30), moderate (< 70) or dense."""
    if average_cover < SPARSE_COVER_LIMIT:
        return "sparse"
    if average_cover < MODERATE_COVER_LIMIT:
        return "moderate"
    return "dense"


class VegetationProfiler:
    """
    Multi-image profiler for horizontal vegetation density.

    Every image is classified over its full frame (no geometric mask).
    Duplicate sample heights are averaged in the height profile.
    """

    def analyze(self, request: AnalysisRequest) -> VegetationProfileMeasurement:
        """
        Build a vertical vegetation profile.

        Args:
            request: Request with one image per entry of ``heights_cm``

        Returns:
            VegetationProfileMeasurement

        Raises:
            InvalidImageData: If no images are supplied
            InputCardinalityMismatch: If image and height counts differ
            InvalidAnalysisParameters: If a height is negative or not finite
            EmptyAnalysisRegion: If a method leaves no pixels to consider
        """
        start = time.perf_counter()
        method = request.require_method()
        images = request.images
        heights = tuple(float(h) for h in request.heights_cm)

        if not images:
            raise InvalidImageData("No images provided")
        if len(images) != len(heights):
            raise InputCardinalityMismatch(len(images), len(heights))
        for height in heights:
            if not math.isfinite(height) or height < 0:
                raise InvalidAnalysisParameters(
                    f"Sample heights must be finite and non-negative, got {height}"
                )

        classifier = build_classifier(method, request.threshold)
        report = ProgressReporter(request.on_progress)

        logger.info(
            f"Starting horizontal vegetation analysis: {len(images)} images, "
            f"method={method.value}"
        )

        measurements = []
        coverages = []
        for index, (image, height) in enumerate(zip(images, heights)):
            report(index / len(images) * 100, f"Analyzing image at {height:g}cm height")
            coverage, measurement = self._measure_image(image, height, classifier)
            coverages.append(coverage)
            measurements.append(measurement)

        profile = self._build_profile(heights, coverages)
        elapsed_ms = (time.perf_counter() - start) * 1000
        report(100, "Complete")

        logger.info(
            f"Horizontal vegetation analysis complete: average={profile.average_cover:.2f}%, "
            f"profile={profile.vegetation_profile}, diversity={profile.height_diversity:.3f}"
        )

        return VegetationProfileMeasurement(
            method=method,
            measurements=tuple(measurements),
            profile=profile,
            elapsed_ms=round(elapsed_ms, 3),
        )

    def _measure_image(
        self,
        image: PixelBuffer,
        height_cm: float,
        classifier: PixelClassifier,
    ) -> tuple[float, HeightMeasurement]:
        """
        Classify one photo and derive its coverage and density index.

        Returns:
            Tuple of (unrounded coverage %, HeightMeasurement)
        """
        start = time.perf_counter()
        counts = classifier.classify_frame(image.rgb).counts

        if counts.total == 0:
            raise EmptyAnalysisRegion(
                f"Method {classifier.method.value} leaves no pixels to analyze "
                f"in the {image.width}x{image.height} image at {height_cm:g}cm"
            )

        coverage = counts.positive / counts.total * 100
        logger.debug(f"Height {height_cm:g}cm: {counts.positive}/{counts.total} green pixels")

        measurement = HeightMeasurement(
            height_cm=height_cm,
            vegetation_cover=round(coverage, 2),
            pixels_analyzed=counts.total,
            green_pixels=counts.positive,
            density_index=round(density_index(coverage, height_cm), 2),
            elapsed_ms=round((time.perf_counter() - start) * 1000, 3),
        )
        return coverage, measurement

    def _build_profile(
        self,
        heights: tuple[float, ...],
        coverages: list[float],
    ) -> HeightProfile:
        """
        Aggregate per-image coverage into a height profile.

        Args:
            heights: Sample height of each image
            coverages: Unrounded coverage of each image

        Returns:
            HeightProfile
        """
        by_height = defaultdict(list)
        for height, coverage in zip(heights, coverages):
            by_height[height].append(coverage)

        duplicates = sorted(h for h, values in by_height.items() if len(values) > 1)
        if duplicates:
            logger.warning(f"Duplicate sample heights averaged in profile: {duplicates}")

        cover_by_height = {
            height: round(sum(values) / len(values), 2)
            for height, values in sorted(by_height.items())
        }
        average_cover = sum(coverages) / len(coverages)

        return HeightProfile(
            cover_by_height=cover_by_height,
            average_cover=round(average_cover, 2),
            height_diversity=round(shannon_index(coverages), 3),
            vegetation_profile=vegetation_profile_label(average_cover),
        )
