"""
Domain service: Canopy analysis of upward-facing hemispherical photos.

Pipeline:
- Zenith cone mask (fisheye frame restricted to an angle from vertical)
- Per-pixel canopy/sky classification inside the mask
- Canopy cover, light transmission and Beer's law leaf-area index
"""
from typing import Optional
import logging
import math
import time

import numpy as np

from ecomeasure.domain.errors import (
    EmptyAnalysisRegion,
    InvalidAnalysisParameters,
    UnsupportedMethodForAnalyzer,
)
from ecomeasure.domain.models import (
    AggregateCounts,
    AnalysisRequest,
    CanopyMeasurement,
    ClassificationMethod,
)
from ecomeasure.services.domain.pixel_classifier import PointClassifier, build_classifier
from ecomeasure.utils.progress import ProgressReporter

logger = logging.getLogger(__name__)


CANOPY_METHODS = frozenset({
    ClassificationMethod.BRIGHTNESS_GREENNESS,
    ClassificationMethod.COLOR_RATIO,
    ClassificationMethod.CUSTOM_BRIGHTNESS,
})


def effective_radius(width: int, height: int, zenith_angle_deg: float) -> float:
    """
    Radius of the analyzed zenith cone in pixels.

    Args:
        width: Image width
        height: Image height
        zenith_angle_deg: Angle from vertical in degrees, [0, 90]

    Returns:
        min(width, height) / 2 * sin(zenith angle)
    """
    radius = min(width, height) / 2
    return radius * math.sin(math.radians(zenith_angle_deg))


def zenith_mask(
    width: int,
    height: int,
    zenith_angle_deg: float,
    rows: Optional[slice] = None,
) -> np.ndarray:
    """
    Boolean mask of pixels within the zenith cone.

    Distances are measured from (width/2, height/2) to integer pixel
    coordinates.

    Args:
        width: Image width
        height: Image height
        zenith_angle_deg: Angle from vertical in degrees
        rows: Optional row range; the mask then covers only those rows

    Returns:
        Boolean array of shape (n_rows, width)
    """
    rows = rows or slice(0, height)
    center_x = width / 2
    center_y = height / 2
    limit = effective_radius(width, height, zenith_angle_deg)

    ys = np.arange(height)[rows].astype(np.float64)[:, np.newaxis]
    xs = np.arange(width, dtype=np.float64)[np.newaxis, :]
    dx = xs - center_x
    dy = ys - center_y
    return np.sqrt(dx * dx + dy * dy) <= limit


class CanopyAnalyzer:
    """
    Frame analyzer for canopy cover.

    Scans the frame in row blocks so progress can be reported while the
    classification itself stays vectorised. Counts do not depend on the
    block size or scan order.
    """

    def __init__(self, progress_row_interval: int = 50):
        """
        Initialize the analyzer.

        Args:
            progress_row_interval: Rows scanned between progress updates
        """
        if progress_row_interval < 1:
            raise InvalidAnalysisParameters("progress_row_interval must be >= 1")
        self.progress_row_interval = progress_row_interval

    def analyze(self, request: AnalysisRequest) -> CanopyMeasurement:
        """
        Measure canopy cover for a single photo.

        Args:
            request: Request holding one image, a canopy method and a zenith angle

        Returns:
            CanopyMeasurement

        Raises:
            UnsupportedMethodForAnalyzer: If the method is not a canopy method
            InvalidAnalysisParameters: If the zenith angle is outside [0, 90]
            EmptyAnalysisRegion: If no pixel falls inside the zenith cone
        """
        start = time.perf_counter()
        image = request.single_image()
        method = request.require_method()

        if method not in CANOPY_METHODS:
            raise UnsupportedMethodForAnalyzer(method.value, "canopy")

        zenith_angle = float(request.zenith_angle_deg)
        if not 0 <= zenith_angle <= 90:
            raise InvalidAnalysisParameters(
                f"Zenith angle must be in [0, 90] degrees, got {zenith_angle}"
            )

        classifier = build_classifier(method, request.threshold)
        report = ProgressReporter(request.on_progress)

        logger.info(
            f"Starting canopy analysis: {image.width}x{image.height}, "
            f"method={method.value}, zenith={zenith_angle}"
        )
        report(10, "Loading image data...")

        canopy_pixels, total_pixels = self._count_canopy(image.rgb, classifier, zenith_angle, report)

        if total_pixels == 0:
            raise EmptyAnalysisRegion(
                f"Zenith angle {zenith_angle} leaves no pixels to analyze "
                f"in a {image.width}x{image.height} image"
            )

        report(80, "Calculating results...")
        sky_pixels = total_pixels - canopy_pixels

        canopy_cover = canopy_pixels / total_pixels * 100
        light_transmission = sky_pixels / total_pixels * 100
        leaf_area_index, saturated = self._leaf_area_index(canopy_pixels, sky_pixels, total_pixels)

        elapsed_ms = (time.perf_counter() - start) * 1000
        report(100, "Complete")

        logger.info(
            f"Canopy analysis complete: cover={canopy_cover:.2f}%, "
            f"transmission={light_transmission:.2f}%, pixels={total_pixels}"
        )
        if saturated:
            logger.warning("Light transmission is zero; leaf-area index is undefined")

        return CanopyMeasurement(
            method=method,
            canopy_cover=round(canopy_cover, 2),
            light_transmission=round(light_transmission, 2),
            leaf_area_index=leaf_area_index,
            lai_saturated=saturated,
            zenith_angle=zenith_angle,
            pixels_analyzed=total_pixels,
            counts=AggregateCounts(
                total=total_pixels,
                positive=canopy_pixels,
                negative=sky_pixels,
            ),
            elapsed_ms=round(elapsed_ms, 3),
        )

    def _count_canopy(
        self,
        rgb: np.ndarray,
        classifier: PointClassifier,
        zenith_angle: float,
        report: ProgressReporter,
    ) -> tuple[int, int]:
        """
        Count canopy pixels and considered pixels inside the zenith cone.

        Returns:
            Tuple of (canopy pixel count, considered pixel count)
        """
        height, width = rgb.shape[:2]
        canopy_pixels = 0
        total_pixels = 0

        report(30, "Analyzing pixels...")
        for row_start in range(0, height, self.progress_row_interval):
            rows = slice(row_start, min(row_start + self.progress_row_interval, height))
            mask = zenith_mask(width, height, zenith_angle, rows)

            considered = rgb[rows][mask]
            if considered.size:
                canopy_pixels += int(np.count_nonzero(classifier.classify(considered)))
            total_pixels += int(np.count_nonzero(mask))

            report(30 + rows.stop / height * 50, "Analyzing pixels...")

        logger.debug(f"Zenith cone holds {total_pixels} of {width * height} pixels")
        return canopy_pixels, total_pixels

    @staticmethod
    def _leaf_area_index(
        canopy_pixels: int,
        sky_pixels: int,
        total_pixels: int,
    ) -> tuple[Optional[float], bool]:
        """
        Beer's law LAI = -ln(transmission).

        Returns:
            Tuple of (LAI rounded to 3 decimals or None, saturated flag).
            LAI is 0 without canopy and None when no sky is visible.
        """
        if canopy_pixels == 0:
            return 0.0, False
        if sky_pixels == 0:
            return None, True
        transmission = sky_pixels / total_pixels
        return round(-math.log(transmission), 3), False
