"""
Application service: Orchestration layer for image analyses.
"""
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Sequence, TypeVar
import asyncio
import logging

from ecomeasure.config import Settings
from ecomeasure.domain.models import (
    AnalysisRequest,
    CanopyMeasurement,
    ClassificationMethod,
    GroundCoverMeasurement,
    PixelBuffer,
    ProgressCallback,
    VegetationProfileMeasurement,
)
from ecomeasure.services.domain.batch_coordinator import BatchItemOutcome, process_batch
from ecomeasure.services.domain.canopy_analyzer import CanopyAnalyzer
from ecomeasure.services.domain.ground_cover_classifier import GroundCoverClassifier
from ecomeasure.services.domain.vegetation_profiler import VegetationProfiler
from ecomeasure.utils.image_decoding import decode_image, validate_upload

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class ImageUpload:
    """An encoded image as received from a caller."""
    filename: str
    data: bytes
    content_type: Optional[str] = None


class AnalysisService:
    """
    Application service for image analyses.

    Orchestrates decoding, request construction and execution placement.
    Follows the application layer pattern - no analysis logic here,
    only coordination between uploads, settings and the domain analyzers.
    """

    def __init__(
        self,
        settings: Settings,
        canopy_analyzer: CanopyAnalyzer,
        vegetation_profiler: VegetationProfiler,
        ground_cover_classifier: GroundCoverClassifier,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize the service with dependencies.

        Args:
            settings: Application settings providing request defaults
            canopy_analyzer: Frame analyzer for canopy photos
            vegetation_profiler: Multi-image profiler for horizontal vegetation
            ground_cover_classifier: Quadrat classifier for Daubenmire photos
            executor: Executor for background analyses (None uses the loop default)
        """
        self.settings = settings
        self.canopy_analyzer = canopy_analyzer
        self.vegetation_profiler = vegetation_profiler
        self.ground_cover_classifier = ground_cover_classifier
        self.executor = executor

    async def analyze_canopy(
        self,
        upload: ImageUpload,
        method: Optional[ClassificationMethod] = None,
        zenith_angle: Optional[float] = None,
        threshold: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CanopyMeasurement:
        """
        Decode a canopy photo and measure canopy cover.

        Args:
            upload: Encoded photo
            method: Canopy method (defaults from settings)
            zenith_angle: Zenith angle in degrees (defaults from settings)
            threshold: Method threshold (defaults from settings)
            on_progress: Optional progress callback

        Returns:
            CanopyMeasurement

        Raises:
            AnalysisError: If decoding or analysis fails
        """
        method = method or self.settings.default_canopy_method
        zenith_angle = self.settings.default_zenith_angle if zenith_angle is None else zenith_angle
        threshold = self._resolve_threshold(method, threshold)

        def run() -> CanopyMeasurement:
            image = self._decode(upload)
            request = AnalysisRequest.for_image(
                image,
                method,
                threshold=threshold,
                zenith_angle_deg=zenith_angle,
                on_progress=on_progress,
            )
            return self.canopy_analyzer.analyze(request)

        logger.info(f"Canopy analysis requested for '{upload.filename}'")
        return await self._execute(run)

    async def analyze_horizontal_vegetation(
        self,
        uploads: Sequence[ImageUpload],
        heights_cm: Sequence[float],
        method: Optional[ClassificationMethod] = None,
        threshold: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> VegetationProfileMeasurement:
        """
        Decode photos taken at several heights and build a vegetation profile.

        Args:
            uploads: One encoded photo per height
            heights_cm: Sample heights in centimetres
            method: Classification method (defaults from settings)
            threshold: Method threshold (defaults from settings)
            on_progress: Optional progress callback

        Returns:
            VegetationProfileMeasurement
        """
        method = method or self.settings.default_vegetation_method
        threshold = self._resolve_threshold(method, threshold)

        def run() -> VegetationProfileMeasurement:
            images = tuple(self._decode(upload) for upload in uploads)
            request = AnalysisRequest(
                images=images,
                method=method,
                threshold=threshold,
                heights_cm=tuple(heights_cm),
                on_progress=on_progress,
            )
            return self.vegetation_profiler.analyze(request)

        logger.info(f"Horizontal vegetation analysis requested for {len(uploads)} images")
        return await self._execute(run)

    async def analyze_ground_cover(
        self,
        upload: ImageUpload,
        species_cover: Optional[Mapping[str, float]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GroundCoverMeasurement:
        """
        Decode a Daubenmire frame photo and measure ground-cover composition.

        Args:
            upload: Encoded photo
            species_cover: Optional externally tagged species abundances
            on_progress: Optional progress callback

        Returns:
            GroundCoverMeasurement
        """
        def run() -> GroundCoverMeasurement:
            image = self._decode(upload)
            request = AnalysisRequest.for_image(
                image,
                species_cover=species_cover,
                on_progress=on_progress,
            )
            return self.ground_cover_classifier.analyze(request)

        logger.info(f"Ground cover analysis requested for '{upload.filename}'")
        return await self._execute(run)

    async def analyze_canopy_batch(
        self,
        uploads: Sequence[ImageUpload],
        method: Optional[ClassificationMethod] = None,
        zenith_angle: Optional[float] = None,
        threshold: Optional[float] = None,
        concurrency: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[BatchItemOutcome[CanopyMeasurement]]:
        """
        Run canopy analysis over many photos.

        Each photo succeeds or fails independently; the returned list holds
        one outcome per upload in the order given.

        Args:
            uploads: Encoded photos
            method: Canopy method (defaults from settings)
            zenith_angle: Zenith angle (defaults from settings)
            threshold: Method threshold (defaults from settings)
            concurrency: Parallel analyses (defaults from settings)
            cancel_event: Set to stop launching new analyses
            on_progress: Receives batch-level progress

        Returns:
            List of BatchItemOutcome
        """
        async def worker(upload: ImageUpload) -> CanopyMeasurement:
            return await self.analyze_canopy(
                upload,
                method=method,
                zenith_angle=zenith_angle,
                threshold=threshold,
            )

        return await process_batch(
            uploads,
            worker,
            concurrency=self.settings.batch_concurrency if concurrency is None else concurrency,
            item_id=lambda upload: upload.filename,
            cancel_event=cancel_event,
            timeout=self.settings.batch_timeout_seconds,
            on_progress=on_progress,
        )

    def _resolve_threshold(
        self,
        method: ClassificationMethod,
        threshold: Optional[float],
    ) -> Optional[float]:
        if threshold is not None:
            return threshold
        if method == ClassificationMethod.CUSTOM_BRIGHTNESS:
            return self.settings.default_brightness_threshold
        if method == ClassificationMethod.COLOR_THRESHOLD:
            return self.settings.default_color_threshold
        return None

    def _decode(self, upload: ImageUpload) -> PixelBuffer:
        validate_upload(
            upload.content_type,
            len(upload.data),
            self.settings.allowed_image_types,
            self.settings.max_upload_bytes,
        )
        return decode_image(upload.data, max_dimension=self.settings.max_image_dimension)

    async def _execute(self, func: Callable[[], R]) -> R:
        """
        Run a synchronous analysis, off the event loop when possible.

        Falls back to inline execution when the executor refuses new work
        (for example after it has been shut down).
        """
        if not self.settings.offload_analysis:
            return func()

        loop = asyncio.get_running_loop()
        try:
            future = loop.run_in_executor(self.executor, func)
        except RuntimeError as e:
            logger.warning(f"Background execution unavailable ({e}); running analysis inline")
            return func()
        return await future
