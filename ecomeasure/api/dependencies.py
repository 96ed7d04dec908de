"""
Dependency injection for FastAPI.
"""
from typing import Annotated
from fastapi import Depends

from ecomeasure.config import Settings, settings
from ecomeasure.services.application.analysis_service import AnalysisService
from ecomeasure.services.domain.canopy_analyzer import CanopyAnalyzer
from ecomeasure.services.domain.ground_cover_classifier import GroundCoverClassifier
from ecomeasure.services.domain.vegetation_profiler import VegetationProfiler


def get_settings() -> Settings:
    """
    Dependency factory for application settings.

    Returns:
        Global Settings instance
    """
    return settings


def get_canopy_analyzer() -> CanopyAnalyzer:
    return CanopyAnalyzer()


def get_vegetation_profiler() -> VegetationProfiler:
    return VegetationProfiler()


def get_ground_cover_classifier() -> GroundCoverClassifier:
    return GroundCoverClassifier()


def get_analysis_service(
    app_settings: Annotated[Settings, Depends(get_settings)],
    canopy_analyzer: Annotated[CanopyAnalyzer, Depends(get_canopy_analyzer)],
    vegetation_profiler: Annotated[VegetationProfiler, Depends(get_vegetation_profiler)],
    ground_cover_classifier: Annotated[GroundCoverClassifier, Depends(get_ground_cover_classifier)],
) -> AnalysisService:
    """
    Dependency factory for AnalysisService.

    Args:
        app_settings: Application settings (injected)
        canopy_analyzer: Canopy analyzer (injected)
        vegetation_profiler: Horizontal vegetation profiler (injected)
        ground_cover_classifier: Ground cover classifier (injected)

    Returns:
        AnalysisService instance
    """
    return AnalysisService(
        settings=app_settings,
        canopy_analyzer=canopy_analyzer,
        vegetation_profiler=vegetation_profiler,
        ground_cover_classifier=ground_cover_classifier,
    )


# Type aliases for cleaner route signatures
AnalysisServiceDep = Annotated[AnalysisService, Depends(get_analysis_service)]
