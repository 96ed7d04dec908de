"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- Solid-colour and patterned pixel buffers
- Encoded PNG uploads
- Analyzer and service instances
- FastAPI test client
"""
import io
from typing import Callable

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from ecomeasure.config import Settings
from ecomeasure.domain.models import PixelBuffer
from ecomeasure.main import app
from ecomeasure.services.application.analysis_service import AnalysisService, ImageUpload
from ecomeasure.services.domain.canopy_analyzer import CanopyAnalyzer
from ecomeasure.services.domain.ground_cover_classifier import GroundCoverClassifier
from ecomeasure.services.domain.vegetation_profiler import VegetationProfiler


GREEN = (0, 200, 0)
WHITE = (255, 255, 255)


# ============================================================
# Pixel Buffer Fixtures
# ============================================================

def solid_array(width: int, height: int, color: tuple[int, ...]) -> np.ndarray:
    """Build an (H, W, C) uint8 array filled with one colour."""
    array = np.zeros((height, width, len(color)), dtype=np.uint8)
    array[:, :] = color
    return array


@pytest.fixture
def make_image() -> Callable[..., PixelBuffer]:
    """Factory for solid-colour pixel buffers."""
    def _make(width: int = 4, height: int = 4, color: tuple[int, ...] = GREEN) -> PixelBuffer:
        return PixelBuffer.from_array(solid_array(width, height, color))
    return _make


@pytest.fixture
def green_image(make_image) -> PixelBuffer:
    """4x4 image of saturated green foliage."""
    return make_image(4, 4, GREEN)


@pytest.fixture
def white_image(make_image) -> PixelBuffer:
    """4x4 image of open white sky."""
    return make_image(4, 4, WHITE)


@pytest.fixture
def half_canopy_image() -> PixelBuffer:
    """10x10 image with the top half green and the bottom half white."""
    array = solid_array(10, 10, WHITE)
    array[:5, :] = GREEN
    return PixelBuffer.from_array(array)


@pytest.fixture
def striped_row() -> Callable[[int], PixelBuffer]:
    """Factory for 10x1 rows with a given number of green pixels, rest white."""
    def _make(green_pixels: int) -> PixelBuffer:
        array = solid_array(10, 1, WHITE)
        array[0, :green_pixels] = GREEN
        return PixelBuffer.from_array(array)
    return _make


# ============================================================
# Encoded Upload Fixtures
# ============================================================

def encode_png(array: np.ndarray) -> bytes:
    """Encode an (H, W, C) uint8 array as PNG bytes."""
    buffer = io.BytesIO()
    Image.fromarray(array).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def green_png() -> bytes:
    """8x8 green PNG."""
    return encode_png(solid_array(8, 8, GREEN))


@pytest.fixture
def white_png() -> bytes:
    """8x8 white PNG."""
    return encode_png(solid_array(8, 8, WHITE))


@pytest.fixture
def green_upload(green_png) -> ImageUpload:
    return ImageUpload(filename="green.png", data=green_png, content_type="image/png")


@pytest.fixture
def white_upload(white_png) -> ImageUpload:
    return ImageUpload(filename="white.png", data=white_png, content_type="image/png")


# ============================================================
# Service Fixtures
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings independent of the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def analysis_service(test_settings) -> AnalysisService:
    """Analysis service wired with real analyzers."""
    return AnalysisService(
        settings=test_settings,
        canopy_analyzer=CanopyAnalyzer(),
        vegetation_profiler=VegetationProfiler(),
        ground_cover_classifier=GroundCoverClassifier(),
    )


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def test_client() -> TestClient:
    """Create a synchronous test client for FastAPI."""
    return TestClient(app)
