"""
Domain models for pixel buffers, analysis requests and measurement results.

These models represent the core domain entities and should be independent
of any infrastructure concerns (HTTP, decoding, persistence).
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Literal, Mapping, Optional

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from ecomeasure.domain.errors import InvalidAnalysisParameters, InvalidImageData


ProgressCallback = Callable[[float, str], None]


# ============================================================
# Input models
# ============================================================

@dataclass(frozen=True)
class PixelBuffer:
    """
    Immutable 8-bit raster with interleaved R,G,B[,A] channels.

    The pixel array has shape (height, width, channels) and is exposed as a
    read-only view, so the engine can never mutate the caller's data.
    """
    width: int
    height: int
    channels: int
    pixels: np.ndarray = field(repr=False, compare=False)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise InvalidImageData(
                f"Image dimensions must be positive, got {self.width}x{self.height}"
            )
        if self.channels not in (3, 4):
            raise InvalidImageData(f"Expected 3 or 4 channels, got {self.channels}")

        expected_shape = (self.height, self.width, self.channels)
        if self.pixels.shape != expected_shape:
            raise InvalidImageData(
                f"Pixel array shape {self.pixels.shape} does not match {expected_shape}"
            )
        if self.pixels.dtype != np.uint8:
            raise InvalidImageData(f"Pixel array must be uint8, got {self.pixels.dtype}")

        view = self.pixels.view()
        view.flags.writeable = False
        object.__setattr__(self, "pixels", view)

    @classmethod
    def from_bytes(
        cls,
        width: int,
        height: int,
        data: bytes,
        channels: int = 4,
    ) -> "PixelBuffer":
        """
        Build a buffer from a flat interleaved byte sequence.

        Args:
            width: Image width in pixels
            height: Image height in pixels
            data: Interleaved channel bytes, row-major
            channels: 3 for RGB, 4 for RGBA

        Returns:
            PixelBuffer instance

        Raises:
            InvalidImageData: If the length does not equal width*height*channels
        """
        if width <= 0 or height <= 0:
            raise InvalidImageData(f"Image dimensions must be positive, got {width}x{height}")

        expected = width * height * channels
        if len(data) != expected:
            raise InvalidImageData(
                f"Buffer length {len(data)} does not match {width}x{height}x{channels} = {expected}"
            )

        pixels = np.frombuffer(bytes(data), dtype=np.uint8).reshape(height, width, channels)
        return cls(width=width, height=height, channels=channels, pixels=pixels)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "PixelBuffer":
        """
        Build a buffer from an (H, W, C) integer array with values in [0, 255].

        Raises:
            InvalidImageData: If the array has the wrong rank or value range
        """
        array = np.asarray(array)
        if array.ndim != 3:
            raise InvalidImageData(f"Expected an (H, W, C) array, got shape {array.shape}")
        if array.size == 0:
            raise InvalidImageData("Image has zero pixels")

        if array.dtype != np.uint8:
            if not np.issubdtype(array.dtype, np.integer):
                raise InvalidImageData(f"Pixel values must be integers, got {array.dtype}")
            if array.min() < 0 or array.max() > 255:
                raise InvalidImageData("Pixel values must lie in [0, 255]")
            array = array.astype(np.uint8)

        height, width, channels = array.shape
        return cls(width=width, height=height, channels=channels, pixels=array)

    @property
    def rgb(self) -> np.ndarray:
        """Read-only (H, W, 3) view with the alpha channel dropped."""
        return self.pixels[..., :3]

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


class ClassificationMethod(str, Enum):
    """Closed set of pixel classification methods."""
    BRIGHTNESS_GREENNESS = "brightness_greenness"
    COLOR_RATIO = "color_ratio"
    CUSTOM_BRIGHTNESS = "custom_brightness"
    COLOR_THRESHOLD = "color_threshold"
    EDGE_DETECTION = "edge_detection"
    HEURISTIC_CLUSTER = "heuristic_cluster"

    @classmethod
    def from_label(cls, label: str) -> "ClassificationMethod":
        """
        Resolve a method from its value or a field-app label.

        Accepts the enum values as well as the labels used by the field
        application ("GLAMA", "Canopeo", "Custom", "machine_learning").

        Raises:
            ValueError: If the label is unknown
        """
        if isinstance(label, cls):
            return label

        normalized = label.strip()
        if normalized in LEGACY_METHOD_LABELS:
            return LEGACY_METHOD_LABELS[normalized]

        try:
            return cls(normalized.lower())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown classification method '{label}'. Valid methods: {valid}")


LEGACY_METHOD_LABELS = {
    "GLAMA": ClassificationMethod.BRIGHTNESS_GREENNESS,
    "Canopeo": ClassificationMethod.COLOR_RATIO,
    "Custom": ClassificationMethod.CUSTOM_BRIGHTNESS,
    "machine_learning": ClassificationMethod.HEURISTIC_CLUSTER,
}


@dataclass(frozen=True)
class AnalysisRequest:
    """
    One analysis call: target buffers, method, geometry and a progress hook.

    Constructed by a caller, consumed once by an analyzer, then discarded.
    All defaults are passed explicitly here; analyzers read no global state.
    """
    images: tuple[PixelBuffer, ...]
    method: Optional[ClassificationMethod] = None
    threshold: Optional[float] = None
    zenith_angle_deg: float = 90.0
    heights_cm: tuple[float, ...] = ()
    species_cover: Optional[Mapping[str, float]] = None
    on_progress: Optional[ProgressCallback] = field(default=None, compare=False)

    @classmethod
    def for_image(
        cls,
        image: PixelBuffer,
        method: Optional[ClassificationMethod] = None,
        **kwargs,
    ) -> "AnalysisRequest":
        """Convenience constructor for single-image analyzers."""
        return cls(images=(image,), method=method, **kwargs)

    def require_method(self) -> ClassificationMethod:
        """
        Return the request's classification method.

        Raises:
            InvalidAnalysisParameters: If no method was supplied
        """
        if self.method is None:
            raise InvalidAnalysisParameters("A classification method is required")
        return ClassificationMethod(self.method)

    def single_image(self) -> PixelBuffer:
        """
        Return the only image of a single-image request.

        Raises:
            InvalidImageData: If the request does not hold exactly one image
        """
        if len(self.images) != 1:
            raise InvalidImageData(
                f"Expected exactly one image, got {len(self.images)}"
            )
        return self.images[0]


# ============================================================
# Result models
# ============================================================

class AggregateCounts(BaseModel):
    """Pixel counts for one binary analysis run."""
    model_config = ConfigDict(frozen=True)

    total: int = Field(ge=0, description="Pixels considered after masking")
    positive: int = Field(ge=0, description="Pixels classified as canopy/green/vegetation")
    negative: int = Field(ge=0, description="Pixels classified as the complement")

    @model_validator(mode="after")
    def check_partition(self) -> "AggregateCounts":
        if self.positive + self.negative > self.total:
            raise ValueError("positive + negative cannot exceed total")
        return self


class CanopyMeasurement(BaseModel):
    """Canopy cover, light transmission and leaf-area index for one photo."""
    model_config = ConfigDict(frozen=True)

    method: ClassificationMethod
    canopy_cover: float = Field(ge=0, le=100, description="Canopy cover in %")
    light_transmission: float = Field(ge=0, le=100, description="Light transmission in %")
    leaf_area_index: Optional[float] = Field(
        default=None,
        description="Beer's law LAI; None when the canopy is fully closed",
    )
    lai_saturated: bool = Field(
        default=False,
        description="True when light transmission is zero and LAI is undefined",
    )
    zenith_angle: float
    pixels_analyzed: int
    counts: AggregateCounts
    elapsed_ms: float


class HeightMeasurement(BaseModel):
    """Coverage of a single photo taken at one sample height."""
    model_config = ConfigDict(frozen=True)

    height_cm: float
    vegetation_cover: float = Field(ge=0, le=100)
    pixels_analyzed: int
    green_pixels: int
    density_index: float
    elapsed_ms: float


class HeightProfile(BaseModel):
    """Vertical vegetation density profile across sample heights."""
    model_config = ConfigDict(frozen=True)

    cover_by_height: dict[float, float]
    average_cover: float
    height_diversity: float = Field(ge=0)
    vegetation_profile: Literal["sparse", "moderate", "dense"]

    @field_serializer("cover_by_height")
    def serialize_cover_by_height(self, cover_by_height: dict[float, float]) -> dict[str, float]:
        """Key whole-centimetre heights as "50" rather than "50.0"."""
        return {
            str(int(height)) if float(height).is_integer() else str(height): cover
            for height, cover in cover_by_height.items()
        }


class VegetationProfileMeasurement(BaseModel):
    """Result of a horizontal vegetation (digital Robel pole) analysis."""
    model_config = ConfigDict(frozen=True)

    method: ClassificationMethod
    measurements: tuple[HeightMeasurement, ...]
    profile: HeightProfile
    elapsed_ms: float

    @property
    def average_cover(self) -> float:
        return self.profile.average_cover

    @property
    def cover_by_height(self) -> dict[float, float]:
        return self.profile.cover_by_height


class GroundCoverCounts(BaseModel):
    """Pixel counts per ground-cover category."""
    model_config = ConfigDict(frozen=True)

    total: int
    vegetation: int
    bare_ground: int
    litter: int
    rock: int
    unclassified: int

    @property
    def classified(self) -> int:
        return self.vegetation + self.bare_ground + self.litter + self.rock


class GroundCoverMeasurement(BaseModel):
    """Daubenmire quadrat ground-cover composition and diversity."""
    model_config = ConfigDict(frozen=True)

    method: str
    sampling_area_m2: float = 1.0
    total_coverage: float = Field(description="Vegetation + litter, in %")
    vegetation_percentage: float
    bare_ground_percentage: float
    litter_percentage: float
    rock_percentage: float
    dominant_species: tuple[str, ...]
    species_count: int
    shannon_index: float = Field(ge=0)
    evenness_index: float = Field(ge=0)
    cover_diversity_index: float = Field(
        ge=0,
        description="Shannon index over ground-cover category proportions",
    )
    counts: GroundCoverCounts
    elapsed_ms: float
