"""
Application configuration using Pydantic settings.

Settings are read by the application and API layers only; the analysis
engine receives every parameter explicitly through an AnalysisRequest.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ecomeasure.domain.models import ClassificationMethod


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ECOMEASURE_",
        case_sensitive=False,
    )

    # Canopy Analysis Defaults
    default_canopy_method: ClassificationMethod = Field(
        default=ClassificationMethod.BRIGHTNESS_GREENNESS,
        description="Classification method used when a canopy request names none"
    )
    default_zenith_angle: float = Field(
        default=90.0,
        ge=0,
        le=90,
        description="Zenith angle in degrees restricting the analyzed cone"
    )
    default_brightness_threshold: float = Field(
        default=128.0,
        description="Brightness threshold for the custom brightness method"
    )

    # Horizontal Vegetation Defaults
    default_vegetation_method: ClassificationMethod = Field(
        default=ClassificationMethod.COLOR_THRESHOLD,
        description="Classification method used for horizontal vegetation profiling"
    )
    default_color_threshold: float = Field(
        default=0.3,
        description="Green ratio threshold for the color threshold method"
    )

    # Image Uploads
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted size of a single image upload"
    )
    allowed_image_types: list[str] = Field(
        default=["image/jpeg", "image/jpg", "image/png", "image/webp"],
        description="Accepted image content types"
    )
    max_image_dimension: int = Field(
        default=0,
        ge=0,
        description="Downscale images whose longer side exceeds this (0 keeps the original size)"
    )

    # Batch Processing
    batch_concurrency: int = Field(
        default=3,
        ge=1,
        description="Maximum number of images analyzed concurrently in a batch"
    )
    batch_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Seconds after which a batch stops launching new items"
    )

    # Execution
    offload_analysis: bool = Field(
        default=True,
        description="Run analyses on a worker thread instead of the event loop"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(
        default=100,
        description="Maximum requests per minute per client"
    )

    # Application Settings
    app_name: str = Field(
        default="EcoMeasure Analysis API",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode"
    )


# Global settings instance
settings = Settings()
