"""
API response models using Pydantic.
"""
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from ecomeasure.domain.models import CanopyMeasurement


class MethodInfo(BaseModel):
    """One entry of the classification method catalogue."""
    method: str = Field(
        description="Method identifier accepted by the analysis endpoints",
        examples=["brightness_greenness"]
    )
    legacy_labels: List[str] = Field(
        default_factory=list,
        description="Field-app labels that resolve to this method"
    )
    analyzers: List[str] = Field(
        description="Analyses that accept this method"
    )
    accepts_threshold: bool = Field(
        description="Whether the method takes a threshold parameter"
    )


class MethodCatalogResponse(BaseModel):
    """Response model for the method catalogue endpoint."""
    methods: List[MethodInfo]
    ground_cover_method: str = Field(
        description="Method reported by ground cover analyses"
    )


class ErrorDetail(BaseModel):
    """Failure of a single batch item."""
    error_type: str = Field(description="Name of the error raised for the item")
    message: str = Field(description="Human-readable failure message")


class BatchItemResponse(BaseModel):
    """Outcome of one file in a batch."""
    filename: str
    status: Literal["succeeded", "failed", "cancelled"]
    result: Optional[CanopyMeasurement] = None
    error: Optional[ErrorDetail] = None
    reason: Optional[str] = Field(
        default=None,
        description="Why a cancelled item was never analyzed"
    )


class BatchResponse(BaseModel):
    """Response model for batch canopy analysis."""
    total: int = Field(description="Number of files submitted")
    succeeded: int
    failed: int
    cancelled: int
    items: List[BatchItemResponse] = Field(
        description="One outcome per file, in submission order"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total": 2,
                "succeeded": 1,
                "failed": 1,
                "cancelled": 0,
                "items": [
                    {"filename": "plot_a.jpg", "status": "succeeded", "result": {"canopy_cover": 62.5}},
                    {
                        "filename": "plot_b.jpg",
                        "status": "failed",
                        "error": {"error_type": "InvalidImageData", "message": "Failed to decode image"},
                    },
                ],
            }
        }
    )


class ErrorResponse(BaseModel):
    """Body returned for failed requests."""
    error: str
    detail: str
