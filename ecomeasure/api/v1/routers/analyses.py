"""
API router for image analysis endpoints.
"""
from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from pydantic import TypeAdapter, ValidationError
from typing import Annotated, List, Optional

from ecomeasure.api.dependencies import AnalysisServiceDep
from ecomeasure.api.rate_limiting import BATCH_RATE_LIMIT, limiter
from ecomeasure.api.v1.models.responses import (
    BatchItemResponse,
    BatchResponse,
    ErrorDetail,
    ErrorResponse,
    MethodCatalogResponse,
    MethodInfo,
)
from ecomeasure.domain.models import (
    LEGACY_METHOD_LABELS,
    CanopyMeasurement,
    ClassificationMethod,
    GroundCoverMeasurement,
    VegetationProfileMeasurement,
)
from ecomeasure.services.application.analysis_service import ImageUpload
from ecomeasure.services.domain.batch_coordinator import BatchReport
from ecomeasure.services.domain.canopy_analyzer import CANOPY_METHODS
from ecomeasure.services.domain.ground_cover_classifier import GroundCoverClassifier
from ecomeasure.services.domain.pixel_classifier import THRESHOLD_METHODS


router = APIRouter(
    prefix="/analyses",
    tags=["analyses"],
)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid or undecodable image, or empty analysis region"},
    422: {"model": ErrorResponse, "description": "Unsupported method or out-of-range parameter"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}

_species_cover_adapter = TypeAdapter(dict[str, float])


def _parse_method(label: Optional[str]) -> Optional[ClassificationMethod]:
    if label is None or not label.strip():
        return None
    try:
        return ClassificationMethod.from_label(label)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


def _parse_heights(raw: str) -> List[float]:
    try:
        return [float(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Heights must be comma-separated numbers in cm, got '{raw}'"
        )


async def _read_upload(file: UploadFile) -> ImageUpload:
    return ImageUpload(
        filename=file.filename or "image",
        data=await file.read(),
        content_type=file.content_type,
    )


@router.get(
    "/methods",
    response_model=MethodCatalogResponse,
    summary="List classification methods",
)
async def list_methods() -> MethodCatalogResponse:
    """
    Return every classification method with the analyses that accept it.
    """
    legacy: dict[ClassificationMethod, List[str]] = {}
    for label, method in LEGACY_METHOD_LABELS.items():
        legacy.setdefault(method, []).append(label)

    methods = []
    for method in ClassificationMethod:
        analyzers = ["horizontal_vegetation"]
        if method in CANOPY_METHODS:
            analyzers.insert(0, "canopy")
        methods.append(MethodInfo(
            method=method.value,
            legacy_labels=legacy.get(method, []),
            analyzers=analyzers,
            accepts_threshold=method in THRESHOLD_METHODS,
        ))

    return MethodCatalogResponse(
        methods=methods,
        ground_cover_method=GroundCoverClassifier.method_name,
    )


@router.post(
    "/canopy",
    response_model=CanopyMeasurement,
    summary="Measure canopy cover",
    description="""
    Analyze an upward-facing canopy photo.

    Pixels inside the zenith cone are classified as canopy or sky, and the
    response reports canopy cover, light transmission and the Beer's law
    leaf area index. At 0% light transmission the LAI is undefined: it is
    returned as null with `lai_saturated` set.

    Accepted methods: `brightness_greenness` (GLAMA), `color_ratio` (Canopeo),
    `custom_brightness` (Custom).
    """,
    responses=ERROR_RESPONSES,
)
async def analyze_canopy(
    image: Annotated[UploadFile, File(description="Canopy photo (JPEG, PNG or WebP)")],
    analysis_service: AnalysisServiceDep,
    method: Annotated[Optional[str], Form(description="Classification method")] = None,
    zenith_angle: Annotated[Optional[float], Form(description="Zenith angle in degrees [0, 90]")] = None,
    threshold: Annotated[Optional[float], Form(description="Threshold for custom_brightness")] = None,
) -> CanopyMeasurement:
    """
    Measure canopy cover for one photo.

    Raises:
        HTTPException: If the method label is unknown
    """
    return await analysis_service.analyze_canopy(
        await _read_upload(image),
        method=_parse_method(method),
        zenith_angle=zenith_angle,
        threshold=threshold,
    )


@router.post(
    "/horizontal-vegetation",
    response_model=VegetationProfileMeasurement,
    summary="Build a horizontal vegetation profile",
    description="""
    Analyze photos of a vegetation profile board taken at several heights.

    Upload one image per height, in the same order as the comma-separated
    `heights` field. Duplicate heights are averaged in `cover_by_height`.
    """,
    responses=ERROR_RESPONSES,
)
async def analyze_horizontal_vegetation(
    images: Annotated[List[UploadFile], File(description="One photo per sample height")],
    heights: Annotated[str, Form(description="Comma-separated heights in cm, e.g. '25,50,100'")],
    analysis_service: AnalysisServiceDep,
    method: Annotated[Optional[str], Form(description="Classification method")] = None,
    threshold: Annotated[Optional[float], Form(description="Threshold for threshold-based methods")] = None,
) -> VegetationProfileMeasurement:
    """
    Build a vegetation density profile across sample heights.

    Raises:
        HTTPException: If the heights or method label cannot be parsed
    """
    uploads = [await _read_upload(file) for file in images]
    return await analysis_service.analyze_horizontal_vegetation(
        uploads,
        _parse_heights(heights),
        method=_parse_method(method),
        threshold=threshold,
    )


@router.post(
    "/ground-cover",
    response_model=GroundCoverMeasurement,
    summary="Measure Daubenmire ground cover",
    description="""
    Classify a quadrat photo into vegetation, bare ground, litter and rock.

    Species diversity is computed from the optional `species_cover` field,
    a JSON object mapping species names to abundances. Without it, species
    are estimated from colour groups of the vegetation pixels.
    """,
    responses=ERROR_RESPONSES,
)
async def analyze_ground_cover(
    image: Annotated[UploadFile, File(description="Quadrat photo (JPEG, PNG or WebP)")],
    analysis_service: AnalysisServiceDep,
    species_cover: Annotated[
        Optional[str],
        Form(description='JSON species abundances, e.g. {"Poa pratensis": 40}')
    ] = None,
) -> GroundCoverMeasurement:
    """
    Measure ground-cover composition for one quadrat photo.

    Raises:
        HTTPException: If species_cover is not a JSON object of numbers
    """
    species = None
    if species_cover:
        try:
            species = _species_cover_adapter.validate_json(species_cover)
        except ValidationError as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Invalid species_cover: {e.errors()[0]['msg']}"
            )

    return await analysis_service.analyze_ground_cover(
        await _read_upload(image),
        species_cover=species,
    )


@router.post(
    "/canopy/batch",
    response_model=BatchResponse,
    summary="Measure canopy cover for many photos",
    description="""
    Analyze several canopy photos with bounded concurrency.

    Each file succeeds or fails on its own; failures are reported per file
    and never abort the batch.
    """,
    responses={
        **ERROR_RESPONSES,
        429: {"description": "Rate limit exceeded"},
    },
)
@limiter.limit(BATCH_RATE_LIMIT)
async def analyze_canopy_batch(
    request: Request,
    images: Annotated[List[UploadFile], File(description="Canopy photos")],
    analysis_service: AnalysisServiceDep,
    method: Annotated[Optional[str], Form(description="Classification method")] = None,
    zenith_angle: Annotated[Optional[float], Form(description="Zenith angle in degrees [0, 90]")] = None,
    threshold: Annotated[Optional[float], Form(description="Threshold for custom_brightness")] = None,
    concurrency: Annotated[Optional[int], Form(description="Photos analyzed in parallel")] = None,
) -> BatchResponse:
    """
    Measure canopy cover for each uploaded photo.

    Raises:
        HTTPException: If the method label is unknown
    """
    uploads = [await _read_upload(file) for file in images]
    outcomes = await analysis_service.analyze_canopy_batch(
        uploads,
        method=_parse_method(method),
        zenith_angle=zenith_angle,
        threshold=threshold,
        concurrency=concurrency,
    )

    report = BatchReport(outcomes=outcomes)
    return BatchResponse(
        total=len(outcomes),
        succeeded=report.succeeded,
        failed=report.failed,
        cancelled=report.cancelled,
        items=[
            BatchItemResponse(
                filename=outcome.item_id,
                status=outcome.status,
                result=outcome.result,
                error=ErrorDetail(
                    error_type=outcome.error.error_type,
                    message=outcome.error.detail,
                ) if outcome.error else None,
                reason=outcome.reason,
            )
            for outcome in outcomes
        ],
    )
