"""
Integration tests for API endpoints.

Tests the full HTTP request/response cycle with real analyzers and, where
noted, a mocked application service.
"""
import json

import pytest
from unittest.mock import AsyncMock

from ecomeasure.api.dependencies import get_analysis_service
from ecomeasure.domain.errors import EmptyAnalysisRegion
from ecomeasure.domain.models import AggregateCounts, CanopyMeasurement, ClassificationMethod
from ecomeasure.main import app
from ecomeasure.services.application.analysis_service import AnalysisService


def png_file(name: str, data: bytes, field: str = "image"):
    return (field, (name, data, "image/png"))


@pytest.fixture
def mock_service():
    """Replace the analysis service for the duration of a test."""
    service = AsyncMock(spec=AnalysisService)
    app.dependency_overrides[get_analysis_service] = lambda: service
    try:
        yield service
    finally:
        app.dependency_overrides.clear()


# ============================================================
# Health Check Tests
# ============================================================

class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_root_endpoint(self, test_client):
        """Root endpoint should return healthy status."""
        response = test_client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "service" in data
        assert "version" in data

    def test_health_endpoint(self, test_client):
        """Health endpoint should return healthy status."""
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# ============================================================
# Method Catalogue Tests
# ============================================================

class TestMethodsEndpoint:
    """Tests for the classification method catalogue."""

    def test_lists_every_method(self, test_client):
        response = test_client.get("/api/v1/analyses/methods")

        assert response.status_code == 200
        data = response.json()
        methods = {m["method"]: m for m in data["methods"]}
        assert set(methods) == {m.value for m in ClassificationMethod}
        assert data["ground_cover_method"] == "color_analysis"

    def test_method_details(self, test_client):
        data = test_client.get("/api/v1/analyses/methods").json()
        methods = {m["method"]: m for m in data["methods"]}

        assert methods["brightness_greenness"]["legacy_labels"] == ["GLAMA"]
        assert methods["brightness_greenness"]["analyzers"] == ["canopy", "horizontal_vegetation"]
        assert methods["edge_detection"]["analyzers"] == ["horizontal_vegetation"]
        assert methods["custom_brightness"]["accepts_threshold"] is True
        assert methods["color_ratio"]["accepts_threshold"] is False


# ============================================================
# Canopy Endpoint Tests
# ============================================================

class TestCanopyEndpoint:
    """Tests for the canopy analysis endpoint."""

    def test_green_photo(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[png_file("green.png", green_png)],
        )

        assert response.status_code == 200
        data = response.json()
        assert data["method"] == "brightness_greenness"
        assert data["canopy_cover"] == 100.0
        assert data["light_transmission"] == 0.0
        assert data["leaf_area_index"] is None
        assert data["lai_saturated"] is True

    def test_legacy_method_label(self, test_client, white_png):
        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[png_file("white.png", white_png)],
            data={"method": "Canopeo", "zenith_angle": "60"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["method"] == "color_ratio"
        assert data["zenith_angle"] == 60.0
        assert data["leaf_area_index"] == 0.0

    def test_unknown_method(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[png_file("green.png", green_png)],
            data={"method": "ndvi"},
        )

        assert response.status_code == 422

    def test_method_not_supported_for_canopy(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[png_file("green.png", green_png)],
            data={"method": "color_threshold"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "UnsupportedMethodForAnalyzer"

    def test_zenith_angle_out_of_range(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[png_file("green.png", green_png)],
            data={"zenith_angle": "120"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidAnalysisParameters"

    def test_undecodable_image(self, test_client):
        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[png_file("bad.png", b"not an image")],
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidImageData"

    def test_wrong_content_type(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[("image", ("notes.txt", green_png, "text/plain"))],
        )

        assert response.status_code == 400
        assert "Invalid file type" in response.json()["detail"]

    def test_missing_image(self, test_client):
        response = test_client.post("/api/v1/analyses/canopy", data={"method": "GLAMA"})

        assert response.status_code == 422

    def test_response_from_mocked_service(self, test_client, green_png, mock_service):
        mock_service.analyze_canopy.return_value = CanopyMeasurement(
            method=ClassificationMethod.BRIGHTNESS_GREENNESS,
            canopy_cover=62.5,
            light_transmission=37.5,
            leaf_area_index=0.981,
            zenith_angle=90.0,
            pixels_analyzed=8,
            counts=AggregateCounts(total=8, positive=5, negative=3),
            elapsed_ms=1.0,
        )

        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[png_file("green.png", green_png)],
            data={"method": "GLAMA", "threshold": "100"},
        )

        assert response.status_code == 200
        assert response.json()["canopy_cover"] == 62.5
        kwargs = mock_service.analyze_canopy.call_args.kwargs
        assert kwargs["method"] == ClassificationMethod.BRIGHTNESS_GREENNESS
        assert kwargs["threshold"] == 100.0

    def test_analysis_error_from_service(self, test_client, green_png, mock_service):
        mock_service.analyze_canopy.side_effect = EmptyAnalysisRegion("nothing to analyze")

        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[png_file("green.png", green_png)],
        )

        assert response.status_code == 400
        assert response.json() == {"error": "EmptyAnalysisRegion", "detail": "nothing to analyze"}

    def test_unexpected_error_from_service(self, test_client, green_png, mock_service):
        mock_service.analyze_canopy.side_effect = RuntimeError("disk on fire")

        response = test_client.post(
            "/api/v1/analyses/canopy",
            files=[png_file("green.png", green_png)],
        )

        assert response.status_code == 500
        assert response.json()["error"] == "Internal server error"
        assert "disk on fire" not in response.text


# ============================================================
# Horizontal Vegetation Endpoint Tests
# ============================================================

class TestHorizontalVegetationEndpoint:
    """Tests for the horizontal vegetation endpoint."""

    def test_profile(self, test_client, green_png, white_png):
        response = test_client.post(
            "/api/v1/analyses/horizontal-vegetation",
            files=[
                png_file("low.png", green_png, field="images"),
                png_file("high.png", white_png, field="images"),
            ],
            data={"heights": "25, 100"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["method"] == "color_threshold"
        assert data["profile"]["cover_by_height"] == {"25": 100.0, "100": 0.0}
        assert data["profile"]["average_cover"] == 50.0
        assert data["profile"]["vegetation_profile"] == "moderate"
        assert len(data["measurements"]) == 2

    def test_invalid_heights(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/horizontal-vegetation",
            files=[png_file("low.png", green_png, field="images")],
            data={"heights": "low"},
        )

        assert response.status_code == 422

    def test_cardinality_mismatch(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/horizontal-vegetation",
            files=[png_file("low.png", green_png, field="images")],
            data={"heights": "25,50"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InputCardinalityMismatch"


# ============================================================
# Ground Cover Endpoint Tests
# ============================================================

class TestGroundCoverEndpoint:
    """Tests for the ground cover endpoint."""

    def test_estimated_species(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/ground-cover",
            files=[png_file("quadrat.png", green_png)],
        )

        assert response.status_code == 200
        data = response.json()
        assert data["method"] == "color_analysis"
        assert data["vegetation_percentage"] == 100.0
        assert data["dominant_species"] == ["Grass/Forb"]

    def test_supplied_species(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/ground-cover",
            files=[png_file("quadrat.png", green_png)],
            data={"species_cover": json.dumps({"Poa": 60, "Carex": 40})},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["species_count"] == 2
        assert data["dominant_species"] == ["Poa", "Carex"]

    def test_invalid_species_cover(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/ground-cover",
            files=[png_file("quadrat.png", green_png)],
            data={"species_cover": "[1, 2]"},
        )

        assert response.status_code == 422


# ============================================================
# Batch Endpoint Tests
# ============================================================

class TestCanopyBatchEndpoint:
    """Tests for batch canopy analysis."""

    def test_mixed_batch(self, test_client, green_png, white_png):
        response = test_client.post(
            "/api/v1/analyses/canopy/batch",
            files=[
                png_file("green.png", green_png, field="images"),
                png_file("broken.png", b"garbage", field="images"),
                png_file("white.png", white_png, field="images"),
            ],
            data={"concurrency": "2"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["succeeded"] == 2
        assert data["failed"] == 1
        assert data["cancelled"] == 0

        items = data["items"]
        assert [item["filename"] for item in items] == ["green.png", "broken.png", "white.png"]
        assert items[0]["result"]["canopy_cover"] == 100.0
        assert items[1]["status"] == "failed"
        assert items[1]["error"]["error_type"] == "InvalidImageData"
        assert items[2]["result"]["canopy_cover"] == 0.0

    def test_invalid_concurrency(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/canopy/batch",
            files=[png_file("green.png", green_png, field="images")],
            data={"concurrency": "-1"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidAnalysisParameters"

    def test_zero_concurrency_is_rejected(self, test_client, green_png):
        response = test_client.post(
            "/api/v1/analyses/canopy/batch",
            files=[png_file("green.png", green_png, field="images")],
            data={"concurrency": "0"},
        )

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidAnalysisParameters"


# ============================================================
# Response Format Tests
# ============================================================

class TestResponseFormats:
    """Tests for API response formats."""

    def test_openapi_schema_available(self, test_client):
        """OpenAPI schema should be available."""
        response = test_client.get("/openapi.json")

        assert response.status_code == 200
        paths = response.json()["paths"]
        assert "/api/v1/analyses/canopy" in paths
        assert "/api/v1/analyses/horizontal-vegetation" in paths
        assert "/api/v1/analyses/ground-cover" in paths
        assert "/api/v1/analyses/canopy/batch" in paths

    def test_docs_endpoint_available(self, test_client):
        """Swagger docs should be available."""
        response = test_client.get("/docs")

        assert response.status_code == 200

    def test_rate_limit_documented_in_openapi(self, test_client):
        data = test_client.get("/openapi.json").json()

        assert "429" in data["paths"]["/api/v1/analyses/canopy/batch"]["post"]["responses"]


# ============================================================
# CORS Tests
# ============================================================

class TestCORS:
    """Tests for CORS configuration."""

    def test_cors_preflight(self, test_client):
        """CORS preflight should succeed for the analysis endpoints."""
        response = test_client.options(
            "/api/v1/analyses/canopy",
            headers={
                "Origin": "http://example.com",
                "Access-Control-Request-Method": "POST",
            }
        )

        assert response.status_code == 200
        assert "access-control-allow-origin" in response.headers
