"""
Unit tests for pixel classification strategies.

Tests cover:
- Each classification rule at and around its thresholds
- Vectorised and per-pixel classification agreement
- Edge detection border handling
- Strategy registry and threshold validation
- Method label resolution
"""
import pytest
import numpy as np

from ecomeasure.domain.errors import InvalidAnalysisParameters
from ecomeasure.domain.models import ClassificationMethod
from ecomeasure.services.domain.pixel_classifier import (
    BrightnessGreennessClassifier,
    ColorRatioClassifier,
    ColorThresholdClassifier,
    CustomBrightnessClassifier,
    EdgeDetectionClassifier,
    HeuristicClusterClassifier,
    PointClassifier,
    build_classifier,
)


# ============================================================
# Canopy Rule Tests
# ============================================================

class TestBrightnessGreenness:
    """Tests for the brightness/greenness canopy rule."""

    @pytest.mark.parametrize("pixel, expected", [
        ((0, 200, 0), True),        # dark and green
        ((0, 0, 0), True),          # dark silhouette
        ((90, 150, 60), True),      # bright but greenness 0.5
        ((255, 255, 255), False),   # open sky
        ((100, 100, 100), False),   # bright gray, greenness 1/3
    ])
    def test_classify_pixel(self, pixel, expected):
        """Pixels are canopy when dark or strongly green."""
        assert BrightnessGreennessClassifier().classify_pixel(*pixel) is expected


class TestColorRatio:
    """Tests for the Canopeo-style colour ratio rule."""

    @pytest.mark.parametrize("pixel, expected", [
        ((50, 150, 50), True),
        ((100, 111, 100), True),    # excess green 22
        ((100, 110, 100), False),   # excess green exactly 20
        ((100, 100, 100), False),   # ratios 1.0
        ((0, 0, 0), False),         # zero green: ratios 0 but no excess green
    ])
    def test_classify_pixel(self, pixel, expected):
        assert ColorRatioClassifier().classify_pixel(*pixel) is expected


class TestCustomBrightness:
    """Tests for the custom brightness threshold rule."""

    def test_default_threshold_is_strict(self):
        """Brightness must be strictly below the default of 128."""
        classifier = CustomBrightnessClassifier()

        assert classifier.threshold == 128
        assert classifier.classify_pixel(127, 127, 127) is True
        assert classifier.classify_pixel(128, 128, 128) is False

    def test_custom_threshold(self):
        classifier = CustomBrightnessClassifier(threshold=200)

        assert classifier.classify_pixel(150, 150, 150) is True

    @pytest.mark.parametrize("threshold", [-1, 255.5, 300])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(InvalidAnalysisParameters):
            CustomBrightnessClassifier(threshold=threshold)


# ============================================================
# Horizontal Vegetation Rule Tests
# ============================================================

class TestColorThreshold:
    """Tests for the green colour threshold rule."""

    @pytest.mark.parametrize("pixel, expected", [
        ((50, 150, 50), True),
        ((0, 200, 0), True),
        ((100, 125, 100), False),   # green margin over red only 25
        ((255, 255, 255), False),
        ((0, 0, 0), False),         # black pixel has green ratio 0
    ])
    def test_classify_pixel(self, pixel, expected):
        assert ColorThresholdClassifier().classify_pixel(*pixel) is expected

    def test_higher_threshold_rejects_moderate_green(self):
        """A 0.6 green share fails a 0.7 threshold."""
        assert ColorThresholdClassifier(threshold=0.7).classify_pixel(50, 150, 50) is False

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(InvalidAnalysisParameters):
            ColorThresholdClassifier(threshold=threshold)


class TestHeuristicCluster:
    """Tests for the fixed HSV heuristic."""

    @pytest.mark.parametrize("pixel, expected", [
        ((0, 200, 0), True),        # hue 120
        ((255, 255, 0), True),      # hue 60, lower bound
        ((0, 255, 255), True),      # hue 180, upper bound
        ((0, 200, 255), False),     # hue ~193
        ((200, 0, 0), False),       # hue 0
        ((30, 40, 30), False),      # saturation 0.25
        ((0, 40, 0), False),        # value 40
    ])
    def test_classify_pixel(self, pixel, expected):
        assert HeuristicClusterClassifier().classify_pixel(*pixel) is expected


# ============================================================
# Edge Detection Tests
# ============================================================

class TestEdgeDetection:
    """Tests for the Sobel edge detection strategy."""

    def test_edge_between_black_and_green(self):
        """Green pixels next to a black band are edges; border pixels are not considered."""
        frame = np.zeros((5, 5, 3), dtype=np.uint8)
        frame[:, 2:] = (0, 200, 0)

        result = EdgeDetectionClassifier().classify_frame(frame)
        counts = result.counts

        assert counts.total == 9
        assert counts.positive == 3
        assert result.positive[1:4, 2].all()
        assert not result.positive[0].any()
        assert not result.positive[:, 0].any()

    def test_uniform_frame_has_no_edges(self):
        frame = np.zeros((5, 5, 3), dtype=np.uint8)
        frame[:, :] = (0, 200, 0)

        counts = EdgeDetectionClassifier().classify_frame(frame).counts

        assert counts.total == 9
        assert counts.positive == 0

    def test_tiny_frame_has_no_interior(self):
        frame = np.zeros((2, 2, 3), dtype=np.uint8)

        counts = EdgeDetectionClassifier().classify_frame(frame).counts

        assert counts.total == 0

    def test_needs_neighborhood(self):
        assert EdgeDetectionClassifier().needs_neighborhood is True
        assert ColorRatioClassifier().needs_neighborhood is False


# ============================================================
# Vectorisation Tests
# ============================================================

class TestVectorisedClassification:
    """Vectorised and per-pixel classification must agree."""

    @pytest.mark.parametrize("method", [
        ClassificationMethod.BRIGHTNESS_GREENNESS,
        ClassificationMethod.COLOR_RATIO,
        ClassificationMethod.CUSTOM_BRIGHTNESS,
        ClassificationMethod.COLOR_THRESHOLD,
        ClassificationMethod.HEURISTIC_CLUSTER,
    ])
    def test_frame_matches_pixel_by_pixel(self, method):
        rng = np.random.default_rng(42)
        frame = rng.integers(0, 256, size=(6, 7, 3), dtype=np.uint8)
        classifier = build_classifier(method)

        vectorised = classifier.classify(frame)
        looped = np.array([
            [classifier.classify_pixel(*frame[y, x]) for x in range(7)]
            for y in range(6)
        ])

        np.testing.assert_array_equal(vectorised, looped)

    def test_point_classifier_considers_every_pixel(self):
        frame = np.zeros((3, 4, 3), dtype=np.uint8)

        counts = BrightnessGreennessClassifier().classify_frame(frame).counts

        assert counts.total == 12
        assert counts.positive + counts.negative == counts.total

    def test_input_is_not_modified(self):
        frame = np.full((3, 3, 3), 90, dtype=np.uint8)
        original = frame.copy()

        ColorThresholdClassifier().classify(frame)
        EdgeDetectionClassifier().classify_frame(frame)

        np.testing.assert_array_equal(frame, original)


# ============================================================
# Strategy Selection Tests
# ============================================================

class TestBuildClassifier:
    """Tests for the strategy registry."""

    @pytest.mark.parametrize("method", list(ClassificationMethod))
    def test_every_method_has_a_strategy(self, method):
        classifier = build_classifier(method)

        assert classifier.method == method

    def test_threshold_is_passed_to_parameterised_methods(self):
        classifier = build_classifier(ClassificationMethod.CUSTOM_BRIGHTNESS, threshold=90)

        assert classifier.threshold == 90

    def test_threshold_ignored_for_fixed_methods(self):
        classifier = build_classifier(ClassificationMethod.COLOR_RATIO, threshold=999)

        assert isinstance(classifier, ColorRatioClassifier)

    def test_invalid_threshold_raises(self):
        with pytest.raises(InvalidAnalysisParameters):
            build_classifier(ClassificationMethod.COLOR_THRESHOLD, threshold=2.0)

    def test_edge_detection_is_not_a_point_classifier(self):
        assert not isinstance(build_classifier(ClassificationMethod.EDGE_DETECTION), PointClassifier)


class TestMethodLabels:
    """Tests for resolving method labels."""

    @pytest.mark.parametrize("label, expected", [
        ("GLAMA", ClassificationMethod.BRIGHTNESS_GREENNESS),
        ("Canopeo", ClassificationMethod.COLOR_RATIO),
        ("Custom", ClassificationMethod.CUSTOM_BRIGHTNESS),
        ("machine_learning", ClassificationMethod.HEURISTIC_CLUSTER),
        ("color_threshold", ClassificationMethod.COLOR_THRESHOLD),
        ("EDGE_DETECTION", ClassificationMethod.EDGE_DETECTION),
        (" color_ratio ", ClassificationMethod.COLOR_RATIO),
    ])
    def test_from_label(self, label, expected):
        assert ClassificationMethod.from_label(label) == expected

    def test_unknown_label(self):
        with pytest.raises(ValueError, match="Unknown classification method"):
            ClassificationMethod.from_label("ndvi")
