"""
Domain service: Daubenmire quadrat ground-cover classification.

Each pixel is assigned to one ground-cover category by an ordered rule
table evaluated in HSV space:
- Vegetation (green hue or excess green)
- Bare soil (brown or gray)
- Litter (dead vegetation, dark organic matter)
- Rock (light or dark unsaturated surfaces)

Pixels matching no rule (mostly deep shadow) are left unclassified and
excluded from the percentages. Species identity is not a pixel property:
abundances are either supplied by the caller or estimated by a pluggable
tagger working on the vegetation pixels.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Optional, Sequence
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
    AnalysisRequest,
    ClassificationMethod,
    GroundCoverCounts,
    GroundCoverMeasurement,
)
from ecomeasure.utils.color_space import rgb_to_hsv, split_channels
from ecomeasure.utils.diversity import evenness_index, shannon_index
from ecomeasure.utils.progress import ProgressReporter

logger = logging.getLogger(__name__)


UNCLASSIFIED = -1
DOMINANT_SPECIES_LIMIT = 3


class GroundCoverCategory(int, Enum):
    """Ground-cover classes, with their integer codes in a class map."""
    VEGETATION = 0
    BARE_GROUND = 1
    LITTER = 2
    ROCK = 3


@dataclass(frozen=True)
class HsvPixels:
    """
    Colour features for a set of pixels.

    Hue is in whole degrees [0, 360); saturation and value are in [0, 1].
    """
    r: np.ndarray
    g: np.ndarray
    b: np.ndarray
    h: np.ndarray
    s: np.ndarray
    v: np.ndarray

    @classmethod
    def from_rgb(cls, rgb: np.ndarray) -> "HsvPixels":
        r, g, b = split_channels(rgb)
        h, s, value = rgb_to_hsv(rgb, round_hue=True)
        return cls(r=r, g=g, b=b, h=h, s=s, v=value / 255)

    def select(self, mask: np.ndarray) -> "HsvPixels":
        return HsvPixels(
            r=self.r[mask], g=self.g[mask], b=self.b[mask],
            h=self.h[mask], s=self.s[mask], v=self.v[mask],
        )


@dataclass(frozen=True)
class GroundCoverRule:
    """One row of the classification table: a category and its predicate."""
    category: GroundCoverCategory
    predicate: Callable[[HsvPixels], np.ndarray]
    description: str = ""


SpeciesTagger = Callable[[HsvPixels], Mapping[str, float]]


# ============================================================
# Default rule table
# ============================================================

def is_vegetation(px: HsvPixels) -> np.ndarray:
    channel_sum = px.r + px.g + px.b + 1
    green_excess = (2 * px.g - px.r - px.b) / channel_sum
    normalized_green = px.g / channel_sum

    hsv_vegetation = (px.h >= 60) & (px.h <= 180) & (px.s > 0.15) & (px.v > 0.2)
    rgb_vegetation = (green_excess > 0.1) & (normalized_green > 0.4)
    return hsv_vegetation | rgb_vegetation


def is_bare_ground(px: HsvPixels) -> np.ndarray:
    brownish = (px.h >= 0) & (px.h <= 45)
    brown_soil = brownish & (px.s < 0.4) & (px.v > 0.2) & (px.v < 0.8)
    gray_soil = (px.s < 0.15) & (px.v > 0.3) & (px.v < 0.7)
    return brown_soil | gray_soil


def is_litter(px: HsvPixels) -> np.ndarray:
    dead_vegetation = (px.h >= 30) & (px.h <= 60) & (px.s > 0.2) & (px.v > 0.15) & (px.v < 0.6)
    dark_organic = (px.s < 0.3) & (px.v > 0.1) & (px.v < 0.4)
    return dead_vegetation | dark_organic


def is_rock(px: HsvPixels) -> np.ndarray:
    light_rock = (px.s < 0.2) & (px.v > 0.6)
    dark_rock = (px.s < 0.15) & (px.v > 0.15) & (px.v < 0.5)
    return light_rock | dark_rock


DEFAULT_GROUND_COVER_RULES: tuple[GroundCoverRule, ...] = (
    GroundCoverRule(GroundCoverCategory.VEGETATION, is_vegetation, "green hue or excess green"),
    GroundCoverRule(GroundCoverCategory.BARE_GROUND, is_bare_ground, "brown or gray soil"),
    GroundCoverRule(GroundCoverCategory.LITTER, is_litter, "dead vegetation or dark organic matter"),
    GroundCoverRule(GroundCoverCategory.ROCK, is_rock, "light or dark unsaturated surface"),
)


# ============================================================
# Default species tagger
# ============================================================

def color_group_species(vegetation: HsvPixels) -> dict[str, float]:
    """
    Estimate vegetation types by bucketing vegetation pixels into colour groups.

    Groups are keyed by (hue // 15, saturation // 0.25, value // 0.25) and
    named from their hue band. Groups with no name are ignored.

    Args:
        vegetation: Colour features of the vegetation pixels only

    Returns:
        Mapping of vegetation type name to pixel count
    """
    total = vegetation.h.size
    if total == 0:
        return {}

    keys = np.stack([
        np.floor(vegetation.h / 15),
        np.floor(vegetation.s / 0.25),
        np.floor(vegetation.v / 0.25),
    ], axis=1).astype(np.int64)
    groups, counts = np.unique(keys, axis=0, return_counts=True)

    abundances: dict[str, float] = {}
    for (hue_group, _, _), count in zip(groups, counts):
        name = _name_color_group(int(hue_group), count / total * 100)
        if name is not None:
            abundances[name] = abundances.get(name, 0) + int(count)
    return abundances


def _name_color_group(hue_group: int, percentage: float) -> Optional[str]:
    if 4 <= hue_group <= 8:
        return "Grass/Forb" if percentage > 20 else "Mixed Vegetation"
    if 2 <= hue_group < 4:
        return "Senescent Vegetation"
    if 8 < hue_group <= 12:
        return "Moss/Algae"
    return None


# ============================================================
# Classifier
# ============================================================

class GroundCoverClassifier:
    """
    Multi-class classifier for Daubenmire frame photos.

    Rules are evaluated in order and the first match wins, so the table
    order encodes precedence between overlapping colour ranges.
    """

    method_name = "color_analysis"

    def __init__(
        self,
        rules: Sequence[GroundCoverRule] = DEFAULT_GROUND_COVER_RULES,
        species_tagger: SpeciesTagger = color_group_species,
        min_cover_proportion: float = 0.01,
    ):
        """
        Initialize the classifier.

        Args:
            rules: Ordered rule table
            species_tagger: Estimates species abundances from vegetation pixels
                when the caller supplies none
            min_cover_proportion: Category proportions at or below this value
                are ignored by the cover-diversity index
        """
        if not rules:
            raise InvalidAnalysisParameters("At least one ground-cover rule is required")
        self.rules = tuple(rules)
        self.species_tagger = species_tagger
        self.min_cover_proportion = min_cover_proportion

    def classify(self, rgb: np.ndarray) -> np.ndarray:
        """
        Assign a category code to every pixel.

        Args:
            rgb: (..., 3) array of R, G, B values

        Returns:
            int8 array of GroundCoverCategory codes, UNCLASSIFIED where no rule matched
        """
        return self._classify_features(HsvPixels.from_rgb(rgb))

    def _classify_features(self, features: HsvPixels) -> np.ndarray:
        conditions = [rule.predicate(features) for rule in self.rules]
        choices = [int(rule.category) for rule in self.rules]
        return np.select(conditions, choices, default=UNCLASSIFIED).astype(np.int8)

    def analyze(self, request: AnalysisRequest) -> GroundCoverMeasurement:
        """
        Measure ground-cover composition and diversity for one quadrat photo.

        Args:
            request: Request holding one image and optional species abundances

        Returns:
            GroundCoverMeasurement

        Raises:
            UnsupportedMethodForAnalyzer: If a binary classification method is requested
            InvalidAnalysisParameters: If supplied species abundances are negative
            EmptyAnalysisRegion: If no pixel matches any ground-cover rule
        """
        start = time.perf_counter()
        image = request.single_image()

        if request.method is not None:
            raise UnsupportedMethodForAnalyzer(ClassificationMethod(request.method).value, "ground cover")

        report = ProgressReporter(request.on_progress)
        logger.info(f"Starting ground cover analysis: {image.width}x{image.height}")
        report(10, "Loading and preprocessing image")

        report(30, "Classifying pixels using color analysis")
        features = HsvPixels.from_rgb(image.rgb)
        class_map = self._classify_features(features)

        counts = GroundCoverCounts(
            total=image.pixel_count,
            vegetation=int(np.count_nonzero(class_map == GroundCoverCategory.VEGETATION)),
            bare_ground=int(np.count_nonzero(class_map == GroundCoverCategory.BARE_GROUND)),
            litter=int(np.count_nonzero(class_map == GroundCoverCategory.LITTER)),
            rock=int(np.count_nonzero(class_map == GroundCoverCategory.ROCK)),
            unclassified=int(np.count_nonzero(class_map == UNCLASSIFIED)),
        )
        if counts.classified == 0:
            raise EmptyAnalysisRegion("No pixel matched any ground-cover category")

        report(70, "Calculating coverage statistics")
        classified = counts.classified
        vegetation_pct = counts.vegetation / classified * 100
        bare_pct = counts.bare_ground / classified * 100
        litter_pct = counts.litter / classified * 100
        rock_pct = counts.rock / classified * 100

        report(90, "Calculating biodiversity indices")
        abundances = self._species_abundances(request, features, class_map)
        dominant = sorted(abundances, key=lambda name: (-abundances[name], name))
        species_count = len(abundances)
        shannon = shannon_index(abundances.values())
        evenness = evenness_index(shannon, species_count)
        cover_diversity = shannon_index(
            [vegetation_pct, bare_pct, litter_pct, rock_pct],
            min_proportion=self.min_cover_proportion,
        )

        elapsed_ms = (time.perf_counter() - start) * 1000
        report(100, "Analysis complete")

        logger.info(
            f"Ground cover analysis complete: vegetation={vegetation_pct:.2f}%, "
            f"bare={bare_pct:.2f}%, litter={litter_pct:.2f}%, rock={rock_pct:.2f}%, "
            f"species={species_count}"
        )
        logger.debug(f"Unclassified pixels: {counts.unclassified}/{counts.total}")

        return GroundCoverMeasurement(
            method=self.method_name,
            total_coverage=round(vegetation_pct + litter_pct, 2),
            vegetation_percentage=round(vegetation_pct, 2),
            bare_ground_percentage=round(bare_pct, 2),
            litter_percentage=round(litter_pct, 2),
            rock_percentage=round(rock_pct, 2),
            dominant_species=tuple(dominant[:DOMINANT_SPECIES_LIMIT]),
            species_count=species_count,
            shannon_index=round(shannon, 3),
            evenness_index=round(evenness, 3),
            cover_diversity_index=round(cover_diversity, 3),
            counts=counts,
            elapsed_ms=round(elapsed_ms, 3),
        )

    def _species_abundances(
        self,
        request: AnalysisRequest,
        features: HsvPixels,
        class_map: np.ndarray,
    ) -> dict[str, float]:
        """
        Resolve species abundances, preferring caller-supplied tags.

        Returns:
            Mapping of species name to a positive abundance
        """
        if request.species_cover is not None:
            supplied = dict(request.species_cover)
            for name, value in supplied.items():
                if not math.isfinite(value) or value < 0:
                    raise InvalidAnalysisParameters(
                        f"Species abundance for '{name}' must be non-negative, got {value}"
                    )
            return {name: float(value) for name, value in supplied.items() if value > 0}

        vegetation = features.select(class_map == GroundCoverCategory.VEGETATION)
        estimated = self.species_tagger(vegetation)
        return {name: float(value) for name, value in estimated.items() if value > 0}
