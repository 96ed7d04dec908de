"""
Information-theoretic diversity measures.
"""
import math
from typing import Iterable

import numpy as np
from scipy.stats import entropy


def shannon_index(abundances: Iterable[float], min_proportion: float = 0.0) -> float:
    """
    Shannon entropy -sum(p * ln p) over the proportions of ``abundances``.

    Args:
        abundances: Non-negative counts, cover percentages or weights
        min_proportion: Proportions at or below this value are dropped
            before the sum (the remaining proportions are not renormalised)

    Returns:
        Shannon index in nats; 0 when the total abundance is 0
    """
    values = np.asarray(list(abundances), dtype=np.float64)
    if values.size == 0:
        return 0.0
    if np.any(values < 0):
        raise ValueError("Abundances must be non-negative")

    total = values.sum()
    if total <= 0:
        return 0.0

    proportions = values / total
    proportions = proportions[proportions > min_proportion]
    if proportions.size == 0:
        return 0.0

    if min_proportion > 0:
        # Dropped classes are not redistributed, so entropy() cannot be used.
        return max(0.0, float(-np.sum(proportions * np.log(proportions))))
    return max(0.0, float(entropy(proportions)))


def evenness_index(shannon: float, richness: int) -> float:
    """
    Pielou evenness H / ln(S).

    Returns:
        Evenness in [0, 1]; 0 when richness is 1 or less
    """
    if richness <= 1:
        return 0.0
    return shannon / math.log(richness)
