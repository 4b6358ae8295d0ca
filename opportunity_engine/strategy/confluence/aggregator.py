"""
Scoring Aggregator

Combines a detector's factor scores into one 0-100 confidence value.

Weights are always normalised by their actual sum, so a factor list declared
with weights summing to 0.9 or 1.1 scores the same as its pre-normalised
twin. Adding a factor never requires touching the other weights.
"""

import logging
from typing import Sequence

import numpy as np

from opportunity_engine.shared.models.scoring import FactorScore

logger = logging.getLogger(__name__)


def aggregate_factor_scores(factors: Sequence[FactorScore]) -> float:
    """
    Weighted mean of factor scores, clamped to [0, 100].

    Returns 0.0 for an empty list or a zero total weight.
    """
    if not factors:
        return 0.0

    scores = np.array([f.score for f in factors], dtype=float)
    weights = np.array([f.weight for f in factors], dtype=float)

    total_weight = weights.sum()
    if total_weight <= 0:
        logger.debug("Factor weights sum to zero; confidence defaults to 0")
        return 0.0

    normalized = weights / total_weight
    confidence = float(np.clip(np.dot(scores, normalized), 0.0, 100.0))
    return round(confidence, 6)


def weighted_domain_mean(scores: Sequence[float], weights: Sequence[float]) -> float:
    """Weighted mean used by the confluence combiner; 0.0 when nothing is weighted."""
    if len(scores) == 0:
        return 0.0
    values = np.array(scores, dtype=float)
    w = np.array(weights, dtype=float)
    total = w.sum()
    if total <= 0:
        return 0.0
    return float(np.clip(np.dot(values, w / total), 0.0, 100.0))
