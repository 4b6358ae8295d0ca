"""
Error policy enforcement.

Configuration problems (bad detector definitions, malformed snapshots) fail
loudly at startup or construction time. Missing market data is never an error:
gates fail closed and factors fall back to a neutral score instead.
"""

import math
from typing import Iterable, Sequence


class DetectorConfigurationError(Exception):
    """Raised when a detector definition is invalid at registration time."""


class DuplicateDetectorError(DetectorConfigurationError):
    """Raised when two detectors share the same type id."""


class InvalidFactorWeightError(DetectorConfigurationError):
    """Raised when a score factor carries a negative, non-finite or non-numeric weight."""


class InvalidSnapshotError(ValueError):
    """Raised when a feature snapshot lacks its symbol identity."""


def enforce_valid_factor_weights(detector_type: str, factors: Sequence) -> float:
    """
    Ensure a detector's factor list is usable by the aggregator.

    Weights that do not sum to 1.0 are allowed (the aggregator re-normalises),
    but a detector must declare at least one factor and no weight may be
    negative, and the total must be positive.

    Returns:
        The declared weight sum

    Raises:
        DetectorConfigurationError: If the factor list is empty
        InvalidFactorWeightError: If any weight is negative or the sum is zero
    """
    if not factors:
        raise DetectorConfigurationError(f"{detector_type}: detector declares no score factors")

    total = 0.0
    for factor in factors:
        weight = factor.weight
        if not isinstance(weight, (int, float)) or not math.isfinite(weight) or weight < 0:
            raise InvalidFactorWeightError(
                f"{detector_type}: factor '{factor.name}' has invalid weight {weight!r}"
            )
        total += weight

    if total <= 0:
        raise InvalidFactorWeightError(f"{detector_type}: factor weights sum to {total}")

    return total


def enforce_unique_types(types: Iterable[str]) -> None:
    """
    Ensure detector type ids are unique.

    Raises:
        DuplicateDetectorError: On the first repeated id
    """
    seen = set()
    for detector_type in types:
        if detector_type in seen:
            raise DuplicateDetectorError(f"Detector type '{detector_type}' registered twice")
        seen.add(detector_type)
