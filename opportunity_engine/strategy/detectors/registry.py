"""
Detector Registry

An ordered, immutable collection of detectors built once at startup and
passed into the evaluator. Validates definitions on construction:
- duplicate type ids -> DuplicateDetectorError
- empty factor lists / negative weights -> DetectorConfigurationError
- weight sums off 1.0 -> warning only (the aggregator re-normalises)

Safe to share across worker threads: nothing in it is mutable.
"""

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from opportunity_engine.analysis.asset_classifier import classify_asset
from opportunity_engine.shared.config.thresholds import DEFAULT_THRESHOLDS, DetectorThresholds
from opportunity_engine.shared.models.scoring import AssetClass
from opportunity_engine.shared.models.snapshot import FeatureSnapshot
from opportunity_engine.shared.utils.error_policy import enforce_unique_types, enforce_valid_factor_weights
from opportunity_engine.strategy.detectors.base import Detector
from opportunity_engine.strategy.detectors.breakout import build_breakout_detectors
from opportunity_engine.strategy.detectors.gamma_squeeze import build_gamma_squeeze_detectors
from opportunity_engine.strategy.detectors.institutional_flow import build_institutional_flow_detectors
from opportunity_engine.strategy.detectors.mean_reversion import build_mean_reversion_detectors
from opportunity_engine.strategy.detectors.trend_continuation import build_trend_continuation_detectors

logger = logging.getLogger(__name__)

WEIGHT_SUM_TOLERANCE = 0.01


class DetectorRegistry:
    """Read-only, ordered detector collection queried by asset class / options data."""

    def __init__(self, detectors: Iterable[Detector]):
        detectors = tuple(detectors)
        enforce_unique_types(d.type for d in detectors)

        for detector in detectors:
            total = enforce_valid_factor_weights(detector.type, detector.score_factors)
            if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
                logger.warning(
                    "⚠️ %s factor weights sum to %.3f; confidence will be re-normalised",
                    detector.type, total,
                )

        self._detectors: Tuple[Detector, ...] = detectors
        self._by_type: Dict[str, Detector] = {d.type: d for d in detectors}

    def __len__(self) -> int:
        return len(self._detectors)

    def __iter__(self) -> Iterator[Detector]:
        return iter(self._detectors)

    def __contains__(self, detector_type: object) -> bool:
        return detector_type in self._by_type

    @property
    def types(self) -> List[str]:
        return [d.type for d in self._detectors]

    def get(self, detector_type: str) -> Detector:
        """Lookup a detector by type id."""
        if detector_type not in self._by_type:
            raise KeyError(f"Unknown detector type: {detector_type}")
        return self._by_type[detector_type]

    def for_asset_class(self, asset_class: AssetClass) -> List[Detector]:
        return [d for d in self._detectors if asset_class in d.asset_classes]

    def requiring_options_data(self, required: bool = True) -> List[Detector]:
        return [d for d in self._detectors if d.requires_options_data == required]

    def select(self, asset_class: AssetClass, has_options_data: bool) -> List[Detector]:
        """Detectors applicable to an asset class given the available data, in order."""
        return [d for d in self._detectors if d.applies_to(asset_class, has_options_data)]

    def for_snapshot(self, snapshot: FeatureSnapshot, asset_class: Optional[AssetClass] = None) -> List[Detector]:
        asset_class = asset_class or classify_asset(snapshot.symbol)
        return self.select(asset_class, snapshot.has_options_data)

    def with_detectors(self, extra: Iterable[Detector]) -> "DetectorRegistry":
        """New registry with additional detectors appended (validation re-runs)."""
        return DetectorRegistry(self._detectors + tuple(extra))

    def describe(self) -> List[Dict[str, object]]:
        """Serializable summaries of the registered detectors."""
        return [
            {
                "type": d.type,
                "direction": d.direction.value,
                "asset_classes": sorted(a.value for a in d.asset_classes),
                "requires_options_data": d.requires_options_data,
                "ideal_timeframe": d.ideal_timeframe,
                "factors": [(f.name, f.weight) for f in d.score_factors],
                "description": d.description,
            }
            for d in self._detectors
        ]


def build_default_detectors(thresholds: DetectorThresholds = DEFAULT_THRESHOLDS) -> List[Detector]:
    return [
        *build_mean_reversion_detectors(thresholds.mean_reversion),
        *build_breakout_detectors(thresholds.breakout),
        *build_trend_continuation_detectors(thresholds.trend_continuation),
        *build_institutional_flow_detectors(thresholds.institutional_flow),
        *build_gamma_squeeze_detectors(thresholds.gamma_squeeze),
    ]


def build_default_registry(thresholds: DetectorThresholds = DEFAULT_THRESHOLDS) -> DetectorRegistry:
    """Registry with the full built-in detector set."""
    registry = DetectorRegistry(build_default_detectors(thresholds))
    logger.debug("Detector registry built with %d detectors", len(registry))
    return registry
