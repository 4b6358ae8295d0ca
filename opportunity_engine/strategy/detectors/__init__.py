"""Setup detectors and the registry they are served from."""

from opportunity_engine.strategy.detectors.base import Detector, GateTrail, ScoreFactor, build_signal
from opportunity_engine.strategy.detectors.registry import (
    DetectorRegistry,
    build_default_detectors,
    build_default_registry,
)

__all__ = [
    "Detector",
    "DetectorRegistry",
    "GateTrail",
    "ScoreFactor",
    "build_default_detectors",
    "build_default_registry",
    "build_signal",
]
