"""
Detector contract.

A detector is one tradeable-setup archetype expressed as data:
1. An ordered, short-circuit gate that records every check on a GateTrail
2. A declarative list of weighted ScoreFactors, each mapping the snapshot to 0-100
3. Static metadata the registry selects on (asset classes, options data)

Detectors are stateless and never mutate the snapshot. Missing inputs fail
the gate step that needs them and score a neutral 50 inside factors.
"""

import math
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional, Tuple

from opportunity_engine.shared.models.scoring import (
    AssetClass,
    CheckStatus,
    DetectionResult,
    Direction,
    FactorScore,
    GateCheck,
    GateResult,
    Signal,
)
from opportunity_engine.shared.models.snapshot import FeatureSnapshot
from opportunity_engine.strategy.confluence.aggregator import aggregate_factor_scores

NEUTRAL_SCORE = 50.0

ALL_ASSET_CLASSES: FrozenSet[AssetClass] = frozenset(AssetClass)


@dataclass(frozen=True)
class ScoreFactor:
    """
    One weighted piece of evidence.

    ``fn`` returns a raw sub-score, or None when its inputs are missing.
    """
    name: str
    weight: float
    fn: Callable[[FeatureSnapshot], Optional[float]]
    description: str = ""

    def evaluate(self, snapshot: FeatureSnapshot) -> float:
        """Sub-score in [0, 100]; missing data maps to the neutral midpoint."""
        return self.score(snapshot).score

    def score(self, snapshot: FeatureSnapshot) -> FactorScore:
        raw = self.fn(snapshot)
        if raw is None or not math.isfinite(raw):
            return FactorScore(self.name, NEUTRAL_SCORE, self.weight, "no data")
        value = max(0.0, min(100.0, float(raw)))
        return FactorScore(self.name, value, self.weight, self.description)


class GateTrail:
    """
    Collects the explanation trail of a gate evaluation.

    Every helper returns the boolean the gate should continue with, so gate
    functions read as ``return trail.fail(...)`` on the short-circuit paths.
    """

    def __init__(self, detector_type: str):
        self.detector_type = detector_type
        self.checks: List[GateCheck] = []

    def passed(self, name: str, reason: str) -> bool:
        self.checks.append(GateCheck(name, CheckStatus.PASSED, reason))
        return True

    def fail(self, name: str, reason: str) -> bool:
        self.checks.append(GateCheck(name, CheckStatus.FAILED, reason))
        return False

    def skip(self, name: str, reason: str) -> bool:
        self.checks.append(GateCheck(name, CheckStatus.SKIPPED, reason))
        return True

    def check(self, name: str, ok: bool, pass_reason: str, fail_reason: str) -> bool:
        return self.passed(name, pass_reason) if ok else self.fail(name, fail_reason)

    def result(self, passed: bool) -> GateResult:
        return GateResult(self.detector_type, passed, tuple(self.checks))


GateFn = Callable[[FeatureSnapshot, GateTrail], bool]


@dataclass(frozen=True)
class Detector:
    """
    Named, stateless setup definition.

    Attributes:
        type: Unique detector id (e.g., 'mean_reversion_long')
        direction: LONG or SHORT
        asset_classes: Asset classes the detector applies to
        requires_options_data: Skip symbols without gamma/options context
        gate_fn: Ordered short-circuit gate writing to a GateTrail
        score_factors: Weighted factor list
        ideal_timeframe: Chart timeframe the setup is tuned for
        description: One-line summary for display
    """
    type: str
    direction: Direction
    gate_fn: GateFn
    score_factors: Tuple[ScoreFactor, ...]
    asset_classes: FrozenSet[AssetClass] = ALL_ASSET_CLASSES
    requires_options_data: bool = False
    ideal_timeframe: str = "5m"
    description: str = ""

    @property
    def total_weight(self) -> float:
        return sum(f.weight for f in self.score_factors)

    def applies_to(self, asset_class: AssetClass, has_options_data: bool) -> bool:
        if asset_class not in self.asset_classes:
            return False
        return has_options_data or not self.requires_options_data

    def evaluate_gate(self, snapshot: FeatureSnapshot) -> GateResult:
        trail = GateTrail(self.type)
        if self.requires_options_data and not snapshot.has_options_data:
            trail.fail("options_data", "gamma/options context unavailable")
            return trail.result(False)
        passed = bool(self.gate_fn(snapshot, trail))
        return trail.result(passed)

    def gate(self, snapshot: FeatureSnapshot) -> bool:
        return self.evaluate_gate(snapshot).passed

    def score_factors_for(self, snapshot: FeatureSnapshot) -> Tuple[FactorScore, ...]:
        return tuple(f.score(snapshot) for f in self.score_factors)

    def score(self, snapshot: FeatureSnapshot) -> float:
        """Aggregated confidence (0-100) regardless of the gate outcome."""
        return aggregate_factor_scores(self.score_factors_for(snapshot))

    def detect(self, snapshot: FeatureSnapshot) -> DetectionResult:
        """Gate, then score only when the gate passed."""
        gate = self.evaluate_gate(snapshot)
        if not gate.passed:
            return DetectionResult(self.type, False, 0.0, (), gate)
        factors = self.score_factors_for(snapshot)
        return DetectionResult(self.type, True, aggregate_factor_scores(factors), factors, gate)


def build_signal(detector: Detector, snapshot: FeatureSnapshot) -> Tuple[Optional[Signal], DetectionResult]:
    """
    Run a detector against a snapshot.

    Returns the Signal (None when the gate failed) together with the full
    DetectionResult so callers can report the rejection trail.
    """
    result = detector.detect(snapshot)
    if not result.detected:
        return None, result
    signal = Signal(
        detector_type=detector.type,
        symbol=snapshot.symbol,
        direction=detector.direction,
        confidence=result.confidence,
        contributing_factors=result.factor_scores,
        timestamp=snapshot.timestamp,
        evidence=result.gate.checks,
    )
    return signal, result

