"""
Evaluation records.

A SymbolEvaluation is everything the engine produced for one snapshot: the
signals of the detectors that gated true, the confluence score, the gate
trails of the detectors that did not, and any detector failures. Every part
derives from the same snapshot object.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

from opportunity_engine.shared.models.scoring import AssetClass, ConfluenceScore, GateResult, Signal


@dataclass(frozen=True)
class DetectorFailure:
    """A detector that raised while evaluating a snapshot; its output was dropped."""
    symbol: str
    detector_type: str
    error_type: str
    message: str


@dataclass(frozen=True)
class SymbolEvaluation:
    """
    Engine output for one symbol tick.

    Attributes:
        symbol: Symbol evaluated
        timestamp: Snapshot instant every part derives from
        signals: Gated signals, strongest first
        confluence: Exactly one confluence score per tick
        rejections: Gate trails of detectors that did not fire
        failures: Detectors that raised and were dropped
        asset_class: Asset class used to select detectors
    """
    symbol: str
    timestamp: Optional[datetime]
    signals: Tuple[Signal, ...]
    confluence: ConfluenceScore
    rejections: Tuple[GateResult, ...] = ()
    failures: Tuple[DetectorFailure, ...] = ()
    asset_class: AssetClass = AssetClass.STOCK

    @property
    def best_signal(self) -> Optional[Signal]:
        return self.signals[0] if self.signals else None

    @property
    def has_signal(self) -> bool:
        return bool(self.signals)

    def rejection_breakdown(self) -> Dict[str, int]:
        """Count of rejections keyed by 'detector.check'."""
        counts: Dict[str, int] = {}
        for gate in self.rejections:
            failed = gate.failed_check
            key = f"{gate.detector_type}.{failed.name if failed else 'gate'}"
            counts[key] = counts.get(key, 0) + 1
        return counts
