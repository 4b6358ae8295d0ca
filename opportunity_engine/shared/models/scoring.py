"""
Scoring models.

This module defines the records produced by the engine: per-factor scores,
gate explanation trails, detector signals and the per-symbol confluence score
that watchlists and alerting rank and display.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Mapping, Optional, Tuple


class Direction(str, Enum):
    """Trade direction of a detector."""
    LONG = "LONG"
    SHORT = "SHORT"


class AssetClass(str, Enum):
    """Asset class a detector applies to."""
    INDEX = "INDEX"
    EQUITY_ETF = "EQUITY_ETF"
    STOCK = "STOCK"


class CheckStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class DataStatus(str, Enum):
    """Freshness of the inputs behind a confluence domain."""
    FRESH = "fresh"
    STALE = "stale"
    ABSENT = "absent"


@dataclass(frozen=True)
class FactorScore:
    """
    Individual factor contribution to a detector's confidence.

    Attributes:
        name: Factor identifier (e.g., 'rsi_extreme', 'atr_stretch')
        score: Sub-score for this factor (0-100)
        weight: Declared weight (re-normalised by the aggregator if needed)
        detail: Short explanation, 'no data' when the neutral fallback was used
    """
    name: str
    score: float
    weight: float
    detail: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValueError("Factor name cannot be empty")
        if not 0 <= self.score <= 100:
            raise ValueError(f"Score must be 0-100, got {self.score}")
        if self.weight < 0:
            raise ValueError(f"Weight must be >= 0, got {self.weight}")

    @property
    def weighted_score(self) -> float:
        return self.score * self.weight


@dataclass(frozen=True)
class GateCheck:
    """One step of a detector gate and why it passed, failed or was skipped."""
    name: str
    status: CheckStatus
    reason: str

    @property
    def passed(self) -> bool:
        return self.status != CheckStatus.FAILED


@dataclass(frozen=True)
class GateResult:
    """Outcome of a detector gate with its full explanation trail."""
    detector_type: str
    passed: bool
    checks: Tuple[GateCheck, ...] = ()

    @property
    def failed_check(self) -> Optional[GateCheck]:
        for check in self.checks:
            if check.status == CheckStatus.FAILED:
                return check
        return None

    def explain(self) -> str:
        lines = [f"{self.detector_type}: {'PASS' if self.passed else 'FAIL'}"]
        for check in self.checks:
            lines.append(f"  [{check.status.value}] {check.name}: {check.reason}")
        return "\n".join(lines)


@dataclass(frozen=True)
class DetectionResult:
    """Gate outcome plus the aggregated score when the gate passed."""
    detector_type: str
    detected: bool
    confidence: float
    factor_scores: Tuple[FactorScore, ...]
    gate: GateResult


@dataclass(frozen=True)
class Signal:
    """
    A gated detector's output for one evaluation tick.

    Superseded, never mutated, by the next tick's evaluation.
    """
    detector_type: str
    symbol: str
    direction: Direction
    confidence: float
    contributing_factors: Tuple[FactorScore, ...]
    timestamp: Optional[datetime]
    evidence: Tuple[GateCheck, ...] = ()

    def __post_init__(self):
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Confidence must be 0-100, got {self.confidence}")

    def top_factors(self, limit: int = 3) -> List[FactorScore]:
        """Factors ordered by weighted contribution, strongest first."""
        return sorted(
            self.contributing_factors,
            key=lambda f: (-f.weighted_score, f.name),
        )[:limit]


@dataclass(frozen=True)
class DomainScore:
    """
    One cross-cutting evidence domain of the confluence score.

    ``score`` is None when the domain is ABSENT and was excluded.
    """
    name: str
    score: Optional[float]
    weight: float
    status: DataStatus
    detail: str = ""
    metrics: Mapping[str, object] = field(default_factory=dict)

    @property
    def included(self) -> bool:
        return self.status != DataStatus.ABSENT and self.score is not None


@dataclass(frozen=True)
class TimeframeAlignment:
    timeframe: str
    direction: Optional[str]
    status: DataStatus
    aligned: bool


@dataclass(frozen=True)
class DetectorTopFactors:
    detector_type: str
    direction: Direction
    confidence: float
    factors: Tuple[FactorScore, ...]


@dataclass(frozen=True)
class DataCompleteness:
    """How much of the expected snapshot was populated (informational)."""
    score: float
    missing_critical: Tuple[str, ...] = ()
    missing: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ConfluenceComponents:
    mtf_alignment: DomainScore
    flow_bias: DomainScore
    key_level_proximity: DomainScore
    gamma_positioning: DomainScore
    per_detector_top_factors: Tuple[DetectorTopFactors, ...] = ()

    def domains(self) -> Tuple[DomainScore, ...]:
        return (self.mtf_alignment, self.flow_bias, self.key_level_proximity, self.gamma_positioning)


@dataclass(frozen=True)
class ConfluenceScore:
    """
    Overall per-symbol score built from detector-independent evidence.

    Attributes:
        symbol: Symbol evaluated
        overall_score: Weighted mean of included domains (0-100)
        components: Per-domain scores with freshness status
        timeframes: Per-timeframe trend alignment detail
        dominant_direction: 'up', 'down' or 'neutral' across timeframes
        threshold: Score needed for "ready" status
        is_hot: Score within 90% of the threshold
        is_ready: Score at or above the threshold
        data_completeness: Snapshot population report
        timestamp: Snapshot instant the score derives from
    """
    symbol: str
    overall_score: float
    components: ConfluenceComponents
    timeframes: Tuple[TimeframeAlignment, ...] = ()
    dominant_direction: str = "neutral"
    threshold: float = 75.0
    is_hot: bool = False
    is_ready: bool = False
    data_completeness: Optional[DataCompleteness] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if not 0 <= self.overall_score <= 100:
            raise ValueError(f"Overall score must be 0-100, got {self.overall_score}")

    def get_rationale_summary(self) -> str:
        lines = [f"{self.symbol} Confluence: {self.overall_score:.1f}/100 (threshold {self.threshold:.0f})"]
        for domain in self.components.domains():
            value = f"{domain.score:.1f}" if domain.score is not None else "excluded"
            lines.append(f"  • {domain.name}: {value} [{domain.status.value}] {domain.detail}")
        for top in self.components.per_detector_top_factors:
            names = ", ".join(f"{f.name}={f.score:.0f}" for f in top.factors)
            lines.append(f"  ◦ {top.detector_type} ({top.confidence:.1f}): {names}")
        return "\n".join(lines)
