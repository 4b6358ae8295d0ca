"""
Shared factor building blocks.

Step functions map a raw reading to a sub-score; builders return ScoreFactors
that several archetypes share (relative volume, regime suitability,
divergence, RSI turn).
"""

from typing import Optional, Sequence, Tuple

from opportunity_engine.analysis.regime_policies import regime_suitability
from opportunity_engine.shared.models.snapshot import FeatureSnapshot, FlowBias
from opportunity_engine.strategy.detectors.base import ScoreFactor

Steps = Sequence[Tuple[float, float]]


def score_at_most(value: Optional[float], steps: Steps, floor: float) -> Optional[float]:
    """
    First score whose threshold the value is at or below.

    ``steps`` are (threshold, score) pairs in ascending threshold order.
    """
    if value is None:
        return None
    for threshold, score in steps:
        if value <= threshold:
            return score
    return floor


def score_at_least(value: Optional[float], steps: Steps, floor: float) -> Optional[float]:
    """
    First score whose threshold the value is at or above.

    ``steps`` are (threshold, score) pairs in descending threshold order.
    """
    if value is None:
        return None
    for threshold, score in steps:
        if value >= threshold:
            return score
    return floor


RELATIVE_VOLUME_STEPS: Steps = ((2.0, 100.0), (1.5, 85.0), (1.0, 65.0))


def relative_volume_factor(weight: float) -> ScoreFactor:
    return ScoreFactor(
        "relative_volume",
        weight,
        lambda s: score_at_least(s.relative_volume, RELATIVE_VOLUME_STEPS, 45.0),
        "participation vs average volume",
    )


def regime_factor(archetype: str, weight: float) -> ScoreFactor:
    return ScoreFactor(
        "regime",
        weight,
        lambda s: regime_suitability(archetype, s.market_regime),
        f"regime suitability for {archetype}",
    )


def divergence_factor(bullish: bool, weight: float) -> ScoreFactor:
    """Aligned divergence adds its confidence as a bonus; opposing divergence penalises."""
    aligned = "bullish" if bullish else "bearish"
    opposing = "bearish" if bullish else "bullish"

    def _score(s: FeatureSnapshot) -> Optional[float]:
        kind = (s.divergence.type or "none").lower()
        if kind == aligned:
            confidence = s.divergence.confidence if s.divergence.confidence is not None else 50.0
            return 50.0 + max(0.0, min(100.0, confidence)) / 2.0
        if kind == opposing:
            return 20.0
        return 40.0

    return ScoreFactor("divergence", weight, _score, f"{aligned} RSI divergence")


def rsi_turn_factor(rising: bool, weight: float, period: str = "14") -> ScoreFactor:
    """
    RSI turning in the setup's favour versus the prior tick.

    ``rising=True`` rewards RSI turning up (long setups); False rewards a
    downturn. No prior tick scores neutral.
    """
    def _score(s: FeatureSnapshot) -> Optional[float]:
        current = s.rsi_value(period)
        previous = s.prev_rsi(period)
        if current is None or previous is None:
            return None
        delta = current - previous if rising else previous - current
        if delta >= 2.0:
            return 100.0
        if delta > 0:
            return 90.0
        if delta == 0:
            return 55.0
        return 25.0

    return ScoreFactor("rsi_momentum", weight, _score, "RSI turning in favour")


def flow_alignment_factor(bias: FlowBias, weight: float) -> ScoreFactor:
    """Flow agreeing with the setup scores above neutral in proportion to its strength."""
    def _score(s: FeatureSnapshot) -> Optional[float]:
        flow = s.flow
        if flow is None or flow.is_empty:
            return None
        current = flow.bias
        if current == bias:
            strength = flow.flow_score if flow.flow_score is not None else 50.0
            return 50.0 + max(0.0, min(100.0, strength)) / 2.0
        if current is None or current == FlowBias.NEUTRAL:
            return 50.0
        return 20.0

    return ScoreFactor("flow_alignment", weight, _score, f"{bias.value} institutional flow")


def mtf_agreement_factor(direction: str, weight: float) -> ScoreFactor:
    """Share of reported timeframes trending with the setup."""
    def _score(s: FeatureSnapshot) -> Optional[float]:
        directions = [t.direction.lower() for t in s.mtf.values() if t.direction]
        if not directions:
            return None
        agreeing = sum(1 for d in directions if d == direction)
        return agreeing / len(directions) * 100.0

    return ScoreFactor("mtf_agreement", weight, _score, f"timeframes trending {direction}")
