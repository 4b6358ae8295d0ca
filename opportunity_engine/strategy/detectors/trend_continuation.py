"""
Trend Continuation Detectors

Buy the pullback to EMA9 inside a confirmed uptrend (sell the rally in a
downtrend).

Long gate:
1. Stacked EMAs: EMA9 above EMA21 by a minimum spread
2. Regime confirms the trend (trending_up)
3. Pullback: price within N x ATR of EMA9 and still above EMA21
4. RSI in a healthy band (wider outside RTH)
5. Bearish flow veto
"""

from typing import List, Optional

from opportunity_engine.analysis.session import classify_session, session_threshold
from opportunity_engine.shared.config.thresholds import DEFAULT_TREND_CONTINUATION, TrendContinuationThresholds
from opportunity_engine.shared.models.scoring import Direction
from opportunity_engine.shared.models.snapshot import FeatureSnapshot, FlowBias, MarketRegime
from opportunity_engine.strategy.detectors.base import Detector, GateTrail, ScoreFactor
from opportunity_engine.strategy.detectors.factors import (
    flow_alignment_factor,
    mtf_agreement_factor,
    relative_volume_factor,
    score_at_least,
    score_at_most,
)
from opportunity_engine.strategy.detectors.vetoes import check_flow_veto

TREND_CONTINUATION_LONG = "trend_continuation_long"
TREND_CONTINUATION_SHORT = "trend_continuation_short"


def _ema_spread_pct(s: FeatureSnapshot, long: bool) -> Optional[float]:
    """EMA9 vs EMA21 spread in percent, positive when stacked with the trend."""
    ema9 = s.ema_value("9")
    ema21 = s.ema_value("21")
    if ema9 is None or ema21 is None:
        return None
    spread = (ema9 - ema21) / ema21 * 100.0
    return spread if long else -spread


def _pullback_atr(s: FeatureSnapshot) -> Optional[float]:
    """Absolute distance of price from EMA9 in ATR units."""
    price = s.current_price
    ema9 = s.ema_value("9")
    atr = s.atr_value
    if price is None or ema9 is None or atr is None:
        return None
    return abs(price - ema9) / atr


def _rsi_band(s: FeatureSnapshot, t: TrendContinuationThresholds, long: bool):
    low = session_threshold(s, t.rsi_low, t.rsi_low_extended)
    high = session_threshold(s, t.rsi_high, t.rsi_high_extended)
    if long:
        return low, high
    return 100.0 - high, 100.0 - low


def _gate(t: TrendContinuationThresholds, long: bool):
    trend = MarketRegime.TRENDING_UP if long else MarketRegime.TRENDING_DOWN
    opposing = FlowBias.BEARISH if long else FlowBias.BULLISH

    def gate(s: FeatureSnapshot, trail: GateTrail) -> bool:
        session = classify_session(s)

        # 1. EMA stack
        spread = _ema_spread_pct(s, long)
        if spread is None:
            return trail.fail("ema_stack", "EMA9/EMA21 unavailable")
        if not trail.check(
            "ema_stack", spread >= t.min_ema_spread_pct,
            f"EMA9/EMA21 stacked by {spread:.2f}%",
            f"EMA9/EMA21 spread {spread:.2f}% < {t.min_ema_spread_pct:.2f}%",
        ):
            return False

        # 2. Regime
        regime = s.market_regime
        if regime is None:
            return trail.fail("regime", "regime unavailable")
        if not trail.check(
            "regime", regime == trend,
            f"regime {regime.value}",
            f"regime {regime.value}, needs {trend.value}",
        ):
            return False

        # 3. Pullback to EMA9, trend intact
        pullback = _pullback_atr(s)
        ema21 = s.ema_value("21")
        price = s.current_price
        if pullback is None or ema21 is None:
            return trail.fail("pullback", "price, EMA9 or ATR unavailable")
        intact = price > ema21 if long else price < ema21
        if not intact:
            return trail.fail("pullback", f"price {price:.2f} through EMA21 {ema21:.2f}")
        if not trail.check(
            "pullback", pullback <= t.max_pullback_atr,
            f"{pullback:.2f} ATR from EMA9",
            f"{pullback:.2f} ATR from EMA9 (> {t.max_pullback_atr:.1f}), not a pullback",
        ):
            return False

        # 4. RSI band
        rsi = s.rsi_value("14")
        if rsi is None:
            return trail.fail("rsi_band", "RSI(14) unavailable")
        low, high = _rsi_band(s, t, long)
        if not trail.check(
            "rsi_band", low <= rsi <= high,
            f"RSI {rsi:.1f} in {low:.0f}-{high:.0f} ({session.label})",
            f"RSI {rsi:.1f} outside {low:.0f}-{high:.0f} ({session.label})",
        ):
            return False

        # 5. Opposing flow
        return check_flow_veto(s, trail, opposing, t.flow_veto)

    return gate


def _factors(long: bool, t: TrendContinuationThresholds) -> List[ScoreFactor]:
    def spread_fn(s: FeatureSnapshot) -> Optional[float]:
        return score_at_least(_ema_spread_pct(s, long), ((0.5, 100.0), (0.3, 85.0), (0.15, 70.0)), 55.0)

    def pullback_fn(s: FeatureSnapshot) -> Optional[float]:
        return score_at_most(_pullback_atr(s), ((0.25, 100.0), (0.5, 85.0), (0.75, 70.0)), 55.0)

    def rsi_fn(s: FeatureSnapshot) -> Optional[float]:
        rsi = s.rsi_value("14")
        if rsi is None:
            return None
        low, high = _rsi_band(s, t, long)
        # Best when RSI has reset to the middle of the band
        centre = (low + high) / 2.0
        off = abs(rsi - centre)
        if off <= 5.0:
            return 100.0
        if off <= 10.0:
            return 75.0
        return 50.0

    return [
        ScoreFactor("ema_spread", 0.20, spread_fn, "EMA9/EMA21 separation"),
        ScoreFactor("pullback_quality", 0.25, pullback_fn, "ATR distance from EMA9"),
        ScoreFactor("rsi_reset", 0.15, rsi_fn, "RSI reset inside the trend band"),
        mtf_agreement_factor("up" if long else "down", 0.15),
        relative_volume_factor(0.10),
        flow_alignment_factor(FlowBias.BULLISH if long else FlowBias.BEARISH, 0.15),
    ]


def build_trend_continuation_long(
    thresholds: TrendContinuationThresholds = DEFAULT_TREND_CONTINUATION,
) -> Detector:
    return Detector(
        type=TREND_CONTINUATION_LONG,
        direction=Direction.LONG,
        gate_fn=_gate(thresholds, long=True),
        score_factors=tuple(_factors(True, thresholds)),
        ideal_timeframe="5m",
        description="Pullback to EMA9 inside a confirmed uptrend",
    )


def build_trend_continuation_short(
    thresholds: TrendContinuationThresholds = DEFAULT_TREND_CONTINUATION,
) -> Detector:
    return Detector(
        type=TREND_CONTINUATION_SHORT,
        direction=Direction.SHORT,
        gate_fn=_gate(thresholds, long=False),
        score_factors=tuple(_factors(False, thresholds)),
        ideal_timeframe="5m",
        description="Rally to EMA9 inside a confirmed downtrend",
    )


def build_trend_continuation_detectors(
    thresholds: TrendContinuationThresholds = DEFAULT_TREND_CONTINUATION,
) -> List[Detector]:
    return [build_trend_continuation_long(thresholds), build_trend_continuation_short(thresholds)]
