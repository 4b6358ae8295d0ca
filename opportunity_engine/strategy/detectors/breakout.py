"""
Breakout Detectors

Price driving through the opening range (or the last swing level when no
opening range is reported) with participation behind it.

Bullish gate (bearish mirrors):
1. Level break: price above ORB high / swing high by the break buffer
2. Not over-extended: distance past the level within N x ATR
3. Relative volume: mandatory in RTH; skipped without volume outside RTH
4. RSI momentum band: strong but not exhausted
5. Choppy regimes blocked (no follow-through)
6. Opposing flow veto
"""

from typing import List, Optional, Tuple

from opportunity_engine.analysis.session import classify_session, session_threshold
from opportunity_engine.shared.config.thresholds import DEFAULT_BREAKOUT, BreakoutThresholds
from opportunity_engine.shared.models.scoring import Direction
from opportunity_engine.shared.models.snapshot import FeatureSnapshot, FlowBias
from opportunity_engine.strategy.detectors.base import Detector, GateTrail, ScoreFactor
from opportunity_engine.strategy.detectors.factors import (
    flow_alignment_factor,
    regime_factor,
    score_at_least,
    score_at_most,
)
from opportunity_engine.strategy.detectors.vetoes import check_flow_veto

BREAKOUT_BULLISH = "breakout_bullish"
BREAKOUT_BEARISH = "breakout_bearish"


def breakout_level(snapshot: FeatureSnapshot, bullish: bool) -> Tuple[Optional[float], str]:
    """The level a breakout is measured against and its label."""
    pattern = snapshot.pattern
    candidates = (
        ((pattern.orb_high, "ORB high"), (pattern.swing_high, "swing high"))
        if bullish else
        ((pattern.orb_low, "ORB low"), (pattern.swing_low, "swing low"))
    )
    for level, label in candidates:
        if level is not None and level > 0:
            return level, label
    return None, ""


def _extension_atr(s: FeatureSnapshot, bullish: bool) -> Optional[float]:
    price = s.current_price
    atr = s.atr_value
    level, _ = breakout_level(s, bullish)
    if price is None or atr is None or level is None:
        return None
    return (price - level) / atr if bullish else (level - price) / atr


def _gate(t: BreakoutThresholds, bullish: bool):
    side = "bullish" if bullish else "bearish"
    # Bearish RSI band mirrors the bullish band around 50
    rsi_low, rsi_high = (
        (t.rsi_momentum_min, t.rsi_exhausted) if bullish
        else (100.0 - t.rsi_exhausted, 100.0 - t.rsi_momentum_min)
    )
    opposing = FlowBias.BEARISH if bullish else FlowBias.BULLISH

    def gate(s: FeatureSnapshot, trail: GateTrail) -> bool:
        session = classify_session(s)

        # 1. Level break
        price = s.current_price
        level, label = breakout_level(s, bullish)
        if price is None or level is None:
            return trail.fail("level_break", "price or breakout level unavailable")
        buffer = level * t.break_buffer_pct / 100.0
        broke = price > level + buffer if bullish else price < level - buffer
        if not trail.check(
            "level_break", broke,
            f"{price:.2f} through {label} {level:.2f}",
            f"{price:.2f} has not cleared {label} {level:.2f}",
        ):
            return False

        # 2. Extension
        extension = _extension_atr(s, bullish)
        if extension is None:
            return trail.fail("extension", "ATR unavailable")
        if not trail.check(
            "extension", extension <= t.max_extension_atr,
            f"{extension:.2f} ATR past level",
            f"{extension:.2f} ATR past level (> {t.max_extension_atr:.1f}), chasing",
        ):
            return False

        # 3. Volume confirmation
        rvol = s.relative_volume
        if rvol is None:
            if session.is_regular:
                return trail.fail("volume", "relative volume unavailable in RTH")
            trail.skip("volume", "relative volume unavailable outside RTH")
        else:
            need = session_threshold(s, t.min_relative_volume, t.min_relative_volume_extended)
            if not trail.check(
                "volume", rvol >= need,
                f"RVOL {rvol:.2f}x",
                f"RVOL {rvol:.2f}x < {need:.2f}x",
            ):
                return False

        # 4. Momentum band
        rsi = s.rsi_value("14")
        if rsi is None:
            return trail.fail("momentum", "RSI(14) unavailable")
        if not trail.check(
            "momentum", rsi_low <= rsi <= rsi_high,
            f"RSI {rsi:.1f} in {side} band",
            f"RSI {rsi:.1f} outside {rsi_low:.0f}-{rsi_high:.0f}",
        ):
            return False

        # 5. Regime
        regime = s.market_regime
        if regime is not None and regime.value in t.blocked_regimes:
            return trail.fail("regime", f"{regime.value} regime, breakouts fail")
        trail.passed("regime", f"regime {regime.value if regime else 'unknown'}")

        # 6. Opposing flow
        return check_flow_veto(s, trail, opposing, t.flow_veto)

    return gate


def _factors(bullish: bool, archetype: str) -> List[ScoreFactor]:
    bias = FlowBias.BULLISH if bullish else FlowBias.BEARISH

    def extension_fn(s: FeatureSnapshot) -> Optional[float]:
        # Fresh breaks close to the level are the best entries
        return score_at_most(_extension_atr(s, bullish), ((0.5, 100.0), (1.0, 80.0), (1.5, 60.0)), 30.0)

    def volume_fn(s: FeatureSnapshot) -> Optional[float]:
        return score_at_least(s.relative_volume, ((3.0, 100.0), (2.0, 90.0), (1.5, 75.0), (1.2, 60.0)), 40.0)

    def momentum_fn(s: FeatureSnapshot) -> Optional[float]:
        rsi = s.rsi_value("14")
        if rsi is None:
            return None
        centred = rsi if bullish else 100.0 - rsi
        if 60.0 <= centred <= 75.0:
            return 100.0
        if 55.0 <= centred < 60.0:
            return 75.0
        return 50.0

    def patience_fn(s: FeatureSnapshot) -> Optional[float]:
        flag = s.pattern.patient_candle
        if flag is None:
            return None
        return 100.0 if flag else 40.0

    return [
        ScoreFactor("breakout_clearance", 0.25, extension_fn, "ATR distance past the level"),
        ScoreFactor("volume_surge", 0.25, volume_fn, "relative volume on the break"),
        ScoreFactor("rsi_momentum", 0.15, momentum_fn, "RSI momentum band"),
        regime_factor(archetype, 0.15),
        ScoreFactor("patience_candle", 0.10, patience_fn, "patience candle after the break"),
        flow_alignment_factor(bias, 0.10),
    ]


def build_breakout_bullish(thresholds: BreakoutThresholds = DEFAULT_BREAKOUT) -> Detector:
    return Detector(
        type=BREAKOUT_BULLISH,
        direction=Direction.LONG,
        gate_fn=_gate(thresholds, bullish=True),
        score_factors=tuple(_factors(True, BREAKOUT_BULLISH)),
        ideal_timeframe="5m",
        description="Opening-range / swing-high breakout on volume",
    )


def build_breakout_bearish(thresholds: BreakoutThresholds = DEFAULT_BREAKOUT) -> Detector:
    return Detector(
        type=BREAKOUT_BEARISH,
        direction=Direction.SHORT,
        gate_fn=_gate(thresholds, bullish=False),
        score_factors=tuple(_factors(False, BREAKOUT_BEARISH)),
        ideal_timeframe="5m",
        description="Opening-range / swing-low breakdown on volume",
    )


def build_breakout_detectors(thresholds: BreakoutThresholds = DEFAULT_BREAKOUT) -> List[Detector]:
    return [build_breakout_bullish(thresholds), build_breakout_bearish(thresholds)]
