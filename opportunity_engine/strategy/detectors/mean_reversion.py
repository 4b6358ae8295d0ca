"""
Mean Reversion Detectors

Fade an overstretched move back toward VWAP / EMA21.

Long gate (short mirrors every step):
1. Session-adaptive oversold RSI(14): < 30 in RTH, < 35 extended
2. VWAP stretch below VWAP: mandatory in RTH (missing data fails);
   extended hours skip the check without VWAP, else use the looser band
3. Volatility-normalised stretch: at least N x ATR below EMA21
4. Graduated regime veto inside a downtrend: price far below both EMA9 and
   EMA21 without extreme RSI blocks; otherwise RSI must be extreme
5. Bearish flow veto (heavy blocks, or sweeps on a strong flow score)

Scoring factors favour extreme RSI, large ATR stretch, a ranging regime,
aligned divergence and RSI turning back in the setup's favour.
"""

from typing import List

from opportunity_engine.analysis.session import classify_session, session_threshold
from opportunity_engine.shared.config.thresholds import DEFAULT_MEAN_REVERSION, MeanReversionThresholds
from opportunity_engine.shared.models.scoring import Direction
from opportunity_engine.shared.models.snapshot import FeatureSnapshot, FlowBias, MarketRegime
from opportunity_engine.strategy.detectors.base import Detector, GateTrail, ScoreFactor
from opportunity_engine.strategy.detectors.factors import (
    divergence_factor,
    regime_factor,
    relative_volume_factor,
    rsi_turn_factor,
    score_at_least,
    score_at_most,
)
from opportunity_engine.strategy.detectors.vetoes import check_flow_veto

MEAN_REVERSION_LONG = "mean_reversion_long"
MEAN_REVERSION_SHORT = "mean_reversion_short"


# ----------------------------------------------------------------------
# Gates
# ----------------------------------------------------------------------

def _long_gate(t: MeanReversionThresholds):
    def gate(s: FeatureSnapshot, trail: GateTrail) -> bool:
        session = classify_session(s)

        # 1. Oversold RSI
        rsi = s.rsi_value("14")
        if rsi is None:
            return trail.fail("oversold", "RSI(14) unavailable")
        limit = session_threshold(s, t.rsi_oversold, t.rsi_oversold_extended)
        if not trail.check(
            "oversold", rsi < limit,
            f"RSI {rsi:.1f} < {limit:.0f} ({session.label})",
            f"RSI {rsi:.1f} >= {limit:.0f} ({session.label})",
        ):
            return False

        # 2. Below VWAP
        dist = s.vwap_distance_pct
        if dist is None:
            if session.is_regular:
                return trail.fail("vwap_stretch", "VWAP distance unavailable in RTH")
            trail.skip("vwap_stretch", "VWAP unavailable outside RTH")
        else:
            band = session_threshold(s, t.vwap_stretch_pct, t.vwap_stretch_pct_extended)
            if not trail.check(
                "vwap_stretch", dist <= -band,
                f"{dist:.2f}% from VWAP (<= -{band:.2f}%)",
                f"{dist:.2f}% from VWAP, needs <= -{band:.2f}%",
            ):
                return False

        # 3. ATR-normalised stretch below EMA21
        atr_dist = s.atr_distance_from_ema("21")
        if atr_dist is None:
            return trail.fail("atr_stretch", "EMA21, ATR or price unavailable")
        if not trail.check(
            "atr_stretch", atr_dist <= -t.atr_stretch_multiple,
            f"{-atr_dist:.2f} ATR below EMA21",
            f"{-atr_dist:.2f} ATR below EMA21, needs {t.atr_stretch_multiple:.1f}",
        ):
            return False

        # 4. Graduated downtrend veto
        if s.market_regime == MarketRegime.TRENDING_DOWN:
            d9 = s.ema_distance_pct("9")
            d21 = s.ema_distance_pct("21")
            far = (
                d9 is not None and d21 is not None
                and d9 < -t.regime_veto_distance_pct
                and d21 < -t.regime_veto_distance_pct
            )
            if far and rsi >= t.rsi_extreme_oversold:
                return trail.fail(
                    "regime_veto",
                    f"downtrend, {d9:.1f}%/{d21:.1f}% below EMA9/EMA21 without extreme RSI",
                )
            if not trail.check(
                "regime_veto", rsi < t.rsi_extreme_oversold,
                f"downtrend bounce with extreme RSI {rsi:.1f}",
                f"downtrend requires RSI < {t.rsi_extreme_oversold:.0f}, got {rsi:.1f}",
            ):
                return False
        else:
            trail.passed("regime_veto", f"regime {s.pattern.market_regime or 'unknown'}")

        # 5. Heavy bearish flow
        return check_flow_veto(s, trail, FlowBias.BEARISH, t.flow_veto)

    return gate


def _short_gate(t: MeanReversionThresholds):
    def gate(s: FeatureSnapshot, trail: GateTrail) -> bool:
        session = classify_session(s)

        # 1. Overbought RSI
        rsi = s.rsi_value("14")
        if rsi is None:
            return trail.fail("overbought", "RSI(14) unavailable")
        limit = session_threshold(s, t.rsi_overbought, t.rsi_overbought_extended)
        if not trail.check(
            "overbought", rsi > limit,
            f"RSI {rsi:.1f} > {limit:.0f} ({session.label})",
            f"RSI {rsi:.1f} <= {limit:.0f} ({session.label})",
        ):
            return False

        # 2. Above VWAP
        dist = s.vwap_distance_pct
        if dist is None:
            if session.is_regular:
                return trail.fail("vwap_stretch", "VWAP distance unavailable in RTH")
            trail.skip("vwap_stretch", "VWAP unavailable outside RTH")
        else:
            band = session_threshold(s, t.vwap_stretch_pct, t.vwap_stretch_pct_extended)
            if not trail.check(
                "vwap_stretch", dist >= band,
                f"+{dist:.2f}% from VWAP (>= {band:.2f}%)",
                f"{dist:.2f}% from VWAP, needs >= {band:.2f}%",
            ):
                return False

        # 3. ATR-normalised stretch above EMA21
        atr_dist = s.atr_distance_from_ema("21")
        if atr_dist is None:
            return trail.fail("atr_stretch", "EMA21, ATR or price unavailable")
        if not trail.check(
            "atr_stretch", atr_dist >= t.atr_stretch_multiple,
            f"{atr_dist:.2f} ATR above EMA21",
            f"{atr_dist:.2f} ATR above EMA21, needs {t.atr_stretch_multiple:.1f}",
        ):
            return False

        # 4. Graduated uptrend veto
        if s.market_regime == MarketRegime.TRENDING_UP:
            d9 = s.ema_distance_pct("9")
            d21 = s.ema_distance_pct("21")
            far = (
                d9 is not None and d21 is not None
                and d9 > t.regime_veto_distance_pct
                and d21 > t.regime_veto_distance_pct
            )
            if far and rsi <= t.rsi_extreme_overbought:
                return trail.fail(
                    "regime_veto",
                    f"uptrend, {d9:.1f}%/{d21:.1f}% above EMA9/EMA21 without extreme RSI",
                )
            if not trail.check(
                "regime_veto", rsi > t.rsi_extreme_overbought,
                f"uptrend fade with extreme RSI {rsi:.1f}",
                f"uptrend requires RSI > {t.rsi_extreme_overbought:.0f}, got {rsi:.1f}",
            ):
                return False
        else:
            trail.passed("regime_veto", f"regime {s.pattern.market_regime or 'unknown'}")

        # 5. Heavy bullish flow
        return check_flow_veto(s, trail, FlowBias.BULLISH, t.flow_veto)

    return gate


# ----------------------------------------------------------------------
# Factors
# ----------------------------------------------------------------------

def _factors(long: bool, archetype: str) -> List[ScoreFactor]:
    if long:
        rsi_fn = lambda s: score_at_most(  # noqa: E731
            s.rsi_value("14"), ((20.0, 100.0), (25.0, 90.0), (30.0, 75.0), (35.0, 60.0)), 40.0)
        vwap_fn = lambda s: score_at_most(  # noqa: E731
            s.vwap_distance_pct, ((-1.5, 100.0), (-1.0, 85.0), (-0.5, 70.0)), 50.0)
    else:
        rsi_fn = lambda s: score_at_least(  # noqa: E731
            s.rsi_value("14"), ((80.0, 100.0), (75.0, 90.0), (70.0, 75.0), (65.0, 60.0)), 40.0)
        vwap_fn = lambda s: score_at_least(  # noqa: E731
            s.vwap_distance_pct, ((1.5, 100.0), (1.0, 85.0), (0.5, 70.0)), 50.0)

    sign = -1.0 if long else 1.0

    def atr_fn(s: FeatureSnapshot):
        dist = s.atr_distance_from_ema("21")
        stretch = None if dist is None else dist * sign
        return score_at_least(stretch, ((3.0, 100.0), (2.5, 90.0), (2.0, 80.0), (1.5, 65.0)), 45.0)

    return [
        ScoreFactor("rsi_extreme", 0.25, rsi_fn, "RSI(14) extremity"),
        ScoreFactor("atr_stretch", 0.20, atr_fn, "ATR distance from EMA21"),
        ScoreFactor("vwap_stretch", 0.10, vwap_fn, "distance from VWAP"),
        relative_volume_factor(0.10),
        regime_factor(archetype, 0.15),
        divergence_factor(bullish=long, weight=0.10),
        rsi_turn_factor(rising=long, weight=0.10),
    ]


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------

def build_mean_reversion_long(thresholds: MeanReversionThresholds = DEFAULT_MEAN_REVERSION) -> Detector:
    return Detector(
        type=MEAN_REVERSION_LONG,
        direction=Direction.LONG,
        gate_fn=_long_gate(thresholds),
        score_factors=tuple(_factors(True, MEAN_REVERSION_LONG)),
        ideal_timeframe="5m",
        description="Oversold stretch below VWAP/EMA21 with reversal odds",
    )


def build_mean_reversion_short(thresholds: MeanReversionThresholds = DEFAULT_MEAN_REVERSION) -> Detector:
    return Detector(
        type=MEAN_REVERSION_SHORT,
        direction=Direction.SHORT,
        gate_fn=_short_gate(thresholds),
        score_factors=tuple(_factors(False, MEAN_REVERSION_SHORT)),
        ideal_timeframe="5m",
        description="Overbought stretch above VWAP/EMA21 with fade odds",
    )


def build_mean_reversion_detectors(thresholds: MeanReversionThresholds = DEFAULT_MEAN_REVERSION) -> List[Detector]:
    return [build_mean_reversion_long(thresholds), build_mean_reversion_short(thresholds)]
