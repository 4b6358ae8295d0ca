"""
Gamma Squeeze Detectors

Price crossing the dealer gamma flip while dealers are net short gamma forces
hedging in the direction of the move. Needs options-chain context, so these
only run for index and ETF underlyings with gamma data.

Bullish gate (bearish mirrors with the put wall):
1. Price just above the gamma flip (within the clearance band)
2. Dealers net short gamma
3. Room left before the call wall
4. Volume confirmation (skipped outside RTH without volume)
5. Opposing flow veto
"""

from typing import List, Optional

from opportunity_engine.analysis.session import classify_session
from opportunity_engine.shared.config.thresholds import DEFAULT_GAMMA_SQUEEZE, GammaSqueezeThresholds
from opportunity_engine.shared.models.scoring import AssetClass, Direction
from opportunity_engine.shared.models.snapshot import FeatureSnapshot, FlowBias
from opportunity_engine.strategy.detectors.base import Detector, GateTrail, ScoreFactor
from opportunity_engine.strategy.detectors.factors import (
    flow_alignment_factor,
    regime_factor,
    relative_volume_factor,
    score_at_least,
    score_at_most,
)
from opportunity_engine.strategy.detectors.vetoes import check_flow_veto

GAMMA_SQUEEZE_BULLISH = "gamma_squeeze_bullish"
GAMMA_SQUEEZE_BEARISH = "gamma_squeeze_bearish"

OPTIONS_ASSET_CLASSES = frozenset({AssetClass.INDEX, AssetClass.EQUITY_ETF})


def _flip_clearance_pct(s: FeatureSnapshot, bullish: bool) -> Optional[float]:
    """Signed distance past the flip in percent of price (positive = through it)."""
    price = s.current_price
    flip = s.gamma.flip_level if s.gamma else None
    if price is None or flip is None or flip <= 0:
        return None
    diff = price - flip if bullish else flip - price
    return diff / price * 100.0


def _wall_room_pct(s: FeatureSnapshot, bullish: bool) -> Optional[float]:
    """Room to the call wall (bullish) or put wall (bearish) in percent of price."""
    price = s.current_price
    if price is None or s.gamma is None:
        return None
    wall = s.gamma.call_wall if bullish else s.gamma.put_wall
    if wall is None or wall <= 0:
        return None
    diff = wall - price if bullish else price - wall
    return diff / price * 100.0


def _gate(t: GammaSqueezeThresholds, bullish: bool):
    wall_name = "call wall" if bullish else "put wall"
    opposing = FlowBias.BEARISH if bullish else FlowBias.BULLISH

    def gate(s: FeatureSnapshot, trail: GateTrail) -> bool:
        session = classify_session(s)

        # 1. Through the flip
        clearance = _flip_clearance_pct(s, bullish)
        if clearance is None:
            return trail.fail("gamma_flip", "price or gamma flip unavailable")
        if clearance <= 0:
            return trail.fail("gamma_flip", f"price on the wrong side of the flip ({clearance:.2f}%)")
        if not trail.check(
            "gamma_flip", clearance <= t.max_flip_clearance_pct,
            f"{clearance:.2f}% through the flip",
            f"{clearance:.2f}% past the flip (> {t.max_flip_clearance_pct:.1f}%), move already made",
        ):
            return False

        # 2. Dealer positioning
        net_gamma = s.gamma.dealer_net_gamma
        if net_gamma is None:
            return trail.fail("dealer_gamma", "dealer net gamma unavailable")
        if not trail.check(
            "dealer_gamma", net_gamma < 0,
            "dealers net short gamma",
            "dealers net long gamma, hedging dampens the move",
        ):
            return False

        # 3. Room to the wall
        room = _wall_room_pct(s, bullish)
        if room is None:
            trail.skip("wall_room", f"no {wall_name} reported")
        elif not trail.check(
            "wall_room", room >= t.min_wall_room_pct,
            f"{room:.2f}% to the {wall_name}",
            f"{room:.2f}% to the {wall_name} (< {t.min_wall_room_pct:.1f}%)",
        ):
            return False

        # 4. Volume
        rvol = s.relative_volume
        if rvol is None:
            if session.is_regular:
                return trail.fail("volume", "relative volume unavailable in RTH")
            trail.skip("volume", "relative volume unavailable outside RTH")
        elif not trail.check(
            "volume", rvol >= t.min_relative_volume,
            f"RVOL {rvol:.2f}x",
            f"RVOL {rvol:.2f}x < {t.min_relative_volume:.2f}x",
        ):
            return False

        # 5. Opposing flow
        return check_flow_veto(s, trail, opposing, t.flow_veto)

    return gate


def _factors(bullish: bool, archetype: str) -> List[ScoreFactor]:
    def flip_fn(s: FeatureSnapshot) -> Optional[float]:
        return score_at_most(_flip_clearance_pct(s, bullish), ((0.25, 100.0), (0.5, 85.0), (1.0, 65.0)), 40.0)

    def dealer_fn(s: FeatureSnapshot) -> Optional[float]:
        net_gamma = s.gamma.dealer_net_gamma if s.gamma else None
        if net_gamma is None:
            return None
        return 90.0 if net_gamma < 0 else 30.0

    def room_fn(s: FeatureSnapshot) -> Optional[float]:
        return score_at_least(_wall_room_pct(s, bullish), ((1.0, 100.0), (0.5, 80.0), (0.2, 60.0)), 40.0)

    return [
        ScoreFactor("flip_proximity", 0.25, flip_fn, "distance through the gamma flip"),
        ScoreFactor("dealer_gamma", 0.20, dealer_fn, "dealer gamma positioning"),
        ScoreFactor("wall_room", 0.20, room_fn, "room to the opposing wall"),
        relative_volume_factor(0.15),
        regime_factor(archetype, 0.10),
        flow_alignment_factor(FlowBias.BULLISH if bullish else FlowBias.BEARISH, 0.10),
    ]


def build_gamma_squeeze_bullish(thresholds: GammaSqueezeThresholds = DEFAULT_GAMMA_SQUEEZE) -> Detector:
    return Detector(
        type=GAMMA_SQUEEZE_BULLISH,
        direction=Direction.LONG,
        gate_fn=_gate(thresholds, bullish=True),
        score_factors=tuple(_factors(True, GAMMA_SQUEEZE_BULLISH)),
        asset_classes=OPTIONS_ASSET_CLASSES,
        requires_options_data=True,
        ideal_timeframe="5m",
        description="Price through the gamma flip with dealers short gamma",
    )


def build_gamma_squeeze_bearish(thresholds: GammaSqueezeThresholds = DEFAULT_GAMMA_SQUEEZE) -> Detector:
    return Detector(
        type=GAMMA_SQUEEZE_BEARISH,
        direction=Direction.SHORT,
        gate_fn=_gate(thresholds, bullish=False),
        score_factors=tuple(_factors(False, GAMMA_SQUEEZE_BEARISH)),
        asset_classes=OPTIONS_ASSET_CLASSES,
        requires_options_data=True,
        ideal_timeframe="5m",
        description="Price under the gamma flip with dealers short gamma",
    )


def build_gamma_squeeze_detectors(thresholds: GammaSqueezeThresholds = DEFAULT_GAMMA_SQUEEZE) -> List[Detector]:
    return [build_gamma_squeeze_bullish(thresholds), build_gamma_squeeze_bearish(thresholds)]
