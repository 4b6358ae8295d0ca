"""
Institutional Flow Detectors - flow only, no technical confirmation

Trigger on very strong one-sided institutional activity alone. Higher risk
than the technical setups, but catches smart-money moves that often precede
them. Regular hours only: the flow tape is not meaningful outside RTH.

Requirements (all must hold):
- Flow score >= 80
- Sweep count >= 5
- Buy pressure >= 70% (<= 30% for bearish)
- Large trade share >= 40%
- Aggressive or very aggressive tape
- Flow bias matching the direction
"""

from typing import List, Optional

from opportunity_engine.analysis.session import classify_session
from opportunity_engine.shared.config.thresholds import DEFAULT_INSTITUTIONAL_FLOW, InstitutionalFlowThresholds
from opportunity_engine.shared.models.scoring import Direction
from opportunity_engine.shared.models.snapshot import FeatureSnapshot, FlowBias
from opportunity_engine.strategy.detectors.base import Detector, GateTrail, ScoreFactor
from opportunity_engine.strategy.detectors.factors import score_at_least

INSTITUTIONAL_FLOW_BULLISH = "institutional_flow_bullish"
INSTITUTIONAL_FLOW_BEARISH = "institutional_flow_bearish"


def _directional_pressure(s: FeatureSnapshot, bullish: bool) -> Optional[float]:
    """Buy pressure for bullish flow, sell pressure (100 - buy) for bearish."""
    if s.flow is None or s.flow.buy_pressure is None:
        return None
    return s.flow.buy_pressure if bullish else 100.0 - s.flow.buy_pressure


def _gate(t: InstitutionalFlowThresholds, bullish: bool):
    bias = FlowBias.BULLISH if bullish else FlowBias.BEARISH

    def gate(s: FeatureSnapshot, trail: GateTrail) -> bool:
        session = classify_session(s)
        if not trail.check(
            "market_hours", session.is_regular,
            "regular trading hours",
            "flow-only alerts run in regular hours only",
        ):
            return False

        flow = s.flow
        if flow is None or flow.is_empty:
            return trail.fail("flow_data", "no flow summary")

        if flow.flow_score is None:
            return trail.fail("flow_score", "flow score unavailable")
        if not trail.check(
            "flow_score", flow.flow_score >= t.min_flow_score,
            f"flow score {flow.flow_score:.0f}",
            f"flow score {flow.flow_score:.0f} < {t.min_flow_score:.0f}",
        ):
            return False

        sweeps = flow.sweep_count
        if sweeps is None:
            return trail.fail("sweeps", "sweep count unavailable")
        if not trail.check(
            "sweeps", sweeps >= t.min_sweep_count,
            f"{sweeps} sweeps",
            f"{sweeps} sweeps < {t.min_sweep_count}",
        ):
            return False

        pressure = _directional_pressure(s, bullish)
        if pressure is None:
            return trail.fail("pressure", "buy pressure unavailable")
        side = "buy" if bullish else "sell"
        if not trail.check(
            "pressure", pressure >= t.min_pressure,
            f"{pressure:.0f}% {side} pressure",
            f"{pressure:.0f}% {side} pressure < {t.min_pressure:.0f}%",
        ):
            return False

        large = flow.large_trade_pct
        if large is None:
            return trail.fail("large_trades", "large trade share unavailable")
        if not trail.check(
            "large_trades", large >= t.min_large_trade_pct,
            f"{large:.0f}% institutional size",
            f"{large:.0f}% large trades < {t.min_large_trade_pct:.0f}%",
        ):
            return False

        tape = (flow.aggressiveness or "").upper()
        if not trail.check(
            "aggressiveness", tape in t.aggressive_tapes,
            f"{tape} tape",
            f"tape {tape or 'unknown'} not aggressive",
        ):
            return False

        return trail.check(
            "flow_bias", flow.bias == bias,
            f"{bias.value} bias",
            f"bias {flow.flow_bias or 'unknown'}, needs {bias.value}",
        )

    return gate


def _factors(bullish: bool) -> List[ScoreFactor]:
    def institutional_fn(s: FeatureSnapshot) -> Optional[float]:
        score = s.flow.flow_score if s.flow else None
        if score is None:
            return None
        return score_at_least(score, ((95.0, 100.0), (90.0, 95.0), (85.0, 90.0), (80.0, 85.0)), score)

    def sweep_fn(s: FeatureSnapshot) -> Optional[float]:
        sweeps = s.flow.sweep_count if s.flow else None
        return score_at_least(sweeps, ((10, 100.0), (8, 95.0), (6, 90.0), (5, 85.0)), 0.0)

    def pressure_fn(s: FeatureSnapshot) -> Optional[float]:
        return score_at_least(
            _directional_pressure(s, bullish), ((85.0, 100.0), (80.0, 95.0), (75.0, 90.0), (70.0, 85.0)), 0.0)

    def large_fn(s: FeatureSnapshot) -> Optional[float]:
        large = s.flow.large_trade_pct if s.flow else None
        return score_at_least(large, ((60.0, 100.0), (50.0, 90.0), (40.0, 80.0)), 0.0)

    def aggressiveness_fn(s: FeatureSnapshot) -> Optional[float]:
        tape = (s.flow.aggressiveness or "").upper() if s.flow else ""
        if tape == "VERY_AGGRESSIVE":
            return 100.0
        if tape == "AGGRESSIVE":
            return 90.0
        return 50.0

    return [
        ScoreFactor("institutional_score", 0.35, institutional_fn, "institutional flow score"),
        ScoreFactor("sweep_intensity", 0.25, sweep_fn, "sweep order count"),
        ScoreFactor("buy_sell_pressure", 0.20, pressure_fn, "directional premium share"),
        ScoreFactor("large_trade_pct", 0.15, large_fn, "institutional-size trade share"),
        ScoreFactor("aggressiveness", 0.05, aggressiveness_fn, "tape aggressiveness"),
    ]


def build_institutional_flow_bullish(
    thresholds: InstitutionalFlowThresholds = DEFAULT_INSTITUTIONAL_FLOW,
) -> Detector:
    return Detector(
        type=INSTITUTIONAL_FLOW_BULLISH,
        direction=Direction.LONG,
        gate_fn=_gate(thresholds, bullish=True),
        score_factors=tuple(_factors(True)),
        ideal_timeframe="1m",
        description="Flow-only alert on heavy bullish institutional activity",
    )


def build_institutional_flow_bearish(
    thresholds: InstitutionalFlowThresholds = DEFAULT_INSTITUTIONAL_FLOW,
) -> Detector:
    return Detector(
        type=INSTITUTIONAL_FLOW_BEARISH,
        direction=Direction.SHORT,
        gate_fn=_gate(thresholds, bullish=False),
        score_factors=tuple(_factors(False)),
        ideal_timeframe="1m",
        description="Flow-only alert on heavy bearish institutional activity",
    )


def build_institutional_flow_detectors(
    thresholds: InstitutionalFlowThresholds = DEFAULT_INSTITUTIONAL_FLOW,
) -> List[Detector]:
    return [build_institutional_flow_bullish(thresholds), build_institutional_flow_bearish(thresholds)]
