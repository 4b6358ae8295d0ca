"""
Detector threshold configuration.

Every constant here was tuned empirically against live sessions and revised
across versions; they are kept as named, overridable values rather than
derived ones. Override with ``dataclasses.replace``:

    strict = replace(DEFAULT_MEAN_REVERSION, rsi_oversold=28.0)
    registry = build_default_registry(replace(DEFAULT_THRESHOLDS, mean_reversion=strict))

Session-adaptive pairs use the ``*_extended`` suffix for the relaxed value
applied outside regular trading hours (weekends, pre/post market).
"""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class FlowVetoThresholds:
    """
    Heavy one-sided institutional flow that a counter-flow setup refuses to fight.

    A veto fires on opposing bias with either more than ``max_block_count``
    blocks, or at least ``min_sweep_count`` sweeps with a flow score of at
    least ``min_flow_score``.
    """
    max_block_count: int = 2
    min_sweep_count: int = 3
    min_flow_score: float = 70.0


@dataclass(frozen=True)
class MeanReversionThresholds:
    # Oversold (long side)
    rsi_oversold: float = 30.0
    rsi_oversold_extended: float = 35.0
    rsi_extreme_oversold: float = 20.0

    # Overbought (short side)
    rsi_overbought: float = 70.0
    rsi_overbought_extended: float = 65.0
    rsi_extreme_overbought: float = 80.0

    # VWAP stretch in percent (was a fixed 1.0% before weekend support)
    vwap_stretch_pct: float = 0.5
    vwap_stretch_pct_extended: float = 0.3

    # Price must sit this many ATRs beyond EMA21 (replaced a 2% fixed band)
    atr_stretch_multiple: float = 2.0

    # Graduated regime veto: "far" beyond both EMA9 and EMA21
    regime_veto_distance_pct: float = 3.0

    flow_veto: FlowVetoThresholds = field(default_factory=FlowVetoThresholds)


@dataclass(frozen=True)
class BreakoutThresholds:
    # Price must clear the level by this percentage
    break_buffer_pct: float = 0.1
    min_relative_volume: float = 1.5
    min_relative_volume_extended: float = 1.2
    max_extension_atr: float = 1.5

    # Bullish momentum band; the bearish side mirrors it around 50
    rsi_momentum_min: float = 55.0
    rsi_exhausted: float = 80.0

    blocked_regimes: tuple = ("choppy",)
    flow_veto: FlowVetoThresholds = field(default_factory=FlowVetoThresholds)


@dataclass(frozen=True)
class TrendContinuationThresholds:
    max_pullback_atr: float = 1.0
    min_ema_spread_pct: float = 0.05

    # Bullish RSI band; bearish mirrors it around 50
    rsi_low: float = 40.0
    rsi_high: float = 65.0
    rsi_low_extended: float = 38.0
    rsi_high_extended: float = 68.0

    flow_veto: FlowVetoThresholds = field(default_factory=FlowVetoThresholds)


@dataclass(frozen=True)
class InstitutionalFlowThresholds:
    min_flow_score: float = 80.0
    min_sweep_count: int = 5
    min_pressure: float = 70.0
    min_large_trade_pct: float = 40.0
    aggressive_tapes: tuple = ("AGGRESSIVE", "VERY_AGGRESSIVE")


@dataclass(frozen=True)
class GammaSqueezeThresholds:
    max_flip_clearance_pct: float = 1.0
    min_wall_room_pct: float = 0.2
    min_relative_volume: float = 1.2
    flow_veto: FlowVetoThresholds = field(default_factory=FlowVetoThresholds)


@dataclass(frozen=True)
class DetectorThresholds:
    """Bundle of all detector thresholds passed to the registry builder."""
    mean_reversion: MeanReversionThresholds = field(default_factory=MeanReversionThresholds)
    breakout: BreakoutThresholds = field(default_factory=BreakoutThresholds)
    trend_continuation: TrendContinuationThresholds = field(default_factory=TrendContinuationThresholds)
    institutional_flow: InstitutionalFlowThresholds = field(default_factory=InstitutionalFlowThresholds)
    gamma_squeeze: GammaSqueezeThresholds = field(default_factory=GammaSqueezeThresholds)


# Default instances
DEFAULT_MEAN_REVERSION = MeanReversionThresholds()
DEFAULT_BREAKOUT = BreakoutThresholds()
DEFAULT_TREND_CONTINUATION = TrendContinuationThresholds()
DEFAULT_INSTITUTIONAL_FLOW = InstitutionalFlowThresholds()
DEFAULT_GAMMA_SQUEEZE = GammaSqueezeThresholds()
DEFAULT_THRESHOLDS = DetectorThresholds()
