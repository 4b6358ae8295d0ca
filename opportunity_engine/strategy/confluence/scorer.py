"""
Confluence Scorer

Combines detector-independent evidence into one overall per-symbol score:
- Multi-timeframe trend alignment
- Institutional order-flow bias and magnitude
- Proximity to key reference levels
- Dealer gamma positioning (when options data exists)

Each domain reports whether its inputs were FRESH, STALE or ABSENT. ABSENT
domains are excluded and the remaining weights re-normalised; STALE domains
count at a reduced weight. A symbol with no domain at all scores 0.

Freshness is judged against the snapshot's own timestamp, never the wall
clock, so scoring a snapshot twice gives the same result.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from opportunity_engine.analysis.asset_classifier import classify_asset
from opportunity_engine.analysis.data_quality import assess_data_completeness
from opportunity_engine.shared.config.defaults import DEFAULT_CONFLUENCE_CONFIG, ConfluenceConfig
from opportunity_engine.shared.models.scoring import (
    AssetClass,
    ConfluenceComponents,
    ConfluenceScore,
    DataStatus,
    DetectorTopFactors,
    DomainScore,
    Signal,
    TimeframeAlignment,
)
from opportunity_engine.shared.models.snapshot import FeatureSnapshot, FlowBias
from opportunity_engine.strategy.confluence.aggregator import weighted_domain_mean
from opportunity_engine.strategy.detectors.factors import score_at_most

logger = logging.getLogger(__name__)

KEY_LEVEL_STEPS = ((0.1, 100.0), (0.25, 85.0), (0.5, 70.0), (1.0, 40.0))
GAMMA_LEVEL_STEPS = ((0.15, 100.0), (0.3, 85.0), (0.6, 70.0), (1.2, 45.0))

_DIRECTION_ALIASES = {
    "up": "up", "bullish": "up", "bull": "up",
    "down": "down", "bearish": "down", "bear": "down",
}


def calculate_confluence_score(
    snapshot: FeatureSnapshot,
    signals: Sequence[Signal] = (),
    config: ConfluenceConfig = DEFAULT_CONFLUENCE_CONFIG,
    asset_class: Optional[AssetClass] = None,
) -> ConfluenceScore:
    """
    Score a snapshot's cross-cutting evidence.

    Args:
        snapshot: The snapshot every domain is read from
        signals: This tick's detector signals (for per-detector top factors)
        config: Domain weights, staleness windows and readiness thresholds
        asset_class: Override for the symbol's asset class

    Returns:
        ConfluenceScore with per-domain status and readiness flags
    """
    mtf, timeframes, dominant = score_mtf_alignment(snapshot, config)
    flow = score_flow_bias(snapshot, config)
    levels = score_key_level_proximity(snapshot, config)
    gamma = score_gamma_positioning(snapshot, config)

    overall = combine_domains((mtf, flow, levels, gamma), config)

    asset_class = asset_class or classify_asset(snapshot.symbol)
    threshold = config.ready_threshold_index if asset_class == AssetClass.INDEX else config.ready_threshold

    top_factors = tuple(
        DetectorTopFactors(
            detector_type=sig.detector_type,
            direction=sig.direction,
            confidence=sig.confidence,
            factors=tuple(sig.top_factors(config.top_factors_per_detector)),
        )
        for sig in sorted(signals, key=lambda s: (-s.confidence, s.detector_type))
    )

    result = ConfluenceScore(
        symbol=snapshot.symbol,
        overall_score=overall,
        components=ConfluenceComponents(
            mtf_alignment=mtf,
            flow_bias=flow,
            key_level_proximity=levels,
            gamma_positioning=gamma,
            per_detector_top_factors=top_factors,
        ),
        timeframes=timeframes,
        dominant_direction=dominant,
        threshold=threshold,
        is_hot=overall >= threshold * config.hot_fraction,
        is_ready=overall >= threshold,
        data_completeness=assess_data_completeness(snapshot),
        timestamp=snapshot.timestamp,
    )

    logger.debug(
        "📊 [%s] Confluence %.1f/%.0f (mtf=%s flow=%s levels=%s gamma=%s)",
        snapshot.symbol, overall, threshold,
        mtf.status.value, flow.status.value, levels.status.value, gamma.status.value,
    )
    return result


def combine_domains(domains: Sequence[DomainScore], config: ConfluenceConfig) -> float:
    """Weighted mean over included domains; stale ones at reduced weight."""
    scores: List[float] = []
    weights: List[float] = []
    for domain in domains:
        if not domain.included:
            continue
        weight = domain.weight
        if domain.status == DataStatus.STALE:
            weight *= config.stale_weight_factor
        scores.append(domain.score)
        weights.append(weight)
    return round(weighted_domain_mean(scores, weights), 2)


# ----------------------------------------------------------------------
# Domains
# ----------------------------------------------------------------------

def score_mtf_alignment(
    snapshot: FeatureSnapshot,
    config: ConfluenceConfig = DEFAULT_CONFLUENCE_CONFIG,
) -> Tuple[DomainScore, Tuple[TimeframeAlignment, ...], str]:
    """
    Agreement of trend direction across the configured timeframes.

    Alignment is the larger of the up and down counts over the whole configured
    set. Neutral and absent timeframes never count, so a trendless tape scores 0.

    Returns the domain score, per-timeframe detail and the dominant direction.
    """
    reported: List[Tuple[str, str, DataStatus]] = []
    absent: List[str] = []

    for tf, stale_after in config.mtf_timeframes:
        trend = snapshot.mtf.get(tf)
        direction = _normalize_direction(trend.direction) if trend else None
        if direction is None:
            absent.append(tf)
            continue
        status = _freshness(snapshot.timestamp, trend.last_bar_at, stale_after)
        reported.append((tf, direction, status))

    ups = sum(1 for _, d, _ in reported if d == "up")
    downs = sum(1 for _, d, _ in reported if d == "down")
    dominant = "up" if ups > downs else "down" if downs > ups else "neutral"

    timeframes = []
    for tf, _ in config.mtf_timeframes:
        match = next((r for r in reported if r[0] == tf), None)
        if match is None:
            timeframes.append(TimeframeAlignment(tf, None, DataStatus.ABSENT, False))
        else:
            _, direction, status = match
            is_aligned = dominant != "neutral" and direction == dominant
            timeframes.append(TimeframeAlignment(tf, direction, status, is_aligned))

    if not reported:
        return (
            DomainScore("mtf_alignment", None, config.mtf_weight, DataStatus.ABSENT, "no timeframe trends"),
            tuple(timeframes),
            dominant,
        )

    aligned = max(ups, downs)
    alignment = aligned / len(config.mtf_timeframes)
    stale = [tf for tf, _, status in reported if status == DataStatus.STALE]
    status = DataStatus.STALE if stale else DataStatus.FRESH

    detail = f"{aligned}/{len(config.mtf_timeframes)} timeframes {dominant}"
    if stale:
        detail += f" (stale: {', '.join(stale)})"

    domain = DomainScore(
        name="mtf_alignment",
        score=round(alignment * 100.0, 2),
        weight=config.mtf_weight,
        status=status,
        detail=detail,
        metrics={
            "alignment": alignment,
            "dominant_direction": dominant,
            "absent_timeframes": tuple(absent),
            "stale_timeframes": tuple(stale),
        },
    )
    return domain, tuple(timeframes), dominant


def score_flow_bias(
    snapshot: FeatureSnapshot,
    config: ConfluenceConfig = DEFAULT_CONFLUENCE_CONFIG,
) -> DomainScore:
    """Magnitude of the institutional flow read, damped when it has no direction."""
    flow = snapshot.flow
    if flow is None or flow.is_empty:
        return DomainScore("flow_bias", None, config.flow_weight, DataStatus.ABSENT, "no flow data")

    parts: List[float] = []
    if flow.flow_score is not None:
        parts.append(max(0.0, min(100.0, flow.flow_score)))
    if flow.buy_pressure is not None:
        parts.append(min(100.0, abs(flow.buy_pressure - 50.0) * 2.0))
    if flow.sweep_count is not None or flow.block_count is not None:
        activity = (flow.sweep_count or 0) * 8.0 + (flow.block_count or 0) * 12.0
        parts.append(min(100.0, activity))

    if not parts:
        return DomainScore("flow_bias", None, config.flow_weight, DataStatus.ABSENT, "flow summary has no magnitude")

    magnitude = sum(parts) / len(parts)
    bias = flow.bias
    if bias is None or bias == FlowBias.NEUTRAL:
        magnitude *= config.neutral_flow_damping

    status = _freshness(snapshot.timestamp, flow.updated_at, config.flow_stale_after_seconds)
    label = bias.value if bias else "unknown"
    return DomainScore(
        name="flow_bias",
        score=round(max(0.0, min(100.0, magnitude)), 2),
        weight=config.flow_weight,
        status=status,
        detail=f"{label} flow, {flow.sweep_count or 0} sweeps / {flow.block_count or 0} blocks",
        metrics={
            "bias": label,
            "flow_score": flow.flow_score,
            "sweep_count": flow.sweep_count,
            "block_count": flow.block_count,
            "buy_pressure": flow.buy_pressure,
        },
    )


def score_key_level_proximity(
    snapshot: FeatureSnapshot,
    config: ConfluenceConfig = DEFAULT_CONFLUENCE_CONFIG,
) -> DomainScore:
    """Closeness to the nearest reference level; distance is signed (positive = level above)."""
    price = snapshot.current_price
    if price is None or not snapshot.key_levels:
        return DomainScore("key_level_proximity", None, config.key_level_weight, DataStatus.ABSENT, "no key levels")

    nearest = min(snapshot.key_levels, key=lambda lvl: abs(lvl.price - price))
    distance_pct = (nearest.price - price) / price * 100.0
    score = score_at_most(abs(distance_pct), KEY_LEVEL_STEPS, 15.0)

    side = "above" if distance_pct > 0 else "below" if distance_pct < 0 else "at"
    return DomainScore(
        name="key_level_proximity",
        score=score,
        weight=config.key_level_weight,
        status=DataStatus.FRESH,
        detail=f"{nearest.level_type} {nearest.price:.2f} {abs(distance_pct):.2f}% {side}",
        metrics={
            "nearest_level": nearest.price,
            "level_type": nearest.level_type,
            "distance_pct": round(distance_pct, 4),
        },
    )


def score_gamma_positioning(
    snapshot: FeatureSnapshot,
    config: ConfluenceConfig = DEFAULT_CONFLUENCE_CONFIG,
) -> DomainScore:
    """Proximity to the gamma flip / walls and which side of the flip price sits."""
    gamma = snapshot.gamma
    price = snapshot.current_price
    if gamma is None or gamma.is_empty or price is None:
        return DomainScore("gamma_positioning", None, config.gamma_weight, DataStatus.ABSENT, "no gamma data")

    candidates: Dict[str, float] = {
        name: level
        for name, level in (
            ("flip", gamma.flip_level),
            ("call_wall", gamma.call_wall),
            ("put_wall", gamma.put_wall),
        )
        if level is not None and level > 0
    }
    if not candidates:
        return DomainScore("gamma_positioning", None, config.gamma_weight, DataStatus.ABSENT, "no gamma levels")

    nearest_name, nearest_level = min(candidates.items(), key=lambda kv: abs(kv[1] - price))
    distance_pct = (nearest_level - price) / price * 100.0
    score = score_at_most(abs(distance_pct), GAMMA_LEVEL_STEPS, 20.0)

    if gamma.flip_level is not None and gamma.flip_level > 0:
        positioning = "positive_gamma" if price >= gamma.flip_level else "negative_gamma"
    elif gamma.dealer_net_gamma is not None:
        positioning = "positive_gamma" if gamma.dealer_net_gamma >= 0 else "negative_gamma"
    else:
        positioning = "unknown"

    status = _freshness(snapshot.timestamp, gamma.updated_at, config.gamma_stale_after_seconds)
    return DomainScore(
        name="gamma_positioning",
        score=score,
        weight=config.gamma_weight,
        status=status,
        detail=f"{positioning}, {nearest_name} {abs(distance_pct):.2f}% away",
        metrics={
            "positioning": positioning,
            "nearest": nearest_name,
            "nearest_level": nearest_level,
            "distance_pct": round(distance_pct, 4),
        },
    )


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _normalize_direction(direction: Optional[str]) -> Optional[str]:
    if not direction:
        return None
    return _DIRECTION_ALIASES.get(direction.strip().lower(), "neutral")


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _freshness(as_of: Optional[datetime], updated_at: Optional[datetime], stale_after_seconds: float) -> DataStatus:
    """FRESH unless both instants are known and the gap exceeds the window."""
    if as_of is None or updated_at is None:
        return DataStatus.FRESH
    age = (_as_utc(as_of) - _as_utc(updated_at)).total_seconds()
    return DataStatus.STALE if age > stale_after_seconds else DataStatus.FRESH
