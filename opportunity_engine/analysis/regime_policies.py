"""
Regime Policies - Archetype-specific regime handling

Defines how suitable each market regime is for each setup archetype.
Scores are 0-100 lookups used by the detectors' regime factors.
"""
from typing import Dict, Optional

from opportunity_engine.shared.models.snapshot import MarketRegime

# Per-archetype regime suitability
REGIME_SUITABILITY: Dict[str, Dict[MarketRegime, float]] = {

    "mean_reversion_long": {
        MarketRegime.RANGING: 100.0,  # Fades work best in ranges
        MarketRegime.CHOPPY: 85.0,
        MarketRegime.VOLATILE: 60.0,
        MarketRegime.TRENDING_UP: 55.0,  # Dip in an uptrend, but rarely stretched
        MarketRegime.TRENDING_DOWN: 40.0,  # Legitimate bounce, fighting the tape
    },

    "mean_reversion_short": {
        MarketRegime.RANGING: 100.0,
        MarketRegime.CHOPPY: 85.0,
        MarketRegime.VOLATILE: 60.0,
        MarketRegime.TRENDING_DOWN: 55.0,
        MarketRegime.TRENDING_UP: 40.0,
    },

    "breakout_bullish": {
        MarketRegime.TRENDING_UP: 100.0,
        MarketRegime.VOLATILE: 75.0,  # Expansion can carry a break
        MarketRegime.RANGING: 60.0,  # Range break, needs volume
        MarketRegime.TRENDING_DOWN: 30.0,
        MarketRegime.CHOPPY: 20.0,
    },

    "breakout_bearish": {
        MarketRegime.TRENDING_DOWN: 100.0,
        MarketRegime.VOLATILE: 75.0,
        MarketRegime.RANGING: 60.0,
        MarketRegime.TRENDING_UP: 30.0,
        MarketRegime.CHOPPY: 20.0,
    },

    "trend_continuation_long": {
        MarketRegime.TRENDING_UP: 100.0,
        MarketRegime.VOLATILE: 50.0,
        MarketRegime.RANGING: 35.0,
        MarketRegime.CHOPPY: 20.0,
        MarketRegime.TRENDING_DOWN: 0.0,
    },

    "trend_continuation_short": {
        MarketRegime.TRENDING_DOWN: 100.0,
        MarketRegime.VOLATILE: 50.0,
        MarketRegime.RANGING: 35.0,
        MarketRegime.CHOPPY: 20.0,
        MarketRegime.TRENDING_UP: 0.0,
    },

    "gamma_squeeze_bullish": {
        MarketRegime.TRENDING_UP: 90.0,
        MarketRegime.VOLATILE: 85.0,  # Short gamma thrives on expansion
        MarketRegime.RANGING: 55.0,
        MarketRegime.CHOPPY: 40.0,
        MarketRegime.TRENDING_DOWN: 30.0,
    },

    "gamma_squeeze_bearish": {
        MarketRegime.TRENDING_DOWN: 90.0,
        MarketRegime.VOLATILE: 85.0,
        MarketRegime.RANGING: 55.0,
        MarketRegime.CHOPPY: 40.0,
        MarketRegime.TRENDING_UP: 30.0,
    },
}


def regime_suitability(archetype: str, regime: Optional[MarketRegime]) -> Optional[float]:
    """
    Look up how well a regime suits an archetype.

    Returns None when the regime is unknown or the archetype has no table,
    so the caller's neutral fallback applies.
    """
    if regime is None:
        return None
    table = REGIME_SUITABILITY.get(archetype)
    if table is None:
        return None
    return table.get(regime)
