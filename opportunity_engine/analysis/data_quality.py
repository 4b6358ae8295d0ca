"""
Snapshot data completeness.

Weighted presence check over the snapshot fields the detectors and the
confluence aggregator read. The result is informational: it explains a low
score, it never changes one.
"""

from typing import Callable, List, Tuple

from opportunity_engine.shared.models.scoring import DataCompleteness
from opportunity_engine.shared.models.snapshot import FeatureSnapshot

# (field, weight, critical, presence check)
COMPLETENESS_FIELDS: Tuple[Tuple[str, float, bool, Callable[[FeatureSnapshot], bool]], ...] = (
    ("price", 15.0, True, lambda s: s.current_price is not None),
    ("rsi", 12.0, True, lambda s: s.rsi_value("14") is not None),
    ("ema", 10.0, True, lambda s: s.ema_value("9") is not None and s.ema_value("21") is not None),
    ("atr", 10.0, True, lambda s: s.atr_value is not None),
    ("vwap", 10.0, False, lambda s: s.vwap_distance_pct is not None),
    ("volume", 10.0, False, lambda s: s.relative_volume is not None),
    ("flow", 10.0, False, lambda s: s.flow is not None and not s.flow.is_empty),
    ("mtf", 10.0, False, lambda s: any(t.direction for t in s.mtf.values())),
    ("regime", 8.0, False, lambda s: s.market_regime is not None),
    ("session", 5.0, False, lambda s: s.session.is_regular_hours is not None
                                      or s.session.is_weekend is not None),
)


def assess_data_completeness(snapshot: FeatureSnapshot) -> DataCompleteness:
    """Score how much of the expected snapshot was populated (0-100)."""
    total = 0.0
    present = 0.0
    missing: List[str] = []
    missing_critical: List[str] = []

    for name, weight, critical, check in COMPLETENESS_FIELDS:
        total += weight
        if check(snapshot):
            present += weight
        else:
            missing.append(name)
            if critical:
                missing_critical.append(name)

    score = round(present / total * 100.0, 1) if total > 0 else 0.0
    return DataCompleteness(
        score=score,
        missing_critical=tuple(missing_critical),
        missing=tuple(missing),
    )
