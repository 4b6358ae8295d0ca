"""
Tabular ranking of evaluation results for watchlists and dashboards.
"""
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from opportunity_engine.engine.context import SymbolEvaluation

FRAME_COLUMNS = [
    "symbol",
    "timestamp",
    "asset_class",
    "overall_score",
    "threshold",
    "is_ready",
    "is_hot",
    "dominant_direction",
    "signal_count",
    "best_detector",
    "best_direction",
    "best_confidence",
    "mtf_status",
    "flow_status",
    "levels_status",
    "gamma_status",
    "data_completeness",
    "failure_count",
]


def evaluations_to_frame(evaluations: Sequence[SymbolEvaluation]) -> pd.DataFrame:
    """One row per evaluation; missing signal fields are NaN / None."""
    rows = []
    for ev in evaluations:
        conf = ev.confluence
        comps = conf.components
        best = ev.best_signal
        rows.append({
            "symbol": ev.symbol,
            "timestamp": ev.timestamp,
            "asset_class": ev.asset_class.value,
            "overall_score": conf.overall_score,
            "threshold": conf.threshold,
            "is_ready": conf.is_ready,
            "is_hot": conf.is_hot,
            "dominant_direction": conf.dominant_direction,
            "signal_count": len(ev.signals),
            "best_detector": best.detector_type if best else None,
            "best_direction": best.direction.value if best else None,
            "best_confidence": best.confidence if best else np.nan,
            "mtf_status": comps.mtf_alignment.status.value,
            "flow_status": comps.flow_bias.status.value,
            "levels_status": comps.key_level_proximity.status.value,
            "gamma_status": comps.gamma_positioning.status.value,
            "data_completeness": conf.data_completeness.score if conf.data_completeness else np.nan,
            "failure_count": len(ev.failures),
        })
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def rank_symbols(
    evaluations: Sequence[SymbolEvaluation],
    min_score: Optional[float] = None,
    ready_only: bool = False,
) -> pd.DataFrame:
    """
    Rank evaluations by overall score, then best signal confidence, then symbol.

    Symbols without a signal sort after equally scored symbols with one.
    """
    df = evaluations_to_frame(evaluations)
    if min_score is not None:
        df = df[df["overall_score"] >= min_score]
    if ready_only:
        df = df[df["is_ready"].astype(bool)]

    df = df.assign(_confidence=df["best_confidence"].fillna(-1.0))
    df = df.sort_values(
        by=["overall_score", "_confidence", "symbol"],
        ascending=[False, False, True],
        kind="mergesort",
    ).drop(columns="_confidence").reset_index(drop=True)
    df.insert(0, "rank", np.arange(1, len(df) + 1))
    return df
