"""
Order-flow veto shared by the counter-flow detectors.

A setup refuses to fight a heavy one-sided institutional read: opposing bias
with either several block trades, or several sweeps on a strong flow score.
"""

from opportunity_engine.shared.config.thresholds import FlowVetoThresholds
from opportunity_engine.shared.models.snapshot import FeatureSnapshot, FlowBias
from opportunity_engine.strategy.detectors.base import GateTrail


def check_flow_veto(
    snapshot: FeatureSnapshot,
    trail: GateTrail,
    opposing_bias: FlowBias,
    thresholds: FlowVetoThresholds,
) -> bool:
    """Record the flow veto step; returns False when the veto fires."""
    flow = snapshot.flow
    if flow is None or flow.is_empty:
        return trail.skip("flow_veto", "no flow data")

    if flow.bias != opposing_bias:
        return trail.passed("flow_veto", f"flow bias {flow.flow_bias or 'unknown'}")

    blocks = flow.block_count or 0
    if blocks > thresholds.max_block_count:
        return trail.fail(
            "flow_veto",
            f"{opposing_bias.value} flow with {blocks} blocks (> {thresholds.max_block_count})",
        )

    sweeps = flow.sweep_count or 0
    score = flow.flow_score or 0.0
    if sweeps >= thresholds.min_sweep_count and score >= thresholds.min_flow_score:
        return trail.fail(
            "flow_veto",
            f"{opposing_bias.value} flow with {sweeps} sweeps at score {score:.0f}",
        )

    return trail.passed("flow_veto", f"{opposing_bias.value} flow below veto size")
