"""Evaluation engine: orchestrator, result records and ranking."""

from opportunity_engine.engine.context import DetectorFailure, SymbolEvaluation
from opportunity_engine.engine.orchestrator import OpportunityEvaluator
from opportunity_engine.engine.ranking import evaluations_to_frame, rank_symbols

__all__ = [
    "DetectorFailure",
    "OpportunityEvaluator",
    "SymbolEvaluation",
    "evaluations_to_frame",
    "rank_symbols",
]
