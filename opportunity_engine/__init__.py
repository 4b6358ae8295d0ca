"""
Opportunity Engine - composite setup detection and confidence scoring.

Turns per-symbol feature snapshots into gated detector signals with 0-100
confidence scores, plus one cross-cutting confluence score per symbol.
"""

from opportunity_engine.engine.context import DetectorFailure, SymbolEvaluation
from opportunity_engine.engine.orchestrator import OpportunityEvaluator
from opportunity_engine.engine.ranking import evaluations_to_frame, rank_symbols
from opportunity_engine.shared.config.defaults import ConfluenceConfig, EngineConfig
from opportunity_engine.shared.config.thresholds import DetectorThresholds
from opportunity_engine.shared.models.scoring import ConfluenceScore, Direction, Signal
from opportunity_engine.shared.models.snapshot import FeatureSnapshot
from opportunity_engine.strategy.detectors.registry import DetectorRegistry, build_default_registry

__version__ = "0.1.0"

__all__ = [
    "ConfluenceConfig",
    "ConfluenceScore",
    "DetectorFailure",
    "DetectorRegistry",
    "DetectorThresholds",
    "Direction",
    "EngineConfig",
    "FeatureSnapshot",
    "OpportunityEvaluator",
    "Signal",
    "SymbolEvaluation",
    "build_default_registry",
    "evaluations_to_frame",
    "rank_symbols",
]
