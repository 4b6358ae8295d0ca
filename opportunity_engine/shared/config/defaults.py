"""
Default configuration for the opportunity engine.

Confluence domain weights, staleness windows and the evaluator's worker pool.
"""
import os
from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class ConfluenceConfig:
    """Cross-cutting confluence aggregation settings."""
    # Domain weights (re-normalised over the domains that have data)
    mtf_weight: float = 0.35
    flow_weight: float = 0.30
    key_level_weight: float = 0.20
    gamma_weight: float = 0.15

    # Stale domains still count, at a reduced weight
    stale_weight_factor: float = 0.5

    # (timeframe, seconds until stale) - two bar lengths each
    mtf_timeframes: Tuple[Tuple[str, int], ...] = (
        ("1m", 120),
        ("5m", 600),
        ("15m", 1800),
        ("60m", 7200),
    )
    flow_stale_after_seconds: int = 300
    gamma_stale_after_seconds: int = 900

    # Neutral flow bias keeps only part of its magnitude
    neutral_flow_damping: float = 0.6

    # Readiness thresholds
    ready_threshold: float = 75.0
    ready_threshold_index: float = 80.0
    hot_fraction: float = 0.9

    top_factors_per_detector: int = 3


@dataclass(frozen=True)
class EngineConfig:
    """Evaluator runtime settings."""
    max_workers: Optional[int] = None  # None -> os.cpu_count()
    debug: bool = False

    @property
    def worker_count(self) -> int:
        return max(1, self.max_workers or os.cpu_count() or 1)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Read OE_MAX_WORKERS and OE_DEBUG from the environment."""
        raw_workers = os.getenv("OE_MAX_WORKERS", "").strip()
        max_workers = int(raw_workers) if raw_workers.isdigit() and int(raw_workers) > 0 else None
        return cls(
            max_workers=max_workers,
            debug=os.getenv("OE_DEBUG", "0") == "1",
        )


# Default instances
DEFAULT_CONFLUENCE_CONFIG = ConfluenceConfig()
DEFAULT_ENGINE_CONFIG = EngineConfig()
