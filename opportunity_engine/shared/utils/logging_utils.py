"""
Logging utilities for the evaluation pipeline.

Consistent helpers for rejections, timing and run summaries, shared by the
evaluator and anything embedding it.
"""

import time
from typing import Any, Dict, Optional

from loguru import logger


def log_rejection(
    symbol: str,
    stage: str,
    reason: str,
    diagnostics: Optional[Dict[str, Any]] = None,
    level: str = "DEBUG"
) -> None:
    """
    Log a gate rejection with its diagnostic context.

    Args:
        symbol: Symbol evaluated
        stage: Detector type (and gate step) where the rejection happened
        reason: Human-readable reason from the gate trail
        diagnostics: Optional raw readings behind the decision
        level: Log level
    """
    log_func = getattr(logger, level.lower(), logger.debug)

    context = ""
    if diagnostics:
        rendered = (
            f"{key}={value:.4f}" if isinstance(value, float) else f"{key}={value}"
            for key, value in diagnostics.items()
        )
        context = f" [{', '.join(rendered)}]"

    log_func(f"🚫 {symbol} rejected at {stage}: {reason}{context}")


def log_timing(
    operation_name: str,
    duration_ms: float,
    symbol: Optional[str] = None,
    level: str = "DEBUG"
) -> None:
    """Log how long an operation took."""
    log_func = getattr(logger, level.lower(), logger.debug)

    symbol_str = f" [{symbol}]" if symbol else ""

    if duration_ms < 10:
        emoji = "⚡"
    elif duration_ms < 250:
        emoji = "⏱️"
    else:
        emoji = "🐌"

    log_func(f"{emoji} {operation_name}{symbol_str}: {duration_ms:.1f}ms")


def format_evaluation_summary(
    symbols_evaluated: int,
    signals_generated: int,
    rejections: int,
    failures: int,
    duration_sec: float,
    rejection_breakdown: Optional[Dict[str, int]] = None
) -> str:
    """
    Format an evaluation run summary.

    Args:
        symbols_evaluated: Snapshots evaluated
        signals_generated: Detectors that gated true
        rejections: Detectors that gated false
        failures: Detectors that raised
        duration_sec: Wall time of the run
        rejection_breakdown: Optional detector/check -> count

    Returns:
        Multi-line summary string
    """
    lines = [
        "=" * 80,
        "📊 EVALUATION SUMMARY",
        "=" * 80,
        f"Symbols Evaluated:  {symbols_evaluated}",
        f"✅ Signals:          {signals_generated}",
        f"❌ Rejections:       {rejections}",
        f"💥 Failures:         {failures}",
        f"⏱️  Total Duration:   {duration_sec:.3f}s",
    ]
    if symbols_evaluated > 0:
        lines.append(f"⚡ Avg per Symbol:   {duration_sec / symbols_evaluated * 1000:.2f}ms")

    if rejection_breakdown:
        lines.append("")
        lines.append("Rejection Breakdown:")
        for reason, count in sorted(rejection_breakdown.items(), key=lambda x: (-x[1], x[0])):
            lines.append(f"  • {reason}: {count}")

    lines.append("=" * 80)

    return "\n".join(lines)


class TimingContext:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str, symbol: Optional[str] = None):
        self.operation_name = operation_name
        self.symbol = symbol
        self.start_time = None
        self.duration_ms = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000
        log_timing(self.operation_name, self.duration_ms, self.symbol)
        return False  # Don't suppress exceptions
