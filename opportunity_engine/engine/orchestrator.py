"""
Opportunity Evaluator - runs the detector pipeline over feature snapshots.

Pipeline per snapshot:
1. Classify the symbol's asset class
2. Select applicable detectors from the registry (asset class, options data)
3. Gate + score each detector (one task per (symbol, detector) pair)
4. Score cross-cutting confluence from the same snapshot
5. Assemble a SymbolEvaluation

Detectors are pure, so tasks share nothing mutable and run on a thread pool
sized to the available CPUs. A detector that raises is logged and reported
as a DetectorFailure; every other detector and symbol proceeds.
"""

import concurrent.futures
import logging
import time
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from opportunity_engine.analysis.asset_classifier import classify_asset
from opportunity_engine.engine.context import DetectorFailure, SymbolEvaluation
from opportunity_engine.shared.config.defaults import (
    DEFAULT_CONFLUENCE_CONFIG,
    DEFAULT_ENGINE_CONFIG,
    ConfluenceConfig,
    EngineConfig,
)
from opportunity_engine.shared.models.scoring import (
    AssetClass,
    ConfluenceComponents,
    ConfluenceScore,
    DataStatus,
    DetectionResult,
    DomainScore,
    GateResult,
    Signal,
)
from opportunity_engine.shared.models.snapshot import FeatureSnapshot
from opportunity_engine.shared.utils.logging_utils import TimingContext, format_evaluation_summary, log_rejection
from opportunity_engine.strategy.confluence.scorer import calculate_confluence_score
from opportunity_engine.strategy.detectors.base import Detector, build_signal
from opportunity_engine.strategy.detectors.registry import DetectorRegistry

logger = logging.getLogger(__name__)

# (signal, detection result, failure) for one (symbol, detector) task
Outcome = Tuple[Optional[Signal], Optional[DetectionResult], Optional[DetectorFailure]]


class OpportunityEvaluator:
    """
    Evaluates feature snapshots against an injected detector registry.

    Usage:
        evaluator = OpportunityEvaluator(build_default_registry())
        results = evaluator.evaluate([FeatureSnapshot.from_dict(p) for p in payloads])

        for result in results:
            print(f"{result.symbol}: {result.confluence.overall_score:.1f}")
    """

    def __init__(
        self,
        registry: DetectorRegistry,
        confluence_config: ConfluenceConfig = DEFAULT_CONFLUENCE_CONFIG,
        engine_config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    ):
        self.registry = registry
        self.confluence_config = confluence_config
        self.engine_config = engine_config
        self.debug_mode = engine_config.debug
        self.last_run_stats: Dict[str, object] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def evaluate_symbol(self, snapshot: FeatureSnapshot) -> SymbolEvaluation:
        """Evaluate one snapshot serially."""
        asset_class = classify_asset(snapshot.symbol)
        detectors = self.registry.for_snapshot(snapshot, asset_class)
        outcomes = [self._safe_detect(snapshot, d) for d in detectors]
        return self._assemble(snapshot, asset_class, outcomes)

    def evaluate(self, snapshots: Iterable[FeatureSnapshot]) -> List[SymbolEvaluation]:
        """
        Evaluate a batch of snapshots on the worker pool.

        One task per (symbol, detector) pair. Results come back in input order;
        each evaluation is assembled only from its own snapshot's tasks.
        """
        snapshots = list(snapshots)
        if not snapshots:
            self.last_run_stats = {}
            return []

        start_time = time.perf_counter()

        plan: List[Tuple[AssetClass, List[Detector]]] = []
        for snapshot in snapshots:
            asset_class = classify_asset(snapshot.symbol)
            plan.append((asset_class, self.registry.for_snapshot(snapshot, asset_class)))

        outcomes: List[List[Optional[Outcome]]] = [[None] * len(dets) for _, dets in plan]

        with TimingContext("evaluate_batch"):
            with concurrent.futures.ThreadPoolExecutor(max_workers=self.engine_config.worker_count) as executor:
                future_map = {}
                for idx, (snapshot, (_, detectors)) in enumerate(zip(snapshots, plan)):
                    for pos, detector in enumerate(detectors):
                        future = executor.submit(self._safe_detect, snapshot, detector)
                        future_map[future] = (idx, pos)

                for future in concurrent.futures.as_completed(future_map):
                    idx, pos = future_map[future]
                    outcomes[idx][pos] = future.result()

            results = [
                self._assemble(snapshot, asset_class, outcomes[idx])
                for idx, (snapshot, (asset_class, _)) in enumerate(zip(snapshots, plan))
            ]

        self._record_run(results, time.perf_counter() - start_time)
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _safe_detect(self, snapshot: FeatureSnapshot, detector: Detector) -> Outcome:
        try:
            signal, result = build_signal(detector, snapshot)
            return signal, result, None
        except Exception as e:  # noqa: BLE001 - one detector must not abort the tick
            logger.exception("❌ %s: detector %s failed - %s", snapshot.symbol, detector.type, e)
            return None, None, DetectorFailure(
                symbol=snapshot.symbol,
                detector_type=detector.type,
                error_type=type(e).__name__,
                message=str(e),
            )

    def _assemble(
        self,
        snapshot: FeatureSnapshot,
        asset_class: AssetClass,
        outcomes: Sequence[Optional[Outcome]],
    ) -> SymbolEvaluation:
        signals: List[Signal] = []
        rejections: List[GateResult] = []
        failures: List[DetectorFailure] = []

        for outcome in outcomes:
            if outcome is None:
                continue
            signal, result, failure = outcome
            if failure is not None:
                failures.append(failure)
            elif signal is not None:
                signals.append(signal)
            elif result is not None:
                rejections.append(result.gate)
                if self.debug_mode:
                    failed = result.gate.failed_check
                    log_rejection(
                        snapshot.symbol,
                        f"{result.detector_type}.{failed.name if failed else 'gate'}",
                        failed.reason if failed else "gate returned false",
                        diagnostics={c.name: c.status.value for c in result.gate.checks},
                    )

        signals.sort(key=lambda s: (-s.confidence, s.detector_type))

        try:
            confluence = calculate_confluence_score(
                snapshot, signals, self.confluence_config, asset_class=asset_class,
            )
        except Exception as e:  # noqa: BLE001
            logger.exception("❌ %s: confluence scoring failed - %s", snapshot.symbol, e)
            confluence = self._empty_confluence(snapshot, asset_class)

        if signals:
            logger.debug(
                "✅ %s: %d signal(s), best %s (%.1f)",
                snapshot.symbol, len(signals), signals[0].detector_type, signals[0].confidence,
            )

        return SymbolEvaluation(
            symbol=snapshot.symbol,
            timestamp=snapshot.timestamp,
            signals=tuple(signals),
            confluence=confluence,
            rejections=tuple(rejections),
            failures=tuple(failures),
            asset_class=asset_class,
        )

    def _empty_confluence(self, snapshot: FeatureSnapshot, asset_class: AssetClass) -> ConfluenceScore:
        cfg = self.confluence_config

        def absent(name: str, weight: float) -> DomainScore:
            return DomainScore(name, None, weight, DataStatus.ABSENT, "scoring failed")

        threshold = cfg.ready_threshold_index if asset_class == AssetClass.INDEX else cfg.ready_threshold
        return ConfluenceScore(
            symbol=snapshot.symbol,
            overall_score=0.0,
            components=ConfluenceComponents(
                mtf_alignment=absent("mtf_alignment", cfg.mtf_weight),
                flow_bias=absent("flow_bias", cfg.flow_weight),
                key_level_proximity=absent("key_level_proximity", cfg.key_level_weight),
                gamma_positioning=absent("gamma_positioning", cfg.gamma_weight),
            ),
            threshold=threshold,
            timestamp=snapshot.timestamp,
        )

    def _record_run(self, results: Sequence[SymbolEvaluation], duration_sec: float) -> None:
        breakdown: Dict[str, int] = {}
        for result in results:
            for key, count in result.rejection_breakdown().items():
                breakdown[key] = breakdown.get(key, 0) + count

        signal_count = sum(len(r.signals) for r in results)
        rejection_count = sum(len(r.rejections) for r in results)
        failure_count = sum(len(r.failures) for r in results)

        self.last_run_stats = {
            "symbols_evaluated": len(results),
            "signals_generated": signal_count,
            "rejections": rejection_count,
            "failures": failure_count,
            "duration_sec": round(duration_sec, 4),
            "rejection_breakdown": breakdown,
        }

        logger.info(
            "🎯 Evaluated %d symbols: %d signals, %d rejections, %d failures",
            len(results), signal_count, rejection_count, failure_count,
        )
        if self.debug_mode:
            logger.info("\n%s", format_evaluation_summary(
                symbols_evaluated=len(results),
                signals_generated=signal_count,
                rejections=rejection_count,
                failures=failure_count,
                duration_sec=duration_sec,
                rejection_breakdown=breakdown,
            ))
