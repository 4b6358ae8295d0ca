"""
Tests for tabular ranking and the run summary helpers.
"""

import math

import pytest

from opportunity_engine.engine.orchestrator import OpportunityEvaluator
from opportunity_engine.engine.ranking import FRAME_COLUMNS, evaluations_to_frame, rank_symbols
from opportunity_engine.shared.config.defaults import EngineConfig
from opportunity_engine.shared.models.snapshot import FeatureSnapshot
from opportunity_engine.shared.utils.logging_utils import TimingContext, format_evaluation_summary
from opportunity_engine.strategy.confluence.scorer import calculate_confluence_score
from opportunity_engine.strategy.detectors.registry import build_default_registry
from opportunity_engine.tests.fixtures.snapshots import (
    build_snapshot,
    confluence_payload,
    mean_reversion_long_payload,
)


@pytest.fixture(scope="module")
def evaluations():
    evaluator = OpportunityEvaluator(build_default_registry(), engine_config=EngineConfig(max_workers=2))
    return evaluator.evaluate([
        FeatureSnapshot(symbol="XYZ"),
        build_snapshot(mean_reversion_long_payload()),
        build_snapshot(confluence_payload()),
    ])


class TestEvaluationsToFrame:

    def test_one_row_per_evaluation(self, evaluations):
        df = evaluations_to_frame(evaluations)
        assert list(df.columns) == FRAME_COLUMNS
        assert list(df["symbol"]) == ["XYZ", "AAPL", "QQQ"]

    def test_missing_signal_fields(self, evaluations):
        row = evaluations_to_frame(evaluations).iloc[0]
        assert row["signal_count"] == 0
        assert row["best_detector"] is None
        assert math.isnan(row["best_confidence"])

    def test_empty_input_keeps_columns(self):
        df = evaluations_to_frame([])
        assert df.empty
        assert list(df.columns) == FRAME_COLUMNS


class TestRankSymbols:

    def test_orders_by_score_then_confidence_then_symbol(self, evaluations):
        ranked = rank_symbols(evaluations)
        # QQQ has the only confluence; AAPL and XYZ tie at 0, AAPL has a signal
        assert list(ranked["symbol"]) == ["QQQ", "AAPL", "XYZ"]
        assert list(ranked["rank"]) == [1, 2, 3]
        assert ranked.iloc[0]["overall_score"] == pytest.approx(75.15)

    def test_ready_only(self, evaluations):
        ranked = rank_symbols(evaluations, ready_only=True)
        assert list(ranked["symbol"]) == ["QQQ"]

    def test_min_score(self, evaluations):
        assert list(rank_symbols(evaluations, min_score=10.0)["symbol"]) == ["QQQ"]
        assert rank_symbols(evaluations, min_score=99.0).empty

    def test_ties_broken_alphabetically(self):
        evaluator = OpportunityEvaluator(build_default_registry(), engine_config=EngineConfig(max_workers=1))
        results = evaluator.evaluate([FeatureSnapshot(symbol="ZZZ"), FeatureSnapshot(symbol="AAA")])
        assert list(rank_symbols(results)["symbol"]) == ["AAA", "ZZZ"]


class TestSummaries:

    def test_evaluation_summary_lists_breakdown(self):
        summary = format_evaluation_summary(
            symbols_evaluated=3,
            signals_generated=2,
            rejections=5,
            failures=0,
            duration_sec=0.012,
            rejection_breakdown={"breakout_bullish.level_break": 3, "mean_reversion_long.oversold": 2},
        )
        assert "📊 EVALUATION SUMMARY" in summary
        assert "Symbols Evaluated:  3" in summary
        assert summary.index("breakout_bullish.level_break: 3") < summary.index("mean_reversion_long.oversold: 2")

    def test_summary_without_symbols(self):
        summary = format_evaluation_summary(0, 0, 0, 0, 0.0)
        assert "Avg per Symbol" not in summary
        assert "Rejection Breakdown" not in summary

    def test_timing_context_records_duration(self):
        with TimingContext("unit") as timer:
            pass
        assert timer.duration_ms >= 0

    def test_confluence_rationale_summary(self):
        text = calculate_confluence_score(build_snapshot(confluence_payload(), {"gamma": None})).get_rationale_summary()
        assert text.startswith("QQQ Confluence: 76.1/100")
        assert "gamma_positioning: excluded [absent]" in text
