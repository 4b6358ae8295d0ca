"""
Tests for the breakout, trend continuation, institutional flow and gamma
squeeze detectors, plus the contract every registered detector honours.
"""

import pytest

from opportunity_engine.shared.models.scoring import CheckStatus, Direction
from opportunity_engine.shared.models.snapshot import FeatureSnapshot
from opportunity_engine.strategy.detectors.breakout import (
    breakout_level,
    build_breakout_bearish,
    build_breakout_bullish,
)
from opportunity_engine.strategy.detectors.gamma_squeeze import (
    build_gamma_squeeze_bearish,
    build_gamma_squeeze_bullish,
)
from opportunity_engine.strategy.detectors.institutional_flow import (
    build_institutional_flow_bearish,
    build_institutional_flow_bullish,
)
from opportunity_engine.strategy.detectors.registry import build_default_registry
from opportunity_engine.strategy.detectors.trend_continuation import (
    build_trend_continuation_long,
    build_trend_continuation_short,
)
from opportunity_engine.tests.fixtures.snapshots import (
    breakout_bearish_payload,
    breakout_bullish_payload,
    build_snapshot,
    confluence_payload,
    extreme_payload,
    gamma_squeeze_bullish_payload,
    institutional_flow_bullish_payload,
    mean_reversion_long_payload,
    mean_reversion_short_payload,
    trend_continuation_long_payload,
)

ALL_PAYLOADS = [
    mean_reversion_long_payload,
    mean_reversion_short_payload,
    breakout_bullish_payload,
    breakout_bearish_payload,
    trend_continuation_long_payload,
    institutional_flow_bullish_payload,
    gamma_squeeze_bullish_payload,
    confluence_payload,
    extreme_payload,
]


# ----------------------------------------------------------------------
# Breakout
# ----------------------------------------------------------------------

class TestBreakout:

    def test_orb_break_on_volume_detects(self):
        result = build_breakout_bullish().detect(build_snapshot(breakout_bullish_payload()))
        assert result.detected
        # clearance 80, volume 90, momentum 100, regime 100, patience 100, flow 87.5
        assert result.confidence == pytest.approx(91.25)

    def test_bearish_breakdown_mirrors(self):
        result = build_breakout_bearish().detect(build_snapshot(breakout_bearish_payload()))
        assert result.detected
        assert [c.name for c in result.gate.checks] == [
            "level_break", "extension", "volume", "momentum", "regime", "flow_veto",
        ]
        assert result.gate.checks[-1].status == CheckStatus.SKIPPED

    def test_swing_level_used_without_opening_range(self):
        snap = build_snapshot(breakout_bullish_payload(), {
            "pattern": {"orbHigh": None, "swingHigh": 100.5},
        })
        assert breakout_level(snap, bullish=True) == (100.5, "swing high")

    def test_price_inside_buffer_is_not_a_break(self):
        snap = build_snapshot(breakout_bullish_payload(), {"price": {"current": 100.05}})
        gate = build_breakout_bullish().evaluate_gate(snap)
        assert gate.failed_check.name == "level_break"

    def test_overextended_break_is_rejected(self):
        snap = build_snapshot(breakout_bullish_payload(), {"price": {"current": 103.0}})
        assert build_breakout_bullish().evaluate_gate(snap).failed_check.name == "extension"

    def test_missing_volume_fails_in_rth_and_skips_outside(self):
        detector = build_breakout_bullish()
        rth = build_snapshot(breakout_bullish_payload(), {"volume": None})
        extended = build_snapshot(breakout_bullish_payload(), {
            "volume": None, "session": {"isRegularHours": False},
        })
        assert detector.evaluate_gate(rth).failed_check.name == "volume"
        assert detector.gate(extended)

    def test_extended_hours_volume_threshold_is_looser(self):
        detector = build_breakout_bullish()
        light = {"volume": {"relativeToAvg": 1.3}}
        assert not detector.gate(build_snapshot(breakout_bullish_payload(), light))
        assert detector.gate(build_snapshot(breakout_bullish_payload(), {
            **light, "session": {"isRegularHours": False},
        }))

    def test_exhausted_rsi_fails_momentum(self):
        snap = build_snapshot(breakout_bullish_payload(), {"rsi": {"14": 85}})
        assert build_breakout_bullish().evaluate_gate(snap).failed_check.name == "momentum"

    def test_choppy_regime_blocked(self):
        snap = build_snapshot(breakout_bullish_payload(), {"pattern": {"market_regime": "choppy"}})
        assert build_breakout_bullish().evaluate_gate(snap).failed_check.name == "regime"

    def test_heavy_opposing_flow_vetoes(self):
        snap = build_snapshot(breakout_bullish_payload(), {
            "flow": {"flowBias": "bearish", "blockCount": 5},
        })
        assert build_breakout_bullish().evaluate_gate(snap).failed_check.name == "flow_veto"


# ----------------------------------------------------------------------
# Trend continuation
# ----------------------------------------------------------------------

class TestTrendContinuation:

    def test_pullback_in_uptrend_detects(self):
        result = build_trend_continuation_long().detect(build_snapshot(trend_continuation_long_payload()))
        assert result.detected
        # spread 100, pullback 100, rsi 100, mtf 75, rvol 65, flow neutral 50
        assert result.confidence == pytest.approx(85.25)

    def test_regime_must_confirm_trend(self):
        detector = build_trend_continuation_long()
        ranging = build_snapshot(trend_continuation_long_payload(), {"pattern": {"market_regime": "ranging"}})
        unknown = build_snapshot(trend_continuation_long_payload(), {"pattern": None})
        assert detector.evaluate_gate(ranging).failed_check.name == "regime"
        assert detector.evaluate_gate(unknown).failed_check.name == "regime"

    def test_flat_emas_fail_stack(self):
        snap = build_snapshot(trend_continuation_long_payload(), {"ema": {"9": 99.02}})
        assert build_trend_continuation_long().evaluate_gate(snap).failed_check.name == "ema_stack"

    def test_price_through_ema21_breaks_the_trend(self):
        snap = build_snapshot(trend_continuation_long_payload(), {"price": {"current": 98.5}})
        assert build_trend_continuation_long().evaluate_gate(snap).failed_check.name == "pullback"

    def test_chasing_far_from_ema9_is_not_a_pullback(self):
        snap = build_snapshot(trend_continuation_long_payload(), {"price": {"current": 101.5}})
        assert build_trend_continuation_long().evaluate_gate(snap).failed_check.name == "pullback"

    def test_rsi_band_widens_outside_rth(self):
        detector = build_trend_continuation_long()
        hot = {"rsi": {"14": 67}}
        assert detector.evaluate_gate(build_snapshot(trend_continuation_long_payload(), hot)).failed_check.name == "rsi_band"
        assert detector.gate(build_snapshot(trend_continuation_long_payload(), {
            **hot, "session": {"isRegularHours": False},
        }))

    def test_short_side_mirrors(self):
        snap = build_snapshot(trend_continuation_long_payload(), {
            "price": {"current": 99.8},
            "ema": {"9": 100.0, "21": 101.0},
            "rsi": {"14": 48},
            "pattern": {"market_regime": "trending_down"},
            "mtf": {"1m": {"direction": "down"}, "5m": {"direction": "down"}},
        })
        assert build_trend_continuation_short().gate(snap)
        assert not build_trend_continuation_long().gate(snap)


# ----------------------------------------------------------------------
# Institutional flow
# ----------------------------------------------------------------------

class TestInstitutionalFlow:

    def test_heavy_bullish_flow_detects(self):
        result = build_institutional_flow_bullish().detect(build_snapshot(institutional_flow_bullish_payload()))
        assert result.detected
        assert result.confidence == pytest.approx(90.0)

    def test_regular_hours_only(self):
        snap = build_snapshot(institutional_flow_bullish_payload(), {"session": {"isRegularHours": False}})
        assert build_institutional_flow_bullish().evaluate_gate(snap).failed_check.name == "market_hours"

    def test_missing_flow_fails_closed(self):
        snap = build_snapshot(institutional_flow_bullish_payload(), {"flow": None})
        assert build_institutional_flow_bullish().evaluate_gate(snap).failed_check.name == "flow_data"

    @pytest.mark.parametrize("override, failed", [
        ({"flowScore": 79}, "flow_score"),
        ({"sweepCount": 4}, "sweeps"),
        ({"buyPressure": 65}, "pressure"),
        ({"largeTradePercentage": 35}, "large_trades"),
        ({"aggressiveness": "NORMAL"}, "aggressiveness"),
        ({"flowBias": "neutral"}, "flow_bias"),
    ])
    def test_each_requirement_gates(self, override, failed):
        snap = build_snapshot(institutional_flow_bullish_payload(), {"flow": override})
        assert build_institutional_flow_bullish().evaluate_gate(snap).failed_check.name == failed

    def test_bearish_uses_sell_pressure(self):
        snap = build_snapshot(institutional_flow_bullish_payload(), {
            "flow": {"flowBias": "bearish", "buyPressure": 22},
        })
        assert build_institutional_flow_bearish().gate(snap)
        assert not build_institutional_flow_bullish().gate(snap)


# ----------------------------------------------------------------------
# Gamma squeeze
# ----------------------------------------------------------------------

class TestGammaSqueeze:

    def test_flip_cross_with_short_gamma_detects(self):
        result = build_gamma_squeeze_bullish().detect(build_snapshot(gamma_squeeze_bullish_payload()))
        assert result.detected
        # flip 85, dealer 90, wall room 100, rvol 85, regime 90, no flow 50
        assert result.confidence == pytest.approx(86.0)

    def test_requires_options_data(self):
        snap = build_snapshot(gamma_squeeze_bullish_payload(), {"gamma": None})
        gate = build_gamma_squeeze_bullish().evaluate_gate(snap)
        assert not gate.passed
        assert gate.failed_check.name == "options_data"

    def test_long_dealer_gamma_fails(self):
        snap = build_snapshot(gamma_squeeze_bullish_payload(), {"gamma": {"dealerNetGamma": 2e9}})
        assert build_gamma_squeeze_bullish().evaluate_gate(snap).failed_check.name == "dealer_gamma"

    def test_move_already_made_fails_flip_check(self):
        snap = build_snapshot(gamma_squeeze_bullish_payload(), {"gamma": {"flipLevel": 490.0}})
        assert build_gamma_squeeze_bullish().evaluate_gate(snap).failed_check.name == "gamma_flip"

    def test_wall_too_close_fails(self):
        snap = build_snapshot(gamma_squeeze_bullish_payload(), {"gamma": {"callWall": 500.5}})
        assert build_gamma_squeeze_bullish().evaluate_gate(snap).failed_check.name == "wall_room"

    def test_missing_wall_is_skipped(self):
        snap = build_snapshot(gamma_squeeze_bullish_payload(), {"gamma": {"callWall": None}})
        gate = build_gamma_squeeze_bullish().evaluate_gate(snap)
        assert gate.passed
        assert next(c for c in gate.checks if c.name == "wall_room").status == CheckStatus.SKIPPED

    def test_bearish_needs_price_under_flip(self):
        snap = build_snapshot(gamma_squeeze_bullish_payload(), {"price": {"current": 497.0}})
        assert build_gamma_squeeze_bearish().gate(snap)
        assert not build_gamma_squeeze_bullish().gate(snap)


# ----------------------------------------------------------------------
# Contract shared by every registered detector
# ----------------------------------------------------------------------

class TestDetectorContract:

    @pytest.fixture(scope="class")
    def registry(self):
        return build_default_registry()

    def test_empty_snapshot_never_raises(self, registry):
        snap = FeatureSnapshot(symbol="XYZ")
        for detector in registry:
            result = detector.detect(snap)
            assert not result.detected
            assert result.confidence == 0.0
            assert 0.0 <= detector.score(snap) <= 100.0

    @pytest.mark.parametrize("payload", ALL_PAYLOADS, ids=lambda p: p.__name__)
    def test_scores_and_factors_within_bounds(self, registry, payload):
        snap = build_snapshot(payload())
        for detector in registry:
            assert 0.0 <= detector.score(snap) <= 100.0
            for factor in detector.score_factors_for(snap):
                assert 0.0 <= factor.score <= 100.0

    @pytest.mark.parametrize("payload", ALL_PAYLOADS, ids=lambda p: p.__name__)
    def test_gate_trail_ends_at_first_failure(self, registry, payload):
        snap = build_snapshot(payload())
        for detector in registry:
            gate = detector.evaluate_gate(snap)
            statuses = [c.status for c in gate.checks]
            if gate.passed:
                assert CheckStatus.FAILED not in statuses
            else:
                assert statuses[-1] == CheckStatus.FAILED
                assert statuses.count(CheckStatus.FAILED) == 1

    def test_direction_matches_name(self, registry):
        for detector in registry:
            bullish = detector.type.endswith(("_long", "_bullish"))
            assert detector.direction == (Direction.LONG if bullish else Direction.SHORT)

    def test_snapshot_is_not_mutated(self, registry):
        snap = build_snapshot(mean_reversion_long_payload())
        before = repr(snap)
        for detector in registry:
            detector.detect(snap)
        assert repr(snap) == before
